"""
Tests for the auth check / add item client, with the requests session mocked out.
"""

from unittest.mock import MagicMock

import pytest
import requests

from wishlist_api import AccountSnapshot, AddResult, TimedOut, WishlistApiError, WishlistClient
from fakes import AUTH_PAYLOAD

API = "https://api.example.com/api"


def response(status=200, body=None, json_error=False):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    if json_error:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


def client_with(resp=None, exc=None):
    session = MagicMock()
    if exc is not None:
        session.request.side_effect = exc
    else:
        session.request.return_value = resp
    return WishlistClient(api_base=API, timeout=10, session=session), session


# ---------------------------------------------------------------------------
# AccountSnapshot
# ---------------------------------------------------------------------------

class TestAccountSnapshot:
    def test_parses_kids_and_registries(self, account):
        assert account.is_logged_in
        assert [k.name for k in account.kids] == ["Ava", "Leo"]
        assert account.registries[0].occasion == "birthday"
        assert account.has_kid("kid-2") and not account.has_kid("kid-9")

    @pytest.mark.parametrize("payload", [
        None,
        [],
        {"isLoggedIn": False, "kids": [{"id": "kid-1"}]},
        {"isLoggedIn": "yes"},
        {"isLoggedIn": True, "kids": [{"name": "no id"}]},
        {"isLoggedIn": True, "kids": "Ava"},
    ])
    def test_malformed_means_logged_out(self, payload):
        assert AccountSnapshot.from_payload(payload) == AccountSnapshot.logged_out()


# ---------------------------------------------------------------------------
# fetch_account
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_fetch_account_sends_bearer_with_timeout():
    client, session = client_with(response(200, AUTH_PAYLOAD))
    snapshot = await client.fetch_account("tok")

    assert snapshot.email == "parent@example.com"
    method, url = session.request.call_args.args
    kwargs = session.request.call_args.kwargs
    assert (method, url) == ("GET", API + "/extension/auth")
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    assert kwargs["timeout"] == 10


@pytest.mark.asyncio
@pytest.mark.parametrize("resp, exc", [
    (response(401, {"isLoggedIn": False}), None),
    (response(500, AUTH_PAYLOAD), None),
    (response(200, json_error=True), None),
    (None, requests.Timeout("slow")),
    (None, requests.ConnectionError("down")),
])
async def test_fetch_account_failures_read_as_logged_out(resp, exc):
    client, _ = client_with(resp, exc)
    assert (await client.fetch_account("tok")).is_logged_in is False


# ---------------------------------------------------------------------------
# add_item
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_add_item_success():
    body = {"success": True, "item": {"id": "w-1"}, "message": "Added to Ava's wishlist", "destination": "wishlist"}
    client, session = client_with(response(200, body))
    result = await client.add_item("tok", {"kidId": "kid-1", "title": "Train", "url": "https://x"})

    assert result == AddResult(success=True, message="Added to Ava's wishlist", item={"id": "w-1"}, destination="wishlist")
    assert session.request.call_args.args == ("POST", API + "/wishlist/add-external")
    assert session.request.call_args.kwargs["json"]["kidId"] == "kid-1"


@pytest.mark.asyncio
async def test_add_item_conflict_keeps_server_message():
    client, _ = client_with(response(409, {"error": "This item is already on the wishlist"}))
    with pytest.raises(WishlistApiError) as info:
        await client.add_item("tok", {})
    assert info.value.message == "This item is already on the wishlist"
    assert info.value.status == 409


@pytest.mark.asyncio
async def test_add_item_failure_without_body_is_generic():
    client, _ = client_with(response(502, json_error=True))
    with pytest.raises(WishlistApiError) as info:
        await client.add_item("tok", {})
    assert info.value.message == "Failed to add item"


@pytest.mark.asyncio
async def test_add_item_timeout():
    client, _ = client_with(exc=requests.Timeout("slow"))
    with pytest.raises(TimedOut) as info:
        await client.add_item("tok", {})
    assert info.value.status is None


@pytest.mark.asyncio
async def test_add_item_network_error_has_no_status():
    client, _ = client_with(exc=requests.ConnectionError("down"))
    with pytest.raises(WishlistApiError) as info:
        await client.add_item("tok", {})
    assert not isinstance(info.value, TimedOut)
    assert info.value.status is None
