#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Client for the two wishlist endpoints the capture flow needs:
  GET  {API_BASE}/extension/auth           -> who am I, kids, registries
  POST {API_BASE}/wishlist/add-external    -> add the captured product

Calls run on a requests.Session in a worker thread so the controller's event
loop stays free. Every call has a bounded timeout; GETs are retried on
429/5xx, POSTs never are (a retried add could land twice).
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

import settings

logger = logging.getLogger(__name__)

GENERIC_ADD_FAILURE = "Failed to add item"


class WishlistApiError(Exception):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class TimedOut(WishlistApiError):
    pass


# ──────────────────────────────────────────────────────────────
# Account snapshot
# ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Profile:
    id: str
    name: str = ""


@dataclass(frozen=True)
class Registry:
    id: str
    name: str = ""
    occasion: str = ""


@dataclass(frozen=True)
class AccountSnapshot:
    is_logged_in: bool = False
    user_id: Optional[str] = None
    email: Optional[str] = None
    kids: List[Profile] = field(default_factory=list)
    registries: List[Registry] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def logged_out(cls) -> "AccountSnapshot":
        return cls()

    @classmethod
    def from_payload(cls, payload: Any) -> "AccountSnapshot":
        """Anything that doesn't look like an auth body counts as logged out."""
        if not isinstance(payload, dict) or payload.get("isLoggedIn") is not True:
            return cls.logged_out()
        try:
            kids = [Profile(id=str(k["id"]), name=str(k.get("name") or "")) for k in payload.get("kids") or []]
            registries = [
                Registry(id=str(r["id"]), name=str(r.get("name") or ""), occasion=str(r.get("occasion") or ""))
                for r in payload.get("registries") or []
            ]
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning("Malformed auth payload: %s", e)
            return cls.logged_out()
        return cls(
            is_logged_in=True,
            user_id=payload.get("userId"),
            email=payload.get("email"),
            kids=kids,
            registries=registries,
            raw=payload,
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "isLoggedIn": self.is_logged_in,
            "userId": self.user_id,
            "email": self.email,
            "kids": [{"id": k.id, "name": k.name} for k in self.kids],
            "registries": [{"id": r.id, "name": r.name, "occasion": r.occasion} for r in self.registries],
        }

    def has_kid(self, kid_id: Optional[str]) -> bool:
        return bool(kid_id) and any(k.id == kid_id for k in self.kids)

    def has_registry(self, registry_id: Optional[str]) -> bool:
        return bool(registry_id) and any(r.id == registry_id for r in self.registries)


@dataclass(frozen=True)
class AddResult:
    success: bool
    message: str = ""
    item: Optional[Dict[str, Any]] = None
    destination: str = ""


# ──────────────────────────────────────────────────────────────
# HTTP
# ──────────────────────────────────────────────────────────────

def make_session() -> requests.Session:
    s = requests.Session()
    retry = Retry(
        total=2,
        backoff_factor=0.5,
        status_forcelist=[429, 500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    return s


def _json_or_empty(resp: requests.Response) -> Dict[str, Any]:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


class WishlistClient:
    def __init__(
        self,
        api_base: str = settings.API_BASE,
        timeout: float = settings.API_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.session = session or make_session()

    def _headers(self, token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    def _request(self, method: str, path: str, token: str, body: Optional[dict] = None) -> requests.Response:
        url = self.api_base + path
        try:
            return self.session.request(method, url, headers=self._headers(token), json=body, timeout=self.timeout)
        except requests.Timeout as e:
            raise TimedOut("Request timed out") from e
        except requests.RequestException as e:
            raise WishlistApiError(str(e)) from e

    # sync -----------------------------------------------------

    def fetch_account_sync(self, token: str) -> AccountSnapshot:
        try:
            resp = self._request("GET", settings.AUTH_PATH, token)
        except WishlistApiError as e:
            logger.info("Auth check failed: %s", e)
            return AccountSnapshot.logged_out()
        if not resp.ok:
            logger.info("Auth check returned HTTP %s", resp.status_code)
            return AccountSnapshot.logged_out()
        return AccountSnapshot.from_payload(_json_or_empty(resp))

    def add_item_sync(self, token: str, payload: Dict[str, Any]) -> AddResult:
        resp = self._request("POST", settings.ADD_ITEM_PATH, token, payload)
        data = _json_or_empty(resp)
        if not resp.ok:
            raise WishlistApiError(str(data.get("error") or GENERIC_ADD_FAILURE), status=resp.status_code)
        return AddResult(
            success=bool(data.get("success", True)),
            message=str(data.get("message") or ""),
            item=data.get("item"),
            destination=str(data.get("destination") or ""),
        )

    # async ----------------------------------------------------

    async def fetch_account(self, token: str) -> AccountSnapshot:
        """Never raises: transport, HTTP and parse failures all read as logged out."""
        return await asyncio.to_thread(self.fetch_account_sync, token)

    async def add_item(self, token: str, payload: Dict[str, Any]) -> AddResult:
        return await asyncio.to_thread(self.add_item_sync, token, payload)
