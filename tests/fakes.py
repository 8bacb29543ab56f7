"""Shared test doubles."""

from wishlist_api import AccountSnapshot, AddResult


class FakeClock:
    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


AUTH_PAYLOAD = {
    "isLoggedIn": True,
    "userId": "user-1",
    "email": "parent@example.com",
    "kids": [{"id": "kid-1", "name": "Ava"}, {"id": "kid-2", "name": "Leo"}],
    "registries": [{"id": "reg-1", "name": "Ava's Birthday", "occasion": "birthday"}],
}


class FakeResolver:
    def __init__(self, token=None):
        self.token = token
        self.calls = 0

    async def resolve(self):
        self.calls += 1
        return self.token


class FakeApi:
    """Stands in for WishlistClient; records every call."""

    def __init__(self, account=None, add_result=None, add_error=None, fetch_error=None):
        self.account = account or AccountSnapshot.logged_out()
        self.add_result = add_result or AddResult(success=True, message="Added to Ava's wishlist")
        self.add_error = add_error
        self.fetch_error = fetch_error
        self.fetch_calls = []
        self.add_calls = []
        self.on_fetch = None

    async def fetch_account(self, token):
        self.fetch_calls.append(token)
        if self.on_fetch:
            self.on_fetch()
        if self.fetch_error:
            raise self.fetch_error
        return self.account

    async def add_item(self, token, payload):
        self.add_calls.append((token, payload))
        if self.add_error:
            raise self.add_error
        return self.add_result


class SpyTab:
    def __init__(self, url, result=None):
        self.url = url
        self.result = result
        self.calls = 0

    async def execute(self, func):
        self.calls += 1
        return self.result
