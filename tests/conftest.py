import pytest

from fakes import AUTH_PAYLOAD, FakeClock
from wishlist_api import AccountSnapshot


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def account():
    return AccountSnapshot.from_payload(AUTH_PAYLOAD)
