import pytest

from backend.app.services.fetcher import VideoFetcher
from backend.app.services.ledger import MemoryStore, QuotaLedger, ResponseCache
from backend.app.services.youtube_client import YouTubeClient
from backend.tests.fakes import FIXED_NOW, FakeSession


@pytest.fixture
def clock():
    state = {"now": FIXED_NOW}

    def now():
        return state["now"]

    now.state = state
    return now


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def ledger(store, clock):
    return QuotaLedger(store, daily_limit=10000, clock=clock)


@pytest.fixture
def make_fetcher(ledger, store):
    def factory(routes, cache=True):
        session = FakeSession(routes)
        client = YouTubeClient("AIza-test", ledger, session=session)
        response_cache = ResponseCache(store, ttl_seconds=3600) if cache else None
        return VideoFetcher(client, cache=response_cache), session

    return factory
