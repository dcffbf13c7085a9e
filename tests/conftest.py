"""Shared fixtures."""
import httpx
import pytest

from cache import TTLCache
from providers import HackerNewsProvider
from service import StoryService
from tests.fakes import BASE, FakeClock, FakeUpstream, story


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream({i: story(i) for i in range(1, 6)}, listing=[1, 2, 3, 4, 5])


@pytest.fixture
def cache(clock: FakeClock) -> TTLCache:
    return TTLCache(ttl_seconds=1800, max_size=1000, compaction=0.25, clock=clock)


@pytest.fixture
def provider(upstream: FakeUpstream) -> HackerNewsProvider:
    return HackerNewsProvider(httpx.AsyncClient(transport=upstream.transport()), BASE)


@pytest.fixture
def service(cache: TTLCache, provider: HackerNewsProvider) -> StoryService:
    return StoryService(cache, provider)
