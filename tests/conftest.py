"""Shared fixtures and test doubles for celcat_feed tests."""

import asyncio
from collections.abc import AsyncIterator, Generator
from typing import Any, Optional

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from celcat_feed.cache import CircuitBreaker, GroupCache, RedisStore, RequestStatsTracker
from celcat_feed.core.async_utils import BackgroundTaskSupervisor
from celcat_feed.core.config_manager import FeedSettings
from celcat_feed.core.http_client import close_all_clients
from celcat_feed.domain.fetch_coordinator import FetchCoordinator
from celcat_feed.domain.models import GroupSearchItem

FIXED_RANGE = ("2024-08-01", "2025-08-31")


class ManualClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedisClient:
    """Minimal async stand-in for ``redis.asyncio.Redis`` (get/set/aclose)."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.expiry: dict[str, Optional[int]] = {}
        self.fail = False
        self.calls = 0
        self.closed = False

    def _maybe_fail(self) -> None:
        self.calls += 1
        if self.fail:
            raise RedisConnectionError("redis unavailable")

    async def get(self, key: str) -> Optional[str]:
        self._maybe_fail()
        return self.data.get(key)

    async def set(self, key: str, value: str, ex: Optional[int] = None) -> bool:
        self._maybe_fail()
        self.data[key] = value
        self.expiry[key] = ex
        return True

    async def aclose(self) -> None:
        self.closed = True


class FakeUpstream:
    """Upstream client double recording every ``fetch_group`` call.

    ``responses`` maps a group id to a list of events, an exception instance
    to raise, or a list of those consumed one per call. ``gate`` (when set)
    holds every fetch until the event is set.
    """

    def __init__(self, responses: Optional[dict[str, Any]] = None) -> None:
        self.responses: dict[str, Any] = dict(responses or {})
        self.calls: list[tuple[str, str, str]] = []
        self.gate: Optional[asyncio.Event] = None

    async def fetch_group(self, group_id: str, start: str, end: str) -> list[dict[str, Any]]:
        self.calls.append((group_id, start, end))
        if self.gate is not None:
            await self.gate.wait()

        response = self.responses.get(group_id, [])
        if isinstance(response, tuple):
            queue = list(response)
            response = queue.pop(0)
            self.responses[group_id] = tuple(queue) if queue else response
        if isinstance(response, BaseException):
            raise response
        return [dict(event) for event in response]

    def calls_for(self, group_id: str) -> int:
        return sum(1 for call in self.calls if call[0] == group_id)


class FakeDirectory:
    """Search and status double for the CELCAT directory endpoints."""

    def __init__(
        self,
        results: Optional[list[GroupSearchItem]] = None,
        error: Optional[BaseException] = None,
        online: bool = True,
    ) -> None:
        self.results = list(results or [])
        self.error = error
        self.online = online
        self.calls: list[tuple[str, int]] = []
        self.status_timeouts: list[float] = []

    async def search_groups(self, term: str, limit: int = 15) -> list[GroupSearchItem]:
        self.calls.append((term, limit))
        if self.error is not None:
            raise self.error
        return list(self.results)

    async def check_status(self, timeout: float = 3.0) -> bool:
        self.status_timeouts.append(timeout)
        return self.online


def make_event(event_id: str, **overrides: Any) -> dict[str, Any]:
    """Raw CELCAT record with sensible defaults."""
    event = {
        "id": event_id,
        "start": "2024-01-15T09:00:00",
        "end": "2024-01-15T11:00:00",
        "description": "CM\nMaths\nDupont\nA29",
        "eventCategory": "Cours CM",
        "modules": [],
        "sites": [],
    }
    event.update(overrides)
    return event


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def fake_redis() -> FakeRedisClient:
    return FakeRedisClient()


@pytest.fixture
def redis_store(fake_redis: FakeRedisClient) -> RedisStore:
    return RedisStore(fake_redis)


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def memory_cache(clock: ManualClock) -> GroupCache:
    """Memory-only cache with the production freshness thresholds."""
    return GroupCache(None, CircuitBreaker(clock=clock), fresh_ttl=7200, stale_ttl=86400, clock=clock)


@pytest.fixture
async def coordinator(
    upstream: FakeUpstream, memory_cache: GroupCache, clock: ManualClock
) -> AsyncIterator[FetchCoordinator]:
    supervisor = BackgroundTaskSupervisor(name="test-fetch")
    coord = FetchCoordinator(
        upstream,
        memory_cache,
        RequestStatsTracker(clock=clock),
        supervisor=supervisor,
        date_range=lambda: FIXED_RANGE,
        retry_backoff=0,
    )
    yield coord
    await supervisor.shutdown()


@pytest.fixture
def settings(tmp_path: Any) -> FeedSettings:
    """Settings for an isolated, memory-only server."""
    return FeedSettings(
        cron_secret="test-secret",
        preferences_file=str(tmp_path / "preferences.json"),
        warmup_delay_seconds=0,
        cache_prune_probability=0,
        environment="development",
    )


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Keep the frozen-time override from leaking between tests."""
    monkeypatch.delenv("CELCAT_FEED_TEST_TIME", raising=False)
    yield
    monkeypatch.delenv("CELCAT_FEED_TEST_TIME", raising=False)


@pytest.fixture(autouse=True)
async def cleanup_shared_http_clients() -> AsyncIterator[None]:
    """Close shared httpx clients after every test."""
    yield
    await close_all_clients()
