"""Tests for FetchCoordinator: caching, single-flight, revalidation, failures."""

import asyncio
from collections.abc import AsyncIterator

import pytest

from celcat_feed.cache import CircuitBreaker, GroupCache, RequestStatsTracker
from celcat_feed.core.async_utils import BackgroundTaskSupervisor
from celcat_feed.core.config_manager import FeedSettings
from celcat_feed.core.exceptions import UpstreamHTTPError, UpstreamTransportError
from celcat_feed.core.health_tracker import HealthTracker
from celcat_feed.domain.change_detection import ScheduleChangeDetector
from celcat_feed.domain.fetch_coordinator import FetchCoordinator
from celcat_feed.domain.models import GroupRef

from ..conftest import FIXED_RANGE, FakeUpstream, ManualClock, make_event

pytestmark = pytest.mark.unit


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, int]] = []

    def notify_event(self, type_: str, group: str, event_count: int) -> None:
        self.events.append((type_, group, event_count))


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


class TestCaching:
    async def test_get_events_when_cache_empty_then_fetches_and_caches(
        self, coordinator: FetchCoordinator, upstream: FakeUpstream, memory_cache: GroupCache
    ) -> None:
        upstream.responses["g1"] = [make_event("e1")]

        events = await coordinator.get_events_for_group("g1")

        assert [event["id"] for event in events] == ["e1"]
        assert upstream.calls == [("g1", *FIXED_RANGE)]
        assert (await memory_cache.get("g1")).payload == events

    async def test_get_events_when_fresh_cache_then_no_upstream_call(
        self, coordinator: FetchCoordinator, upstream: FakeUpstream, memory_cache: GroupCache
    ) -> None:
        await memory_cache.set("g1", [make_event("cached")])

        events = await coordinator.get_events_for_group("g1")

        assert events[0]["id"] == "cached"
        assert upstream.calls == []

    async def test_get_events_when_cached_payload_empty_then_refetched(
        self, coordinator: FetchCoordinator, upstream: FakeUpstream, memory_cache: GroupCache
    ) -> None:
        await memory_cache.set("g1", [])
        upstream.responses["g1"] = [make_event("e1")]

        events = await coordinator.get_events_for_group("g1")

        assert len(events) == 1
        assert upstream.calls_for("g1") == 1

    async def test_get_events_when_force_refresh_then_cache_bypassed(
        self, coordinator: FetchCoordinator, upstream: FakeUpstream, memory_cache: GroupCache
    ) -> None:
        await memory_cache.set("g1", [make_event("old")])
        upstream.responses["g1"] = [make_event("new")]

        events = await coordinator.get_events_for_group("g1", force_refresh=True)

        assert events[0]["id"] == "new"
        assert (await memory_cache.get("g1")).payload[0]["id"] == "new"

    async def test_get_events_when_composite_value_then_id_used_and_label_tracked(
        self, coordinator: FetchCoordinator, upstream: FakeUpstream
    ) -> None:
        await coordinator.get_events_for_group("g1::Licence 3")

        assert upstream.calls[0][0] == "g1"
        assert coordinator.stats.label("g1") == "Licence 3"
        assert coordinator.stats.get("g1").count == 1


class TestSingleFlight:
    async def test_concurrent_calls_for_same_key_then_one_upstream_call(
        self, coordinator: FetchCoordinator, upstream: FakeUpstream
    ) -> None:
        upstream.responses["g1"] = [make_event("e1")]
        upstream.gate = asyncio.Event()

        calls = [asyncio.create_task(coordinator.get_events_for_group("g1")) for _ in range(5)]
        await _settle()
        assert coordinator.is_in_flight("g1")
        upstream.gate.set()
        results = await asyncio.gather(*calls)

        assert upstream.calls_for("g1") == 1
        assert all(result[0]["id"] == "e1" for result in results)
        assert coordinator.in_flight_count == 0

    async def test_concurrent_calls_for_different_keys_then_independent(
        self, coordinator: FetchCoordinator, upstream: FakeUpstream
    ) -> None:
        await asyncio.gather(
            coordinator.get_events_for_group("g1"),
            coordinator.get_events_for_group("g2"),
        )

        assert upstream.calls_for("g1") == 1
        assert upstream.calls_for("g2") == 1

    async def test_cancelled_joiner_then_shared_fetch_completes(
        self, coordinator: FetchCoordinator, upstream: FakeUpstream, memory_cache: GroupCache
    ) -> None:
        upstream.responses["g1"] = [make_event("e1")]
        upstream.gate = asyncio.Event()

        first = asyncio.create_task(coordinator.get_events_for_group("g1"))
        joiner = asyncio.create_task(coordinator.get_events_for_group("g1"))
        await _settle()
        joiner.cancel()
        upstream.gate.set()

        assert (await first)[0]["id"] == "e1"
        with pytest.raises(asyncio.CancelledError):
            await joiner
        assert (await memory_cache.get("g1")) is not None


class TestStaleWhileRevalidate:
    async def test_stale_hit_then_served_immediately_and_one_background_refetch(
        self,
        coordinator: FetchCoordinator,
        upstream: FakeUpstream,
        memory_cache: GroupCache,
        clock: ManualClock,
    ) -> None:
        await memory_cache.set("g1", [make_event("old")])
        clock.advance(7201)
        upstream.responses["g1"] = [make_event("new")]
        upstream.gate = asyncio.Event()

        first = await coordinator.get_events_for_group("g1")
        second = await coordinator.get_events_for_group("g1")

        assert first[0]["id"] == "old"
        assert second[0]["id"] == "old"
        upstream.gate.set()
        await coordinator.supervisor.drain(timeout=1)

        assert upstream.calls_for("g1") == 1
        lookup = await memory_cache.get("g1")
        assert lookup.stale is False
        assert lookup.payload[0]["id"] == "new"

    async def test_stale_revalidation_failure_then_stale_copy_kept(
        self,
        coordinator: FetchCoordinator,
        upstream: FakeUpstream,
        memory_cache: GroupCache,
        clock: ManualClock,
    ) -> None:
        await memory_cache.set("g1", [make_event("old")])
        clock.advance(7201)
        upstream.responses["g1"] = UpstreamHTTPError(503, "g1")

        events = await coordinator.get_events_for_group("g1")
        await coordinator.supervisor.drain(timeout=1)

        assert events[0]["id"] == "old"
        # background revalidation does not retry
        assert upstream.calls_for("g1") == 1
        assert (await memory_cache.get("g1")).payload[0]["id"] == "old"


class TestDefaultSettings:
    @pytest.fixture
    async def default_coordinator(
        self, upstream: FakeUpstream, clock: ManualClock
    ) -> AsyncIterator[FetchCoordinator]:
        settings = FeedSettings()
        cache = GroupCache(
            None,
            CircuitBreaker(clock=clock),
            fresh_ttl=settings.cache_ttl_fresh,
            stale_ttl=settings.cache_ttl_stale,
            memory_ttl=settings.cache_ttl_memory,
            clock=clock,
        )
        supervisor = BackgroundTaskSupervisor(name="test-default")
        coord = FetchCoordinator(
            upstream,
            cache,
            RequestStatsTracker(clock=clock),
            supervisor=supervisor,
            date_range=lambda: FIXED_RANGE,
            retry_backoff=0,
        )
        yield coord
        await supervisor.shutdown()

    async def test_memory_only_when_past_memory_ttl_then_still_fresh_hit(
        self, default_coordinator: FetchCoordinator, upstream: FakeUpstream, clock: ManualClock
    ) -> None:
        upstream.responses["g1"] = [make_event("e1")]
        await default_coordinator.get_events_for_group("g1")
        clock.advance(600)

        lookup = await default_coordinator.cache.get("g1")

        assert lookup is not None
        assert lookup.stale is False

    async def test_memory_only_when_in_stale_zone_then_served_without_waiting_and_one_refetch(
        self, default_coordinator: FetchCoordinator, upstream: FakeUpstream, clock: ManualClock
    ) -> None:
        upstream.responses["g1"] = [make_event("old")]
        await default_coordinator.get_events_for_group("g1")
        clock.advance(3 * 3600)
        upstream.responses["g1"] = [make_event("new")]
        upstream.gate = asyncio.Event()

        events = await asyncio.wait_for(default_coordinator.get_events_for_group("g1"), timeout=0.5)

        assert events[0]["id"] == "old"
        upstream.gate.set()
        await default_coordinator.supervisor.drain(timeout=1)
        assert upstream.calls_for("g1") == 2
        assert (await default_coordinator.cache.get("g1")).payload[0]["id"] == "new"


class TestFailures:
    async def test_server_error_then_retried_once_and_degrades_to_empty(
        self, coordinator: FetchCoordinator, upstream: FakeUpstream
    ) -> None:
        upstream.responses["g1"] = UpstreamHTTPError(500, "g1")

        events = await coordinator.get_events_for_group("g1")

        assert events == []
        assert upstream.calls_for("g1") == 2

    async def test_transport_error_then_retry_succeeds(
        self, coordinator: FetchCoordinator, upstream: FakeUpstream
    ) -> None:
        upstream.responses["g1"] = (
            UpstreamTransportError(TimeoutError("timed out"), "g1"),
            [make_event("e1")],
        )

        events = await coordinator.get_events_for_group("g1")

        assert [event["id"] for event in events] == ["e1"]
        assert upstream.calls_for("g1") == 2

    async def test_client_error_then_not_retried(
        self, coordinator: FetchCoordinator, upstream: FakeUpstream
    ) -> None:
        upstream.responses["g1"] = UpstreamHTTPError(404, "g1")

        assert await coordinator.get_events_for_group("g1") == []
        assert upstream.calls_for("g1") == 1

    async def test_failure_then_nothing_cached(
        self, coordinator: FetchCoordinator, upstream: FakeUpstream, memory_cache: GroupCache
    ) -> None:
        upstream.responses["g1"] = UpstreamHTTPError(502, "g1")

        await coordinator.get_events_for_group("g1")

        assert await memory_cache.get("g1") is None

    @pytest.mark.parametrize("value", ["", "   ", None, "<script>alert(1)</script>", "javascript:void(0)"])
    async def test_invalid_group_then_empty_without_upstream_call(
        self, coordinator: FetchCoordinator, upstream: FakeUpstream, value: object
    ) -> None:
        assert await coordinator.get_events_for_group(value) == []
        assert upstream.calls == []


class TestRefreshAndChanges:
    async def test_refresh_group_then_forced_fetch_without_stats(
        self, coordinator: FetchCoordinator, upstream: FakeUpstream, memory_cache: GroupCache
    ) -> None:
        await memory_cache.set("g1", [make_event("old")])
        upstream.responses["g1"] = [make_event("new")]

        result = await coordinator.refresh_group(GroupRef(id="g1", label="Alpha"))

        assert result.ok
        assert result.events[0]["id"] == "new"
        assert coordinator.stats.get("g1") is None

    async def test_refresh_group_when_upstream_fails_then_error_reported(
        self, coordinator: FetchCoordinator, upstream: FakeUpstream
    ) -> None:
        upstream.responses["g1"] = UpstreamHTTPError(500, "g1")

        result = await coordinator.refresh_group("g1")

        assert result.ok is False
        assert "500" in result.error
        assert upstream.calls_for("g1") == 1

    async def test_refresh_group_when_invalid_then_error(self, coordinator: FetchCoordinator) -> None:
        result = await coordinator.refresh_group("")

        assert result.error == "invalid group"

    async def test_schedule_change_then_notification_sent(
        self, upstream: FakeUpstream, memory_cache: GroupCache, clock: ManualClock
    ) -> None:
        from celcat_feed.cache import RequestStatsTracker

        notifier = RecordingNotifier()
        tracker = HealthTracker()
        coord = FetchCoordinator(
            upstream,
            memory_cache,
            RequestStatsTracker(clock=clock),
            change_detector=ScheduleChangeDetector(),
            notifier=notifier,
            health_tracker=tracker,
            date_range=lambda: FIXED_RANGE,
            retry_backoff=0,
        )
        upstream.responses["g1"] = [make_event("e1")]
        await coord.get_events_for_group("g1::Alpha")
        assert notifier.events == []

        upstream.responses["g1"] = [make_event("e1"), make_event("e2")]
        await coord.get_events_for_group("g1::Alpha", force_refresh=True)

        assert notifier.events == [("schedule_change", "Alpha", 2)]
        assert tracker.get_upstream_status()["successes"] == 2
