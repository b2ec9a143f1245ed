"""Per-group fetch orchestration: cache, single-flight, upstream, revalidation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from ..cache.group_cache import GroupCache
from ..cache.request_stats import RequestStatsTracker
from ..core.async_utils import BackgroundTaskSupervisor, retry_async
from ..core.exceptions import UpstreamError, UpstreamHTTPError, UpstreamTransportError
from ..core.health_tracker import HealthTracker
from ..core.timezone_utils import full_academic_year_range, now_utc
from .change_detection import ScheduleChangeDetector
from .groups import is_valid_group_name, normalize_group_value
from .models import GroupRef

logger = logging.getLogger(__name__)


class UpstreamClient(Protocol):
    async def fetch_group(self, group_id: str, start: str, end: str) -> list[dict[str, Any]]: ...


class Notifier(Protocol):
    def notify_event(self, type_: Any, group: str, event_count: int) -> None: ...


@dataclass
class FetchResult:
    """Outcome of one upstream fetch; failures carry an empty event list."""

    events: list[dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _is_retryable(error: BaseException) -> bool:
    if isinstance(error, UpstreamTransportError):
        return True
    return isinstance(error, UpstreamHTTPError) and error.status >= 500


def _default_date_range() -> tuple[str, str]:
    return full_academic_year_range(now_utc())


class FetchCoordinator:
    """Serves group payloads from the cache tier and CELCAT.

    At most one upstream fetch per group key is in flight; concurrent callers
    join it. Stale cache hits are returned at once and revalidated in the
    background. Upstream failures degrade to an empty list.
    """

    def __init__(
        self,
        client: UpstreamClient,
        cache: GroupCache,
        stats: RequestStatsTracker,
        *,
        supervisor: Optional[BackgroundTaskSupervisor] = None,
        change_detector: Optional[ScheduleChangeDetector] = None,
        notifier: Optional[Notifier] = None,
        health_tracker: Optional[HealthTracker] = None,
        date_range: Callable[[], tuple[str, str]] = _default_date_range,
        retry_backoff: float = 0.5,
    ) -> None:
        self.client = client
        self.cache = cache
        self.stats = stats
        self.supervisor = supervisor or BackgroundTaskSupervisor(name="fetch")
        self.change_detector = change_detector
        self.notifier = notifier
        self.health_tracker = health_tracker
        self._date_range = date_range
        self.retry_backoff = retry_backoff
        self._in_flight: dict[str, asyncio.Task[FetchResult]] = {}

    @property
    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def is_in_flight(self, group_key: str) -> bool:
        return group_key in self._in_flight

    @staticmethod
    def _resolve(group_value: Any) -> Optional[GroupRef]:
        ref = normalize_group_value(group_value)
        if ref is None:
            logger.warning("Empty group value provided")
            return None
        if not is_valid_group_name(ref.id):
            return None
        return ref

    async def get_events_for_group(
        self, group_value: Any, force_refresh: bool = False
    ) -> list[dict[str, Any]]:
        """Raw events for one group.

        Args:
            group_value: Group id, ``"id::label"`` composite or mapping
            force_refresh: Skip the cache and the in-flight join

        Returns:
            Raw event records; empty when the group is invalid or the fetch failed
        """
        ref = self._resolve(group_value)
        if ref is None:
            return []

        key = ref.id
        self.stats.track(key, ref.label)

        if not force_refresh:
            lookup = await self.cache.get(key)
            if lookup is not None and lookup.payload:
                if not lookup.stale:
                    logger.debug("Fresh cache hit for %s (%d events)", key, len(lookup.payload))
                    return lookup.payload
                logger.info(
                    "Stale cache hit for %s (age %.0fs); revalidating in background",
                    key,
                    lookup.age_seconds,
                )
                self._schedule_revalidation(ref)
                return lookup.payload

            pending = self._in_flight.get(key)
            if pending is not None:
                logger.debug("Joining in-flight request for %s", key)
                result = await asyncio.shield(pending)
                return result.events

        task = self._start_fetch(ref, retry=True)
        result = await asyncio.shield(task)
        return result.events

    async def refresh_group(self, group_value: Any) -> FetchResult:
        """Force an upstream fetch for cache warming.

        Does not count towards request statistics.
        """
        ref = self._resolve(group_value)
        if ref is None:
            return FetchResult(error="invalid group")
        return await asyncio.shield(self._start_fetch(ref, retry=False))

    def _schedule_revalidation(self, ref: GroupRef) -> None:
        if ref.id in self._in_flight:
            logger.debug("Revalidation for %s already in flight", ref.id)
            return
        self._start_fetch(ref, retry=False)

    def _start_fetch(self, ref: GroupRef, retry: bool) -> asyncio.Task[FetchResult]:
        key = ref.id
        task = self.supervisor.spawn(self._fetch_and_cache(ref, retry), name=f"fetch:{key}")
        # A forced refresh replaces any earlier entry; the cache is last-write-wins
        self._in_flight[key] = task
        task.add_done_callback(lambda t: self._release(key, t))
        return task

    def _release(self, key: str, task: asyncio.Task[FetchResult]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    async def _fetch_upstream(self, key: str, retry: bool) -> list[dict[str, Any]]:
        start, end = self._date_range()
        if not retry:
            return await self.client.fetch_group(key, start, end)
        return await retry_async(
            lambda: self.client.fetch_group(key, start, end),
            max_retries=1,
            backoff=self.retry_backoff,
            retry_on=(UpstreamError,),
            should_retry=_is_retryable,
        )

    async def _fetch_and_cache(self, ref: GroupRef, retry: bool) -> FetchResult:
        key = ref.id
        if self.health_tracker:
            self.health_tracker.record_fetch_attempt()

        try:
            events = await self._fetch_upstream(key, retry)
        except UpstreamError as e:
            if self.health_tracker:
                self.health_tracker.record_fetch_failure(e.message)
            logger.error("Failed to fetch group %s: %s", key, e.message)
            return FetchResult(error=e.message)
        except Exception as e:
            if self.health_tracker:
                self.health_tracker.record_fetch_failure(str(e))
            logger.exception("Unexpected error fetching group %s", key)
            return FetchResult(error=str(e))

        if self.health_tracker:
            self.health_tracker.record_fetch_success()

        await self.cache.set(key, events)
        self._check_changes(ref, events)
        return FetchResult(events=events)

    def _check_changes(self, ref: GroupRef, events: list[dict[str, Any]]) -> None:
        if self.change_detector is None:
            return
        try:
            check = self.change_detector.check(ref.id, events)
            if check.changed and self.notifier is not None:
                self.notifier.notify_event("schedule_change", ref.label, len(events))
        except Exception as e:
            logger.warning("Schedule change notification failed for %s: %s", ref.id, e)
