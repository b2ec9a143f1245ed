"""Fan out over requested groups, merge raw events and transform them."""

from __future__ import annotations

import asyncio
import datetime
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Optional

from ..core.config_manager import MAX_GROUPS_PER_REQUEST, TransformRules
from ..core.timezone_utils import DEFAULT_CALENDAR_TIMEZONE, now_utc
from .event_transformer import EventTransformer
from .fetch_coordinator import FetchCoordinator
from .groups import resolve_groups
from .models import GroupRef, ProcessedEvent, UserCustomization

logger = logging.getLogger(__name__)


@dataclass
class AggregationResult:
    groups: list[GroupRef] = field(default_factory=list)
    raw_count: int = 0
    events: list[ProcessedEvent] = field(default_factory=list)

    @property
    def labels(self) -> list[str]:
        return [group.label for group in self.groups]

    @property
    def course_count(self) -> int:
        """Surviving events that are not holidays."""
        return sum(1 for event in self.events if not event.is_holiday)


class CalendarAggregator:
    """Builds the event list for a feed request."""

    def __init__(
        self,
        coordinator: FetchCoordinator,
        rules: Optional[TransformRules] = None,
        *,
        timezone: str = DEFAULT_CALENDAR_TIMEZONE,
        max_groups: int = MAX_GROUPS_PER_REQUEST,
        clock: Callable[[], datetime.datetime] = now_utc,
    ) -> None:
        self.coordinator = coordinator
        self.rules = rules or TransformRules()
        self.timezone = timezone
        self.max_groups = max_groups
        self._clock = clock

    def resolve(self, group_values: Sequence[Any]) -> list[GroupRef]:
        """Valid groups among the first ``max_groups`` values."""
        return resolve_groups(group_values, self.max_groups)

    async def fetch_raw(self, groups: Sequence[GroupRef]) -> list[dict[str, Any]]:
        """Fetch every group in parallel and concatenate the payloads in request order."""
        results = await asyncio.gather(
            *(self.coordinator.get_events_for_group(group) for group in groups),
            return_exceptions=True,
        )

        merged: list[dict[str, Any]] = []
        for group, result in zip(groups, results):
            if isinstance(result, BaseException):
                logger.error("Fetching group %s failed: %s", group.id, result)
                continue
            merged.extend(result)
        return merged

    async def aggregate(
        self, group_values: Sequence[Any], customization: Optional[UserCustomization] = None
    ) -> AggregationResult:
        groups = self.resolve(group_values)
        if not groups:
            return AggregationResult()

        raw_events = await self.fetch_raw(groups)
        transformer = EventTransformer(
            self.rules, customization, timezone=self.timezone, now=self._clock()
        )
        events = transformer.transform_all(raw_events)

        result = AggregationResult(groups=groups, raw_count=len(raw_events), events=events)
        logger.info(
            "Aggregated %d groups: %d raw events -> %d events (%d courses)",
            len(groups),
            result.raw_count,
            len(events),
            result.course_count,
        )
        return result
