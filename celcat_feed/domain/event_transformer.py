"""Turn raw CELCAT records into user-facing events.

The transformer is deterministic for a given reference time. One instance
covers one aggregation pass: it remembers the ids it has seen so duplicates
across merged groups are dropped (first occurrence wins).
"""

from __future__ import annotations

import datetime
import logging
import re
from collections.abc import Iterable
from typing import Any, Optional

from ..core.config_manager import TransformRules
from ..core.timezone_utils import (
    DEFAULT_CALENDAR_TIMEZONE,
    academic_year_bounds,
    now_utc,
    parse_upstream_datetime,
)
from .customization import apply_customizations
from .models import ProcessedEvent, RawEvent, UserCustomization
from .text_utils import (
    clean_description_text,
    extract_course_name,
    extract_professor,
    find_room_line,
    normalize_location,
    split_lines,
    strip_module_code,
)

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 3

_LEADING_TYPE_RE = re.compile(r"^(?:TD|TP|CM)(?:\s+Machine)?\s*-?\s*", re.IGNORECASE)


class EventTransformer:
    """Filter, classify and rewrite raw events for one aggregation pass."""

    def __init__(
        self,
        rules: Optional[TransformRules] = None,
        customization: Optional[UserCustomization] = None,
        *,
        timezone: str = DEFAULT_CALENDAR_TIMEZONE,
        now: Optional[datetime.datetime] = None,
    ) -> None:
        self.rules = rules or TransformRules()
        self.customization = customization or UserCustomization()
        self.timezone = timezone
        self._academic_start, self._academic_end = academic_year_bounds(now or now_utc(), timezone)
        self._seen_ids: set[str] = set()

        self._blacklist = [keyword.lower() for keyword in self.rules.blacklist if keyword]
        self._holiday_markers = [marker.lower() for marker in self.rules.holiday_markers if marker]
        self._type_patterns = [
            (keyword, [re.compile(pattern) for pattern in keyword.patterns])
            for keyword in self.rules.type_keywords
        ]
        self._machine_patterns = [re.compile(pattern) for pattern in self.rules.machine_markers]
        self._machine_sites = [site.upper() for site in self.rules.machine_sites]

    def transform_all(self, raw_events: Iterable[Any]) -> list[ProcessedEvent]:
        """Transform a merged list of raw records, dropping rejected ones."""
        processed: list[ProcessedEvent] = []
        for item in raw_events:
            event = self.transform(item)
            if event is not None:
                processed.append(event)
        return processed

    def transform(self, item: Any) -> Optional[ProcessedEvent]:
        """Run one record through the pipeline.

        Returns:
            ProcessedEvent, or None when any step drops the record
        """
        raw = item if isinstance(item, RawEvent) else RawEvent.from_payload(item)
        if raw is None or not raw.id:
            return None

        if raw.id in self._seen_ids:
            return None
        self._seen_ids.add(raw.id)

        if raw.id in self.customization.hidden_event_ids:
            return None

        start = parse_upstream_datetime(raw.start, self.timezone)
        if start is None:
            logger.debug("Dropping event %s with unparseable start %r", raw.id, raw.start)
            return None

        description = clean_description_text(raw.description)
        lines = split_lines(description)
        course = extract_course_name(lines)
        course_index = course[0] if course else None
        title = course[1] if course else self._fallback_title(raw, lines)
        title = clean_description_text(title)

        is_holiday = self._is_holiday(raw, title)
        all_day = is_holiday or raw.all_day
        end = self._resolve_end(raw, start, all_day)

        if is_holiday:
            if not self.customization.show_holidays:
                return None
            if not self._academic_start <= start < self._academic_end:
                return None

        if self._is_blacklisted(description, raw.event_category):
            return None

        if is_holiday:
            event = ProcessedEvent(
                id=raw.id,
                start=start,
                end=end,
                summary=title,
                event_type=self.rules.default_event_type,
                is_holiday=True,
                all_day=True,
            )
            return apply_customizations(event, self.customization)

        if len(title) < MIN_TITLE_LENGTH and not raw.modules:
            return None

        for key, replacement in self.rules.replacements.items():
            if key and key in title:
                title = replacement

        prefix = self._type_prefix(raw, description)
        summary = self._compose_summary(title, prefix)

        professor = extract_professor(
            lines, title, course_index, stopwords=self.rules.professor_stopwords
        )
        if professor:
            summary = f"{summary} - {professor}"

        event = ProcessedEvent(
            id=raw.id,
            start=start,
            end=end,
            summary=summary,
            description=description,
            location=self._location(raw, lines),
            event_type=prefix or self.rules.default_event_type,
            type_prefix=prefix,
            is_holiday=False,
            all_day=all_day,
        )
        return apply_customizations(event, self.customization)

    def _fallback_title(self, raw: RawEvent, lines: list[str]) -> str:
        if raw.modules:
            return strip_module_code(raw.modules[0])
        if raw.event_category:
            return raw.event_category
        return lines[0] if lines else "Cours"

    def _is_holiday(self, raw: RawEvent, title: str) -> bool:
        haystack = f"{raw.event_category} {title}".lower()
        return any(marker in haystack for marker in self._holiday_markers)

    def _resolve_end(
        self, raw: RawEvent, start: datetime.datetime, all_day: bool
    ) -> datetime.datetime:
        end = parse_upstream_datetime(raw.end, self.timezone)
        if end is None:
            return start + datetime.timedelta(days=1) if all_day else start
        return max(end, start)

    def _is_blacklisted(self, description: str, category: str) -> bool:
        haystack = f"{description}\n{category}".lower()
        return any(keyword in haystack for keyword in self._blacklist)

    def _type_prefix(self, raw: RawEvent, description: str) -> str:
        scan = f"{raw.event_category} {description}".upper()
        sites = ", ".join(raw.sites).upper()
        is_machine = any(p.search(scan) for p in self._machine_patterns) or any(
            site in sites for site in self._machine_sites
        )
        for keyword, patterns in self._type_patterns:
            if any(p.search(scan) for p in patterns):
                if keyword.machine_variant and is_machine:
                    return f"{keyword.prefix} Machine"
                return keyword.prefix
        return ""

    @staticmethod
    def _compose_summary(title: str, prefix: str) -> str:
        if not prefix or title.upper().startswith(prefix.upper()):
            return title
        base = _LEADING_TYPE_RE.sub("", title).strip() or title
        return f"{prefix} - {base}"

    def _location(self, raw: RawEvent, lines: list[str]) -> str:
        location = clean_description_text(", ".join(raw.sites)).replace("\n", " ")
        room = find_room_line(lines)
        if room:
            if not location:
                location = room
            elif location in room or any(site in room.upper() for site in self._machine_sites):
                location = room
            else:
                location = f"{location} - {room}"
        return normalize_location(location)


def transform_events(
    raw_events: Iterable[Any],
    customization: Optional[UserCustomization] = None,
    rules: Optional[TransformRules] = None,
    *,
    timezone: str = DEFAULT_CALENDAR_TIMEZONE,
    now: Optional[datetime.datetime] = None,
) -> list[ProcessedEvent]:
    """Convenience wrapper running a fresh transformer over ``raw_events``."""
    transformer = EventTransformer(rules, customization, timezone=timezone, now=now)
    return transformer.transform_all(raw_events)
