"""Serialize processed events as an iCalendar document or a JSON list."""

from __future__ import annotations

import datetime
import re
from collections.abc import Mapping, Sequence
from typing import Any, Optional

from icalendar import Calendar, Event, vDuration

from ..core.timezone_utils import now_utc, serialize_iso
from .models import ProcessedEvent

PRODID = "-//celcat-feed//EDT//FR"

_UNSAFE_FILENAME_RE = re.compile(r"[^a-z0-9]", re.IGNORECASE)


def calendar_name(labels: Sequence[str]) -> str:
    return f"EDT - {'+'.join(labels)}"


def safe_filename(labels: Sequence[str]) -> str:
    """``edt-<labels>.ics`` with every character outside [a-z0-9] replaced by '-'."""
    return f"edt-{_UNSAFE_FILENAME_RE.sub('-', '_'.join(labels)).lower()}.ics"


def _all_day_bounds(event: ProcessedEvent) -> tuple[datetime.date, datetime.date]:
    start = event.start.date()
    end = event.end.date()
    if end <= start:
        end = start + datetime.timedelta(days=1)
    return start, end


def _utc(dt: datetime.datetime) -> datetime.datetime:
    return dt.astimezone(datetime.timezone.utc)


def build_ics(
    events: Sequence[ProcessedEvent],
    labels: Sequence[str],
    *,
    color_map: Optional[Mapping[str, str]] = None,
    timezone: str = "Europe/Paris",
    ttl_seconds: int = 3600,
    now: Optional[datetime.datetime] = None,
) -> bytes:
    """Render one VCALENDAR with a VEVENT per processed event.

    Each event carries its type in CATEGORIES and, when the colour map has an
    entry for that type, X-COLOR / X-APPLE-CALENDAR-COLOR.
    """
    color_map = color_map or {}
    stamp = _utc(now or now_utc())
    ttl = vDuration(datetime.timedelta(seconds=ttl_seconds))
    name = calendar_name(labels)

    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("method", "PUBLISH")
    cal.add("name", name)
    cal.add("x-wr-calname", name)
    cal.add("x-wr-timezone", timezone)
    cal.add("refresh-interval", ttl, parameters={"VALUE": "DURATION"})
    cal.add("x-published-ttl", ttl)

    for event in events:
        vevent = Event()
        vevent.add("uid", event.id)
        vevent.add("dtstamp", stamp)
        if event.all_day:
            start, end = _all_day_bounds(event)
            vevent.add("dtstart", start)
            vevent.add("dtend", end)
        else:
            vevent.add("dtstart", _utc(event.start))
            vevent.add("dtend", _utc(event.end))
        vevent.add("summary", event.summary)
        if event.description:
            vevent.add("description", event.description)
        if event.location:
            vevent.add("location", event.location)
        vevent.add("categories", [event.event_type])

        color = color_map.get(event.event_type)
        if color:
            vevent.add("x-color", color)
            vevent.add("x-apple-calendar-color", color)

        cal.add_component(vevent)

    return cal.to_ical()


def event_to_json(event: ProcessedEvent, color_map: Optional[Mapping[str, str]] = None) -> dict[str, Any]:
    color_map = color_map or {}
    return {
        "id": event.id,
        "start": serialize_iso(event.start),
        "end": serialize_iso(event.end),
        "summary": event.summary,
        "description": event.description or "",
        "location": event.location or "",
        "eventType": event.event_type,
        "color": color_map.get(event.event_type, ""),
    }


def build_json_events(
    events: Sequence[ProcessedEvent], color_map: Optional[Mapping[str, str]] = None
) -> dict[str, list[dict[str, Any]]]:
    return {"events": [event_to_json(event, color_map) for event in events]}
