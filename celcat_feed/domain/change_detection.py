"""Detect timetable changes between successive upstream fetches of a group."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

EMPTY_SIGNATURE = "empty"


@dataclass(frozen=True)
class ChangeCheck:
    group_key: str
    changed: bool
    signature: str
    previous_signature: Optional[str]
    event_count: int


def compute_signature(events: Sequence[Any]) -> str:
    """Order-independent digest over ``(id, start, description)`` of each record.

    An empty list maps to the fixed ``EMPTY_SIGNATURE``.
    """
    if not events:
        return EMPTY_SIGNATURE
    parts = []
    for event in events:
        if not isinstance(event, dict):
            continue
        parts.append(f"{event.get('id')}-{event.get('start')}-{event.get('description')}")
    parts.sort()
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()[:16]


class ScheduleChangeDetector:
    """Keeps the last signature per group key.

    The first observation of a group only records its signature.
    """

    def __init__(self) -> None:
        self._signatures: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._signatures)

    def check(self, group_key: str, events: Sequence[Any]) -> ChangeCheck:
        signature = compute_signature(events)
        previous = self._signatures.get(group_key)
        self._signatures[group_key] = signature
        changed = previous is not None and previous != signature
        if changed:
            logger.info(
                "Schedule changed for %s (%s -> %s, %d events)",
                group_key,
                previous,
                signature,
                len(events),
            )
        return ChangeCheck(
            group_key=group_key,
            changed=changed,
            signature=signature,
            previous_signature=previous,
            event_count=len(events),
        )

    def clear(self) -> None:
        self._signatures.clear()
