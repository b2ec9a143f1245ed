"""Windowed per-group request counters used for cache warming and admin stats."""

from __future__ import annotations

import datetime
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass
class RequestStats:
    count: int
    first_request: float
    last_request: float


def _iso(ts: float) -> str:
    return datetime.datetime.fromtimestamp(ts, tz=datetime.timezone.utc).isoformat().replace("+00:00", "Z")


class RequestStatsTracker:
    """Counts feed requests per group over a rolling window.

    A group's counter restarts at 1 when a request arrives more than
    ``window`` seconds after the first request of the current window.
    """

    def __init__(self, window: float = 86400, clock: Callable[[], float] = time.time) -> None:
        self.window = window
        self._clock = clock
        self._stats: dict[str, RequestStats] = {}
        self._labels: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._stats)

    def track(self, group_key: str, label: str = "") -> RequestStats:
        now = self._clock()
        stats = self._stats.get(group_key)
        if stats is None or now - stats.first_request > self.window:
            stats = RequestStats(count=0, first_request=now, last_request=now)
            self._stats[group_key] = stats
        stats.count += 1
        stats.last_request = now
        if label:
            self._labels[group_key] = label
        return stats

    def get(self, group_key: str) -> RequestStats | None:
        return self._stats.get(group_key)

    def label(self, group_key: str) -> str:
        return self._labels.get(group_key, group_key)

    def _ranked(self) -> list[tuple[str, RequestStats]]:
        return sorted(self._stats.items(), key=lambda item: (-item[1].count, -item[1].last_request))

    def popular_groups(self, limit: int = 10) -> list[dict[str, Any]]:
        """Most requested groups first."""
        return [
            {
                "name": key,
                "label": self._labels.get(key, key),
                "count": stats.count,
                "firstRequest": _iso(stats.first_request),
                "lastRequest": _iso(stats.last_request),
            }
            for key, stats in self._ranked()[: max(0, limit)]
        ]

    def groups_needing_warmup(self, min_requests: int = 3) -> list[str]:
        """Group keys requested at least ``min_requests`` times in the current window."""
        now = self._clock()
        return [
            key
            for key, stats in self._ranked()
            if stats.count >= min_requests and now - stats.first_request <= self.window
        ]

    def usage_statistics(self) -> dict[str, dict[str, Any]]:
        return {
            key: {
                "label": self._labels.get(key, key),
                "requestCount": stats.count,
                "firstRequest": _iso(stats.first_request),
                "lastRequest": _iso(stats.last_request),
            }
            for key, stats in self._stats.items()
        }

    def clear(self) -> None:
        self._stats.clear()
        self._labels.clear()
