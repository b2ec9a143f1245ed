"""Bounded in-process cache tier."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class MemoryEntry:
    """One cached group payload.

    ``stored_at`` is when the payload was fetched from CELCAT (drives
    fresh/stale classification); ``cached_at`` is when this process put it in
    memory (drives memory residency and pruning order).
    """

    payload: list[dict[str, Any]]
    stored_at: float
    cached_at: float


class MemoryCache:
    """Dict-backed map of group key to ``MemoryEntry``.

    Not thread-safe; all access happens on the event loop thread.
    """

    def __init__(self) -> None:
        self._entries: dict[str, MemoryEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[MemoryEntry]:
        return self._entries.get(key)

    def put(self, key: str, entry: MemoryEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        return count

    def evict_oldest(self, fraction: float = 0.25) -> list[str]:
        """Drop the oldest ``fraction`` of entries by insertion time.

        Returns:
            Keys that were evicted
        """
        if not self._entries:
            return []
        count = max(1, int(len(self._entries) * fraction))
        oldest = sorted(self._entries.items(), key=lambda item: item[1].cached_at)[:count]
        evicted = [key for key, _ in oldest]
        for key in evicted:
            del self._entries[key]
        return evicted
