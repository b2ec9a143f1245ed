"""Short-lived cache for group search results."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, Optional

logger = logging.getLogger(__name__)


class SearchCache:
    """Search term -> results, each entry expiring ``ttl`` seconds after insertion.

    Size is bounded loosely: once over ``max_entries`` the expired entries are
    swept, and if that is not enough the whole cache is dropped.
    """

    def __init__(
        self,
        ttl: float = 60,
        max_entries: int = 500,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def normalize(term: str) -> str:
        return term.strip().lower()

    def get(self, term: str) -> Optional[Any]:
        key = self.normalize(term)
        entry = self._entries.get(key)
        if entry is None:
            return None
        expiry, results = entry
        if self._clock() >= expiry:
            del self._entries[key]
            return None
        return results

    def put(self, term: str, results: Any) -> None:
        self.prune()
        self._entries[self.normalize(term)] = (self._clock() + self.ttl, results)

    def prune(self) -> int:
        """Enforce the size bound; returns the number of dropped entries."""
        if len(self._entries) <= self.max_entries:
            return 0

        before = len(self._entries)
        now = self._clock()
        for key in [key for key, (expiry, _) in self._entries.items() if now >= expiry]:
            del self._entries[key]

        if len(self._entries) > self.max_entries:
            self._entries.clear()

        dropped = before - len(self._entries)
        logger.debug("Pruned %d search cache entries", dropped)
        return dropped
