"""Two-tier cache for raw CELCAT payloads.

Lookups go memory first, then Redis. Entries carry the time they were
fetched from CELCAT so both tiers classify them the same way:

- fresh: age < fresh_ttl, served as-is
- stale: fresh_ttl <= age < stale_ttl, served while the caller revalidates
- expired: age >= stale_ttl, treated as a miss

When Redis is configured the memory copy additionally expires ``memory_ttl``
seconds after it was inserted, so a process picks up refreshes written to
Redis by its peers. Without Redis the memory copy is the only copy and lives
until it expires by age.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

from ..core.exceptions import CacheError
from .circuit_breaker import CircuitBreaker
from .memory_cache import MemoryCache, MemoryEntry
from .redis_store import RedisStore

logger = logging.getLogger(__name__)

PRUNE_FRACTION = 0.25


@dataclass(frozen=True)
class CacheLookup:
    """Result of a cache hit."""

    payload: list[dict[str, Any]]
    stale: bool
    age_seconds: float
    source: str  # "memory" or "redis"


class GroupCache:
    """Memory + Redis cache keyed by CELCAT group id."""

    def __init__(
        self,
        remote: Optional[RedisStore] = None,
        breaker: Optional[CircuitBreaker] = None,
        *,
        fresh_ttl: float = 7200,
        stale_ttl: float = 86400,
        memory_ttl: float = 300,
        prune_threshold: int = 120,
        prune_probability: float = 0.1,
        clock: Callable[[], float] = time.time,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self.remote = remote
        self.breaker = breaker or CircuitBreaker()
        self.fresh_ttl = fresh_ttl
        self.stale_ttl = max(stale_ttl, fresh_ttl)
        self.memory_ttl = memory_ttl
        self.prune_threshold = prune_threshold
        self.prune_probability = prune_probability
        self._clock = clock
        self._rng = rng
        self.memory = MemoryCache()
        self._counters = {"memory_hits": 0, "redis_hits": 0, "misses": 0, "redis_errors": 0}

    @property
    def remote_enabled(self) -> bool:
        return self.remote is not None

    def _remote_available(self) -> bool:
        return self.remote is not None and self.breaker.allow()

    def _memory_expired(self, entry: MemoryEntry, now: float) -> bool:
        if self.remote is None:
            return False
        return now - entry.cached_at >= self.memory_ttl

    def _classify(self, payload: list[dict[str, Any]], stored_at: float, now: float, source: str) -> Optional[CacheLookup]:
        age = max(0.0, now - stored_at)
        if age >= self.stale_ttl:
            return None
        return CacheLookup(payload=payload, stale=age >= self.fresh_ttl, age_seconds=age, source=source)

    async def get(self, key: str) -> Optional[CacheLookup]:
        """Look up a group payload.

        Returns:
            CacheLookup with the stale flag, or None on a miss
        """
        now = self._clock()

        entry = self.memory.get(key)
        if entry is not None:
            if not self._memory_expired(entry, now):
                lookup = self._classify(entry.payload, entry.stored_at, now, "memory")
                if lookup is not None:
                    self._counters["memory_hits"] += 1
                    return lookup
            self.memory.delete(key)

        if self._remote_available():
            lookup = await self._get_remote(key, now)
            if lookup is not None:
                self._counters["redis_hits"] += 1
                return lookup

        self._counters["misses"] += 1
        return None

    async def _get_remote(self, key: str, now: float) -> Optional[CacheLookup]:
        assert self.remote is not None
        try:
            data = await self.remote.get_json(key)
        except CacheError as e:
            self._record_remote_failure(e)
            return None
        self.breaker.record_success()

        if not isinstance(data, dict):
            return None
        payload = data.get("payload")
        stored_at = data.get("storedAt")
        if not isinstance(payload, list) or not isinstance(stored_at, (int, float)):
            logger.debug("Ignoring malformed remote cache entry for %s", key)
            return None

        lookup = self._classify(payload, float(stored_at), now, "redis")
        if lookup is not None:
            # Backfill memory so the next lookup stays in-process
            self.memory.put(key, MemoryEntry(payload=payload, stored_at=float(stored_at), cached_at=now))
        return lookup

    async def set(self, key: str, payload: list[dict[str, Any]]) -> None:
        """Store a freshly fetched payload in both tiers.

        The memory write always happens; the Redis write is skipped while the
        breaker is open and its failure is logged, never raised.
        """
        now = self._clock()
        self.memory.put(key, MemoryEntry(payload=payload, stored_at=now, cached_at=now))

        if not self._remote_available():
            return

        assert self.remote is not None
        try:
            await self.remote.set_json(key, {"payload": payload, "storedAt": now}, ttl=int(self.stale_ttl))
        except CacheError as e:
            self._record_remote_failure(e)
            return
        self.breaker.record_success()

    def _record_remote_failure(self, error: CacheError) -> None:
        self._counters["redis_errors"] += 1
        logger.warning("Remote cache operation failed: %s", error.message)
        self.breaker.record_failure(error)

    def prune(self) -> int:
        """Evict the oldest quarter of memory entries once over the size threshold.

        Returns:
            Number of evicted entries
        """
        if len(self.memory) <= self.prune_threshold:
            return 0
        evicted = self.memory.evict_oldest(PRUNE_FRACTION)
        logger.info("Pruned %d memory cache entries (%d remain)", len(evicted), len(self.memory))
        return len(evicted)

    def maybe_prune(self) -> int:
        """Call ``prune`` on a random fraction of invocations."""
        if self._rng() < self.prune_probability:
            return self.prune()
        return 0

    def clear_memory(self) -> int:
        count = self.memory.clear()
        logger.info("Cleared %d memory cache entries", count)
        return count

    def snapshot(self) -> dict[str, Any]:
        return {
            "memory_entries": len(self.memory),
            "prune_threshold": self.prune_threshold,
            "remote_enabled": self.remote_enabled,
            "breaker": self.breaker.snapshot(),
            **self._counters,
        }

    async def close(self) -> None:
        if self.remote is not None:
            await self.remote.close()
