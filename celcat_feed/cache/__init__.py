"""Cache tier: group payload cache, circuit breaker, request statistics, search cache."""

from .circuit_breaker import CircuitBreaker
from .group_cache import CacheLookup, GroupCache
from .memory_cache import MemoryCache, MemoryEntry
from .redis_store import RedisStore
from .request_stats import RequestStats, RequestStatsTracker
from .search_cache import SearchCache

__all__ = [
    "CacheLookup",
    "CircuitBreaker",
    "GroupCache",
    "MemoryCache",
    "MemoryEntry",
    "RedisStore",
    "RequestStats",
    "RequestStatsTracker",
    "SearchCache",
]
