"""Group lookup by name, backed by the CELCAT resource search."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

from ..cache.search_cache import SearchCache
from ..domain.models import GroupSearchItem

logger = logging.getLogger(__name__)


class GroupDirectory(Protocol):
    async def search_groups(self, term: str, limit: int = 15) -> list[GroupSearchItem]: ...


@dataclass
class SearchOutcome:
    results: list[GroupSearchItem] = field(default_factory=list)
    cached: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"results": [item.model_dump() for item in self.results], "cached": self.cached}


class GroupSearchService:
    """Answers group searches from a short TTL cache, falling back to CELCAT.

    Queries shorter than ``min_length`` return no results without an upstream
    call. Upstream errors propagate to the caller and are not cached.
    """

    def __init__(
        self,
        directory: GroupDirectory,
        cache: SearchCache,
        *,
        min_length: int = 3,
        max_results: int = 15,
    ) -> None:
        self.directory = directory
        self.cache = cache
        self.min_length = min_length
        self.max_results = max_results

    async def search(self, query: str) -> SearchOutcome:
        term = (query or "").strip()
        if len(term) < self.min_length:
            return SearchOutcome()

        cached = self.cache.get(term)
        if cached is not None:
            return SearchOutcome(results=cached, cached=True)

        results = await self.directory.search_groups(term, self.max_results)
        self.cache.put(term, results)
        logger.debug("Group search %r returned %d result(s)", term, len(results))
        return SearchOutcome(results=results)
