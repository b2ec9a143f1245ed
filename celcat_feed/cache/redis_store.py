"""
Redis-backed JSON store used as the shared cache tier.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

import redis.asyncio as redis_asyncio
from redis.exceptions import RedisError

from ..core.exceptions import CacheError

logger = logging.getLogger(__name__)


class RedisStore:
    """
    Thin JSON wrapper over an async Redis client.

    Every failure is re-raised as ``CacheError`` so the cache tier can feed
    its circuit breaker without knowing about Redis exception types.
    """

    def __init__(self, client: Any, key_prefix: str = "group") -> None:
        self._client = client
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, socket_timeout: float = 3.0, key_prefix: str = "group") -> "RedisStore":
        """
        Build a store from a redis:// or rediss:// URL.

        A bare ``host:port`` is accepted and treated as ``redis://host:port``.
        """
        if "://" not in url:
            url = f"redis://{url}"
        client = redis_asyncio.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            retry_on_timeout=False,
        )
        return cls(client, key_prefix=key_prefix)

    def _get_cache_key(self, identifier: str) -> str:
        return f"{self.key_prefix}:{identifier}"

    async def get_json(self, identifier: str) -> Optional[Any]:
        """
        Read and decode a JSON value.

        Returns:
            Decoded value, or None when the key is absent or holds invalid JSON
        """
        key = self._get_cache_key(identifier)
        try:
            raw = await self._client.get(key)
        except (RedisError, OSError, TimeoutError) as e:
            raise CacheError(f"Redis GET {key} failed: {e}", context={"key": key}) from e

        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Discarding undecodable cache value at %s", key)
            return None

    async def set_json(self, identifier: str, value: Any, ttl: int) -> None:
        """Encode ``value`` as JSON and store it with an expiry in seconds."""
        key = self._get_cache_key(identifier)
        try:
            await self._client.set(key, json.dumps(value, ensure_ascii=False), ex=ttl)
        except (RedisError, OSError, TimeoutError) as e:
            raise CacheError(f"Redis SET {key} failed: {e}", context={"key": key}) from e

    async def close(self) -> None:
        # redis-py >= 5.0.1 renamed close() to aclose()
        closer = getattr(self._client, "aclose", None) or self._client.close
        try:
            await closer()
        except (RedisError, OSError) as e:
            logger.warning("Error closing Redis client: %s", e)
