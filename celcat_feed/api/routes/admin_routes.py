"""Admin routes: cache warming, cache clearing, usage stats and health."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Optional

from celcat_feed.core.exceptions import AuthenticationError
from celcat_feed.core.timezone_utils import now_utc, serialize_iso
from celcat_feed.domain.models import GroupRef

logger = logging.getLogger(__name__)

POPULAR_GROUPS_LIMIT = 10


def _check_bearer_token(request: Any, required_token: Optional[str]) -> bool:
    """Check if request has valid bearer token.

    Args:
        request: aiohttp request object
        required_token: Expected bearer token, or None to skip auth

    Returns:
        True if auth is valid or not required, False otherwise
    """
    if required_token is None:
        return True

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return False

    return auth_header[7:] == required_token


def register_admin_routes(app: Any, deps: Any) -> None:
    """Register admin and health endpoints.

    Args:
        app: aiohttp web application
        deps: AppDependencies container
    """
    from aiohttp import web

    settings = deps.settings

    def _require_admin(request: Any) -> None:
        if not _check_bearer_token(request, settings.cron_secret):
            raise AuthenticationError()

    async def warm_cache(request: Any) -> Any:
        """Force-refresh the most requested groups, one at a time."""
        _require_admin(request)

        started = time.monotonic()
        keys = deps.stats.groups_needing_warmup(settings.warmup_min_requests)
        keys = keys[: settings.warmup_max_groups]
        logger.info("Warming cache for %d group(s)", len(keys))

        warmed: list[str] = []
        failed: list[dict[str, str]] = []
        for index, key in enumerate(keys):
            if index:
                await asyncio.sleep(settings.warmup_delay_seconds)
            ref = GroupRef(id=key, label=deps.stats.label(key))
            result = await deps.coordinator.refresh_group(ref)
            if result.ok:
                warmed.append(key)
                deps.notifier.notify_event("refresh", ref.label, len(result.events))
            else:
                failed.append({"name": key, "reason": result.error or "unknown error"})

        duration = round(time.monotonic() - started, 3)
        logger.info(
            "Cache warmup finished in %.2fs: %d warmed, %d failed", duration, len(warmed), len(failed)
        )
        return web.json_response(
            {
                "success": not failed,
                "duration": duration,
                "warmed": warmed,
                "failed": failed,
                "timestamp": serialize_iso(now_utc()),
            }
        )

    async def clear_cache(request: Any) -> Any:
        _require_admin(request)
        cleared = deps.cache.clear_memory()
        return web.json_response({"success": True, "cleared": cleared})

    async def admin_stats(request: Any) -> Any:
        _require_admin(request)
        return web.json_response(
            {
                "usage": deps.stats.usage_statistics(),
                "popular": deps.stats.popular_groups(POPULAR_GROUPS_LIMIT),
                "cache": deps.cache.snapshot(),
                "inFlight": deps.coordinator.in_flight_count,
                "timestamp": serialize_iso(now_utc()),
            }
        )

    async def health_check(_request: Any) -> Any:
        """Health check endpoint for monitoring."""
        status = deps.health_tracker.get_health_status(
            serialize_iso(now_utc()),
            cache=deps.cache.snapshot(),
            background_tasks=deps.supervisor.get_health_stats(),
        )
        body = {
            "status": status.status,
            "server_time_iso": status.server_time_iso,
            "server_status": {"uptime_s": status.uptime_seconds, "pid": status.pid},
            "upstream": status.upstream,
            "cache": status.cache,
            "background_tasks": status.background_tasks,
            "system": status.system,
        }
        return web.json_response(body, status=200 if status.status != "degraded" else 503)

    app.router.add_get("/api/warm-cache", warm_cache)
    app.router.add_post("/api/warm-cache", warm_cache)
    app.router.add_post("/api/clear-cache", clear_cache)
    app.router.add_get("/api/admin/stats", admin_stats)
    app.router.add_get("/api/health", health_check)
