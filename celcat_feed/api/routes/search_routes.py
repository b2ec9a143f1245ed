"""Group search and upstream status routes."""

from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)

STATUS_MAX_AGE = 60


def register_search_routes(app: Any, deps: Any) -> None:
    """Register the group search and CELCAT status endpoints.

    Args:
        app: aiohttp web application
        deps: AppDependencies container
    """
    from aiohttp import web

    settings = deps.settings

    async def search_groups(request: Any) -> Any:
        """Find groups whose name matches ``q``; upstream failures surface as 502."""
        outcome = await deps.group_search.search(request.query.get("q", ""))
        return web.json_response(outcome.to_dict())

    async def upstream_status(_request: Any) -> Any:
        online = await deps.directory.check_status(timeout=settings.status_timeout)
        response = web.json_response({"online": online})
        response.headers["Cache-Control"] = f"public, max-age={STATUS_MAX_AGE}"
        return response

    app.router.add_get("/api/search", search_groups)
    app.router.add_get("/api/status", upstream_status)
