"""Error middleware mapping service exceptions to JSON responses."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from aiohttp import web

from celcat_feed.core.exceptions import CelcatFeedError, InternalError

logger = logging.getLogger(__name__)


def create_error_middleware(include_detail: bool = False) -> Any:
    """Build the error middleware.

    Args:
        include_detail: Expose error context and unexpected exception text
            (development mode). Production responses carry a generic message.

    Returns:
        aiohttp middleware
    """

    @web.middleware
    async def error_middleware(
        request: web.Request, handler: Callable[[web.Request], Any]
    ) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except CelcatFeedError as exc:
            logger.warning(
                "Request %s %s failed: %s (%d)",
                request.method,
                request.path,
                exc.message,
                exc.status_code,
            )
            return web.json_response(exc.to_dict(include_detail), status=exc.status_code)
        except Exception as exc:
            logger.exception("Unexpected error handling %s %s", request.method, request.path)
            error = InternalError(str(exc) if include_detail else "Internal server error")
            return web.json_response(error.to_dict(include_detail), status=error.status_code)

    return error_middleware
