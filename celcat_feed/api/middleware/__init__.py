"""aiohttp middlewares for the feed server."""

from .correlation_id import correlation_id_middleware, get_request_id
from .error_handler import create_error_middleware

__all__ = [
    "correlation_id_middleware",
    "create_error_middleware",
    "get_request_id",
]
