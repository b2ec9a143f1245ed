"""Exception hierarchy for the calendar feed service.

Each exception carries the HTTP status it maps to so the error middleware can
turn it into a response without a lookup table. Upstream and cache failures
on the feed path are contained by the fetch coordinator and cache tier; group
search lets upstream errors reach the middleware as 502 responses.
"""

from __future__ import annotations

from typing import Any, Optional


class CelcatFeedError(Exception):
    """Base exception for all calendar feed errors."""

    status_code = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.context: dict[str, Any] = dict(context or {})

    def to_dict(self, include_detail: bool = False) -> dict[str, Any]:
        """Render the error as a JSON-serialisable response body.

        Args:
            include_detail: Include the error context (development mode only)

        Returns:
            Response body dictionary
        """
        body: dict[str, Any] = {"error": self.message, "type": type(self).__name__}
        if include_detail and self.context:
            body["context"] = self.context
        return body


class ValidationError(CelcatFeedError):
    """Request is missing required input or carries invalid values."""

    status_code = 400


class AuthenticationError(CelcatFeedError):
    """Bearer token is missing or does not match."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized", **kwargs: Any):
        super().__init__(message, **kwargs)


class NotFoundError(CelcatFeedError):
    """No courses could be found for the request."""

    status_code = 404


class UpstreamError(CelcatFeedError):
    """Base for failures talking to the CELCAT API."""

    status_code = 502


class UpstreamHTTPError(UpstreamError):
    """CELCAT answered with a non-success HTTP status."""

    def __init__(self, status: int, group_key: str = ""):
        super().__init__(
            f"CELCAT API returned HTTP {status}",
            context={"status": status, "group_key": group_key},
        )
        self.status = status


class UpstreamTransportError(UpstreamError):
    """The request never produced an HTTP response (timeout, DNS, reset)."""

    def __init__(self, cause: BaseException, group_key: str = ""):
        super().__init__(
            f"CELCAT API transport failure: {type(cause).__name__}: {cause}",
            context={"group_key": group_key},
        )
        self.cause = cause


class CacheError(CelcatFeedError):
    """Remote cache read or write failed."""

    status_code = 500


class InternalError(CelcatFeedError):
    """Unexpected failure inside the service."""

    status_code = 500
