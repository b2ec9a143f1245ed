"""Calendar feed routes (ICS document and JSON event list)."""

from __future__ import annotations

import logging
from typing import Any, Optional

from celcat_feed.core.exceptions import NotFoundError, ValidationError
from celcat_feed.domain.formatters import build_ics, build_json_events, safe_filename
from celcat_feed.domain.groups import parse_group_param
from celcat_feed.domain.models import UserCustomization

logger = logging.getLogger(__name__)

ICS_CONTENT_TYPE = "text/calendar"
SUPPORTED_FORMATS = ("ics", "json")

_TRUTHY = ("1", "true", "yes", "on")


def _parse_bool(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() in _TRUTHY  # type: ignore[union-attr]


def _cache_control(ttl: int) -> str:
    return f"public, max-age={ttl}, s-maxage={ttl}, stale-while-revalidate={ttl}"


def register_calendar_routes(app: Any, deps: Any) -> None:
    """Register the calendar feed endpoints.

    Args:
        app: aiohttp web application
        deps: AppDependencies container
    """
    from aiohttp import web

    settings = deps.settings

    async def _resolve_request(request: Any) -> tuple[list[Any], UserCustomization]:
        """Group values and customization for a request, from its token or query."""
        query = request.query
        show_holidays = _parse_bool(query.get("holidays"))
        token = (query.get("token") or "").strip()

        preferences = None
        if token:
            preferences = await deps.preferences.load(token)
            if preferences is None:
                logger.info("Unknown feed token %s...", token[:6])

        if preferences is not None and preferences.groups:
            return list(preferences.groups), preferences.to_customization(show_holidays)

        group_values = parse_group_param(query.get("group"), deps.aggregator.max_groups)
        if not group_values:
            if preferences is not None:
                raise ValidationError("Token has no saved groups and no group parameter provided")
            if token:
                raise ValidationError("Invalid token and no group parameter provided")
            raise ValidationError("Missing group parameter or token")

        if preferences is not None:
            return group_values, preferences.to_customization(show_holidays)
        return group_values, UserCustomization(show_holidays=show_holidays)

    async def calendar_feed(request: Any) -> Any:
        """Serve the merged timetable of the requested groups."""
        output_format = (request.query.get("format") or "ics").strip().lower()
        if output_format not in SUPPORTED_FORMATS:
            raise ValidationError(
                f"Unsupported format '{output_format}'",
                context={"supported": list(SUPPORTED_FORMATS)},
            )

        group_values, customization = await _resolve_request(request)
        if not deps.aggregator.resolve(group_values):
            raise ValidationError("Invalid group", context={"groups": [str(v) for v in group_values]})

        result = await deps.aggregator.aggregate(group_values, customization)
        deps.cache.maybe_prune()

        if result.raw_count == 0:
            if output_format == "json":
                return web.json_response({"events": []})
            raise NotFoundError("No courses found", context={"groups": result.labels})

        if output_format == "json":
            return web.json_response(build_json_events(result.events, customization.color_map))

        if result.course_count == 0 and not customization.show_holidays:
            raise NotFoundError("No courses found", context={"groups": result.labels})

        body = build_ics(
            result.events,
            result.labels,
            color_map=customization.color_map,
            timezone=settings.calendar_timezone,
            ttl_seconds=settings.calendar_cache_ttl,
        )

        deps.notifier.notify_event("download", "+".join(result.labels), result.course_count)

        response = web.Response(body=body, content_type=ICS_CONTENT_TYPE, charset="utf-8")
        response.headers["Content-Disposition"] = (
            f'attachment; filename="{safe_filename(result.labels)}"'
        )
        response.headers["Cache-Control"] = _cache_control(settings.calendar_cache_ttl)
        return response

    app.router.add_get("/calendar.ics", calendar_feed)
    app.router.add_get("/api/calendar.ics", calendar_feed)
