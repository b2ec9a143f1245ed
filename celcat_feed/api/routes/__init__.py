"""HTTP route registration for the feed server."""

from .admin_routes import register_admin_routes
from .calendar_routes import register_calendar_routes
from .search_routes import register_search_routes

__all__ = [
    "register_admin_routes",
    "register_calendar_routes",
    "register_search_routes",
]
