"""External collaborators: notifications, preference stores and group search."""

from .group_search import GroupSearchService, SearchOutcome
from .notifier import NotificationPayload, WebhookNotifier
from .preferences import InMemoryPreferencesStore, JsonPreferencesStore, PreferencesStore

__all__ = [
    "GroupSearchService",
    "InMemoryPreferencesStore",
    "JsonPreferencesStore",
    "NotificationPayload",
    "PreferencesStore",
    "SearchOutcome",
    "WebhookNotifier",
]
