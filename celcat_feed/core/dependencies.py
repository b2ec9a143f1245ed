"""Dependency container for the feed server.

All process-wide state (memory cache, in-flight registry, request statistics,
schedule signatures) lives on objects built once here and handed to the route
registration functions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .async_utils import BackgroundTaskSupervisor
from .config_manager import FeedSettings
from .health_tracker import HealthTracker

logger = logging.getLogger(__name__)


@dataclass
class AppDependencies:
    """Container for all application dependencies."""

    # Configuration
    settings: FeedSettings

    # Infrastructure
    supervisor: BackgroundTaskSupervisor
    health_tracker: HealthTracker
    cache: Any  # GroupCache
    stats: Any  # RequestStatsTracker

    # Business logic components
    coordinator: Any  # FetchCoordinator
    aggregator: Any  # CalendarAggregator
    change_detector: Any  # ScheduleChangeDetector

    # External collaborators
    notifier: Any  # WebhookNotifier
    preferences: Any  # PreferencesStore
    directory: Any  # CelcatClient (search_groups, check_status)
    group_search: Any  # GroupSearchService

    async def close(self) -> None:
        """Stop background work and release network resources."""
        await self.supervisor.shutdown()
        notifier_supervisor = getattr(self.notifier, "supervisor", None)
        if notifier_supervisor is not None:
            await notifier_supervisor.shutdown()
        try:
            await self.cache.close()
        except Exception as e:
            logger.warning("Error closing cache tier: %s", e)


class DependencyContainer:
    """Factory for building application dependencies."""

    @staticmethod
    def build_dependencies(
        settings: FeedSettings,
        *,
        upstream_client: Any = None,
        redis_store: Any = None,
        preferences: Any = None,
        notifier: Any = None,
        directory_client: Any = None,
    ) -> AppDependencies:
        """Build all application dependencies.

        Args:
            settings: Typed runtime settings
            upstream_client: Object with ``fetch_group``; defaults to CelcatClient
            redis_store: RedisStore (or test double); built from settings when None
            preferences: PreferencesStore; defaults to the JSON file store
            notifier: Notification sink; defaults to WebhookNotifier
            directory_client: Object with ``search_groups`` and ``check_status``;
                defaults to CelcatClient

        Returns:
            AppDependencies container with all dependencies initialized
        """
        from celcat_feed.cache import (
            CircuitBreaker,
            GroupCache,
            RedisStore,
            RequestStatsTracker,
            SearchCache,
        )
        from celcat_feed.celcat_fetcher import CelcatClient
        from celcat_feed.domain.aggregator import CalendarAggregator
        from celcat_feed.domain.change_detection import ScheduleChangeDetector
        from celcat_feed.domain.fetch_coordinator import FetchCoordinator
        from celcat_feed.services import GroupSearchService, JsonPreferencesStore, WebhookNotifier

        supervisor = BackgroundTaskSupervisor(name="fetch")
        health_tracker = HealthTracker()

        if redis_store is None and settings.remote_cache_enabled:
            redis_store = RedisStore.from_url(
                settings.redis_url, socket_timeout=settings.redis_socket_timeout
            )

        cache = GroupCache(
            redis_store,
            CircuitBreaker(
                failure_threshold=settings.redis_failure_threshold,
                reset_timeout=settings.redis_reset_timeout,
            ),
            fresh_ttl=settings.cache_ttl_fresh,
            stale_ttl=settings.cache_ttl_stale,
            memory_ttl=settings.cache_ttl_memory,
            prune_threshold=settings.memory_prune_threshold,
            prune_probability=settings.cache_prune_probability,
        )
        stats = RequestStatsTracker(window=settings.stats_window)
        change_detector = ScheduleChangeDetector()

        if notifier is None:
            notifier = WebhookNotifier(
                webhook_url=settings.notification_webhook_url,
                enabled=settings.notifications_enabled,
                supervisor=BackgroundTaskSupervisor(name="notifications"),
            )

        if preferences is None:
            preferences = JsonPreferencesStore(settings.preferences_file)

        celcat_client = CelcatClient(
            settings.celcat_url,
            timeout=settings.celcat_timeout,
            search_url=settings.celcat_search_url,
            status_url=settings.celcat_status_url,
        )
        if upstream_client is None:
            upstream_client = celcat_client
        if directory_client is None:
            directory_client = celcat_client

        group_search = GroupSearchService(
            directory_client,
            SearchCache(
                ttl=settings.search_cache_ttl, max_entries=settings.search_cache_max_entries
            ),
            min_length=settings.search_min_length,
            max_results=settings.search_max_results,
        )

        coordinator = FetchCoordinator(
            upstream_client,
            cache,
            stats,
            supervisor=supervisor,
            change_detector=change_detector,
            notifier=notifier,
            health_tracker=health_tracker,
        )
        aggregator = CalendarAggregator(
            coordinator, settings.rules, timezone=settings.calendar_timezone
        )

        logger.debug(
            "Dependencies built (remote cache %s, notifications %s)",
            "enabled" if cache.remote_enabled else "disabled",
            "enabled" if settings.notifications_enabled else "disabled",
        )

        return AppDependencies(
            settings=settings,
            supervisor=supervisor,
            health_tracker=health_tracker,
            cache=cache,
            stats=stats,
            coordinator=coordinator,
            aggregator=aggregator,
            change_detector=change_detector,
            notifier=notifier,
            preferences=preferences,
            directory=directory_client,
            group_search=group_search,
        )
