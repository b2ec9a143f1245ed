"""aiohttp server for the calendar feed."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
from typing import Any, Optional

from aiohttp import web

from celcat_feed.api.middleware import correlation_id_middleware, create_error_middleware
from celcat_feed.api.routes import (
    register_admin_routes,
    register_calendar_routes,
    register_search_routes,
)
from celcat_feed.core.config_manager import FeedSettings
from celcat_feed.core.dependencies import AppDependencies, DependencyContainer
from celcat_feed.core.http_client import close_all_clients

logger = logging.getLogger(__name__)

DEPS_KEY = web.AppKey("deps", AppDependencies)
MAX_PORT_ATTEMPTS = 10


def make_app(deps: AppDependencies) -> web.Application:
    """Create the web application with routes wired to ``deps``.

    The application owns ``deps``: its cleanup hook stops background tasks
    and closes the cache tier and shared HTTP clients.
    """
    include_detail = deps.settings.is_development
    app = web.Application(
        middlewares=[correlation_id_middleware, create_error_middleware(include_detail)]
    )
    app[DEPS_KEY] = deps

    register_calendar_routes(app, deps)
    register_admin_routes(app, deps)
    register_search_routes(app, deps)

    async def _cleanup(_app: web.Application) -> None:
        logger.info("Application shutdown requested")
        await deps.close()
        try:
            await close_all_clients()
        except Exception as e:
            logger.warning("Error cleaning up shared HTTP clients: %s", e)

    app.on_cleanup.append(_cleanup)
    return app


async def _start_site(runner: web.AppRunner, host: str, configured_port: int) -> int:
    """Bind the configured port, or the next free one within MAX_PORT_ATTEMPTS."""
    for port_offset in range(MAX_PORT_ATTEMPTS):
        port = configured_port + port_offset
        site = web.TCPSite(runner, host=host, port=port)
        try:
            await site.start()
        except OSError as e:
            if "address already in use" not in str(e).lower():
                logger.exception("Failed to start server on %s:%d", host, port)
                raise
            logger.debug("Port %d in use, trying next port", port)
            continue

        if port != configured_port:
            logger.warning(
                "Configured port %d was in use, using port %d instead", configured_port, port
            )
        return port

    raise RuntimeError(
        f"No available port found in range {configured_port}-"
        f"{configured_port + MAX_PORT_ATTEMPTS - 1}"
    )


async def serve(
    settings: FeedSettings,
    external_stop_event: Optional[asyncio.Event] = None,
    deps: Optional[AppDependencies] = None,
) -> None:
    """Run the server until signalled to stop.

    Args:
        settings: Runtime settings
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers are NOT registered (caller owns signal handling).
        deps: Prebuilt dependencies; built from ``settings`` when None
    """
    stop_event = external_stop_event or asyncio.Event()
    deps = deps or DependencyContainer.build_dependencies(settings)

    app = make_app(deps)
    runner = web.AppRunner(app)
    await runner.setup()

    try:
        port = await _start_site(runner, settings.server_bind, settings.server_port)
    except Exception:
        await runner.cleanup()
        raise

    logger.info(
        "Calendar feed server started on %s:%d (pid %d, remote cache %s)",
        settings.server_bind,
        port,
        os.getpid(),
        "enabled" if deps.cache.remote_enabled else "disabled",
    )

    if external_stop_event is None:
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)
    else:
        logger.debug("Using external stop event - skipping signal handler registration")

    await stop_event.wait()
    logger.info("Stop event received, shutting down")

    await runner.cleanup()
    logger.info("Server shutdown complete")


def start_server(settings: FeedSettings) -> None:
    """Configure logging and block running the server until SIGINT/SIGTERM."""
    from celcat_feed.core.feed_logging import configure_feed_logging

    configure_feed_logging(debug_mode=settings.debug_logging)
    logger.info("Logging configuration applied: debug_mode=%s", settings.debug_logging)

    try:
        asyncio.run(serve(settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Server terminated unexpectedly")
        raise


def get_dependencies(app: Any) -> AppDependencies:
    return app[DEPS_KEY]
