"""Health tracking for the feed server."""

from __future__ import annotations

import os
import platform
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Optional

# No successful upstream fetch for this long while fetches are failing -> degraded
DEGRADED_AFTER_SECONDS = 900


@dataclass
class HealthStatus:
    """Health status information for the server."""

    status: str  # "ok", "degraded" or "idle"
    server_time_iso: str
    uptime_seconds: int
    pid: int
    upstream: dict[str, Any]
    cache: dict[str, Any] = field(default_factory=dict)
    background_tasks: dict[str, Any] = field(default_factory=dict)
    system: dict[str, str] = field(default_factory=dict)


class HealthTracker:
    """Counts upstream fetch outcomes for the health endpoint."""

    def __init__(self) -> None:
        self._start_time: float = time.time()
        self._fetch_attempts = 0
        self._fetch_successes = 0
        self._fetch_failures = 0
        self._last_fetch_attempt: Optional[float] = None
        self._last_fetch_success: Optional[float] = None
        self._last_fetch_failure: Optional[float] = None
        self._last_error: Optional[str] = None

    def record_fetch_attempt(self) -> None:
        self._fetch_attempts += 1
        self._last_fetch_attempt = time.time()

    def record_fetch_success(self) -> None:
        self._fetch_successes += 1
        self._last_fetch_success = time.time()

    def record_fetch_failure(self, error: str) -> None:
        self._fetch_failures += 1
        self._last_fetch_failure = time.time()
        self._last_error = error

    def get_uptime_seconds(self) -> int:
        """Get server uptime in seconds."""
        return int(time.time() - self._start_time)

    def get_last_success_age_seconds(self) -> Optional[int]:
        """Seconds since the last successful upstream fetch, or None if never."""
        if self._last_fetch_success is None:
            return None
        return int(time.time() - self._last_fetch_success)

    def determine_overall_status(self) -> str:
        """Determine overall health status.

        Returns:
            "idle" before any fetch, "degraded" when the latest fetches fail
            and nothing succeeded recently, "ok" otherwise
        """
        if self._fetch_attempts == 0:
            return "idle"

        if self._last_fetch_success is None:
            return "degraded"

        failing = (
            self._last_fetch_failure is not None
            and self._last_fetch_failure > self._last_fetch_success
        )
        age = self.get_last_success_age_seconds()
        if failing and age is not None and age > DEGRADED_AFTER_SECONDS:
            return "degraded"

        return "ok"

    def get_upstream_status(self) -> dict[str, Any]:
        return {
            "attempts": self._fetch_attempts,
            "successes": self._fetch_successes,
            "failures": self._fetch_failures,
            "last_success_age_seconds": self.get_last_success_age_seconds(),
            "last_error": self._last_error,
        }

    def get_health_status(
        self,
        current_time_iso: str,
        cache: Optional[dict[str, Any]] = None,
        background_tasks: Optional[dict[str, Any]] = None,
    ) -> HealthStatus:
        """Get comprehensive health status.

        Args:
            current_time_iso: Current time in ISO format
            cache: Cache tier snapshot to embed
            background_tasks: Background supervisor snapshot to embed
        """
        return HealthStatus(
            status=self.determine_overall_status(),
            server_time_iso=current_time_iso,
            uptime_seconds=self.get_uptime_seconds(),
            pid=os.getpid(),
            upstream=self.get_upstream_status(),
            cache=cache or {},
            background_tasks=background_tasks or {},
            system={
                "platform": platform.platform(),
                "python_version": sys.version.split()[0],
            },
        )
