"""Failure-count circuit breaker guarding the remote cache tier."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import Any, Optional

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """Consecutive-failure breaker with a fixed cool-down.

    The breaker opens once ``failure_threshold`` consecutive failures are
    recorded. After ``reset_timeout`` seconds the failure count is reset and
    the breaker closes again; there is no half-open trial state, the next
    operation is simply attempted. Any success resets the count.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "redis",
    ) -> None:
        self.failure_threshold = max(1, failure_threshold)
        self.reset_timeout = reset_timeout
        self.name = name
        self._clock = clock
        self._failures = 0
        self._opened_at: Optional[float] = None

    @property
    def failures(self) -> int:
        return self._failures

    def is_open(self) -> bool:
        """True while remote operations must be skipped."""
        if self._opened_at is None:
            return False
        if self._clock() - self._opened_at >= self.reset_timeout:
            logger.info("Circuit breaker '%s' cool-down elapsed; closing", self.name)
            self._failures = 0
            self._opened_at = None
            return False
        return True

    def allow(self) -> bool:
        return not self.is_open()

    def record_success(self) -> None:
        if self._failures:
            logger.debug("Circuit breaker '%s' reset after success", self.name)
        self._failures = 0
        self._opened_at = None

    def record_failure(self, error: Optional[BaseException] = None) -> None:
        self._failures += 1
        if self._failures >= self.failure_threshold and self._opened_at is None:
            self._opened_at = self._clock()
            logger.warning(
                "Circuit breaker '%s' opened after %d consecutive failures (last: %s); "
                "skipping for %.0fs",
                self.name,
                self._failures,
                error,
                self.reset_timeout,
            )

    def reset(self) -> None:
        self._failures = 0
        self._opened_at = None

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": "open" if self.is_open() else "closed",
            "failures": self._failures,
            "failure_threshold": self.failure_threshold,
            "reset_timeout": self.reset_timeout,
        }
