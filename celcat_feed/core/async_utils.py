"""Async helpers shared by the fetch pipeline.

Provides:
- BackgroundTaskSupervisor: detached "spawn and forget" tasks whose failures
  are logged, never propagated to the code that spawned them
- retry_async: bounded retry with exponential backoff

Usage Example:
    ```python
    supervisor = BackgroundTaskSupervisor(name="revalidation")

    supervisor.spawn(refresh_group("12345"), name="refresh:12345")

    result = await retry_async(
        lambda: client.fetch_group("12345", start, end),
        max_retries=1,
        retry_on=(UpstreamTransportError,),
    )

    await supervisor.shutdown()
    ```
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackgroundTaskSupervisor:
    """Owns detached background tasks.

    Each spawned task is held in a set until it finishes (so it cannot be
    garbage collected mid-flight); a done-callback logs any exception the task
    raised. ``shutdown`` cancels whatever is still running.
    """

    def __init__(self, name: str = "background"):
        self.name = name
        self._tasks: set[asyncio.Task[Any]] = set()
        self._spawned = 0
        self._failed = 0
        self._last_error_time: Optional[float] = None

    def spawn(self, coro: Coroutine[Any, Any, Any], name: Optional[str] = None) -> asyncio.Task[Any]:
        """Schedule ``coro`` as a detached task and return it.

        The caller never has to await the task; failures are logged here.
        """
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        self._spawned += 1
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._failed += 1
            self._last_error_time = time.time()
            logger.error(
                "Background task %s (%s) failed: %s",
                task.get_name(),
                self.name,
                exc,
                exc_info=exc,
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for currently running tasks to finish (used by tests and shutdown)."""
        if not self._tasks:
            return
        await asyncio.wait(list(self._tasks), timeout=timeout)

    def get_health_stats(self) -> dict[str, Any]:
        return {
            "pending": len(self._tasks),
            "spawned": self._spawned,
            "failed": self._failed,
            "last_error_time": self._last_error_time,
        }

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel outstanding tasks and wait briefly for them to unwind."""
        if not self._tasks:
            return
        tasks = list(self._tasks)
        logger.debug("Cancelling %d background task(s) for %s", len(tasks), self.name)
        for task in tasks:
            task.cancel()
        await asyncio.wait(tasks, timeout=timeout)
        self._tasks.clear()


async def retry_async(
    coro_func: Callable[[], Awaitable[T]],
    max_retries: int = 1,
    backoff: float = 0.5,
    backoff_multiplier: float = 2.0,
    max_backoff: float = 10.0,
    retry_on: Optional[tuple[type[BaseException], ...]] = None,
    should_retry: Optional[Callable[[BaseException], bool]] = None,
) -> T:
    """Retry an async function with exponential backoff.

    Args:
        coro_func: Function that returns a fresh awaitable per attempt
        max_retries: Number of retries after the first attempt
        backoff: Initial delay in seconds
        backoff_multiplier: Multiplier applied after each failed attempt
        max_backoff: Cap on the delay
        retry_on: Exception types eligible for retry (None = all)
        should_retry: Extra predicate on the exception; False re-raises at once

    Returns:
        The first successful result

    Raises:
        The last exception once retries are exhausted, or any exception that
        is not eligible for retry.
    """
    current_backoff = backoff

    for attempt in range(max_retries + 1):
        try:
            result = await coro_func()
            if attempt > 0:
                logger.info("Operation succeeded on attempt %d/%d", attempt + 1, max_retries + 1)
            return result
        except Exception as e:
            if retry_on is not None and not isinstance(e, retry_on):
                raise
            if should_retry is not None and not should_retry(e):
                raise
            if attempt >= max_retries:
                raise

            logger.warning(
                "Attempt %d/%d failed: %s. Retrying in %.1fs...",
                attempt + 1,
                max_retries + 1,
                e,
                current_backoff,
            )
            await asyncio.sleep(current_backoff)
            current_backoff = min(current_backoff * backoff_multiplier, max_backoff)

    raise RuntimeError("retry_async exited without a result")  # pragma: no cover
