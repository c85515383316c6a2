"""
Bounded dispatch of event handlers.

Each submitted handler becomes its own ``asyncio.Task`` immediately, so the
receive loop never waits on a slow handler. Execution is gated by a
semaphore: at most ``max_concurrency`` handlers run (and hold storage
connections) at once, the rest wait their turn. Every handler is bounded by
``task_timeout``.

Error Handling:
    A handler that raises or times out is logged and counted; it never
    propagates to the caller of ``submit``. Handlers are not retried.

Shutdown:
    ``drain`` stops accepting new work, waits up to a deadline for in-flight
    handlers, and cancels whatever is still running afterwards.

Example:
    >>> dispatcher = Dispatcher(max_concurrency=16, task_timeout=30.0)
    >>> dispatcher.submit(handle_event, payload, name="event-1")
    >>> cancelled = await dispatcher.drain(timeout=10.0)
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

log = structlog.get_logger(__name__)


@dataclass
class DispatchStats:
    """Counters for handlers submitted through a dispatcher."""

    submitted: int = 0
    succeeded: int = 0
    failed: int = 0
    timed_out: int = 0
    cancelled: int = 0


class DispatcherClosedError(RuntimeError):
    """Raised when work is submitted after ``drain`` has started."""


class Dispatcher:
    """Semaphore-gated task launcher with a drain barrier."""

    def __init__(self, max_concurrency: int = 16, task_timeout: float | None = 30.0) -> None:
        self.max_concurrency = max_concurrency
        self.task_timeout = task_timeout
        self.semaphore = asyncio.Semaphore(max_concurrency)
        self.stats = DispatchStats()
        self._tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(self, func: Callable[..., Awaitable[Any]], *args: Any, name: str | None = None) -> asyncio.Task[None]:
        """Schedule ``func(*args)`` without waiting for it.

        Raises:
            DispatcherClosedError: If the dispatcher is draining or drained
        """
        if self._closed:
            raise DispatcherClosedError("dispatcher is closed")
        task_name = name or getattr(func, "__name__", "handler")
        task = asyncio.create_task(self._execute(func, args, task_name), name=task_name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self.stats.submitted += 1
        return task

    async def _execute(self, func: Callable[..., Awaitable[Any]], args: tuple, name: str) -> None:
        async with self.semaphore:
            start = time.monotonic()
            try:
                await asyncio.wait_for(func(*args), timeout=self.task_timeout)
            except asyncio.TimeoutError:
                self.stats.timed_out += 1
                log.error("handler_timed_out", task=name, timeout=self.task_timeout)
            except asyncio.CancelledError:
                self.stats.cancelled += 1
                raise
            except Exception as e:
                self.stats.failed += 1
                log.error("handler_failed", task=name, error=str(e), exc_info=True)
            else:
                self.stats.succeeded += 1
                log.debug("handler_completed", task=name, execution_time=time.monotonic() - start)

    async def drain(self, timeout: float) -> int:
        """Close the dispatcher and wait for in-flight handlers.

        Args:
            timeout: Seconds to wait before cancelling the remaining handlers

        Returns:
            Number of handlers cancelled because they outlived the deadline.
        """
        self._closed = True
        if not self._tasks:
            return 0

        log.info("dispatcher_draining", in_flight=len(self._tasks), timeout=timeout)
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            log.warning("dispatcher_cancelled_handlers", cancelled=len(pending))
        return len(pending)
