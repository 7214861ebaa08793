"""Schedulers: the only place promises touch the outside world.

A scheduler runs ``callback(arg)`` on a later turn, preserving the order in
which callbacks were enqueued. Promises never invoke observers synchronously;
they hand every dispatch to their scheduler.
"""

from __future__ import annotations

import asyncio
from collections import deque
from contextlib import contextmanager
import contextvars
import logging
import threading
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from pledge.config import load_settings
from pledge.errors import SchedulerError

if TYPE_CHECKING:
    from collections.abc import Callable, Generator

log = logging.getLogger(__name__)


@runtime_checkable
class Scheduler(Protocol):
    """Duck-typed protocol for deferred dispatch."""

    def call_later(self, callback: Callable[[Any], object], arg: Any) -> None:
        """Run ``callback(arg)`` on a later turn, FIFO with earlier calls."""
        ...


class QueueScheduler:
    """FIFO queue drained explicitly by the host.

    Suitable for synchronous programs and deterministic tests: nothing runs
    until ``run_until_idle()`` is called. Enqueueing is safe from any thread.
    """

    def __init__(self, *, max_steps: int | None = None) -> None:
        """Create an empty queue.

        *max_steps* defaults to ``Settings.max_drain_steps`` at drain time.
        """
        if max_steps is not None and max_steps < 1:
            raise ValueError("QueueScheduler.max_steps must be >= 1")
        self._queue: deque[tuple[Callable[[Any], object], Any]] = deque()
        self._max_steps = max_steps

    @property
    def pending(self) -> int:
        return len(self._queue)

    def call_later(self, callback: Callable[[Any], object], arg: Any) -> None:
        self._queue.append((callback, arg))

    def run_until_idle(self) -> int:
        """Run queued callbacks, including ones enqueued meanwhile.

        Returns:
            The number of callbacks run.

        Raises:
            SchedulerError: When more than ``max_steps`` callbacks run in one
                drain. Remaining callbacks stay queued.
        """
        limit = self._max_steps or load_settings().max_drain_steps
        ran = 0
        while self._queue:
            if ran >= limit:
                raise SchedulerError(
                    f"Queue still busy after {ran} callbacks",
                    hint="A callback is likely rescheduling itself forever; "
                    "raise PLEDGE_MAX_DRAIN_STEPS if the workload is legitimate.",
                )
            callback, arg = self._queue.popleft()
            ran += 1
            try:
                callback(arg)
            except Exception:
                log.exception("Scheduled callback %r failed", callback)
                raise
        return ran

    def clear(self) -> None:
        """Drop all queued callbacks without running them."""
        self._queue.clear()


class AsyncioScheduler:
    """Dispatch through an asyncio event loop's ready queue."""

    __slots__ = ("loop",)

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        """Bind to *loop*, or to the running loop when omitted."""
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                raise SchedulerError(
                    "No running event loop for AsyncioScheduler",
                    hint="Create it inside a coroutine or pass loop=...",
                ) from None
        self.loop = loop

    def call_later(self, callback: Callable[[Any], object], arg: Any) -> None:
        # call_soon_threadsafe keeps FIFO order and is safe off-loop.
        try:
            self.loop.call_soon_threadsafe(callback, arg)
        except RuntimeError as e:
            raise SchedulerError(
                "Event loop is closed",
                hint="Settle promises before the loop shuts down.",
            ) from e


# --- Ambient default ---

_SCOPED: contextvars.ContextVar[Scheduler | None] = contextvars.ContextVar(
    "pledge_scheduler", default=None
)

_default_queue: QueueScheduler | None = None
_default_queue_lock = threading.Lock()


def default_queue() -> QueueScheduler:
    """Return the process-wide fallback queue, creating it on first use."""
    global _default_queue
    with _default_queue_lock:
        if _default_queue is None:
            _default_queue = QueueScheduler()
        return _default_queue


def get_scheduler() -> Scheduler:
    """Resolve the scheduler a new promise should use.

    Priority:
    1) The innermost ``scheduler_scope``.
    2) The running event loop, unless settings force ``"queue"``.
    3) The process-wide ``default_queue()``, unless settings force
       ``"asyncio"`` (then outside a loop this is an error).
    """
    scoped = _SCOPED.get()
    if scoped is not None:
        return scoped

    mode = load_settings().scheduler
    if mode != "queue":
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        if loop is not None:
            return AsyncioScheduler(loop)
        if mode == "asyncio":
            raise SchedulerError(
                "PLEDGE_SCHEDULER=asyncio but no event loop is running",
                hint="Create promises inside a coroutine or use scheduler_scope(...).",
            )
    return default_queue()


@contextmanager
def scheduler_scope(scheduler: Scheduler) -> Generator[Scheduler, None, None]:
    """Make *scheduler* the default for promises created in this scope.

    Thread-safe and async-safe (backed by a ``ContextVar``).

    Example:
        queue = QueueScheduler()
        with scheduler_scope(queue):
            p = Promise.resolved(1).then(print)
        queue.run_until_idle()
    """
    if not isinstance(scheduler, Scheduler):
        raise TypeError(f"Expected a Scheduler, got {type(scheduler).__name__}")
    token = _SCOPED.set(scheduler)
    try:
        yield scheduler
    finally:
        _SCOPED.reset(token)
