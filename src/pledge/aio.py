"""Bridges between promises and asyncio.

Awaiting a promise relies on its scheduler being serviced: promises created
inside a running loop get an ``AsyncioScheduler`` by default, while promises
on a ``QueueScheduler`` need the host to drain the queue.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, TypeVar

from pledge.errors import RejectionError, SchedulerError
from pledge.promise import Promise
from pledge.scheduler import AsyncioScheduler

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")

# Strong references so pending bridge tasks are not garbage collected.
_background_tasks: set[asyncio.Future[Any]] = set()


def _running_loop(
    loop: asyncio.AbstractEventLoop | None,
) -> asyncio.AbstractEventLoop:
    if loop is not None:
        return loop
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        raise SchedulerError(
            "No running event loop", hint="Call from a coroutine or pass loop=..."
        ) from None


def _fail_future(fut: asyncio.Future[Any], reason: Any) -> None:
    if fut.done():
        return
    if isinstance(reason, asyncio.CancelledError):
        fut.cancel()
    elif isinstance(reason, BaseException):
        fut.set_exception(reason)
    else:
        fut.set_exception(RejectionError(reason))


def _call_on_loop(loop: asyncio.AbstractEventLoop, fn: Any, *args: Any) -> None:
    try:
        current = asyncio.get_running_loop()
    except RuntimeError:
        current = None
    if current is loop:
        fn(*args)
    else:
        loop.call_soon_threadsafe(fn, *args)


def to_future(
    promise: Promise[T], *, loop: asyncio.AbstractEventLoop | None = None
) -> asyncio.Future[T]:
    """Return an ``asyncio.Future`` that settles like *promise*.

    A rejection reason that is not an exception is raised as
    ``RejectionError`` with the original under ``.reason``.
    """
    loop = _running_loop(loop)
    fut: asyncio.Future[T] = loop.create_future()

    # Already settled: no scheduler turn is needed to observe the outcome.
    if promise.is_fulfilled:
        fut.set_result(promise.value)
        return fut
    if promise.is_rejected:
        _fail_future(fut, promise.reason)
        return fut

    def on_fulfilled(value: Any) -> None:
        def set_result() -> None:
            if not fut.done():
                fut.set_result(value)

        _call_on_loop(loop, set_result)

    def on_rejected(reason: Any) -> None:
        _call_on_loop(loop, _fail_future, fut, reason)

    promise.then(on_fulfilled, on_rejected)
    return fut


def from_awaitable(
    awaitable: Awaitable[T], *, loop: asyncio.AbstractEventLoop | None = None
) -> Promise[T]:
    """Run *awaitable* as a task and return a promise for its outcome.

    The promise dispatches through the loop. Cancelling the task rejects the
    promise with the ``CancelledError``.
    """
    loop = _running_loop(loop)
    task = asyncio.ensure_future(awaitable, loop=loop)
    promise: Promise[T] = Promise(scheduler=AsyncioScheduler(loop))

    def on_done(t: asyncio.Future[Any]) -> None:
        _background_tasks.discard(t)
        if t.cancelled():
            promise.reject(asyncio.CancelledError())
            return
        exc = t.exception()
        if exc is not None:
            promise.reject(exc)
        else:
            promise.resolve(t.result())

    _background_tasks.add(task)
    task.add_done_callback(on_done)
    return promise
