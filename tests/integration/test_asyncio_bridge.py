"""Promises driven by a real event loop."""

from __future__ import annotations

import asyncio
import threading

import pytest

from pledge.aio import from_awaitable, to_future
from pledge.combinators import all_of, race
from pledge.errors import RejectionError, SchedulerError
from pledge.promise import Promise, deferred, rejected_with, resolved_with
from pledge.scheduler import AsyncioScheduler, QueueScheduler
from tests.helpers import OTHER, SENTINEL

pytestmark = pytest.mark.integration


@pytest.mark.asyncio
async def test_await_fulfilled_promise() -> None:
    assert await resolved_with(SENTINEL) is SENTINEL


@pytest.mark.asyncio
async def test_await_chain_settles_through_loop() -> None:
    p = resolved_with(20).then(lambda v: v + 1).then(lambda v: v * 2)
    assert isinstance(p.scheduler, AsyncioScheduler)
    assert await p == 42


@pytest.mark.asyncio
async def test_await_rejected_exception_raises_it() -> None:
    err = ValueError("nope")
    with pytest.raises(ValueError) as exc_info:
        await rejected_with(err)
    assert exc_info.value is err


@pytest.mark.asyncio
async def test_await_rejected_non_exception_raises_rejection_error() -> None:
    with pytest.raises(RejectionError) as exc_info:
        await rejected_with(SENTINEL).then(lambda v: v)
    assert exc_info.value.reason is SENTINEL


@pytest.mark.asyncio
async def test_handlers_run_on_later_loop_iteration() -> None:
    calls: list[object] = []
    p = resolved_with(SENTINEL)
    p.then(calls.append)
    assert calls == []
    await asyncio.sleep(0)
    assert calls == [SENTINEL]


@pytest.mark.asyncio
async def test_race_with_timer_driven_promises() -> None:
    loop = asyncio.get_running_loop()
    slow = deferred()
    fast = deferred()
    loop.call_later(0.05, slow.reject, OTHER)
    loop.call_later(0.01, fast.resolve, SENTINEL)
    assert await race([slow.promise, fast.promise]) is SENTINEL


@pytest.mark.asyncio
async def test_all_of_with_timer_driven_promises() -> None:
    loop = asyncio.get_running_loop()
    ds = [deferred() for _ in range(3)]
    for delay, (i, d) in zip((0.03, 0.01, 0.02), enumerate(ds)):
        loop.call_later(delay, d.resolve, i)
    assert await all_of(d.promise for d in ds) == [0, 1, 2]


@pytest.mark.asyncio
async def test_thenable_handing_over_timer_promise_then_raising() -> None:
    """resolve(pending promise) then raise inside then(): the raise is ignored."""
    loop = asyncio.get_running_loop()

    def x_factory():
        d = deferred()
        loop.call_later(0.05, d.resolve, SENTINEL)

        class X:
            def then(self, resolve_promise, reject_promise):
                resolve_promise(d.promise)
                raise RuntimeError(OTHER)

        return X()

    p = resolved_with({"dummy": "dummy"}).then(lambda _: x_factory())
    assert await asyncio.wait_for(p, timeout=1) is SENTINEL


@pytest.mark.asyncio
async def test_from_awaitable_fulfills() -> None:
    async def work() -> str:
        await asyncio.sleep(0)
        return "done"

    p = from_awaitable(work())
    assert p.is_pending
    assert await p == "done"


@pytest.mark.asyncio
async def test_from_awaitable_rejects_with_exception() -> None:
    async def work() -> None:
        raise KeyError("missing")

    p = from_awaitable(work())
    with pytest.raises(KeyError):
        await p
    assert isinstance(p.reason, KeyError)


@pytest.mark.asyncio
async def test_from_awaitable_cancellation_rejects() -> None:
    started = asyncio.Event()

    async def work() -> None:
        started.set()
        await asyncio.sleep(10)

    task = asyncio.ensure_future(work())
    p = from_awaitable(task)
    await started.wait()
    task.cancel()
    await asyncio.wait([task])
    assert p.is_rejected
    assert isinstance(p.reason, asyncio.CancelledError)


@pytest.mark.asyncio
async def test_to_future_with_queue_scheduler_drained_elsewhere() -> None:
    q = QueueScheduler()
    p = Promise(scheduler=q)
    fut = to_future(p)
    p.resolve(SENTINEL)
    assert not fut.done()
    q.run_until_idle()
    assert await fut is SENTINEL


@pytest.mark.asyncio
async def test_settlement_from_worker_thread() -> None:
    d = deferred()
    worker = threading.Thread(target=d.resolve, args=(SENTINEL,))
    worker.start()
    worker.join()
    assert await asyncio.wait_for(d.promise.then(lambda v: v), timeout=1) is SENTINEL


def test_to_future_requires_loop() -> None:
    with pytest.raises(SchedulerError):
        to_future(Promise(scheduler=QueueScheduler()))
