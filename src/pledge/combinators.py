"""Combinators that fan in several promises.

Inputs are copied into a list when the combinator is called; mutating the
original iterable afterwards has no effect. Non-promise inputs go through
``resolved_with`` so plain values count as already fulfilled and thenables
are unwrapped.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any

from pledge.promise import Promise, resolved_with

if TYPE_CHECKING:
    from collections.abc import Iterable

    from pledge.scheduler import Scheduler


def _as_promise(value: Any, scheduler: Scheduler) -> Promise[Any]:
    if isinstance(value, Promise):
        return value
    return resolved_with(value, scheduler=scheduler)


def all_of(
    values: Iterable[Any], *, scheduler: Scheduler | None = None
) -> Promise[list[Any]]:
    """Fulfill with every input's value, in input order.

    Rejects with the reason of the first input to reject; later outcomes are
    ignored. An empty input fulfills with ``[]``.
    """
    inputs = list(values)
    result: Promise[list[Any]] = Promise(scheduler=scheduler)
    if not inputs:
        return result.resolve([])

    results: list[Any] = [None] * len(inputs)
    remaining = len(inputs)
    lock = threading.Lock()

    def on_fulfilled(index: int) -> Any:
        def record(value: Any) -> None:
            nonlocal remaining
            with lock:
                results[index] = value
                remaining -= 1
                done = remaining == 0
            if done:
                result.resolve(results)

        return record

    def on_rejected(reason: Any) -> None:
        result.reject(reason)

    for i, value in enumerate(inputs):
        _as_promise(value, result.scheduler).then(on_fulfilled(i), on_rejected)
    return result


def race(values: Iterable[Any], *, scheduler: Scheduler | None = None) -> Promise[Any]:
    """Settle like whichever input settles first.

    Inputs settled before the call win in input order. An empty input never
    settles.
    """
    inputs = list(values)
    winner: Promise[Any] = Promise(scheduler=scheduler)
    finished = False
    lock = threading.Lock()

    def claim() -> bool:
        nonlocal finished
        with lock:
            if finished:
                return False
            finished = True
            return True

    def on_fulfilled(value: Any) -> None:
        if claim():
            winner.resolve(value)

    def on_rejected(reason: Any) -> None:
        if claim():
            winner.reject(reason)

    for value in inputs:
        _as_promise(value, winner.scheduler).then(on_fulfilled, on_rejected)
    return winner
