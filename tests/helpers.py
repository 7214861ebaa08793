"""Test helpers (small, reusable doubles).

Keep this file tiny: thenable doubles and an outcome recorder cover most of
the resolution-procedure suites.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from pledge.promise import Promise

# Fulfill or reject with this when the value itself is not under test.
DUMMY = {"dummy": "dummy"}
# A fulfillment value to test for with identity.
SENTINEL = {"sentinel": "sentinel"}
# A value that must never show up.
OTHER = {"other": "other"}


@dataclass
class Outcome:
    """Records what a promise settled with, via then()."""

    values: list[Any] = field(default_factory=list)
    reasons: list[Any] = field(default_factory=list)

    def watch(self, promise: Promise[Any]) -> Outcome:
        promise.then(self.values.append, self.reasons.append)
        return self

    @property
    def settled(self) -> bool:
        return bool(self.values or self.reasons)


class Thenable:
    """Foreign thenable whose ``then`` runs a scripted body."""

    def __init__(self, body):
        self.body = body
        self.calls = 0

    def then(self, resolve, reject):
        self.calls += 1
        return self.body(resolve, reject)


class RaisingThenAttribute:
    """Object whose ``then`` attribute raises when read."""

    def __init__(self, exc: BaseException):
        self.exc = exc
        self.reads = 0

    @property
    def then(self):
        self.reads += 1
        raise self.exc


class ValueThenAttribute:
    """Object with a non-callable ``then`` member."""

    then = 5
