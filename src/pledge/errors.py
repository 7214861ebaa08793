"""Exception hierarchy for Pledge."""

from __future__ import annotations

from typing import Any


class PledgeError(Exception):
    """Base exception for all Pledge errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class SelfResolutionError(PledgeError, TypeError):
    """A promise was resolved with itself.

    Subclasses ``TypeError`` so callers written against Promises/A+ semantics
    can keep catching the conventional type.
    """


class InvalidStateError(PledgeError):
    """A settled value or reason was read in the wrong state."""


class RejectionError(PledgeError):
    """Carries a rejection reason that is not itself an exception.

    Raised when a promise rejected with an arbitrary object is awaited or
    converted into an ``asyncio.Future``.
    """

    def __init__(self, reason: Any, *, hint: str | None = None) -> None:
        super().__init__(f"Promise rejected with {reason!r}", hint=hint)
        self.reason = reason


class SchedulerError(PledgeError):
    """A scheduler could not accept or drain callbacks."""


class ConfigurationError(PledgeError):
    """Configuration validation or resolution failed."""


class InternalError(PledgeError):
    """A Pledge internal error (bug) or invariant violation."""
