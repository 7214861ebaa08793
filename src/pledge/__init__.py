"""Pledge: Promises/A+ deferred values for Python.

Public API:
    - Promise: The single-assignment deferred value
    - resolved_with() / rejected_with() / deferred(): Constructors
    - all_of() / race(): Combinators
    - QueueScheduler / AsyncioScheduler / scheduler_scope(): Dispatch
"""

from __future__ import annotations

import logging

from pledge.aio import from_awaitable, to_future
from pledge.combinators import all_of, race
from pledge.config import Settings, load_settings
from pledge.errors import (
    ConfigurationError,
    InternalError,
    InvalidStateError,
    PledgeError,
    RejectionError,
    SchedulerError,
    SelfResolutionError,
)
from pledge.promise import (
    Deferred,
    Promise,
    State,
    deferred,
    rejected_with,
    resolved_with,
)
from pledge.scheduler import (
    AsyncioScheduler,
    QueueScheduler,
    Scheduler,
    default_queue,
    get_scheduler,
    scheduler_scope,
)

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("pledge")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("pledge").addHandler(logging.NullHandler())

__all__ = [
    "AsyncioScheduler",
    "ConfigurationError",
    "Deferred",
    "InternalError",
    "InvalidStateError",
    "PledgeError",
    "Promise",
    "QueueScheduler",
    "RejectionError",
    "Scheduler",
    "SchedulerError",
    "SelfResolutionError",
    "Settings",
    "State",
    "all_of",
    "default_queue",
    "deferred",
    "from_awaitable",
    "get_scheduler",
    "load_settings",
    "race",
    "rejected_with",
    "resolved_with",
    "scheduler_scope",
    "to_future",
]
