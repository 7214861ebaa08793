"""The promise: a single-assignment cell with chained continuations.

Implements the Promises/A+ resolution procedure (section 2.3). Settlement
happens at most once; every observer is dispatched through the promise's
scheduler on a later turn, never on the stack that settled it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import inspect
import logging
import threading
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from pledge.config import load_settings
from pledge.errors import InternalError, InvalidStateError, SelfResolutionError
from pledge.scheduler import get_scheduler

if TYPE_CHECKING:
    from collections.abc import Callable, Generator, Iterable

    from pledge.scheduler import Scheduler

log = logging.getLogger(__name__)

T = TypeVar("T")

# Values of these exact types can never carry a ``then`` member.
_PLAIN_TYPES: frozenset[type] = frozenset(
    {type(None), bool, int, float, complex, str, bytes}
)

_UNSET: Any = object()


def _has_unbound_then(value: Any) -> bool:
    """True for a class whose ``then`` is a plain instance method.

    Class and static methods still make the class a thenable.
    """
    if not isinstance(value, type):
        return False
    return inspect.isfunction(inspect.getattr_static(value, "then", None))


class State(str, Enum):
    """The three states a promise can be in."""

    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


class Promise(Generic[T]):
    """A deferred value, pending until resolved or rejected exactly once.

    Args:
        executor: Optional ``executor(resolve, reject)`` run synchronously
            during construction. An exception it raises rejects the promise.
        scheduler: Where observers are dispatched. Defaults to
            ``get_scheduler()``.

    Example:
        p = Promise(lambda resolve, reject: resolve(21))
        doubled = p.then(lambda v: v * 2)
    """

    def __init__(
        self,
        executor: Callable[[Callable[[Any], Any], Callable[[Any], Any]], object]
        | None = None,
        *,
        scheduler: Scheduler | None = None,
    ) -> None:
        """Create a pending promise and run *executor* if given."""
        self._state = State.PENDING
        self._value: Any = _UNSET
        self._reason: Any = _UNSET
        self._on_fulfilled: list[Callable[[Any], object]] | None = []
        self._on_rejected: list[Callable[[Any], object]] | None = []
        # The promise this one is currently mirroring, used to refuse cycles.
        self._follows: Promise[Any] | None = None
        # (thread id, thenable id) pairs whose ``then`` is running on a stack.
        self._unwrapping: set[tuple[int, int]] = set()
        self._lock = threading.RLock()
        self._scheduler: Scheduler = (
            scheduler if scheduler is not None else get_scheduler()
        )

        if executor is not None:
            if not callable(executor):
                raise TypeError(
                    f"Promise executor must be callable, got {type(executor).__name__}"
                )
            self._execute(executor)

    # --- Introspection ---

    @property
    def promise(self) -> Promise[T]:
        """The promise itself; lets a bare promise act as a deferred."""
        return self

    @property
    def state(self) -> State:
        return self._state

    @property
    def scheduler(self) -> Scheduler:
        return self._scheduler

    @property
    def is_pending(self) -> bool:
        return self._state is State.PENDING

    @property
    def is_fulfilled(self) -> bool:
        return self._state is State.FULFILLED

    @property
    def is_rejected(self) -> bool:
        return self._state is State.REJECTED

    @property
    def value(self) -> T:
        """The fulfillment value.

        Raises:
            InvalidStateError: If the promise is not fulfilled.
        """
        if self._state is not State.FULFILLED:
            raise InvalidStateError(
                f"Cannot read the value of a {self._state.value} promise",
                hint="Register a callback with then() instead of reading eagerly.",
            )
        return self._value

    @property
    def reason(self) -> Any:
        """The rejection reason.

        Raises:
            InvalidStateError: If the promise is not rejected.
        """
        if self._state is not State.REJECTED:
            raise InvalidStateError(
                f"Cannot read the reason of a {self._state.value} promise",
                hint="Register a callback with catch() instead of reading eagerly.",
            )
        return self._reason

    def __repr__(self) -> str:
        if self._state is State.FULFILLED:
            return f"<Promise fulfilled value={self._value!r}>"
        if self._state is State.REJECTED:
            return f"<Promise rejected reason={self._reason!r}>"
        return "<Promise pending>"

    # --- Settlement ---

    def resolve(self, value: Any = None) -> Promise[T]:
        """Run the resolution procedure for *value*.

        Does nothing once the promise has settled. A promise value is mirrored,
        an object with a callable ``then`` is unwrapped, and anything else
        fulfills the promise directly.
        """
        if self._state is not State.PENDING:
            return self

        if value is self:
            return self.reject(
                SelfResolutionError("Cannot resolve a promise with itself")
            )

        if isinstance(value, Promise):
            return self._adopt(value)

        if type(value) not in _PLAIN_TYPES and not _has_unbound_then(value):
            try:
                then = value.then
            except AttributeError:
                then = None
            except Exception as e:
                return self.reject(e)
            if callable(then):
                self._call_then(value, then)
                return self

        self._settle(State.FULFILLED, value)
        return self

    def reject(self, reason: Any = None) -> Promise[T]:
        """Reject with *reason*. Does nothing once the promise has settled."""
        if self._state is not State.PENDING:
            return self
        self._settle(State.REJECTED, reason)
        return self

    def _execute(self, executor: Callable[..., object]) -> None:
        try:
            executor(self.resolve, self.reject)
        except Exception as e:
            self.reject(e)

    def _adopt(self, other: Promise[Any]) -> Promise[T]:
        """Mirror *other*, refusing adoption cycles.

        The cycle check walks the chain of promises *other* is mirroring, so
        it costs O(chain length) per adoption; building a long chain by making
        each new promise adopt the previous head is O(n**2) overall.
        """
        cursor: Promise[Any] | None = other
        while cursor is not None:
            if cursor is self:
                return self.reject(
                    SelfResolutionError("Promise adoption cycle would never settle")
                )
            cursor = cursor._follows
        self._follows = other
        other._subscribe(self.resolve, self.reject)
        return self

    def _call_then(self, thenable: Any, then: Callable[..., object]) -> None:
        key = (threading.get_ident(), id(thenable))
        if key in self._unwrapping:
            self.reject(SelfResolutionError("Thenable resolves to itself"))
            return

        called = False
        guard = threading.Lock()

        def claim() -> bool:
            nonlocal called
            with guard:
                if called:
                    return False
                called = True
                return True

        def resolve_once(value: Any = None) -> None:
            if claim():
                self.resolve(value)

        def reject_once(reason: Any = None) -> None:
            if claim():
                self.reject(reason)

        self._unwrapping.add(key)
        try:
            then(resolve_once, reject_once)
        except Exception as e:
            if claim():
                self.reject(e)
            else:
                log.debug("Ignoring %r raised by then() after it settled", e)
        finally:
            self._unwrapping.discard(key)

    def _set_value(self, value: Any) -> None:
        if self._value is not _UNSET:
            raise InternalError("Cannot set promise value twice")
        self._value = value

    def _set_reason(self, reason: Any) -> None:
        if self._reason is not _UNSET:
            raise InternalError("Cannot set promise rejection reason twice")
        self._reason = reason

    def _settle(self, state: State, payload: Any) -> None:
        with self._lock:
            if self._state is not State.PENDING:
                return
            if state is State.FULFILLED:
                self._set_value(payload)
                observers = self._on_fulfilled
            else:
                self._set_reason(payload)
                observers = self._on_rejected
            self._state = state
            self._on_fulfilled = None
            self._on_rejected = None
            self._follows = None
            # Enqueued under the lock so a concurrent late then() queues after.
            for observer in observers or ():
                self._scheduler.call_later(observer, payload)

        if log.isEnabledFor(logging.DEBUG) and load_settings().trace:
            log.debug(
                "%r settled, dispatching %d observer(s)", self, len(observers or ())
            )

    # --- Chaining ---

    def _subscribe(
        self,
        on_fulfilled: Callable[[Any], object],
        on_rejected: Callable[[Any], object],
    ) -> None:
        with self._lock:
            if self._state is State.PENDING:
                if self._on_fulfilled is None or self._on_rejected is None:
                    raise InternalError("Pending promise lost its observer lists")
                self._on_fulfilled.append(on_fulfilled)
                self._on_rejected.append(on_rejected)
            elif self._state is State.FULFILLED:
                self._scheduler.call_later(on_fulfilled, self._value)
            else:
                self._scheduler.call_later(on_rejected, self._reason)

    def then(
        self,
        on_fulfilled: Callable[[T], Any] | None = None,
        on_rejected: Callable[[Any], Any] | None = None,
    ) -> Promise[Any]:
        """Register callbacks and return a promise for their result.

        A callback's return value resolves the returned promise (so returning
        a promise chains onto it); an exception it raises rejects it. A
        missing or non-callable callback passes the value or reason through.
        """
        child: Promise[Any] = Promise(scheduler=self._scheduler)

        def fulfilled(value: Any) -> None:
            if not callable(on_fulfilled):
                child.resolve(value)
                return
            try:
                result = on_fulfilled(value)
            except Exception as e:
                child.reject(e)
                return
            child.resolve(result)

        def rejected(reason: Any) -> None:
            if not callable(on_rejected):
                child.reject(reason)
                return
            try:
                result = on_rejected(reason)
            except Exception as e:
                child.reject(e)
                return
            child.resolve(result)

        self._subscribe(fulfilled, rejected)
        return child

    def catch(self, on_rejected: Callable[[Any], Any] | None = None) -> Promise[Any]:
        """Shorthand for ``then(None, on_rejected)``."""
        return self.then(None, on_rejected)

    def __await__(self) -> Generator[Any, None, T]:
        from pledge.aio import to_future

        return to_future(self).__await__()

    # --- Constructors ---

    @classmethod
    def resolved(
        cls, value: Any = None, *, scheduler: Scheduler | None = None
    ) -> Promise[Any]:
        """See ``resolved_with``."""
        return resolved_with(value, scheduler=scheduler)

    @classmethod
    def rejected(
        cls, reason: Any = None, *, scheduler: Scheduler | None = None
    ) -> Promise[Any]:
        """See ``rejected_with``."""
        return rejected_with(reason, scheduler=scheduler)

    @classmethod
    def all(
        cls, values: Iterable[Any], *, scheduler: Scheduler | None = None
    ) -> Promise[list[Any]]:
        """See ``pledge.combinators.all_of``."""
        from pledge.combinators import all_of

        return all_of(values, scheduler=scheduler)

    @classmethod
    def race(
        cls, values: Iterable[Any], *, scheduler: Scheduler | None = None
    ) -> Promise[Any]:
        """See ``pledge.combinators.race``."""
        from pledge.combinators import race

        return race(values, scheduler=scheduler)


def resolved_with(
    value: Any = None, *, scheduler: Scheduler | None = None
) -> Promise[Any]:
    """Return a promise resolved with *value*.

    *value* goes through the resolution procedure, so a promise or thenable is
    adopted rather than wrapped.
    """
    return Promise(scheduler=scheduler).resolve(value)


def rejected_with(
    reason: Any = None, *, scheduler: Scheduler | None = None
) -> Promise[Any]:
    """Return a promise rejected with *reason*."""
    return Promise(scheduler=scheduler).reject(reason)


@dataclass(frozen=True)
class Deferred(Generic[T]):
    """A pending promise together with its settle functions."""

    promise: Promise[T]
    resolve: Callable[[Any], Promise[T]]
    reject: Callable[[Any], Promise[T]]


def deferred(*, scheduler: Scheduler | None = None) -> Deferred[Any]:
    """Create a pending promise and expose its ``resolve``/``reject``."""
    p: Promise[Any] = Promise(scheduler=scheduler)
    return Deferred(promise=p, resolve=p.resolve, reject=p.reject)
