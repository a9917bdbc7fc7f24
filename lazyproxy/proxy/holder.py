"""
Lazy instance holder - once-only, thread-safe materialization of a target.

State machine::

    UNINITIALIZED -> MATERIALIZING -> READY
                          |
                          +-> UNINITIALIZED   (FailurePolicy.RETRY)
                          +-> FAILED          (FailurePolicy.POISON)

Exactly one thread runs the factory for a given attempt. Threads arriving
while an attempt is in flight wait for it and then share its outcome: the same
target, or the same exception object.
"""

from typing import Any, Callable, Generic, Optional, TypeVar
from enum import Enum
import logging
import threading

from ..di.diagnostics import DIDiagnostics, DIEventType, global_diagnostics
from ..di.errors import DependencyCycleError

logger = logging.getLogger("lazyproxy.proxy.holder")

T = TypeVar("T")


class HolderState(str, Enum):
    """Materialization state of a holder."""

    UNINITIALIZED = "uninitialized"
    MATERIALIZING = "materializing"
    READY = "ready"
    FAILED = "failed"


class FailurePolicy(str, Enum):
    """What a holder does after its factory raised."""

    RETRY = "retry"    # Back to UNINITIALIZED; the next access runs the factory again
    POISON = "poison"  # Terminal FAILED; every later access re-raises the error


class LazyInstanceHolder(Generic[T]):
    """
    Owns a target factory and materializes the target at most once.

    The READY fast path reads two attributes without locking; the target is
    assigned before the state flips, under the condition lock, so a thread that
    sees READY also sees the fully constructed target.
    """

    __slots__ = (
        "_factory",
        "_target",
        "_state",
        "_cond",
        "_owner",
        "_attempts",
        "_failure",
        "_failed_attempt",
        "_policy",
        "_name",
        "_diagnostics",
    )

    def __init__(
        self,
        factory: Callable[[], T],
        *,
        policy: FailurePolicy = FailurePolicy.RETRY,
        name: str = "lazy",
        diagnostics: Optional[DIDiagnostics] = None,
    ):
        if factory is None:
            raise ValueError("factory must not be None")
        self._factory: Optional[Callable[[], T]] = factory
        self._target: Optional[T] = None
        self._state = HolderState.UNINITIALIZED
        self._cond = threading.Condition(threading.Lock())
        self._owner: Optional[int] = None
        self._attempts = 0
        self._failure: Optional[BaseException] = None
        self._failed_attempt = 0
        self._policy = FailurePolicy(policy)
        self._name = name
        self._diagnostics = diagnostics or global_diagnostics

    @property
    def state(self) -> HolderState:
        return self._state

    @property
    def name(self) -> str:
        return self._name

    @property
    def policy(self) -> FailurePolicy:
        return self._policy

    @property
    def is_materialized(self) -> bool:
        return self._state is HolderState.READY

    @property
    def failure(self) -> Optional[BaseException]:
        """Exception raised by the most recent failed attempt, if any."""
        return self._failure

    def target_if_materialized(self) -> Optional[T]:
        """Return the target without triggering materialization."""
        if self._state is HolderState.READY:
            return self._target
        return None

    def get_or_materialize(self) -> T:
        """
        Return the target, running the factory if no attempt succeeded yet.

        Raises:
            DependencyCycleError: The factory re-entered its own holder
            Exception: Whatever the factory raised, unwrapped
        """
        if self._state is HolderState.READY:
            return self._target  # type: ignore[return-value]

        me = threading.get_ident()
        with self._cond:
            while self._state is HolderState.MATERIALIZING:
                if self._owner == me:
                    raise DependencyCycleError([self._name, self._name])
                waiting_on = self._attempts
                self._cond.wait_for(
                    lambda: self._state is not HolderState.MATERIALIZING
                    or self._attempts != waiting_on
                )
                if self._state is HolderState.READY:
                    return self._target  # type: ignore[return-value]
                if self._failed_attempt == waiting_on and self._failure is not None:
                    raise self._failure

            if self._state is HolderState.READY:
                return self._target  # type: ignore[return-value]
            if self._state is HolderState.FAILED:
                raise self._failure  # type: ignore[misc]

            self._state = HolderState.MATERIALIZING
            self._owner = me
            self._attempts += 1
            attempt = self._attempts
            factory = self._factory

        logger.debug(f"Materializing '{self._name}' (attempt {attempt})")
        try:
            with self._diagnostics.measure(
                DIEventType.MATERIALIZATION_START,
                success=DIEventType.MATERIALIZATION_SUCCESS,
                failure=DIEventType.MATERIALIZATION_FAILURE,
                token=self._name,
                metadata={"attempt": attempt},
            ):
                target = factory()  # type: ignore[misc]
        except BaseException as exc:
            with self._cond:
                self._failure = exc
                self._failed_attempt = attempt
                self._owner = None
                if self._policy is FailurePolicy.POISON:
                    self._state = HolderState.FAILED
                    self._factory = None
                else:
                    self._state = HolderState.UNINITIALIZED
                self._cond.notify_all()
            logger.debug(f"Materialization of '{self._name}' failed: {exc!r}")
            raise

        with self._cond:
            self._target = target
            self._failure = None
            self._factory = None
            self._owner = None
            self._state = HolderState.READY
            self._cond.notify_all()
        return target

    def __repr__(self) -> str:
        return f"<LazyInstanceHolder {self._name!r} state={self._state.value}>"
