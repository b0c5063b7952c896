"""Atomic state-transition helpers shared by the ledger and arbitration.

Failed-operation semantics:
- Validation failure: state unchanged, no events
- Execution failure (including a failed transfer): state restored to the
  pre-call snapshot, events emitted by the operation discarded
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from copy import deepcopy
from threading import RLock
from typing import Any, Generic, Iterator, Optional, TypeVar

from .events import EventLog
from .errors import ErrorCode, SpecError

logger = logging.getLogger(__name__)

S = TypeVar("S")


class TransitionResult:
    """Thin wrapper for operation results."""

    def __init__(self, ok: bool, error: Optional[SpecError] = None, value: Any = None):
        self.ok = ok
        self.error = error
        self.value = value

    @classmethod
    def success(cls, value: Any = None) -> "TransitionResult":
        return cls(True, None, value)

    @classmethod
    def failure(cls, error: SpecError) -> "TransitionResult":
        return cls(False, error)

    def __repr__(self) -> str:
        if self.ok:
            return "TransitionResult(ok)"
        return f"TransitionResult({self.error})"


class ExecutionGuard:
    """Serialization shared by a ledger and the arbitration component driving it.

    One re-entrant lock covers both components, so arbitration -> ledger calls
    and custodian callbacks all run under the same lock. While a custodian
    transfer is in flight no new commit is accepted; re-entrant calls still
    fail on their own checks first.
    """

    def __init__(self) -> None:
        self.lock = RLock()
        self._transfers = 0

    @property
    def transfer_in_flight(self) -> bool:
        return self._transfers > 0

    @contextmanager
    def transfer(self) -> Iterator[None]:
        with self.lock:
            self._transfers += 1
            try:
                yield
            finally:
                self._transfers -= 1

    def require_idle(self, operation: str) -> None:
        if self._transfers:
            raise SpecError(
                ErrorCode.TRANSFER_IN_PROGRESS,
                f"{operation} cannot commit while a custodian transfer is in flight",
            )


class StateMachine(Generic[S]):
    """Base for components that own a state container and an event log.

    Mutating operations run inside `_atomic`, which serializes callers on the
    shared guard's lock and restores the state snapshot on any `SpecError`.
    Each operation validates first, then calls `_begin_commit` before its
    first mutation. Operations must not mutate state after handing control to
    an external collaborator.
    """

    def __init__(
        self,
        state: S,
        events: Optional[EventLog] = None,
        guard: Optional[ExecutionGuard] = None,
    ):
        self._state = state
        self._events = events if events is not None else EventLog()
        self._guard = guard if guard is not None else ExecutionGuard()
        self._lock = self._guard.lock

    @property
    def events(self) -> EventLog:
        return self._events

    @property
    def guard(self) -> ExecutionGuard:
        return self._guard

    def _begin_commit(self, operation: str) -> None:
        self._guard.require_idle(operation)

    @contextmanager
    def _atomic(self, operation: str) -> Iterator[S]:
        with self._lock:
            snapshot = deepcopy(self._state)
            mark = self._events.mark()
            try:
                yield self._state
            except SpecError as exc:
                self._state = snapshot
                dropped = self._events.rollback(mark)
                if dropped:
                    logger.warning(
                        "%s rolled back after %s (%d event(s) discarded)",
                        operation,
                        exc.code.name,
                        dropped,
                    )
                else:
                    logger.debug("%s rejected: %s", operation, exc)
                raise
