"""Append-only audit trail of escrow and dispute state changes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, Optional


class EventKind(Enum):
    ARBITRATOR_BOUND = "arbitrator_bound"
    ESCROW_DEPOSITED = "escrow_deposited"
    ESCROW_RELEASED = "escrow_released"
    ESCROW_REFUNDED = "escrow_refunded"
    ESCROW_DISPUTED = "escrow_disputed"
    DISPUTE_OPENED = "dispute_opened"
    DISPUTE_RESPONDED = "dispute_responded"
    DISPUTE_RESOLVED = "dispute_resolved"


@dataclass(frozen=True)
class Event:
    seq: int
    kind: EventKind
    timestamp: int
    actor: bytes
    escrow_id: Optional[bytes] = None
    dispute_id: Optional[bytes] = None
    buyer: Optional[bytes] = None
    merchant: Optional[bytes] = None
    amount: int = 0
    data: dict[str, Any] = field(default_factory=dict)


class EventLog:
    """Ordered event list shared by the ledger and the arbitration component.

    Entries are only ever appended. `rollback` exists for the atomic sections:
    events emitted by an operation that later aborts are discarded so the trail
    only ever describes committed state.
    """

    def __init__(self) -> None:
        self._events: list[Event] = []

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(list(self._events))

    def emit(
        self,
        kind: EventKind,
        *,
        timestamp: int,
        actor: bytes,
        escrow_id: Optional[bytes] = None,
        dispute_id: Optional[bytes] = None,
        buyer: Optional[bytes] = None,
        merchant: Optional[bytes] = None,
        amount: int = 0,
        **data: Any,
    ) -> Event:
        event = Event(
            seq=len(self._events),
            kind=kind,
            timestamp=timestamp,
            actor=actor,
            escrow_id=escrow_id,
            dispute_id=dispute_id,
            buyer=buyer,
            merchant=merchant,
            amount=amount,
            data=dict(data),
        )
        self._events.append(event)
        return event

    def mark(self) -> int:
        return len(self._events)

    def rollback(self, mark: int) -> int:
        """Drop events appended after `mark`; returns how many were dropped."""
        dropped = len(self._events) - mark
        if dropped > 0:
            del self._events[mark:]
        return max(dropped, 0)

    def history(
        self,
        *,
        escrow_id: Optional[bytes] = None,
        dispute_id: Optional[bytes] = None,
        kind: Optional[EventKind] = None,
    ) -> list[Event]:
        out = []
        for ev in self._events:
            if escrow_id is not None and ev.escrow_id != escrow_id:
                continue
            if dispute_id is not None and ev.dispute_id != dispute_id:
                continue
            if kind is not None and ev.kind != kind:
                continue
            out.append(ev)
        return out

    def last(self) -> Optional[Event]:
        return self._events[-1] if self._events else None
