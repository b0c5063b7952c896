"""Escrow ledger: custody bookkeeping for buyer/merchant escrows.

The ledger is the system of record for committed funds. Normal settlement is
driven by the facilitator (and, for releases, the record's merchant); records
under dispute can only be settled through the restricted channel reserved for
the bound arbitration identity.

Every settlement marks the record terminal and decrements the committed total
*before* the custodian transfer is invoked, so a re-entrant call for the same
record observes the terminal status and fails, and any other commit attempted
from inside the transfer (on this ledger or its arbitration component) is
refused with `TRANSFER_IN_PROGRESS`.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from .clock import Clock, SystemClock
from .config import U64_MAX
from .custodian import AssetCustodian
from .errors import ErrorCode, SpecError
from .events import EventKind, EventLog
from .identity import derive_address, require_address, require_caller, require_escrow_id, short
from .transition import StateMachine
from .types import EscrowRecord, EscrowStatus, LedgerState

logger = logging.getLogger(__name__)


def _require_amount(amount: object) -> int:
    if not isinstance(amount, int) or isinstance(amount, bool):
        raise SpecError(ErrorCode.INVALID_AMOUNT, "amount must be an integer")
    if amount <= 0:
        raise SpecError(ErrorCode.INVALID_AMOUNT, "escrow amount must be > 0")
    if amount > U64_MAX:
        raise SpecError(ErrorCode.OVERFLOW, "escrow amount exceeds u64 max")
    return amount


def _require_timestamp(value: object, what: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, f"{what} must be a non-negative integer")
    return value


class EscrowLedger(StateMachine[LedgerState]):
    def __init__(
        self,
        custodian: AssetCustodian,
        facilitator: bytes,
        clock: Optional[Clock] = None,
        *,
        address: Optional[bytes] = None,
        events: Optional[EventLog] = None,
    ):
        super().__init__(LedgerState(), events)
        self.facilitator = require_address(facilitator, "facilitator")
        if address is None:
            address = derive_address(b"escrow-ledger/" + self.facilitator)
        self.address = require_address(address, "ledger address")
        self.custodian = custodian
        self.clock = clock if clock is not None else SystemClock()

    # --- read-only surface ---

    @property
    def arbitrator(self) -> Optional[bytes]:
        return self._state.arbitrator

    @property
    def committed_total(self) -> int:
        return self._state.committed_total

    def custody_balance(self) -> int:
        return self.custodian.balance_of(self.address)

    def inspect(self, escrow_id: bytes) -> Optional[EscrowRecord]:
        with self._lock:
            record = self._state.escrows.get(escrow_id)
            return replace(record) if record is not None else None

    def status_of(self, escrow_id: bytes) -> EscrowStatus:
        record = self.inspect(escrow_id)
        return record.status if record is not None else EscrowStatus.NONE

    def escrow_ids(self) -> list[bytes]:
        with self._lock:
            return list(self._state.escrows)

    def snapshot(self) -> LedgerState:
        """Deep copy of the full ledger state (for digests and exports)."""
        with self._lock:
            state = self._state
            return LedgerState(
                escrows={k: replace(v) for k, v in state.escrows.items()},
                committed_total=state.committed_total,
                arbitrator=state.arbitrator,
            )

    def check_conservation(self) -> int:
        """Verify custody covers every open commitment; returns the surplus."""
        with self._lock:
            state = self._state
            recomputed = sum(r.amount for r in state.escrows.values() if r.status.is_committed)
            if recomputed != state.committed_total:
                raise SpecError(
                    ErrorCode.INTERNAL_ERROR,
                    f"committed total {state.committed_total} != sum of open escrows {recomputed}",
                )
            balance = self.custody_balance()
            if balance < state.committed_total:
                raise SpecError(
                    ErrorCode.CONSERVATION_VIOLATED,
                    f"custody {balance} below committed total {state.committed_total}",
                )
            return balance - state.committed_total

    # --- configuration ---

    def bind_arbitrator(self, caller: bytes, arbitrator: bytes) -> None:
        with self._atomic("bind_arbitrator") as state:
            require_caller(caller, (self.facilitator,), ErrorCode.NOT_FACILITATOR, "only the facilitator may bind")
            require_address(arbitrator, "arbitrator")
            if state.arbitrator is not None:
                raise SpecError(ErrorCode.ARBITRATOR_ALREADY_BOUND, "arbitrator already bound")
            self._begin_commit("bind_arbitrator")
            state.arbitrator = arbitrator
            self._events.emit(EventKind.ARBITRATOR_BOUND, timestamp=self.clock.now(), actor=caller, arbitrator=arbitrator)
            logger.info("Arbitrator %s bound to ledger %s", short(arbitrator), short(self.address))

    # --- facilitator / merchant entry points ---

    def deposit(
        self,
        caller: bytes,
        escrow_id: bytes,
        buyer: bytes,
        merchant: bytes,
        amount: int,
        release_time: int,
    ) -> EscrowRecord:
        with self._atomic("deposit") as state:
            require_caller(caller, (self.facilitator,), ErrorCode.NOT_FACILITATOR, "only the facilitator may deposit")
            require_escrow_id(escrow_id)
            amount = _require_amount(amount)
            release_time = _require_timestamp(release_time, "release_time")
            require_address(buyer, "buyer")
            require_address(merchant, "merchant")
            if buyer == merchant:
                raise SpecError(ErrorCode.SELF_OPERATION, "buyer cannot be merchant")
            if escrow_id in state.escrows:
                raise SpecError(ErrorCode.ESCROW_EXISTS, "escrow id already used")

            new_total = state.committed_total + amount
            if new_total > U64_MAX:
                raise SpecError(ErrorCode.OVERFLOW, "committed total exceeds u64 max")
            balance = self.custody_balance()
            if balance < new_total:
                raise SpecError(
                    ErrorCode.INSUFFICIENT_CUSTODY,
                    f"custody {balance} cannot cover committed total {new_total}",
                )

            self._begin_commit("deposit")
            now = self.clock.now()
            record = EscrowRecord(
                id=escrow_id,
                buyer=buyer,
                merchant=merchant,
                amount=amount,
                created_at=now,
                release_time=release_time,
                status=EscrowStatus.HELD,
            )
            state.escrows[escrow_id] = record
            state.committed_total = new_total
            self._events.emit(
                EventKind.ESCROW_DEPOSITED,
                timestamp=now,
                actor=caller,
                escrow_id=escrow_id,
                buyer=buyer,
                merchant=merchant,
                amount=amount,
                release_time=release_time,
            )
            logger.info(
                "Escrow %s deposited: %d held for %s -> %s",
                short(escrow_id),
                amount,
                short(buyer),
                short(merchant),
            )
            return replace(record)

    def release(self, caller: bytes, escrow_id: bytes) -> EscrowRecord:
        with self._atomic("release") as state:
            record = self._get(state, escrow_id)
            require_caller(
                caller,
                (self.facilitator, record.merchant),
                ErrorCode.UNAUTHORIZED,
                "only the facilitator or the merchant may release",
            )
            if record.status != EscrowStatus.HELD:
                raise SpecError(ErrorCode.ESCROW_WRONG_STATE, f"escrow is {record.status.name}, not HELD")
            now = self.clock.now()
            if now < record.release_time:
                raise SpecError(ErrorCode.RELEASE_LOCKED, f"release locked until {record.release_time}")
            return self._settle(state, record, EscrowStatus.RELEASED, caller, via="release")

    def refund(self, caller: bytes, escrow_id: bytes) -> EscrowRecord:
        with self._atomic("refund") as state:
            require_caller(caller, (self.facilitator,), ErrorCode.NOT_FACILITATOR, "only the facilitator may refund")
            record = self._get(state, escrow_id)
            if record.status not in (EscrowStatus.HELD, EscrowStatus.DISPUTED):
                raise SpecError(ErrorCode.ESCROW_WRONG_STATE, f"escrow is {record.status.name}, not refundable")
            return self._settle(state, record, EscrowStatus.REFUNDED, caller, via="refund")

    # --- restricted arbitration channel ---

    def flag_dispute(self, caller: bytes, escrow_id: bytes) -> EscrowRecord:
        with self._atomic("flag_dispute") as state:
            self._require_arbitrator(state, caller)
            record = self._get(state, escrow_id)
            if record.status != EscrowStatus.HELD:
                raise SpecError(ErrorCode.ESCROW_WRONG_STATE, f"escrow is {record.status.name}, not HELD")
            self._begin_commit("flag_dispute")
            record.status = EscrowStatus.DISPUTED
            self._events.emit(
                EventKind.ESCROW_DISPUTED,
                timestamp=self.clock.now(),
                actor=caller,
                escrow_id=escrow_id,
                buyer=record.buyer,
                merchant=record.merchant,
                amount=record.amount,
            )
            logger.info("Escrow %s flagged as disputed", short(escrow_id))
            return replace(record)

    def release_disputed(self, caller: bytes, escrow_id: bytes) -> EscrowRecord:
        with self._atomic("release_disputed") as state:
            record = self._get_disputed(state, caller, escrow_id)
            return self._settle(state, record, EscrowStatus.RELEASED, caller, via="arbitration")

    def refund_disputed(self, caller: bytes, escrow_id: bytes) -> EscrowRecord:
        with self._atomic("refund_disputed") as state:
            record = self._get_disputed(state, caller, escrow_id)
            return self._settle(state, record, EscrowStatus.REFUNDED, caller, via="arbitration")

    # --- internals ---

    def _get(self, state: LedgerState, escrow_id: bytes) -> EscrowRecord:
        record = state.escrows.get(escrow_id)
        if record is None:
            raise SpecError(ErrorCode.ESCROW_NOT_FOUND, "escrow not found")
        return record

    def _require_arbitrator(self, state: LedgerState, caller: bytes) -> None:
        if state.arbitrator is None:
            raise SpecError(ErrorCode.ARBITRATOR_NOT_BOUND, "no arbitrator bound to this ledger")
        if caller != state.arbitrator:
            raise SpecError(ErrorCode.NOT_ARBITRATOR, "caller is not the bound arbitrator")

    def _get_disputed(self, state: LedgerState, caller: bytes, escrow_id: bytes) -> EscrowRecord:
        self._require_arbitrator(state, caller)
        record = self._get(state, escrow_id)
        if record.status != EscrowStatus.DISPUTED:
            raise SpecError(ErrorCode.ESCROW_WRONG_STATE, f"escrow is {record.status.name}, not DISPUTED")
        return record

    def _settle(
        self,
        state: LedgerState,
        record: EscrowRecord,
        status: EscrowStatus,
        caller: bytes,
        *,
        via: str,
    ) -> EscrowRecord:
        # Terminal mutation first, transfer last.
        self._begin_commit(f"settle ({via})")
        record.status = status
        state.committed_total -= record.amount
        settled = replace(record)

        if status == EscrowStatus.RELEASED:
            kind, payee = EventKind.ESCROW_RELEASED, record.merchant
        else:
            kind, payee = EventKind.ESCROW_REFUNDED, record.buyer
        self._events.emit(
            kind,
            timestamp=self.clock.now(),
            actor=caller,
            escrow_id=record.id,
            buyer=record.buyer,
            merchant=record.merchant,
            amount=record.amount,
            via=via,
            payee=payee,
        )

        self._transfer(payee, settled.amount)
        logger.info(
            "Escrow %s %s: %d paid to %s (via %s)",
            short(settled.id),
            status.name.lower(),
            settled.amount,
            short(payee),
            via,
        )
        return settled

    def _transfer(self, to: bytes, amount: int) -> None:
        try:
            with self._guard.transfer():
                ok = self.custodian.transfer(to, amount)
        except SpecError:
            raise
        except Exception as exc:
            raise SpecError(ErrorCode.TRANSFER_FAILED, f"custodian raised {exc!r}") from exc
        if not ok:
            raise SpecError(ErrorCode.TRANSFER_FAILED, f"transfer of {amount} to {to.hex()} failed")
