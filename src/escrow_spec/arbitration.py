"""Dispute arbitration over escrow ledger records.

Per-dispute state machine::

    OPENED --respond--> RESPONDED
    OPENED | RESPONDED --resolve--> BUYER_FAVORED | MERCHANT_FAVORED
    OPENED | RESPONDED --auto_resolve--> AUTO_RESOLVED

Opening a dispute flips the escrow to DISPUTED through the ledger's restricted
channel; every resolution settles it through the same channel. Auto-resolution
always refunds the buyer, whether or not the merchant responded.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from blake3 import blake3

from .clock import Clock
from .config import DISPUTE_ID_DOMAIN, MAX_EVIDENCE_LEN, MAX_REASON_LEN
from .errors import ErrorCode, SpecError
from .events import EventKind, EventLog
from .identity import derive_address, require_address, require_caller, short
from .ledger import EscrowLedger
from .settings import ArbitrationSettings
from .transition import StateMachine
from .types import ArbitrationState, DisputeRecord, EscrowStatus, Resolution

logger = logging.getLogger(__name__)


def _require_reason(reason: object) -> str:
    if not isinstance(reason, str) or not reason.strip():
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "dispute reason must be non-empty text")
    if len(reason.encode("utf-8")) > MAX_REASON_LEN:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "dispute reason too long")
    return reason


def _require_evidence(evidence: object) -> bytes:
    if isinstance(evidence, bytearray):
        evidence = bytes(evidence)
    if not isinstance(evidence, bytes) or not evidence:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "evidence must be non-empty bytes")
    if len(evidence) > MAX_EVIDENCE_LEN:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "evidence too large")
    return evidence


class DisputeArbitration(StateMachine[ArbitrationState]):
    def __init__(
        self,
        ledger: EscrowLedger,
        admin: bytes,
        settings: Optional[ArbitrationSettings] = None,
        clock: Optional[Clock] = None,
        *,
        address: Optional[bytes] = None,
        events: Optional[EventLog] = None,
    ):
        super().__init__(
            ArbitrationState(),
            events if events is not None else ledger.events,
            guard=ledger.guard,
        )
        self.ledger = ledger
        self.admin = require_address(admin, "admin")
        self.settings = settings if settings is not None else ArbitrationSettings()
        self.clock = clock if clock is not None else ledger.clock
        if address is None:
            address = derive_address(b"dispute-arbitration/" + ledger.address)
        self.address = require_address(address, "arbitration address")

    # --- queries ---

    def get_dispute(self, dispute_id: bytes) -> Optional[DisputeRecord]:
        with self._lock:
            dispute = self._state.disputes.get(dispute_id)
            return replace(dispute) if dispute is not None else None

    def dispute_for_escrow(self, escrow_id: bytes) -> Optional[bytes]:
        with self._lock:
            return self._state.dispute_by_escrow.get(escrow_id)

    def dispute_ids(self) -> list[bytes]:
        with self._lock:
            return list(self._state.disputes)

    def snapshot(self) -> ArbitrationState:
        with self._lock:
            state = self._state
            return ArbitrationState(
                disputes={k: replace(v) for k, v in state.disputes.items()},
                dispute_by_escrow=dict(state.dispute_by_escrow),
                next_nonce=state.next_nonce,
            )

    # --- OPEN ---

    def open_dispute(self, caller: bytes, escrow_id: bytes, reason: str) -> DisputeRecord:
        with self._atomic("open_dispute") as state:
            # Buyer and status are read live from the ledger, never cached.
            escrow = self.ledger.inspect(escrow_id)
            if escrow is None:
                raise SpecError(ErrorCode.ESCROW_NOT_FOUND, "escrow not found")
            if caller != escrow.buyer:
                raise SpecError(ErrorCode.NOT_BUYER, "only the escrow's buyer may open a dispute")
            reason = _require_reason(reason)
            if escrow_id in state.dispute_by_escrow:
                raise SpecError(ErrorCode.DISPUTE_EXISTS, "escrow already has a dispute")
            if escrow.status != EscrowStatus.HELD:
                raise SpecError(ErrorCode.ESCROW_WRONG_STATE, f"escrow is {escrow.status.name}, not HELD")
            now = self.clock.now()
            deadline = escrow.created_at + self.settings.dispute_window
            if now > deadline:
                raise SpecError(ErrorCode.DISPUTE_WINDOW_CLOSED, f"dispute window closed at {deadline}")

            self._begin_commit("open_dispute")
            dispute = DisputeRecord(
                id=self._next_dispute_id(state, escrow_id),
                escrow_id=escrow_id,
                buyer=escrow.buyer,
                merchant=escrow.merchant,
                reason=reason,
                opened_at=now,
            )
            state.disputes[dispute.id] = dispute
            state.dispute_by_escrow[escrow_id] = dispute.id
            self._events.emit(
                EventKind.DISPUTE_OPENED,
                timestamp=now,
                actor=caller,
                escrow_id=escrow_id,
                dispute_id=dispute.id,
                buyer=dispute.buyer,
                merchant=dispute.merchant,
                amount=escrow.amount,
                reason=reason,
            )

            # A rejected flag unwinds the record, the index and the nonce above.
            self.ledger.flag_dispute(self.address, escrow_id)
            logger.info("Dispute %s opened on escrow %s", short(dispute.id), short(escrow_id))
            return replace(dispute)

    def _next_dispute_id(self, state: ArbitrationState, escrow_id: bytes) -> bytes:
        nonce = state.next_nonce
        state.next_nonce += 1
        buf = bytearray()
        buf += DISPUTE_ID_DOMAIN
        buf += self.address
        buf += nonce.to_bytes(8, "big")
        buf += escrow_id
        dispute_id = blake3(buf).digest()
        if dispute_id in state.disputes:
            raise SpecError(ErrorCode.INTERNAL_ERROR, "dispute id collision")
        return dispute_id

    # --- RESPOND ---

    def respond(self, caller: bytes, dispute_id: bytes, evidence: bytes) -> DisputeRecord:
        with self._atomic("respond") as state:
            dispute = self._get(state, dispute_id)
            require_caller(caller, (dispute.merchant,), ErrorCode.NOT_MERCHANT, "only the merchant may respond")
            if dispute.is_resolved:
                raise SpecError(ErrorCode.DISPUTE_RESOLVED, "dispute already resolved")
            if dispute.merchant_evidence is not None:
                raise SpecError(ErrorCode.ALREADY_RESPONDED, "merchant already responded")
            now = self.clock.now()
            deadline = dispute.opened_at + self.settings.response_window
            if now > deadline:
                raise SpecError(ErrorCode.RESPONSE_WINDOW_CLOSED, f"response window closed at {deadline}")
            evidence = _require_evidence(evidence)
            self._begin_commit("respond")

            dispute.merchant_evidence = evidence
            dispute.responded_at = now
            self._events.emit(
                EventKind.DISPUTE_RESPONDED,
                timestamp=now,
                actor=caller,
                escrow_id=dispute.escrow_id,
                dispute_id=dispute_id,
                buyer=dispute.buyer,
                merchant=dispute.merchant,
                evidence=evidence,
            )
            logger.info("Merchant responded to dispute %s", short(dispute_id))
            return replace(dispute)

    # --- RESOLVE ---

    def resolve(self, caller: bytes, dispute_id: bytes, favor_buyer: bool) -> DisputeRecord:
        with self._atomic("resolve") as state:
            require_caller(caller, (self.admin,), ErrorCode.NOT_ADMIN, "only the administrator may resolve")
            if not isinstance(favor_buyer, bool):
                raise SpecError(ErrorCode.INVALID_PAYLOAD, "favor_buyer must be a bool")
            dispute = self._get(state, dispute_id)
            if dispute.is_resolved:
                raise SpecError(ErrorCode.DISPUTE_RESOLVED, "dispute already resolved")
            resolution = Resolution.BUYER_FAVORED if favor_buyer else Resolution.MERCHANT_FAVORED
            return self._finalize(dispute, resolution, caller)

    def auto_resolve(self, caller: bytes, dispute_id: bytes) -> DisputeRecord:
        with self._atomic("auto_resolve") as state:
            dispute = self._get(state, dispute_id)
            if dispute.is_resolved:
                raise SpecError(ErrorCode.DISPUTE_RESOLVED, "dispute already resolved")
            ready_at = dispute.opened_at + self.settings.auto_resolve_timeout
            if self.clock.now() < ready_at:
                raise SpecError(ErrorCode.AUTO_RESOLVE_NOT_READY, f"auto-resolve available from {ready_at}")
            return self._finalize(dispute, Resolution.AUTO_RESOLVED, caller)

    # --- internals ---

    def _get(self, state: ArbitrationState, dispute_id: bytes) -> DisputeRecord:
        dispute = state.disputes.get(dispute_id)
        if dispute is None:
            raise SpecError(ErrorCode.DISPUTE_NOT_FOUND, "dispute not found")
        return dispute

    def _finalize(self, dispute: DisputeRecord, resolution: Resolution, caller: bytes) -> DisputeRecord:
        self._begin_commit(resolution.name.lower())
        now = self.clock.now()
        dispute.resolution = resolution
        dispute.resolved_at = now
        resolved = replace(dispute)
        self._events.emit(
            EventKind.DISPUTE_RESOLVED,
            timestamp=now,
            actor=caller,
            escrow_id=dispute.escrow_id,
            dispute_id=dispute.id,
            buyer=dispute.buyer,
            merchant=dispute.merchant,
            resolution=resolution.name,
            responded=dispute.merchant_evidence is not None,
        )

        if resolution == Resolution.MERCHANT_FAVORED:
            settled = self.ledger.release_disputed(self.address, dispute.escrow_id)
        else:
            settled = self.ledger.refund_disputed(self.address, dispute.escrow_id)
        logger.info(
            "Dispute %s resolved %s: escrow %s %s",
            short(resolved.id),
            resolution.name,
            short(settled.id),
            settled.status.name,
        )
        return resolved
