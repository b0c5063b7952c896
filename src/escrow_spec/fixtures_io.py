"""Helpers to serialize escrow/dispute state and the audit trail to JSON-friendly dicts."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from .arbitration import DisputeArbitration
from .events import Event
from .ledger import EscrowLedger
from .types import ArbitrationState, DisputeRecord, EscrowRecord, LedgerState


def _bytes_to_hex(v: Optional[bytes]) -> Optional[str]:
    return v.hex() if v is not None else None


def _plain(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


def escrow_to_json(record: EscrowRecord) -> dict[str, Any]:
    return {
        "id": record.id.hex(),
        "buyer": record.buyer.hex(),
        "merchant": record.merchant.hex(),
        "amount": record.amount,
        "created_at": record.created_at,
        "release_time": record.release_time,
        "status": record.status.name,
    }


def dispute_to_json(dispute: DisputeRecord) -> dict[str, Any]:
    return {
        "id": dispute.id.hex(),
        "escrow_id": dispute.escrow_id.hex(),
        "buyer": dispute.buyer.hex(),
        "merchant": dispute.merchant.hex(),
        "reason": dispute.reason,
        "merchant_evidence": _bytes_to_hex(dispute.merchant_evidence),
        "opened_at": dispute.opened_at,
        "responded_at": dispute.responded_at,
        "resolution": dispute.resolution.name,
        "resolved_at": dispute.resolved_at,
    }


def ledger_to_json(state: LedgerState, custody_balance: int) -> dict[str, Any]:
    return {
        "arbitrator": _bytes_to_hex(state.arbitrator),
        "committed_total": state.committed_total,
        "custody_balance": custody_balance,
        "escrows": [escrow_to_json(r) for _, r in sorted(state.escrows.items())],
    }


def arbitration_to_json(state: ArbitrationState) -> dict[str, Any]:
    return {
        "next_nonce": state.next_nonce,
        "disputes": [dispute_to_json(d) for _, d in sorted(state.disputes.items())],
    }


def event_to_json(event: Event) -> dict[str, Any]:
    out: dict[str, Any] = {
        "seq": event.seq,
        "kind": event.kind.value,
        "timestamp": event.timestamp,
        "actor": event.actor.hex(),
    }
    for name in ("escrow_id", "dispute_id", "buyer", "merchant"):
        value = getattr(event, name)
        if value is not None:
            out[name] = value.hex()
    if event.amount:
        out["amount"] = event.amount
    if event.data:
        out["data"] = _plain(event.data)
    return out


def state_to_json(
    ledger: EscrowLedger, arbitration: Optional[DisputeArbitration] = None
) -> dict[str, Any]:
    """Export a ledger (and optionally its arbitration component) as one document."""
    result: dict[str, Any] = {
        "ledger": ledger_to_json(ledger.snapshot(), ledger.custody_balance()),
    }
    if arbitration is not None:
        result["arbitration"] = arbitration_to_json(arbitration.snapshot())
    return result
