"""Canonical state digest implementation (v1)."""
from __future__ import annotations

from typing import Any

from blake3 import blake3

from .config import STATE_DIGEST_DOMAIN
from .types import EscrowStatus, Resolution


def _hex_to_bytes(value: str | None) -> bytes:
    if value is None:
        return b""
    if not isinstance(value, str):
        raise TypeError("hex value must be string")
    v = value[2:] if value.startswith(("0x", "0X")) else value
    if v == "":
        return b""
    return bytes.fromhex(v)


def _u64_be(value: int) -> bytes:
    if value < 0:
        raise ValueError("u64 must be non-negative")
    return int(value).to_bytes(8, "big", signed=False)


def _var_bytes(data: bytes) -> bytes:
    return _u64_be(len(data)) + data


def compute_state_digest(state: dict[str, Any]) -> str:
    """Compute state digest v1 from an exported state document.

    Fields are encoded in canonical order, records sorted by id, and the
    result hashed with BLAKE3-256. Event history is not part of the digest.
    """
    buf = bytearray(STATE_DIGEST_DOMAIN)

    ledger = state.get("ledger", {}) if isinstance(state, dict) else {}
    buf += _var_bytes(_hex_to_bytes(ledger.get("arbitrator")))
    buf += _u64_be(int(ledger.get("committed_total", 0)))
    buf += _u64_be(int(ledger.get("custody_balance", 0)))

    escrows = sorted(ledger.get("escrows", []), key=lambda e: _hex_to_bytes(e["id"]))
    buf += _u64_be(len(escrows))
    for e in escrows:
        buf += _hex_to_bytes(e["id"])
        buf += _hex_to_bytes(e["buyer"])
        buf += _hex_to_bytes(e["merchant"])
        for field in ("amount", "created_at", "release_time"):
            buf += _u64_be(int(e.get(field, 0)))
        buf += bytes([EscrowStatus[e["status"]]])

    arbitration = state.get("arbitration", {}) if isinstance(state, dict) else {}
    buf += _u64_be(int(arbitration.get("next_nonce", 0)))
    disputes = sorted(arbitration.get("disputes", []), key=lambda d: _hex_to_bytes(d["id"]))
    buf += _u64_be(len(disputes))
    for d in disputes:
        buf += _hex_to_bytes(d["id"])
        buf += _hex_to_bytes(d["escrow_id"])
        buf += _hex_to_bytes(d["buyer"])
        buf += _hex_to_bytes(d["merchant"])
        buf += _var_bytes(d.get("reason", "").encode("utf-8"))
        buf += _var_bytes(_hex_to_bytes(d.get("merchant_evidence")))
        for field in ("opened_at", "responded_at", "resolved_at"):
            buf += _u64_be(int(d.get(field, 0)))
        buf += bytes([Resolution[d["resolution"]]])

    return blake3(buf).hexdigest()
