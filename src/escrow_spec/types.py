"""Core types for the escrow ledger and dispute arbitration specs.

Escrow records and dispute records are plain dataclasses held in per-component
state containers (`LedgerState`, `ArbitrationState`). Components hand out
copies, never the stored objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Optional


class EscrowStatus(IntEnum):
    NONE = 0
    HELD = 1
    RELEASED = 2
    REFUNDED = 3
    DISPUTED = 4

    @property
    def is_terminal(self) -> bool:
        return self in (EscrowStatus.RELEASED, EscrowStatus.REFUNDED)

    @property
    def is_committed(self) -> bool:
        return self in (EscrowStatus.HELD, EscrowStatus.DISPUTED)


class Resolution(IntEnum):
    NONE = 0
    BUYER_FAVORED = 1
    MERCHANT_FAVORED = 2
    AUTO_RESOLVED = 3


# --- Escrow ledger ---


@dataclass
class EscrowRecord:
    id: bytes
    buyer: bytes
    merchant: bytes
    amount: int
    created_at: int = 0
    release_time: int = 0
    status: EscrowStatus = EscrowStatus.HELD


@dataclass
class LedgerState:
    escrows: dict[bytes, EscrowRecord] = field(default_factory=dict)
    committed_total: int = 0
    # Identity of the arbitration instance allowed to use the restricted channel.
    arbitrator: Optional[bytes] = None


# --- Dispute arbitration ---


@dataclass
class DisputeRecord:
    id: bytes
    escrow_id: bytes
    buyer: bytes
    merchant: bytes
    reason: str
    opened_at: int = 0
    merchant_evidence: Optional[bytes] = None
    responded_at: int = 0
    resolution: Resolution = Resolution.NONE
    resolved_at: int = 0

    @property
    def is_resolved(self) -> bool:
        return self.resolution != Resolution.NONE


@dataclass
class ArbitrationState:
    disputes: dict[bytes, DisputeRecord] = field(default_factory=dict)
    dispute_by_escrow: dict[bytes, bytes] = field(default_factory=dict)
    next_nonce: int = 0
