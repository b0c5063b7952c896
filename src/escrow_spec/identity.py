"""Identity and authorization helpers shared by the ledger and arbitration.

Authorization is a comparison of the caller's address against an address the
component already stores; there is no role hierarchy.
"""

from __future__ import annotations

from typing import Iterable

from blake3 import blake3

from .config import ADDRESS_DOMAIN, ADDRESS_SIZE, ESCROW_ID_SIZE, ZERO_ADDRESS
from .errors import ErrorCode, SpecError


def derive_address(label: str | bytes) -> bytes:
    """Deterministic 32-byte address for a label (component or test identity)."""
    if isinstance(label, str):
        label = label.encode("utf-8")
    return blake3(ADDRESS_DOMAIN + bytes(label)).digest()


def require_address(value: object, what: str) -> bytes:
    if not isinstance(value, bytes) or len(value) != ADDRESS_SIZE:
        raise SpecError(ErrorCode.INVALID_ADDRESS, f"{what} must be a {ADDRESS_SIZE}-byte address")
    if value == ZERO_ADDRESS:
        raise SpecError(ErrorCode.INVALID_ADDRESS, f"{what} must not be the null address")
    return value


def require_escrow_id(value: object) -> bytes:
    if not isinstance(value, bytes) or len(value) != ESCROW_ID_SIZE:
        raise SpecError(ErrorCode.INVALID_FORMAT, f"escrow id must be {ESCROW_ID_SIZE} bytes")
    return value


def require_caller(caller: bytes, allowed: Iterable[bytes], code: ErrorCode, message: str) -> None:
    if caller not in tuple(allowed):
        raise SpecError(code, message)


def short(value: bytes | None) -> str:
    """Abbreviated hex for log lines."""
    if value is None:
        return "-"
    return value.hex()[:12]
