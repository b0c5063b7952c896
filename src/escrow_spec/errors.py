"""Escrow spec error codes and exceptions."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ErrorCategory(IntEnum):
    SUCCESS = 0x00
    VALIDATION = 0x01
    AUTHORIZATION = 0x02
    RESOURCE = 0x03
    NOT_FOUND = 0x04
    STATE = 0x05
    WINDOW = 0x06
    TRANSFER = 0x07
    CONFIG = 0x08
    INTERNAL = 0xFF


class ErrorCode(IntEnum):
    # Success
    SUCCESS = 0x0000

    # Validation
    INVALID_FORMAT = 0x0100
    INVALID_AMOUNT = 0x0101
    INVALID_ADDRESS = 0x0102
    INVALID_PAYLOAD = 0x0103
    SELF_OPERATION = 0x0104
    ESCROW_EXISTS = 0x0105

    # Authorization
    UNAUTHORIZED = 0x0200
    NOT_FACILITATOR = 0x0201
    NOT_ADMIN = 0x0202
    NOT_ARBITRATOR = 0x0203
    NOT_BUYER = 0x0204
    NOT_MERCHANT = 0x0205

    # Resource
    INSUFFICIENT_CUSTODY = 0x0300
    OVERFLOW = 0x0301
    CONSERVATION_VIOLATED = 0x0302

    # Not found
    ESCROW_NOT_FOUND = 0x0400
    DISPUTE_NOT_FOUND = 0x0401

    # State
    ESCROW_WRONG_STATE = 0x0500
    DISPUTE_EXISTS = 0x0501
    DISPUTE_RESOLVED = 0x0502
    ALREADY_RESPONDED = 0x0503
    ARBITRATOR_ALREADY_BOUND = 0x0504
    ARBITRATOR_NOT_BOUND = 0x0505

    # Window
    RELEASE_LOCKED = 0x0600
    DISPUTE_WINDOW_CLOSED = 0x0601
    RESPONSE_WINDOW_CLOSED = 0x0602
    AUTO_RESOLVE_NOT_READY = 0x0603

    # Transfer
    TRANSFER_FAILED = 0x0700
    TRANSFER_IN_PROGRESS = 0x0701

    # Config
    INVALID_CONFIG = 0x0800

    # Internal
    INTERNAL_ERROR = 0xFF00
    UNKNOWN = 0xFFFF

    @property
    def category(self) -> ErrorCategory:
        return ErrorCategory(self >> 8)


@dataclass(frozen=True)
class SpecError(Exception):
    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.name}({self.code:#06x}): {self.message}"

    @property
    def category(self) -> ErrorCategory:
        return self.code.category


# Allow Python's Exception machinery to set __traceback__/__context__/__cause__
# while keeping dataclass fields frozen.
_EXCEPTION_ATTRS = frozenset(
    ("__traceback__", "__context__", "__cause__", "__suppress_context__", "__notes__")
)
_frozen_setattr = SpecError.__setattr__


def _spec_error_setattr(self: SpecError, name: str, value: object) -> None:
    if name in _EXCEPTION_ATTRS:
        object.__setattr__(self, name, value)
    else:
        _frozen_setattr(self, name, value)


SpecError.__setattr__ = _spec_error_setattr  # type: ignore[method-assign]
