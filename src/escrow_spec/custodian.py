"""Asset custodian interface and an in-memory reference implementation.

The ledger only ever calls `transfer` (out of custody) and `balance_of`. A
transfer either moves the full amount and returns True, or moves nothing and
returns False (or raises).
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from .config import U64_MAX
from .identity import short

logger = logging.getLogger(__name__)

TransferHook = Callable[[bytes, int], Optional[bool]]


class AssetCustodian(Protocol):
    def transfer(self, to: bytes, amount: int) -> bool:
        """Move `amount` from the custody holder to `to`."""
        ...

    def balance_of(self, holder: bytes) -> int:
        ...


class InMemoryCustodian:
    """Balance table for a single fungible asset with one custody holder.

    `on_transfer` runs before the balances move. It may call back into the
    ledger (re-entrancy tests) and may veto the transfer by returning False.
    """

    def __init__(self, holder: bytes, on_transfer: Optional[TransferHook] = None):
        self.holder = holder
        self.balances: dict[bytes, int] = {}
        self.on_transfer = on_transfer
        self.transfers: list[tuple[bytes, bytes, int]] = []

    def balance_of(self, holder: bytes) -> int:
        return self.balances.get(holder, 0)

    def mint(self, to: bytes, amount: int) -> None:
        if amount < 0:
            raise ValueError("mint amount must be non-negative")
        new = self.balance_of(to) + amount
        if new > U64_MAX:
            raise ValueError("balance overflow")
        self.balances[to] = new

    def transfer_from(self, source: bytes, to: bytes, amount: int) -> bool:
        if amount < 0 or self.balance_of(source) < amount:
            return False
        if self.balance_of(to) + amount > U64_MAX:
            return False
        self.balances[source] = self.balance_of(source) - amount
        self.balances[to] = self.balance_of(to) + amount
        self.transfers.append((source, to, amount))
        return True

    def fund_custody(self, source: bytes, amount: int) -> bool:
        return self.transfer_from(source, self.holder, amount)

    def transfer(self, to: bytes, amount: int) -> bool:
        if self.on_transfer is not None:
            verdict = self.on_transfer(to, amount)
            if verdict is False:
                logger.debug("transfer to %s vetoed by hook", short(to))
                return False
        ok = self.transfer_from(self.holder, to, amount)
        if not ok:
            logger.debug("transfer of %d to %s failed", amount, short(to))
        return ok
