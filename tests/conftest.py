"""Shared fixtures for the escrow ledger and arbitration specs."""

from __future__ import annotations

from typing import Callable, Optional

import pytest

from escrow_spec.arbitration import DisputeArbitration
from escrow_spec.clock import ManualClock
from escrow_spec.config import ONE_DAY
from escrow_spec.custodian import InMemoryCustodian
from escrow_spec.fixtures_io import state_to_json
from escrow_spec.ledger import EscrowLedger
from escrow_spec.settings import ArbitrationSettings
from escrow_spec.state_digest import compute_state_digest
from escrow_spec.test_accounts import ADMIN, ALICE, ARBITRATION, BOB, CUSTODY, FACILITATOR
from escrow_spec.types import EscrowRecord

START = 1_700_000_000
FACILITATOR_FLOAT = 1_000_000

DISPUTE_WINDOW = 7 * ONE_DAY
RESPONSE_WINDOW = 3 * ONE_DAY
AUTO_RESOLVE_TIMEOUT = 14 * ONE_DAY


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def custodian() -> InMemoryCustodian:
    c = InMemoryCustodian(holder=CUSTODY)
    c.mint(FACILITATOR, FACILITATOR_FLOAT)
    return c


@pytest.fixture
def ledger(custodian: InMemoryCustodian, clock: ManualClock) -> EscrowLedger:
    return EscrowLedger(custodian, FACILITATOR, clock, address=CUSTODY)


@pytest.fixture
def settings() -> ArbitrationSettings:
    return ArbitrationSettings(
        dispute_window=DISPUTE_WINDOW,
        response_window=RESPONSE_WINDOW,
        auto_resolve_timeout=AUTO_RESOLVE_TIMEOUT,
    )


@pytest.fixture
def arbitration(
    ledger: EscrowLedger, settings: ArbitrationSettings, clock: ManualClock
) -> DisputeArbitration:
    arb = DisputeArbitration(ledger, ADMIN, settings, clock, address=ARBITRATION)
    ledger.bind_arbitrator(FACILITATOR, arb.address)
    return arb


@pytest.fixture
def make_escrow(
    ledger: EscrowLedger, custodian: InMemoryCustodian, clock: ManualClock
) -> Callable[..., EscrowRecord]:
    """Fund custody with exactly `amount`, then deposit it."""

    def _make_escrow(
        escrow_id: bytes,
        amount: int = 100,
        release_time: Optional[int] = None,
        buyer: bytes = ALICE,
        merchant: bytes = BOB,
    ) -> EscrowRecord:
        assert custodian.fund_custody(FACILITATOR, amount)
        if release_time is None:
            release_time = clock.now()
        return ledger.deposit(FACILITATOR, escrow_id, buyer, merchant, amount, release_time)

    return _make_escrow


@pytest.fixture
def digest(ledger: EscrowLedger) -> Callable[..., str]:
    def _digest(arbitration: Optional[DisputeArbitration] = None) -> str:
        return compute_state_digest(state_to_json(ledger, arbitration))

    return _digest
