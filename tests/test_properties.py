"""Randomized operation sequences checked against the ledger-wide invariants."""

from __future__ import annotations

import random

import pytest

from escrow_spec.config import ONE_DAY
from escrow_spec.errors import SpecError
from escrow_spec.events import EventKind
from escrow_spec.test_accounts import ADMIN, ALICE, BOB, CAROL, DAVE, EVE, FACILITATOR, MALLORY
from escrow_spec.types import EscrowStatus

PARTIES = (ALICE, BOB, CAROL, DAVE, EVE)
CALLERS = (FACILITATOR, ADMIN, ALICE, BOB, CAROL, MALLORY)


def _total_supply(custodian) -> int:
    return sum(custodian.balances.values())


def _random_step(rng, arbitration, ledger, custodian, clock, ids) -> None:
    choice = rng.randrange(8)
    if choice == 0 or not ids:
        escrow_id = rng.randbytes(32)
        buyer, merchant = rng.sample(PARTIES, 2)
        amount = rng.randint(1, 1_000)
        # Sometimes under-fund custody to exercise the coverage check.
        custodian.fund_custody(FACILITATOR, amount if rng.random() < 0.8 else amount // 2)
        ledger.deposit(FACILITATOR, escrow_id, buyer, merchant, amount, clock.now() + rng.choice((0, ONE_DAY)))
        ids.append(escrow_id)
        return

    escrow_id = rng.choice(ids)
    record = ledger.inspect(escrow_id)
    dispute_id = arbitration.dispute_for_escrow(escrow_id)
    caller = rng.choice(CALLERS)
    if choice == 1:
        ledger.release(rng.choice((FACILITATOR, record.merchant, caller)), escrow_id)
    elif choice == 2:
        ledger.refund(rng.choice((FACILITATOR, caller)), escrow_id)
    elif choice == 3:
        arbitration.open_dispute(rng.choice((record.buyer, caller)), escrow_id, "random dispute")
    elif choice == 4 and dispute_id is not None:
        arbitration.respond(rng.choice((record.merchant, caller)), dispute_id, b"evidence")
    elif choice == 5 and dispute_id is not None:
        arbitration.resolve(rng.choice((ADMIN, caller)), dispute_id, rng.random() < 0.5)
    elif choice == 6 and dispute_id is not None:
        arbitration.auto_resolve(caller, dispute_id)
    else:
        clock.advance(rng.choice((60, ONE_DAY, 4 * ONE_DAY)))


@pytest.mark.parametrize("seed", range(12))
def test_random_sequences_preserve_invariants(seed, arbitration, ledger, custodian, clock) -> None:
    rng = random.Random(seed)
    supply = _total_supply(custodian)
    ids: list[bytes] = []
    terminal: dict[bytes, EscrowStatus] = {}

    for _ in range(150):
        try:
            _random_step(rng, arbitration, ledger, custodian, clock, ids)
        except SpecError:
            pass

        # Conservation
        assert ledger.check_conservation() >= 0
        committed = sum(
            r.amount for r in ledger.snapshot().escrows.values() if r.status.is_committed
        )
        assert committed == ledger.committed_total
        assert _total_supply(custodian) == supply

        # Exclusivity: terminal statuses never change.
        for escrow_id in ids:
            status = ledger.status_of(escrow_id)
            if escrow_id in terminal:
                assert status == terminal[escrow_id]
            elif status.is_terminal:
                terminal[escrow_id] = status

    # No double settlement, and at most one dispute per escrow.
    for escrow_id in ids:
        settlements = [
            e for e in ledger.events.history(escrow_id=escrow_id)
            if e.kind in (EventKind.ESCROW_RELEASED, EventKind.ESCROW_REFUNDED)
        ]
        assert len(settlements) <= 1
        opened = ledger.events.history(escrow_id=escrow_id, kind=EventKind.DISPUTE_OPENED)
        assert len(opened) <= 1

    snapshot = arbitration.snapshot()
    assert len(snapshot.dispute_by_escrow) == len(snapshot.disputes)
    for dispute in snapshot.disputes.values():
        status = ledger.status_of(dispute.escrow_id)
        if dispute.is_resolved:
            assert status.is_terminal
