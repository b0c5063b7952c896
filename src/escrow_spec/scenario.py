"""
Scenario replay for the escrow ledger and dispute arbitration.

A scenario is a YAML document describing the windows, the initial custody
funding and an ordered list of steps. Each step names an operation, a caller
(test-account name or hex address), its arguments, an optional absolute time
``at`` and the expected outcome (``ok`` or an ``ErrorCode`` name).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Union

import yaml
from blake3 import blake3

from .arbitration import DisputeArbitration
from .clock import ManualClock
from .custodian import InMemoryCustodian
from .errors import ErrorCode, SpecError
from .fixtures_io import event_to_json, state_to_json
from .ledger import EscrowLedger
from .settings import ArbitrationSettings
from .state_digest import compute_state_digest
from .test_accounts import ADMIN, ARBITRATION, CUSTODY, FACILITATOR, NAMES, resolve_account
from .transition import TransitionResult

logger = logging.getLogger(__name__)

_EXPECT_OK = "ok"


def escrow_id_from_label(label: Union[str, bytes]) -> bytes:
    """Escrow ids in scenarios are 64-char hex or free labels hashed to 32 bytes."""
    if isinstance(label, bytes):
        return label
    text = str(label)
    if len(text) == 64:
        try:
            return bytes.fromhex(text)
        except ValueError:
            pass
    return blake3(text.encode("utf-8")).digest()


@dataclass
class StepOutcome:
    index: int
    op: str
    caller: str
    at: int
    expect: str
    result: TransitionResult

    @property
    def actual(self) -> str:
        return _EXPECT_OK if self.result.ok else self.result.error.code.name

    @property
    def matched(self) -> bool:
        return self.actual == self.expect


@dataclass
class ScenarioReport:
    outcomes: list[StepOutcome] = field(default_factory=list)
    state: dict[str, Any] = field(default_factory=dict)
    events: list[dict[str, Any]] = field(default_factory=list)
    digest: str = ""

    @property
    def failures(self) -> list[StepOutcome]:
        return [o for o in self.outcomes if not o.matched]

    def to_json(self) -> dict[str, Any]:
        return {
            "digest": self.digest,
            "state": self.state,
            "events": self.events,
            "steps": [
                {
                    "index": o.index,
                    "op": o.op,
                    "caller": o.caller,
                    "at": o.at,
                    "expect": o.expect,
                    "actual": o.actual,
                    "message": o.result.error.message if o.result.error else None,
                }
                for o in self.outcomes
            ],
        }


class ScenarioRunner:
    """Builds a ledger/arbitration pair from a scenario and replays its steps."""

    def __init__(self, scenario: dict[str, Any], stop_on_failure: bool = False):
        if not isinstance(scenario, dict):
            raise SpecError(ErrorCode.INVALID_CONFIG, "scenario must be a mapping")
        self.scenario = scenario
        self.stop_on_failure = stop_on_failure

        self.settings = ArbitrationSettings.from_mapping(scenario.get("settings"))
        self.clock = ManualClock(int(scenario.get("start", 0)))
        self.custodian = InMemoryCustodian(holder=CUSTODY)
        self.ledger = EscrowLedger(self.custodian, FACILITATOR, self.clock, address=CUSTODY)
        self.arbitration = DisputeArbitration(
            self.ledger, ADMIN, self.settings, self.clock, address=ARBITRATION
        )

        self.custodian.mint(CUSTODY, int(scenario.get("custody", 0)))
        for name, amount in (scenario.get("balances") or {}).items():
            self.custodian.mint(resolve_account(name), int(amount))
        if scenario.get("auto_bind", True):
            self.ledger.bind_arbitrator(FACILITATOR, self.arbitration.address)

        self._ops: dict[str, Callable[[bytes, dict[str, Any]], Any]] = {
            "bind_arbitrator": self._bind_arbitrator,
            "deposit": self._deposit,
            "release": self._release,
            "refund": self._refund,
            "open_dispute": self._open_dispute,
            "respond": self._respond,
            "resolve": self._resolve,
            "auto_resolve": self._auto_resolve,
            "fund_custody": self._fund_custody,
        }

    @classmethod
    def from_file(cls, path: Union[str, Path], stop_on_failure: bool = False) -> "ScenarioRunner":
        return cls(load_scenario(path), stop_on_failure=stop_on_failure)

    def run(self) -> ScenarioReport:
        report = ScenarioReport()
        for index, step in enumerate(self.scenario.get("steps") or []):
            outcome = self._run_step(index, step)
            report.outcomes.append(outcome)
            if outcome.matched:
                logger.debug("step %d %s -> %s", index, outcome.op, outcome.actual)
            else:
                logger.error(
                    "step %d %s: expected %s, got %s", index, outcome.op, outcome.expect, outcome.actual
                )
                if self.stop_on_failure:
                    break

        report.state = state_to_json(self.ledger, self.arbitration)
        report.events = [event_to_json(ev) for ev in self.ledger.events]
        report.digest = compute_state_digest(report.state)
        return report

    def _run_step(self, index: int, step: dict[str, Any]) -> StepOutcome:
        op = step.get("op")
        if op not in self._ops:
            raise SpecError(ErrorCode.INVALID_CONFIG, f"step {index}: unknown op {op!r}")
        try:
            if "at" in step:
                self.clock.set(int(step["at"]))
            if "advance" in step:
                self.clock.advance(int(step["advance"]))
        except ValueError as exc:
            raise SpecError(ErrorCode.INVALID_CONFIG, f"step {index}: bad time: {exc}") from exc

        try:
            caller = resolve_account(step.get("caller", "facilitator"))
        except ValueError as exc:
            raise SpecError(ErrorCode.INVALID_CONFIG, f"step {index}: bad caller: {exc}") from exc
        expect = str(step.get("expect", _EXPECT_OK))
        if expect != _EXPECT_OK and expect not in ErrorCode.__members__:
            raise SpecError(ErrorCode.INVALID_CONFIG, f"step {index}: unknown expected error {expect!r}")

        try:
            value = self._ops[op](caller, dict(step.get("args") or {}))
            result = TransitionResult.success(value)
        except SpecError as exc:
            result = TransitionResult.failure(exc)
        except (KeyError, ValueError) as exc:
            raise SpecError(ErrorCode.INVALID_CONFIG, f"step {index} ({op}): bad arguments: {exc}") from exc
        return StepOutcome(
            index=index,
            op=op,
            caller=NAMES.get(caller, caller.hex()),
            at=self.clock.now(),
            expect=expect,
            result=result,
        )

    # --- op adapters ---

    def _dispute_id(self, args: dict[str, Any]) -> bytes:
        if "dispute_id" in args:
            return bytes.fromhex(str(args["dispute_id"]))
        escrow_id = escrow_id_from_label(args["escrow_id"])
        dispute_id = self.arbitration.dispute_for_escrow(escrow_id)
        if dispute_id is None:
            raise SpecError(ErrorCode.DISPUTE_NOT_FOUND, "no dispute for escrow")
        return dispute_id

    def _bind_arbitrator(self, caller: bytes, args: dict[str, Any]) -> None:
        target = resolve_account(args.get("arbitrator", "arbitration"))
        return self.ledger.bind_arbitrator(caller, target)

    def _deposit(self, caller: bytes, args: dict[str, Any]) -> Any:
        now = self.clock.now()
        release_time = args.get("release_time")
        if release_time is None:
            release_time = now + int(args.get("release_after", 0))
        return self.ledger.deposit(
            caller,
            escrow_id_from_label(args["escrow_id"]),
            resolve_account(args["buyer"]),
            resolve_account(args["merchant"]),
            int(args["amount"]),
            int(release_time),
        )

    def _release(self, caller: bytes, args: dict[str, Any]) -> Any:
        return self.ledger.release(caller, escrow_id_from_label(args["escrow_id"]))

    def _refund(self, caller: bytes, args: dict[str, Any]) -> Any:
        return self.ledger.refund(caller, escrow_id_from_label(args["escrow_id"]))

    def _open_dispute(self, caller: bytes, args: dict[str, Any]) -> Any:
        return self.arbitration.open_dispute(
            caller, escrow_id_from_label(args["escrow_id"]), str(args.get("reason", ""))
        )

    def _respond(self, caller: bytes, args: dict[str, Any]) -> Any:
        evidence = args.get("evidence", "")
        if isinstance(evidence, str):
            evidence = evidence.encode("utf-8")
        return self.arbitration.respond(caller, self._dispute_id(args), evidence)

    def _resolve(self, caller: bytes, args: dict[str, Any]) -> Any:
        favor_buyer = args["favor_buyer"]
        if not isinstance(favor_buyer, bool):
            raise ValueError(f"favor_buyer must be true or false, got {favor_buyer!r}")
        return self.arbitration.resolve(caller, self._dispute_id(args), favor_buyer)

    def _auto_resolve(self, caller: bytes, args: dict[str, Any]) -> Any:
        return self.arbitration.auto_resolve(caller, self._dispute_id(args))

    def _fund_custody(self, caller: bytes, args: dict[str, Any]) -> bool:
        amount = int(args["amount"])
        if not self.custodian.fund_custody(caller, amount):
            raise SpecError(ErrorCode.TRANSFER_FAILED, "custody funding transfer failed")
        return True


def load_scenario(source: Union[str, Path]) -> dict[str, Any]:
    text = Path(source).read_text()
    data = yaml.safe_load(text)
    if not isinstance(data, dict):
        raise SpecError(ErrorCode.INVALID_CONFIG, "scenario must be a mapping")
    return data


def run_scenario(
    scenario: dict[str, Any], stop_on_failure: bool = False
) -> ScenarioReport:
    return ScenarioRunner(scenario, stop_on_failure=stop_on_failure).run()
