"""Scenario replay and command-line specs."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from escrow_spec.cli import main
from escrow_spec.errors import ErrorCode, SpecError
from escrow_spec.scenario import ScenarioRunner, escrow_id_from_label, run_scenario
from escrow_spec.test_accounts import ALICE, BOB

SCENARIOS_DIR = Path(__file__).resolve().parent.parent / "scenarios"

BASIC = {
    "start": 1_700_000_000,
    "custody": 100,
    "steps": [
        {"op": "deposit", "args": {"escrow_id": "order-1", "buyer": "alice", "merchant": "bob", "amount": 100}},
        {"op": "open_dispute", "caller": "alice", "args": {"escrow_id": "order-1", "reason": "damaged"}},
        {"op": "resolve", "caller": "admin", "args": {"escrow_id": "order-1", "favor_buyer": False}},
    ],
}


def _write(tmp_path: Path, scenario: dict) -> Path:
    path = tmp_path / "scenario.yaml"
    path.write_text(yaml.safe_dump(scenario))
    return path


@pytest.mark.parametrize("path", sorted(SCENARIOS_DIR.glob("*.yaml")), ids=lambda p: p.stem)
def test_shipped_scenarios_pass(path: Path) -> None:
    report = ScenarioRunner.from_file(path).run()
    assert report.outcomes
    assert report.failures == []


def test_run_scenario_reports_state() -> None:
    report = run_scenario(BASIC)
    assert [o.actual for o in report.outcomes] == ["ok", "ok", "ok"]
    assert report.state["ledger"]["committed_total"] == 0
    escrow = report.state["ledger"]["escrows"][0]
    assert escrow["id"] == escrow_id_from_label("order-1").hex()
    assert escrow["status"] == "RELEASED"
    assert report.state["arbitration"]["disputes"][0]["resolution"] == "MERCHANT_FAVORED"
    assert [e["kind"] for e in report.events][-2:] == ["dispute_resolved", "escrow_released"]


def test_runner_custodian_balances() -> None:
    runner = ScenarioRunner(BASIC)
    runner.run()
    assert runner.custodian.balance_of(BOB) == 100
    assert runner.custodian.balance_of(ALICE) == 0


def test_escrow_id_labels() -> None:
    raw = bytes(range(32))
    assert escrow_id_from_label(raw.hex()) == raw
    assert escrow_id_from_label(raw) == raw
    assert len(escrow_id_from_label("order-1")) == 32
    assert escrow_id_from_label("order-1") != escrow_id_from_label("order-2")


def test_stop_on_failure() -> None:
    scenario = dict(BASIC, steps=[dict(BASIC["steps"][0], expect="ESCROW_EXISTS")] + BASIC["steps"][1:])
    assert len(run_scenario(scenario).outcomes) == 3
    report = run_scenario(scenario, stop_on_failure=True)
    assert len(report.outcomes) == 1
    assert report.failures[0].actual == "ok"


@pytest.mark.parametrize(
    "step",
    [
        {"op": "teleport"},
        {"op": "deposit", "args": {"escrow_id": "x"}},
        {"op": "release", "caller": "nobody-at-all", "args": {"escrow_id": "x"}},
        {"op": "release", "expect": "NOT_A_CODE", "args": {"escrow_id": "x"}},
        {"op": "release", "at": 0, "args": {"escrow_id": "x"}},
        {"op": "resolve", "caller": "admin", "args": {"escrow_id": "x", "favor_buyer": "false"}},
        {"op": "resolve", "caller": "admin", "args": {"escrow_id": "x", "favor_buyer": 0}},
    ],
)
def test_invalid_steps_rejected(step: dict) -> None:
    with pytest.raises(SpecError) as exc:
        run_scenario({"start": 100, "steps": [step]})
    assert exc.value.code == ErrorCode.INVALID_CONFIG


def test_cli_replay_pass_writes_report(tmp_path: Path) -> None:
    output = tmp_path / "out" / "report.json"
    result = CliRunner().invoke(main, ["replay", str(_write(tmp_path, BASIC)), "--output", str(output)])

    assert result.exit_code == 0, result.output
    assert "[FAIL]" not in result.output
    assert "state digest" in result.output
    report = json.loads(output.read_text())
    assert report["digest"] == run_scenario(BASIC).digest
    assert [s["actual"] for s in report["steps"]] == ["ok", "ok", "ok"]


def test_cli_replay_mismatch_exits_one(tmp_path: Path) -> None:
    scenario = dict(BASIC, steps=BASIC["steps"] + [
        {"op": "resolve", "caller": "admin", "args": {"escrow_id": "order-1", "favor_buyer": True}},
    ])
    result = CliRunner().invoke(main, ["replay", str(_write(tmp_path, scenario))])

    assert result.exit_code == 1
    assert "[FAIL]" in result.output
    assert "expected ok" in result.output


def test_cli_replay_invalid_scenario_exits_two(tmp_path: Path) -> None:
    path = tmp_path / "scenario.yaml"
    path.write_text("- just\n- a list\n")
    result = CliRunner().invoke(main, ["replay", str(path)])
    assert result.exit_code == 2


def test_cli_replay_prints_events(tmp_path: Path) -> None:
    result = CliRunner().invoke(main, ["replay", str(_write(tmp_path, BASIC)), "--events"])
    assert result.exit_code == 0
    assert '"kind": "escrow_deposited"' in result.output


def test_cli_settings_from_file(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("dispute_window: 10\n")
    result = CliRunner().invoke(main, ["settings", "--file", str(path)])
    assert result.exit_code == 0
    assert "dispute_window: 10" in result.output
    assert "response_window: 259200" in result.output


def test_cli_settings_from_env() -> None:
    result = CliRunner().invoke(main, ["settings"], env={"ESCROW_AUTO_RESOLVE_TIMEOUT": "99"})
    assert result.exit_code == 0
    assert "auto_resolve_timeout: 99" in result.output


def test_cli_settings_invalid(tmp_path: Path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("dispute_window: -1\n")
    result = CliRunner().invoke(main, ["settings", "--file", str(path)])
    assert result.exit_code == 1
    assert "INVALID_CONFIG" in result.output
