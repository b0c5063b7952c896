#!/usr/bin/env python3
"""
Escrow spec command line.

Replays YAML scenarios against an in-memory ledger/arbitration pair and
reports per-step outcomes, the final state digest and the audit trail.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from .errors import SpecError
from .scenario import ScenarioReport, ScenarioRunner
from .settings import ArbitrationSettings

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)


def _print_report(report: ScenarioReport, show_events: bool) -> None:
    for o in report.outcomes:
        mark = "PASS" if o.matched else "FAIL"
        line = f"[{mark}] #{o.index:<3} t={o.at:<10} {o.op:<16} by {o.caller:<12} -> {o.actual}"
        if not o.matched:
            line += f" (expected {o.expect})"
        click.echo(line)

    ledger = report.state.get("ledger", {})
    click.echo("")
    click.echo(f"committed total : {ledger.get('committed_total', 0)}")
    click.echo(f"custody balance : {ledger.get('custody_balance', 0)}")
    click.echo(f"state digest    : {report.digest}")
    click.echo(f"steps           : {len(report.outcomes)} run, {len(report.failures)} mismatched")

    if show_events:
        click.echo("")
        for ev in report.events:
            click.echo(json.dumps(ev, sort_keys=True))


@click.group()
def main() -> None:
    """Escrow ledger and dispute arbitration tools."""


@main.command()
@click.argument("scenario", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the full report (state, events, steps) as JSON",
)
@click.option("--events", "show_events", is_flag=True, help="Print the audit trail")
@click.option("--verbose", is_flag=True, help="Enable verbose output")
@click.option("--stop-on-failure", is_flag=True, help="Stop on first mismatched step")
def replay(
    scenario: Path,
    output: Optional[Path],
    show_events: bool,
    verbose: bool,
    stop_on_failure: bool,
) -> None:
    """Replay SCENARIO (YAML) and check every step's expected outcome."""
    _configure_logging(verbose)
    try:
        report = ScenarioRunner.from_file(scenario, stop_on_failure=stop_on_failure).run()
    except SpecError as exc:
        logger.error("Scenario %s is invalid: %s", scenario, exc)
        sys.exit(2)

    _print_report(report, show_events)
    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(report.to_json(), indent=2))
        logger.info("Report written to %s", output)

    sys.exit(0 if not report.failures else 1)


@main.command()
@click.option(
    "--file",
    "settings_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML settings file (defaults to environment variables)",
)
def settings(settings_file: Optional[Path]) -> None:
    """Print the effective arbitration windows."""
    try:
        loaded = (
            ArbitrationSettings.from_yaml(settings_file)
            if settings_file is not None
            else ArbitrationSettings.from_env()
        )
    except SpecError as exc:
        raise click.ClickException(str(exc)) from exc
    for name, value in loaded.to_dict().items():
        click.echo(f"{name}: {value}")


if __name__ == "__main__":
    main()
