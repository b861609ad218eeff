"""Command-line interface for the sinking fund calculator.

This module uses the ``click`` library to implement a multi-command
interface. Every command reads a JSON input document describing the user's
obligations, fund balances, capacity and contribution cycle, runs one of the
engine operations and prints the result or exports it to a JSON file.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional

import click

from .data_models import EngineInput, RecurringObligation
from .engine import build_scenario_obligations, calculate_contributions, calculate_with_what_if
from .escalation import project_escalated_amounts
from .escalation_store import create_store_from_env
from .formatter import (
    print_comparison,
    print_contributions,
    print_projection,
    print_snapshot,
    print_timeline,
)
from .serialization import (
    engine_result_to_dict,
    load_engine_input,
    load_what_if_overrides,
    projection_to_dict,
    snapshot_to_dict,
    timeline_to_dict,
)
from .snapshot import generate_snapshot
from .timeline import project_timeline
from .utils import amount_from_str, parse_date

DATABASE_URL_ENV = "SINKING_FUND_DATABASE_URL"


def read_json(path: str) -> Dict[str, Any]:
    try:
        with Path(path).open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise click.BadParameter(f"Cannot read {path}: {exc}")


def load_input(path: str) -> EngineInput:
    try:
        return load_engine_input(read_json(path))
    except (KeyError, ValueError) as exc:
        raise click.BadParameter(f"Invalid input document {path}: {exc}")


def resolve_now(now: Optional[str], engine_input: EngineInput) -> date:
    """Pick the reference date: ``--now``, then the document, then today."""
    if now:
        try:
            return parse_date(now)
        except ValueError as exc:
            raise click.BadParameter(str(exc))
    if engine_input.now is not None:
        return engine_input.now
    return date.today()


def export_json(path: str, data: Any) -> None:
    target = Path(path)
    if target.suffix.lower() != ".json":
        raise click.BadParameter("Export must use .json extension")
    with target.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)
    click.echo(f"Exported to {target}")


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    help="Logging verbosity",
)
def cli(log_level: str) -> None:
    """Work out how much to set aside for upcoming bills."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


now_option = click.option("--now", "now", help="Reference date (YYYY-MM-DD); defaults to today")
output_option = click.option("--output", "output", type=str, help="Output file path (.json)")


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@now_option
@output_option
@click.option("--capacity", "capacity", help="Override the capacity ceiling (e.g. 500 or 1.2k)")
def contributions(input_path: str, now: Optional[str], output: Optional[str], capacity: Optional[str]) -> None:
    """Compute per-obligation contributions for the current cycle."""
    data = load_input(input_path)
    if capacity:
        try:
            data = replace(data, max_contribution_per_cycle=amount_from_str(capacity))
        except ValueError as exc:
            raise click.BadParameter(str(exc))
    result = calculate_contributions(
        data.obligations,
        data.fund_balances,
        data.max_contribution_per_cycle,
        data.cycle_config,
        resolve_now(now, data),
    )
    if output:
        export_json(output, engine_result_to_dict(result))
    else:
        print_contributions(result)


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@now_option
@output_option
@click.option("--currency", "currency", default="$", show_default=True, help="Currency symbol")
def snapshot(input_path: str, now: Optional[str], output: Optional[str], currency: str) -> None:
    """Show the single next action."""
    data = load_input(input_path)
    result = calculate_contributions(
        data.obligations,
        data.fund_balances,
        data.max_contribution_per_cycle,
        data.cycle_config,
        resolve_now(now, data),
    )
    snapshot_data = generate_snapshot(result, data.cycle_config, currency)
    if output:
        export_json(output, snapshot_to_dict(snapshot_data))
    else:
        print_snapshot(snapshot_data)


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@now_option
@output_option
@click.option("--months", "months", type=int, default=6, show_default=True, help="Months to project (1-12)")
def timeline(input_path: str, now: Optional[str], output: Optional[str], months: int) -> None:
    """Project the fund balance over the coming months."""
    data = load_input(input_path)
    today = resolve_now(now, data)
    result = calculate_contributions(
        data.obligations,
        data.fund_balances,
        data.max_contribution_per_cycle,
        data.cycle_config,
        today,
    )
    projection = project_timeline(
        data.obligations,
        data.fund_balances,
        data.current_fund_balance,
        result.total_contribution_per_cycle,
        data.cycle_config,
        today,
        months_ahead=months,
    )
    if output:
        export_json(output, timeline_to_dict(projection))
    else:
        print_timeline(projection)


@cli.command()
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@click.argument("overrides_path", type=click.Path(exists=True, dir_okay=False))
@now_option
@output_option
@click.option("--months", "months", type=int, default=6, show_default=True, help="Months to project (1-12)")
def scenario(
    input_path: str,
    overrides_path: str,
    now: Optional[str],
    output: Optional[str],
    months: int,
) -> None:
    """Compare the real obligations with a what-if scenario.

    The overrides document may contain ``toggled_off_ids``,
    ``amount_overrides``, ``hypotheticals`` and ``escalation_overrides``.
    """
    data = load_input(input_path)
    try:
        overrides = load_what_if_overrides(read_json(overrides_path))
    except (KeyError, ValueError) as exc:
        raise click.BadParameter(f"Invalid overrides document {overrides_path}: {exc}")
    today = resolve_now(now, data)

    what_if = calculate_with_what_if(
        data.obligations,
        data.fund_balances,
        data.max_contribution_per_cycle,
        data.cycle_config,
        today,
        overrides,
    )
    scenario_timeline = project_timeline(
        build_scenario_obligations(data.obligations, overrides),
        data.fund_balances,
        data.current_fund_balance,
        what_if.scenario.total_contribution_per_cycle,
        data.cycle_config,
        today,
        months_ahead=months,
    )
    if output:
        export_json(
            output,
            {
                "actual": engine_result_to_dict(what_if.actual),
                "scenario": engine_result_to_dict(what_if.scenario),
                "snapshot": snapshot_to_dict(generate_snapshot(what_if.scenario, data.cycle_config)),
                "timeline": timeline_to_dict(scenario_timeline),
            },
        )
    else:
        print_comparison(what_if.actual, what_if.scenario)
        print_timeline(scenario_timeline)


@cli.command("project-escalation")
@click.argument("input_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--obligation", "obligation_id", required=True, help="Obligation id")
@now_option
@output_option
@click.option("--months", "months", type=int, default=12, show_default=True, help="Months to project")
def project_escalation(
    input_path: str,
    obligation_id: str,
    now: Optional[str],
    output: Optional[str],
    months: int,
) -> None:
    """Show how an obligation's amount changes over time."""
    data = load_input(input_path)
    matches = [o for o in data.obligations if o.id == obligation_id]
    if not matches:
        raise click.BadParameter(f"No obligation with id {obligation_id}")
    obligation = matches[0]
    if not isinstance(obligation, RecurringObligation):
        raise click.BadParameter(f"Obligation {obligation.name} is not recurring and is never escalated")
    points = project_escalated_amounts(
        obligation.amount, obligation.escalation_rules, resolve_now(now, data), months
    )
    if output:
        export_json(output, {"obligation_id": obligation.id, "projection": projection_to_dict(points)})
    else:
        print_projection(obligation.name, obligation.amount, points)


@cli.command("apply-escalations")
@click.option(
    "--database-url",
    "database_url",
    default=lambda: os.environ.get(DATABASE_URL_ENV),
    help=f"SQLAlchemy database URL (default: ${DATABASE_URL_ENV} or a local SQLite file)",
)
@click.option("--obligation", "obligation_id", help="Only apply rules deferred while this obligation was paused")
@click.option("--now", "now", help="Reference date (YYYY-MM-DD); defaults to today")
def apply_escalations(database_url: Optional[str], obligation_id: Optional[str], now: Optional[str]) -> None:
    """Fold due one-off escalations into the stored amounts."""
    try:
        today = parse_date(now) if now else date.today()
    except ValueError as exc:
        raise click.BadParameter(str(exc))
    store = create_store_from_env(database_url)
    if obligation_id:
        result = store.apply_deferred_escalations(obligation_id, today)
    else:
        result = store.apply_pending_escalations(today)
    click.echo(
        f"Applied {result.applied_count} escalation(s) to "
        f"{len(result.updated_obligation_ids)} obligation(s)"
    )


if __name__ == "__main__":
    cli()
