"""Output helpers for the sinking fund calculator.

This module provides simple functions to render engine results, snapshots,
timelines and escalation projections in a tabular text format. Amounts are
shown with two decimals; the engine itself does no rounding.
"""

from __future__ import annotations

from typing import Iterable, List

from .data_models import (
    EngineResult,
    ObligationContribution,
    ProjectedAmount,
    ShortfallWarning,
    SnapshotData,
    TimelineResult,
)


def print_contributions(result: EngineResult) -> None:
    """Print per-obligation contributions followed by the totals."""
    headers = ["Due", "Obligation", "Needed", "Balance", "Remaining", "Cycles", "PerCycle", "Status"]
    print("\t".join(headers))
    for c in result.contributions:
        print("\t".join(_contribution_row(c)))
    print("-" * 72)
    print(f"Total required     : {result.total_required:.2f}")
    print(f"Total funded       : {result.total_funded:.2f}")
    print(f"Per cycle          : {result.total_contribution_per_cycle:.2f}")
    if result.capacity_exceeded:
        print("Capacity exceeded  : yes")
    if result.is_fully_funded:
        print("Fully funded       : yes")
    print("-" * 72)
    if result.shortfall_warnings:
        print_shortfalls(result.shortfall_warnings)


def _contribution_row(c: ObligationContribution) -> List[str]:
    if c.is_fully_funded:
        status = "Funded"
    elif c.has_shortfall:
        status = "Shortfall"
    else:
        status = "OK"
    return [
        c.next_due_date.isoformat(),
        c.obligation_name,
        f"{c.amount_needed:.2f}",
        f"{c.current_balance:.2f}",
        f"{c.remaining:.2f}",
        str(c.cycles_until_due),
        f"{c.contribution_per_cycle:.2f}",
        status,
    ]


def print_shortfalls(warnings: Iterable[ShortfallWarning]) -> None:
    print("Shortfalls")
    for w in warnings:
        print(f"  ! {w.message} (short {w.shortfall:.2f})")


def print_snapshot(snapshot: SnapshotData) -> None:
    print(snapshot.next_action_description)
    if snapshot.next_action_date is not None:
        print(f"Next date          : {snapshot.next_action_date.isoformat()}")
    print(f"Total required     : {snapshot.total_required:.2f}")
    print(f"Total funded       : {snapshot.total_funded:.2f}")


def print_timeline(result: TimelineResult) -> None:
    """Print the balance curve and any crunch points."""
    print(f"Timeline {result.start_date.isoformat()} to {result.end_date.isoformat()}")
    print("\t".join(["Date", "Balance"]))
    for point in result.data_points:
        print(f"{point.date.isoformat()}\t{point.projected_balance:.2f}")
    if result.crunch_points:
        print("Crunch points")
        for crunch in result.crunch_points:
            print(
                f"  ! {crunch.date.isoformat()} {crunch.trigger_obligation_name} "
                f"leaves {crunch.projected_balance:.2f}"
            )


def print_projection(name: str, base_amount: float, points: Iterable[ProjectedAmount]) -> None:
    points = list(points)
    print(f"{name}: {base_amount:.2f} today")
    if not points:
        print("  no scheduled changes in the window")
        return
    for point in points:
        print(f"  {point.date.isoformat()}\t{point.amount:.2f}")


def print_comparison(actual: EngineResult, scenario: EngineResult) -> None:
    """Print the actual and what-if results side by side.

    A negative difference means the scenario needs less.
    """
    print("Comparison")
    print("=" * 72)
    rows = [
        ("total_required", actual.total_required, scenario.total_required),
        ("total_funded", actual.total_funded, scenario.total_funded),
        ("per_cycle", actual.total_contribution_per_cycle, scenario.total_contribution_per_cycle),
        ("shortfalls", len(actual.shortfall_warnings), len(scenario.shortfall_warnings)),
    ]
    print(f"{'Metric':20s} {'Actual':>15s} {'Scenario':>15s} {'Difference':>15s}")
    for key, v1, v2 in rows:
        print(f"{key:20s} {v1:15.2f} {v2:15.2f} {v2 - v1:15.2f}")
    print("=" * 72)
