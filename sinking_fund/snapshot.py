"""Snapshot generator: reduce an engine result to a single next action."""

from __future__ import annotations

from typing import Optional

from .data_models import CycleConfig, CycleType, EngineResult, SnapshotData

CYCLE_PERIOD_LABELS = {
    CycleType.WEEKLY: "this week",
    CycleType.FORTNIGHTLY: "this fortnight",
    CycleType.TWICE_MONTHLY: "this pay period",
    CycleType.MONTHLY: "this month",
}


def generate_snapshot(
    engine_result: EngineResult,
    cycle_config: Optional[CycleConfig] = None,
    currency_symbol: str = "$",
) -> SnapshotData:
    """Generate a snapshot from an engine result.

    The next action is the most urgent under-funded obligation (nearest due
    date). If every obligation is fully funded the snapshot is a celebration
    with nothing to set aside; if there are no obligations it prompts the user
    to add one.
    """
    contributions = engine_result.contributions

    if not contributions:
        return SnapshotData(
            total_required=0.0,
            total_funded=0.0,
            next_action_amount=0.0,
            next_action_date=None,
            next_action_description="Add your first obligation to get started",
            next_action_obligation_id=None,
        )

    if engine_result.is_fully_funded:
        return SnapshotData(
            total_required=engine_result.total_required,
            total_funded=engine_result.total_funded,
            next_action_amount=0.0,
            next_action_date=min(c.next_due_date for c in contributions),
            next_action_description="You're fully covered!",
            next_action_obligation_id=None,
        )

    # contributions are already sorted by due date
    next_action = next(c for c in contributions if not c.is_fully_funded)
    amount = f"{currency_symbol}{next_action.contribution_per_cycle:.2f}"
    if cycle_config is not None:
        description = (
            f"Set aside {amount} {CYCLE_PERIOD_LABELS[cycle_config.type]} "
            f"for {next_action.obligation_name}"
        )
    else:
        description = (
            f"Set aside {amount} for {next_action.obligation_name} "
            f"by {next_action.next_due_date.isoformat()}"
        )

    return SnapshotData(
        total_required=engine_result.total_required,
        total_funded=engine_result.total_funded,
        next_action_amount=next_action.contribution_per_cycle,
        next_action_date=next_action.next_due_date,
        next_action_description=description,
        next_action_obligation_id=next_action.obligation_id,
    )
