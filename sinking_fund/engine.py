"""Core contribution engine for the sinking fund calculator.

Given a user's obligations, fund balances and contribution capacity, this
module works out how much to set aside per contribution cycle for each
obligation. Contributions adapt automatically: a larger balance or a later
due date lowers the per-cycle amount, a price escalation raises it. When the
total exceeds the user's capacity ceiling, obligations are funded in order of
their due date and the ones that cannot be covered are reported as
shortfalls.

The module also hosts the what-if overlay, which runs the same engine over a
hypothetical variant of the obligation set alongside the real one.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .cycles import DEFAULT_CYCLE_CONFIG, count_cycles_between, get_next_due_date_after
from .data_models import (
    CustomEntry,
    CustomObligation,
    CycleConfig,
    EngineResult,
    FundBalance,
    Obligation,
    ObligationContribution,
    OneOffObligation,
    RecurringObligation,
    ShortfallWarning,
    SnapshotData,
    WhatIfOverrides,
    WhatIfResult,
)
from .escalation import get_amount_at_date
from .snapshot import generate_snapshot
from .utils import DateLike, start_of_day

logger = logging.getLogger(__name__)


def _next_custom_entry(entries: Iterable[CustomEntry]) -> Optional[CustomEntry]:
    """Return the earliest unpaid entry of a custom schedule."""
    unpaid = sorted((e for e in entries if not e.is_paid), key=lambda e: start_of_day(e.due_date))
    return unpaid[0] if unpaid else None


def _advance_past(obligation: RecurringObligation, now: date) -> date:
    """Move a recurring due date forward until it lies after ``now``."""
    due = start_of_day(obligation.next_due_date)
    while due <= now:
        following = get_next_due_date_after(due, obligation.frequency, obligation.frequency_days)
        if following is None:
            break
        due = following
    return due


def _resolve_need(obligation: Obligation, now: date) -> Optional[Tuple[float, date]]:
    """Return ``(amount_needed, next_due_date)`` or ``None`` to exclude the obligation."""
    if isinstance(obligation, CustomObligation):
        entry = _next_custom_entry(obligation.entries)
        if entry is None:
            return None
        return entry.amount, start_of_day(entry.due_date)

    if isinstance(obligation, OneOffObligation):
        return obligation.amount, start_of_day(obligation.next_due_date)

    # recurring, with or without an end date
    due = _advance_past(obligation, now)
    if obligation.end_date is not None and due > start_of_day(obligation.end_date):
        return None
    amount = get_amount_at_date(obligation.amount, obligation.escalation_rules, now, due)
    return amount, due


def _format_money(amount: float) -> str:
    return f"${amount:.2f}"


def _ration(
    contributions: List[ObligationContribution], capacity: float
) -> List[ShortfallWarning]:
    """Clip per-cycle contributions to ``capacity`` in priority order.

    ``contributions`` must already be sorted by due date. The first
    obligation that cannot be covered in full gets whatever capacity is left;
    every under-funded obligation after it gets nothing.
    """
    warnings: List[ShortfallWarning] = []
    remaining_capacity = capacity

    for contribution in contributions:
        if contribution.is_fully_funded:
            continue
        if remaining_capacity >= contribution.contribution_per_cycle:
            remaining_capacity -= contribution.contribution_per_cycle
            continue

        allocated = remaining_capacity
        original_per_cycle = contribution.contribution_per_cycle
        contribution.contribution_per_cycle = allocated
        contribution.has_shortfall = True
        remaining_capacity = 0.0

        cycles = max(1, contribution.cycles_until_due)
        can_fund = contribution.current_balance + allocated * cycles
        shortfall = (original_per_cycle - allocated) * cycles
        warnings.append(
            ShortfallWarning(
                obligation_id=contribution.obligation_id,
                obligation_name=contribution.obligation_name,
                amount_needed=contribution.amount_needed,
                amount_can_fund=min(can_fund, contribution.amount_needed),
                shortfall=min(shortfall, contribution.remaining),
                due_date=contribution.next_due_date,
                message=(
                    f"You need {_format_money(contribution.amount_needed)} for "
                    f"{contribution.obligation_name} by {contribution.next_due_date.isoformat()} "
                    f"but can only save {_format_money(can_fund)} at current capacity"
                ),
            )
        )
    return warnings


def calculate_contributions(
    obligations: Sequence[Obligation],
    fund_balances: Iterable[FundBalance],
    max_contribution_per_cycle: Optional[float],
    cycle_config: Optional[CycleConfig],
    now: DateLike,
) -> EngineResult:
    """Calculate per-obligation contributions for the current cycle.

    Parameters
    ----------
    obligations: Sequence[Obligation]
        All of the user's obligations. Inactive and paused ones are ignored.
    fund_balances: Iterable[FundBalance]
        Money already set aside, per obligation. Missing entries count as 0.
    max_contribution_per_cycle: Optional[float]
        Capacity ceiling. ``None`` or a non-positive value disables rationing.
    cycle_config: Optional[CycleConfig]
        Contribution cadence; ``None`` means monthly on the 1st.
    now: date
        Reference date. The engine never reads the system clock.

    Returns
    -------
    EngineResult
        Contributions sorted by next due date plus totals and shortfalls.
    """
    today = start_of_day(now)
    cycle = cycle_config or DEFAULT_CYCLE_CONFIG
    balances: Dict[str, float] = {fb.obligation_id: fb.current_balance for fb in fund_balances}

    contributions: List[ObligationContribution] = []
    for obligation in obligations:
        if not obligation.is_active or obligation.is_paused:
            continue
        need = _resolve_need(obligation, today)
        if need is None:
            logger.debug("Obligation %s has nothing due; excluded", obligation.id)
            continue
        amount_needed, next_due_date = need

        current_balance = balances.get(obligation.id, 0.0)
        remaining = max(0.0, amount_needed - current_balance)
        cycles_until_due = count_cycles_between(today, next_due_date, cycle.type, cycle.pay_days)
        is_fully_funded = remaining <= 0

        if is_fully_funded:
            per_cycle = 0.0
        elif cycles_until_due > 0:
            per_cycle = remaining / cycles_until_due
        else:
            # Due today or overdue: the whole remaining amount is needed now.
            per_cycle = remaining

        contributions.append(
            ObligationContribution(
                obligation_id=obligation.id,
                obligation_name=obligation.name,
                fund_group_id=obligation.fund_group_id,
                amount_needed=amount_needed,
                current_balance=current_balance,
                remaining=remaining,
                cycles_until_due=cycles_until_due,
                contribution_per_cycle=per_cycle,
                next_due_date=next_due_date,
                is_fully_funded=is_fully_funded,
            )
        )

    contributions.sort(key=lambda c: c.next_due_date)

    total_required = sum(c.amount_needed for c in contributions)
    total_funded = sum(c.current_balance for c in contributions)
    raw_total = sum(c.contribution_per_cycle for c in contributions)
    is_fully_funded = len(contributions) > 0 and all(c.is_fully_funded for c in contributions)

    if (
        max_contribution_per_cycle is not None
        and max_contribution_per_cycle > 0
        and raw_total > max_contribution_per_cycle
    ):
        logger.debug(
            "Contributions of %.2f exceed capacity %.2f; rationing by due date",
            raw_total,
            max_contribution_per_cycle,
        )
        warnings = _ration(contributions, max_contribution_per_cycle)
        return EngineResult(
            contributions=contributions,
            total_required=total_required,
            total_funded=total_funded,
            total_contribution_per_cycle=max_contribution_per_cycle,
            shortfall_warnings=warnings,
            is_fully_funded=is_fully_funded,
            capacity_exceeded=True,
        )

    return EngineResult(
        contributions=contributions,
        total_required=total_required,
        total_funded=total_funded,
        total_contribution_per_cycle=raw_total,
        shortfall_warnings=[],
        is_fully_funded=is_fully_funded,
        capacity_exceeded=False,
    )


def build_scenario_obligations(
    obligations: Sequence[Obligation], overrides: WhatIfOverrides
) -> List[Obligation]:
    """Derive the obligation list for a what-if scenario.

    Toggled-off obligations are dropped, amount overrides replace the stored
    amount, extra escalation rules are appended to the obligation's own and
    hypothetical obligations are added at the end. Every changed obligation is
    a new object; the originals are left untouched.
    """
    toggled_off = set(overrides.toggled_off_ids)
    scenario: List[Obligation] = []
    for obligation in obligations:
        if obligation.id in toggled_off:
            continue
        changes = {}
        if obligation.id in overrides.amount_overrides:
            changes["amount"] = overrides.amount_overrides[obligation.id]
        extra_rules = overrides.escalation_overrides.get(obligation.id)
        if extra_rules:
            changes["escalation_rules"] = tuple(obligation.escalation_rules) + tuple(extra_rules)
        scenario.append(replace(obligation, **changes) if changes else obligation)
    scenario.extend(overrides.hypotheticals)
    return scenario


def calculate_with_what_if(
    obligations: Sequence[Obligation],
    fund_balances: Iterable[FundBalance],
    max_contribution_per_cycle: Optional[float],
    cycle_config: Optional[CycleConfig],
    now: DateLike,
    overrides: WhatIfOverrides,
) -> WhatIfResult:
    """Run the engine on the real obligations and on a what-if variant."""
    fund_balances = list(fund_balances)
    actual = calculate_contributions(
        obligations, fund_balances, max_contribution_per_cycle, cycle_config, now
    )
    scenario = calculate_contributions(
        build_scenario_obligations(obligations, overrides),
        fund_balances,
        max_contribution_per_cycle,
        cycle_config,
        now,
    )
    return WhatIfResult(actual=actual, scenario=scenario)


def calculate_and_snapshot(
    obligations: Sequence[Obligation],
    fund_balances: Iterable[FundBalance],
    max_contribution_per_cycle: Optional[float],
    cycle_config: Optional[CycleConfig],
    now: DateLike,
    currency_symbol: str = "$",
) -> Tuple[EngineResult, SnapshotData]:
    """Run the engine and summarise the result in one call."""
    result = calculate_contributions(
        obligations, fund_balances, max_contribution_per_cycle, cycle_config, now
    )
    return result, generate_snapshot(result, cycle_config, currency_symbol)
