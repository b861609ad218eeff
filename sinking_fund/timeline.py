"""Balance timeline projector.

This module walks forward through a projection window of one to twelve
months, adding contributions on each cycle date and deducting every expense
that falls due, to produce a projected balance curve. Points where the
balance reaches zero or below right after an expense are reported as crunch
points.

Unlike the contribution engine, which only needs the next due date of each
obligation, the timeline enumerates every occurrence inside the window and
prices each one at its own date, so a recurring bill can step up part way
through the projection.
"""

from __future__ import annotations

from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple

from .cycles import DEFAULT_CYCLE_CONFIG, contribution_dates, get_next_due_date_after
from .data_models import (
    ContributionMarker,
    CrunchPoint,
    CustomObligation,
    CycleConfig,
    ExpenseMarker,
    FundBalance,
    Obligation,
    RecurringObligation,
    TimelineDataPoint,
    TimelineOverrides,
    TimelineResult,
)
from .escalation import get_amount_at_date
from .utils import DateLike, add_months, start_of_day

MIN_MONTHS_AHEAD = 1
MAX_MONTHS_AHEAD = 12


def _marker(obligation: Obligation, when: date, amount: float) -> ExpenseMarker:
    return ExpenseMarker(
        date=when,
        obligation_id=obligation.id,
        obligation_name=obligation.name,
        amount=amount,
    )


def collect_due_dates(
    obligation: Obligation,
    window_start: DateLike,
    window_end: DateLike,
    amount_override: Optional[float] = None,
) -> List[ExpenseMarker]:
    """Return an expense marker for every due date of ``obligation`` in the window.

    Recurring occurrences are priced through the escalation projector at their
    own date unless ``amount_override`` pins a fixed amount.
    """
    start = start_of_day(window_start)
    end = start_of_day(window_end)
    markers: List[ExpenseMarker] = []

    if isinstance(obligation, CustomObligation):
        for entry in obligation.entries:
            if entry.is_paid:
                continue
            due = start_of_day(entry.due_date)
            if start <= due <= end:
                amount = entry.amount if amount_override is None else amount_override
                markers.append(_marker(obligation, due, amount))
        markers.sort(key=lambda m: m.date)
        return markers

    if not isinstance(obligation, RecurringObligation):
        # one-offs are never escalated
        due = start_of_day(obligation.next_due_date)
        if start <= due <= end:
            amount = obligation.amount if amount_override is None else amount_override
            markers.append(_marker(obligation, due, amount))
        return markers

    end_date = start_of_day(obligation.end_date) if obligation.end_date is not None else None
    current = start_of_day(obligation.next_due_date)
    while current < start:
        following = get_next_due_date_after(current, obligation.frequency, obligation.frequency_days)
        if following is None:
            return markers
        current = following

    while current <= end:
        if end_date is not None and current > end_date:
            break
        if amount_override is not None:
            amount = amount_override
        else:
            amount = get_amount_at_date(obligation.amount, obligation.escalation_rules, start, current)
        markers.append(_marker(obligation, current, amount))
        following = get_next_due_date_after(current, obligation.frequency, obligation.frequency_days)
        if following is None:
            break
        current = following

    return markers


def project_timeline(
    obligations: Sequence[Obligation],
    fund_balances: Iterable[FundBalance],
    current_fund_balance: float,
    contribution_per_cycle: float,
    cycle_config: Optional[CycleConfig],
    now: DateLike,
    months_ahead: int = 6,
    overrides: Optional[TimelineOverrides] = None,
) -> TimelineResult:
    """Project the total fund balance over the coming months.

    Parameters
    ----------
    obligations: Sequence[Obligation]
        All of the user's obligations; inactive and paused ones are skipped.
    fund_balances: Iterable[FundBalance]
        Per-obligation balances. Accepted for symmetry with the engine; the
        projection itself starts from ``current_fund_balance``.
    current_fund_balance: float
        Total balance across every fund at ``now``.
    contribution_per_cycle: float
        Amount added on each contribution date, usually the engine's
        ``total_contribution_per_cycle``.
    cycle_config: Optional[CycleConfig]
        Contribution cadence; ``None`` means monthly on the 1st.
    now: date
        Start of the window.
    months_ahead: int
        Window length, clamped to 1..12 months.
    overrides: Optional[TimelineOverrides]
        Obligations to exclude, amounts to pin and hypothetical obligations
        to add.

    Returns
    -------
    TimelineResult
        Balance data points, expense and contribution markers and crunch
        points, all in chronological order.
    """
    overrides = overrides or TimelineOverrides()
    cycle = cycle_config or DEFAULT_CYCLE_CONFIG
    clamped_months = max(MIN_MONTHS_AHEAD, min(MAX_MONTHS_AHEAD, months_ahead))
    start_date = start_of_day(now)
    end_date = add_months(start_date, clamped_months)

    excluded = set(overrides.exclude_obligation_ids)
    included: List[Obligation] = [
        o for o in obligations if o.is_active and not o.is_paused and o.id not in excluded
    ]
    included.extend(overrides.hypothetical_obligations)

    expense_markers: List[ExpenseMarker] = []
    for obligation in included:
        expense_markers.extend(
            collect_due_dates(
                obligation,
                start_date,
                end_date,
                overrides.amount_overrides.get(obligation.id),
            )
        )
    expense_markers.sort(key=lambda m: m.date)

    contribution_markers: List[ContributionMarker] = []
    if contribution_per_cycle > 0:
        contribution_markers = [
            ContributionMarker(date=d, amount=contribution_per_cycle)
            for d in contribution_dates(start_date, end_date, cycle)
        ]

    # On a shared date expenses go first, so a crunch is judged before that
    # day's contribution lands.
    events: List[Tuple] = [(m.date, 0, m) for m in expense_markers]
    events.extend((m.date, 1, m) for m in contribution_markers)
    events.sort(key=lambda e: (e[0], e[1]))

    balance = current_fund_balance
    data_points = [TimelineDataPoint(date=start_date, projected_balance=balance)]
    crunch_points: List[CrunchPoint] = []

    for when, kind, marker in events:
        if kind == 1:
            balance += marker.amount
        else:
            balance -= marker.amount
        data_points.append(TimelineDataPoint(date=when, projected_balance=balance))

        if kind == 0 and balance <= 0:
            crunch_points.append(
                CrunchPoint(
                    date=when,
                    projected_balance=balance,
                    trigger_obligation_id=marker.obligation_id,
                    trigger_obligation_name=marker.obligation_name,
                )
            )

    if data_points[-1].date != end_date:
        data_points.append(TimelineDataPoint(date=end_date, projected_balance=balance))

    return TimelineResult(
        data_points=data_points,
        expense_markers=expense_markers,
        contribution_markers=contribution_markers,
        crunch_points=crunch_points,
        start_date=start_date,
        end_date=end_date,
    )
