"""Cycle and due-date calculator.

Two questions are answered here: when does a recurring obligation fall due
next, and how many contribution cycles does the user have before a given due
date. Weekly and fortnightly cycles are counted in fixed day lengths; monthly
and twice-monthly cycles count the actual pay days configured by the user,
clamping days such as the 31st to the last day of shorter months.
"""

from __future__ import annotations

from collections import Counter
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .data_models import CycleConfig, CycleType, Frequency, IncomeSource
from .utils import DateLike, add_days, add_months, clamp_day, start_of_day

FREQUENCY_DAYS: Dict[Frequency, int] = {
    Frequency.WEEKLY: 7,
    Frequency.FORTNIGHTLY: 14,
    Frequency.TWICE_MONTHLY: 15,
    Frequency.MONTHLY: 30,
    Frequency.QUARTERLY: 90,
    Frequency.ANNUAL: 365,
}

CYCLE_LENGTH_DAYS: Dict[CycleType, int] = {
    CycleType.WEEKLY: 7,
    CycleType.FORTNIGHTLY: 14,
}

DEFAULT_PAY_DAYS: Dict[CycleType, Tuple[int, ...]] = {
    CycleType.MONTHLY: (1,),
    CycleType.TWICE_MONTHLY: (1, 15),
}

DEFAULT_CYCLE_CONFIG = CycleConfig(type=CycleType.MONTHLY, pay_days=(1,))


def frequency_to_days(frequency: Optional[Frequency], frequency_days: Optional[int]) -> Optional[int]:
    """Return the day length of a frequency, or ``None`` if it does not recur."""
    if frequency is None or frequency == Frequency.IRREGULAR:
        return None
    if frequency == Frequency.CUSTOM:
        return frequency_days if frequency_days and frequency_days > 0 else None
    return FREQUENCY_DAYS[frequency]


def get_next_due_date_after(
    current_due_date: DateLike,
    frequency: Optional[Frequency],
    frequency_days: Optional[int] = None,
) -> Optional[date]:
    """Return the due date following ``current_due_date``.

    ``None`` means the obligation does not recur (irregular frequency, no
    frequency, or a custom frequency without a day count).
    """
    days = frequency_to_days(frequency, frequency_days)
    if days is None:
        return None
    return add_days(start_of_day(current_due_date), days)


def effective_pay_days(cycle_type: CycleType, pay_days: Iterable[int]) -> Tuple[int, ...]:
    """Return the sorted, de-duplicated pay days, falling back to the defaults."""
    days = tuple(sorted({d for d in pay_days if 1 <= d <= 31}))
    return days or DEFAULT_PAY_DAYS.get(cycle_type, (1,))


def _month_index(dt: date) -> int:
    return dt.year * 12 + dt.month - 1


def _pay_dates_in_month(year: int, month: int, pay_days: Sequence[int]) -> List[date]:
    return sorted({clamp_day(year, month, d) for d in pay_days})


def _count_pay_dates_between(start: date, due: date, pay_days: Sequence[int]) -> int:
    """Count pay dates strictly between ``start`` and ``due``."""
    if max(pay_days) <= 28:
        # No clamping can occur, so every month holds the same pay dates.
        per_month = len(pay_days)
        before_due = _month_index(due) * per_month + sum(1 for d in pay_days if d < due.day)
        through_start = _month_index(start) * per_month + sum(1 for d in pay_days if d <= start.day)
        return max(0, before_due - through_start)

    count = 0
    cursor = date(start.year, start.month, 1)
    while cursor <= due:
        for pay_date in _pay_dates_in_month(cursor.year, cursor.month, pay_days):
            if start < pay_date < due:
                count += 1
        cursor = add_months(cursor, 1)
    return count


def count_cycles_between(
    start: DateLike,
    due: DateLike,
    cycle_type: CycleType,
    pay_days: Iterable[int] = (),
) -> int:
    """Return the number of contribution cycles between ``start`` and ``due``.

    Returns 0 when the due date is on or before ``start`` (the whole remaining
    amount is needed now) and at least 1 for any future due date, even when
    less than a full cycle is left.
    """
    start = start_of_day(start)
    due = start_of_day(due)
    if due <= start:
        return 0

    if cycle_type in CYCLE_LENGTH_DAYS:
        days_until_due = (due - start).days
        return max(1, days_until_due // CYCLE_LENGTH_DAYS[cycle_type])

    days = effective_pay_days(cycle_type, pay_days)
    return max(1, _count_pay_dates_between(start, due, days))


def contribution_dates(start: DateLike, end: DateLike, cycle_config: CycleConfig) -> List[date]:
    """Return the contribution dates in ``(start, end]`` for a cycle."""
    start = start_of_day(start)
    end = start_of_day(end)
    dates: List[date] = []

    if cycle_config.type in CYCLE_LENGTH_DAYS:
        step = CYCLE_LENGTH_DAYS[cycle_config.type]
        current = add_days(start, step)
        while current <= end:
            dates.append(current)
            current = add_days(current, step)
        return dates

    days = effective_pay_days(cycle_config.type, cycle_config.pay_days)
    cursor = date(start.year, start.month, 1)
    while cursor <= end:
        for pay_date in _pay_dates_in_month(cursor.year, cursor.month, days):
            if start < pay_date <= end:
                dates.append(pay_date)
        cursor = add_months(cursor, 1)
    return dates


_INCOME_TO_CYCLE: Dict[Frequency, CycleType] = {
    Frequency.WEEKLY: CycleType.WEEKLY,
    Frequency.FORTNIGHTLY: CycleType.FORTNIGHTLY,
    Frequency.TWICE_MONTHLY: CycleType.TWICE_MONTHLY,
    Frequency.MONTHLY: CycleType.MONTHLY,
}

_CYCLE_ORDER = [CycleType.WEEKLY, CycleType.FORTNIGHTLY, CycleType.TWICE_MONTHLY, CycleType.MONTHLY]


def resolve_cycle_config(
    cycle_type: Optional[CycleType],
    pay_days: Iterable[int] = (),
    income_sources: Iterable[IncomeSource] = (),
) -> CycleConfig:
    """Work out the contribution cycle for a user.

    An explicit setting always wins. Without one, the cycle follows the most
    common pay frequency among active, regular income sources (the shorter
    cycle on a tie), falling back to monthly on the 1st.
    """
    if cycle_type is not None:
        if cycle_type in CYCLE_LENGTH_DAYS:
            return CycleConfig(type=cycle_type, pay_days=())
        return CycleConfig(type=cycle_type, pay_days=effective_pay_days(cycle_type, pay_days))

    votes: Counter = Counter()
    for source in income_sources:
        if not source.is_active or source.is_paused or source.is_irregular:
            continue
        detected = _INCOME_TO_CYCLE.get(source.frequency) if source.frequency else None
        if detected is not None:
            votes[detected] += 1

    if not votes:
        return DEFAULT_CYCLE_CONFIG
    best = max(_CYCLE_ORDER, key=lambda c: (votes[c], -_CYCLE_ORDER.index(c)))
    if best in CYCLE_LENGTH_DAYS:
        return CycleConfig(type=best, pay_days=())
    return CycleConfig(type=best, pay_days=DEFAULT_PAY_DAYS[best])
