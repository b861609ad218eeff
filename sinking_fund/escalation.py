"""Escalation projector.

Given an obligation's current amount and its escalation rules, this module
works out the amount in effect at any future date. Rules are either one-off
(applied once on their effective date and then folded into the stored base
amount by the write-back routine) or recurring (firing every N months and
never folded into the base amount).

Because recurring rules are never persisted, every projection first replays
the occurrences that fired before the window start to derive the effective
starting amount.
"""

from __future__ import annotations

from collections import Counter
from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple

from .data_models import ChangeType, EscalationRule, ProjectedAmount
from .utils import DateLike, add_months, months_between, start_of_day


def apply_change(current_amount: float, change_type: ChangeType, value: float) -> float:
    """Apply a single escalation change to an amount."""
    if change_type == ChangeType.ABSOLUTE:
        return value
    if change_type == ChangeType.PERCENTAGE:
        return current_amount * (1 + value / 100)
    if change_type == ChangeType.FIXED_INCREASE:
        return current_amount + value
    raise ValueError(f"Unknown escalation change type: {change_type}")


def validate_escalation_rules(rules: Iterable[EscalationRule]) -> None:
    """Reject rule sets the projector cannot order unambiguously.

    Two one-off rules for the same obligation on the same effective date have
    no defined precedence.

    Raises
    ------
    ValueError
        If more than one one-off rule shares an effective date.
    """
    counts = Counter(
        start_of_day(rule.effective_date) for rule in rules if not rule.is_recurring
    )
    clashes = sorted(d for d, n in counts.items() if n > 1)
    if clashes:
        listed = ", ".join(d.isoformat() for d in clashes)
        raise ValueError(f"More than one one-off escalation rule on {listed}")


def _occurrence(rule: EscalationRule, k: int) -> date:
    # Offsets are taken from the effective date each time so that a rule
    # starting on the 31st does not drift to the 28th after February.
    return add_months(start_of_day(rule.effective_date), k * rule.interval_months)


def _count_occurrences_before(rule: EscalationRule, cutoff: date) -> int:
    """Return how many times a recurring rule fires strictly before ``cutoff``.

    Closed form: occurrence ``k`` falls in month ``k * interval`` after the
    effective date, so only the last candidate needs a day comparison.
    """
    if rule.interval_months is None or rule.interval_months <= 0:
        return 0
    first = start_of_day(rule.effective_date)
    if first >= cutoff:
        return 0
    last_k = months_between(first, cutoff) // rule.interval_months
    if _occurrence(rule, last_k) < cutoff:
        return last_k + 1
    return last_k


def _replay_past_occurrences(
    current_amount: float, rules: Sequence[EscalationRule], start: date
) -> float:
    """Replay recurring occurrences that fired before ``start``.

    Occurrences are applied chronologically (input order on ties). An
    absolute rule resets the amount, so replay begins at the most recent
    absolute firing and only the occurrences after it are walked.
    """
    counts = {
        index: _count_occurrences_before(rule, start)
        for index, rule in enumerate(rules)
        if rule.is_recurring
    }

    amount = current_amount
    floor: Optional[Tuple[date, int]] = None
    for index, count in counts.items():
        rule = rules[index]
        if rule.change_type == ChangeType.ABSOLUTE and count > 0:
            last = (_occurrence(rule, count - 1), index)
            if floor is None or last > floor:
                floor = last
    if floor is not None:
        amount = rules[floor[1]].value

    events: List[Tuple[date, int]] = []
    for index, count in counts.items():
        rule = rules[index]
        if count == 0 or rule.change_type == ChangeType.ABSOLUTE:
            continue
        k = 0 if floor is None else _count_occurrences_before(rule, floor[0])
        while k < count:
            key = (_occurrence(rule, k), index)
            if floor is None or key > floor:
                events.append(key)
            k += 1

    for _, index in sorted(events):
        rule = rules[index]
        amount = apply_change(amount, rule.change_type, rule.value)
    return amount


def _collect_window_events(
    rules: Sequence[EscalationRule], start: date, end: date
) -> List[Tuple[date, int, bool]]:
    """Return ``(date, rule index, is_one_off)`` for every change in the window."""
    events: List[Tuple[date, int, bool]] = []
    for index, rule in enumerate(rules):
        if not rule.is_recurring:
            if rule.is_applied:
                continue
            effective = start_of_day(rule.effective_date)
            if start <= effective <= end:
                events.append((effective, index, True))
            continue
        if rule.interval_months <= 0:
            continue
        k = _count_occurrences_before(rule, start)
        occurrence = _occurrence(rule, k)
        while occurrence <= end:
            events.append((occurrence, index, False))
            k += 1
            occurrence = _occurrence(rule, k)
    events.sort(key=lambda e: (e[0], e[1]))
    return events


def project_escalated_amounts(
    current_amount: float,
    rules: Sequence[EscalationRule],
    window_start: DateLike,
    months_ahead: int = 12,
) -> List[ProjectedAmount]:
    """Project future amounts based on escalation rules.

    Walks forward through the window ``[window_start, window_start +
    months_ahead]`` applying changes in chronological order. A one-off rule
    takes precedence over recurring rules falling on the same date: the
    recurring occurrence is skipped and the rule resumes at its next interval.

    Parameters
    ----------
    current_amount: float
        The stored base amount of the obligation.
    rules: Sequence[EscalationRule]
        The obligation's escalation rules, in input order.
    window_start: date
        Start of the projection window.
    months_ahead: int
        Length of the projection window in months.

    Returns
    -------
    List[ProjectedAmount]
        One entry per distinct date on which the amount changes, sorted by
        date. Empty when no rule fires inside the window.
    """
    rules = list(rules)
    if not rules:
        return []
    start = start_of_day(window_start)
    end = add_months(start, months_ahead)

    events = _collect_window_events(rules, start, end)
    if not events:
        return []

    running = _replay_past_occurrences(current_amount, rules, start)
    result: List[ProjectedAmount] = []
    i = 0
    while i < len(events):
        current_date = events[i][0]
        same_date = []
        while i < len(events) and events[i][0] == current_date:
            same_date.append(events[i])
            i += 1

        one_offs = [e for e in same_date if e[2]]
        to_apply = one_offs[:1] if one_offs else same_date
        for _, index, _ in to_apply:
            rule = rules[index]
            running = apply_change(running, rule.change_type, rule.value)

        result.append(ProjectedAmount(date=current_date, amount=running))

    return result


def get_amount_at_date(
    current_amount: float,
    rules: Sequence[EscalationRule],
    window_start: DateLike,
    target_date: DateLike,
    months_ahead: Optional[int] = None,
) -> float:
    """Return the escalated amount in effect on ``target_date``.

    If no escalation fires between the window start and the target date, the
    current amount adjusted for past recurring occurrences is returned. When
    ``months_ahead`` is omitted the projection window is widened so that it
    always reaches the target.
    """
    rules = list(rules)
    if not rules:
        return current_amount
    start = start_of_day(window_start)
    target = start_of_day(target_date)
    if months_ahead is None:
        months_ahead = max(12, months_between(start, target) + 1)

    amount = _replay_past_occurrences(current_amount, rules, start)
    for point in project_escalated_amounts(current_amount, rules, start, months_ahead):
        if point.date <= target:
            amount = point.amount
        else:
            break
    return amount
