from datetime import date, datetime, timezone

import pytest

from sinking_fund.data_models import ChangeType, EscalationRule
from sinking_fund.escalation import (
    apply_change,
    get_amount_at_date,
    project_escalated_amounts,
    validate_escalation_rules,
)


def rule(rule_id="r1", change_type=ChangeType.PERCENTAGE, value=10.0, effective=date(2025, 3, 1),
         interval=None, applied=False):
    return EscalationRule(
        id=rule_id,
        change_type=change_type,
        value=value,
        effective_date=effective,
        interval_months=interval,
        is_applied=applied,
    )


def test_apply_change_types():
    assert apply_change(100, ChangeType.ABSOLUTE, 250) == 250
    assert apply_change(100, ChangeType.PERCENTAGE, 5) == pytest.approx(105)
    assert apply_change(100, ChangeType.FIXED_INCREASE, 20) == 120


def test_no_rules_gives_empty_projection_and_base_amount():
    assert project_escalated_amounts(1000, [], date(2025, 1, 1)) == []
    assert get_amount_at_date(1000, [], date(2025, 1, 1), date(2026, 1, 1)) == 1000


def test_recurring_percentage_steps_every_interval():
    rules = [rule(interval=3)]
    start = date(2025, 1, 1)
    assert get_amount_at_date(1000, rules, start, date(2025, 2, 15)) == pytest.approx(1000)
    assert get_amount_at_date(1000, rules, start, date(2025, 3, 15)) == pytest.approx(1100)
    assert get_amount_at_date(1000, rules, start, date(2025, 6, 15)) == pytest.approx(1210)


def test_past_recurring_occurrences_are_replayed():
    rules = [rule(interval=3)]
    # 2025-03-01 and 2025-06-01 fired before the window start
    assert get_amount_at_date(1000, rules, date(2025, 7, 1), date(2025, 7, 15)) == pytest.approx(1210)


def test_projection_lists_each_change_date():
    points = project_escalated_amounts(1000, [rule(interval=3)], date(2025, 1, 1), 12)
    assert [p.date for p in points] == [
        date(2025, 3, 1),
        date(2025, 6, 1),
        date(2025, 9, 1),
        date(2025, 12, 1),
    ]
    assert points[-1].amount == pytest.approx(1000 * 1.1 ** 4)


def test_one_off_rule_inside_window():
    rules = [rule(change_type=ChangeType.ABSOLUTE, value=1500, effective=date(2025, 4, 1))]
    points = project_escalated_amounts(1000, rules, date(2025, 1, 1), 12)
    assert len(points) == 1
    assert points[0].date == date(2025, 4, 1)
    assert points[0].amount == 1500
    assert get_amount_at_date(1000, rules, date(2025, 1, 1), date(2025, 3, 31)) == 1000
    assert get_amount_at_date(1000, rules, date(2025, 1, 1), date(2025, 4, 1)) == 1500


def test_applied_one_off_rule_is_ignored():
    rules = [rule(change_type=ChangeType.ABSOLUTE, value=1500, effective=date(2025, 4, 1), applied=True)]
    assert project_escalated_amounts(1000, rules, date(2025, 1, 1), 12) == []


def test_past_one_off_rule_is_not_replayed():
    rules = [rule(change_type=ChangeType.FIXED_INCREASE, value=50, effective=date(2024, 6, 1))]
    assert get_amount_at_date(1000, rules, date(2025, 1, 1), date(2025, 6, 1)) == 1000


def test_one_off_suppresses_recurring_on_same_date():
    rules = [
        rule("rec", ChangeType.FIXED_INCREASE, 100, date(2025, 3, 1), interval=3),
        rule("one", ChangeType.ABSOLUTE, 2000, date(2025, 6, 1)),
    ]
    points = project_escalated_amounts(1000, rules, date(2025, 1, 1), 12)
    by_date = {p.date: p.amount for p in points}
    assert by_date[date(2025, 3, 1)] == 1100
    # recurring skipped on 06-01, one-off wins
    assert by_date[date(2025, 6, 1)] == 2000
    # recurring resumes on its next interval
    assert by_date[date(2025, 9, 1)] == 2100


def test_same_date_recurring_rules_apply_in_input_order():
    rules = [
        rule("pct", ChangeType.PERCENTAGE, 10, date(2025, 3, 1), interval=12),
        rule("fix", ChangeType.FIXED_INCREASE, 50, date(2025, 3, 1), interval=12),
    ]
    points = project_escalated_amounts(1000, rules, date(2025, 1, 1), 6)
    assert len(points) == 1
    assert points[0].amount == pytest.approx(1000 * 1.1 + 50)


def test_absolute_recurring_replay_starts_from_latest_firing():
    rules = [
        rule("abs", ChangeType.ABSOLUTE, 500, date(2020, 1, 1), interval=12),
        rule("fix", ChangeType.FIXED_INCREASE, 10, date(2020, 1, 15), interval=1),
    ]
    # abs last fired 2025-01-01; fix fired on 01-15, 02-15 after that
    amount = get_amount_at_date(1000, rules, date(2025, 3, 1), date(2025, 3, 1))
    assert amount == pytest.approx(520)


def test_end_of_month_recurring_rule_does_not_drift():
    rules = [rule(change_type=ChangeType.FIXED_INCREASE, value=1, effective=date(2025, 1, 31), interval=1)]
    points = project_escalated_amounts(100, rules, date(2025, 1, 1), 3)
    assert [p.date for p in points] == [date(2025, 1, 31), date(2025, 2, 28), date(2025, 3, 31)]


def test_get_amount_at_date_is_idempotent():
    rules = [rule(interval=3), rule("one", ChangeType.FIXED_INCREASE, 25, date(2025, 5, 1))]
    first = get_amount_at_date(1000, rules, date(2025, 1, 1), date(2025, 8, 1))
    second = get_amount_at_date(1000, rules, date(2025, 1, 1), date(2025, 8, 1))
    assert first == second


def test_datetime_window_start_is_normalised():
    rules = [rule(interval=3)]
    start = datetime(2025, 1, 1, 18, 30, tzinfo=timezone.utc)
    assert get_amount_at_date(1000, rules, start, date(2025, 3, 1)) == pytest.approx(1100)


def test_validate_rejects_duplicate_one_off_dates():
    rules = [
        rule("a", ChangeType.ABSOLUTE, 10, date(2025, 3, 1)),
        rule("b", ChangeType.ABSOLUTE, 20, date(2025, 3, 1)),
    ]
    with pytest.raises(ValueError, match="2025-03-01"):
        validate_escalation_rules(rules)


def test_validate_allows_recurring_on_same_date():
    validate_escalation_rules([
        rule("a", ChangeType.ABSOLUTE, 10, date(2025, 3, 1)),
        rule("b", ChangeType.PERCENTAGE, 5, date(2025, 3, 1), interval=1),
    ])
