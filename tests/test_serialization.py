import json
from datetime import date

import pytest

from sinking_fund.data_models import (
    ChangeType,
    CustomObligation,
    CycleConfig,
    CycleType,
    Frequency,
    ObligationType,
    OneOffObligation,
    RecurringObligation,
)
from sinking_fund.engine import calculate_contributions
from sinking_fund.serialization import (
    engine_result_to_dict,
    load_engine_input,
    load_obligation,
    load_what_if_overrides,
    snapshot_to_dict,
)
from sinking_fund.snapshot import generate_snapshot


def test_load_recurring_obligation_with_rules():
    obligation = load_obligation({
        "id": "rent",
        "name": "Rent",
        "type": "recurring",
        "amount": 1200,
        "frequency": "monthly",
        "next_due_date": "2025-04-01T00:00:00.000Z",
        "escalation_rules": [
            {"id": "r1", "change_type": "percentage", "value": 3, "effective_date": "2025-07-01",
             "interval_months": 12},
        ],
    })
    assert isinstance(obligation, RecurringObligation)
    assert obligation.type == ObligationType.RECURRING
    assert obligation.frequency == Frequency.MONTHLY
    assert obligation.next_due_date == date(2025, 4, 1)
    (rule,) = obligation.escalation_rules
    assert rule.change_type == ChangeType.PERCENTAGE
    assert rule.interval_months == 12


def test_load_recurring_with_end():
    obligation = load_obligation({
        "id": "loan", "name": "Loan", "type": "recurring_with_end", "amount": 300,
        "frequency": "fortnightly", "next_due_date": "2025-04-01", "end_date": "2025-12-31",
    })
    assert obligation.type == ObligationType.RECURRING_WITH_END
    assert obligation.end_date == date(2025, 12, 31)


def test_recurring_with_end_requires_end_date():
    with pytest.raises(ValueError, match="end_date"):
        load_obligation({"id": "x", "name": "X", "type": "recurring_with_end", "amount": 1,
                         "frequency": "monthly", "next_due_date": "2025-04-01"})


def test_load_one_off_and_custom():
    one_off = load_obligation({"id": "a", "name": "A", "type": "one_off", "amount": 50,
                               "next_due_date": "2025-05-01"})
    assert isinstance(one_off, OneOffObligation)

    custom = load_obligation({
        "id": "c", "name": "C", "type": "custom",
        "custom_entries": [
            {"due_date": "2025-06-01", "amount": 300},
            {"due_date": "2025-04-01", "amount": 500, "is_paid": True},
        ],
    })
    assert isinstance(custom, CustomObligation)
    assert len(custom.entries) == 2
    assert custom.next_due_date == date(2025, 4, 1)


@pytest.mark.parametrize(
    "data, message",
    [
        ({"id": "x", "name": "X", "type": "weird", "next_due_date": "2025-01-01"}, "obligation type"),
        ({"id": "x", "name": "X", "amount": -5, "next_due_date": "2025-01-01"}, "negative"),
        ({"id": "x", "name": "X", "amount": 5, "next_due_date": "soon"}, "Invalid date"),
        ({"id": "x", "name": "X", "amount": 5}, "next_due_date"),
        ({"name": "X"}, "missing"),
        ({"id": "x", "name": "X", "amount": 5, "next_due_date": "2025-01-01", "frequency": "hourly"},
         "frequency"),
        ({"id": "x", "name": "X", "amount": 5, "next_due_date": "2025-01-01", "frequency": "custom",
          "frequency_days": 1.5}, "whole number"),
        ({"id": "x", "name": "X", "amount": 5, "next_due_date": "2025-01-01", "frequency": "custom",
          "frequency_days": 0}, "must be positive"),
        ({"id": "x", "name": "X", "amount": 5, "next_due_date": "2025-01-01",
          "escalation_rules": [{"id": "e", "change_type": "percentage", "value": 2,
                                "effective_date": "2025-02-01", "interval_months": 1.5}]}, "whole number"),
    ],
)
def test_invalid_obligations_are_rejected(data, message):
    with pytest.raises(ValueError, match=message):
        load_obligation(data)


def test_duplicate_one_off_rules_are_rejected():
    rules = [
        {"id": "a", "change_type": "absolute", "value": 10, "effective_date": "2025-06-01"},
        {"id": "b", "change_type": "fixed_increase", "value": 5, "effective_date": "2025-06-01"},
    ]
    with pytest.raises(ValueError, match="one-off"):
        load_obligation({"id": "x", "name": "X", "amount": 5, "next_due_date": "2025-01-01",
                         "escalation_rules": rules})


def test_load_engine_input_defaults():
    data = load_engine_input({
        "obligations": [{"id": "a", "name": "A", "type": "one_off", "amount": 50,
                         "next_due_date": "2025-05-01"}],
        "fund_balances": [{"obligation_id": "a", "current_balance": 20},
                          {"obligation_id": "b", "current_balance": 30}],
    })
    assert data.max_contribution_per_cycle is None
    assert data.current_fund_balance == 50
    assert data.cycle_config == CycleConfig(CycleType.MONTHLY, (1,))
    assert data.now is None


def test_load_engine_input_cycle_and_now():
    data = load_engine_input({
        "now": "2025-03-01",
        "max_contribution_per_cycle": 500,
        "cycle": {"type": "twice_monthly", "pay_days": [15, 1]},
    })
    assert data.now == date(2025, 3, 1)
    assert data.max_contribution_per_cycle == 500
    assert data.cycle_config == CycleConfig(CycleType.TWICE_MONTHLY, (1, 15))


def test_cycle_detected_from_income_sources():
    data = load_engine_input({"income_sources": [{"frequency": "weekly"}]})
    assert data.cycle_config == CycleConfig(CycleType.WEEKLY, ())


def test_invalid_pay_day_is_rejected():
    with pytest.raises(ValueError, match="Pay day"):
        load_engine_input({"cycle": {"type": "monthly", "pay_days": [32]}})


def test_load_what_if_overrides():
    overrides = load_what_if_overrides({
        "toggled_off_ids": ["gym"],
        "amount_overrides": {"rent": "1300"},
        "hypotheticals": [{"id": "boat", "name": "Boat", "type": "one_off", "amount": 900,
                           "next_due_date": "2025-09-01"}],
        "escalation_overrides": {"rent": [{"id": "e", "change_type": "fixed_increase", "value": 50,
                                           "effective_date": "2025-06-01"}]},
    })
    assert overrides.toggled_off_ids == ("gym",)
    assert overrides.amount_overrides == {"rent": 1300.0}
    assert overrides.hypotheticals[0].id == "boat"
    assert overrides.escalation_overrides["rent"][0].value == 50


def test_results_serialise_to_json():
    obligation = OneOffObligation(id="a", name="A", amount=300, next_due_date=date(2025, 4, 1))
    result = calculate_contributions([obligation], [], None, None, date(2025, 3, 1))
    payload = json.loads(json.dumps(engine_result_to_dict(result)))
    assert payload["contributions"][0]["next_due_date"] == "2025-04-01"
    assert payload["total_required"] == 300

    snapshot = json.loads(json.dumps(snapshot_to_dict(generate_snapshot(result))))
    assert snapshot["next_action_date"] == "2025-04-01"
