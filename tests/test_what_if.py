import copy
from datetime import date

import pytest

from sinking_fund.data_models import (
    ChangeType,
    CycleConfig,
    CycleType,
    EscalationRule,
    Frequency,
    FundBalance,
    OneOffObligation,
    RecurringObligation,
    WhatIfOverrides,
)
from sinking_fund.engine import build_scenario_obligations, calculate_contributions, calculate_with_what_if

NOW = date(2025, 3, 1)
MONTHLY = CycleConfig(CycleType.MONTHLY, (1,))

BASE_RULE = EscalationRule("base", ChangeType.FIXED_INCREASE, 10, date(2025, 3, 10))
OBLIGATIONS = [
    RecurringObligation(id="rent", name="Rent", amount=1000, next_due_date=date(2025, 3, 15),
                        frequency=Frequency.MONTHLY, escalation_rules=(BASE_RULE,)),
    OneOffObligation(id="car", name="Car service", amount=400, next_due_date=date(2025, 5, 20)),
    OneOffObligation(id="gym", name="Gym", amount=120, next_due_date=date(2025, 4, 10)),
]
BALANCES = [FundBalance("car", 100)]


def what_if(overrides, capacity=None):
    return calculate_with_what_if(OBLIGATIONS, BALANCES, capacity, MONTHLY, NOW, overrides)


def test_actual_matches_direct_engine_call():
    overrides = WhatIfOverrides(toggled_off_ids=("gym",))
    result = what_if(overrides, capacity=800)
    assert result.actual == calculate_contributions(OBLIGATIONS, BALANCES, 800, MONTHLY, NOW)


def test_toggled_off_obligations_are_dropped():
    result = what_if(WhatIfOverrides(toggled_off_ids=("gym",)))
    assert {c.obligation_id for c in result.scenario.contributions} == {"rent", "car"}
    assert {c.obligation_id for c in result.actual.contributions} == {"rent", "car", "gym"}


def test_amount_override_replaces_stored_amount():
    result = what_if(WhatIfOverrides(amount_overrides={"car": 1000}))
    car = next(c for c in result.scenario.contributions if c.obligation_id == "car")
    assert car.amount_needed == 1000
    assert car.remaining == 900


def test_escalation_overrides_are_additive():
    extra = EscalationRule("extra", ChangeType.PERCENTAGE, 10, date(2025, 3, 12))
    result = what_if(WhatIfOverrides(escalation_overrides={"rent": (extra,)}))
    actual_rent = next(c for c in result.actual.contributions if c.obligation_id == "rent")
    scenario_rent = next(c for c in result.scenario.contributions if c.obligation_id == "rent")
    assert actual_rent.amount_needed == pytest.approx(1010)
    assert scenario_rent.amount_needed == pytest.approx(1111)


def test_hypotheticals_are_appended():
    boat = OneOffObligation(id="boat", name="Boat", amount=5000, next_due_date=date(2025, 12, 1))
    result = what_if(WhatIfOverrides(hypotheticals=(boat,)))
    assert "boat" in {c.obligation_id for c in result.scenario.contributions}
    assert "boat" not in {c.obligation_id for c in result.actual.contributions}


def test_input_is_not_mutated():
    snapshot = copy.deepcopy(OBLIGATIONS)
    overrides = WhatIfOverrides(
        toggled_off_ids=("gym",),
        amount_overrides={"rent": 1, "car": 2},
        escalation_overrides={"rent": (EscalationRule("x", ChangeType.ABSOLUTE, 5, date(2025, 4, 1)),)},
    )
    what_if(overrides)
    assert OBLIGATIONS == snapshot
    assert OBLIGATIONS[0].escalation_rules == (BASE_RULE,)


def test_scenario_obligations_do_not_alias_changed_objects():
    overrides = WhatIfOverrides(amount_overrides={"car": 10})
    scenario = build_scenario_obligations(OBLIGATIONS, overrides)
    car = next(o for o in scenario if o.id == "car")
    assert car is not OBLIGATIONS[1]
    assert car.amount == 10
    assert OBLIGATIONS[1].amount == 400
