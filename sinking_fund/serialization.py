"""Reading input documents and serialising results.

Input documents are plain dictionaries (usually parsed from JSON) using
snake_case keys and ISO dates. The loaders here are the validation layer in
front of the engine: they reject malformed input with ``ValueError`` so that
the calculation functions can assume well-formed data. The ``*_to_dict``
helpers turn results back into JSON-serialisable dictionaries.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import date
from typing import Any, Dict, List, Mapping, Optional

from .cycles import resolve_cycle_config
from .data_models import (
    ChangeType,
    CustomEntry,
    CustomObligation,
    CycleConfig,
    CycleType,
    EngineInput,
    EngineResult,
    EscalationRule,
    Frequency,
    FundBalance,
    IncomeSource,
    Obligation,
    ObligationType,
    OneOffObligation,
    ProjectedAmount,
    RecurringObligation,
    SnapshotData,
    TimelineResult,
    WhatIfOverrides,
)
from .escalation import validate_escalation_rules
from .utils import parse_date


def _enum(enum_cls, value: Any, label: str):
    try:
        return enum_cls(value)
    except ValueError as exc:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValueError(f"Invalid {label} {value!r}; expected one of {allowed}") from exc


def _amount(value: Any, label: str, allow_negative: bool = False) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid {label}: {value!r}") from exc
    if amount < 0 and not allow_negative:
        raise ValueError(f"{label} must not be negative; got {amount}")
    return amount


def _optional_date(value: Any) -> Optional[date]:
    if value in (None, ""):
        return None
    return parse_date(str(value))


def _positive_int(value: Any, label: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"{label} must be a whole number; got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{label} must be a whole number; got {value!r}") from exc
    if not number.is_integer():
        raise ValueError(f"{label} must be a whole number; got {value!r}")
    if number <= 0:
        raise ValueError(f"{label} must be positive; got {value!r}")
    return int(number)


def load_escalation_rule(data: Mapping[str, Any]) -> EscalationRule:
    interval = _positive_int(data.get("interval_months"), "interval_months")
    change_type = _enum(ChangeType, data.get("change_type"), "change type")
    return EscalationRule(
        id=str(data["id"]),
        change_type=change_type,
        value=_amount(data.get("value"), "escalation value", allow_negative=True),
        effective_date=parse_date(str(data["effective_date"])),
        interval_months=interval,
        is_applied=bool(data.get("is_applied", False)),
    )


def load_escalation_rules(items: Any) -> tuple:
    rules = tuple(load_escalation_rule(item) for item in items or [])
    validate_escalation_rules(rules)
    return rules


def load_custom_entry(data: Mapping[str, Any]) -> CustomEntry:
    return CustomEntry(
        due_date=parse_date(str(data["due_date"])),
        amount=_amount(data.get("amount"), "custom entry amount"),
        is_paid=bool(data.get("is_paid", False)),
    )


def load_obligation(data: Mapping[str, Any]) -> Obligation:
    """Build the obligation variant named by ``data["type"]``.

    Raises
    ------
    ValueError
        If a required field is missing or a value is malformed.
    """
    try:
        obligation_id = str(data["id"])
        name = str(data["name"])
    except KeyError as exc:
        raise ValueError(f"Obligation is missing required field {exc}") from exc

    obligation_type = _enum(ObligationType, data.get("type", "recurring"), "obligation type")
    common = dict(
        id=obligation_id,
        name=name,
        amount=_amount(data.get("amount", 0), f"amount of {name}"),
        is_paused=bool(data.get("is_paused", False)),
        is_active=bool(data.get("is_active", True)),
        fund_group_id=data.get("fund_group_id"),
        escalation_rules=load_escalation_rules(data.get("escalation_rules")),
    )

    if obligation_type == ObligationType.CUSTOM:
        entries = tuple(load_custom_entry(e) for e in data.get("custom_entries") or [])
        next_due = _optional_date(data.get("next_due_date"))
        if next_due is None:
            next_due = min((e.due_date for e in entries), default=date.min)
        return CustomObligation(next_due_date=next_due, entries=entries, **common)

    if "next_due_date" not in data:
        raise ValueError(f"Obligation {name} is missing next_due_date")
    next_due_date = parse_date(str(data["next_due_date"]))

    if obligation_type == ObligationType.ONE_OFF:
        return OneOffObligation(next_due_date=next_due_date, **common)

    frequency = data.get("frequency")
    frequency_days = data.get("frequency_days")
    end_date = _optional_date(data.get("end_date"))
    if obligation_type == ObligationType.RECURRING_WITH_END and end_date is None:
        raise ValueError(f"Obligation {name} is recurring_with_end but has no end_date")
    return RecurringObligation(
        next_due_date=next_due_date,
        frequency=_enum(Frequency, frequency, "frequency") if frequency else None,
        frequency_days=_positive_int(frequency_days, f"frequency_days of {name}"),
        end_date=end_date,
        **common,
    )


def load_fund_balance(data: Mapping[str, Any]) -> FundBalance:
    return FundBalance(
        obligation_id=str(data["obligation_id"]),
        current_balance=_amount(data.get("current_balance", 0), "fund balance"),
    )


def load_income_source(data: Mapping[str, Any]) -> IncomeSource:
    frequency = data.get("frequency")
    return IncomeSource(
        frequency=_enum(Frequency, frequency, "frequency") if frequency else None,
        is_irregular=bool(data.get("is_irregular", False)),
        is_active=bool(data.get("is_active", True)),
        is_paused=bool(data.get("is_paused", False)),
    )


def load_cycle_config(data: Mapping[str, Any]) -> CycleConfig:
    """Resolve the contribution cycle of an input document.

    Reads an explicit ``cycle`` section when present; otherwise the cycle is
    auto-detected from ``income_sources``.
    """
    cycle = data.get("cycle") or {}
    cycle_type = cycle.get("type")
    pay_days = cycle.get("pay_days") or []
    for day in pay_days:
        if not 1 <= int(day) <= 31:
            raise ValueError(f"Pay day must be between 1 and 31; got {day}")
    income_sources = [load_income_source(s) for s in data.get("income_sources") or []]
    return resolve_cycle_config(
        _enum(CycleType, cycle_type, "cycle type") if cycle_type else None,
        [int(d) for d in pay_days],
        income_sources,
    )


def load_engine_input(data: Mapping[str, Any]) -> EngineInput:
    """Load a complete engine input document."""
    obligations = tuple(load_obligation(o) for o in data.get("obligations") or [])
    fund_balances = tuple(load_fund_balance(fb) for fb in data.get("fund_balances") or [])

    capacity = data.get("max_contribution_per_cycle")
    current_fund_balance = data.get("current_fund_balance")
    if current_fund_balance is None:
        current_fund_balance = sum(fb.current_balance for fb in fund_balances)

    return EngineInput(
        obligations=obligations,
        fund_balances=fund_balances,
        max_contribution_per_cycle=_amount(capacity, "capacity") if capacity is not None else None,
        cycle_config=load_cycle_config(data),
        current_fund_balance=_amount(current_fund_balance, "current fund balance", allow_negative=True),
        now=_optional_date(data.get("now")),
    )


def load_what_if_overrides(data: Mapping[str, Any]) -> WhatIfOverrides:
    amount_overrides = {
        str(k): _amount(v, f"amount override for {k}")
        for k, v in (data.get("amount_overrides") or {}).items()
    }
    escalation_overrides = {
        str(k): load_escalation_rules(v)
        for k, v in (data.get("escalation_overrides") or {}).items()
    }
    return WhatIfOverrides(
        toggled_off_ids=tuple(str(i) for i in data.get("toggled_off_ids") or []),
        amount_overrides=amount_overrides,
        hypotheticals=tuple(load_obligation(h) for h in data.get("hypotheticals") or []),
        escalation_overrides=escalation_overrides,
    )


def _jsonable(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    return value


def engine_result_to_dict(result: EngineResult) -> Dict[str, Any]:
    return _jsonable(asdict(result))


def timeline_to_dict(result: TimelineResult) -> Dict[str, Any]:
    return _jsonable(asdict(result))


def snapshot_to_dict(snapshot: SnapshotData) -> Dict[str, Any]:
    return _jsonable(asdict(snapshot))


def projection_to_dict(points: List[ProjectedAmount]) -> List[Dict[str, Any]]:
    return [{"date": p.date.isoformat(), "amount": p.amount} for p in points]
