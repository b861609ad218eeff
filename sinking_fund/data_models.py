"""Data models for the sinking fund engine.

This module defines dataclasses representing the entities used by the
contribution engine: obligations (recurring, one-off and custom schedules),
fund balances, escalation rules, the contribution cycle configuration and the
result structures returned by the engine, the timeline projector and the
snapshot generator. Input models are frozen so that the calculation functions
can never modify what they were given.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Tuple


class ObligationType(str, Enum):
    RECURRING = "recurring"
    RECURRING_WITH_END = "recurring_with_end"
    ONE_OFF = "one_off"
    CUSTOM = "custom"


class Frequency(str, Enum):
    WEEKLY = "weekly"
    FORTNIGHTLY = "fortnightly"
    TWICE_MONTHLY = "twice_monthly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"
    CUSTOM = "custom"
    IRREGULAR = "irregular"


class ChangeType(str, Enum):
    ABSOLUTE = "absolute"
    PERCENTAGE = "percentage"
    FIXED_INCREASE = "fixed_increase"


class CycleType(str, Enum):
    WEEKLY = "weekly"
    FORTNIGHTLY = "fortnightly"
    TWICE_MONTHLY = "twice_monthly"
    MONTHLY = "monthly"


@dataclass(frozen=True)
class EscalationRule:
    """A scheduled change to an obligation's amount.

    Attributes
    ----------
    change_type: ChangeType
        ``absolute`` sets the amount to ``value``; ``percentage`` multiplies
        it by ``1 + value / 100``; ``fixed_increase`` adds ``value``.
    interval_months: Optional[int]
        ``None`` for a one-off rule. A number N makes the rule recurring,
        firing every N months from ``effective_date``.
    is_applied: bool
        Set by the write-back routine once a one-off rule has been folded
        into the stored base amount. Recurring rules are never applied.
    """

    id: str
    change_type: ChangeType
    value: float
    effective_date: date
    interval_months: Optional[int] = None
    is_applied: bool = False

    @property
    def is_recurring(self) -> bool:
        return self.interval_months is not None


@dataclass(frozen=True)
class CustomEntry:
    due_date: date
    amount: float
    is_paid: bool = False


@dataclass(frozen=True)
class Obligation:
    """Fields shared by every obligation variant.

    Use one of the subclasses below; each carries only the fields that make
    sense for its type.
    """

    id: str
    name: str
    amount: float
    next_due_date: date
    is_paused: bool = False
    is_active: bool = True
    fund_group_id: Optional[str] = None
    escalation_rules: Tuple[EscalationRule, ...] = ()

    def __post_init__(self) -> None:
        if type(self) is Obligation:
            raise TypeError(
                "Obligation is a base class; use RecurringObligation, OneOffObligation or CustomObligation"
            )

    @property
    def type(self) -> ObligationType:
        raise NotImplementedError


@dataclass(frozen=True)
class RecurringObligation(Obligation):
    """A bill that repeats at a fixed frequency, optionally until ``end_date``."""

    frequency: Optional[Frequency] = Frequency.MONTHLY
    frequency_days: Optional[int] = None
    end_date: Optional[date] = None

    @property
    def type(self) -> ObligationType:
        if self.end_date is not None:
            return ObligationType.RECURRING_WITH_END
        return ObligationType.RECURRING


@dataclass(frozen=True)
class OneOffObligation(Obligation):
    """A single expense due on ``next_due_date``. Never escalated."""

    @property
    def type(self) -> ObligationType:
        return ObligationType.ONE_OFF


@dataclass(frozen=True)
class CustomObligation(Obligation):
    """An obligation following an explicit list of dated payments.

    ``amount`` and ``next_due_date`` are ignored; the need is derived from the
    earliest unpaid entry.
    """

    entries: Tuple[CustomEntry, ...] = ()

    @property
    def type(self) -> ObligationType:
        return ObligationType.CUSTOM


@dataclass(frozen=True)
class FundBalance:
    obligation_id: str
    current_balance: float


@dataclass(frozen=True)
class CycleConfig:
    """How often the user sets money aside.

    ``pay_days`` lists days of the month and only applies to monthly and
    twice-monthly cycles. Days past the end of a short month are clamped to
    its last day.
    """

    type: CycleType = CycleType.MONTHLY
    pay_days: Tuple[int, ...] = (1,)


@dataclass(frozen=True)
class IncomeSource:
    """The subset of an income source used to auto-detect a cycle."""

    frequency: Optional[Frequency]
    is_irregular: bool = False
    is_active: bool = True
    is_paused: bool = False


@dataclass(frozen=True)
class ProjectedAmount:
    date: date
    amount: float


@dataclass
class ObligationContribution:
    obligation_id: str
    obligation_name: str
    fund_group_id: Optional[str]
    amount_needed: float
    current_balance: float
    remaining: float
    cycles_until_due: int
    contribution_per_cycle: float
    next_due_date: date
    is_fully_funded: bool
    has_shortfall: bool = False


@dataclass
class ShortfallWarning:
    obligation_id: str
    obligation_name: str
    amount_needed: float
    amount_can_fund: float
    shortfall: float
    due_date: date
    message: str


@dataclass
class EngineResult:
    """Output of the contribution engine.

    ``contributions`` is sorted by ``next_due_date`` ascending, which is both
    the display order and the rationing priority.
    """

    contributions: List[ObligationContribution]
    total_required: float
    total_funded: float
    total_contribution_per_cycle: float
    shortfall_warnings: List[ShortfallWarning]
    is_fully_funded: bool
    capacity_exceeded: bool


@dataclass(frozen=True)
class WhatIfOverrides:
    """Hypothetical changes layered over the real obligation set.

    ``escalation_overrides`` maps an obligation id to extra rules that are
    appended to (not substituted for) the obligation's own rules.
    """

    toggled_off_ids: Tuple[str, ...] = ()
    amount_overrides: Dict[str, float] = field(default_factory=dict)
    hypotheticals: Tuple[Obligation, ...] = ()
    escalation_overrides: Dict[str, Tuple[EscalationRule, ...]] = field(default_factory=dict)


@dataclass
class WhatIfResult:
    actual: EngineResult
    scenario: EngineResult


@dataclass(frozen=True)
class TimelineOverrides:
    exclude_obligation_ids: Tuple[str, ...] = ()
    amount_overrides: Dict[str, float] = field(default_factory=dict)
    hypothetical_obligations: Tuple[Obligation, ...] = ()


@dataclass
class TimelineDataPoint:
    date: date
    projected_balance: float


@dataclass
class ExpenseMarker:
    date: date
    obligation_id: str
    obligation_name: str
    amount: float


@dataclass
class ContributionMarker:
    date: date
    amount: float


@dataclass
class CrunchPoint:
    """A point where the projected balance reaches zero or below after an expense."""

    date: date
    projected_balance: float
    trigger_obligation_id: str
    trigger_obligation_name: str


@dataclass
class TimelineResult:
    data_points: List[TimelineDataPoint]
    expense_markers: List[ExpenseMarker]
    contribution_markers: List[ContributionMarker]
    crunch_points: List[CrunchPoint]
    start_date: date
    end_date: date


@dataclass
class SnapshotData:
    """A single "next action" summary of an engine result.

    ``next_action_date`` is ``None`` only in the empty state, when there are no
    obligations to act on.
    """

    total_required: float
    total_funded: float
    next_action_amount: float
    next_action_date: Optional[date]
    next_action_description: str
    next_action_obligation_id: Optional[str]


@dataclass
class ApplyEscalationsResult:
    applied_count: int = 0
    updated_obligation_ids: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class EngineInput:
    """Everything the engine and the timeline need for one user.

    This is the shape loaded from an input document by the CLI. ``now`` is
    optional there; the CLI substitutes today's date at its edge.
    """

    obligations: Tuple[Obligation, ...]
    fund_balances: Tuple[FundBalance, ...]
    max_contribution_per_cycle: Optional[float]
    cycle_config: CycleConfig
    current_fund_balance: float
    now: Optional[date] = None
