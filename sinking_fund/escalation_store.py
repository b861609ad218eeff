"""Persistence layer for escalation rules and their write-back.

The projector in :mod:`sinking_fund.escalation` only projects. Once a one-off
rule's effective date has passed, something has to fold the change into the
obligation's stored base amount and mark the rule as applied; that is the job
of :class:`EscalationStore`. Each rule is written back in its own
transaction so the applied flag and the amount can never diverge, and a
failure on one rule is logged without blocking the others.

It defaults to SQLite for local use but accepts any SQLAlchemy-compatible
URL.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from .data_models import ApplyEscalationsResult, ChangeType, EscalationRule
from .escalation import apply_change

logger = logging.getLogger(__name__)

Base = declarative_base()


class ObligationModel(Base):
    __tablename__ = "obligations"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    amount = Column(Float, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    is_paused = Column(Boolean, default=False, nullable=False)

    escalations = relationship("EscalationModel", back_populates="obligation")


class EscalationModel(Base):
    __tablename__ = "escalations"

    id = Column(String(64), primary_key=True)
    obligation_id = Column(String(64), ForeignKey("obligations.id"), index=True, nullable=False)
    change_type = Column(String(32), nullable=False)
    value = Column(Float, nullable=False)
    effective_date = Column(Date, nullable=False)
    interval_months = Column(Integer, nullable=True)
    is_applied = Column(Boolean, default=False, nullable=False)
    applied_at = Column(DateTime, nullable=True)

    obligation = relationship("ObligationModel", back_populates="escalations")


class EscalationStore:
    """Database-backed escalation rules with atomic write-back."""

    def __init__(self, url: str) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    def add_obligation(
        self,
        obligation_id: str,
        name: str,
        amount: float,
        *,
        is_active: bool = True,
        is_paused: bool = False,
    ) -> None:
        with self._session_factory() as session:
            session.add(
                ObligationModel(
                    id=obligation_id,
                    name=name,
                    amount=amount,
                    is_active=is_active,
                    is_paused=is_paused,
                )
            )
            session.commit()

    def set_paused(self, obligation_id: str, is_paused: bool) -> None:
        with self._session_factory() as session:
            row = session.get(ObligationModel, obligation_id)
            if row is None:
                raise KeyError(obligation_id)
            row.is_paused = is_paused
            session.commit()

    def add_rule(self, obligation_id: str, rule: EscalationRule) -> None:
        with self._session_factory() as session:
            session.add(
                EscalationModel(
                    id=rule.id,
                    obligation_id=obligation_id,
                    change_type=ChangeType(rule.change_type).value,
                    value=rule.value,
                    effective_date=rule.effective_date,
                    interval_months=rule.interval_months,
                    is_applied=rule.is_applied,
                )
            )
            session.commit()

    def get_amount(self, obligation_id: str) -> Optional[float]:
        with self._session_factory() as session:
            row = session.get(ObligationModel, obligation_id)
            return row.amount if row is not None else None

    def list_rules(self, obligation_id: str) -> List[EscalationRule]:
        """Return an obligation's rules in effective-date order, ready for the projector."""
        with self._session_factory() as session:
            rows = session.execute(
                select(EscalationModel)
                .where(EscalationModel.obligation_id == obligation_id)
                .order_by(EscalationModel.effective_date.asc(), EscalationModel.id.asc())
            ).scalars()
            return [self._to_rule(row) for row in rows]

    def apply_pending_escalations(self, now: date) -> ApplyEscalationsResult:
        """Apply every due one-off rule on active, unpaused obligations.

        Rules on paused obligations are deferred until the obligation resumes
        (see :meth:`apply_deferred_escalations`). Recurring rules are never
        applied.
        """
        with self._session_factory() as session:
            rule_ids = session.execute(
                select(EscalationModel.id)
                .join(ObligationModel)
                .where(
                    EscalationModel.is_applied.is_(False),
                    EscalationModel.interval_months.is_(None),
                    EscalationModel.effective_date <= now,
                    ObligationModel.is_active.is_(True),
                    ObligationModel.is_paused.is_(False),
                )
                .order_by(EscalationModel.effective_date.asc(), EscalationModel.id.asc())
            ).scalars().all()
        return self._apply_rules(rule_ids, now)

    def apply_deferred_escalations(self, obligation_id: str, now: date) -> ApplyEscalationsResult:
        """Apply the one-off rules that fell due while ``obligation_id`` was paused."""
        with self._session_factory() as session:
            rule_ids = session.execute(
                select(EscalationModel.id)
                .where(
                    EscalationModel.obligation_id == obligation_id,
                    EscalationModel.is_applied.is_(False),
                    EscalationModel.interval_months.is_(None),
                    EscalationModel.effective_date <= now,
                )
                .order_by(EscalationModel.effective_date.asc(), EscalationModel.id.asc())
            ).scalars().all()
        return self._apply_rules(rule_ids, now)

    def _apply_rules(self, rule_ids: List[str], now: date) -> ApplyEscalationsResult:
        result = ApplyEscalationsResult()
        for rule_id in rule_ids:
            try:
                obligation_id = self._write_back(rule_id, now)
            except (SQLAlchemyError, ValueError):
                logger.exception("Failed to apply escalation rule %s", rule_id)
                continue
            if obligation_id is None:
                continue
            result.applied_count += 1
            if obligation_id not in result.updated_obligation_ids:
                result.updated_obligation_ids.append(obligation_id)
        return result

    def _write_back(self, rule_id: str, now: date) -> Optional[str]:
        """Fold one rule into its obligation's amount within a single transaction.

        The rule and the amount are re-read inside the transaction so that
        consecutive rules for the same obligation build on each other. Returns
        ``None`` without touching anything when the rule has since been deleted
        or already applied by another run.
        """
        with self._session_factory() as session:
            with session.begin():
                rule = session.get(EscalationModel, rule_id)
                if rule is None or rule.is_applied:
                    logger.info("Skipping escalation rule %s: missing or already applied", rule_id)
                    return None
                obligation = rule.obligation
                new_amount = apply_change(obligation.amount, ChangeType(rule.change_type), rule.value)
                obligation.amount = new_amount
                rule.is_applied = True
                rule.applied_at = datetime.combine(now, datetime.min.time())
        logger.info(
            "Applied escalation %s to obligation %s: new amount %.2f",
            rule_id,
            obligation.id,
            new_amount,
        )
        return obligation.id

    @staticmethod
    def _to_rule(row: EscalationModel) -> EscalationRule:
        return EscalationRule(
            id=row.id,
            change_type=ChangeType(row.change_type),
            value=row.value,
            effective_date=row.effective_date,
            interval_months=row.interval_months,
            is_applied=row.is_applied,
        )


def create_store_from_env(url: str | None) -> EscalationStore:
    return EscalationStore(url or "sqlite:///sinking_fund.sqlite3")
