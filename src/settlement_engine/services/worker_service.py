"""Worker lifecycle checks that depend on ledger state."""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from settlement_engine.errors import BusinessRuleViolation, NotFoundError, ValidationError
from settlement_engine.models import (
    PaymentRequest,
    PeriodState,
    RequestStatus,
    SettlementPeriod,
    Worker,
)
from settlement_engine.services.audit import record_audit
from settlement_engine.services.balance_ledger import BalanceLedger

logger = logging.getLogger(__name__)


class WorkerService:
    """Worker activation, deactivation and salary lookup."""

    def __init__(self, db: Session):
        self.db = db
        self.balances = BalanceLedger(db)

    def get(self, worker_id: UUID) -> Worker:
        worker = self.db.get(Worker, worker_id)
        if worker is None:
            raise NotFoundError("Worker", worker_id)
        return worker

    def salary_for(
        self, worker_id: UUID, edited_salaries: dict[UUID, Decimal] | None = None
    ) -> Decimal:
        """Salary to reconcile against: the edited value if given, else the weekly salary."""
        if edited_salaries and worker_id in edited_salaries:
            salary = Decimal(edited_salaries[worker_id])
            if salary < 0:
                raise ValidationError(f"Salary for worker {worker_id} cannot be negative")
            return salary
        return Decimal(self.get(worker_id).weekly_salary or 0)

    def deactivation_blockers(self, worker_id: UUID) -> list[str]:
        """Reasons a worker cannot be deactivated (empty if none)."""
        blockers: list[str] = []

        pending = self.db.scalar(
            select(func.count())
            .select_from(PaymentRequest)
            .where(
                PaymentRequest.worker_id == worker_id,
                PaymentRequest.status == RequestStatus.PENDING.value,
            )
        )
        if pending:
            blockers.append(f"{pending} pending request(s)")

        in_open_period = self.db.scalar(
            select(func.count())
            .select_from(PaymentRequest)
            .join(
                SettlementPeriod,
                PaymentRequest.settlement_period_id == SettlementPeriod.settlement_period_id,
            )
            .where(
                PaymentRequest.worker_id == worker_id,
                SettlementPeriod.state == PeriodState.OPEN.value,
            )
        )
        if in_open_period:
            blockers.append(f"{in_open_period} request(s) in an open settlement period")

        balance = self.balances.get(worker_id)
        if balance != 0:
            blockers.append(f"outstanding balance of {balance}")

        return blockers

    def deactivate(self, worker_id: UUID, actor_id: UUID | None = None) -> Worker:
        """Deactivate a worker, refusing while ledgers still reference them."""
        worker = self.get(worker_id)
        blockers = self.deactivation_blockers(worker_id)
        if blockers:
            raise BusinessRuleViolation(
                f"Worker {worker_id} cannot be deactivated: {'; '.join(blockers)}"
            )

        worker.active = False
        record_audit(
            self.db,
            entity_type="worker",
            entity_id=worker_id,
            action="deactivated",
            actor_id=actor_id,
        )
        self.db.flush()
        logger.info("Deactivated worker %s", worker_id)
        return worker

    def activate(self, worker_id: UUID, actor_id: UUID | None = None) -> Worker:
        """Mark a worker active again."""
        worker = self.get(worker_id)
        worker.active = True
        record_audit(
            self.db,
            entity_type="worker",
            entity_id=worker_id,
            action="activated",
            actor_id=actor_id,
        )
        self.db.flush()
        logger.info("Activated worker %s", worker_id)
        return worker
