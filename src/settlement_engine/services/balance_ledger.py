"""Balance ledger - per-worker carry-over debt owed to the company."""

from __future__ import annotations

import logging
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from settlement_engine.database import atomic
from settlement_engine.errors import ValidationError
from settlement_engine.models import (
    PaymentRequest,
    PeriodState,
    RequestStatus,
    RequestType,
    SettlementPeriod,
    WorkerBalance,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class BalanceLedger:
    """Tracks what each worker owes the company across settlement periods.

    The persisted WorkerBalance row only changes when a period closes
    (overwritten with the newly generated balance) or reopens (reverted).
    Deductions recorded in an open period are requests, not balance writes.
    """

    def __init__(self, db: Session):
        self.db = db

    def get(self, worker_id: UUID) -> Decimal:
        """Outstanding balance for a worker (zero when no row exists)."""
        row = self.db.get(WorkerBalance, worker_id)
        return Decimal(row.accumulated_amount) if row is not None else ZERO

    def set(self, worker_id: UUID, amount: Decimal) -> WorkerBalance:
        """Upsert the balance, overwriting any previous amount."""
        amount = Decimal(amount)
        if amount < 0:
            raise ValidationError("Balance cannot be negative")

        row = self.db.get(WorkerBalance, worker_id)
        if row is None:
            row = WorkerBalance(worker_id=worker_id, accumulated_amount=amount)
            self.db.add(row)
        else:
            row.accumulated_amount = amount
        self.db.flush()
        return row

    def restore(self, worker_id: UUID, amount: Decimal) -> Decimal:
        """Add an amount back onto the balance. Returns the new balance."""
        amount = Decimal(amount)
        if amount <= 0:
            return self.get(worker_id)
        new_amount = self.get(worker_id) + amount
        self.set(worker_id, new_amount)
        return new_amount

    def subtract_clamped(self, worker_id: UUID, amount: Decimal) -> Decimal:
        """Take an amount off the balance, never going below zero."""
        amount = Decimal(amount)
        current = self.get(worker_id)
        if amount <= 0 or current == 0:
            return current
        new_amount = max(ZERO, current - amount)
        self.set(worker_id, new_amount)
        return new_amount

    def recorded_deductions(
        self,
        worker_id: UUID,
        exclude_period_id: UUID | None = None,
        exclude_request_id: UUID | None = None,
    ) -> Decimal:
        """Approved balance deductions not yet folded in by a close.

        Counts deductions that are unassigned or sit in an open period.
        """
        query = (
            select(func.coalesce(func.sum(PaymentRequest.amount), 0))
            .outerjoin(
                SettlementPeriod,
                PaymentRequest.settlement_period_id == SettlementPeriod.settlement_period_id,
            )
            .where(
                PaymentRequest.worker_id == worker_id,
                PaymentRequest.request_type == RequestType.BALANCE_DEDUCTION.value,
                PaymentRequest.status == RequestStatus.APPROVED.value,
                or_(
                    PaymentRequest.settlement_period_id.is_(None),
                    SettlementPeriod.state == PeriodState.OPEN.value,
                ),
            )
        )
        if exclude_period_id is not None:
            query = query.where(
                or_(
                    PaymentRequest.settlement_period_id.is_(None),
                    PaymentRequest.settlement_period_id != exclude_period_id,
                )
            )
        if exclude_request_id is not None:
            query = query.where(PaymentRequest.request_id != exclude_request_id)
        return Decimal(self.db.scalar(query) or 0)

    def deductible(self, worker_id: UUID, exclude_request_id: UUID | None = None) -> Decimal:
        """Outstanding balance not already claimed by a recorded deduction."""
        claimed = self.recorded_deductions(worker_id, exclude_request_id=exclude_request_id)
        return max(ZERO, self.get(worker_id) - claimed)

    def prior_balance_for(
        self,
        worker_id: UUID,
        settlement_period_id: UUID,
        in_period_deductions: Decimal,
    ) -> Decimal:
        """Balance a period's close folds into the formula for one worker.

        Deductions recorded in this period plus whatever outstanding balance
        no other period has claimed.
        """
        in_period_deductions = Decimal(in_period_deductions)
        elsewhere = self.recorded_deductions(worker_id, exclude_period_id=settlement_period_id)
        uncovered = self.get(worker_id) - in_period_deductions - elsewhere
        return in_period_deductions + max(ZERO, uncovered)

    def apply_deduction(
        self,
        *,
        worker_id: UUID,
        project_id: UUID,
        amount: Decimal,
        settlement_period_id: UUID,
        actor_id: UUID | None = None,
        notes: str | None = None,
    ) -> PaymentRequest:
        """Record a balance deduction in an open period.

        Creates an approved balance_deduction request assigned to the period.
        The persisted balance is left alone until the period closes.
        """
        # Import here to avoid circular imports
        from settlement_engine.services.request_ledger import RequestLedger

        ledger = RequestLedger(self.db)
        with atomic(self.db):
            request = ledger.submit(
                request_type=RequestType.BALANCE_DEDUCTION,
                worker_id=worker_id,
                project_id=project_id,
                amount=amount,
                requested_by=actor_id,
                notes=notes,
            )
            ledger.approve(request.request_id, approver_id=actor_id)
            ledger.assign_to_period(request.request_id, settlement_period_id, actor_id=actor_id)
        logger.info("Recorded balance deduction of %s for worker %s", amount, worker_id)
        return request
