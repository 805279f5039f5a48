"""Advance ledger - cash advances drawn down first in, first out."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from settlement_engine.database import atomic
from settlement_engine.errors import InsufficientAdvanceError, ValidationError
from settlement_engine.models import Advance, PaymentRequest, RequestType

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class Allocation:
    """Portion of a FIFO draw (or restore) taken from one advance."""

    advance_id: UUID
    amount: Decimal


class AdvanceLedger:
    """Tracks advances given to workers and their remaining availability.

    Notes:
    - An Advance row exists only once the period holding its advance-type
      request has been closed.
    - 0 <= available_amount <= original_amount at all times.
    - Consumption and restoration walk a worker's advances oldest first.
    """

    def __init__(self, db: Session):
        self.db = db

    def list_advances(self, worker_id: UUID, only_available: bool = False) -> list[Advance]:
        """A worker's advances in FIFO order."""
        query = select(Advance).where(Advance.worker_id == worker_id)
        if only_available:
            query = query.where(Advance.available_amount > 0)
        query = query.order_by(Advance.created_at.asc(), Advance.advance_id.asc())
        return list(self.db.scalars(query).all())

    def available_total(self, worker_id: UUID) -> Decimal:
        """Sum of available amounts across a worker's advances."""
        total = self.db.scalar(
            select(func.coalesce(func.sum(Advance.available_amount), 0)).where(
                Advance.worker_id == worker_id
            )
        )
        return Decimal(total or 0)

    def get_for_request(self, request_id: UUID) -> Advance | None:
        """The advance created from an advance-type request, if any."""
        return self.db.scalar(select(Advance).where(Advance.source_request_id == request_id))

    def issued_for(self, request_ids: Iterable[UUID]) -> list[Advance]:
        """Advances created from any of the given requests."""
        ids = list(request_ids)
        if not ids:
            return []
        return list(
            self.db.scalars(select(Advance).where(Advance.source_request_id.in_(ids))).all()
        )

    def issue_available_credit(self, request: PaymentRequest) -> Advance | None:
        """Create the Advance for an approved advance-type request.

        Returns None when the request already has its Advance row.
        """
        if RequestType(request.request_type) is not RequestType.ADVANCE:
            raise ValidationError(
                f"Request {request.request_id} is not an advance request"
            )

        existing = self.get_for_request(request.request_id)
        if existing is not None:
            return None

        amount = Decimal(request.amount)
        advance = Advance(
            worker_id=request.worker_id,
            project_id=request.project_id,
            original_amount=amount,
            available_amount=amount,
            source_request_id=request.request_id,
        )
        self.db.add(advance)
        self.db.flush()
        logger.info(
            "Issued advance %s of %s for worker %s", advance.advance_id, amount, request.worker_id
        )
        return advance

    def consume_fifo(self, worker_id: UUID, amount: Decimal) -> list[Allocation]:
        """Draw down a worker's advances oldest first.

        Raises InsufficientAdvanceError, without touching any advance, when
        the amount exceeds total availability.
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise ValidationError("Amount must be positive")

        advances = self.list_advances(worker_id, only_available=True)
        available = sum((Decimal(a.available_amount) for a in advances), ZERO)
        if amount > available:
            raise InsufficientAdvanceError(amount, available)

        allocations: list[Allocation] = []
        remaining = amount
        for advance in advances:
            if remaining <= 0:
                break
            drawn = min(Decimal(advance.available_amount), remaining)
            advance.available_amount = Decimal(advance.available_amount) - drawn
            remaining -= drawn
            allocations.append(Allocation(advance_id=advance.advance_id, amount=drawn))

        self.db.flush()
        return allocations

    def restore_fifo(self, worker_id: UUID, amount: Decimal) -> list[Allocation]:
        """Give availability back oldest first, up to each advance's original amount.

        Any amount beyond the worker's total consumed room is ignored.
        """
        amount = Decimal(amount)
        if amount <= 0:
            return []

        allocations: list[Allocation] = []
        remaining = amount
        for advance in self.list_advances(worker_id):
            if remaining <= 0:
                break
            room = Decimal(advance.original_amount) - Decimal(advance.available_amount)
            if room <= 0:
                continue
            restored = min(room, remaining)
            advance.available_amount = Decimal(advance.available_amount) + restored
            remaining -= restored
            allocations.append(Allocation(advance_id=advance.advance_id, amount=restored))

        if remaining > 0:
            logger.warning(
                "Restore of %s for worker %s left %s with no consumed advance to return to",
                amount,
                worker_id,
                remaining,
            )
        self.db.flush()
        return allocations

    def delete_advances(self, advances: Iterable[Advance]) -> int:
        """Delete advance rows (used when their issuing period reopens)."""
        count = 0
        for advance in advances:
            self.db.delete(advance)
            count += 1
        self.db.flush()
        return count

    def apply_advance(
        self,
        *,
        worker_id: UUID,
        project_id: UUID,
        amount: Decimal,
        settlement_period_id: UUID,
        actor_id: UUID | None = None,
        notes: str | None = None,
    ) -> PaymentRequest:
        """Apply available advances as a deduction in an open period.

        Submits an advance_application request, approves it (which consumes
        FIFO) and assigns it to the period as one unit.
        """
        # Import here to avoid circular imports
        from settlement_engine.services.request_ledger import RequestLedger

        ledger = RequestLedger(self.db)
        with atomic(self.db):
            request = ledger.submit(
                request_type=RequestType.ADVANCE_APPLICATION,
                worker_id=worker_id,
                project_id=project_id,
                amount=amount,
                requested_by=actor_id,
                notes=notes,
            )
            ledger.approve(request.request_id, approver_id=actor_id)
            ledger.assign_to_period(request.request_id, settlement_period_id, actor_id=actor_id)
        return request
