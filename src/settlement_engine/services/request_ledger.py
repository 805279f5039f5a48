"""Request ledger - payment request lifecycle and settlement assignment."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from settlement_engine.database import atomic
from settlement_engine.errors import InvalidTransitionError, NotFoundError, ValidationError
from settlement_engine.models import (
    PaymentRequest,
    Project,
    RequestStatus,
    RequestType,
    SettlementPeriod,
    Worker,
    utcnow,
)
from settlement_engine.services.advance_ledger import AdvanceLedger
from settlement_engine.services.audit import record_audit
from settlement_engine.services.balance_ledger import BalanceLedger
from settlement_engine.services.state_machine import DELETED, SettlementStateMachine

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

EARNING_TYPES = [t.value for t in RequestType if t.is_earning]


class RequestLedger:
    """Service for managing payment requests.

    Operations:
    - submit: create a pending request
    - approve: stamp approver and apply the type's approval side effect
    - reject: close a pending request with a reason
    - assign_to_period: attach an approved request to an open period
    - remove: undo side effects, return to pending and detach
    - delete: drop a pending, unassigned request
    """

    def __init__(self, db: Session):
        self.db = db
        self.advances = AdvanceLedger(db)
        self.balances = BalanceLedger(db)

        # Per-type side effects; keyed by every RequestType member
        self._approval_hooks: dict[RequestType, Callable[[PaymentRequest], None]] = {
            RequestType.WORK: self._check_project_budget,
            RequestType.EXTRA: self._check_project_budget,
            RequestType.ADVANCE: self._no_effect,
            RequestType.BALANCE_DEDUCTION: self._check_deductible,
            RequestType.ADVANCE_APPLICATION: self._consume_advances,
        }
        self._reversal_hooks: dict[RequestType, Callable[[PaymentRequest], None]] = {
            RequestType.WORK: self._no_effect,
            RequestType.EXTRA: self._no_effect,
            RequestType.ADVANCE: self._no_effect,
            RequestType.BALANCE_DEDUCTION: self._no_effect,
            RequestType.ADVANCE_APPLICATION: self._restore_advances,
        }

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, request_id: UUID) -> PaymentRequest:
        """Load a request or raise NotFoundError."""
        request = self.db.get(PaymentRequest, request_id)
        if request is None:
            raise NotFoundError("PaymentRequest", request_id)
        return request

    def requests_for_period(self, settlement_period_id: UUID) -> list[PaymentRequest]:
        """All requests assigned to a period, oldest first."""
        return list(
            self.db.scalars(
                select(PaymentRequest)
                .where(PaymentRequest.settlement_period_id == settlement_period_id)
                .order_by(PaymentRequest.created_at.asc(), PaymentRequest.request_id.asc())
            ).all()
        )

    def count_for_period(self, settlement_period_id: UUID) -> int:
        """Number of requests assigned to a period."""
        return (
            self.db.scalar(
                select(func.count())
                .select_from(PaymentRequest)
                .where(PaymentRequest.settlement_period_id == settlement_period_id)
            )
            or 0
        )

    def available_requests(self) -> list[PaymentRequest]:
        """Approved requests not yet assigned to any period."""
        return list(
            self.db.scalars(
                select(PaymentRequest)
                .where(
                    PaymentRequest.status == RequestStatus.APPROVED.value,
                    PaymentRequest.settlement_period_id.is_(None),
                )
                .order_by(PaymentRequest.created_at.asc())
            ).all()
        )

    def project_remaining_balance(
        self, project: Project, exclude_request_id: UUID | None = None
    ) -> Decimal | None:
        """Budget left on a project after approved work and extras.

        Returns None for projects without a budget ceiling.
        """
        if project.budget_amount is None:
            return None

        query = select(func.coalesce(func.sum(PaymentRequest.amount), 0)).where(
            PaymentRequest.project_id == project.project_id,
            PaymentRequest.status == RequestStatus.APPROVED.value,
            PaymentRequest.request_type.in_(EARNING_TYPES),
        )
        if exclude_request_id is not None:
            query = query.where(PaymentRequest.request_id != exclude_request_id)
        committed = Decimal(self.db.scalar(query) or 0)
        return Decimal(project.budget_amount) - committed

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def submit(
        self,
        *,
        request_type: RequestType | str,
        worker_id: UUID,
        project_id: UUID,
        amount: Decimal,
        requested_by: UUID | None = None,
        notes: str | None = None,
    ) -> PaymentRequest:
        """Create a pending request."""
        request_type = RequestType(request_type)
        amount = Decimal(amount)
        if amount <= 0:
            raise ValidationError("Amount must be positive")
        if self.db.get(Worker, worker_id) is None:
            raise NotFoundError("Worker", worker_id)
        if self.db.get(Project, project_id) is None:
            raise NotFoundError("Project", project_id)

        request = PaymentRequest(
            request_type=request_type.value,
            amount=amount,
            status=RequestStatus.PENDING.value,
            worker_id=worker_id,
            project_id=project_id,
            requested_by=requested_by,
            notes=notes,
        )
        self.db.add(request)
        self.db.flush()
        return request

    def approve(self, request_id: UUID, approver_id: UUID | None = None) -> PaymentRequest:
        """Approve a pending request.

        Work and extra requests are checked against the project's remaining
        budget; advance applications draw down advances FIFO.
        """
        request = self.get(request_id)
        if request.status != RequestStatus.PENDING.value:
            raise InvalidTransitionError(
                request.status, RequestStatus.APPROVED, "Only pending requests can be approved"
            )

        with atomic(self.db):
            self._approval_hooks[RequestType(request.request_type)](request)
            request.status = RequestStatus.APPROVED.value
            request.approver_id = approver_id
            request.approved_at = utcnow()
            record_audit(
                self.db,
                entity_type="payment_request",
                entity_id=request.request_id,
                action="approved",
                actor_id=approver_id,
            )
        logger.info(
            "Approved %s request %s for %s", request.request_type, request.request_id, request.amount
        )
        return request

    def reject(
        self, request_id: UUID, reason: str, actor_id: UUID | None = None
    ) -> PaymentRequest:
        """Reject a pending request."""
        request = self.get(request_id)
        if request.status != RequestStatus.PENDING.value:
            raise InvalidTransitionError(
                request.status, RequestStatus.REJECTED, "Only pending requests can be rejected"
            )
        if not reason:
            raise ValidationError("Rejection requires a reason")

        request.status = RequestStatus.REJECTED.value
        request.rejection_reason = reason
        record_audit(
            self.db,
            entity_type="payment_request",
            entity_id=request.request_id,
            action="rejected",
            actor_id=actor_id,
            details={"reason": reason},
        )
        self.db.flush()
        logger.info("Rejected request %s: %s", request.request_id, reason)
        return request

    def assign_to_period(
        self,
        request_id: UUID,
        settlement_period_id: UUID,
        actor_id: UUID | None = None,
    ) -> PaymentRequest:
        """Attach an approved request to an open settlement period."""
        request = self.get(request_id)
        period = self.db.get(SettlementPeriod, settlement_period_id)
        if period is None:
            raise NotFoundError("SettlementPeriod", settlement_period_id)

        if not SettlementStateMachine.accepts_requests(period.state):
            raise InvalidTransitionError(
                period.state, period.state, "Cannot assign requests to a closed period"
            )
        if request.status != RequestStatus.APPROVED.value:
            raise InvalidTransitionError(
                request.status, "assigned", "Only approved requests can be assigned"
            )
        if request.settlement_period_id not in (None, settlement_period_id):
            raise InvalidTransitionError(
                request.status, "assigned", "Request already belongs to another period"
            )

        request.settlement_period_id = settlement_period_id
        self.db.flush()
        return request

    def remove(
        self,
        request_id: UUID,
        actor_id: UUID | None = None,
        auto_delete_period: bool = True,
    ) -> PaymentRequest:
        """Undo a request's ledger side effects and return it to pending.

        When this leaves an open period with no requests, the period is
        deleted.
        """
        request = self.get(request_id)
        with atomic(self.db):
            period_id = self._remove(request, actor_id)
            if auto_delete_period and period_id is not None:
                self._delete_if_empty(period_id, actor_id)
        logger.info("Removed request %s from settlement period %s", request_id, period_id)
        return request

    def remove_many(
        self,
        requests: Iterable[PaymentRequest],
        actor_id: UUID | None = None,
        auto_delete_period: bool = True,
    ) -> list[PaymentRequest]:
        """Remove several requests as one unit."""
        removed: list[PaymentRequest] = []
        touched: set[UUID] = set()
        with atomic(self.db):
            for request in requests:
                period_id = self._remove(request, actor_id)
                if period_id is not None:
                    touched.add(period_id)
                removed.append(request)
            if auto_delete_period:
                for period_id in touched:
                    self._delete_if_empty(period_id, actor_id)
        logger.info("Removed %d request(s) from settlement", len(removed))
        return removed

    def delete(self, request_id: UUID, actor_id: UUID | None = None) -> None:
        """Delete a request that is pending and unassigned."""
        request = self.get(request_id)
        if request.status != RequestStatus.PENDING.value or request.settlement_period_id:
            raise InvalidTransitionError(
                request.status, DELETED, "Only pending, unassigned requests can be deleted"
            )
        record_audit(
            self.db,
            entity_type="payment_request",
            entity_id=request.request_id,
            action="deleted",
            actor_id=actor_id,
        )
        self.db.delete(request)
        self.db.flush()
        logger.info("Deleted request %s", request_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _remove(self, request: PaymentRequest, actor_id: UUID | None) -> UUID | None:
        if request.status != RequestStatus.APPROVED.value:
            raise InvalidTransitionError(
                request.status, RequestStatus.PENDING, "Only approved requests can be removed"
            )

        period_id = request.settlement_period_id
        if period_id is not None:
            period = self.db.get(SettlementPeriod, period_id)
            if period is not None and not SettlementStateMachine.accepts_requests(period.state):
                raise InvalidTransitionError(
                    period.state,
                    period.state,
                    "Cannot remove requests from a closed period; reopen it first",
                )

        self._reversal_hooks[RequestType(request.request_type)](request)
        request.status = RequestStatus.PENDING.value
        request.settlement_period_id = None
        request.approver_id = None
        request.approved_at = None
        record_audit(
            self.db,
            entity_type="payment_request",
            entity_id=request.request_id,
            action="removed",
            actor_id=actor_id,
            details={"settlement_period_id": period_id} if period_id else None,
        )
        self.db.flush()
        return period_id

    def _delete_if_empty(self, settlement_period_id: UUID, actor_id: UUID | None) -> bool:
        period = self.db.get(SettlementPeriod, settlement_period_id)
        if period is None or not period.is_open:
            return False
        errors = SettlementStateMachine.validate_period_for_transition(
            period, DELETED, self.count_for_period(settlement_period_id)
        )
        if errors:
            return False

        record_audit(
            self.db,
            entity_type="settlement_period",
            entity_id=period.settlement_period_id,
            action="deleted:empty",
            actor_id=actor_id,
        )
        self.db.delete(period)
        self.db.flush()
        logger.info("Deleted empty settlement period %s", settlement_period_id)
        return True

    def _no_effect(self, request: PaymentRequest) -> None:
        return None

    def _check_project_budget(self, request: PaymentRequest) -> None:
        project = self.db.get(Project, request.project_id)
        if project is None:
            raise NotFoundError("Project", request.project_id)
        remaining = self.project_remaining_balance(project, exclude_request_id=request.request_id)
        if remaining is not None and Decimal(request.amount) > remaining:
            raise ValidationError(
                f"Amount {request.amount} exceeds remaining project balance {remaining}"
            )

    def _check_deductible(self, request: PaymentRequest) -> None:
        deductible = self.balances.deductible(
            request.worker_id, exclude_request_id=request.request_id
        )
        if Decimal(request.amount) > deductible:
            raise ValidationError(
                f"Deduction {request.amount} exceeds outstanding balance {deductible}"
            )

    def _consume_advances(self, request: PaymentRequest) -> None:
        self.advances.consume_fifo(request.worker_id, Decimal(request.amount))

    def _restore_advances(self, request: PaymentRequest) -> None:
        self.advances.restore_fifo(request.worker_id, Decimal(request.amount))
