"""Settlement period service - main orchestrator for close and reopen."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from settlement_engine.calculators import WorkerTally, reconcile
from settlement_engine.config import Settings, get_settings
from settlement_engine.database import atomic
from settlement_engine.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from settlement_engine.models import (
    PaymentMethod,
    PaymentRecord,
    PaymentRequest,
    PeriodState,
    RequestStatus,
    RequestType,
    SettlementPeriod,
    SettlementSnapshot,
    utcnow,
)
from settlement_engine.services.advance_ledger import AdvanceLedger
from settlement_engine.services.audit import record_audit
from settlement_engine.services.balance_ledger import BalanceLedger
from settlement_engine.services.request_ledger import RequestLedger
from settlement_engine.services.state_machine import DELETED, SettlementStateMachine
from settlement_engine.services.worker_service import WorkerService

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def week_bounds(day: date) -> tuple[date, date, str]:
    """Monday–Sunday week containing a day, plus a default period name."""
    start = day - timedelta(days=day.weekday())
    end = start + timedelta(days=6)
    iso_year, iso_week, _ = day.isocalendar()
    return start, end, f"Week {iso_week:02d} {iso_year}"


@dataclass
class CloseResult:
    """What a close produced."""

    period: SettlementPeriod
    snapshots: list[SettlementSnapshot] = field(default_factory=list)
    payment_records: list[PaymentRecord] = field(default_factory=list)
    removed_request_ids: list[UUID] = field(default_factory=list)
    issued_advance_ids: list[UUID] = field(default_factory=list)

    @property
    def total_deposited(self) -> Decimal:
        return sum((Decimal(s.deposited_amount) for s in self.snapshots), ZERO)


class SettlementService:
    """Service for managing the settlement period lifecycle.

    Operations:
    - create_period: open a new period, optionally sweeping in approved requests
    - close_period: freeze the reconciliation and emit payments
    - reopen_period: undo every effect of close
    - delete_period: drop an empty period

    Close and reopen run inside one atomic scope and check the period's
    version, so a concurrent close/reopen of the same period raises
    ConflictError instead of applying twice.
    """

    def __init__(self, db: Session, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()
        self.requests = RequestLedger(db)
        self.advances = AdvanceLedger(db)
        self.balances = BalanceLedger(db)
        self.workers = WorkerService(db)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_period(self, settlement_period_id: UUID) -> SettlementPeriod:
        """Load a period or raise NotFoundError."""
        period = self.db.get(SettlementPeriod, settlement_period_id)
        if period is None:
            raise NotFoundError("SettlementPeriod", settlement_period_id)
        return period

    def list_periods(self, state: PeriodState | str | None = None) -> list[SettlementPeriod]:
        """Periods newest first, optionally filtered by state."""
        query = select(SettlementPeriod)
        if state is not None:
            query = query.where(SettlementPeriod.state == PeriodState(state).value)
        query = query.order_by(SettlementPeriod.created_at.desc())
        return list(self.db.scalars(query).all())

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def create_period(
        self,
        *,
        start_date: date,
        end_date: date,
        name: str | None = None,
        actor_id: UUID | None = None,
        auto_assign: bool = False,
    ) -> SettlementPeriod:
        """Create an open period.

        With auto_assign, every approved request not yet in a period is
        assigned to the new one.
        """
        if end_date < start_date:
            raise ValidationError("Period end date precedes start date")
        if not name:
            name = week_bounds(start_date)[2]

        with atomic(self.db):
            period = SettlementPeriod(
                name=name,
                start_date=start_date,
                end_date=end_date,
                state=PeriodState.OPEN.value,
                total_amount=ZERO,
                created_by=actor_id,
            )
            self.db.add(period)
            self.db.flush()

            assigned = 0
            if auto_assign:
                for request in self.requests.available_requests():
                    self.requests.assign_to_period(
                        request.request_id, period.settlement_period_id, actor_id=actor_id
                    )
                    assigned += 1

            record_audit(
                self.db,
                entity_type="settlement_period",
                entity_id=period.settlement_period_id,
                action="created",
                actor_id=actor_id,
                details={"auto_assigned": assigned} if auto_assign else None,
            )

        logger.info("Created settlement period %s (%s)", period.settlement_period_id, name)
        return period

    def close_period(
        self,
        settlement_period_id: UUID,
        *,
        actor_id: UUID | None = None,
        edited_salaries: dict[UUID, Decimal] | None = None,
        excluded_workers: set[UUID] | None = None,
        method: PaymentMethod | str | None = None,
        expected_version: int | None = None,
    ) -> CloseResult:
        """Close an open period.

        Steps, all inside one atomic scope:
        1. Remove requests of excluded workers (back to pending, unassigned)
        2. Reconcile each included worker with activity
        3. Persist one snapshot per worker
        4. Overwrite each worker's balance with the generated balance
        5. Emit payment records per (worker, project) from accumulated work
        6. Promote advance-type requests into advances
        7. Re-stamp any included request that is not approved
        8. Mark the period closed with the total deposited
        """
        edited_salaries = edited_salaries or {}
        excluded = set(excluded_workers or ())
        method = PaymentMethod(method or self.settings.default_payment_method)

        with atomic(self.db):
            period = self._load_for_transition(
                settlement_period_id, PeriodState.CLOSED, expected_version
            )
            requests = self.requests.requests_for_period(settlement_period_id)

            errors = SettlementStateMachine.validate_period_for_transition(
                period, PeriodState.CLOSED, len(requests)
            )
            if errors:
                raise InvalidTransitionError(period.state, PeriodState.CLOSED, "; ".join(errors))

            included = [r for r in requests if r.worker_id not in excluded]
            to_remove = [r for r in requests if r.worker_id in excluded]
            if not included:
                raise InvalidTransitionError(
                    period.state,
                    PeriodState.CLOSED,
                    "Every worker with activity is excluded",
                )

            result = CloseResult(period=period)

            # 1. Excluded workers
            self.requests.remove_many(to_remove, actor_id=actor_id, auto_delete_period=False)
            result.removed_request_ids = [r.request_id for r in to_remove]

            tallies = WorkerTally.from_requests(included)

            # Fold every outstanding balance into this close
            for worker_id, tally in tallies.items():
                synthetic = self._cover_outstanding_balance(period, tally, included, actor_id)
                if synthetic is not None:
                    tally.add(synthetic)
                    included.append(synthetic)

            # 2-4. Reconcile, snapshot, overwrite balances
            for worker_id, tally in tallies.items():
                salary = self.workers.salary_for(worker_id, edited_salaries)
                outcome = reconcile(
                    tally.accumulated_work,
                    salary,
                    tally.balance_deductions,
                    tally.advances_applied,
                    rounding_unit=self.settings.rounding_unit,
                )
                snapshot = SettlementSnapshot(
                    settlement_period_id=period.settlement_period_id,
                    worker_id=worker_id,
                    accumulated_work_amount=tally.accumulated_work,
                    salary_amount=salary,
                    prior_balance_amount=tally.balance_deductions,
                    manually_applied_advance_amount=tally.advances_applied,
                    deposited_amount=outcome.deposited,
                    generated_balance_amount=outcome.generated_balance,
                )
                self.db.add(snapshot)
                result.snapshots.append(snapshot)
                self.balances.set(worker_id, outcome.generated_balance)

            # 5. Payment records from accumulated work, not from the net
            for worker_id, tally in tallies.items():
                for project_id, amount in tally.work_by_project.items():
                    record = PaymentRecord(
                        settlement_period_id=period.settlement_period_id,
                        worker_id=worker_id,
                        project_id=project_id,
                        amount=amount,
                        method=method.value,
                        recorded_by=actor_id,
                        notes=f"Settlement payment: {period.name}",
                    )
                    self.db.add(record)
                    result.payment_records.append(record)

            # 6. Advances granted this period become available credit
            for request in included:
                if RequestType(request.request_type) is RequestType.ADVANCE:
                    advance = self.advances.issue_available_credit(request)
                    if advance is not None:
                        result.issued_advance_ids.append(advance.advance_id)

            # 7. Approval re-stamp
            stamped_at = utcnow()
            for request in included:
                if request.status != RequestStatus.APPROVED.value:
                    request.status = RequestStatus.APPROVED.value
                    request.approver_id = actor_id
                    request.approved_at = stamped_at

            # 8. Period
            period.state = PeriodState.CLOSED.value
            period.total_amount = result.total_deposited
            period.closer_id = actor_id
            period.closed_at = stamped_at
            self.db.flush()

            record_audit(
                self.db,
                entity_type="settlement_period",
                entity_id=period.settlement_period_id,
                action=f"status_change:{PeriodState.OPEN.value}:{PeriodState.CLOSED.value}",
                actor_id=actor_id,
                details={
                    "workers": len(result.snapshots),
                    "payment_records": len(result.payment_records),
                    "total_deposited": period.total_amount,
                    "excluded_workers": sorted(str(w) for w in excluded),
                },
            )

        logger.info(
            "Closed settlement period %s: %d worker(s), %s deposited",
            period.settlement_period_id,
            len(result.snapshots),
            period.total_amount,
        )
        return result

    def reopen_period(
        self,
        settlement_period_id: UUID,
        *,
        actor_id: UUID | None = None,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> SettlementPeriod:
        """Reopen a closed period, undoing every effect of its close.

        Requests stay approved and assigned; only remove() sends a request
        back to pending.
        """
        with atomic(self.db):
            period = self._load_for_transition(
                settlement_period_id, PeriodState.OPEN, expected_version
            )
            requests = self.requests.requests_for_period(settlement_period_id)

            issued = self.advances.issued_for(r.request_id for r in requests)
            consumed = [a for a in issued if Decimal(a.available_amount) != Decimal(a.original_amount)]
            if consumed:
                raise InvalidTransitionError(
                    period.state,
                    PeriodState.OPEN,
                    f"{len(consumed)} advance(s) issued by this close have already been applied",
                )

            # Payment records
            self.db.execute(
                delete(PaymentRecord).where(
                    PaymentRecord.settlement_period_id == settlement_period_id
                )
            )

            # Balances: drop what the close generated, then give back what it deducted
            snapshots = list(
                self.db.scalars(
                    select(SettlementSnapshot).where(
                        SettlementSnapshot.settlement_period_id == settlement_period_id
                    )
                ).all()
            )
            for snapshot in snapshots:
                self.balances.subtract_clamped(
                    snapshot.worker_id, Decimal(snapshot.generated_balance_amount)
                )
            for request in requests:
                if RequestType(request.request_type) is RequestType.BALANCE_DEDUCTION:
                    self.balances.restore(request.worker_id, Decimal(request.amount))
                    if request.generated_by_close:
                        self.db.delete(request)

            for snapshot in snapshots:
                self.db.delete(snapshot)

            # Advances issued at close
            self.advances.delete_advances(issued)

            period.state = PeriodState.OPEN.value
            period.total_amount = ZERO
            period.closer_id = None
            period.closed_at = None
            self.db.flush()

            record_audit(
                self.db,
                entity_type="settlement_period",
                entity_id=period.settlement_period_id,
                action=f"status_change:{PeriodState.CLOSED.value}:{PeriodState.OPEN.value}",
                actor_id=actor_id,
                details={
                    "reason": reason,
                    "discarded_snapshots": [s.to_dict() for s in snapshots],
                },
            )

        logger.info("Reopened settlement period %s", settlement_period_id)
        return period

    def delete_period(self, settlement_period_id: UUID, actor_id: UUID | None = None) -> None:
        """Delete a period with no assigned requests and a zero total."""
        with atomic(self.db):
            period = self.get_period(settlement_period_id)
            errors = SettlementStateMachine.validate_period_for_transition(
                period, DELETED, self.requests.count_for_period(settlement_period_id)
            )
            if errors:
                raise InvalidTransitionError(period.state, DELETED, "; ".join(errors))

            record_audit(
                self.db,
                entity_type="settlement_period",
                entity_id=period.settlement_period_id,
                action="deleted",
                actor_id=actor_id,
            )
            self.db.delete(period)
            self.db.flush()

        logger.info("Deleted settlement period %s", settlement_period_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_for_transition(
        self,
        settlement_period_id: UUID,
        to_state: PeriodState,
        expected_version: int | None,
    ) -> SettlementPeriod:
        period = self.get_period(settlement_period_id)

        # Compare against the stored row, not the identity map
        stored = self.db.execute(
            select(SettlementPeriod.state, SettlementPeriod.version).where(
                SettlementPeriod.settlement_period_id == settlement_period_id
            )
        ).one_or_none()
        if stored is None:
            raise ConflictError(f"Settlement period {settlement_period_id} was deleted")
        if stored.version != period.version or stored.state != period.state:
            raise ConflictError(
                f"Settlement period {settlement_period_id} was changed by another actor"
            )
        if expected_version is not None and stored.version != expected_version:
            raise ConflictError(
                f"Settlement period {settlement_period_id} is at version {stored.version}, "
                f"expected {expected_version}"
            )

        SettlementStateMachine.validate_transition(period.state, to_state)
        return period

    def _cover_outstanding_balance(
        self,
        period: SettlementPeriod,
        tally: WorkerTally,
        included: list[PaymentRequest],
        actor_id: UUID | None,
    ) -> PaymentRequest | None:
        """Record any balance not yet deducted so the close folds in all of it."""
        worker_id = tally.worker_id
        elsewhere = self.balances.recorded_deductions(
            worker_id, exclude_period_id=period.settlement_period_id
        )
        if elsewhere > 0:
            raise ValidationError(
                f"Worker {worker_id} has balance deductions recorded outside this period"
            )

        gap = self.balances.get(worker_id) - tally.balance_deductions
        if gap < 0:
            raise ValidationError(
                f"Balance deductions for worker {worker_id} exceed the outstanding balance"
            )
        if gap == 0:
            return None

        anchor = next(r for r in included if r.worker_id == worker_id)
        request = PaymentRequest(
            request_type=RequestType.BALANCE_DEDUCTION.value,
            amount=gap,
            status=RequestStatus.APPROVED.value,
            worker_id=worker_id,
            project_id=anchor.project_id,
            settlement_period_id=period.settlement_period_id,
            requested_by=actor_id,
            approver_id=actor_id,
            approved_at=utcnow(),
            notes=f"Outstanding balance deducted at close: {period.name}",
            generated_by_close=True,
        )
        self.db.add(request)
        self.db.flush()
        return request
