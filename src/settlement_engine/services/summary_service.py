"""Read-only settlement views consumed by reporting and export."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from settlement_engine.calculators import WorkerTally, reconcile
from settlement_engine.config import Settings, get_settings
from settlement_engine.errors import NotFoundError
from settlement_engine.models import (
    Advance,
    PaymentRecord,
    PaymentRequest,
    RequestStatus,
    SettlementPeriod,
    SettlementSnapshot,
    Worker,
)
from settlement_engine.services.advance_ledger import AdvanceLedger
from settlement_engine.services.balance_ledger import BalanceLedger
from settlement_engine.services.request_ledger import RequestLedger
from settlement_engine.services.state_machine import SettlementStateMachine
from settlement_engine.services.worker_service import WorkerService

ZERO = Decimal("0")


@dataclass(frozen=True)
class WorkerSettlementSummary:
    """One worker's line in a settlement summary."""

    worker_id: UUID
    worker_name: str
    accumulated_work: Decimal
    salary: Decimal
    prior_balance: Decimal
    advances_granted: Decimal
    advances_available: Decimal
    advances_manually_applied: Decimal
    to_deposit: Decimal
    generated_balance: Decimal


@dataclass
class PeriodSummary:
    """Settlement summary for a whole period."""

    settlement_period_id: UUID
    name: str
    state: str
    frozen: bool
    workers: list[WorkerSettlementSummary] = field(default_factory=list)

    @property
    def total_accumulated_work(self) -> Decimal:
        return sum((w.accumulated_work for w in self.workers), ZERO)

    @property
    def total_to_deposit(self) -> Decimal:
        return sum((w.to_deposit for w in self.workers), ZERO)

    @property
    def total_generated_balance(self) -> Decimal:
        return sum((w.generated_balance for w in self.workers), ZERO)

    @property
    def total_advances_granted(self) -> Decimal:
        return sum((w.advances_granted for w in self.workers), ZERO)


@dataclass
class WorkerAccount:
    """Account statement for one worker."""

    worker_id: UUID
    worker_name: str
    outstanding_balance: Decimal
    advances: list[Advance]
    advances_available: Decimal
    total_paid: Decimal
    pending_requests: int


class SummaryService:
    """Builds settlement summaries.

    Open periods are reconciled live through the shared formula; closed
    periods are read back from their snapshots.
    """

    def __init__(self, db: Session, settings: Settings | None = None):
        self.db = db
        self.settings = settings or get_settings()
        self.requests = RequestLedger(db)
        self.advances = AdvanceLedger(db)
        self.balances = BalanceLedger(db)
        self.workers = WorkerService(db)

    def period_summary(
        self,
        settlement_period_id: UUID,
        edited_salaries: dict[UUID, Decimal] | None = None,
    ) -> PeriodSummary:
        """Per-worker settlement summary for a period.

        Edited salaries preview a close and only apply while the period is open.
        """
        period = self.db.get(SettlementPeriod, settlement_period_id)
        if period is None:
            raise NotFoundError("SettlementPeriod", settlement_period_id)

        tallies = WorkerTally.from_requests(self.requests.requests_for_period(settlement_period_id))
        frozen = SettlementStateMachine.are_results_frozen(period.state)
        summary = PeriodSummary(
            settlement_period_id=period.settlement_period_id,
            name=period.name,
            state=period.state,
            frozen=frozen,
        )

        if frozen:
            snapshots = self.db.scalars(
                select(SettlementSnapshot).where(
                    SettlementSnapshot.settlement_period_id == settlement_period_id
                )
            ).all()
            for snapshot in snapshots:
                tally = tallies.get(snapshot.worker_id)
                summary.workers.append(
                    WorkerSettlementSummary(
                        worker_id=snapshot.worker_id,
                        worker_name=self._worker_name(snapshot.worker_id),
                        accumulated_work=Decimal(snapshot.accumulated_work_amount),
                        salary=Decimal(snapshot.salary_amount),
                        prior_balance=Decimal(snapshot.prior_balance_amount),
                        advances_granted=tally.advances_granted if tally else ZERO,
                        advances_available=self.advances.available_total(snapshot.worker_id),
                        advances_manually_applied=Decimal(
                            snapshot.manually_applied_advance_amount
                        ),
                        to_deposit=Decimal(snapshot.deposited_amount),
                        generated_balance=Decimal(snapshot.generated_balance_amount),
                    )
                )
        else:
            for worker_id, tally in tallies.items():
                worker = self.workers.get(worker_id)
                salary = self.workers.salary_for(worker_id, edited_salaries)
                prior_balance = self.balances.prior_balance_for(
                    worker_id, settlement_period_id, tally.balance_deductions
                )
                outcome = reconcile(
                    tally.accumulated_work,
                    salary,
                    prior_balance,
                    tally.advances_applied,
                    rounding_unit=self.settings.rounding_unit,
                )
                summary.workers.append(
                    WorkerSettlementSummary(
                        worker_id=worker_id,
                        worker_name=worker.name,
                        accumulated_work=tally.accumulated_work,
                        salary=salary,
                        prior_balance=prior_balance,
                        advances_granted=tally.advances_granted,
                        advances_available=self.advances.available_total(worker_id),
                        advances_manually_applied=tally.advances_applied,
                        to_deposit=outcome.deposited,
                        generated_balance=outcome.generated_balance,
                    )
                )

        summary.workers.sort(key=lambda w: w.worker_name.upper())
        return summary

    def payment_records(self, settlement_period_id: UUID) -> list[PaymentRecord]:
        """Payment records emitted by a period's close."""
        return list(
            self.db.scalars(
                select(PaymentRecord)
                .where(PaymentRecord.settlement_period_id == settlement_period_id)
                .order_by(PaymentRecord.worker_id, PaymentRecord.project_id)
            ).all()
        )

    def worker_account(self, worker_id: UUID) -> WorkerAccount:
        """Balance, advances and payments on record for a worker."""
        worker = self.db.get(Worker, worker_id)
        if worker is None:
            raise NotFoundError("Worker", worker_id)

        total_paid = self.db.scalar(
            select(func.coalesce(func.sum(PaymentRecord.amount), 0)).where(
                PaymentRecord.worker_id == worker_id
            )
        )
        pending = self.db.scalar(
            select(func.count())
            .select_from(PaymentRequest)
            .where(
                PaymentRequest.worker_id == worker_id,
                PaymentRequest.status == RequestStatus.PENDING.value,
            )
        )
        advances = self.advances.list_advances(worker_id)
        return WorkerAccount(
            worker_id=worker_id,
            worker_name=worker.name,
            outstanding_balance=self.balances.get(worker_id),
            advances=advances,
            advances_available=sum((Decimal(a.available_amount) for a in advances), ZERO),
            total_paid=Decimal(total_paid or 0),
            pending_requests=pending or 0,
        )

    def _worker_name(self, worker_id: UUID) -> str:
        worker = self.db.get(Worker, worker_id)
        return worker.name if worker else ""
