"""Type definitions for the reconciliation pipeline."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from settlement_engine.models.enums import RequestType

if TYPE_CHECKING:
    from settlement_engine.models import PaymentRequest

ZERO = Decimal("0")


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of reconciling one worker for one period."""

    net: Decimal
    deposited: Decimal
    generated_balance: Decimal


@dataclass
class WorkerTally:
    """Per-worker sums over the requests assigned to a period."""

    worker_id: UUID
    accumulated_work: Decimal = ZERO
    advances_granted: Decimal = ZERO
    balance_deductions: Decimal = ZERO
    advances_applied: Decimal = ZERO
    # (project_id -> accumulated work) for payment records
    work_by_project: dict[UUID, Decimal] = field(default_factory=dict)

    def add(self, request: PaymentRequest) -> None:
        """Fold one request into the tally."""
        request_type = RequestType(request.request_type)
        amount = Decimal(request.amount)
        _TALLY_ADDERS[request_type](self, request, amount)

    @classmethod
    def from_requests(
        cls, requests: Iterable[PaymentRequest]
    ) -> dict[UUID, WorkerTally]:
        """Group requests by worker into tallies, preserving first-seen order."""
        tallies: dict[UUID, WorkerTally] = {}
        for request in requests:
            tally = tallies.get(request.worker_id)
            if tally is None:
                tally = tallies[request.worker_id] = cls(worker_id=request.worker_id)
            tally.add(request)
        return tallies


def _add_earning(tally: WorkerTally, request: PaymentRequest, amount: Decimal) -> None:
    tally.accumulated_work += amount
    tally.work_by_project[request.project_id] = (
        tally.work_by_project.get(request.project_id, ZERO) + amount
    )


def _add_grant(tally: WorkerTally, request: PaymentRequest, amount: Decimal) -> None:
    tally.advances_granted += amount


def _add_balance_deduction(
    tally: WorkerTally, request: PaymentRequest, amount: Decimal
) -> None:
    tally.balance_deductions += amount


def _add_advance_application(
    tally: WorkerTally, request: PaymentRequest, amount: Decimal
) -> None:
    tally.advances_applied += amount


_TALLY_ADDERS = {
    RequestType.WORK: _add_earning,
    RequestType.EXTRA: _add_earning,
    RequestType.ADVANCE: _add_grant,
    RequestType.BALANCE_DEDUCTION: _add_balance_deduction,
    RequestType.ADVANCE_APPLICATION: _add_advance_application,
}
