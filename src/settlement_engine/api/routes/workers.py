"""Worker ledger API endpoints (advances, balances, account statement)."""

from decimal import Decimal
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from settlement_engine.api.dependencies import ActorId, DbSession
from settlement_engine.api.schemas import (
    AdvanceResponse,
    ErrorResponse,
    LedgerApplication,
    PaymentRequestResponse,
    WorkerAccountResponse,
    WorkerResponse,
)
from settlement_engine.services import (
    AdvanceLedger,
    BalanceLedger,
    SummaryService,
    WorkerService,
)

router = APIRouter(prefix="/workers", tags=["workers"])

_errors = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


@router.get("/{worker_id}/account", response_model=WorkerAccountResponse, responses=_errors)
def get_worker_account(
    db: DbSession, worker_id: Annotated[UUID, Path()]
) -> WorkerAccountResponse:
    """Account statement: balance, advances and payments for a worker."""
    return WorkerAccountResponse.model_validate(SummaryService(db).worker_account(worker_id))


@router.get("/{worker_id}/advances", response_model=list[AdvanceResponse], responses=_errors)
def list_worker_advances(
    db: DbSession, worker_id: Annotated[UUID, Path()]
) -> list[AdvanceResponse]:
    """A worker's advances in FIFO order."""
    WorkerService(db).get(worker_id)
    return [AdvanceResponse.model_validate(a) for a in AdvanceLedger(db).list_advances(worker_id)]


@router.post(
    "/{worker_id}/advances/apply",
    response_model=PaymentRequestResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_errors,
)
def apply_advance(
    db: DbSession,
    actor_id: ActorId,
    worker_id: Annotated[UUID, Path()],
    payload: LedgerApplication,
) -> PaymentRequestResponse:
    """Apply available advances as a deduction in an open period."""
    request = AdvanceLedger(db).apply_advance(
        worker_id=worker_id,
        project_id=payload.project_id,
        amount=payload.amount,
        settlement_period_id=payload.settlement_period_id,
        actor_id=actor_id,
        notes=payload.notes,
    )
    db.commit()
    return PaymentRequestResponse.model_validate(request)


@router.get("/{worker_id}/balance", responses=_errors)
def get_worker_balance(db: DbSession, worker_id: Annotated[UUID, Path()]) -> dict[str, Decimal]:
    """Outstanding balance and the part not yet claimed by a deduction."""
    WorkerService(db).get(worker_id)
    ledger = BalanceLedger(db)
    return {
        "accumulated_amount": ledger.get(worker_id),
        "deductible_amount": ledger.deductible(worker_id),
    }


@router.post(
    "/{worker_id}/balance/deductions",
    response_model=PaymentRequestResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_errors,
)
def apply_deduction(
    db: DbSession,
    actor_id: ActorId,
    worker_id: Annotated[UUID, Path()],
    payload: LedgerApplication,
) -> PaymentRequestResponse:
    """Record a balance deduction in an open period."""
    request = BalanceLedger(db).apply_deduction(
        worker_id=worker_id,
        project_id=payload.project_id,
        amount=payload.amount,
        settlement_period_id=payload.settlement_period_id,
        actor_id=actor_id,
        notes=payload.notes,
    )
    db.commit()
    return PaymentRequestResponse.model_validate(request)


@router.post("/{worker_id}/deactivate", response_model=WorkerResponse, responses=_errors)
def deactivate_worker(
    db: DbSession, actor_id: ActorId, worker_id: Annotated[UUID, Path()]
) -> WorkerResponse:
    """Deactivate a worker with no open ledger activity."""
    worker = WorkerService(db).deactivate(worker_id, actor_id=actor_id)
    db.commit()
    return WorkerResponse.model_validate(worker)


@router.post("/{worker_id}/activate", response_model=WorkerResponse, responses=_errors)
def activate_worker(
    db: DbSession, actor_id: ActorId, worker_id: Annotated[UUID, Path()]
) -> WorkerResponse:
    """Mark a deactivated worker active again."""
    worker = WorkerService(db).activate(worker_id, actor_id=actor_id)
    db.commit()
    return WorkerResponse.model_validate(worker)
