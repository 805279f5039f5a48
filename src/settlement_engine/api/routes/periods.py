"""Settlement period API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from settlement_engine.api.dependencies import ActorId, DbSession
from settlement_engine.api.schemas import (
    CloseRequest,
    CloseResponse,
    ErrorResponse,
    PaymentRecordResponse,
    PaymentRequestResponse,
    PeriodCreate,
    PeriodListResponse,
    PeriodResponse,
    PeriodSummaryResponse,
    ReopenRequest,
    SummaryPreviewRequest,
    WorkerSummaryResponse,
)
from settlement_engine.models import PeriodState
from settlement_engine.services import PeriodSummary, SettlementService, SummaryService

router = APIRouter(prefix="/periods", tags=["periods"])


# ============================================================================
# Period CRUD
# ============================================================================


@router.post(
    "",
    response_model=PeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={422: {"model": ErrorResponse}},
)
def create_period(db: DbSession, actor_id: ActorId, payload: PeriodCreate) -> PeriodResponse:
    """Create a new open settlement period."""
    period = SettlementService(db).create_period(
        start_date=payload.start_date,
        end_date=payload.end_date,
        name=payload.name,
        actor_id=actor_id,
        auto_assign=payload.auto_assign,
    )
    db.commit()
    return PeriodResponse.model_validate(period)


@router.get("", response_model=PeriodListResponse)
def list_periods(
    db: DbSession,
    state: Annotated[PeriodState | None, Query()] = None,
) -> PeriodListResponse:
    """List settlement periods, newest first."""
    periods = SettlementService(db).list_periods(state)
    return PeriodListResponse(
        items=[PeriodResponse.model_validate(p) for p in periods],
        total=len(periods),
    )


@router.get(
    "/{period_id}",
    response_model=PeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_period(db: DbSession, period_id: Annotated[UUID, Path()]) -> PeriodResponse:
    """Get a settlement period by ID."""
    return PeriodResponse.model_validate(SettlementService(db).get_period(period_id))


@router.delete(
    "/{period_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def delete_period(
    db: DbSession, actor_id: ActorId, period_id: Annotated[UUID, Path()]
) -> None:
    """Delete an empty settlement period."""
    SettlementService(db).delete_period(period_id, actor_id=actor_id)
    db.commit()


@router.get(
    "/{period_id}/requests",
    response_model=list[PaymentRequestResponse],
    responses={404: {"model": ErrorResponse}},
)
def list_period_requests(
    db: DbSession, period_id: Annotated[UUID, Path()]
) -> list[PaymentRequestResponse]:
    """List the requests assigned to a period."""
    service = SettlementService(db)
    service.get_period(period_id)
    return [
        PaymentRequestResponse.model_validate(r)
        for r in service.requests.requests_for_period(period_id)
    ]


# ============================================================================
# Period State Transitions
# ============================================================================


@router.post(
    "/{period_id}/close",
    response_model=CloseResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
def close_period(
    db: DbSession,
    actor_id: ActorId,
    period_id: Annotated[UUID, Path()],
    payload: CloseRequest,
) -> CloseResponse:
    """Close a period: snapshot, emit payments, update balances and advances."""
    result = SettlementService(db).close_period(
        period_id,
        actor_id=actor_id,
        edited_salaries=payload.edited_salaries,
        excluded_workers=set(payload.excluded_workers),
        method=payload.method,
        expected_version=payload.expected_version,
    )
    db.commit()
    return CloseResponse(
        period=PeriodResponse.model_validate(result.period),
        workers=len(result.snapshots),
        payment_records=len(result.payment_records),
        removed_request_ids=result.removed_request_ids,
        issued_advance_ids=result.issued_advance_ids,
        total_deposited=result.total_deposited,
    )


@router.post(
    "/{period_id}/reopen",
    response_model=PeriodResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
def reopen_period(
    db: DbSession,
    actor_id: ActorId,
    period_id: Annotated[UUID, Path()],
    payload: ReopenRequest,
) -> PeriodResponse:
    """Reopen a closed period, reversing every effect of its close."""
    period = SettlementService(db).reopen_period(
        period_id,
        actor_id=actor_id,
        reason=payload.reason,
        expected_version=payload.expected_version,
    )
    db.commit()
    return PeriodResponse.model_validate(period)


# ============================================================================
# Reporting views
# ============================================================================


@router.get(
    "/{period_id}/summary",
    response_model=PeriodSummaryResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_period_summary(
    db: DbSession, period_id: Annotated[UUID, Path()]
) -> PeriodSummaryResponse:
    """Per-worker settlement summary (live when open, frozen when closed)."""
    return _summary_response(SummaryService(db).period_summary(period_id))


@router.post(
    "/{period_id}/summary/preview",
    response_model=PeriodSummaryResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def preview_period_summary(
    db: DbSession,
    period_id: Annotated[UUID, Path()],
    payload: SummaryPreviewRequest,
) -> PeriodSummaryResponse:
    """Live summary with edited salaries, as a close with them would settle."""
    summary = SummaryService(db).period_summary(
        period_id, edited_salaries=payload.edited_salaries
    )
    return _summary_response(summary)


def _summary_response(summary: PeriodSummary) -> PeriodSummaryResponse:
    return PeriodSummaryResponse(
        settlement_period_id=summary.settlement_period_id,
        name=summary.name,
        state=summary.state,
        frozen=summary.frozen,
        workers=[WorkerSummaryResponse.model_validate(w) for w in summary.workers],
        total_accumulated_work=summary.total_accumulated_work,
        total_to_deposit=summary.total_to_deposit,
        total_generated_balance=summary.total_generated_balance,
        total_advances_granted=summary.total_advances_granted,
    )


@router.get(
    "/{period_id}/payment-records",
    response_model=list[PaymentRecordResponse],
    responses={404: {"model": ErrorResponse}},
)
def list_payment_records(
    db: DbSession, period_id: Annotated[UUID, Path()]
) -> list[PaymentRecordResponse]:
    """Payment records emitted by a closed period."""
    SettlementService(db).get_period(period_id)
    return [
        PaymentRecordResponse.model_validate(r)
        for r in SummaryService(db).payment_records(period_id)
    ]
