"""Payment request API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from settlement_engine.api.dependencies import ActorId, DbSession
from settlement_engine.api.schemas import (
    AssignRequest,
    ErrorResponse,
    PaymentRequestCreate,
    PaymentRequestResponse,
    RejectRequest,
)
from settlement_engine.services import RequestLedger

router = APIRouter(prefix="/requests", tags=["requests"])

_errors = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


@router.post(
    "",
    response_model=PaymentRequestResponse,
    status_code=status.HTTP_201_CREATED,
    responses=_errors,
)
def submit_request(
    db: DbSession, actor_id: ActorId, payload: PaymentRequestCreate
) -> PaymentRequestResponse:
    """Submit a pending payment request."""
    request = RequestLedger(db).submit(
        request_type=payload.request_type,
        worker_id=payload.worker_id,
        project_id=payload.project_id,
        amount=payload.amount,
        requested_by=actor_id,
        notes=payload.notes,
    )
    db.commit()
    return PaymentRequestResponse.model_validate(request)


@router.get("/available", response_model=list[PaymentRequestResponse])
def list_available_requests(db: DbSession) -> list[PaymentRequestResponse]:
    """Approved requests not yet assigned to a period."""
    return [
        PaymentRequestResponse.model_validate(r) for r in RequestLedger(db).available_requests()
    ]


@router.get("/{request_id}", response_model=PaymentRequestResponse, responses=_errors)
def get_request(db: DbSession, request_id: Annotated[UUID, Path()]) -> PaymentRequestResponse:
    """Get a payment request by ID."""
    return PaymentRequestResponse.model_validate(RequestLedger(db).get(request_id))


@router.post("/{request_id}/approve", response_model=PaymentRequestResponse, responses=_errors)
def approve_request(
    db: DbSession, actor_id: ActorId, request_id: Annotated[UUID, Path()]
) -> PaymentRequestResponse:
    """Approve a pending request."""
    request = RequestLedger(db).approve(request_id, approver_id=actor_id)
    db.commit()
    return PaymentRequestResponse.model_validate(request)


@router.post("/{request_id}/reject", response_model=PaymentRequestResponse, responses=_errors)
def reject_request(
    db: DbSession,
    actor_id: ActorId,
    request_id: Annotated[UUID, Path()],
    payload: RejectRequest,
) -> PaymentRequestResponse:
    """Reject a pending request."""
    request = RequestLedger(db).reject(request_id, payload.reason, actor_id=actor_id)
    db.commit()
    return PaymentRequestResponse.model_validate(request)


@router.post("/{request_id}/assign", response_model=PaymentRequestResponse, responses=_errors)
def assign_request(
    db: DbSession,
    actor_id: ActorId,
    request_id: Annotated[UUID, Path()],
    payload: AssignRequest,
) -> PaymentRequestResponse:
    """Assign an approved request to an open period."""
    request = RequestLedger(db).assign_to_period(
        request_id, payload.settlement_period_id, actor_id=actor_id
    )
    db.commit()
    return PaymentRequestResponse.model_validate(request)


@router.post("/{request_id}/remove", response_model=PaymentRequestResponse, responses=_errors)
def remove_request(
    db: DbSession, actor_id: ActorId, request_id: Annotated[UUID, Path()]
) -> PaymentRequestResponse:
    """Reverse a request's side effects and return it to pending."""
    request = RequestLedger(db).remove(request_id, actor_id=actor_id)
    db.commit()
    return PaymentRequestResponse.model_validate(request)


@router.delete(
    "/{request_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=_errors,
)
def delete_request(
    db: DbSession, actor_id: ActorId, request_id: Annotated[UUID, Path()]
) -> None:
    """Delete a pending, unassigned request."""
    RequestLedger(db).delete(request_id, actor_id=actor_id)
    db.commit()
