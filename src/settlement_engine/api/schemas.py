"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from settlement_engine.models.enums import PaymentMethod, RequestType


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str


# ============================================================================
# Settlement period schemas
# ============================================================================


class PeriodCreate(BaseModel):
    """Schema for creating a settlement period."""

    start_date: date
    end_date: date
    name: str | None = None
    auto_assign: bool = False


class PeriodResponse(BaseModel):
    """Schema for settlement period response."""

    model_config = ConfigDict(from_attributes=True)

    settlement_period_id: UUID
    name: str
    start_date: date
    end_date: date
    state: str
    total_amount: Decimal
    closer_id: UUID | None = None
    closed_at: datetime | None = None
    version: int
    created_at: datetime


class PeriodListResponse(BaseModel):
    """Schema for listing settlement periods."""

    items: list[PeriodResponse]
    total: int


class CloseRequest(BaseModel):
    """Schema for closing a settlement period."""

    edited_salaries: dict[UUID, Decimal] = Field(default_factory=dict)
    excluded_workers: list[UUID] = Field(default_factory=list)
    method: PaymentMethod | None = None
    expected_version: int | None = None


class CloseResponse(BaseModel):
    """Schema for close result."""

    period: PeriodResponse
    workers: int
    payment_records: int
    removed_request_ids: list[UUID]
    issued_advance_ids: list[UUID]
    total_deposited: Decimal


class ReopenRequest(BaseModel):
    """Schema for reopening a settlement period."""

    reason: str | None = None
    expected_version: int | None = None


# ============================================================================
# Summary schemas
# ============================================================================


class SummaryPreviewRequest(BaseModel):
    """Schema for previewing a close with edited salaries."""

    edited_salaries: dict[UUID, Decimal] = Field(default_factory=dict)


class WorkerSummaryResponse(BaseModel):
    """Schema for one worker's settlement line."""

    model_config = ConfigDict(from_attributes=True)

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


class PeriodSummaryResponse(BaseModel):
    """Schema for a settlement period summary."""

    settlement_period_id: UUID
    name: str
    state: str
    frozen: bool
    workers: list[WorkerSummaryResponse]
    total_accumulated_work: Decimal
    total_to_deposit: Decimal
    total_generated_balance: Decimal
    total_advances_granted: Decimal


class PaymentRecordResponse(BaseModel):
    """Schema for a payment record."""

    model_config = ConfigDict(from_attributes=True)

    payment_record_id: UUID
    settlement_period_id: UUID
    worker_id: UUID
    project_id: UUID
    amount: Decimal
    method: str
    created_at: datetime


# ============================================================================
# Payment request schemas
# ============================================================================


class PaymentRequestCreate(BaseModel):
    """Schema for submitting a payment request."""

    request_type: RequestType
    worker_id: UUID
    project_id: UUID
    amount: Decimal = Field(gt=0)
    notes: str | None = None


class PaymentRequestResponse(BaseModel):
    """Schema for payment request response."""

    model_config = ConfigDict(from_attributes=True)

    request_id: UUID
    request_type: str
    amount: Decimal
    status: str
    worker_id: UUID
    project_id: UUID
    settlement_period_id: UUID | None = None
    approver_id: UUID | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None
    notes: str | None = None
    generated_by_close: bool = False
    created_at: datetime


class RejectRequest(BaseModel):
    """Schema for rejecting a payment request."""

    reason: str = Field(min_length=1)


class AssignRequest(BaseModel):
    """Schema for assigning a request to a settlement period."""

    settlement_period_id: UUID


# ============================================================================
# Ledger schemas
# ============================================================================


class LedgerApplication(BaseModel):
    """Schema for applying advances or deducting balance in a period."""

    project_id: UUID
    settlement_period_id: UUID
    amount: Decimal = Field(gt=0)
    notes: str | None = None


class AdvanceResponse(BaseModel):
    """Schema for an advance."""

    model_config = ConfigDict(from_attributes=True)

    advance_id: UUID
    worker_id: UUID
    project_id: UUID
    original_amount: Decimal
    available_amount: Decimal
    source_request_id: UUID | None = None
    created_at: datetime


class WorkerAccountResponse(BaseModel):
    """Schema for a worker account statement."""

    model_config = ConfigDict(from_attributes=True)

    worker_id: UUID
    worker_name: str
    outstanding_balance: Decimal
    advances: list[AdvanceResponse]
    advances_available: Decimal
    total_paid: Decimal
    pending_requests: int


class WorkerResponse(BaseModel):
    """Schema for a worker."""

    model_config = ConfigDict(from_attributes=True)

    worker_id: UUID
    name: str
    weekly_salary: Decimal
    active: bool
