"""Settlement period, request, advance, balance and close-time record models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_engine.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from settlement_engine.models.workforce import Project, Worker


# ===== Settlement Periods =====


class SettlementPeriod(Base, TimestampMixin):
    """A bounded payroll cycle that aggregates requests and produces payments."""

    __tablename__ = "settlement_period"

    settlement_period_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    state: Mapped[str] = mapped_column(String, nullable=False, default="open")
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    created_by: Mapped[UUID | None] = mapped_column(nullable=True)
    closer_id: Mapped[UUID | None] = mapped_column(nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("state IN ('open', 'closed')", name="settlement_period_state_check"),
        CheckConstraint("end_date >= start_date", name="settlement_period_dates_check"),
    )
    __mapper_args__ = {"version_id_col": version}

    # Relationships
    requests: Mapped[list[PaymentRequest]] = relationship(back_populates="settlement_period")

    @property
    def is_open(self) -> bool:
        return self.state == "open"


# ===== Payment Requests =====


class PaymentRequest(Base, TimestampMixin):
    """A request to pay, grant, deduct or apply money for a worker."""

    __tablename__ = "payment_request"

    request_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    request_type: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    worker_id: Mapped[UUID] = mapped_column(
        ForeignKey("worker.worker_id", ondelete="CASCADE"),
        nullable=False,
    )
    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("project.project_id", ondelete="CASCADE"),
        nullable=False,
    )
    settlement_period_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("settlement_period.settlement_period_id"),
        nullable=True,
    )
    requested_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approver_id: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Set on balance_deduction rows written by a period close, removed on reopen
    generated_by_close: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint(
            "request_type IN ('work', 'extra', 'advance', 'balance_deduction', "
            "'advance_application')",
            name="payment_request_type_check",
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="payment_request_status_check",
        ),
        CheckConstraint("amount > 0", name="payment_request_amount_positive"),
    )

    # Relationships
    worker: Mapped[Worker] = relationship()
    project: Mapped[Project] = relationship()
    settlement_period: Mapped[SettlementPeriod | None] = relationship(back_populates="requests")


# ===== Advances & Balances =====


class Advance(Base, TimestampMixin):
    """Cash advanced to a worker, drawn down FIFO by advance applications."""

    __tablename__ = "advance"

    advance_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    worker_id: Mapped[UUID] = mapped_column(
        ForeignKey("worker.worker_id", ondelete="CASCADE"),
        nullable=False,
    )
    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("project.project_id", ondelete="CASCADE"),
        nullable=False,
    )
    original_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    available_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    source_request_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payment_request.request_id"),
        nullable=True,
        unique=True,
    )

    __table_args__ = (
        CheckConstraint(
            "available_amount >= 0 AND available_amount <= original_amount",
            name="advance_available_bounds",
        ),
    )


class WorkerBalance(Base):
    """Carry-over debt a worker owes the company."""

    __tablename__ = "worker_balance"

    worker_id: Mapped[UUID] = mapped_column(
        ForeignKey("worker.worker_id", ondelete="CASCADE"),
        primary_key=True,
    )
    accumulated_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )

    __table_args__ = (
        CheckConstraint("accumulated_amount >= 0", name="worker_balance_non_negative"),
    )


# ===== Close-time Records =====


class SettlementSnapshot(Base, TimestampMixin):
    """Frozen per-worker reconciliation written when a period closes."""

    __tablename__ = "settlement_snapshot"

    snapshot_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    settlement_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("settlement_period.settlement_period_id", ondelete="CASCADE"),
        nullable=False,
    )
    worker_id: Mapped[UUID] = mapped_column(
        ForeignKey("worker.worker_id", ondelete="CASCADE"),
        nullable=False,
    )
    accumulated_work_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    salary_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    prior_balance_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    manually_applied_advance_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False
    )
    deposited_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    generated_balance_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "settlement_period_id",
            "worker_id",
            name="settlement_snapshot_period_worker_unique",
        ),
    )


class PaymentRecord(Base, TimestampMixin):
    """Payment emitted at close, one per (worker, project)."""

    __tablename__ = "payment_record"

    payment_record_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    settlement_period_id: Mapped[UUID] = mapped_column(
        ForeignKey("settlement_period.settlement_period_id", ondelete="CASCADE"),
        nullable=False,
    )
    worker_id: Mapped[UUID] = mapped_column(
        ForeignKey("worker.worker_id", ondelete="CASCADE"),
        nullable=False,
    )
    project_id: Mapped[UUID] = mapped_column(
        ForeignKey("project.project_id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    method: Mapped[str] = mapped_column(String, nullable=False)
    recorded_by: Mapped[UUID | None] = mapped_column(nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "method IN ('cash', 'transfer', 'check', 'other')",
            name="payment_record_method_check",
        ),
    )


# ===== Audit =====


class AuditEvent(Base, TimestampMixin):
    """Audit trail row for ledger and period transitions."""

    __tablename__ = "audit_event"

    audit_event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    details_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
