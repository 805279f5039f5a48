"""ORM models for the settlement engine."""

from settlement_engine.models.base import Base, TimestampMixin, utcnow
from settlement_engine.models.enums import (
    PaymentMethod,
    PeriodState,
    RequestStatus,
    RequestType,
)
from settlement_engine.models.settlement import (
    Advance,
    AuditEvent,
    PaymentRecord,
    PaymentRequest,
    SettlementPeriod,
    SettlementSnapshot,
    WorkerBalance,
)
from settlement_engine.models.workforce import Project, Worker

__all__ = [
    "Advance",
    "AuditEvent",
    "Base",
    "PaymentMethod",
    "PaymentRecord",
    "PaymentRequest",
    "PeriodState",
    "Project",
    "RequestStatus",
    "RequestType",
    "SettlementPeriod",
    "SettlementSnapshot",
    "TimestampMixin",
    "Worker",
    "WorkerBalance",
    "utcnow",
]
