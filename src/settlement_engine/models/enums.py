"""Enumerations shared by the ledgers and the settlement state machine."""

from __future__ import annotations

from enum import Enum


class RequestType(str, Enum):
    """Payment request variants.

    Every ledger operation that branches on a request type does so through a
    table keyed by every member, so adding a member fails loudly at import
    time rather than silently falling through.
    """

    WORK = "work"
    EXTRA = "extra"
    ADVANCE = "advance"
    BALANCE_DEDUCTION = "balance_deduction"
    ADVANCE_APPLICATION = "advance_application"

    @property
    def is_earning(self) -> bool:
        """Counts toward accumulated work and payment records."""
        return _CATEGORY[self] == "earning"

    @property
    def is_advance_grant(self) -> bool:
        """Cash handed out this period, promoted to an Advance at close."""
        return _CATEGORY[self] == "grant"

    @property
    def is_deduction(self) -> bool:
        """Reduces the amount deposited to the worker."""
        return _CATEGORY[self] == "deduction"


_CATEGORY: dict[RequestType, str] = {
    RequestType.WORK: "earning",
    RequestType.EXTRA: "earning",
    RequestType.ADVANCE: "grant",
    RequestType.BALANCE_DEDUCTION: "deduction",
    RequestType.ADVANCE_APPLICATION: "deduction",
}

if set(_CATEGORY) != set(RequestType):
    raise RuntimeError("every RequestType needs a category")


class RequestStatus(str, Enum):
    """Payment request lifecycle states."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PeriodState(str, Enum):
    """Settlement period states."""

    OPEN = "open"
    CLOSED = "closed"


class PaymentMethod(str, Enum):
    """How a payment record was paid out."""

    CASH = "cash"
    TRANSFER = "transfer"
    CHECK = "check"
    OTHER = "other"
