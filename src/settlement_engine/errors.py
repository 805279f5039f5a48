"""Domain errors raised by the settlement engine.

Operations validate locally and fail fast. Nothing is retried; a failure
inside an atomic operation rolls back that operation only.
"""

from __future__ import annotations

from decimal import Decimal


class SettlementError(Exception):
    """Base class for settlement engine errors."""


class NotFoundError(SettlementError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity_type: str, entity_id: object):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} {entity_id} not found")


class ValidationError(SettlementError):
    """Raised when an amount or input fails a business check."""


class InsufficientAdvanceError(SettlementError):
    """Raised when FIFO consumption exceeds a worker's available advances."""

    def __init__(self, requested: Decimal, available: Decimal):
        self.requested = requested
        self.available = available
        super().__init__(
            f"Requested {requested} exceeds available advances {available}"
        )


class InvalidTransitionError(SettlementError):
    """Raised when an invalid state transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        from_status = getattr(from_status, "value", from_status)
        to_status = getattr(to_status, "value", to_status)
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ConflictError(SettlementError):
    """Raised when a concurrent actor changed a settlement period first."""


class BusinessRuleViolation(SettlementError):
    """Raised when a collaborator operation is blocked by ledger state."""


# Short names used by callers that follow the ledger vocabulary.
InsufficientAdvance = InsufficientAdvanceError
InvalidStateTransition = InvalidTransitionError
