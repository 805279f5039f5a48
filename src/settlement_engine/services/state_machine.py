"""Settlement period state machine with transition validation."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from settlement_engine.errors import InvalidTransitionError
from settlement_engine.models.enums import PeriodState

if TYPE_CHECKING:
    from settlement_engine.models import SettlementPeriod

DELETED = "deleted"


class SettlementStateMachine:
    """State machine for settlement period transitions.

    Allowed transitions:
    - open → closed (close)
    - closed → open (reopen)
    - open → deleted, only while empty
    """

    # Define valid transitions: {from_state: [allowed_to_states]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        PeriodState.OPEN: [PeriodState.CLOSED, DELETED],
        PeriodState.CLOSED: [PeriodState.OPEN],
    }

    # States where requests can be assigned, removed or applied
    ACCEPTS_REQUESTS = {PeriodState.OPEN}

    # States whose snapshots and payment records are frozen
    RESULTS_FROZEN = {PeriodState.CLOSED}

    @classmethod
    def can_transition(cls, from_state: str, to_state: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_state, [])
        return to_state in allowed

    @classmethod
    def validate_transition(
        cls, from_state: str, to_state: str, reason: str | None = None
    ) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_state, to_state):
            raise InvalidTransitionError(from_state, to_state, reason)

    @classmethod
    def accepts_requests(cls, state: str) -> bool:
        """Check if requests may be assigned to or removed from this state."""
        return state in cls.ACCEPTS_REQUESTS

    @classmethod
    def are_results_frozen(cls, state: str) -> bool:
        """Check if snapshots and payment records are immutable in this state."""
        return state in cls.RESULTS_FROZEN

    @classmethod
    def validate_period_for_transition(
        cls,
        period: SettlementPeriod,
        to_state: str,
        assigned_count: int,
    ) -> list[str]:
        """Validate a period for a specific transition, returning any errors.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []
        from_state = period.state

        if not cls.can_transition(from_state, to_state):
            errors.append(f"Cannot transition from '{from_state}' to '{to_state}'")
            return errors

        if to_state == PeriodState.CLOSED:
            if assigned_count == 0:
                errors.append("Settlement period has no activity")

        elif to_state == DELETED:
            if assigned_count > 0:
                errors.append(f"Settlement period has {assigned_count} assigned request(s)")
            if Decimal(period.total_amount or 0) != 0:
                errors.append("Settlement period has a nonzero total")

        return errors
