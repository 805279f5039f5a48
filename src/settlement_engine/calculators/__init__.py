"""Settlement reconciliation calculators."""

from settlement_engine.calculators.reconciliation import (
    DEFAULT_ROUNDING_UNIT,
    reconcile,
)
from settlement_engine.calculators.types import ReconciliationResult, WorkerTally

__all__ = [
    "DEFAULT_ROUNDING_UNIT",
    "ReconciliationResult",
    "WorkerTally",
    "reconcile",
]
