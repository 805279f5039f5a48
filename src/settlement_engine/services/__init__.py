"""Settlement engine services."""

from settlement_engine.services.advance_ledger import AdvanceLedger, Allocation
from settlement_engine.services.balance_ledger import BalanceLedger
from settlement_engine.services.request_ledger import RequestLedger
from settlement_engine.services.settlement_service import (
    CloseResult,
    SettlementService,
    week_bounds,
)
from settlement_engine.services.state_machine import SettlementStateMachine
from settlement_engine.services.summary_service import (
    PeriodSummary,
    SummaryService,
    WorkerAccount,
    WorkerSettlementSummary,
)
from settlement_engine.services.worker_service import WorkerService

__all__ = [
    "AdvanceLedger",
    "Allocation",
    "BalanceLedger",
    "CloseResult",
    "PeriodSummary",
    "RequestLedger",
    "SettlementService",
    "SettlementStateMachine",
    "SummaryService",
    "WorkerAccount",
    "WorkerService",
    "WorkerSettlementSummary",
    "week_bounds",
]
