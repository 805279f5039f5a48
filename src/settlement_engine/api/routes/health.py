"""Health and readiness endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response, status
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from settlement_engine import __version__
from settlement_engine.api.dependencies import DbSession
from settlement_engine.models import PeriodState, SettlementPeriod

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: datetime
    database: str
    open_periods: int | None = None


@router.get("/health", response_model=HealthResponse)
def health_check(db: DbSession) -> HealthResponse:
    """Report API version, database reachability and open settlement periods."""
    open_periods: int | None = None
    try:
        open_periods = db.scalar(
            select(func.count())
            .select_from(SettlementPeriod)
            .where(SettlementPeriod.state == PeriodState.OPEN.value)
        )
        db_status = "healthy"
    except SQLAlchemyError:
        logger.warning("Database health check failed", exc_info=True)
        db_status = "unhealthy"

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        database=db_status,
        open_periods=open_periods,
    )


@router.get("/ready")
def readiness_check(db: DbSession, response: Response) -> dict[str, str]:
    """Ready once the settlement tables answer a query."""
    try:
        db.execute(select(SettlementPeriod.settlement_period_id).limit(1))
    except SQLAlchemyError:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return {"status": "unavailable"}
    return {"status": "ready"}


@router.get("/live")
def liveness_check() -> dict[str, str]:
    """Process is up."""
    return {"status": "alive"}
