"""API routes."""

from settlement_engine.api.routes.health import router as health_router
from settlement_engine.api.routes.periods import router as periods_router
from settlement_engine.api.routes.requests import router as requests_router
from settlement_engine.api.routes.workers import router as workers_router

__all__ = ["health_router", "periods_router", "requests_router", "workers_router"]
