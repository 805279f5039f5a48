"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from settlement_engine import __version__
from settlement_engine.api.routes import (
    health_router,
    periods_router,
    requests_router,
    workers_router,
)
from settlement_engine.database import init_db
from settlement_engine.errors import (
    BusinessRuleViolation,
    ConflictError,
    InsufficientAdvanceError,
    InvalidTransitionError,
    NotFoundError,
    SettlementError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first; the first matching class wins.
_ERROR_STATUS: list[tuple[type[SettlementError], int, str]] = [
    (NotFoundError, status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    (ConflictError, status.HTTP_409_CONFLICT, "CONFLICT"),
    (InsufficientAdvanceError, 422, "INSUFFICIENT_ADVANCE"),
    (ValidationError, 422, "VALIDATION_ERROR"),
    (InvalidTransitionError, status.HTTP_400_BAD_REQUEST, "INVALID_TRANSITION"),
    (BusinessRuleViolation, status.HTTP_400_BAD_REQUEST, "BUSINESS_RULE_VIOLATION"),
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    init_db()
    yield


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Settlement Engine API",
        description="Weekly settlement reconciliation for piece-rate payroll",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SettlementError)
    async def settlement_error_handler(request: Request, exc: SettlementError) -> JSONResponse:
        """Map domain errors to HTTP responses."""
        for error_type, status_code, code in _ERROR_STATUS:
            if isinstance(exc, error_type):
                return JSONResponse(
                    status_code=status_code,
                    content={"detail": str(exc), "code": code},
                )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": str(exc), "code": "SETTLEMENT_ERROR"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    app.include_router(health_router)
    app.include_router(periods_router, prefix="/api/v1")
    app.include_router(requests_router, prefix="/api/v1")
    app.include_router(workers_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
