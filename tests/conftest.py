"""Pytest fixtures for settlement engine tests."""

from __future__ import annotations

from collections.abc import Generator
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from settlement_engine.config import Settings
from settlement_engine.database import create_db_engine
from settlement_engine.models import Base, Project, RequestType, Worker
from settlement_engine.services import RequestLedger, SettlementService

# In-memory SQLite; one fresh database per test
TEST_DATABASE_URL = "sqlite://"


@pytest.fixture
def test_settings() -> Settings:
    """Settings with the default rounding unit."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        rounding_unit=Decimal("50"),
        default_payment_method="transfer",
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="INFO",
    )


@pytest.fixture
def engine():
    """Create test database engine."""
    engine = create_db_engine(TEST_DATABASE_URL)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine) -> Generator[Session, None, None]:
    """Create a database session for each test."""
    with Session(engine, expire_on_commit=False) as session:
        yield session
        session.rollback()


@pytest.fixture
def worker(session: Session) -> Worker:
    """Worker with a 1200 weekly salary."""
    worker = Worker(name="Alice Moreno", weekly_salary=Decimal("1200"))
    session.add(worker)
    session.flush()
    return worker


@pytest.fixture
def other_worker(session: Session) -> Worker:
    """Second worker with no salary."""
    worker = Worker(name="Bruno Diaz", weekly_salary=Decimal("0"))
    session.add(worker)
    session.flush()
    return worker


@pytest.fixture
def project(session: Session) -> Project:
    """Project without a budget ceiling."""
    project = Project(name="North Tower", client_name="Acme Builders")
    session.add(project)
    session.flush()
    return project


@pytest.fixture
def other_project(session: Session) -> Project:
    """Second project without a budget ceiling."""
    project = Project(name="Harbor Bridge", client_name="Port Authority")
    session.add(project)
    session.flush()
    return project


@pytest.fixture
def ledger(session: Session) -> RequestLedger:
    return RequestLedger(session)


@pytest.fixture
def service(session: Session, test_settings: Settings) -> SettlementService:
    return SettlementService(session, settings=test_settings)


@pytest.fixture
def open_period(service: SettlementService):
    """Open period for the week of 2024-03-04."""
    return service.create_period(start_date=date(2024, 3, 4), end_date=date(2024, 3, 10))


@pytest.fixture
def add_request(ledger: RequestLedger):
    """Submit, approve and (optionally) assign a request in one call."""

    def _add(
        worker: Worker,
        project: Project,
        amount: str,
        request_type: RequestType = RequestType.WORK,
        period=None,
    ):
        request = ledger.submit(
            request_type=request_type,
            worker_id=worker.worker_id,
            project_id=project.project_id,
            amount=Decimal(amount),
        )
        ledger.approve(request.request_id)
        if period is not None:
            ledger.assign_to_period(request.request_id, period.settlement_period_id)
        return request

    return _add
