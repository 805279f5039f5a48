"""Tests for worker activation checks and salary lookup."""

from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_engine.errors import BusinessRuleViolation, NotFoundError, ValidationError
from settlement_engine.models import RequestType
from settlement_engine.services import BalanceLedger, WorkerService


class TestDeactivate:
    """Deactivation is refused while ledgers still reference the worker."""

    def test_idle_worker_can_be_deactivated(self, session, worker):
        """Test that a worker with no activity is deactivated."""
        deactivated = WorkerService(session).deactivate(worker.worker_id)

        assert deactivated.active is False

    def test_pending_request_blocks(self, session, ledger, worker, project):
        """Test that a pending request blocks deactivation."""
        ledger.submit(
            request_type=RequestType.WORK,
            worker_id=worker.worker_id,
            project_id=project.project_id,
            amount=Decimal("100"),
        )

        with pytest.raises(BusinessRuleViolation):
            WorkerService(session).deactivate(worker.worker_id)

        assert worker.active is True

    def test_open_period_activity_blocks(self, session, worker, project, open_period, add_request):
        """Test that requests in an open period are reported as a blocker."""
        add_request(worker, project, "100", period=open_period)

        blockers = WorkerService(session).deactivation_blockers(worker.worker_id)

        assert blockers == ["1 request(s) in an open settlement period"]

    def test_outstanding_balance_blocks(self, session, worker):
        """Test that an outstanding balance blocks deactivation."""
        BalanceLedger(session).set(worker.worker_id, Decimal("75"))

        with pytest.raises(BusinessRuleViolation):
            WorkerService(session).deactivate(worker.worker_id)

    def test_reactivate(self, session, worker):
        """Test that a deactivated worker can be activated again."""
        service = WorkerService(session)
        service.deactivate(worker.worker_id)

        assert service.activate(worker.worker_id).active is True


class TestSalaryFor:
    """Salary used when reconciling a worker."""

    def test_weekly_salary_by_default(self, session, worker):
        """Test that the stored weekly salary is used without edits."""
        assert WorkerService(session).salary_for(worker.worker_id) == Decimal("1200")

    def test_edited_salary_wins(self, session, worker, other_worker):
        """Test that an edited salary only replaces that worker's salary."""
        service = WorkerService(session)
        edits = {worker.worker_id: Decimal("900")}

        assert service.salary_for(worker.worker_id, edits) == Decimal("900")
        assert service.salary_for(other_worker.worker_id, edits) == Decimal("0")

    def test_negative_edited_salary_rejected(self, session, worker):
        """Test that a negative edited salary is refused."""
        with pytest.raises(ValidationError):
            WorkerService(session).salary_for(worker.worker_id, {worker.worker_id: Decimal("-1")})

    def test_unknown_worker(self, session):
        """Test that an unknown worker raises NotFoundError."""
        with pytest.raises(NotFoundError):
            WorkerService(session).salary_for(uuid4())
