"""Tests for the request ledger lifecycle."""

import logging
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from settlement_engine.errors import InvalidTransitionError, NotFoundError, ValidationError
from settlement_engine.models import (
    AuditEvent,
    Project,
    RequestStatus,
    RequestType,
    SettlementPeriod,
)


class TestSubmitAndApprove:
    """Creating and approving requests."""

    def test_submit_is_pending_and_unassigned(self, ledger, worker, project):
        """Test that a submitted request is pending and unassigned."""
        request = ledger.submit(
            request_type="work",
            worker_id=worker.worker_id,
            project_id=project.project_id,
            amount=Decimal("900"),
        )

        assert request.status == RequestStatus.PENDING.value
        assert request.settlement_period_id is None

    def test_submit_rejects_non_positive_amount(self, ledger, worker, project):
        """Test that a zero amount is refused."""
        with pytest.raises(ValidationError):
            ledger.submit(
                request_type=RequestType.WORK,
                worker_id=worker.worker_id,
                project_id=project.project_id,
                amount=Decimal("0"),
            )

    def test_submit_unknown_worker(self, ledger, project):
        """Test that an unknown worker raises NotFoundError."""
        with pytest.raises(NotFoundError):
            ledger.submit(
                request_type=RequestType.WORK,
                worker_id=uuid4(),
                project_id=project.project_id,
                amount=Decimal("10"),
            )

    def test_approve_stamps_approver_and_audits(self, session, ledger, worker, project):
        """Test that approval stamps the approver and writes an audit event."""
        approver = uuid4()
        request = ledger.submit(
            request_type=RequestType.EXTRA,
            worker_id=worker.worker_id,
            project_id=project.project_id,
            amount=Decimal("250"),
        )

        ledger.approve(request.request_id, approver_id=approver)

        assert request.status == RequestStatus.APPROVED.value
        assert request.approver_id == approver
        assert request.approved_at is not None
        events = session.scalars(
            select(AuditEvent).where(AuditEvent.entity_id == request.request_id)
        ).all()
        assert [e.action for e in events] == ["approved"]

    def test_cannot_approve_twice(self, ledger, worker, project, add_request):
        """Test that an approved request cannot be approved again."""
        request = add_request(worker, project, "100")

        with pytest.raises(InvalidTransitionError):
            ledger.approve(request.request_id)

    def test_reject_requires_reason(self, ledger, worker, project):
        """Test that rejection needs a reason and records it."""
        request = ledger.submit(
            request_type=RequestType.WORK,
            worker_id=worker.worker_id,
            project_id=project.project_id,
            amount=Decimal("100"),
        )

        with pytest.raises(ValidationError):
            ledger.reject(request.request_id, "")

        ledger.reject(request.request_id, "duplicate entry")
        assert request.status == RequestStatus.REJECTED.value
        assert request.rejection_reason == "duplicate entry"

    def test_lifecycle_changes_are_logged(
        self, caplog, ledger, worker, project, open_period, add_request
    ):
        """Test that approve, reject and remove log at INFO."""
        keep = add_request(worker, project, "100", period=open_period)
        with caplog.at_level(logging.INFO, logger="settlement_engine.services.request_ledger"):
            approved = add_request(worker, project, "200", period=open_period)
            rejected = ledger.submit(
                request_type=RequestType.WORK,
                worker_id=worker.worker_id,
                project_id=project.project_id,
                amount=Decimal("50"),
            )
            ledger.reject(rejected.request_id, "duplicate entry")
            ledger.remove(approved.request_id)

        messages = [r.getMessage() for r in caplog.records]
        assert any(m.startswith(f"Approved work request {approved.request_id}") for m in messages)
        assert f"Rejected request {rejected.request_id}: duplicate entry" in messages
        assert any(m.startswith(f"Removed request {approved.request_id}") for m in messages)
        assert keep.settlement_period_id == open_period.settlement_period_id


class TestProjectBudget:
    """Work and extra approvals are bounded by the project budget."""

    @pytest.fixture
    def budget_project(self, session):
        project = Project(name="Fixed Bid", budget_amount=Decimal("1000"))
        session.add(project)
        session.flush()
        return project

    def test_remaining_balance(self, ledger, worker, budget_project, add_request):
        """Test the remaining project budget after approvals."""
        add_request(worker, budget_project, "800")

        assert ledger.project_remaining_balance(budget_project) == Decimal("200")

    def test_approval_over_budget_is_rejected(self, ledger, worker, budget_project, add_request):
        """Test that approval over the remaining budget is refused."""
        add_request(worker, budget_project, "800")
        request = ledger.submit(
            request_type=RequestType.WORK,
            worker_id=worker.worker_id,
            project_id=budget_project.project_id,
            amount=Decimal("300"),
        )

        with pytest.raises(ValidationError):
            ledger.approve(request.request_id)

        assert request.status == RequestStatus.PENDING.value

    def test_advances_do_not_count_against_budget(
        self, ledger, worker, budget_project, add_request
    ):
        """Test that advances are not charged to the project budget."""
        add_request(worker, budget_project, "900", request_type=RequestType.ADVANCE)

        assert ledger.project_remaining_balance(budget_project) == Decimal("1000")

    def test_unbudgeted_project(self, ledger, project):
        """Test that a project without a budget has no ceiling."""
        assert ledger.project_remaining_balance(project) is None


class TestAssignment:
    """Attaching approved requests to periods."""

    def test_pending_request_cannot_be_assigned(self, ledger, worker, project, open_period):
        """Test that only approved requests can be assigned."""
        request = ledger.submit(
            request_type=RequestType.WORK,
            worker_id=worker.worker_id,
            project_id=project.project_id,
            amount=Decimal("100"),
        )

        with pytest.raises(InvalidTransitionError):
            ledger.assign_to_period(request.request_id, open_period.settlement_period_id)

    def test_cannot_assign_to_closed_period(
        self, ledger, service, worker, project, open_period, add_request
    ):
        """Test that closed periods refuse new requests."""
        add_request(worker, project, "2000", period=open_period)
        service.close_period(open_period.settlement_period_id)
        late = add_request(worker, project, "100")

        with pytest.raises(InvalidTransitionError):
            ledger.assign_to_period(late.request_id, open_period.settlement_period_id)

    def test_available_requests(self, ledger, worker, project, open_period, add_request):
        """Test listing approved requests not yet in a period."""
        assigned = add_request(worker, project, "100", period=open_period)
        loose = add_request(worker, project, "200")

        available = ledger.available_requests()

        assert loose in available
        assert assigned not in available

    def test_create_period_auto_assigns(self, session, ledger, service, worker, project, add_request):
        """Test that a new period can sweep in every available request."""
        loose = add_request(worker, project, "200")

        period = service.create_period(
            start_date=date(2024, 3, 11), end_date=date(2024, 3, 17), auto_assign=True
        )

        assert loose.settlement_period_id == period.settlement_period_id
        assert period.name == "Week 11 2024"


class TestRemove:
    """Undoing approval and assignment."""

    def test_remove_returns_request_to_pending(
        self, ledger, worker, project, open_period, add_request
    ):
        """Test that removal clears approval and assignment."""
        add_request(worker, project, "100", period=open_period)
        request = add_request(worker, project, "300", period=open_period)

        ledger.remove(request.request_id)

        assert request.status == RequestStatus.PENDING.value
        assert request.settlement_period_id is None
        assert request.approver_id is None
        assert request.approved_at is None

    def test_removing_last_request_deletes_open_period(
        self, session, ledger, worker, project, open_period, add_request
    ):
        """Test that removing the last request deletes the empty period."""
        period_id = open_period.settlement_period_id
        request = add_request(worker, project, "100", period=open_period)

        ledger.remove(request.request_id)

        assert session.get(SettlementPeriod, period_id) is None

    def test_remove_without_auto_delete_keeps_period(
        self, session, ledger, worker, project, open_period, add_request
    ):
        """Test that auto-delete can be turned off."""
        period_id = open_period.settlement_period_id
        request = add_request(worker, project, "100", period=open_period)

        ledger.remove(request.request_id, auto_delete_period=False)

        assert session.get(SettlementPeriod, period_id) is not None

    def test_cannot_remove_from_closed_period(
        self, ledger, service, worker, project, open_period, add_request
    ):
        """Test that requests in a closed period cannot be removed."""
        request = add_request(worker, project, "2000", period=open_period)
        service.close_period(open_period.settlement_period_id)

        with pytest.raises(InvalidTransitionError):
            ledger.remove(request.request_id)

    def test_cannot_remove_pending_request(self, ledger, worker, project):
        """Test that a pending request cannot be removed."""
        request = ledger.submit(
            request_type=RequestType.WORK,
            worker_id=worker.worker_id,
            project_id=project.project_id,
            amount=Decimal("100"),
        )

        with pytest.raises(InvalidTransitionError):
            ledger.remove(request.request_id)


class TestDelete:
    """Dropping requests entirely."""

    def test_delete_pending_request(self, session, ledger, worker, project):
        """Test deleting a pending, unassigned request."""
        request = ledger.submit(
            request_type=RequestType.WORK,
            worker_id=worker.worker_id,
            project_id=project.project_id,
            amount=Decimal("100"),
        )
        request_id = request.request_id

        ledger.delete(request_id)

        with pytest.raises(NotFoundError):
            ledger.get(request_id)

    def test_cannot_delete_approved_request(self, ledger, worker, project, add_request):
        """Test that an approved request cannot be deleted."""
        request = add_request(worker, project, "100")

        with pytest.raises(InvalidTransitionError):
            ledger.delete(request.request_id)
