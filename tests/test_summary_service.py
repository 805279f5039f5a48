"""Tests for settlement summaries and worker account statements."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from settlement_engine.errors import NotFoundError, ValidationError
from settlement_engine.models import RequestType
from settlement_engine.services import AdvanceLedger, BalanceLedger, SummaryService


@pytest.fixture
def summaries(session, test_settings):
    return SummaryService(session, settings=test_settings)


class TestPeriodSummary:
    """Live view for open periods, snapshot view for closed ones."""

    def test_open_period_matches_close(
        self, session, service, summaries, worker, other_worker, project, open_period, add_request
    ):
        """Test that the live view settles exactly as close does."""
        BalanceLedger(session).set(worker.worker_id, Decimal("200"))
        add_request(worker, project, "5000", period=open_period)
        add_request(other_worker, project, "700", request_type=RequestType.ADVANCE, period=open_period)
        add_request(other_worker, project, "1025", period=open_period)

        live = summaries.period_summary(open_period.settlement_period_id)

        assert live.frozen is False
        assert [w.worker_name for w in live.workers] == ["Alice Moreno", "Bruno Diaz"]
        alice, bruno = live.workers
        assert alice.prior_balance == Decimal("200")
        assert alice.to_deposit == Decimal("3600")
        assert bruno.advances_granted == Decimal("700")
        assert bruno.to_deposit == Decimal("1000")

        service.close_period(open_period.settlement_period_id)
        frozen = summaries.period_summary(open_period.settlement_period_id)

        assert frozen.frozen is True
        assert [(w.worker_id, w.to_deposit, w.generated_balance) for w in frozen.workers] == [
            (w.worker_id, w.to_deposit, w.generated_balance) for w in live.workers
        ]
        assert frozen.total_to_deposit == Decimal("4600")
        assert frozen.total_advances_granted == Decimal("700")
        # The advance issued at close now shows as available
        assert frozen.workers[1].advances_available == Decimal("700")

    def test_edited_salaries_in_live_view(
        self, summaries, worker, project, open_period, add_request
    ):
        """Test that edited salaries flow into the live view."""
        add_request(worker, project, "5000", period=open_period)

        summary = summaries.period_summary(
            open_period.settlement_period_id, edited_salaries={worker.worker_id: Decimal("0")}
        )

        assert summary.workers[0].to_deposit == Decimal("5000")

    def test_negative_edited_salary_rejected_in_live_view(
        self, summaries, worker, project, open_period, add_request
    ):
        """Test that the live view refuses a salary close would refuse."""
        add_request(worker, project, "5000", period=open_period)

        with pytest.raises(ValidationError):
            summaries.period_summary(
                open_period.settlement_period_id,
                edited_salaries={worker.worker_id: Decimal("-1")},
            )

    def test_edited_salaries_ignored_once_closed(
        self, service, summaries, worker, project, open_period, add_request
    ):
        """Test that a closed period reports its snapshot salary."""
        add_request(worker, project, "5000", period=open_period)
        service.close_period(open_period.settlement_period_id)

        summary = summaries.period_summary(
            open_period.settlement_period_id, edited_salaries={worker.worker_id: Decimal("0")}
        )

        assert summary.workers[0].salary == Decimal("1200")
        assert summary.workers[0].to_deposit == Decimal("3800")

    def test_unknown_period(self, summaries):
        """Test that an unknown period raises NotFoundError."""
        with pytest.raises(NotFoundError):
            summaries.period_summary(uuid4())


class TestWorkerAccount:
    """Balance, advances and payments for one worker."""

    def test_account_statement(
        self, session, service, summaries, other_worker, project, open_period, add_request
    ):
        """Test a statement after one close and an advance application."""
        add_request(other_worker, project, "3000", period=open_period)
        add_request(other_worker, project, "400", request_type=RequestType.ADVANCE, period=open_period)
        service.close_period(open_period.settlement_period_id)

        next_period = service.create_period(
            start_date=date(2024, 3, 11), end_date=date(2024, 3, 17)
        )
        add_request(other_worker, project, "100", period=next_period)
        AdvanceLedger(session).apply_advance(
            worker_id=other_worker.worker_id,
            project_id=project.project_id,
            amount=Decimal("150"),
            settlement_period_id=next_period.settlement_period_id,
        )

        account = summaries.worker_account(other_worker.worker_id)

        assert account.worker_name == "Bruno Diaz"
        assert account.outstanding_balance == Decimal("0")
        assert account.total_paid == Decimal("3000")
        assert account.advances_available == Decimal("250")
        assert len(account.advances) == 1
        assert account.pending_requests == 0

    def test_unknown_worker(self, summaries):
        """Test that an unknown worker raises NotFoundError."""
        with pytest.raises(NotFoundError):
            summaries.worker_account(uuid4())
