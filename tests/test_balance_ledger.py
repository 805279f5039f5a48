"""Tests for the balance ledger."""

from decimal import Decimal

import pytest

from settlement_engine.errors import ValidationError
from settlement_engine.models import RequestStatus, RequestType
from settlement_engine.services import BalanceLedger


class TestBalanceUpdates:
    """Overwrite, restore and clamped subtraction."""

    def test_missing_row_reads_as_zero(self, session, worker):
        """Test that a worker without a row has a zero balance."""
        assert BalanceLedger(session).get(worker.worker_id) == Decimal("0")

    def test_set_overwrites(self, session, worker):
        """Test that set replaces the previous amount."""
        balances = BalanceLedger(session)
        balances.set(worker.worker_id, Decimal("300"))
        balances.set(worker.worker_id, Decimal("120"))

        assert balances.get(worker.worker_id) == Decimal("120")

    def test_set_rejects_negative(self, session, worker):
        """Test that a negative balance is refused."""
        with pytest.raises(ValidationError):
            BalanceLedger(session).set(worker.worker_id, Decimal("-1"))

    def test_restore_adds(self, session, worker):
        """Test that restore adds to the balance."""
        balances = BalanceLedger(session)
        balances.set(worker.worker_id, Decimal("100"))

        assert balances.restore(worker.worker_id, Decimal("250")) == Decimal("350")

    def test_subtract_clamps_at_zero(self, session, worker):
        """Test that subtraction never goes below zero."""
        balances = BalanceLedger(session)
        balances.set(worker.worker_id, Decimal("100"))

        assert balances.subtract_clamped(worker.worker_id, Decimal("250")) == Decimal("0")
        assert balances.get(worker.worker_id) == Decimal("0")


class TestDeductions:
    """Balance deductions recorded in an open period."""

    def test_apply_deduction_leaves_balance_until_close(
        self, session, worker, project, open_period
    ):
        """Test that a deduction waits for close to touch the balance."""
        balances = BalanceLedger(session)
        balances.set(worker.worker_id, Decimal("500"))

        request = balances.apply_deduction(
            worker_id=worker.worker_id,
            project_id=project.project_id,
            amount=Decimal("300"),
            settlement_period_id=open_period.settlement_period_id,
        )

        assert request.request_type == RequestType.BALANCE_DEDUCTION.value
        assert request.status == RequestStatus.APPROVED.value
        assert request.settlement_period_id == open_period.settlement_period_id
        assert balances.get(worker.worker_id) == Decimal("500")
        assert balances.deductible(worker.worker_id) == Decimal("200")

    def test_deduction_above_deductible_is_rejected(
        self, session, ledger, worker, project, open_period
    ):
        """Test that deductions cannot exceed what is left to deduct."""
        balances = BalanceLedger(session)
        balances.set(worker.worker_id, Decimal("500"))
        balances.apply_deduction(
            worker_id=worker.worker_id,
            project_id=project.project_id,
            amount=Decimal("300"),
            settlement_period_id=open_period.settlement_period_id,
        )

        with pytest.raises(ValidationError):
            balances.apply_deduction(
                worker_id=worker.worker_id,
                project_id=project.project_id,
                amount=Decimal("300"),
                settlement_period_id=open_period.settlement_period_id,
            )

        assert len(ledger.requests_for_period(open_period.settlement_period_id)) == 1

    def test_prior_balance_covers_undeducted_amount(
        self, session, worker, project, open_period
    ):
        """Test that the prior balance includes the part not yet deducted."""
        balances = BalanceLedger(session)
        balances.set(worker.worker_id, Decimal("500"))
        balances.apply_deduction(
            worker_id=worker.worker_id,
            project_id=project.project_id,
            amount=Decimal("200"),
            settlement_period_id=open_period.settlement_period_id,
        )

        prior = balances.prior_balance_for(
            worker.worker_id, open_period.settlement_period_id, Decimal("200")
        )

        assert prior == Decimal("500")
