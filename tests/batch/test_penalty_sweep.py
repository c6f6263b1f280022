"""Tests for the overdue penalty sweep (OverduePenaltyTask + PenaltyScheduler)."""

from datetime import timedelta
from decimal import Decimal

import pytest

from rental_batch.domain.types import BatchItemStatus, BatchJobStatus
from rental_batch.services.penalty_scheduler import PenaltyScheduler
from rental_batch.tasks import billing_tasks
from rental_engines.amounts import penalty_for
from rental_kernel.exceptions import InvalidAmountError
from rental_modules.billing.config import BillingConfig
from rental_modules.billing.models import PaymentMethod, PaymentRequest, PaymentStatus


@pytest.fixture
def scheduler(session, config, clock):
    return PenaltyScheduler(session, config, clock)


@pytest.fixture
def overdue_invoice(make_contract, make_invoice, clock):
    contract = make_contract(rent=Decimal("1000"))
    return make_invoice(
        contract,
        create_date=clock.now() - timedelta(days=32),
        due_date=clock.now() - timedelta(days=2),
    )


class TestOverduePenaltySweep:
    def test_penalizes_overdue_invoice(self, scheduler, overdue_invoice, clock):
        result = scheduler.update_overdue_penalties()

        assert result.status is BatchJobStatus.COMPLETED
        assert result.succeeded == 1
        assert overdue_invoice.penalty_total == Decimal("100")
        assert overdue_invoice.net_amount == Decimal("1100")
        assert overdue_invoice.remaining_balance == Decimal("1100")
        assert overdue_invoice.penalty_applied_at == clock.now()

    def test_second_sweep_changes_nothing(self, scheduler, overdue_invoice, clock):
        scheduler.update_overdue_penalties()
        clock.advance(days=1)

        result = scheduler.update_overdue_penalties()

        assert result.total_items == 0
        assert overdue_invoice.penalty_total == Decimal("100")
        assert overdue_invoice.net_amount == Decimal("1100")

    def test_not_yet_due_untouched(self, scheduler, make_contract, make_invoice, clock):
        invoice = make_invoice(make_contract(), due_date=clock.now() + timedelta(days=1))

        result = scheduler.update_overdue_penalties()

        assert result.total_items == 0
        assert invoice.penalty_total == Decimal("0")

    def test_settled_invoice_untouched(self, scheduler, ledger, overdue_invoice):
        ledger.add_payment(PaymentRequest(
            invoice_id=overdue_invoice.id,
            amount=Decimal("1000"),
            method=PaymentMethod.CASH,
            status=PaymentStatus.CONFIRMED,
        ))

        result = scheduler.update_overdue_penalties()

        assert result.total_items == 0
        assert overdue_invoice.penalty_total == Decimal("0")

    def test_partial_payment_counts_against_penalized_net(self, scheduler, ledger, overdue_invoice):
        ledger.add_payment(PaymentRequest(
            invoice_id=overdue_invoice.id, amount=Decimal("400"), method=PaymentMethod.CASH,
        ))

        scheduler.update_overdue_penalties()

        assert overdue_invoice.paid_amount == Decimal("400")
        assert overdue_invoice.remaining_balance == Decimal("700")

    def test_configured_rate(self, session, clock, overdue_invoice):
        scheduler = PenaltyScheduler(session, BillingConfig(penalty_rate=Decimal("0.05")), clock)

        scheduler.update_overdue_penalties()

        assert overdue_invoice.penalty_total == Decimal("50")

    def test_failing_item_does_not_roll_back_others(
        self, scheduler, overdue_invoice, make_contract, make_invoice, clock, monkeypatch,
    ):
        broken = make_invoice(
            make_contract(rent=Decimal("666")),
            create_date=clock.now() - timedelta(days=40),
            due_date=clock.now() - timedelta(days=10),
        )

        def flaky_penalty(rent, rate):
            if rent == Decimal("666"):
                raise InvalidAmountError("rent", rent, "flaky")
            return penalty_for(rent, rate)

        monkeypatch.setattr(billing_tasks, "penalty_for", flaky_penalty)

        result = scheduler.update_overdue_penalties()

        assert result.status is BatchJobStatus.PARTIALLY_COMPLETED
        assert result.succeeded == 1
        assert result.failed == 1
        failed = result.failed_items[0]
        assert failed.item_key == str(broken.id)
        assert failed.error_code == InvalidAmountError.code
        assert broken.penalty_total == Decimal("0")
        assert overdue_invoice.penalty_total == Decimal("100")

    def test_penalty_applied_logged(self, scheduler, overdue_invoice, captured_logs):
        scheduler.update_overdue_penalties()

        applied = [r for r in captured_logs() if r["message"] == "penalty_applied"]
        assert applied[0]["invoice_id"] == str(overdue_invoice.id)
        assert applied[0]["penalty_total"] == "100"

    def test_item_results_recorded(self, scheduler, overdue_invoice):
        result = scheduler.update_overdue_penalties()

        items = scheduler.executor.get_job_items(result.job_id)
        assert [i.status for i in items] == [BatchItemStatus.SUCCEEDED]
        assert Decimal(items[0].result_data["net_amount"]) == Decimal("1100")
