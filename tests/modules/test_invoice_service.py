"""Tests for InvoiceService -- invoice creation, edits and views."""

from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from rental_kernel.exceptions import (
    ContractNotFoundError,
    InvalidDateError,
    InvalidQuantityError,
    InvoiceNotFoundError,
    NoContractsAvailableError,
)
from rental_modules.billing.models import (
    InvoiceRequest,
    InvoiceStatus,
    InvoiceUpdate,
    PaymentMethod,
    PaymentRequest,
    PaymentStatus,
)
from rental_modules.billing.orm import InvoiceModel


def _invoice_count(session) -> int:
    return session.scalar(select(func.count()).select_from(InvoiceModel))


class TestCreateInvoice:
    def test_rent_utilities_and_addon(self, invoice_service, make_room, make_contract, make_asset):
        room = make_room()
        contract = make_contract(room=room, rent=Decimal("4000"))
        make_asset(room, fee=Decimal("300"))

        invoice = invoice_service.create_invoice(InvoiceRequest(
            contract_id=contract.id,
            water_units=Decimal("10"),
            water_rate=Decimal("10"),
            electricity_units=Decimal("25"),
            electricity_rate=Decimal("8"),
        ))

        assert invoice.requested_rent == Decimal("4000")
        assert invoice.water_amount == Decimal("100")
        assert invoice.electricity_amount == Decimal("200")
        assert invoice.addon_amount == Decimal("300")
        assert invoice.sub_total == Decimal("4600")
        assert invoice.penalty_total == Decimal("0")
        assert invoice.net_amount == Decimal("4600")
        assert invoice.remaining_balance == Decimal("4600")
        assert invoice.paid_amount == Decimal("0")
        assert invoice.status is InvoiceStatus.UNPAID

    def test_default_rates_and_due_date(self, invoice_service, make_contract, clock, config):
        contract = make_contract(rent=Decimal("3000"))

        invoice = invoice_service.create_invoice(InvoiceRequest(
            contract_id=contract.id,
            water_units=Decimal("2"),
            electricity_units=Decimal("10"),
        ))

        assert invoice.water_rate == Decimal("30")
        assert invoice.water_amount == Decimal("60")
        assert invoice.electricity_amount == Decimal("80")
        assert invoice.sub_total == Decimal("3140")
        assert invoice.create_date == clock.now()
        assert invoice.due_date == clock.now() + timedelta(days=config.payment_terms_days)

    def test_rent_override(self, invoice_service, make_contract):
        contract = make_contract(rent=Decimal("3000"))
        invoice = invoice_service.create_invoice(InvoiceRequest(
            contract_id=contract.id, rent_amount=Decimal("3500"),
        ))
        assert invoice.requested_rent == Decimal("3500")
        assert invoice.net_amount == Decimal("3500")

    def test_explicit_penalty(self, invoice_service, make_contract):
        contract = make_contract(rent=Decimal("4000"))
        invoice = invoice_service.create_invoice(InvoiceRequest(
            contract_id=contract.id, penalty=Decimal("150"),
        ))
        assert invoice.penalty_total == Decimal("150")
        assert invoice.net_amount == Decimal("4150")

    def test_penalty_applied_when_already_overdue(self, invoice_service, make_contract, clock):
        contract = make_contract(rent=Decimal("4000"))

        invoice = invoice_service.create_invoice(InvoiceRequest(
            contract_id=contract.id,
            create_date=clock.now() - timedelta(days=40),
        ))

        assert invoice.penalty_total == Decimal("400")
        assert invoice.net_amount == Decimal("4400")
        assert invoice.penalty_applied_at == clock.now()

    def test_exactly_one_invoice_persisted(self, session, invoice_service, make_contract):
        contract = make_contract()
        invoice_service.create_invoice(InvoiceRequest(contract_id=contract.id))
        assert _invoice_count(session) == 1

    def test_negative_quantity_persists_nothing(self, session, invoice_service, make_contract):
        contract = make_contract()
        with pytest.raises(InvalidQuantityError):
            invoice_service.create_invoice(InvoiceRequest(
                contract_id=contract.id, water_units=Decimal("-3"),
            ))
        assert _invoice_count(session) == 0

    def test_nan_quantity_is_quantity_error(self, session, invoice_service, make_contract):
        contract = make_contract()
        with pytest.raises(InvalidQuantityError) as exc_info:
            invoice_service.create_invoice(InvoiceRequest(
                contract_id=contract.id, water_units=Decimal("NaN"),
            ))
        assert exc_info.value.field == "water_units"
        assert _invoice_count(session) == 0

    @pytest.mark.parametrize("field", ["create_date", "due_date"])
    def test_naive_dates_rejected(self, session, invoice_service, make_contract, field):
        contract = make_contract()
        with pytest.raises(InvalidDateError) as exc_info:
            invoice_service.create_invoice(InvoiceRequest(
                contract_id=contract.id, **{field: datetime(2025, 1, 1)},
            ))
        assert exc_info.value.field == field
        assert _invoice_count(session) == 0

    def test_naive_date_rejected_for_rollover(self, session, tracker, make_contract):
        contract = make_contract()
        with pytest.raises(InvalidDateError) as exc_info:
            tracker.create_invoice_with_outstanding_balance(
                contract.id, Decimal("4000"), due_date=datetime(2025, 2, 1),
            )
        assert exc_info.value.field == "due_date"
        assert _invoice_count(session) == 0


class TestContractResolution:
    def test_unknown_contract_id(self, invoice_service, make_contract):
        make_contract()
        with pytest.raises(ContractNotFoundError):
            invoice_service.create_invoice(InvoiceRequest(contract_id=uuid4()))

    def test_floor_and_room(self, invoice_service, make_room, make_contract, captured_logs):
        make_contract()
        room = make_room(floor=2, room_number="201")
        contract = make_contract(room=room, tenant_name="Malee")

        invoice = invoice_service.create_invoice(InvoiceRequest(floor=2, room="201"))

        assert invoice.contract_id == contract.id
        created = [r for r in captured_logs() if r["message"] == "invoice_created"]
        assert created[0]["resolution"] == "resolved"
        assert created[0]["contract_id"] == str(contract.id)

    def test_unknown_room_falls_back_to_first_contract(
        self, invoice_service, make_room, make_contract, captured_logs,
    ):
        first = make_contract()
        make_contract(
            room=make_room(floor=3, room_number="301"),
            tenant_name="Later",
            start_date=date(2025, 6, 1),
        )

        invoice = invoice_service.create_invoice(InvoiceRequest(floor=9, room="999"))

        assert invoice.contract_id == first.id
        logs = captured_logs()
        fallback = [r for r in logs if r["message"] == "contract_fallback_used"]
        assert fallback and fallback[0]["level"] == "WARNING"
        created = [r for r in logs if r["message"] == "invoice_created"]
        assert created[0]["resolution"] == "fallback"

    def test_no_contracts_at_all(self, invoice_service):
        with pytest.raises(NoContractsAvailableError):
            invoice_service.create_invoice(InvoiceRequest(room="101"))


class TestCreateWithOutstandingBalance:
    def test_carries_unpaid_balance(self, invoice_service, make_contract, make_invoice, clock):
        contract = make_contract(rent=Decimal("2000"))
        make_invoice(contract, rent=Decimal("3000"), create_date=clock.now() - timedelta(days=30))

        invoice = invoice_service.create_invoice(InvoiceRequest(
            contract_id=contract.id, include_outstanding_balance=True,
        ))

        assert invoice.previous_balance == Decimal("3000")
        assert invoice.sub_total == Decimal("2000")
        assert invoice.net_amount == Decimal("5000")
        assert invoice.remaining_balance == Decimal("5000")


class TestUpdateInvoice:
    def test_recomputes_totals(self, invoice_service, make_contract):
        contract = make_contract(rent=Decimal("4000"))
        invoice = invoice_service.create_invoice(InvoiceRequest(contract_id=contract.id))

        updated = invoice_service.update_invoice(invoice.id, InvoiceUpdate(
            water_units=Decimal("5"), water_rate=Decimal("20"),
        ))

        assert updated.water_amount == Decimal("100")
        assert updated.sub_total == Decimal("4100")
        assert updated.net_amount == Decimal("4100")
        assert updated.remaining_balance == Decimal("4100")

    def test_lowering_rent_settles_paid_invoice(self, invoice_service, ledger, make_contract):
        contract = make_contract(rent=Decimal("4000"))
        invoice = invoice_service.create_invoice(InvoiceRequest(contract_id=contract.id))
        ledger.add_payment(PaymentRequest(
            invoice_id=invoice.id,
            amount=Decimal("3500"),
            method=PaymentMethod.CASH,
            status=PaymentStatus.CONFIRMED,
        ))

        updated = invoice_service.update_invoice(
            invoice.id, InvoiceUpdate(rent_amount=Decimal("3500")),
        )

        assert updated.net_amount == Decimal("3500")
        assert updated.remaining_balance == Decimal("0")
        assert updated.status is InvoiceStatus.SETTLED

    def test_status_override_applied_last(self, invoice_service, make_contract, captured_logs):
        contract = make_contract()
        invoice = invoice_service.create_invoice(InvoiceRequest(contract_id=contract.id))

        updated = invoice_service.update_invoice(
            invoice.id, InvoiceUpdate(status=InvoiceStatus.SETTLED, updated_by="manager"),
        )

        assert updated.status is InvoiceStatus.SETTLED
        assert updated.pay_date is not None
        assert any(r["message"] == "invoice_status_overridden" for r in captured_logs())

    def test_explicit_penalty_stamps_applied_at(self, invoice_service, make_contract, clock):
        contract = make_contract(rent=Decimal("4000"))
        invoice = invoice_service.create_invoice(InvoiceRequest(contract_id=contract.id))

        updated = invoice_service.update_invoice(invoice.id, InvoiceUpdate(penalty=Decimal("400")))

        assert updated.net_amount == Decimal("4400")
        assert updated.penalty_applied_at == clock.now()

    def test_naive_due_date_rejected(self, invoice_service, make_contract):
        contract = make_contract()
        invoice = invoice_service.create_invoice(InvoiceRequest(contract_id=contract.id))

        with pytest.raises(InvalidDateError):
            invoice_service.update_invoice(
                invoice.id, InvoiceUpdate(due_date=datetime(2026, 3, 1)),
            )
        assert invoice_service.get_invoice(invoice.id).due_date == invoice.due_date

    def test_unknown_invoice(self, invoice_service):
        with pytest.raises(InvoiceNotFoundError):
            invoice_service.update_invoice(uuid4(), InvoiceUpdate(penalty=Decimal("1")))


class TestInvoiceViews:
    def test_view_derives_paid_from_ledger(self, invoice_service, ledger, make_contract):
        contract = make_contract(rent=Decimal("4300"))
        invoice = invoice_service.create_invoice(InvoiceRequest(contract_id=contract.id))
        ledger.add_payment(PaymentRequest(
            invoice_id=invoice.id, amount=Decimal("1500"), method=PaymentMethod.CASH,
        ))

        view = invoice_service.get_invoice_view(invoice.id)

        assert view.paid_amount == Decimal("1500")
        assert view.remaining_balance == Decimal("2800")
        assert view.room_number == "101"
        assert view.tenant_name == "Somchai Jaidee"
        assert not view.has_outstanding_balance

    def test_outstanding_from_earlier_invoices(
        self, invoice_service, make_contract, make_invoice, clock,
    ):
        contract = make_contract(rent=Decimal("2000"))
        make_invoice(contract, rent=Decimal("3000"), create_date=clock.now() - timedelta(days=30))
        current = make_invoice(contract)

        view = invoice_service.get_invoice_view(current.id)

        assert view.outstanding_from_earlier == Decimal("3000")
        assert view.has_outstanding_balance

    def test_list_views_ordered_by_create_date(
        self, invoice_service, make_contract, make_invoice, clock,
    ):
        contract = make_contract()
        later = make_invoice(contract)
        earlier = make_invoice(contract, create_date=clock.now() - timedelta(days=30))

        views = invoice_service.list_invoice_views(contract.id)

        assert [v.id for v in views] == [earlier.id, later.id]

    def test_get_unknown_invoice(self, invoice_service):
        with pytest.raises(InvoiceNotFoundError):
            invoice_service.get_invoice(uuid4())
