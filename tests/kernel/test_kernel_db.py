"""Tests for the kernel: clock, UTC datetime type, session scope, optimistic locking."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import pytest
from sqlalchemy import select

from rental_engines.invoice_calculation import ChargeInput, calculate_charges
from rental_kernel.db.base import UTCDateTime
from rental_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from rental_kernel.domain.clock import DeterministicClock, SystemClock
from rental_kernel.exceptions import OptimisticLockError
from rental_modules.billing.orm import ContractModel, InvoiceModel, RoomModel
from rental_modules.billing.payment_ledger import PaymentLedger

T0 = datetime(2026, 2, 1, 12, 0, tzinfo=timezone.utc)


class TestClock:
    def test_deterministic_clock_is_fixed(self):
        clock = DeterministicClock(T0)
        assert clock.now() == T0
        assert clock.now() == T0

    def test_advance_and_tick(self):
        clock = DeterministicClock(T0)
        clock.advance(days=2)
        assert clock.now() == T0 + timedelta(days=2)
        assert clock.tick() == T0 + timedelta(days=2, seconds=1)

    def test_set_time_resets_offset(self):
        clock = DeterministicClock(T0)
        clock.advance(60)
        clock.set_time(T0 - timedelta(days=1))
        assert clock.now() == T0 - timedelta(days=1)

    def test_system_clock_is_aware(self):
        assert SystemClock().now().tzinfo is not None


class TestUTCDateTime:
    def test_naive_values_rejected(self):
        with pytest.raises(ValueError):
            UTCDateTime().process_bind_param(datetime(2026, 1, 1), None)

    def test_offsets_normalized_to_utc(self):
        bangkok = timezone(timedelta(hours=7))
        value = datetime(2026, 1, 1, 7, 0, tzinfo=bangkok)
        bound = UTCDateTime().process_bind_param(value, None)
        assert bound == datetime(2026, 1, 1, 0, 0, tzinfo=timezone.utc)
        assert bound.tzinfo == timezone.utc

    def test_naive_results_tagged_utc(self):
        result = UTCDateTime().process_result_value(datetime(2026, 1, 1), None)
        assert result.tzinfo == timezone.utc


@pytest.fixture
def file_engine(tmp_path):
    init_engine_from_url(f"sqlite:///{tmp_path / 'billing.db'}")
    create_tables()
    yield get_engine()
    reset_engine()


def _seed_invoice() -> UUID:
    with session_scope() as session:
        room = RoomModel(floor=1, room_number="101")
        session.add(room)
        session.flush()
        contract = ContractModel(
            room_id=room.id, tenant_name="Somchai", rent_amount=Decimal("1000"),
            start_date=date(2025, 1, 1),
        )
        session.add(contract)
        session.flush()
        invoice = InvoiceModel.from_breakdown(
            contract.id,
            calculate_charges(charge_input=ChargeInput(rent=Decimal("1000"))),
            create_date=T0,
            due_date=T0 + timedelta(days=30),
            created_by="test",
        )
        session.add(invoice)
        session.flush()
        return invoice.id


class TestSessionScope:
    def test_commits_on_success(self, file_engine):
        invoice_id = _seed_invoice()

        with session_scope() as session:
            invoice = session.get(InvoiceModel, invoice_id)
            assert invoice.net_amount == Decimal("1000")
            assert invoice.create_date == T0
            assert invoice.version == 1

    def test_rolls_back_on_error(self, file_engine):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                session.add(RoomModel(floor=9, room_number="901"))
                session.flush()
                raise RuntimeError("abort")

        with session_scope() as session:
            assert session.scalars(select(RoomModel)).all() == []


class TestOptimisticLocking:
    def test_lost_update_detected(self, file_engine):
        invoice_id = _seed_invoice()
        factory = get_session_factory()
        clock = DeterministicClock(T0)

        session_a = factory()
        stale = session_a.get(InvoiceModel, invoice_id)
        session_a.commit()

        with session_scope() as session_b:
            fresh = session_b.get(InvoiceModel, invoice_id)
            fresh.penalty_total = Decimal("100")
            fresh.net_amount = Decimal("1100")

        stale.penalty_total = Decimal("50")
        stale.net_amount = Decimal("1050")
        with pytest.raises(OptimisticLockError) as exc_info:
            PaymentLedger(session_a, clock=clock).refresh_invoice(stale)

        assert exc_info.value.entity_type == "Invoice"
        session_a.rollback()
        session_a.close()
