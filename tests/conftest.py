"""
Pytest fixtures for the rental billing test suite.

Provides:
- In-memory SQLite sessions (SAVEPOINT-capable via build_engine)
- A pinned DeterministicClock
- Billing services wired to the same session, config and clock
- Factories for rooms, contracts, assets and invoices

Services flush and never commit, so every test runs inside one transaction
that is rolled back at teardown.
"""

import json
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from io import StringIO

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_batch.models import batch as _batch_models  # noqa: F401
from rental_engines.invoice_calculation import ChargeInput, calculate_charges
from rental_kernel.db.base import Base
from rental_kernel.db.engine import build_engine
from rental_kernel.domain.clock import DeterministicClock
from rental_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from rental_modules.billing.config import BillingConfig
from rental_modules.billing.invoice_service import InvoiceService
from rental_modules.billing.orm import (
    AssetGroupModel,
    AssetModel,
    ContractModel,
    InvoiceModel,
    RoomModel,
)
from rental_modules.billing.outstanding_service import OutstandingBalanceTracker
from rental_modules.billing.payment_ledger import PaymentLedger
from rental_modules.billing.proofs import LocalProofStorage

FIXED_NOW = datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture rental_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, invoice_service):
            invoice_service.create_invoice(...)
            logs = captured_logs()
            assert any(r["message"] == "invoice_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("rental_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(engine):
    session = Session(bind=engine)
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def clock():
    return DeterministicClock(FIXED_NOW)


@pytest.fixture
def config():
    return BillingConfig.with_defaults()


@pytest.fixture
def proof_storage(tmp_path):
    return LocalProofStorage(tmp_path / "proofs")


@pytest.fixture
def ledger(session, config, clock, proof_storage):
    return PaymentLedger(session, config, clock, storage=proof_storage)


@pytest.fixture
def invoice_service(session, config, clock, ledger):
    return InvoiceService(session, config, clock, ledger=ledger)


@pytest.fixture
def tracker(session, config, clock, ledger):
    return OutstandingBalanceTracker(session, config, clock, ledger=ledger)


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def make_room(session):
    def _make(floor: int = 1, room_number: str = "101") -> RoomModel:
        room = RoomModel(floor=floor, room_number=room_number)
        session.add(room)
        session.flush()
        return room

    return _make


@pytest.fixture
def make_contract(session, make_room):
    def _make(
        room: RoomModel | None = None,
        rent: Decimal = Decimal("4000"),
        tenant_name: str = "Somchai Jaidee",
        start_date: date = date(2025, 1, 1),
        status: str = "active",
        package_name: str | None = "Standard",
    ) -> ContractModel:
        room = room or make_room()
        contract = ContractModel(
            room_id=room.id,
            tenant_name=tenant_name,
            rent_amount=rent,
            start_date=start_date,
            status=status,
            package_name=package_name,
        )
        session.add(contract)
        session.flush()
        return contract

    return _make


@pytest.fixture
def make_asset(session):
    def _make(
        room: RoomModel,
        fee: Decimal = Decimal("300"),
        group_name: str = "Extra bed",
        asset_name: str = "Bed",
    ) -> AssetModel:
        group = session.scalars(
            select(AssetGroupModel).where(AssetGroupModel.name == group_name)
        ).one_or_none()
        if group is None:
            group = AssetGroupModel(name=group_name, monthly_addon_fee=fee)
            session.add(group)
            session.flush()
        asset = AssetModel(name=asset_name, asset_group_id=group.id)
        session.add(asset)
        room.assets.append(asset)
        session.flush()
        return asset

    return _make


@pytest.fixture
def make_invoice(session, clock):
    """Persist an unpaid invoice directly, bypassing the services."""

    def _make(
        contract: ContractModel,
        rent: Decimal | None = None,
        create_date: datetime | None = None,
        due_date: datetime | None = None,
        penalty: Decimal = Decimal("0"),
        previous_balance: Decimal = Decimal("0"),
        addon_amount: Decimal = Decimal("0"),
    ) -> InvoiceModel:
        create_date = create_date or clock.now()
        breakdown = calculate_charges(charge_input=ChargeInput(
            rent=contract.rent_amount if rent is None else rent,
            addon_amount=addon_amount,
            penalty=penalty,
            previous_balance=previous_balance,
        ))
        invoice = InvoiceModel.from_breakdown(
            contract.id,
            breakdown,
            create_date=create_date,
            due_date=due_date or create_date + timedelta(days=30),
            created_by="test",
        )
        session.add(invoice)
        session.flush()
        return invoice

    return _make
