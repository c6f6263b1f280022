"""
Billing Domain Models (``rental_modules.billing.models``).

Frozen dataclass value objects for the billing module: contracts as the
engine sees them, invoices and their caller-facing projection, payment
records and proofs, request objects and result summaries.

Pure data definitions with no I/O. All monetary fields are ``Decimal``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from rental_engines.amounts import ZERO
from rental_engines.outstanding import OutstandingBalanceSummary

__all__ = [
    "ContractStatus",
    "InvoiceStatus",
    "PaymentMethod",
    "PaymentStatus",
    "ProofType",
    "Room",
    "Contract",
    "Resolved",
    "Fallback",
    "ContractResolution",
    "Invoice",
    "InvoiceView",
    "InvoiceRequest",
    "InvoiceUpdate",
    "PaymentRequest",
    "PaymentUpdate",
    "PaymentRecord",
    "PaymentTotals",
    "ProofUpload",
    "PaymentProof",
    "OutstandingBalanceSummary",
    "ImportSummary",
    "UsageReportRow",
    "USAGE_REPORT_COLUMNS",
]


class ContractStatus(Enum):
    """Tenancy states. Transitions are driven outside billing."""
    ACTIVE = "active"
    EXPIRED = "expired"
    TERMINATED = "terminated"


class InvoiceStatus(Enum):
    UNPAID = "unpaid"
    SETTLED = "settled"


class PaymentMethod(Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    MOBILE_BANKING = "MOBILE_BANKING"
    CHEQUE = "CHEQUE"
    CREDIT_CARD = "CREDIT_CARD"
    QR_CODE = "QR_CODE"
    OTHER = "OTHER"

    @property
    def display_name(self) -> str:
        return _METHOD_LABELS[self]


_METHOD_LABELS = {
    PaymentMethod.CASH: "Cash",
    PaymentMethod.BANK_TRANSFER: "Bank Transfer",
    PaymentMethod.MOBILE_BANKING: "Mobile Banking",
    PaymentMethod.CHEQUE: "Cheque",
    PaymentMethod.CREDIT_CARD: "Credit Card",
    PaymentMethod.QR_CODE: "QR Code",
    PaymentMethod.OTHER: "Other",
}


class PaymentStatus(Enum):
    """Payment processing states."""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    def counts_as_received(self, include_pending: bool = True) -> bool:
        """Whether a payment in this state counts toward the paid amount."""
        if self is PaymentStatus.CONFIRMED:
            return True
        return include_pending and self is PaymentStatus.PENDING


class ProofType(Enum):
    RECEIPT = "RECEIPT"
    BANK_SLIP = "BANK_SLIP"
    BANK_STATEMENT = "BANK_STATEMENT"
    CHEQUE_COPY = "CHEQUE_COPY"
    OTHER = "OTHER"


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Room:
    id: UUID
    floor: int
    room_number: str


@dataclass(frozen=True)
class Contract:
    """A tenancy as consumed by billing. ``rent_amount`` is the signing snapshot."""
    id: UUID
    room_id: UUID
    tenant_name: str
    rent_amount: Decimal
    start_date: date
    end_date: date | None = None
    status: ContractStatus = ContractStatus.ACTIVE
    package_name: str | None = None


@dataclass(frozen=True)
class Resolved:
    """Contract found by a deliberate lookup (id, or floor and room)."""
    contract: Contract


@dataclass(frozen=True)
class Fallback:
    """Best-effort contract picked because the requested one could not be found."""
    contract: Contract
    reason: str


ContractResolution = Resolved | Fallback


# ---------------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Invoice:
    """A persisted invoice's stored fields."""
    id: UUID
    contract_id: UUID
    create_date: datetime
    due_date: datetime | None
    status: InvoiceStatus
    requested_rent: Decimal
    water_units: Decimal
    water_rate: Decimal
    water_amount: Decimal
    electricity_units: Decimal
    electricity_rate: Decimal
    electricity_amount: Decimal
    addon_amount: Decimal
    sub_total: Decimal
    penalty_total: Decimal
    previous_balance: Decimal
    net_amount: Decimal
    paid_amount: Decimal
    remaining_balance: Decimal
    penalty_applied_at: datetime | None = None
    pay_date: datetime | None = None
    requested_floor: int | None = None
    requested_room: str | None = None

    @property
    def is_settled(self) -> bool:
        return self.status is InvoiceStatus.SETTLED


@dataclass(frozen=True)
class InvoiceView:
    """
    Caller-facing invoice projection for exports and dashboards.

    ``paid_amount`` and ``remaining_balance`` are derived from the payment
    ledger at read time. ``outstanding_from_earlier`` is the contract's
    unpaid amount on invoices created before this one.
    """
    id: UUID
    contract_id: UUID
    room_number: str | None
    tenant_name: str | None
    create_date: datetime
    due_date: datetime | None
    status: InvoiceStatus
    rent: Decimal
    water_units: Decimal
    water: Decimal
    electricity_units: Decimal
    electricity: Decimal
    addon_amount: Decimal
    sub_total: Decimal
    penalty_total: Decimal
    net_amount: Decimal
    previous_balance: Decimal
    paid_amount: Decimal
    remaining_balance: Decimal
    outstanding_from_earlier: Decimal = ZERO

    @property
    def has_outstanding_balance(self) -> bool:
        return self.previous_balance > ZERO or self.outstanding_from_earlier > ZERO


@dataclass(frozen=True)
class InvoiceRequest:
    """
    Inputs for a new invoice.

    Omitted rent falls back to the contract's rent snapshot; omitted rates
    fall back to the configured defaults.
    """
    contract_id: UUID | None = None
    floor: int | None = None
    room: str | None = None
    rent_amount: Decimal | None = None
    water_units: Decimal = ZERO
    water_rate: Decimal | None = None
    electricity_units: Decimal = ZERO
    electricity_rate: Decimal | None = None
    penalty: Decimal | None = None
    create_date: datetime | None = None
    due_date: datetime | None = None
    include_outstanding_balance: bool = False
    created_by: str | None = None


@dataclass(frozen=True)
class InvoiceUpdate:
    """Partial edit of an invoice; ``None`` leaves a field unchanged."""
    rent_amount: Decimal | None = None
    water_units: Decimal | None = None
    water_rate: Decimal | None = None
    electricity_units: Decimal | None = None
    electricity_rate: Decimal | None = None
    penalty: Decimal | None = None
    due_date: datetime | None = None
    status: InvoiceStatus | None = None
    updated_by: str | None = None


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PaymentRequest:
    invoice_id: UUID
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus = PaymentStatus.PENDING
    payment_date: datetime | None = None
    transaction_reference: str | None = None
    notes: str | None = None
    recorded_by: str | None = None


@dataclass(frozen=True)
class PaymentUpdate:
    """Correction of a recorded payment; ``None`` leaves a field unchanged."""
    amount: Decimal | None = None
    method: PaymentMethod | None = None
    status: PaymentStatus | None = None
    payment_date: datetime | None = None
    transaction_reference: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class PaymentRecord:
    id: UUID
    invoice_id: UUID
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus
    payment_date: datetime
    transaction_reference: str | None = None
    notes: str | None = None
    recorded_by: str | None = None
    proof_count: int = 0

    @property
    def method_label(self) -> str:
        return self.method.display_name

    @property
    def status_label(self) -> str:
        return self.status.display_name


@dataclass(frozen=True)
class PaymentTotals:
    """Ledger totals of one invoice. ``total_received`` drives settlement."""
    total_paid: Decimal
    total_pending: Decimal
    total_received: Decimal


@dataclass(frozen=True)
class ProofUpload:
    file_name: str
    content: bytes
    content_type: str | None = None
    proof_type: ProofType = ProofType.RECEIPT
    description: str | None = None
    uploaded_by: str | None = None


@dataclass(frozen=True)
class PaymentProof:
    id: UUID
    payment_id: UUID
    file_name: str
    file_path: str
    file_size: int
    content_type: str | None
    proof_type: ProofType
    uploaded_at: datetime
    description: str | None = None
    uploaded_by: str | None = None


# ---------------------------------------------------------------------------
# Usage import and reporting
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ImportSummary:
    """Outcome of a usage import. ``errors`` hold ``Line N: ...`` messages."""
    success_count: int
    error_count: int
    errors: tuple[str, ...] = field(default_factory=tuple)
    invoice_ids: tuple[UUID, ...] = field(default_factory=tuple)

    @property
    def message(self) -> str:
        text = f"Import completed: {self.success_count} success, {self.error_count} errors"
        if self.errors:
            text += "\n" + "\n".join(self.errors)
        return text


USAGE_REPORT_COLUMNS: tuple[str, ...] = (
    "Room",
    "Tenant",
    "Package",
    "Rent",
    "Water Unit",
    "Water",
    "Electric Unit",
    "Electricity",
    "Total Amount",
)


@dataclass(frozen=True)
class UsageReportRow:
    room: str
    tenant: str
    package: str
    rent: Decimal
    water_units: Decimal
    water: Decimal
    electricity_units: Decimal
    electricity: Decimal
    total_amount: Decimal

    def as_tuple(self) -> tuple:
        """Values in ``USAGE_REPORT_COLUMNS`` order."""
        return (
            self.room,
            self.tenant,
            self.package,
            self.rent,
            self.water_units,
            self.water,
            self.electricity_units,
            self.electricity,
            self.total_amount,
        )
