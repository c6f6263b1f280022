"""
Billing ORM Models (``rental_modules.billing.orm``).

SQLAlchemy persistence models for the billing module. Each model maps to a
frozen dataclass in ``models.py`` through ``to_dto()``.

Rooms, asset groups, assets and contracts are owned by room and tenancy
management; billing reads them. Invoices, payment records and payment
proofs are written by billing.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rental_kernel.db.base import Base, TrackedBase, UUIDString
from rental_engines.amounts import ZERO


room_assets = Table(
    "room_assets",
    Base.metadata,
    Column("room_id", UUIDString(), ForeignKey("rooms.id"), primary_key=True),
    Column("asset_id", UUIDString(), ForeignKey("assets.id"), primary_key=True),
)


class RoomModel(TrackedBase):
    __tablename__ = "rooms"

    __table_args__ = (
        UniqueConstraint("floor", "room_number", name="uq_rooms_floor_number"),
        Index("idx_rooms_room_number", "room_number"),
    )

    floor: Mapped[int] = mapped_column(nullable=False)
    room_number: Mapped[str] = mapped_column(String(20), nullable=False)

    assets: Mapped[list["AssetModel"]] = relationship(secondary=room_assets)

    def to_dto(self):
        from rental_modules.billing.models import Room

        return Room(id=self.id, floor=self.floor, room_number=self.room_number)

    def __repr__(self) -> str:
        return f"<RoomModel {self.floor}/{self.room_number}>"


class AssetGroupModel(TrackedBase):
    """Asset category carrying the recurring monthly addon fee."""

    __tablename__ = "asset_groups"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    monthly_addon_fee: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)


class AssetModel(TrackedBase):
    __tablename__ = "assets"

    __table_args__ = (
        Index("idx_assets_asset_group_id", "asset_group_id"),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    asset_group_id: Mapped[UUID] = mapped_column(
        ForeignKey("asset_groups.id"), nullable=False
    )

    asset_group: Mapped[AssetGroupModel] = relationship()


class ContractModel(TrackedBase):
    """
    Tenancy contract. ``rent_amount`` is the rent fixed at signing.

    Guarantees:
        - room_id FK to rooms.id.
        - status stored as string enum value.
    """

    __tablename__ = "contracts"

    __table_args__ = (
        Index("idx_contracts_room_id", "room_id"),
        Index("idx_contracts_status", "status"),
    )

    room_id: Mapped[UUID] = mapped_column(ForeignKey("rooms.id"), nullable=False)
    tenant_name: Mapped[str] = mapped_column(String(255), nullable=False)
    package_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    rent_amount: Mapped[Decimal] = mapped_column(nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="active")

    room: Mapped[RoomModel] = relationship()

    def to_dto(self):
        from rental_modules.billing.models import Contract, ContractStatus

        return Contract(
            id=self.id,
            room_id=self.room_id,
            tenant_name=self.tenant_name,
            rent_amount=self.rent_amount,
            start_date=self.start_date,
            end_date=self.end_date,
            status=ContractStatus(self.status),
            package_name=self.package_name,
        )

    def __repr__(self) -> str:
        return f"<ContractModel {self.id} tenant={self.tenant_name!r} status={self.status}>"


class InvoiceModel(TrackedBase):
    """
    ORM model for invoices.

    Guarantees:
        - contract_id FK to contracts.id.
        - net_amount = sub_total + penalty_total + previous_balance.
        - remaining_balance = net_amount - paid_amount after every ledger update.
        - version is bumped on every UPDATE; a stale write raises StaleDataError.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        Index("idx_invoices_contract_id", "contract_id"),
        Index("idx_invoices_status", "status"),
        Index("idx_invoices_due_date", "due_date"),
    )

    contract_id: Mapped[UUID] = mapped_column(
        ForeignKey("contracts.id"), nullable=False
    )
    create_date: Mapped[datetime] = mapped_column(nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="unpaid")

    requested_rent: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    water_units: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    water_rate: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    water_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    electricity_units: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    electricity_rate: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    electricity_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    addon_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)

    sub_total: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    penalty_total: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    penalty_applied_at: Mapped[datetime | None] = mapped_column(nullable=True)
    previous_balance: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    net_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    paid_amount: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    remaining_balance: Mapped[Decimal] = mapped_column(nullable=False, default=ZERO)
    pay_date: Mapped[datetime | None] = mapped_column(nullable=True)

    requested_floor: Mapped[int | None] = mapped_column(nullable=True)
    requested_room: Mapped[str | None] = mapped_column(String(20), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    contract: Mapped[ContractModel] = relationship()
    payments: Mapped[list["PaymentRecordModel"]] = relationship(
        back_populates="invoice",
        order_by="PaymentRecordModel.payment_date",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_settled(self) -> bool:
        return self.status == "settled"

    @property
    def own_charges(self) -> Decimal:
        """This invoice's charges without any balance carried into it."""
        return self.sub_total + self.penalty_total

    def apply_breakdown(self, breakdown) -> None:
        """Copy a ``ChargeBreakdown``'s line items and totals onto the row."""
        self.requested_rent = breakdown.rent
        self.water_units = breakdown.water_units
        self.water_rate = breakdown.water_rate
        self.water_amount = breakdown.water
        self.electricity_units = breakdown.electricity_units
        self.electricity_rate = breakdown.electricity_rate
        self.electricity_amount = breakdown.electricity
        self.addon_amount = breakdown.addon_amount
        self.sub_total = breakdown.sub_total
        self.penalty_total = breakdown.penalty_total
        self.previous_balance = breakdown.previous_balance
        self.net_amount = breakdown.net_amount

    @classmethod
    def from_breakdown(
        cls,
        contract_id: UUID,
        breakdown,
        create_date: datetime,
        due_date: datetime | None,
        created_by: str,
        penalty_applied_at: datetime | None = None,
        requested_floor: int | None = None,
        requested_room: str | None = None,
    ) -> "InvoiceModel":
        """New unpaid invoice; nothing has been paid, so remaining equals net."""
        model = cls(
            contract_id=contract_id,
            create_date=create_date,
            due_date=due_date,
            status="unpaid",
            paid_amount=ZERO,
            penalty_applied_at=penalty_applied_at,
            requested_floor=requested_floor,
            requested_room=requested_room,
            created_by=created_by,
        )
        model.apply_breakdown(breakdown)
        model.remaining_balance = breakdown.net_amount
        return model

    def to_dto(self):
        from rental_modules.billing.models import Invoice, InvoiceStatus

        return Invoice(
            id=self.id,
            contract_id=self.contract_id,
            create_date=self.create_date,
            due_date=self.due_date,
            status=InvoiceStatus(self.status),
            requested_rent=self.requested_rent,
            water_units=self.water_units,
            water_rate=self.water_rate,
            water_amount=self.water_amount,
            electricity_units=self.electricity_units,
            electricity_rate=self.electricity_rate,
            electricity_amount=self.electricity_amount,
            addon_amount=self.addon_amount,
            sub_total=self.sub_total,
            penalty_total=self.penalty_total,
            previous_balance=self.previous_balance,
            net_amount=self.net_amount,
            paid_amount=self.paid_amount,
            remaining_balance=self.remaining_balance,
            penalty_applied_at=self.penalty_applied_at,
            pay_date=self.pay_date,
            requested_floor=self.requested_floor,
            requested_room=self.requested_room,
        )

    def __repr__(self) -> str:
        return (
            f"<InvoiceModel {self.id} status={self.status} "
            f"net={self.net_amount} remaining={self.remaining_balance}>"
        )


class PaymentRecordModel(TrackedBase):
    """
    One payment event against an invoice.

    Guarantees:
        - invoice_id FK to invoices.id.
        - method and status stored as string enum values.
    """

    __tablename__ = "payment_records"

    __table_args__ = (
        Index("idx_payment_records_invoice_id", "invoice_id"),
        Index("idx_payment_records_status", "status"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoices.id"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    method: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="PENDING")
    payment_date: Mapped[datetime] = mapped_column(nullable=False)
    transaction_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    recorded_by: Mapped[str | None] = mapped_column(String(100), nullable=True)

    invoice: Mapped[InvoiceModel] = relationship(back_populates="payments")
    proofs: Mapped[list["PaymentProofModel"]] = relationship(
        back_populates="payment",
        cascade="all, delete-orphan",
    )

    def to_dto(self):
        from rental_modules.billing.models import (
            PaymentMethod,
            PaymentRecord,
            PaymentStatus,
        )

        return PaymentRecord(
            id=self.id,
            invoice_id=self.invoice_id,
            amount=self.amount,
            method=PaymentMethod(self.method),
            status=PaymentStatus(self.status),
            payment_date=self.payment_date,
            transaction_reference=self.transaction_reference,
            notes=self.notes,
            recorded_by=self.recorded_by,
            proof_count=len(self.proofs),
        )

    def __repr__(self) -> str:
        return f"<PaymentRecordModel {self.id} {self.amount} {self.method} {self.status}>"


class PaymentProofModel(TrackedBase):
    """Metadata of a stored payment proof file."""

    __tablename__ = "payment_proofs"

    __table_args__ = (
        Index("idx_payment_proofs_payment_id", "payment_id"),
    )

    payment_id: Mapped[UUID] = mapped_column(
        ForeignKey("payment_records.id"), nullable=False
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(500), nullable=False)
    file_size: Mapped[int] = mapped_column(nullable=False)
    content_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    proof_type: Mapped[str] = mapped_column(String(30), default="RECEIPT")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    uploaded_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(nullable=False)

    payment: Mapped[PaymentRecordModel] = relationship(back_populates="proofs")

    def to_dto(self):
        from rental_modules.billing.models import PaymentProof, ProofType

        return PaymentProof(
            id=self.id,
            payment_id=self.payment_id,
            file_name=self.file_name,
            file_path=self.file_path,
            file_size=self.file_size,
            content_type=self.content_type,
            proof_type=ProofType(self.proof_type),
            uploaded_at=self.uploaded_at,
            description=self.description,
            uploaded_by=self.uploaded_by,
        )
