"""
Invoice Service - creates, edits and projects invoices.

Thin glue over the billing engines:
1. ContractResolver picks the contract (tagged Resolved / Fallback)
2. AddonFeeResolver totals the room's addon fees
3. calculate_charges builds the breakdown and totals
4. OutstandingBalanceTracker handles rollover invoices

The service flushes; the caller owns the transaction.

Usage:
    service = InvoiceService(session, clock=clock)
    invoice = service.create_invoice(InvoiceRequest(
        contract_id=contract.id,
        water_units=Decimal("10"),
        electricity_units=Decimal("25"),
    ))
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_engines.amounts import (
    ZERO,
    penalty_for,
    remaining_balance,
    to_decimal,
    to_quantity,
)
from rental_engines.invoice_calculation import (
    ChargeBreakdown,
    ChargeInput,
    calculate_charges,
    is_penalty_due,
)
from rental_kernel.domain.clock import Clock, require_aware
from rental_kernel.exceptions import InvalidAmountError, InvoiceNotFoundError
from rental_kernel.logging_config import LogContext, get_logger
from rental_kernel.services.base import BaseService
from rental_modules.billing.addons import AddonFeeResolver
from rental_modules.billing.config import BillingConfig
from rental_modules.billing.contracts import ContractResolver
from rental_modules.billing.models import (
    Fallback,
    Invoice,
    InvoiceRequest,
    InvoiceStatus,
    InvoiceUpdate,
    InvoiceView,
)
from rental_modules.billing.orm import ContractModel, InvoiceModel
from rental_modules.billing.outstanding_service import OutstandingBalanceTracker
from rental_modules.billing.payment_ledger import PaymentLedger

logger = get_logger("modules.billing.invoice_service")


class InvoiceService(BaseService):
    """Invoice creation, edits and read projections."""

    def __init__(
        self,
        session: Session,
        config: BillingConfig | None = None,
        clock: Clock | None = None,
        ledger: PaymentLedger | None = None,
    ):
        super().__init__(session, clock)
        self._config = config or BillingConfig.with_defaults()
        self._contracts = ContractResolver(session)
        self._addons = AddonFeeResolver(session)
        self._ledger = ledger or PaymentLedger(session, self._config, self._clock)
        self._tracker = OutstandingBalanceTracker(
            session, self._config, self._clock, ledger=self._ledger,
        )

    # =========================================================================
    # Creation
    # =========================================================================

    def create_invoice(self, request: InvoiceRequest) -> Invoice:
        """
        Create and persist exactly one invoice for the period.

        With ``include_outstanding_balance`` the contract's outstanding total
        is carried in as ``previous_balance``. Otherwise the invoice stands
        alone and, if it is already past due at creation, the late penalty is
        applied right away.
        """
        require_aware("create_date", request.create_date)
        require_aware("due_date", request.due_date)
        resolution = self._contracts.resolve(
            contract_id=request.contract_id,
            floor=request.floor,
            room=request.room,
        )
        contract = resolution.contract

        with LogContext.bind(contract_id=str(contract.id)):
            rent = self._rent_for(request.rent_amount, contract.rent_amount)
            addon = self._addons.resolve_for_room(contract.room_id)
            charge_input = ChargeInput(
                rent=rent,
                water_units=to_quantity("water_units", request.water_units),
                water_rate=self._rate(
                    "water_rate", request.water_rate, self._config.default_water_rate,
                ),
                electricity_units=to_quantity("electricity_units", request.electricity_units),
                electricity_rate=self._rate(
                    "electricity_rate", request.electricity_rate,
                    self._config.default_electricity_rate,
                ),
                addon_amount=addon,
                penalty=ZERO if request.include_outstanding_balance
                else to_decimal(request.penalty, "penalty"),
            )
            breakdown = calculate_charges(charge_input=charge_input)
            created_by = request.created_by or self._config.system_actor

            if request.include_outstanding_balance:
                invoice = self._tracker.create_invoice_with_outstanding_balance(
                    contract.id,
                    breakdown.sub_total,
                    breakdown=breakdown,
                    create_date=request.create_date,
                    due_date=request.due_date,
                    created_by=created_by,
                    requested_floor=request.floor,
                    requested_room=request.room,
                )
            else:
                invoice = self._create_standalone(
                    contract.id, breakdown, request, created_by,
                )

            logger.info("invoice_created", extra={
                "invoice_id": str(invoice.id),
                "resolution": "fallback" if isinstance(resolution, Fallback) else "resolved",
                "sub_total": str(invoice.sub_total),
                "penalty_total": str(invoice.penalty_total),
                "previous_balance": str(invoice.previous_balance),
                "net_amount": str(invoice.net_amount),
            })
            return invoice

    def _create_standalone(
        self,
        contract_id: UUID,
        breakdown: ChargeBreakdown,
        request: InvoiceRequest,
        created_by: str,
    ) -> Invoice:
        now = self._clock.now()
        create_date = request.create_date or now
        due_date = request.due_date or create_date + timedelta(
            days=self._config.payment_terms_days
        )

        penalty_applied_at = None
        if is_penalty_due(
            now=now,
            penalty_due_date=due_date,
            settled=False,
            current_penalty=breakdown.penalty_total,
        ):
            breakdown = breakdown.with_penalty(
                penalty_for(breakdown.rent, self._config.penalty_rate)
            )
            penalty_applied_at = now
            logger.info("penalty_applied_at_creation", extra={
                "due_date": due_date,
                "penalty_total": str(breakdown.penalty_total),
            })

        model = InvoiceModel.from_breakdown(
            contract_id,
            breakdown,
            create_date=create_date,
            due_date=due_date,
            created_by=created_by,
            penalty_applied_at=penalty_applied_at,
            requested_floor=request.floor,
            requested_room=request.room,
        )
        self.session.add(model)
        self._flush("Invoice", model.id)
        return model.to_dto()

    # =========================================================================
    # Edits
    # =========================================================================

    def update_invoice(self, invoice_id: UUID, update: InvoiceUpdate) -> Invoice:
        """
        Apply a partial edit and recompute the totals.

        Line items are rebuilt through ``calculate_charges`` with the stored
        addon amount and carried balance, then paid/remaining/status are
        refreshed from the ledger. An explicit ``status`` is applied last as
        a manual override.
        """
        require_aware("due_date", update.due_date)
        model = self._ledger.lock_invoice(invoice_id)

        charge_input = ChargeInput(
            rent=_pick_amount("rent_amount", update.rent_amount, model.requested_rent),
            water_units=_pick_quantity("water_units", update.water_units, model.water_units),
            water_rate=_pick_quantity("water_rate", update.water_rate, model.water_rate),
            electricity_units=_pick_quantity(
                "electricity_units", update.electricity_units, model.electricity_units,
            ),
            electricity_rate=_pick_quantity(
                "electricity_rate", update.electricity_rate, model.electricity_rate,
            ),
            addon_amount=model.addon_amount,
            penalty=_pick_amount("penalty", update.penalty, model.penalty_total),
            previous_balance=model.previous_balance,
        )
        breakdown = calculate_charges(charge_input=charge_input)
        model.apply_breakdown(breakdown)
        if update.penalty is not None and breakdown.penalty_total > ZERO:
            model.penalty_applied_at = model.penalty_applied_at or self._clock.now()
        if update.due_date is not None:
            model.due_date = update.due_date
        if update.updated_by is not None:
            model.updated_by = update.updated_by

        self._ledger.refresh_invoice(model)

        if update.status is not None and update.status.value != model.status:
            model.status = update.status.value
            if update.status is InvoiceStatus.SETTLED:
                model.pay_date = model.pay_date or self._clock.now()
            else:
                model.pay_date = None
            self._flush("Invoice", model.id)
            logger.warning("invoice_status_overridden", extra={
                "invoice_id": str(model.id),
                "status": model.status,
                "remaining_balance": str(model.remaining_balance),
            })

        logger.info("invoice_updated", extra={
            "invoice_id": str(model.id),
            "sub_total": str(model.sub_total),
            "penalty_total": str(model.penalty_total),
            "net_amount": str(model.net_amount),
            "remaining_balance": str(model.remaining_balance),
        })
        return model.to_dto()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        return self._get_model(invoice_id).to_dto()

    def list_invoices(self, contract_id: UUID) -> tuple[Invoice, ...]:
        stmt = (
            select(InvoiceModel)
            .where(InvoiceModel.contract_id == contract_id)
            .order_by(InvoiceModel.create_date, InvoiceModel.id)
        )
        return tuple(m.to_dto() for m in self.session.scalars(stmt))

    def get_invoice_view(self, invoice_id: UUID) -> InvoiceView:
        """Caller-facing projection with ledger-derived paid and remaining amounts."""
        return self._to_view(self._get_model(invoice_id))

    def list_invoice_views(self, contract_id: UUID | None = None) -> tuple[InvoiceView, ...]:
        stmt = select(InvoiceModel).order_by(InvoiceModel.create_date, InvoiceModel.id)
        if contract_id is not None:
            stmt = stmt.where(InvoiceModel.contract_id == contract_id)
        return tuple(self._to_view(m) for m in self.session.scalars(stmt))

    def _to_view(self, model: InvoiceModel) -> InvoiceView:
        received = self._ledger.received_amount(model.id)
        contract: ContractModel = model.contract
        return InvoiceView(
            id=model.id,
            contract_id=model.contract_id,
            room_number=contract.room.room_number if contract.room else model.requested_room,
            tenant_name=contract.tenant_name,
            create_date=model.create_date,
            due_date=model.due_date,
            status=InvoiceStatus(model.status),
            rent=model.requested_rent,
            water_units=model.water_units,
            water=model.water_amount,
            electricity_units=model.electricity_units,
            electricity=model.electricity_amount,
            addon_amount=model.addon_amount,
            sub_total=model.sub_total,
            penalty_total=model.penalty_total,
            net_amount=model.net_amount,
            previous_balance=model.previous_balance,
            paid_amount=received,
            remaining_balance=remaining_balance(model.net_amount, received),
            outstanding_from_earlier=self._outstanding_before(model),
        )

    def _outstanding_before(self, model: InvoiceModel) -> Decimal:
        """Unpaid own charges on the contract's unsettled invoices created earlier."""
        stmt = (
            select(InvoiceModel)
            .where(InvoiceModel.contract_id == model.contract_id)
            .where(InvoiceModel.status == InvoiceStatus.UNPAID.value)
            .where(InvoiceModel.create_date < model.create_date)
        )
        total = ZERO
        for earlier in self.session.scalars(stmt):
            owed = remaining_balance(
                earlier.own_charges, self._ledger.received_amount(earlier.id),
            )
            if owed > ZERO:
                total += owed
        return total

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get_model(self, invoice_id: UUID) -> InvoiceModel:
        model = self.session.get(InvoiceModel, invoice_id)
        if model is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return model

    @staticmethod
    def _rent_for(requested: Decimal | None, snapshot: Decimal | None) -> Decimal:
        if requested is not None:
            return to_decimal(requested, "rent_amount")
        if snapshot is None:
            raise InvalidAmountError("rent_amount", None, "required when the contract has no rent")
        return snapshot

    @staticmethod
    def _rate(field: str, requested: Decimal | None, default: Decimal) -> Decimal:
        return default if requested is None else to_quantity(field, requested)


def _pick_amount(field: str, value: Decimal | None, current: Decimal) -> Decimal:
    return current if value is None else to_decimal(value, field)


def _pick_quantity(field: str, value: Decimal | None, current: Decimal) -> Decimal:
    return current if value is None else to_quantity(field, value)
