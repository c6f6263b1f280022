"""
Outstanding Balance Tracker - what a contract still owes, and rollover invoices.

Reading and reconciling are separate steps:

    snapshot = tracker.summarize_outstanding(contract_id)   # no writes
    tracker.reconcile_settled_invoices(snapshot)            # marks covered invoices settled

``calculate_outstanding_balance`` composes the two for callers that want
the combined behavior. Invoices are processed oldest first (create date,
then id), and each invoice's receipts are re-read from the ledger rather
than cached across the walk.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_engines.amounts import ZERO, remaining_balance, to_decimal
from rental_engines.invoice_calculation import ChargeBreakdown, ChargeInput, calculate_charges
from rental_engines.outstanding import (
    InvoiceBalanceInput,
    OpenInvoiceInput,
    OutstandingBalanceSummary,
    OutstandingSnapshot,
    summarize_open_invoices,
    summarize_outstanding,
)
from rental_kernel.domain.clock import Clock, require_aware
from rental_kernel.exceptions import ContractNotFoundError
from rental_kernel.logging_config import get_logger
from rental_kernel.services.base import BaseService
from rental_modules.billing.config import BillingConfig
from rental_modules.billing.models import (
    Invoice,
    InvoiceStatus,
    PaymentMethod,
    PaymentRecord,
    PaymentRequest,
    PaymentStatus,
)
from rental_modules.billing.orm import ContractModel, InvoiceModel
from rental_modules.billing.payment_ledger import PaymentLedger

logger = get_logger("modules.billing.outstanding")


class OutstandingBalanceTracker(BaseService):
    """Outstanding balances per contract and successor invoices that carry them."""

    def __init__(
        self,
        session: Session,
        config: BillingConfig | None = None,
        clock: Clock | None = None,
        ledger: PaymentLedger | None = None,
    ):
        super().__init__(session, clock)
        self._config = config or BillingConfig.with_defaults()
        self._ledger = ledger or PaymentLedger(session, self._config, self._clock)

    # =========================================================================
    # Read / reconcile
    # =========================================================================

    def summarize_outstanding(self, contract_id: UUID) -> OutstandingSnapshot:
        """Outstanding total over the contract's unsettled invoices. Writes nothing."""
        stmt = (
            select(InvoiceModel)
            .where(InvoiceModel.contract_id == contract_id)
            .where(InvoiceModel.status == InvoiceStatus.UNPAID.value)
            .order_by(InvoiceModel.create_date, InvoiceModel.id)
        )
        inputs = [
            InvoiceBalanceInput(
                invoice_id=str(inv.id),
                create_date=inv.create_date,
                sub_total=inv.sub_total,
                penalty_total=inv.penalty_total,
                received=self._ledger.received_amount(inv.id),
            )
            for inv in self.session.scalars(stmt)
        ]
        return summarize_outstanding(str(contract_id), inputs)

    def reconcile_settled_invoices(self, snapshot: OutstandingSnapshot) -> tuple[UUID, ...]:
        """
        Mark settled the invoices ``snapshot`` found fully covered.

        Each invoice is re-read under a row lock and re-checked, since it may
        have changed since the snapshot was taken. Returns the ids settled.
        """
        settled: list[UUID] = []
        for raw_id in snapshot.covered_invoice_ids:
            invoice = self._ledger.lock_invoice(UUID(raw_id))
            if invoice.is_settled:
                continue
            received = self._ledger.received_amount(invoice.id)
            if remaining_balance(invoice.own_charges, received) > ZERO:
                continue

            invoice.paid_amount = received
            invoice.remaining_balance = remaining_balance(invoice.net_amount, received)
            invoice.status = InvoiceStatus.SETTLED.value
            invoice.pay_date = invoice.pay_date or self._clock.now()
            self._flush("Invoice", invoice.id)
            settled.append(invoice.id)

            logger.info("invoice_reconciled_settled", extra={
                "invoice_id": str(invoice.id),
                "contract_id": snapshot.contract_id,
                "received": str(received),
            })
        return tuple(settled)

    def calculate_outstanding_balance(self, contract_id: UUID) -> Decimal:
        """
        Outstanding total of a contract, settling fully covered invoices on the way.

        Callers must expect invoice statuses to change as a result.
        """
        snapshot = self.summarize_outstanding(contract_id)
        self.reconcile_settled_invoices(snapshot)
        logger.info("outstanding_balance_calculated", extra={
            "contract_id": str(contract_id),
            "total_outstanding": str(snapshot.total_outstanding),
            "invoice_count": len(snapshot.lines),
        })
        return snapshot.total_outstanding

    # =========================================================================
    # Rollover
    # =========================================================================

    def create_invoice_with_outstanding_balance(
        self,
        contract_id: UUID,
        current_charges: Decimal,
        *,
        breakdown: ChargeBreakdown | None = None,
        create_date: datetime | None = None,
        due_date: datetime | None = None,
        created_by: str | None = None,
        requested_floor: int | None = None,
        requested_room: str | None = None,
    ) -> Invoice:
        """
        Create an unpaid invoice carrying the contract's outstanding balance.

        ``previous_balance`` is the outstanding total computed immediately
        before creation and ``net_amount = previous_balance + current_charges``.
        Prior invoices are only touched by reconciliation. ``breakdown`` keeps
        the current period's line items; without it the whole amount is
        recorded as rent.
        """
        require_aware("create_date", create_date)
        require_aware("due_date", due_date)
        contract = self.session.get(ContractModel, contract_id)
        if contract is None:
            raise ContractNotFoundError(str(contract_id))

        current = to_decimal(current_charges, "current_charges")
        if breakdown is None:
            breakdown = calculate_charges(charge_input=ChargeInput(rent=current))
        elif breakdown.sub_total != current:
            raise ValueError(
                f"breakdown sub_total {breakdown.sub_total} does not match "
                f"current_charges {current}"
            )
        if breakdown.penalty_total != ZERO:
            breakdown = breakdown.with_penalty(ZERO)

        outstanding = self.calculate_outstanding_balance(contract_id)
        breakdown = breakdown.with_previous_balance(outstanding)

        now = self._clock.now()
        create_date = create_date or now
        model = InvoiceModel.from_breakdown(
            contract.id,
            breakdown,
            create_date=create_date,
            due_date=due_date or create_date + timedelta(days=self._config.payment_terms_days),
            created_by=created_by or self._config.system_actor,
            requested_floor=requested_floor,
            requested_room=requested_room,
        )
        self.session.add(model)
        self._flush("Invoice", model.id)

        logger.info("rollover_invoice_created", extra={
            "invoice_id": str(model.id),
            "contract_id": str(contract.id),
            "current_charges": str(current),
            "previous_balance": str(outstanding),
            "net_amount": str(model.net_amount),
        })
        return model.to_dto()

    # =========================================================================
    # Summary and payments
    # =========================================================================

    def get_outstanding_balance_summary(self, contract_id: UUID) -> OutstandingBalanceSummary:
        """
        Totals over the contract's unsettled invoices with a positive remaining balance.

        A reconciled rollover invoice can be settled while its remaining
        balance still shows the carried amount; it is left out.
        """
        stmt = (
            select(InvoiceModel)
            .where(InvoiceModel.contract_id == contract_id)
            .where(InvoiceModel.status == InvoiceStatus.UNPAID.value)
        )
        inputs = [
            OpenInvoiceInput(
                invoice_id=str(inv.id),
                due_date=inv.due_date,
                penalty_total=inv.penalty_total,
                remaining_balance=inv.remaining_balance,
            )
            for inv in self.session.scalars(stmt)
        ]
        return summarize_open_invoices(inputs, self._clock.now())

    def record_payment(
        self,
        invoice_id: UUID,
        amount: Decimal,
        method: PaymentMethod,
        notes: str | None = None,
    ) -> PaymentRecord:
        """Record a confirmed system payment through the ledger."""
        return self._ledger.add_payment(PaymentRequest(
            invoice_id=invoice_id,
            amount=amount,
            method=method,
            status=PaymentStatus.CONFIRMED,
            notes=notes,
            recorded_by=self._config.system_actor,
        ))
