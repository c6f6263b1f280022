"""
Billing batch tasks.

``OverduePenaltyTask`` applies the late penalty to every unpaid invoice
whose penalty due date has passed. The penalty due date is
``penalty_applied_at`` when set, otherwise ``due_date``. Items are re-checked
under a row lock at execution time, so an invoice penalized or settled
between prepare and execute is skipped rather than charged twice.

Parameters (all optional):
    penalty_rate: decimal string, default ``BillingConfig.penalty_rate``
    contract_id: restrict the sweep to one contract
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from rental_batch.domain.types import BatchItemStatus
from rental_batch.tasks.base import BatchItemInput, BatchTaskResult
from rental_engines.amounts import ZERO, invoice_net_amount, penalty_for
from rental_engines.invoice_calculation import is_penalty_due
from rental_kernel.domain.clock import DeterministicClock
from rental_kernel.logging_config import get_logger
from rental_modules.billing.config import BillingConfig
from rental_modules.billing.models import InvoiceStatus
from rental_modules.billing.orm import InvoiceModel
from rental_modules.billing.payment_ledger import PaymentLedger

logger = get_logger("batch.tasks.billing")


class OverduePenaltyTask:
    """Late penalty sweep over unpaid invoices."""

    def __init__(self, config: BillingConfig | None = None):
        self._config = config or BillingConfig.with_defaults()

    @property
    def task_type(self) -> str:
        return "billing.overdue_penalties"

    @property
    def description(self) -> str:
        return "Apply late penalties to overdue unpaid invoices"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        penalty_due = func.coalesce(InvoiceModel.penalty_applied_at, InvoiceModel.due_date)
        stmt = (
            select(InvoiceModel.id)
            .where(InvoiceModel.status == InvoiceStatus.UNPAID.value)
            .where(InvoiceModel.penalty_total == ZERO)
            .where(penalty_due.is_not(None))
            .order_by(InvoiceModel.create_date, InvoiceModel.id)
        )
        if parameters.get("contract_id"):
            stmt = stmt.where(InvoiceModel.contract_id == UUID(parameters["contract_id"]))

        items = []
        for invoice_id in session.scalars(stmt):
            invoice = session.get(InvoiceModel, invoice_id)
            if not self._is_eligible(invoice, as_of):
                continue
            items.append(BatchItemInput(
                item_index=len(items),
                item_key=str(invoice_id),
                payload={"invoice_id": str(invoice_id)},
            ))
        return tuple(items)

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        ledger = PaymentLedger(session, self._config, DeterministicClock(as_of))
        invoice = ledger.lock_invoice(UUID(item.payload["invoice_id"]))

        if not self._is_eligible(invoice, as_of):
            return BatchTaskResult(
                status=BatchItemStatus.SKIPPED,
                result_data={"reason": "not eligible"},
            )

        rate = Decimal(str(parameters.get("penalty_rate", self._config.penalty_rate)))
        rent = invoice.requested_rent
        if rent <= ZERO:
            rent = invoice.contract.rent_amount
        penalty = penalty_for(rent, rate)

        invoice.penalty_total = penalty
        invoice.net_amount = invoice_net_amount(
            invoice.sub_total, penalty, invoice.previous_balance,
        )
        if invoice.penalty_applied_at is None:
            invoice.penalty_applied_at = as_of
        ledger.refresh_invoice(invoice)

        logger.info("penalty_applied", extra={
            "invoice_id": str(invoice.id),
            "contract_id": str(invoice.contract_id),
            "penalty_total": str(penalty),
            "net_amount": str(invoice.net_amount),
        })
        return BatchTaskResult(
            status=BatchItemStatus.SUCCEEDED,
            result_data={
                "penalty_total": str(penalty),
                "net_amount": str(invoice.net_amount),
            },
        )

    @staticmethod
    def _is_eligible(invoice: InvoiceModel, as_of: datetime) -> bool:
        return is_penalty_due(
            now=as_of,
            penalty_due_date=invoice.penalty_applied_at or invoice.due_date,
            settled=invoice.is_settled,
            current_penalty=invoice.penalty_total,
        )
