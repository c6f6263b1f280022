"""
Payment Ledger - records payments against invoices and keeps balances true.

After every add, update or delete the parent invoice is re-read under a row
lock and its ``paid_amount``, ``remaining_balance`` and status are recomputed
from the ledger:

    paid_amount       = sum of received payments
    remaining_balance = net_amount - paid_amount
    status            = settled iff remaining_balance <= 0, else unpaid

"Received" means CONFIRMED plus PENDING under the default policy; REJECTED
and CANCELLED payments never count. Overpayment is accepted by default and
shows up as a negative remaining balance; ``BillingConfig.allow_overpayment``
turns it into an ``OverpaymentError``.

Usage:
    ledger = PaymentLedger(session, clock=clock)
    record = ledger.add_payment(PaymentRequest(
        invoice_id=invoice.id,
        amount=Decimal("1500"),
        method=PaymentMethod.CASH,
    ))
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_engines.amounts import ZERO, remaining_balance, to_decimal
from rental_kernel.domain.clock import Clock
from rental_kernel.exceptions import (
    InvalidAmountError,
    InvoiceNotFoundError,
    OverpaymentError,
    PaymentProofNotFoundError,
    PaymentRecordNotFoundError,
)
from rental_kernel.logging_config import get_logger
from rental_kernel.services.base import BaseService
from rental_modules.billing.config import BillingConfig
from rental_modules.billing.models import (
    InvoiceStatus,
    PaymentProof,
    PaymentRecord,
    PaymentRequest,
    PaymentStatus,
    PaymentTotals,
    PaymentUpdate,
    ProofUpload,
)
from rental_modules.billing.orm import (
    InvoiceModel,
    PaymentProofModel,
    PaymentRecordModel,
)
from rental_modules.billing.proofs import LocalProofStorage, ProofStorage

logger = get_logger("modules.billing.payment_ledger")


class PaymentLedger(BaseService):
    """Payment records, ledger totals and invoice settlement."""

    def __init__(
        self,
        session: Session,
        config: BillingConfig | None = None,
        clock: Clock | None = None,
        storage: ProofStorage | None = None,
    ):
        super().__init__(session, clock)
        self._config = config or BillingConfig.with_defaults()
        self._storage = storage or LocalProofStorage()

    # =========================================================================
    # Payments
    # =========================================================================

    def add_payment(self, request: PaymentRequest) -> PaymentRecord:
        """Record a payment and refresh the invoice's balance and status."""
        amount = _positive_amount(request.amount)
        invoice = self.lock_invoice(request.invoice_id)
        self._check_overpayment(invoice, amount, request.status)

        payment = PaymentRecordModel(
            invoice_id=invoice.id,
            amount=amount,
            method=request.method.value,
            status=request.status.value,
            payment_date=request.payment_date or self._clock.now(),
            transaction_reference=request.transaction_reference,
            notes=request.notes,
            recorded_by=request.recorded_by or self._config.system_actor,
            created_by=request.recorded_by or self._config.system_actor,
        )
        self.session.add(payment)
        self._flush("PaymentRecord", payment.id)

        logger.info("payment_recorded", extra={
            "payment_id": str(payment.id),
            "invoice_id": str(invoice.id),
            "amount": str(amount),
            "method": request.method.value,
            "status": request.status.value,
        })
        self.refresh_invoice(invoice)
        return payment.to_dto()

    def update_payment(self, payment_id: UUID, update: PaymentUpdate) -> PaymentRecord:
        """Correct a payment's fields and refresh the invoice."""
        payment = self._get_payment_model(payment_id)
        invoice = self.lock_invoice(payment.invoice_id)

        new_amount = payment.amount
        if update.amount is not None:
            new_amount = _positive_amount(update.amount)
        new_status = update.status or PaymentStatus(payment.status)
        self._check_overpayment(invoice, new_amount, new_status, exclude_payment_id=payment.id)

        payment.amount = new_amount
        payment.status = new_status.value
        if update.method is not None:
            payment.method = update.method.value
        if update.payment_date is not None:
            payment.payment_date = update.payment_date
        if update.transaction_reference is not None:
            payment.transaction_reference = update.transaction_reference
        if update.notes is not None:
            payment.notes = update.notes
        self._flush("PaymentRecord", payment.id)

        logger.info("payment_updated", extra={
            "payment_id": str(payment.id),
            "invoice_id": str(invoice.id),
            "amount": str(payment.amount),
            "status": payment.status,
        })
        self.refresh_invoice(invoice)
        return payment.to_dto()

    def delete_payment(self, payment_id: UUID) -> None:
        """Delete a payment (and its proofs) and refresh the invoice."""
        payment = self._get_payment_model(payment_id)
        invoice = self.lock_invoice(payment.invoice_id)

        for proof in list(payment.proofs):
            self._storage.delete(proof.file_path)
            self.session.delete(proof)
        self.session.delete(payment)
        self._flush("PaymentRecord", payment_id)

        logger.info("payment_deleted", extra={
            "payment_id": str(payment_id),
            "invoice_id": str(invoice.id),
        })
        self.refresh_invoice(invoice)

    def get_payment(self, payment_id: UUID) -> PaymentRecord:
        return self._get_payment_model(payment_id).to_dto()

    def list_payments(self, invoice_id: UUID) -> tuple[PaymentRecord, ...]:
        """Payments of an invoice, newest first."""
        stmt = (
            select(PaymentRecordModel)
            .where(PaymentRecordModel.invoice_id == invoice_id)
            .order_by(PaymentRecordModel.payment_date.desc())
        )
        return tuple(p.to_dto() for p in self.session.scalars(stmt))

    # =========================================================================
    # Totals and settlement
    # =========================================================================

    def totals(self, invoice_id: UUID, exclude_payment_id: UUID | None = None) -> PaymentTotals:
        """Confirmed, pending and received totals, read fresh from the database."""
        stmt = select(PaymentRecordModel.amount, PaymentRecordModel.status).where(
            PaymentRecordModel.invoice_id == invoice_id
        )
        if exclude_payment_id is not None:
            stmt = stmt.where(PaymentRecordModel.id != exclude_payment_id)

        paid = ZERO
        pending = ZERO
        for amount, status in self.session.execute(stmt):
            if status == PaymentStatus.CONFIRMED.value:
                paid += amount
            elif status == PaymentStatus.PENDING.value:
                pending += amount

        received = paid + pending if self._config.count_pending_as_received else paid
        return PaymentTotals(total_paid=paid, total_pending=pending, total_received=received)

    def received_amount(self, invoice_id: UUID) -> Decimal:
        return self.totals(invoice_id).total_received

    def lock_invoice(self, invoice_id: UUID) -> InvoiceModel:
        """Load an invoice with ``SELECT ... FOR UPDATE`` and fresh column values."""
        stmt = (
            select(InvoiceModel)
            .where(InvoiceModel.id == invoice_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        invoice = self.session.scalars(stmt).first()
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice

    def refresh_invoice(self, invoice: InvoiceModel) -> InvoiceModel:
        """
        Recompute paid/remaining/status of ``invoice`` from the ledger.

        The caller must hold the row lock (``lock_invoice``).
        """
        was_settled = invoice.is_settled
        received = self.received_amount(invoice.id)

        invoice.paid_amount = received
        invoice.remaining_balance = remaining_balance(invoice.net_amount, received)
        if invoice.remaining_balance <= ZERO:
            invoice.status = InvoiceStatus.SETTLED.value
            if invoice.pay_date is None:
                invoice.pay_date = self._clock.now()
        else:
            invoice.status = InvoiceStatus.UNPAID.value
            invoice.pay_date = None
        self._flush("Invoice", invoice.id)

        if invoice.is_settled != was_settled:
            logger.info(
                "invoice_settled" if invoice.is_settled else "invoice_reopened",
                extra={
                    "invoice_id": str(invoice.id),
                    "net_amount": str(invoice.net_amount),
                    "paid_amount": str(invoice.paid_amount),
                    "remaining_balance": str(invoice.remaining_balance),
                },
            )
        return invoice

    # =========================================================================
    # Proofs
    # =========================================================================

    def attach_proof(self, payment_id: UUID, upload: ProofUpload) -> PaymentProof:
        """Store a proof file for a payment and record its metadata."""
        payment = self._get_payment_model(payment_id)
        file_path = self._storage.save(payment.id, upload.file_name, upload.content)

        proof = PaymentProofModel(
            payment=payment,
            file_name=upload.file_name,
            file_path=file_path,
            file_size=len(upload.content),
            content_type=upload.content_type,
            proof_type=upload.proof_type.value,
            description=upload.description,
            uploaded_by=upload.uploaded_by,
            uploaded_at=self._clock.now(),
            created_by=upload.uploaded_by or self._config.system_actor,
        )
        self.session.add(proof)
        self._flush("PaymentProof", proof.id)

        logger.info("payment_proof_attached", extra={
            "proof_id": str(proof.id),
            "payment_id": str(payment.id),
            "proof_type": upload.proof_type.value,
            "file_size": proof.file_size,
        })
        return proof.to_dto()

    def remove_proof(self, proof_id: UUID) -> None:
        proof = self.session.get(PaymentProofModel, proof_id)
        if proof is None:
            raise PaymentProofNotFoundError(str(proof_id))
        self._storage.delete(proof.file_path)
        proof.payment.proofs.remove(proof)
        self.session.delete(proof)
        self._flush("PaymentProof", proof_id)
        logger.info("payment_proof_removed", extra={"proof_id": str(proof_id)})

    def list_proofs(self, payment_id: UUID) -> tuple[PaymentProof, ...]:
        stmt = (
            select(PaymentProofModel)
            .where(PaymentProofModel.payment_id == payment_id)
            .order_by(PaymentProofModel.uploaded_at)
        )
        return tuple(p.to_dto() for p in self.session.scalars(stmt))

    # =========================================================================
    # Helpers
    # =========================================================================

    def _get_payment_model(self, payment_id: UUID) -> PaymentRecordModel:
        payment = self.session.get(PaymentRecordModel, payment_id)
        if payment is None:
            raise PaymentRecordNotFoundError(str(payment_id))
        return payment

    def _check_overpayment(
        self,
        invoice: InvoiceModel,
        amount: Decimal,
        status: PaymentStatus,
        exclude_payment_id: UUID | None = None,
    ) -> None:
        if self._config.allow_overpayment:
            return
        if not status.counts_as_received(self._config.count_pending_as_received):
            return
        received = self.totals(invoice.id, exclude_payment_id).total_received
        remaining = remaining_balance(invoice.net_amount, received)
        if amount > remaining:
            logger.warning("overpayment_rejected", extra={
                "invoice_id": str(invoice.id),
                "amount": str(amount),
                "remaining_balance": str(remaining),
            })
            raise OverpaymentError(str(invoice.id), amount, remaining)


def _positive_amount(amount: Decimal | int | str | None) -> Decimal:
    if amount is None:
        raise InvalidAmountError("amount", None, "required")
    value = to_decimal(amount)
    if value <= ZERO:
        raise InvalidAmountError("amount", value, "must be positive")
    return value
