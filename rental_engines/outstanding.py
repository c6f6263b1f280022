"""
Outstanding balance engine.

Pure functions with deterministic behavior. No I/O.

``summarize_outstanding`` walks a contract's unsettled invoices oldest
first and reports, per invoice, its own charges (sub total plus penalty),
what has been received and what remains. Invoices whose receipts already
cover their own charges are reported as covered; marking them settled is
the caller's separate decision. The carried ``previous_balance`` of a
rollover invoice is not part of its own charges, since the invoices it was
carried from are still counted on their own.

``summarize_open_invoices`` aggregates the stored remaining balances of
open invoices into totals and an overdue count.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from rental_engines.amounts import ZERO, remaining_balance
from rental_kernel.logging_config import get_logger

logger = get_logger("engines.outstanding")


@dataclass(frozen=True)
class InvoiceBalanceInput:
    """Snapshot of one unsettled invoice and its received payments."""

    invoice_id: str
    create_date: datetime
    sub_total: Decimal
    penalty_total: Decimal
    received: Decimal


@dataclass(frozen=True)
class InvoiceBalanceLine:
    invoice_id: str
    own_charges: Decimal
    received: Decimal
    remaining: Decimal

    @property
    def covered(self) -> bool:
        return self.remaining <= ZERO


@dataclass(frozen=True)
class OutstandingSnapshot:
    """Result of one outstanding-balance read, in processing order."""

    contract_id: str
    lines: tuple[InvoiceBalanceLine, ...]
    total_outstanding: Decimal

    @property
    def covered_invoice_ids(self) -> tuple[str, ...]:
        """Invoices that are fully paid but still marked unsettled."""
        return tuple(line.invoice_id for line in self.lines if line.covered)


def summarize_outstanding(
    contract_id: str,
    invoices: Sequence[InvoiceBalanceInput],
) -> OutstandingSnapshot:
    """
    Sum the positive remainders of ``invoices`` in create-date order.

    Ties on ``create_date`` are broken by invoice id so the processing
    order is stable.
    """
    ordered = sorted(invoices, key=lambda inv: (inv.create_date, inv.invoice_id))
    lines: list[InvoiceBalanceLine] = []
    total = ZERO
    for inv in ordered:
        own = inv.sub_total + inv.penalty_total
        remaining = remaining_balance(own, inv.received)
        lines.append(InvoiceBalanceLine(
            invoice_id=inv.invoice_id,
            own_charges=own,
            received=inv.received,
            remaining=remaining,
        ))
        if remaining > ZERO:
            total += remaining

    snapshot = OutstandingSnapshot(
        contract_id=contract_id,
        lines=tuple(lines),
        total_outstanding=total,
    )
    logger.debug("outstanding_summarized", extra={
        "contract_id": contract_id,
        "invoice_count": len(lines),
        "covered_count": len(snapshot.covered_invoice_ids),
        "total_outstanding": str(total),
    })
    return snapshot


@dataclass(frozen=True)
class OpenInvoiceInput:
    """Stored balance fields of one invoice for the summary view."""

    invoice_id: str
    due_date: datetime | None
    penalty_total: Decimal
    remaining_balance: Decimal


@dataclass(frozen=True)
class OutstandingBalanceSummary:
    total_outstanding: Decimal
    total_penalty: Decimal
    overdue_count: int
    total_invoices: int


def summarize_open_invoices(
    invoices: Sequence[OpenInvoiceInput],
    now: datetime,
) -> OutstandingBalanceSummary:
    """
    Aggregate invoices that still have a positive remaining balance.

    An invoice is overdue when its due date is strictly before ``now``.
    """
    open_invoices = [inv for inv in invoices if inv.remaining_balance > ZERO]
    return OutstandingBalanceSummary(
        total_outstanding=sum((inv.remaining_balance for inv in open_invoices), ZERO),
        total_penalty=sum((inv.penalty_total for inv in open_invoices), ZERO),
        overdue_count=sum(
            1 for inv in open_invoices
            if inv.due_date is not None and inv.due_date < now
        ),
        total_invoices=len(open_invoices),
    )
