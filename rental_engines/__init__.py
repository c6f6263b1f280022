"""
Rental Engines - pure calculation functions for billing.

Engines take plain values and frozen dataclasses and return frozen results.
They perform no I/O, never read the clock themselves and never touch the
database; services gather inputs and persist results.

Engines:
    - amounts: Money policy (rounding, penalty percentage, addon totals, net)
    - invoice_calculation: Line-item breakdown and totals for one invoice
    - outstanding: Outstanding balance across a contract's open invoices
"""

from rental_engines.amounts import (
    DEFAULT_PENALTY_RATE,
    ZERO,
    invoice_net_amount,
    penalty_for,
    remaining_balance,
    round_amount,
    sum_addon_fees,
    to_decimal,
    to_quantity,
    utility_charge,
)
from rental_engines.invoice_calculation import (
    ChargeBreakdown,
    ChargeInput,
    calculate_charges,
    is_penalty_due,
)
from rental_engines.outstanding import (
    InvoiceBalanceInput,
    InvoiceBalanceLine,
    OpenInvoiceInput,
    OutstandingBalanceSummary,
    OutstandingSnapshot,
    summarize_open_invoices,
    summarize_outstanding,
)

__all__ = [
    # Amounts
    "ZERO",
    "DEFAULT_PENALTY_RATE",
    "to_decimal",
    "to_quantity",
    "round_amount",
    "penalty_for",
    "sum_addon_fees",
    "utility_charge",
    "invoice_net_amount",
    "remaining_balance",
    # Invoice calculation
    "ChargeInput",
    "ChargeBreakdown",
    "calculate_charges",
    "is_penalty_due",
    # Outstanding
    "InvoiceBalanceInput",
    "InvoiceBalanceLine",
    "OutstandingSnapshot",
    "summarize_outstanding",
    "OpenInvoiceInput",
    "OutstandingBalanceSummary",
    "summarize_open_invoices",
]
