"""
Billing Module.

Invoices, payments, outstanding balances, addon fees and utility usage for
rental contracts. Amount arithmetic comes from ``rental_engines``.
"""

from rental_modules.billing.addons import AddonFeeResolver
from rental_modules.billing.config import BillingConfig
from rental_modules.billing.contracts import ContractResolver
from rental_modules.billing.invoice_service import InvoiceService
from rental_modules.billing.models import (
    Fallback,
    Invoice,
    InvoiceRequest,
    InvoiceStatus,
    InvoiceUpdate,
    InvoiceView,
    OutstandingBalanceSummary,
    PaymentMethod,
    PaymentRecord,
    PaymentRequest,
    PaymentStatus,
    PaymentUpdate,
    Resolved,
)
from rental_modules.billing.outstanding_service import OutstandingBalanceTracker
from rental_modules.billing.payment_ledger import PaymentLedger
from rental_modules.billing.usage import UsageImporter, monthly_usage_report

__all__ = [
    "AddonFeeResolver",
    "BillingConfig",
    "ContractResolver",
    "InvoiceService",
    "OutstandingBalanceTracker",
    "PaymentLedger",
    "UsageImporter",
    "monthly_usage_report",
    "Resolved",
    "Fallback",
    "Invoice",
    "InvoiceRequest",
    "InvoiceUpdate",
    "InvoiceView",
    "InvoiceStatus",
    "OutstandingBalanceSummary",
    "PaymentMethod",
    "PaymentStatus",
    "PaymentRequest",
    "PaymentUpdate",
    "PaymentRecord",
]
