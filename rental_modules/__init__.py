"""
Rental Modules.

Persistence-backed orchestration over the rental kernel and the pure
billing engines.

Modules:
- Billing: invoices, payments, outstanding balances, addon fees, usage import
"""
