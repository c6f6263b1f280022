"""
rental_batch -- Batch job framework and the overdue penalty sweep.

Jobs are submitted once per idempotency key and executed item by item,
each item inside its own SAVEPOINT so one bad invoice never rolls back the
invoices already processed. Run cadence (cron, timers) is left to the
caller; ``PenaltyScheduler`` performs one sweep per call.

Nothing in rental_kernel, rental_engines or rental_modules imports from
rental_batch.
"""
