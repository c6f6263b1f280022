"""
Typed exception hierarchy for the rental billing engine.

Every error has its own class and a machine-readable ``code`` class
attribute, and carries the identifiers it is about as attributes. Callers
catch by type and read structured fields instead of parsing messages:

    try:
        ledger.add_payment(request)
    except InvoiceNotFoundError as e:
        respond(code=e.code, invoice_id=e.invoice_id)

Hierarchy:

    RentalBillingError (base)
    |
    +-- NotFoundError
    |   +-- ContractNotFoundError
    |   +-- NoContractsAvailableError
    |   +-- InvoiceNotFoundError
    |   +-- PaymentRecordNotFoundError
    |   +-- PaymentProofNotFoundError
    |
    +-- BillingValidationError
    |   +-- InvalidAmountError
    |   +-- InvalidQuantityError
    |   +-- InvalidDateError
    |   +-- OverpaymentError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- UsageImportError
    |
    +-- BatchError
        +-- BatchIdempotencyError
        +-- BatchJobNotFoundError
        +-- BatchAlreadyRunningError
        +-- TaskNotRegisteredError

Falling back to a best-guess contract is not an error; it is reported as a
warning log by the contract resolver.
"""

from datetime import datetime
from decimal import Decimal


class RentalBillingError(Exception):
    """
    Base exception for all rental billing errors.

    All subclasses define a ``code`` class attribute.
    """

    code: str = "RENTAL_BILLING_ERROR"


# Not-found


class NotFoundError(RentalBillingError):
    """Base exception for lookups by id that found nothing."""

    code: str = "NOT_FOUND"


class ContractNotFoundError(NotFoundError):
    """Contract with the given id does not exist."""

    code: str = "CONTRACT_NOT_FOUND"

    def __init__(self, contract_id: str):
        self.contract_id = contract_id
        super().__init__(f"Contract not found: {contract_id}")


class NoContractsAvailableError(NotFoundError):
    """No contract exists at all, so not even a fallback can be chosen."""

    code: str = "NO_CONTRACTS_AVAILABLE"

    def __init__(self) -> None:
        super().__init__("No contracts available to bill against")


class InvoiceNotFoundError(NotFoundError):
    """Invoice with the given id does not exist."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class PaymentRecordNotFoundError(NotFoundError):
    """Payment record with the given id does not exist."""

    code: str = "PAYMENT_RECORD_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment record not found: {payment_id}")


class PaymentProofNotFoundError(NotFoundError):
    """Payment proof with the given id does not exist."""

    code: str = "PAYMENT_PROOF_NOT_FOUND"

    def __init__(self, proof_id: str):
        self.proof_id = proof_id
        super().__init__(f"Payment proof not found: {proof_id}")


# Validation


class BillingValidationError(RentalBillingError, ValueError):
    """Base exception for inputs rejected before anything is persisted."""

    code: str = "BILLING_VALIDATION_ERROR"


class InvalidAmountError(BillingValidationError):
    """A monetary input is missing, negative, or not positive where required."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, amount: Decimal | None, reason: str):
        self.field = field
        self.amount = str(amount) if amount is not None else None
        self.reason = reason
        super().__init__(f"Invalid amount for {field}: {amount} ({reason})")


class InvalidQuantityError(BillingValidationError):
    """A usage quantity or rate is negative or not a finite number."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, quantity: Decimal):
        self.field = field
        self.quantity = str(quantity)
        super().__init__(f"Invalid quantity for {field}: {quantity}")


class InvalidDateError(BillingValidationError):
    """A date input lacks timezone information."""

    code: str = "INVALID_DATE"

    def __init__(self, field: str, value: datetime):
        self.field = field
        self.value = value.isoformat()
        super().__init__(f"{field} must be timezone-aware, got naive {value.isoformat()}")


class OverpaymentError(BillingValidationError):
    """Payment exceeds the invoice's remaining balance while overpayment is disabled."""

    code: str = "OVERPAYMENT"

    def __init__(self, invoice_id: str, amount: Decimal, remaining: Decimal):
        self.invoice_id = invoice_id
        self.amount = str(amount)
        self.remaining = str(remaining)
        super().__init__(
            f"Payment of {amount} exceeds remaining balance {remaining} "
            f"on invoice {invoice_id}"
        )


# Concurrency


class ConcurrencyError(RentalBillingError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """Row was changed by another transaction between read and write."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Usage import


class UsageImportError(RentalBillingError):
    """A single utility-usage row could not be applied."""

    code: str = "USAGE_IMPORT_ERROR"

    def __init__(self, line_number: int, reason: str):
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"Line {line_number}: {reason}")


# Batch


class BatchError(RentalBillingError):
    """Base exception for batch job errors."""

    code: str = "BATCH_ERROR"


class BatchIdempotencyError(BatchError):
    """A job with this idempotency key was already submitted."""

    code: str = "BATCH_IDEMPOTENCY_CONFLICT"

    def __init__(self, idempotency_key: str, existing_job_id: str):
        self.idempotency_key = idempotency_key
        self.existing_job_id = existing_job_id
        super().__init__(
            f"Batch job with idempotency key {idempotency_key!r} "
            f"already exists: {existing_job_id}"
        )


class BatchJobNotFoundError(BatchError):
    """Batch job with the given id does not exist."""

    code: str = "BATCH_JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Batch job not found: {job_id}")


class BatchAlreadyRunningError(BatchError):
    """Job is already running or has already finished."""

    code: str = "BATCH_ALREADY_RUNNING"

    def __init__(self, job_name: str, job_id: str):
        self.job_name = job_name
        self.job_id = job_id
        super().__init__(f"Batch job {job_name} ({job_id}) is not runnable")


class TaskNotRegisteredError(BatchError):
    """No task is registered for the job's task type."""

    code: str = "TASK_NOT_REGISTERED"

    def __init__(self, task_type: str):
        self.task_type = task_type
        super().__init__(f"No batch task registered for type: {task_type}")
