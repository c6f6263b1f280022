"""
Money/amount policy for rental billing.

Pure functions with deterministic behavior. No I/O.

Rules:
    - Every amount is a ``Decimal``; floats are converted through ``str`` so
      binary artefacts never leak into a bill.
    - Charges are rounded to whole currency units with ROUND_HALF_UP.
    - The late penalty is a percentage of rent (10% unless configured).
    - Addon fees are the plain sum of each linked asset's monthly fee.
    - An invoice's net amount is ``sub_total + penalty + previous_balance``.
      This is the only place that sum is written.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from rental_kernel.exceptions import InvalidAmountError, InvalidQuantityError

ZERO = Decimal("0")
WHOLE_UNIT = Decimal("1")
DEFAULT_PENALTY_RATE = Decimal("0.10")


def _coerce(value: Decimal | int | float | str | None) -> Decimal | None:
    """Decimal form of ``value``, or None when it is not a finite number."""
    if value is None:
        return ZERO
    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, float):
            result = Decimal(str(value))
        else:
            result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None
    return result if result.is_finite() else None


def to_decimal(value: Decimal | int | float | str | None, field: str = "amount") -> Decimal:
    """
    Coerce a numeric input to Decimal. ``None`` becomes zero.

    NaN, infinities and unparsable input raise ``InvalidAmountError``.
    """
    result = _coerce(value)
    if result is None:
        raise InvalidAmountError(field, value, "must be a finite number")
    return result


def to_quantity(field: str, value: Decimal | int | float | str | None) -> Decimal:
    """Like ``to_decimal`` for usage units and rates; raises ``InvalidQuantityError``."""
    result = _coerce(value)
    if result is None:
        raise InvalidQuantityError(field, value)
    return result


def round_amount(value: Decimal | int | str) -> Decimal:
    """Round to whole currency units, halves away from zero."""
    return to_decimal(value).quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)


def require_non_negative(field: str, amount: Decimal | int | str | None) -> Decimal:
    """Return ``amount`` as Decimal, rejecting missing or negative values."""
    if amount is None:
        raise InvalidAmountError(field, None, "required")
    value = to_decimal(amount, field)
    if value < ZERO:
        raise InvalidAmountError(field, value, "must be non-negative")
    return value


def penalty_for(rent: Decimal | int | str, rate: Decimal = DEFAULT_PENALTY_RATE) -> Decimal:
    """Late penalty for ``rent``: ``rate`` of rent, rounded to whole units."""
    return round_amount(require_non_negative("rent", rent) * rate)


def sum_addon_fees(fees: Iterable[Decimal | int | str | None]) -> Decimal:
    """Total of recurring addon fees. Non-positive and missing fees count as zero."""
    total = ZERO
    for fee in fees:
        value = to_decimal(fee)
        if value > ZERO:
            total += value
    return total


def utility_charge(
    field: str,
    units: Decimal | int | str | None,
    rate: Decimal | int | str | None,
) -> Decimal:
    """Metered charge ``units * rate``, rounded to whole units."""
    units_value = to_quantity(f"{field}_units", units)
    rate_value = to_quantity(f"{field}_rate", rate)
    if units_value < ZERO:
        raise InvalidQuantityError(f"{field}_units", units_value)
    if rate_value < ZERO:
        raise InvalidQuantityError(f"{field}_rate", rate_value)
    return round_amount(units_value * rate_value)


def invoice_net_amount(
    sub_total: Decimal,
    penalty_total: Decimal = ZERO,
    previous_balance: Decimal = ZERO,
) -> Decimal:
    """Net amount due on an invoice."""
    return sub_total + penalty_total + previous_balance


def remaining_balance(net_amount: Decimal, received: Decimal) -> Decimal:
    """What is still owed. Negative when the invoice has been overpaid."""
    return net_amount - received
