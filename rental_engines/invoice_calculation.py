"""
Invoice calculation engine.

Pure functions with deterministic behavior. No I/O.

Builds the line-item breakdown of a single invoice (rent, water,
electricity, addon fees, penalty, carried balance) and derives its totals.
Fresh period invoices, rollover invoices, edits, CSV usage imports and the
overdue penalty sweep all go through ``calculate_charges`` so the totals
are computed in exactly one place.

Usage:
    from rental_engines.invoice_calculation import ChargeInput, calculate_charges

    breakdown = calculate_charges(charge_input=ChargeInput(
        rent=Decimal("4000"),
        water_units=Decimal("10"), water_rate=Decimal("10"),
        electricity_units=Decimal("25"), electricity_rate=Decimal("8"),
        addon_amount=Decimal("300"),
    ))
    breakdown.sub_total   # Decimal("4600")
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal

from rental_engines.amounts import (
    ZERO,
    invoice_net_amount,
    require_non_negative,
    utility_charge,
)
from rental_engines.tracer import traced_engine
from rental_kernel.logging_config import get_logger

logger = get_logger("engines.invoice_calculation")


@dataclass(frozen=True)
class ChargeInput:
    """
    Period inputs for one invoice.

    Quantities, rates and amounts must be non-negative. ``penalty`` is an
    explicit penalty (zero when none applies yet). ``previous_balance`` is
    the carried outstanding amount for a rollover invoice.
    """

    rent: Decimal
    water_units: Decimal = ZERO
    water_rate: Decimal = ZERO
    electricity_units: Decimal = ZERO
    electricity_rate: Decimal = ZERO
    addon_amount: Decimal = ZERO
    penalty: Decimal = ZERO
    previous_balance: Decimal = ZERO

    def __post_init__(self) -> None:
        require_non_negative("rent", self.rent)
        require_non_negative("addon_amount", self.addon_amount)
        require_non_negative("penalty", self.penalty)
        require_non_negative("previous_balance", self.previous_balance)
        # units/rates are checked by utility_charge with quantity errors
        utility_charge("water", self.water_units, self.water_rate)
        utility_charge("electricity", self.electricity_units, self.electricity_rate)


@dataclass(frozen=True)
class ChargeBreakdown:
    """Computed line items and totals of one invoice."""

    rent: Decimal
    water_units: Decimal
    water_rate: Decimal
    water: Decimal
    electricity_units: Decimal
    electricity_rate: Decimal
    electricity: Decimal
    addon_amount: Decimal
    sub_total: Decimal
    penalty_total: Decimal
    previous_balance: Decimal
    net_amount: Decimal

    @property
    def own_charges(self) -> Decimal:
        """This period's charges including penalty, excluding the carried balance."""
        return self.sub_total + self.penalty_total

    def with_penalty(self, penalty: Decimal) -> ChargeBreakdown:
        """Same breakdown with a new penalty and the net amount recomputed."""
        require_non_negative("penalty", penalty)
        return replace(
            self,
            penalty_total=penalty,
            net_amount=invoice_net_amount(self.sub_total, penalty, self.previous_balance),
        )

    def with_previous_balance(self, previous_balance: Decimal) -> ChargeBreakdown:
        """Same breakdown carrying ``previous_balance`` forward."""
        require_non_negative("previous_balance", previous_balance)
        return replace(
            self,
            previous_balance=previous_balance,
            net_amount=invoice_net_amount(self.sub_total, self.penalty_total, previous_balance),
        )


@traced_engine("invoice_calculation", "1.0", fingerprint_fields=("charge_input",))
def calculate_charges(charge_input: ChargeInput) -> ChargeBreakdown:
    """
    Compute an invoice's breakdown from its period inputs.

    ``water = water_units * water_rate``,
    ``electricity = electricity_units * electricity_rate``,
    ``sub_total = rent + water + electricity + addon_amount``,
    ``net_amount = sub_total + penalty + previous_balance``.
    """
    water = utility_charge("water", charge_input.water_units, charge_input.water_rate)
    electricity = utility_charge(
        "electricity", charge_input.electricity_units, charge_input.electricity_rate,
    )
    sub_total = charge_input.rent + water + electricity + charge_input.addon_amount
    net_amount = invoice_net_amount(
        sub_total, charge_input.penalty, charge_input.previous_balance,
    )

    logger.debug("invoice_charges_calculated", extra={
        "rent": str(charge_input.rent),
        "water": str(water),
        "electricity": str(electricity),
        "addon_amount": str(charge_input.addon_amount),
        "sub_total": str(sub_total),
        "penalty_total": str(charge_input.penalty),
        "previous_balance": str(charge_input.previous_balance),
        "net_amount": str(net_amount),
    })

    return ChargeBreakdown(
        rent=charge_input.rent,
        water_units=charge_input.water_units,
        water_rate=charge_input.water_rate,
        water=water,
        electricity_units=charge_input.electricity_units,
        electricity_rate=charge_input.electricity_rate,
        electricity=electricity,
        addon_amount=charge_input.addon_amount,
        sub_total=sub_total,
        penalty_total=charge_input.penalty,
        previous_balance=charge_input.previous_balance,
        net_amount=net_amount,
    )


def is_penalty_due(
    *,
    now: datetime,
    penalty_due_date: datetime | None,
    settled: bool,
    current_penalty: Decimal,
) -> bool:
    """
    Whether a late penalty should be applied now.

    True only for an unsettled invoice whose penalty due date has strictly
    passed and which carries no penalty yet. An invoice that already has a
    penalty is never penalized again, so repeated sweeps do not compound.
    """
    if settled or penalty_due_date is None:
        return False
    if current_penalty != ZERO:
        return False
    return penalty_due_date < now
