"""
Billing Configuration Schema.

Defines the structure and defaults for billing settings. Values can be
overridden per property from a dict or a YAML file.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Self

import yaml

from rental_kernel.logging_config import get_logger

logger = get_logger("modules.billing.config")

_DECIMAL_FIELDS = (
    "penalty_rate",
    "default_water_rate",
    "default_electricity_rate",
    "import_water_rate",
    "import_electricity_rate",
)


@dataclass(frozen=True)
class BillingConfig:
    """
    Configuration schema for the billing module.

    Override at instantiation with property-specific values:

        config = BillingConfig(
            penalty_rate=Decimal("0.05"),
            payment_terms_days=15,
        )
    """

    # Late penalty, as a fraction of rent
    penalty_rate: Decimal = Decimal("0.10")

    # Due date of a new invoice when none is supplied
    payment_terms_days: int = 30

    # Utility rates used when an invoice request omits them
    default_water_rate: Decimal = Decimal("30")
    default_electricity_rate: Decimal = Decimal("8")

    # Utility usage CSV import
    import_water_rate: Decimal = Decimal("20")
    import_electricity_rate: Decimal = Decimal("8")
    import_due_day: int = 15

    # Payment policy
    allow_overpayment: bool = True
    count_pending_as_received: bool = True

    # Recorded as the actor on system-generated rows
    system_actor: str = "SYSTEM"

    def __post_init__(self):
        for name in _DECIMAL_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, Decimal):
                try:
                    object.__setattr__(self, name, Decimal(str(value)))
                except InvalidOperation:
                    raise ValueError(f"{name} must be a number, got {value!r}") from None
            if not getattr(self, name).is_finite():
                raise ValueError(f"{name} must be a finite number")

        if self.penalty_rate < 0 or self.penalty_rate > 1:
            raise ValueError(
                f"penalty_rate must be between 0 and 1, got {self.penalty_rate}"
            )
        if self.payment_terms_days < 0:
            raise ValueError("payment_terms_days cannot be negative")
        for name in _DECIMAL_FIELDS[1:]:
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")
        if not 1 <= self.import_due_day <= 28:
            raise ValueError(
                f"import_due_day must be between 1 and 28, got {self.import_due_day}"
            )
        if not self.system_actor or not self.system_actor.strip():
            raise ValueError("system_actor cannot be empty")

        logger.debug(
            "billing_config_initialized",
            extra={
                "penalty_rate": str(self.penalty_rate),
                "payment_terms_days": self.payment_terms_days,
                "allow_overpayment": self.allow_overpayment,
                "count_pending_as_received": self.count_pending_as_received,
            },
        )

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the standard defaults."""
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """Create config from a dictionary. Unknown keys are rejected."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"Unknown billing config keys: {unknown}")
        logger.info(
            "billing_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: Path | str) -> Self:
        """
        Load config from a YAML file.

        The file may hold the settings at top level or under a ``billing:`` key.

        Raises:
            FileNotFoundError: if the file does not exist.
            yaml.YAMLError: if the file contains invalid YAML.
        """
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if "billing" in data:
            data = data["billing"] or {}
        return cls.from_dict(data)
