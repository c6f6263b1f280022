"""
Pure domain layer.

Objects here have no dependency on the ORM, the database or I/O.
"""

from rental_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SystemClock,
    require_aware,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "require_aware",
]
