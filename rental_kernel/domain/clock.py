"""
Clock abstraction for billing time.

Every "now" the engine needs (overdue checks, penalty stamps, payment dates,
batch run times) comes from an injected ``Clock``. Services and engines never
call ``datetime.now()`` themselves, so tests can pin time and walk it forward
across due dates.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

from rental_kernel.exceptions import InvalidDateError


class Clock(ABC):
    """
    Source of the current time.

    Implementations return timezone-aware datetimes.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def now_utc(self) -> datetime:
        """Get the current time normalized to UTC."""
        return self.now().astimezone(timezone.utc)


class SystemClock(Clock):
    """Production clock backed by the system time (UTC)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Controlled clock for tests and back-dated billing runs.

    ``now()`` keeps returning the same instant until ``set_time()`` or
    ``advance()`` moves it.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(
            2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc
        )
        self._offset = timedelta()

    def now(self) -> datetime:
        return self._fixed_time + self._offset

    def set_time(self, time: datetime) -> None:
        """Jump to a specific instant."""
        self._fixed_time = time
        self._offset = timedelta()

    def advance(self, seconds: int = 0, *, days: int = 0) -> None:
        """Move the clock forward by seconds and/or whole days."""
        self._offset += timedelta(days=days, seconds=seconds)

    def tick(self) -> datetime:
        """Advance by 1 second and return the new time."""
        self.advance(1)
        return self.now()


def require_aware(field: str, value: datetime | None) -> datetime | None:
    """Return ``value`` unchanged, rejecting naive datetimes with ``InvalidDateError``."""
    if value is not None and (value.tzinfo is None or value.utcoffset() is None):
        raise InvalidDateError(field, value)
    return value
