"""
BaseService -- common constructor and flush contract for services.

Services receive a SQLAlchemy ``Session`` and an optional ``Clock``. They
persist with ``session.flush()`` inside the caller's transaction and never
commit or roll back themselves; the caller (``session_scope()``, a batch
executor or a test) owns the boundary.
"""

from abc import ABC

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from rental_kernel.domain.clock import Clock, SystemClock
from rental_kernel.exceptions import OptimisticLockError


class BaseService(ABC):
    """Abstract base for services that read and write through one session."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self._clock = clock or SystemClock()

    @property
    def clock(self) -> Clock:
        return self._clock

    def _flush(self, entity_type: str, entity_id: object) -> None:
        """
        Flush pending changes.

        A versioned row updated by someone else since it was loaded raises
        ``OptimisticLockError`` instead of silently losing their write.
        """
        try:
            self.session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError(entity_type, str(entity_id)) from exc
