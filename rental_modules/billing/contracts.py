"""
Contract resolution for invoice creation.

Billing runs prefer producing an invoice over rejecting the request, so a
contract is resolved leniently:

1. An explicit contract id must exist (``ContractNotFoundError`` otherwise).
2. Without an id, the active contract of the floor/room is used.
3. Failing that, the first contract on file is used as a best-effort
   guess. The result is tagged ``Fallback`` and a warning is logged so the
   guess is visible in audit logs.
4. With no contracts at all, ``NoContractsAvailableError`` is raised.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_kernel.exceptions import ContractNotFoundError, NoContractsAvailableError
from rental_kernel.logging_config import get_logger
from rental_modules.billing.addons import find_room_id
from rental_modules.billing.models import ContractResolution, ContractStatus, Fallback, Resolved
from rental_modules.billing.orm import ContractModel

logger = get_logger("modules.billing.contracts")


class ContractResolver:
    def __init__(self, session: Session):
        self._session = session

    def get(self, contract_id: UUID) -> ContractModel:
        """Load a contract by id or raise ``ContractNotFoundError``."""
        contract = self._session.get(ContractModel, contract_id)
        if contract is None:
            raise ContractNotFoundError(str(contract_id))
        return contract

    def active_for_room(self, room_id: UUID) -> ContractModel | None:
        """Most recently started active contract of a room."""
        stmt = (
            select(ContractModel)
            .where(ContractModel.room_id == room_id)
            .where(ContractModel.status == ContractStatus.ACTIVE.value)
            .order_by(ContractModel.start_date.desc(), ContractModel.id)
            .limit(1)
        )
        return self._session.scalars(stmt).first()

    def resolve(
        self,
        contract_id: UUID | None = None,
        floor: int | None = None,
        room: str | None = None,
    ) -> ContractResolution:
        if contract_id is not None:
            return Resolved(self.get(contract_id).to_dto())

        room_id = find_room_id(self._session, floor, room)
        if room_id is not None:
            contract = self.active_for_room(room_id)
            if contract is not None:
                return Resolved(contract.to_dto())
            reason = f"no active contract for room {room}"
        elif room:
            reason = f"room {room} (floor {floor}) not found"
        else:
            reason = "no contract id or room supplied"

        fallback = self._session.scalars(
            select(ContractModel)
            .order_by(ContractModel.start_date, ContractModel.id)
            .limit(1)
        ).first()
        if fallback is None:
            raise NoContractsAvailableError()

        logger.warning("contract_fallback_used", extra={
            "reason": reason,
            "requested_floor": floor,
            "requested_room": room,
            "fallback_contract_id": str(fallback.id),
        })
        return Fallback(fallback.to_dto(), reason)
