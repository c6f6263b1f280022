"""
Addon fee resolver.

Sums the recurring ``monthly_addon_fee`` of every asset currently linked to
a room (an extra bed, a fridge). The total becomes the addon line of each new
invoice for that room's contract. Pure read; unknown rooms and rooms without
assets resolve to zero rather than failing the invoice.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from rental_engines.amounts import ZERO, sum_addon_fees
from rental_kernel.logging_config import get_logger
from rental_modules.billing.orm import (
    AssetGroupModel,
    AssetModel,
    RoomModel,
    room_assets,
)

logger = get_logger("modules.billing.addons")


class AddonFeeResolver:
    """Reads addon fees for rooms."""

    def __init__(self, session: Session):
        self._session = session

    def resolve_for_room(self, room_id: UUID | None) -> Decimal:
        """Total monthly addon fee of the assets linked to ``room_id``."""
        if room_id is None:
            return ZERO

        stmt = (
            select(AssetGroupModel.monthly_addon_fee)
            .join(AssetModel, AssetModel.asset_group_id == AssetGroupModel.id)
            .join(room_assets, room_assets.c.asset_id == AssetModel.id)
            .where(room_assets.c.room_id == room_id)
            .where(AssetGroupModel.monthly_addon_fee > 0)
        )
        fees = self._session.scalars(stmt).all()
        total = sum_addon_fees(fees)

        logger.debug("addon_fees_resolved", extra={
            "room_id": str(room_id),
            "asset_count": len(fees),
            "addon_total": str(total),
        })
        return total

    def resolve_for_floor_room(self, floor: int | None, room_number: str | None) -> Decimal:
        """Addon total for the room at ``floor``/``room_number``; zero if no such room."""
        room_id = find_room_id(self._session, floor, room_number)
        if room_id is None:
            logger.debug("addon_room_not_found", extra={
                "floor": floor,
                "room_number": room_number,
            })
            return ZERO
        return self.resolve_for_room(room_id)


def find_room_id(
    session: Session,
    floor: int | None,
    room_number: str | None,
) -> UUID | None:
    """Look up a room by number, narrowed by floor when given."""
    if not room_number:
        return None
    stmt = select(RoomModel.id).where(RoomModel.room_number == str(room_number))
    if floor is not None:
        stmt = stmt.where(RoomModel.floor == floor)
    return session.scalars(stmt.order_by(RoomModel.floor).limit(1)).first()
