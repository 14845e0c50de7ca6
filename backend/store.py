"""
Entity store used by the availability engine and reservation lifecycle.

HotelStore is the narrow interface the booking core depends on;
SqlAlchemyStore implements it over an AsyncSession, memory_store.InMemoryStore
implements it over plain dicts for tests.
"""
from datetime import date
from typing import List, Optional, Protocol
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import ConflictError
from models import Room, RoomType, RoomStatus, Guest, Reservation, ReservationStatus

logger = logging.getLogger(__name__)

# Name of the PostgreSQL exclusion constraint created in migrations.schema_migrations
OVERLAP_CONSTRAINT = "excl_reservations_room_overlap"

_ROOM_OR_DATES = ("room_id", "check_in_date", "check_out_date")


class HotelStore(Protocol):
    async def get_room(self, room_id: int) -> Optional[Room]:
        ...

    async def list_rooms_by_branch(self, branch_id: int, status: Optional[RoomStatus] = None) -> List[Room]:
        ...

    async def get_room_type(self, room_type_id: int) -> Optional[RoomType]:
        ...

    async def get_guest(self, guest_id: int) -> Optional[Guest]:
        ...

    async def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        ...

    async def list_reservations_by_branch(self, branch_id: int, include_cancelled: bool = True) -> List[Reservation]:
        ...

    async def list_overlapping_reservations(
        self, room_id: int, check_in: date, check_out: date, exclude_id: Optional[int] = None
    ) -> List[Reservation]:
        ...

    async def create_reservation(self, values: dict) -> Reservation:
        """Insert a reservation; raises ConflictError if the room is already booked for the interval"""
        ...

    async def update_reservation(self, reservation: Reservation, changes: dict) -> Reservation:
        ...

    async def update_room(self, room: Room, changes: dict) -> Room:
        ...

    async def update_guest(self, guest: Guest, changes: dict) -> Guest:
        ...

    async def commit(self) -> None:
        ...

    async def rollback(self) -> None:
        ...


def _overlap_conflict(room_id: int) -> ConflictError:
    return ConflictError(f"Room {room_id} is already booked for the selected dates")


class SqlAlchemyStore:
    """Relational store; one instance per request session"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_room(self, room_id: int) -> Optional[Room]:
        return await self.db.get(Room, room_id)

    async def list_rooms_by_branch(self, branch_id: int, status: Optional[RoomStatus] = None) -> List[Room]:
        query = select(Room).where(Room.branch_id == branch_id)
        if status is not None:
            query = query.where(Room.status == status)
        result = await self.db.execute(query.order_by(Room.number))
        return list(result.scalars().all())

    async def get_room_type(self, room_type_id: int) -> Optional[RoomType]:
        return await self.db.get(RoomType, room_type_id)

    async def get_guest(self, guest_id: int) -> Optional[Guest]:
        return await self.db.get(Guest, guest_id)

    async def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        return await self.db.get(Reservation, reservation_id)

    async def list_reservations_by_branch(self, branch_id: int, include_cancelled: bool = True) -> List[Reservation]:
        query = select(Reservation).where(Reservation.branch_id == branch_id)
        if not include_cancelled:
            query = query.where(Reservation.status != ReservationStatus.CANCELLED)
        result = await self.db.execute(query.order_by(Reservation.check_in_date))
        return list(result.scalars().all())

    async def list_overlapping_reservations(
        self, room_id: int, check_in: date, check_out: date, exclude_id: Optional[int] = None
    ) -> List[Reservation]:
        query = select(Reservation).where(
            Reservation.room_id == room_id,
            Reservation.status != ReservationStatus.CANCELLED,
            Reservation.check_in_date < check_out,
            Reservation.check_out_date > check_in,
        )
        if exclude_id is not None:
            query = query.where(Reservation.id != exclude_id)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _lock_room(self, room_id: int) -> None:
        # Serialises writers for the same room on PostgreSQL; SQLite ignores FOR UPDATE
        await self.db.execute(select(Room.id).where(Room.id == room_id).with_for_update())

    async def _guard_overlap(self, room_id: int, check_in: date, check_out: date, exclude_id: Optional[int] = None):
        await self._lock_room(room_id)
        if await self.list_overlapping_reservations(room_id, check_in, check_out, exclude_id):
            raise _overlap_conflict(room_id)

    async def _flush(self, room_id: int) -> None:
        try:
            await self.db.flush()
        except IntegrityError as e:
            await self.db.rollback()
            if OVERLAP_CONSTRAINT in str(e.orig):
                logger.warning(f"Exclusion constraint rejected double booking of room {room_id}")
                raise _overlap_conflict(room_id)
            raise

    async def create_reservation(self, values: dict) -> Reservation:
        await self._guard_overlap(values["room_id"], values["check_in_date"], values["check_out_date"])
        reservation = Reservation(**values)
        self.db.add(reservation)
        await self._flush(reservation.room_id)
        return reservation

    async def update_reservation(self, reservation: Reservation, changes: dict) -> Reservation:
        if any(key in changes for key in _ROOM_OR_DATES):
            room_id = changes.get("room_id", reservation.room_id)
            await self._guard_overlap(
                room_id,
                changes.get("check_in_date", reservation.check_in_date),
                changes.get("check_out_date", reservation.check_out_date),
                exclude_id=reservation.id,
            )
        for field, value in changes.items():
            setattr(reservation, field, value)
        await self._flush(reservation.room_id)
        return reservation

    async def update_room(self, room: Room, changes: dict) -> Room:
        for field, value in changes.items():
            setattr(room, field, value)
        await self.db.flush()
        return room

    async def update_guest(self, guest: Guest, changes: dict) -> Guest:
        for field, value in changes.items():
            setattr(guest, field, value)
        await self.db.flush()
        return guest

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()
