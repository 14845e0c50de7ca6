"""
Dict-backed HotelStore.

Every call yields to the event loop once, standing in for database I/O, so
tests can interleave concurrent requests. create_reservation and the
room/date branch of update_reservation check and write without yielding in
between, which is the in-memory equivalent of the exclusion constraint.
"""
import asyncio
from datetime import date, datetime
from decimal import Decimal
from itertools import count
from typing import Dict, List, Optional

from errors import ConflictError
from models import (
    Branch, Room, RoomType, RoomStatus, Guest, Reservation, ReservationStatus
)


class InMemoryStore:
    def __init__(self):
        self.branches: Dict[int, Branch] = {}
        self.room_types: Dict[int, RoomType] = {}
        self.rooms: Dict[int, Room] = {}
        self.guests: Dict[int, Guest] = {}
        self.reservations: Dict[int, Reservation] = {}
        self._ids = {name: count(1) for name in ("branch", "room_type", "room", "guest", "reservation")}
        self.commits = 0

    @staticmethod
    async def _io():
        await asyncio.sleep(0)

    # Seeding helpers (synchronous, for test setup)

    def add_branch(self, name: str, address: str = "1 Main St") -> Branch:
        branch = Branch(id=next(self._ids["branch"]), name=name, address=address, active=True)
        self.branches[branch.id] = branch
        return branch

    def add_room_type(self, branch_id: int, name: str, base_rate, max_occupancy: int = 2) -> RoomType:
        room_type = RoomType(
            id=next(self._ids["room_type"]), branch_id=branch_id, name=name,
            base_rate=Decimal(str(base_rate)), max_occupancy=max_occupancy, amenities=[],
        )
        self.room_types[room_type.id] = room_type
        return room_type

    def add_room(self, branch_id: int, room_type_id: int, number: str, floor: int = 1,
                 status: RoomStatus = RoomStatus.AVAILABLE) -> Room:
        room = Room(
            id=next(self._ids["room"]), branch_id=branch_id, room_type_id=room_type_id,
            number=number, floor=floor, status=status,
        )
        self.rooms[room.id] = room
        return room

    def add_guest(self, first_name: str, last_name: str, email: str = "guest@example.com",
                  phone: str = "+100000000") -> Guest:
        guest = Guest(
            id=next(self._ids["guest"]), first_name=first_name, last_name=last_name,
            email=email, phone=phone, total_stays=0, created_at=datetime.utcnow(),
        )
        self.guests[guest.id] = guest
        return guest

    # HotelStore

    async def get_room(self, room_id: int) -> Optional[Room]:
        await self._io()
        return self.rooms.get(room_id)

    async def list_rooms_by_branch(self, branch_id: int, status: Optional[RoomStatus] = None) -> List[Room]:
        await self._io()
        return [
            room for room in self.rooms.values()
            if room.branch_id == branch_id and (status is None or room.status == status)
        ]

    async def get_room_type(self, room_type_id: int) -> Optional[RoomType]:
        await self._io()
        return self.room_types.get(room_type_id)

    async def get_guest(self, guest_id: int) -> Optional[Guest]:
        await self._io()
        return self.guests.get(guest_id)

    async def get_reservation(self, reservation_id: int) -> Optional[Reservation]:
        await self._io()
        return self.reservations.get(reservation_id)

    async def list_reservations_by_branch(self, branch_id: int, include_cancelled: bool = True) -> List[Reservation]:
        await self._io()
        return [
            r for r in self.reservations.values()
            if r.branch_id == branch_id and (include_cancelled or r.status != ReservationStatus.CANCELLED)
        ]

    def _overlapping(self, room_id: int, check_in: date, check_out: date, exclude_id: Optional[int]) -> List[Reservation]:
        return [
            r for r in self.reservations.values()
            if r.room_id == room_id
            and r.id != exclude_id
            and r.status != ReservationStatus.CANCELLED
            and r.check_in_date < check_out
            and r.check_out_date > check_in
        ]

    async def list_overlapping_reservations(
        self, room_id: int, check_in: date, check_out: date, exclude_id: Optional[int] = None
    ) -> List[Reservation]:
        await self._io()
        return self._overlapping(room_id, check_in, check_out, exclude_id)

    async def create_reservation(self, values: dict) -> Reservation:
        await self._io()
        if self._overlapping(values["room_id"], values["check_in_date"], values["check_out_date"], None):
            raise ConflictError(f"Room {values['room_id']} is already booked for the selected dates")
        reservation = Reservation(id=next(self._ids["reservation"]), created_at=datetime.utcnow(), **values)
        self.reservations[reservation.id] = reservation
        return reservation

    async def update_reservation(self, reservation: Reservation, changes: dict) -> Reservation:
        await self._io()
        if any(key in changes for key in ("room_id", "check_in_date", "check_out_date")):
            room_id = changes.get("room_id", reservation.room_id)
            if self._overlapping(
                room_id,
                changes.get("check_in_date", reservation.check_in_date),
                changes.get("check_out_date", reservation.check_out_date),
                reservation.id,
            ):
                raise ConflictError(f"Room {room_id} is already booked for the selected dates")
        for field, value in changes.items():
            setattr(reservation, field, value)
        return reservation

    async def update_room(self, room: Room, changes: dict) -> Room:
        await self._io()
        for field, value in changes.items():
            setattr(room, field, value)
        return room

    async def update_guest(self, guest: Guest, changes: dict) -> Guest:
        await self._io()
        for field, value in changes.items():
            setattr(guest, field, value)
        return guest

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        pass
