"""
Room availability engine.

A room is available for a stay [check_in, check_out) when its status is
`available` and no non-cancelled reservation on it overlaps the stay.
Intervals are half-open at day granularity, so a checkout and a check-in on
the same day (turnover) do not conflict.
"""
from datetime import date, datetime
from typing import List, Optional, Union

from errors import ValidationError
from models import Room, RoomStatus, Reservation, ReservationStatus
from store import HotelStore

DateLike = Union[date, datetime, str]


def to_stay_date(value: DateLike, field: str = "date") -> date:
    """
    Normalise a date, datetime or ISO string to a calendar date.

    Time of day is dropped, so 2024-02-01T15:00 and 2024-02-01 are the same
    stay day.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            pass
    raise ValidationError.for_field(field, f"Invalid {field}: {value!r}")


def validate_stay(check_in: DateLike, check_out: DateLike) -> tuple[date, date]:
    start = to_stay_date(check_in, "checkInDate")
    end = to_stay_date(check_out, "checkOutDate")
    if end <= start:
        raise ValidationError.for_field("checkOutDate", "Check-out date must be after check-in date")
    return start, end


def overlaps(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Strict overlap of half-open intervals [start_a, end_a) and [start_b, end_b)"""
    return start_a < end_b and end_a > start_b


def conflicts_with(reservation: Reservation, check_in: date, check_out: date) -> bool:
    if reservation.status == ReservationStatus.CANCELLED:
        return False
    return overlaps(
        check_in, check_out,
        to_stay_date(reservation.check_in_date), to_stay_date(reservation.check_out_date),
    )


async def find_conflicting_reservations(
    store: HotelStore,
    branch_id: int,
    check_in: date,
    check_out: date,
    room_id: Optional[int] = None,
    exclude_id: Optional[int] = None,
) -> List[Reservation]:
    reservations = await store.list_reservations_by_branch(branch_id, include_cancelled=False)
    return [
        r for r in reservations
        if conflicts_with(r, check_in, check_out)
        and (room_id is None or r.room_id == room_id)
        and r.id != exclude_id
    ]


async def get_available_rooms(
    store: HotelStore,
    branch_id: int,
    check_in: DateLike,
    check_out: DateLike,
) -> List[Room]:
    """Rooms of the branch with status `available` and no overlapping booking"""
    start, end = validate_stay(check_in, check_out)

    rooms = await store.list_rooms_by_branch(branch_id, status=RoomStatus.AVAILABLE)
    conflicts = await find_conflicting_reservations(store, branch_id, start, end)
    booked_room_ids = {r.room_id for r in conflicts}

    return [room for room in rooms if room.id not in booked_room_ids]


async def is_room_available(
    store: HotelStore,
    room: Room,
    check_in: date,
    check_out: date,
    exclude_id: Optional[int] = None,
) -> bool:
    if room.status != RoomStatus.AVAILABLE:
        return False
    conflicts = await find_conflicting_reservations(
        store, room.branch_id, check_in, check_out, room_id=room.id, exclude_id=exclude_id
    )
    return not conflicts
