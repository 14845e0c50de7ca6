"""
Reservation lifecycle.

    confirmed -> checked_in -> checked_out
    confirmed | checked_in -> cancelled

checked_out and cancelled are terminal. Check-in stamps actual_check_in and
marks the room occupied; check-out stamps actual_check_out, sends the room to
cleaning and counts a completed stay on the guest.
"""
import logging
import math
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from access_policy import AuthenticatedContext, ensure_write_scope
from availability import DateLike, find_conflicting_reservations, validate_stay, to_stay_date
from errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from models import Reservation, ReservationStatus, RoomStatus
from store import HotelStore

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    ReservationStatus.CONFIRMED: frozenset({ReservationStatus.CHECKED_IN, ReservationStatus.CANCELLED}),
    ReservationStatus.CHECKED_IN: frozenset({ReservationStatus.CHECKED_OUT, ReservationStatus.CANCELLED}),
    ReservationStatus.CHECKED_OUT: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)

EDITABLE_FIELDS = frozenset({
    "room_id", "check_in_date", "check_out_date", "adults", "children",
    "total_amount", "paid_amount", "notes", "status",
})

CENTS = Decimal("0.01")


def can_transition(current: ReservationStatus, new: ReservationStatus) -> bool:
    return new in ALLOWED_TRANSITIONS[ReservationStatus(current)]


def calculate_nights(check_in: DateLike, check_out: DateLike) -> int:
    """nights = ceil((check_out - check_in) / 1 day)"""
    if isinstance(check_in, datetime) and isinstance(check_out, datetime):
        delta = check_out - check_in
    else:
        delta = to_stay_date(check_out) - to_stay_date(check_in)
    return math.ceil(delta.total_seconds() / 86400)


def calculate_total(base_rate, check_in: DateLike, check_out: DateLike) -> Decimal:
    return (Decimal(str(base_rate)) * calculate_nights(check_in, check_out)).quantize(CENTS)


def _to_amount(value, field: str) -> Decimal:
    try:
        amount = Decimal(str(value)).quantize(CENTS)
    except (InvalidOperation, ValueError):
        raise ValidationError.for_field(field, f"Invalid amount for {field}")
    if amount < 0:
        raise ValidationError.for_field(field, f"{field} cannot be negative")
    return amount


def _parse_status(value) -> ReservationStatus:
    try:
        return ReservationStatus(value)
    except ValueError:
        raise ValidationError.for_field("status", f"Unknown reservation status: {value!r}")


def _changed_stay_fields(reservation: Reservation, updates: Dict[str, Any]) -> set:
    """Room and date fields in updates that differ from the stored stay"""
    changed = set()
    if "room_id" in updates and updates["room_id"] != reservation.room_id:
        changed.add("room_id")
    for field in ("check_in_date", "check_out_date"):
        if field in updates and to_stay_date(updates[field], field) != to_stay_date(getattr(reservation, field)):
            changed.add(field)
    return changed


async def _load_reservation(store: HotelStore, ctx: AuthenticatedContext, reservation_id: int) -> Reservation:
    reservation = await store.get_reservation(reservation_id)
    if reservation is None:
        raise NotFoundError("Reservation not found")
    ensure_write_scope(ctx, reservation.branch_id)
    return reservation


async def create_reservation(
    store: HotelStore,
    ctx: AuthenticatedContext,
    *,
    guest_id: int,
    room_id: int,
    branch_id: Optional[int],
    check_in: DateLike,
    check_out: DateLike,
    adults: int = 1,
    children: int = 0,
    total_amount=None,
    notes: Optional[str] = None,
) -> Reservation:
    """
    Book a room for [check_in, check_out).

    Availability is re-validated here even if the client already filtered the
    room list, and the store re-checks again atomically with the insert.
    """
    start, end = validate_stay(check_in, check_out)
    if adults is None or adults < 1:
        raise ValidationError.for_field("adults", "At least one adult is required")
    if children is None or children < 0:
        raise ValidationError.for_field("children", "Children cannot be negative")

    branch_id = ensure_write_scope(ctx, branch_id)

    room = await store.get_room(room_id)
    if room is None:
        raise NotFoundError("Room not found")
    if room.branch_id != branch_id:
        raise ValidationError.for_field("roomId", "Room does not belong to this branch")

    guest = await store.get_guest(guest_id)
    if guest is None:
        raise NotFoundError("Guest not found")

    room_type = await store.get_room_type(room.room_type_id)
    if room_type is None:
        raise NotFoundError("Room type not found")
    if room_type.max_occupancy and adults + children > room_type.max_occupancy:
        raise ValidationError.for_field(
            "adults", f"Room holds at most {room_type.max_occupancy} guests"
        )

    if room.status != RoomStatus.AVAILABLE:
        raise ValidationError.for_field("roomId", f"Room {room.number} is not available ({room.status.value})")

    if await find_conflicting_reservations(store, branch_id, start, end, room_id=room.id):
        logger.warning(f"Rejected double booking of room {room.id} for {start} -> {end}")
        raise ConflictError(f"Room {room.number} is already booked for the selected dates")

    if total_amount is None:
        total = calculate_total(room_type.base_rate, start, end)
    else:
        total = _to_amount(total_amount, "totalAmount")

    reservation = await store.create_reservation({
        "guest_id": guest.id,
        "room_id": room.id,
        "branch_id": branch_id,
        "check_in_date": start,
        "check_out_date": end,
        "adults": adults,
        "children": children,
        "status": ReservationStatus.CONFIRMED,
        "total_amount": total,
        "paid_amount": Decimal("0.00"),
        "notes": notes,
        "created_by": ctx.user_id,
    })
    await store.commit()

    logger.info(
        f"Reservation {reservation.id} created: room {room.number}, branch {branch_id}, {start} -> {end}, total {total}"
    )
    return reservation


async def _apply_transition(
    store: HotelStore,
    reservation: Reservation,
    new_status: ReservationStatus,
    changes: Dict[str, Any],
    now: datetime,
) -> None:
    current = ReservationStatus(reservation.status)
    if not can_transition(current, new_status):
        raise InvalidTransitionError(current.value, new_status.value)

    changes["status"] = new_status
    room = await store.get_room(changes.get("room_id", reservation.room_id))

    if new_status == ReservationStatus.CHECKED_IN:
        changes["actual_check_in"] = now
        if room is not None:
            await store.update_room(room, {"status": RoomStatus.OCCUPIED})
    elif new_status == ReservationStatus.CHECKED_OUT:
        changes["actual_check_out"] = now
        if room is not None:
            await store.update_room(room, {"status": RoomStatus.CLEANING})
        guest = await store.get_guest(reservation.guest_id)
        if guest is not None:
            await store.update_guest(guest, {"total_stays": (guest.total_stays or 0) + 1})
    elif new_status == ReservationStatus.CANCELLED and current == ReservationStatus.CHECKED_IN:
        if room is not None:
            await store.update_room(room, {"status": RoomStatus.CLEANING})


async def update_reservation(
    store: HotelStore,
    ctx: AuthenticatedContext,
    reservation_id: int,
    updates: Dict[str, Any],
    now: Optional[datetime] = None,
) -> Reservation:
    """Partial update; status changes go through the state machine"""
    unknown = set(updates) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    reservation = await _load_reservation(store, ctx, reservation_id)
    current = ReservationStatus(reservation.status)
    changes: Dict[str, Any] = {}
    vacated_room = None

    if _changed_stay_fields(reservation, updates):
        if current in TERMINAL_STATUSES:
            raise ConflictError(f"Cannot change dates or room of a {current.value} reservation")
        start, end = validate_stay(
            updates.get("check_in_date", reservation.check_in_date),
            updates.get("check_out_date", reservation.check_out_date),
        )
        changes["check_in_date"], changes["check_out_date"] = start, end

        room_id = updates.get("room_id", reservation.room_id)
        if room_id != reservation.room_id:
            room = await store.get_room(room_id)
            if room is None:
                raise NotFoundError("Room not found")
            if room.branch_id != reservation.branch_id:
                raise ValidationError.for_field("roomId", "Room does not belong to this branch")
            if room.status != RoomStatus.AVAILABLE:
                raise ValidationError.for_field("roomId", f"Room {room.number} is not available")
            changes["room_id"] = room_id
            if current == ReservationStatus.CHECKED_IN:
                vacated_room = await store.get_room(reservation.room_id)

        if await find_conflicting_reservations(
            store, reservation.branch_id, start, end, room_id=room_id, exclude_id=reservation.id
        ):
            raise ConflictError("Room is already booked for the selected dates")

    if "adults" in updates:
        if updates["adults"] is None or updates["adults"] < 1:
            raise ValidationError.for_field("adults", "At least one adult is required")
        changes["adults"] = updates["adults"]
    if "children" in updates:
        if updates["children"] is None or updates["children"] < 0:
            raise ValidationError.for_field("children", "Children cannot be negative")
        changes["children"] = updates["children"]
    if "notes" in updates:
        changes["notes"] = updates["notes"]

    total = reservation.total_amount
    if updates.get("total_amount") is not None:
        total = changes["total_amount"] = _to_amount(updates["total_amount"], "totalAmount")
    if updates.get("paid_amount") is not None:
        changes["paid_amount"] = _to_amount(updates["paid_amount"], "paidAmount")
    if Decimal(str(changes.get("paid_amount", reservation.paid_amount or 0))) > Decimal(str(total)):
        raise ValidationError.for_field("paidAmount", "Paid amount cannot exceed the total amount")

    if updates.get("status") is not None:
        new_status = _parse_status(updates["status"])
        if new_status != current:
            await _apply_transition(store, reservation, new_status, changes, now or datetime.utcnow())

    reservation = await store.update_reservation(reservation, changes)

    # An in-house guest moved rooms: the old room needs turning over
    if vacated_room is not None:
        await store.update_room(vacated_room, {"status": RoomStatus.CLEANING})
        if changes.get("status", current) == ReservationStatus.CHECKED_IN:
            new_room = await store.get_room(reservation.room_id)
            await store.update_room(new_room, {"status": RoomStatus.OCCUPIED})
        logger.info(f"Reservation {reservation.id} moved from room {vacated_room.number} while checked in")

    await store.commit()

    if "status" in changes:
        logger.info(f"Reservation {reservation.id}: {current.value} -> {changes['status'].value}")
    return reservation


async def update_status(
    store: HotelStore,
    ctx: AuthenticatedContext,
    reservation_id: int,
    new_status,
    now: Optional[datetime] = None,
) -> Reservation:
    """Move a reservation through the lifecycle; same-state requests are rejected"""
    status = _parse_status(new_status)
    reservation = await _load_reservation(store, ctx, reservation_id)
    current = ReservationStatus(reservation.status)
    if not can_transition(current, status):
        raise InvalidTransitionError(current.value, status.value)
    return await update_reservation(store, ctx, reservation_id, {"status": status}, now=now)
