"""
Dashboard and report aggregates.

"Today" and report periods are computed in the hotel's timezone
(HOTEL_TIMEZONE) and compared against UTC timestamps in the database.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy import select, func
from typing import Optional
from datetime import date, timedelta
from decimal import Decimal
import logging

from database import get_db
from models import Room, Reservation, ReservationStatus, RoomStatus, Guest, Permission
from schemas import DashboardStats, ReportSummary, RoomTypePerformance
from access_policy import AuthenticatedContext, resolve_scope
from auth import require_permission
from reservation_service import calculate_nights
from billing import to_money
from timezone_utils import get_hotel_today, get_hotel_date_range

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard", tags=["dashboard"])
reports_router = APIRouter(prefix="/reports", tags=["reports"])

ZERO = Decimal("0.00")


def nights_in_period(check_in: date, check_out: date, first_day: date, last_day: date) -> int:
    """Nights of the stay [check_in, check_out) falling on first_day..last_day inclusive"""
    start = max(check_in, first_day)
    end = min(check_out, last_day + timedelta(days=1))
    return max(calculate_nights(start, end), 0)


@router.get("/stats", response_model=DashboardStats)
async def get_dashboard_stats(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    ctx: AuthenticatedContext = Depends(require_permission(Permission.VIEW_DASHBOARD)),
    db: AsyncSession = Depends(get_db)
):
    """
    Room counts, today's check-ins and today's booking revenue.

    Revenue is the total of non-cancelled reservations created today.
    """
    scope = resolve_scope(ctx, branch_id)
    if scope is None:
        return DashboardStats(total_rooms=0, occupied=0, checkins=0, revenue=ZERO)

    total_rooms = await db.scalar(select(func.count(Room.id)).where(Room.branch_id == scope))
    occupied = await db.scalar(
        select(func.count(Room.id)).where(Room.branch_id == scope, Room.status == RoomStatus.OCCUPIED)
    )
    checkins = await db.scalar(
        select(func.count(Reservation.id)).where(
            Reservation.branch_id == scope,
            Reservation.check_in_date == get_hotel_today(),
            Reservation.status != ReservationStatus.CANCELLED,
        )
    )

    start, end = get_hotel_date_range(1)
    revenue = await db.scalar(
        select(func.coalesce(func.sum(Reservation.total_amount), 0)).where(
            Reservation.branch_id == scope,
            Reservation.created_at >= start,
            Reservation.created_at <= end,
            Reservation.status != ReservationStatus.CANCELLED,
        )
    )

    return DashboardStats(
        total_rooms=total_rooms or 0,
        occupied=occupied or 0,
        checkins=checkins or 0,
        revenue=to_money(revenue or 0),
    )


@reports_router.get("/summary", response_model=ReportSummary)
async def get_report_summary(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    days: int = Query(30, ge=1, le=366),
    ctx: AuthenticatedContext = Depends(require_permission(Permission.VIEW_REPORTS)),
    db: AsyncSession = Depends(get_db)
):
    """Revenue counts bookings made in the period; occupancy counts nights stayed in it"""
    scope = resolve_scope(ctx, branch_id)
    if scope is None:
        return ReportSummary(
            period_days=days, occupancy_rate=0.0, total_revenue=ZERO, average_daily_revenue=ZERO,
            revenue_per_room=ZERO, new_guests=0, repeat_guests=0, room_types=[],
        )

    start, end = get_hotel_date_range(days)

    rooms_result = await db.execute(
        select(Room).options(selectinload(Room.room_type)).where(Room.branch_id == scope)
    )
    rooms = rooms_result.scalars().all()

    reservations_result = await db.execute(
        select(Reservation).where(
            Reservation.branch_id == scope,
            Reservation.created_at >= start,
            Reservation.created_at <= end,
            Reservation.status != ReservationStatus.CANCELLED,
        )
    )
    reservations = reservations_result.scalars().all()

    last_day = get_hotel_today()
    first_day = last_day - timedelta(days=days - 1)
    stays_result = await db.execute(
        select(Reservation).where(
            Reservation.branch_id == scope,
            Reservation.check_in_date <= last_day,
            Reservation.check_out_date > first_day,
            Reservation.status != ReservationStatus.CANCELLED,
        )
    )
    occupied_nights = sum(
        nights_in_period(r.check_in_date, r.check_out_date, first_day, last_day)
        for r in stays_result.scalars().all()
    )
    room_nights = len(rooms) * days
    occupancy_rate = round(occupied_nights / room_nights * 100, 1) if room_nights else 0.0

    total_revenue = to_money(sum((Decimal(str(r.total_amount)) for r in reservations), ZERO))

    # Per room type, keyed by name like the front desk sees them
    performance = {}
    revenue_by_room = {}
    bookings_by_room = {}
    for r in reservations:
        revenue_by_room[r.room_id] = revenue_by_room.get(r.room_id, ZERO) + Decimal(str(r.total_amount))
        bookings_by_room[r.room_id] = bookings_by_room.get(r.room_id, 0) + 1
    for room in rooms:
        name = room.room_type.name if room.room_type else "Unknown"
        entry = performance.setdefault(name, {"total_rooms": 0, "reservations": 0, "revenue": ZERO})
        entry["total_rooms"] += 1
        entry["reservations"] += bookings_by_room.get(room.id, 0)
        entry["revenue"] += revenue_by_room.get(room.id, ZERO)

    new_guests = await db.scalar(
        select(func.count(Guest.id)).where(Guest.created_at >= start, Guest.created_at <= end)
    )
    repeat_guests = await db.scalar(select(func.count(Guest.id)).where(Guest.total_stays > 1))

    return ReportSummary(
        period_days=days,
        occupancy_rate=occupancy_rate,
        total_revenue=total_revenue,
        average_daily_revenue=to_money(total_revenue / days),
        revenue_per_room=to_money(total_revenue / len(rooms)) if rooms else ZERO,
        new_guests=new_guests or 0,
        repeat_guests=repeat_guests or 0,
        room_types=[
            RoomTypePerformance(name=name, total_rooms=v["total_rooms"], reservations=v["reservations"],
                                revenue=to_money(v["revenue"]))
            for name, v in sorted(performance.items())
        ],
    )
