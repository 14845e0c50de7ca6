"""
Reservation endpoints. Booking rules live in reservation_service; this module
only maps HTTP to it.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy import select
from typing import List, Optional
from datetime import date
import logging

from database import get_db
from models import Reservation, ReservationStatus, Permission
from schemas import ReservationCreate, ReservationUpdate, ReservationResponse, ReservationDetailResponse
from access_policy import AuthenticatedContext, resolve_scope
from auth import require_permission
from store import SqlAlchemyStore
from errors import NotFoundError
import reservation_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reservations", tags=["reservations"])


def _with_guest_and_room():
    return select(Reservation).options(selectinload(Reservation.guest), selectinload(Reservation.room))


@router.get("", response_model=List[ReservationDetailResponse])
async def list_reservations(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    reservation_status: Optional[ReservationStatus] = Query(None, alias="status"),
    from_date: Optional[date] = Query(None, alias="from", description="Stays ending after this date"),
    to_date: Optional[date] = Query(None, alias="to", description="Stays starting before this date"),
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_RESERVATIONS)),
    db: AsyncSession = Depends(get_db)
):
    scope = resolve_scope(ctx, branch_id)
    if scope is None:
        return []

    query = _with_guest_and_room().where(Reservation.branch_id == scope)
    if reservation_status:
        query = query.where(Reservation.status == reservation_status)
    if from_date:
        query = query.where(Reservation.check_out_date > from_date)
    if to_date:
        query = query.where(Reservation.check_in_date < to_date)

    result = await db.execute(query.order_by(Reservation.check_in_date.desc(), Reservation.id.desc()))
    return result.scalars().all()


@router.get("/{reservation_id}", response_model=ReservationDetailResponse)
async def get_reservation(
    reservation_id: int,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_RESERVATIONS)),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(_with_guest_and_room().where(Reservation.id == reservation_id))
    reservation = result.scalar_one_or_none()
    # Other branches' reservations are reported as missing
    if not reservation or (not ctx.is_super_admin and reservation.branch_id != ctx.branch_id):
        raise NotFoundError("Reservation not found")
    return reservation


@router.post("", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    reservation_data: ReservationCreate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_RESERVATIONS)),
    db: AsyncSession = Depends(get_db)
):
    """
    Book a room. 400 on invalid dates or occupancy, 403 outside the caller's
    branch, 404 for unknown room or guest, 409 when the room is already booked.
    """
    reservation = await reservation_service.create_reservation(
        SqlAlchemyStore(db),
        ctx,
        guest_id=reservation_data.guest_id,
        room_id=reservation_data.room_id,
        branch_id=reservation_data.branch_id,
        check_in=reservation_data.check_in_date,
        check_out=reservation_data.check_out_date,
        adults=reservation_data.adults,
        children=reservation_data.children,
        total_amount=reservation_data.total_amount,
        notes=reservation_data.notes,
    )
    await db.refresh(reservation)
    return reservation


@router.put("/{reservation_id}", response_model=ReservationResponse)
async def update_reservation(
    reservation_id: int,
    reservation_data: ReservationUpdate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_RESERVATIONS)),
    db: AsyncSession = Depends(get_db)
):
    reservation = await reservation_service.update_reservation(
        SqlAlchemyStore(db),
        ctx,
        reservation_id,
        reservation_data.model_dump(exclude_unset=True),
    )
    await db.refresh(reservation)
    return reservation
