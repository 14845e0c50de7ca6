"""
Guest profile endpoints. Guests are shared across the chain; their
reservations are still filtered by the caller's branch.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy import select, or_
from typing import List, Optional
import logging

from database import get_db
from models import Guest, Reservation, Permission
from schemas import GuestCreate, GuestUpdate, GuestResponse, ReservationDetailResponse
from access_policy import AuthenticatedContext, resolve_scope
from auth import require_permission
from errors import NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/guests", tags=["guests"])


@router.get("", response_model=List[GuestResponse])
async def list_guests(
    search: Optional[str] = Query(None, description="Match on name, email or phone"),
    limit: int = Query(100, ge=1, le=500),
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_GUESTS)),
    db: AsyncSession = Depends(get_db)
):
    query = select(Guest)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.where(or_(
            Guest.first_name.ilike(pattern),
            Guest.last_name.ilike(pattern),
            Guest.email.ilike(pattern),
            Guest.phone.ilike(pattern),
        ))
    result = await db.execute(query.order_by(Guest.last_name, Guest.first_name).limit(limit))
    return result.scalars().all()


@router.get("/{guest_id}", response_model=GuestResponse)
async def get_guest(
    guest_id: int,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_GUESTS)),
    db: AsyncSession = Depends(get_db)
):
    guest = await db.get(Guest, guest_id)
    if not guest:
        raise NotFoundError("Guest not found")
    return guest


@router.get("/{guest_id}/reservations", response_model=List[ReservationDetailResponse])
async def get_guest_reservations(
    guest_id: int,
    branch_id: Optional[int] = Query(None, alias="branchId"),
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_GUESTS)),
    db: AsyncSession = Depends(get_db)
):
    """Stay history; super admins see every branch unless they pick one"""
    guest = await db.get(Guest, guest_id)
    if not guest:
        raise NotFoundError("Guest not found")

    query = (
        select(Reservation)
        .options(selectinload(Reservation.guest), selectinload(Reservation.room))
        .where(Reservation.guest_id == guest_id)
    )
    scope = resolve_scope(ctx, branch_id)
    if scope is not None:
        query = query.where(Reservation.branch_id == scope)
    elif not ctx.is_super_admin:
        return []

    result = await db.execute(query.order_by(Reservation.check_in_date.desc()))
    return result.scalars().all()


@router.post("", response_model=GuestResponse, status_code=status.HTTP_201_CREATED)
async def create_guest(
    guest_data: GuestCreate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_GUESTS)),
    db: AsyncSession = Depends(get_db)
):
    guest = Guest(**guest_data.model_dump(), total_stays=0)
    db.add(guest)
    await db.commit()
    await db.refresh(guest)
    logger.info(f"Guest {guest.id} registered by user {ctx.user_id}")
    return guest


@router.put("/{guest_id}", response_model=GuestResponse)
async def update_guest(
    guest_id: int,
    guest_data: GuestUpdate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_GUESTS)),
    db: AsyncSession = Depends(get_db)
):
    guest = await db.get(Guest, guest_id)
    if not guest:
        raise NotFoundError("Guest not found")

    for field, value in guest_data.model_dump(exclude_unset=True).items():
        setattr(guest, field, value)

    await db.commit()
    await db.refresh(guest)
    return guest
