"""
Room type and room endpoints, including the date-range availability search.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select
from typing import List, Optional
import logging

from database import get_db
from models import Room, RoomType, RoomStatus, Permission
from schemas import (
    RoomTypeCreate, RoomTypeResponse, RoomCreate, RoomUpdate, RoomResponse, RoomWithTypeResponse
)
from access_policy import AuthenticatedContext, resolve_scope, ensure_write_scope, has_permission
from auth import require_permission
from availability import get_available_rooms
from store import SqlAlchemyStore
from errors import NotFoundError, PermissionDeniedError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/rooms", tags=["rooms"])
room_types_router = APIRouter(prefix="/room-types", tags=["rooms"])


# ==================== ROOM TYPES ====================

@room_types_router.get("", response_model=List[RoomTypeResponse])
async def list_room_types(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    ctx: AuthenticatedContext = Depends(require_permission(Permission.VIEW_ROOMS)),
    db: AsyncSession = Depends(get_db)
):
    scope = resolve_scope(ctx, branch_id)
    if scope is None:
        return []
    result = await db.execute(select(RoomType).where(RoomType.branch_id == scope).order_by(RoomType.base_rate))
    return result.scalars().all()


@room_types_router.post("", response_model=RoomTypeResponse, status_code=status.HTTP_201_CREATED)
async def create_room_type(
    room_type_data: RoomTypeCreate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_ROOMS)),
    db: AsyncSession = Depends(get_db)
):
    branch_id = ensure_write_scope(ctx, room_type_data.branch_id)
    room_type = RoomType(**room_type_data.model_dump(exclude={"branch_id"}), branch_id=branch_id)
    db.add(room_type)
    await db.commit()
    await db.refresh(room_type)
    return room_type


# ==================== ROOMS ====================

async def _get_room_type_in_branch(db: AsyncSession, room_type_id: int, branch_id: int) -> RoomType:
    room_type = await db.get(RoomType, room_type_id)
    if not room_type:
        raise NotFoundError("Room type not found")
    if room_type.branch_id != branch_id:
        raise ValidationError.for_field("roomTypeId", "Room type does not belong to this branch")
    return room_type


async def _commit_room(db: AsyncSession, room: Room):
    """Commit, mapping the per-branch room number constraint to a 400"""
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ValidationError.for_field("number", f"Room {room.number} already exists in this branch")


@router.get("", response_model=List[RoomWithTypeResponse])
async def list_rooms(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    room_status: Optional[RoomStatus] = Query(None, alias="status"),
    ctx: AuthenticatedContext = Depends(require_permission(Permission.VIEW_ROOMS)),
    db: AsyncSession = Depends(get_db)
):
    """Rooms of the caller's effective branch; a super admin with no branch selected gets []"""
    scope = resolve_scope(ctx, branch_id)
    if scope is None:
        return []

    query = select(Room).options(selectinload(Room.room_type)).where(Room.branch_id == scope)
    if room_status:
        query = query.where(Room.status == room_status)
    result = await db.execute(query.order_by(Room.number))
    return result.scalars().all()


@router.get("/available", response_model=List[RoomWithTypeResponse])
async def list_available_rooms(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    check_in: Optional[str] = Query(None, alias="checkIn"),
    check_out: Optional[str] = Query(None, alias="checkOut"),
    ctx: AuthenticatedContext = Depends(require_permission(Permission.VIEW_ROOMS)),
    db: AsyncSession = Depends(get_db)
):
    """
    Rooms bookable for [checkIn, checkOut).

    Both dates are required. Dates may be plain dates or ISO datetimes; the
    time of day is ignored.
    """
    if not check_in or not check_out:
        raise ValidationError("Check-in and check-out dates are required")

    scope = resolve_scope(ctx, branch_id)
    if scope is None:
        return []

    rooms = await get_available_rooms(SqlAlchemyStore(db), scope, check_in, check_out)
    if not rooms:
        return []

    # Reload with room types attached for the response
    result = await db.execute(
        select(Room)
        .options(selectinload(Room.room_type))
        .where(Room.id.in_([room.id for room in rooms]))
        .order_by(Room.number)
    )
    return result.scalars().all()


@router.get("/{room_id}", response_model=RoomWithTypeResponse)
async def get_room(
    room_id: int,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.VIEW_ROOMS)),
    db: AsyncSession = Depends(get_db)
):
    result = await db.execute(select(Room).options(selectinload(Room.room_type)).where(Room.id == room_id))
    room = result.scalar_one_or_none()
    if not room or (not ctx.is_super_admin and room.branch_id != ctx.branch_id):
        raise NotFoundError("Room not found")
    return room


@router.post("", response_model=RoomResponse, status_code=status.HTTP_201_CREATED)
async def create_room(
    room_data: RoomCreate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_ROOMS)),
    db: AsyncSession = Depends(get_db)
):
    branch_id = ensure_write_scope(ctx, room_data.branch_id)
    await _get_room_type_in_branch(db, room_data.room_type_id, branch_id)

    room = Room(**room_data.model_dump(exclude={"branch_id"}), branch_id=branch_id)
    db.add(room)
    await _commit_room(db, room)
    await db.refresh(room)
    logger.info(f"Room {room.number} created in branch {branch_id}")
    return room


@router.put("/{room_id}", response_model=RoomResponse)
async def update_room(
    room_id: int,
    room_data: RoomUpdate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.UPDATE_ROOM_STATUS)),
    db: AsyncSession = Depends(get_db)
):
    """
    Update a room. Front desk staff change status and notes only;
    structural fields (number, floor, type) need manage_rooms.
    """
    room = await db.get(Room, room_id)
    if not room:
        raise NotFoundError("Room not found")
    ensure_write_scope(ctx, room.branch_id)

    updates = room_data.model_dump(exclude_unset=True)
    structural = {"number", "floor", "room_type_id"} & set(updates)
    if structural:
        if not has_permission(ctx, Permission.MANAGE_ROOMS):
            raise PermissionDeniedError(f"Not allowed to change: {', '.join(sorted(structural))}")
        if "room_type_id" in updates:
            await _get_room_type_in_branch(db, updates["room_type_id"], room.branch_id)

    previous_status = room.status
    for field, value in updates.items():
        setattr(room, field, value)

    await _commit_room(db, room)
    await db.refresh(room)
    if room.status != previous_status:
        logger.info(f"Room {room.number}: {previous_status.value} -> {room.status.value}")
    return room
