"""
Restaurant menu and order endpoints.

Orders snapshot each item's name and price at order time, so later menu
price changes never alter an existing order.

    pending -> preparing -> ready -> served
    pending | preparing | ready -> cancelled
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional
import logging

from database import get_db
from models import MenuCategory, MenuItem, RestaurantOrder, OrderStatus, OrderType, Guest, Room, Permission
from schemas import (
    MenuCategoryCreate, MenuCategoryUpdate, MenuCategoryResponse,
    MenuItemCreate, MenuItemUpdate, MenuItemResponse,
    RestaurantOrderCreate, OrderStatusUpdate, RestaurantOrderResponse
)
from access_policy import AuthenticatedContext, resolve_scope, ensure_write_scope
from auth import require_permission
from billing import compute_totals, generate_number, to_money
from errors import NotFoundError, ValidationError, InvalidTransitionError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/restaurant", tags=["restaurant"])

ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {OrderStatus.SERVED, OrderStatus.CANCELLED},
    OrderStatus.SERVED: set(),
    OrderStatus.CANCELLED: set(),
}


# ==================== MENU ====================

@router.get("/categories", response_model=List[MenuCategoryResponse])
async def list_menu_categories(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    ctx: AuthenticatedContext = Depends(require_permission(Permission.VIEW_RESTAURANT)),
    db: AsyncSession = Depends(get_db)
):
    scope = resolve_scope(ctx, branch_id)
    if scope is None:
        return []
    result = await db.execute(
        select(MenuCategory).where(MenuCategory.branch_id == scope).order_by(MenuCategory.sort_order, MenuCategory.name)
    )
    return result.scalars().all()


@router.post("/categories", response_model=MenuCategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_menu_category(
    category_data: MenuCategoryCreate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_RESTAURANT)),
    db: AsyncSession = Depends(get_db)
):
    branch_id = ensure_write_scope(ctx, category_data.branch_id)
    category = MenuCategory(**category_data.model_dump(exclude={"branch_id"}), branch_id=branch_id)
    db.add(category)
    await db.commit()
    await db.refresh(category)
    return category


@router.put("/categories/{category_id}", response_model=MenuCategoryResponse)
async def update_menu_category(
    category_id: int,
    category_data: MenuCategoryUpdate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_RESTAURANT)),
    db: AsyncSession = Depends(get_db)
):
    category = await db.get(MenuCategory, category_id)
    if not category:
        raise NotFoundError("Menu category not found")
    ensure_write_scope(ctx, category.branch_id)

    for field, value in category_data.model_dump(exclude_unset=True).items():
        setattr(category, field, value)
    await db.commit()
    await db.refresh(category)
    return category


async def _category_in_branch(db: AsyncSession, category_id: int, branch_id: int) -> MenuCategory:
    category = await db.get(MenuCategory, category_id)
    if not category or category.branch_id != branch_id:
        raise NotFoundError("Menu category not found")
    return category


@router.get("/menu-items", response_model=List[MenuItemResponse])
async def list_menu_items(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    category_id: Optional[int] = Query(None, alias="categoryId"),
    available_only: bool = Query(False, alias="availableOnly"),
    ctx: AuthenticatedContext = Depends(require_permission(Permission.VIEW_RESTAURANT)),
    db: AsyncSession = Depends(get_db)
):
    scope = resolve_scope(ctx, branch_id)
    if scope is None:
        return []

    query = select(MenuItem).where(MenuItem.branch_id == scope)
    if category_id:
        query = query.where(MenuItem.category_id == category_id)
    if available_only:
        query = query.where(MenuItem.available == True)  # noqa: E712
    result = await db.execute(query.order_by(MenuItem.name))
    return result.scalars().all()


@router.post("/menu-items", response_model=MenuItemResponse, status_code=status.HTTP_201_CREATED)
async def create_menu_item(
    item_data: MenuItemCreate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_RESTAURANT)),
    db: AsyncSession = Depends(get_db)
):
    branch_id = ensure_write_scope(ctx, item_data.branch_id)
    await _category_in_branch(db, item_data.category_id, branch_id)

    item = MenuItem(**item_data.model_dump(exclude={"branch_id"}), branch_id=branch_id)
    db.add(item)
    await db.commit()
    await db.refresh(item)
    return item


@router.put("/menu-items/{item_id}", response_model=MenuItemResponse)
async def update_menu_item(
    item_id: int,
    item_data: MenuItemUpdate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_RESTAURANT)),
    db: AsyncSession = Depends(get_db)
):
    item = await db.get(MenuItem, item_id)
    if not item:
        raise NotFoundError("Menu item not found")
    ensure_write_scope(ctx, item.branch_id)

    updates = item_data.model_dump(exclude_unset=True)
    if "category_id" in updates:
        await _category_in_branch(db, updates["category_id"], item.branch_id)

    for field, value in updates.items():
        setattr(item, field, value)
    await db.commit()
    await db.refresh(item)
    return item


# ==================== ORDERS ====================

@router.get("/orders", response_model=List[RestaurantOrderResponse])
async def list_orders(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    ctx: AuthenticatedContext = Depends(require_permission(Permission.VIEW_RESTAURANT)),
    db: AsyncSession = Depends(get_db)
):
    scope = resolve_scope(ctx, branch_id)
    if scope is None:
        return []

    query = select(RestaurantOrder).where(RestaurantOrder.branch_id == scope)
    if order_status:
        query = query.where(RestaurantOrder.status == order_status)
    result = await db.execute(query.order_by(RestaurantOrder.created_at.desc()))
    return result.scalars().all()


@router.post("/orders", response_model=RestaurantOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    order_data: RestaurantOrderCreate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_RESTAURANT)),
    db: AsyncSession = Depends(get_db)
):
    branch_id = ensure_write_scope(ctx, order_data.branch_id)

    if order_data.order_type == OrderType.ROOM_SERVICE and order_data.room_id is None:
        raise ValidationError.for_field("roomId", "Room service orders need a room")
    if order_data.room_id is not None:
        room = await db.get(Room, order_data.room_id)
        if not room or room.branch_id != branch_id:
            raise NotFoundError("Room not found")
    if order_data.guest_id is not None and not await db.get(Guest, order_data.guest_id):
        raise NotFoundError("Guest not found")

    item_ids = {line.item_id for line in order_data.items}
    result = await db.execute(select(MenuItem).where(MenuItem.id.in_(item_ids), MenuItem.branch_id == branch_id))
    menu = {item.id: item for item in result.scalars().all()}

    lines = []
    for line in order_data.items:
        item = menu.get(line.item_id)
        if item is None:
            raise NotFoundError(f"Menu item {line.item_id} not found")
        if not item.available:
            raise ValidationError.for_field("items", f"{item.name} is not available")
        lines.append({
            "item_id": item.id,
            "name": item.name,
            "quantity": line.quantity,
            "price": str(to_money(item.price)),
            "notes": line.notes,
        })

    subtotal, tax, total = compute_totals(to_money(line["price"]) * line["quantity"] for line in lines)

    order = RestaurantOrder(
        order_number=generate_number("ORD"),
        guest_id=order_data.guest_id,
        room_id=order_data.room_id,
        branch_id=branch_id,
        order_type=order_data.order_type,
        status=OrderStatus.PENDING,
        items=lines,
        subtotal=subtotal,
        tax=tax,
        total=total,
        notes=order_data.notes,
        created_by=ctx.user_id,
    )
    db.add(order)
    await db.commit()
    await db.refresh(order)
    logger.info(f"Order {order.order_number} placed in branch {branch_id}, total {total}")
    return order


@router.put("/orders/{order_id}/status", response_model=RestaurantOrderResponse)
async def update_order_status(
    order_id: int,
    status_data: OrderStatusUpdate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_RESTAURANT)),
    db: AsyncSession = Depends(get_db)
):
    order = await db.get(RestaurantOrder, order_id)
    if not order:
        raise NotFoundError("Order not found")
    ensure_write_scope(ctx, order.branch_id)

    current = OrderStatus(order.status)
    if status_data.status not in ORDER_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, status_data.status.value)

    order.status = status_data.status
    await db.commit()
    await db.refresh(order)
    logger.info(f"Order {order.order_number}: {current.value} -> {order.status.value}")
    return order
