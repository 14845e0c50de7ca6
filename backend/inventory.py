"""
Inventory endpoints: categories, stock items, low-stock listing and restocks.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional
from datetime import datetime
import logging

from database import get_db
from models import InventoryCategory, InventoryItem, InventoryCategoryType, Permission
from schemas import (
    InventoryCategoryCreate, InventoryCategoryResponse,
    InventoryItemCreate, InventoryItemUpdate, InventoryItemResponse, RestockRequest
)
from access_policy import AuthenticatedContext, resolve_scope, ensure_write_scope
from auth import require_permission
from errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/inventory", tags=["inventory"])


def _check_levels(min_stock: int, max_stock: int):
    if max_stock < min_stock:
        raise ValidationError.for_field("maxStock", "Maximum stock cannot be below minimum stock")


@router.get("/categories", response_model=List[InventoryCategoryResponse])
async def list_inventory_categories(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    category_type: Optional[InventoryCategoryType] = Query(None, alias="type"),
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_INVENTORY)),
    db: AsyncSession = Depends(get_db)
):
    scope = resolve_scope(ctx, branch_id)
    if scope is None:
        return []
    query = select(InventoryCategory).where(InventoryCategory.branch_id == scope)
    if category_type:
        query = query.where(InventoryCategory.type == category_type)
    result = await db.execute(query.order_by(InventoryCategory.name))
    return result.scalars().all()


@router.post("/categories", response_model=InventoryCategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_inventory_category(
    category_data: InventoryCategoryCreate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_INVENTORY)),
    db: AsyncSession = Depends(get_db)
):
    branch_id = ensure_write_scope(ctx, category_data.branch_id)
    category = InventoryCategory(**category_data.model_dump(exclude={"branch_id"}), branch_id=branch_id)
    db.add(category)
    await db.commit()
    await db.refresh(category)
    return category


@router.get("/items", response_model=List[InventoryItemResponse])
async def list_inventory_items(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    category_id: Optional[int] = Query(None, alias="categoryId"),
    low_stock: bool = Query(False, alias="lowStock"),
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_INVENTORY)),
    db: AsyncSession = Depends(get_db)
):
    """Items of the branch; lowStock=true keeps only items at or below their minimum"""
    scope = resolve_scope(ctx, branch_id)
    if scope is None:
        return []

    query = select(InventoryItem).where(InventoryItem.branch_id == scope)
    if category_id:
        query = query.where(InventoryItem.category_id == category_id)
    if low_stock:
        query = query.where(InventoryItem.current_stock <= InventoryItem.min_stock)
    result = await db.execute(query.order_by(InventoryItem.name))
    return result.scalars().all()


@router.post("/items", response_model=InventoryItemResponse, status_code=status.HTTP_201_CREATED)
async def create_inventory_item(
    item_data: InventoryItemCreate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_INVENTORY)),
    db: AsyncSession = Depends(get_db)
):
    branch_id = ensure_write_scope(ctx, item_data.branch_id)
    category = await db.get(InventoryCategory, item_data.category_id)
    if not category or category.branch_id != branch_id:
        raise NotFoundError("Inventory category not found")
    _check_levels(item_data.min_stock, item_data.max_stock)

    item = InventoryItem(**item_data.model_dump(exclude={"branch_id"}), branch_id=branch_id)
    db.add(item)
    await db.commit()
    await db.refresh(item)
    return item


@router.put("/items/{item_id}", response_model=InventoryItemResponse)
async def update_inventory_item(
    item_id: int,
    item_data: InventoryItemUpdate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_INVENTORY)),
    db: AsyncSession = Depends(get_db)
):
    item = await db.get(InventoryItem, item_id)
    if not item:
        raise NotFoundError("Inventory item not found")
    ensure_write_scope(ctx, item.branch_id)

    updates = item_data.model_dump(exclude_unset=True)
    _check_levels(updates.get("min_stock", item.min_stock), updates.get("max_stock", item.max_stock))

    for field, value in updates.items():
        setattr(item, field, value)
    await db.commit()
    await db.refresh(item)
    return item


@router.post("/items/{item_id}/restock", response_model=InventoryItemResponse)
async def restock_inventory_item(
    item_id: int,
    restock: RestockRequest,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_INVENTORY)),
    db: AsyncSession = Depends(get_db)
):
    item = await db.get(InventoryItem, item_id)
    if not item:
        raise NotFoundError("Inventory item not found")
    ensure_write_scope(ctx, item.branch_id)

    item.current_stock = item.current_stock + restock.quantity
    item.last_restocked = datetime.utcnow()
    await db.commit()
    await db.refresh(item)
    logger.info(f"Restocked {item.name} by {restock.quantity} {item.unit} (now {item.current_stock})")
    return item
