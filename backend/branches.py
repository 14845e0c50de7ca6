"""
Branch and staff management endpoints.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import List, Optional
import logging

from database import get_db
from models import Branch, User, UserRole, Permission
from schemas import BranchCreate, BranchUpdate, BranchResponse, UserCreate, UserUpdate, UserResponse
from access_policy import AuthenticatedContext, resolve_scope, ensure_write_scope
from auth import get_current_context, require_permission, get_password_hash
from errors import NotFoundError, PermissionDeniedError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/branches", tags=["branches"])
users_router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=List[BranchResponse])
async def list_branches(
    ctx: AuthenticatedContext = Depends(get_current_context),
    db: AsyncSession = Depends(get_db)
):
    """Super admins see every branch; staff see only their own"""
    query = select(Branch).order_by(Branch.name)
    if not ctx.is_super_admin:
        if ctx.branch_id is None:
            return []
        query = query.where(Branch.id == ctx.branch_id)
    result = await db.execute(query)
    return result.scalars().all()


@router.post("", response_model=BranchResponse, status_code=status.HTTP_201_CREATED)
async def create_branch(
    branch_data: BranchCreate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_BRANCHES)),
    db: AsyncSession = Depends(get_db)
):
    branch = Branch(**branch_data.model_dump())
    db.add(branch)
    await db.commit()
    await db.refresh(branch)
    logger.info(f"Branch {branch.id} '{branch.name}' created by user {ctx.user_id}")
    return branch


@router.put("/{branch_id}", response_model=BranchResponse)
async def update_branch(
    branch_id: int,
    branch_data: BranchUpdate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_BRANCHES)),
    db: AsyncSession = Depends(get_db)
):
    branch = await db.get(Branch, branch_id)
    if not branch:
        raise NotFoundError("Branch not found")

    for field, value in branch_data.model_dump(exclude_unset=True).items():
        setattr(branch, field, value)

    await db.commit()
    await db.refresh(branch)
    return branch


# ==================== USERS ====================

async def _ensure_email_free(db: AsyncSession, email: str):
    result = await db.execute(select(User.id).where(User.email == email))
    if result.scalar_one_or_none() is not None:
        raise ValidationError.for_field("email", "Email already registered")


def _check_role_assignment(ctx: AuthenticatedContext, role: UserRole, branch_id: Optional[int]) -> Optional[int]:
    """Branch a user with `role` may be attached to by the caller"""
    if role == UserRole.SUPER_ADMIN:
        if not ctx.is_super_admin:
            raise PermissionDeniedError("Only super admins can grant the super admin role")
        return None
    if branch_id is None and not ctx.is_super_admin:
        branch_id = ctx.branch_id
    if branch_id is None:
        raise ValidationError.for_field("branchId", "Branch is required for this role")
    return ensure_write_scope(ctx, branch_id)


@users_router.get("", response_model=List[UserResponse])
async def list_users(
    branch_id: Optional[int] = Query(None, alias="branchId"),
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db)
):
    scope = resolve_scope(ctx, branch_id)
    if scope is None:
        return []
    result = await db.execute(select(User).where(User.branch_id == scope).order_by(User.name))
    return result.scalars().all()


@users_router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db)
):
    branch_id = _check_role_assignment(ctx, user_data.role, user_data.branch_id)
    await _ensure_email_free(db, user_data.email)

    user = User(
        email=user_data.email,
        hashed_password=get_password_hash(user_data.password),
        name=user_data.name,
        role=user_data.role,
        branch_id=branch_id,
        active=user_data.active,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info(f"User {user.email} ({user.role.value}) created by user {ctx.user_id}")
    return user


@users_router.put("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    user_data: UserUpdate,
    ctx: AuthenticatedContext = Depends(require_permission(Permission.MANAGE_USERS)),
    db: AsyncSession = Depends(get_db)
):
    user = await db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    # The target must currently be within the caller's reach
    if user.role == UserRole.SUPER_ADMIN:
        if not ctx.is_super_admin:
            raise PermissionDeniedError("Cannot modify a super admin")
    else:
        ensure_write_scope(ctx, user.branch_id)

    updates = user_data.model_dump(exclude_unset=True)
    if "role" in updates or "branch_id" in updates:
        role = updates.get("role") or user.role
        updates["branch_id"] = _check_role_assignment(ctx, role, updates.get("branch_id", user.branch_id))

    password = updates.pop("password", None)
    if password:
        user.hashed_password = get_password_hash(password)

    for field, value in updates.items():
        setattr(user, field, value)

    await db.commit()
    await db.refresh(user)
    return user
