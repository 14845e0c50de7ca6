"""
Branch-scoped access policy.

Resolves which branch a request may read or write, and which operations a
role is allowed to perform. Pure functions over an explicit
AuthenticatedContext - no request objects, no I/O.
"""
from dataclasses import dataclass
from typing import Iterable, Optional
import logging

from errors import PermissionDeniedError
from models import UserRole, Permission

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedContext:
    """Identity of the caller, passed explicitly into every core operation"""
    user_id: int
    role: UserRole
    branch_id: Optional[int]

    @property
    def is_super_admin(self) -> bool:
        return self.role == UserRole.SUPER_ADMIN

    @classmethod
    def from_user(cls, user) -> "AuthenticatedContext":
        return cls(user_id=user.id, role=UserRole(user.role), branch_id=user.branch_id)


# Role-Permission Mapping
ROLE_PERMISSIONS = {
    UserRole.SUPER_ADMIN: frozenset(Permission),
    UserRole.BRANCH_ADMIN: frozenset({
        Permission.MANAGE_USERS, Permission.MANAGE_ROOMS,
        Permission.UPDATE_ROOM_STATUS, Permission.VIEW_ROOMS,
        Permission.MANAGE_RESERVATIONS, Permission.MANAGE_GUESTS,
        Permission.VIEW_RESTAURANT, Permission.MANAGE_RESTAURANT,
        Permission.MANAGE_INVENTORY, Permission.MANAGE_BILLING,
        Permission.VIEW_DASHBOARD, Permission.VIEW_REPORTS,
    }),
    UserRole.RECEPTIONIST: frozenset({
        Permission.UPDATE_ROOM_STATUS, Permission.VIEW_ROOMS,
        Permission.MANAGE_RESERVATIONS, Permission.MANAGE_GUESTS,
        Permission.VIEW_RESTAURANT, Permission.MANAGE_BILLING,
        Permission.VIEW_DASHBOARD,
    }),
    UserRole.RESTAURANT_STAFF: frozenset({
        Permission.VIEW_ROOMS, Permission.VIEW_RESTAURANT,
        Permission.MANAGE_RESTAURANT, Permission.VIEW_DASHBOARD,
    }),
    UserRole.HOUSEKEEPING: frozenset({
        Permission.VIEW_ROOMS, Permission.VIEW_DASHBOARD,
    }),
}


def resolve_scope(ctx: AuthenticatedContext, requested_branch_id: Optional[int]) -> Optional[int]:
    """
    Effective branch for a request.

    A super admin gets exactly the branch it asked for (None means no branch
    selected). Everyone else is pinned to their own branch whatever they ask.
    """
    if ctx.is_super_admin:
        return requested_branch_id
    return ctx.branch_id


def authorize(ctx: AuthenticatedContext, allowed_roles: Iterable[UserRole]) -> bool:
    return ctx.role in set(allowed_roles)


def has_permission(ctx: AuthenticatedContext, permission: Permission) -> bool:
    return permission in ROLE_PERMISSIONS.get(ctx.role, frozenset())


def roles_with(permission: Permission) -> frozenset:
    return frozenset(role for role, perms in ROLE_PERMISSIONS.items() if permission in perms)


def can_write_branch(ctx: AuthenticatedContext, target_branch_id: Optional[int]) -> bool:
    scope = resolve_scope(ctx, target_branch_id)
    return scope is not None and (ctx.is_super_admin or scope == target_branch_id)


def ensure_write_scope(ctx: AuthenticatedContext, target_branch_id: Optional[int]) -> int:
    """
    Branch id a create/update may target, or PermissionDeniedError.

    Even a super admin must name a branch; there is no implicit
    "all branches" target for scoped rows.
    """
    if not can_write_branch(ctx, target_branch_id):
        logger.warning(
            f"Denied write for user {ctx.user_id} ({ctx.role.value}) on branch {target_branch_id}"
        )
        raise PermissionDeniedError("Cannot modify records for this branch")
    return resolve_scope(ctx, target_branch_id)
