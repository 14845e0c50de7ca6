"""
Tests for branch scope resolution and the role capability table.
"""
import pytest

from access_policy import (
    AuthenticatedContext, ROLE_PERMISSIONS, resolve_scope, authorize, has_permission,
    roles_with, can_write_branch, ensure_write_scope,
)
from errors import PermissionDeniedError
from models import UserRole, Permission


SUPER = AuthenticatedContext(user_id=1, role=UserRole.SUPER_ADMIN, branch_id=None)
ADMIN_1 = AuthenticatedContext(user_id=2, role=UserRole.BRANCH_ADMIN, branch_id=1)
RECEPTION_1 = AuthenticatedContext(user_id=3, role=UserRole.RECEPTIONIST, branch_id=1)
ORPHAN = AuthenticatedContext(user_id=4, role=UserRole.HOUSEKEEPING, branch_id=None)


class TestResolveScope:
    def test_super_admin_gets_requested_branch_verbatim(self):
        assert resolve_scope(SUPER, 2) == 2
        assert resolve_scope(SUPER, None) is None

    def test_staff_pinned_to_own_branch(self):
        assert resolve_scope(ADMIN_1, None) == 1
        assert resolve_scope(ADMIN_1, 2) == 1
        assert resolve_scope(RECEPTION_1, 99) == 1

    def test_staff_without_branch_has_no_scope(self):
        assert resolve_scope(ORPHAN, 1) is None


class TestWriteScope:
    def test_super_admin_must_name_a_branch(self):
        assert not can_write_branch(SUPER, None)
        with pytest.raises(PermissionDeniedError):
            ensure_write_scope(SUPER, None)

    def test_super_admin_writes_any_named_branch(self):
        assert ensure_write_scope(SUPER, 2) == 2

    def test_branch_admin_writes_own_branch_only(self):
        assert ensure_write_scope(ADMIN_1, 1) == 1
        with pytest.raises(PermissionDeniedError):
            ensure_write_scope(ADMIN_1, 2)

    def test_missing_target_is_denied_for_staff(self):
        assert not can_write_branch(ADMIN_1, None)

    def test_branchless_staff_cannot_write(self):
        assert not can_write_branch(ORPHAN, 1)


class TestCapabilities:
    def test_super_admin_has_everything(self):
        assert all(has_permission(SUPER, p) for p in Permission)

    def test_only_super_admin_manages_branches(self):
        assert roles_with(Permission.MANAGE_BRANCHES) == frozenset({UserRole.SUPER_ADMIN})

    def test_branch_admin_is_everything_but_branches(self):
        assert ROLE_PERMISSIONS[UserRole.BRANCH_ADMIN] == frozenset(Permission) - {Permission.MANAGE_BRANCHES}

    @pytest.mark.parametrize("role", list(UserRole))
    def test_every_role_views_rooms_and_dashboard(self, role):
        ctx = AuthenticatedContext(user_id=9, role=role, branch_id=1)
        assert has_permission(ctx, Permission.VIEW_ROOMS)
        assert has_permission(ctx, Permission.VIEW_DASHBOARD)

    def test_receptionist_books_but_does_not_manage_rooms(self):
        assert has_permission(RECEPTION_1, Permission.MANAGE_RESERVATIONS)
        assert has_permission(RECEPTION_1, Permission.UPDATE_ROOM_STATUS)
        assert not has_permission(RECEPTION_1, Permission.MANAGE_ROOMS)
        assert not has_permission(RECEPTION_1, Permission.VIEW_REPORTS)

    def test_housekeeping_is_read_only(self):
        assert ROLE_PERMISSIONS[UserRole.HOUSEKEEPING] == frozenset({Permission.VIEW_ROOMS, Permission.VIEW_DASHBOARD})

    def test_restaurant_staff_cannot_book(self):
        ctx = AuthenticatedContext(user_id=5, role=UserRole.RESTAURANT_STAFF, branch_id=1)
        assert has_permission(ctx, Permission.MANAGE_RESTAURANT)
        assert not has_permission(ctx, Permission.MANAGE_RESERVATIONS)

    def test_authorize_is_role_membership(self):
        assert authorize(ADMIN_1, [UserRole.SUPER_ADMIN, UserRole.BRANCH_ADMIN])
        assert not authorize(RECEPTION_1, [UserRole.SUPER_ADMIN, UserRole.BRANCH_ADMIN])

    def test_context_from_user_row(self):
        class Row:
            id = 7
            role = "receptionist"
            branch_id = 3

        ctx = AuthenticatedContext.from_user(Row())
        assert ctx == AuthenticatedContext(user_id=7, role=UserRole.RECEPTIONIST, branch_id=3)
