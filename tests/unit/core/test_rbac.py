"""Tests for the role hierarchy and permission evaluation."""

from unittest.mock import AsyncMock, patch

import pytest

from sinoman.core.rbac.checker import AccessContext, PermissionManager
from sinoman.core.rbac.permissions import (
    ROLE_HIERARCHY,
    Permission,
    Role,
    get_all_permissions,
    get_permissions_for_level,
    is_valid_permission,
)
from sinoman.core.rbac.roles import (
    DEFAULT_ROLES,
    ROLE_PERMISSIONS,
    STAFF_ROLES,
    get_role_permissions,
)


def make_context(role, user_id="user-1", tenant_id="tenant-1") -> AccessContext:
    return AccessContext(
        user_id=user_id,
        tenant_id=tenant_id,
        role=role,
        ip_address="203.0.113.10",
        user_agent="pytest",
        session_id="sess-1",
        request_id="req-1",
    )


@pytest.fixture
def audit():
    return AsyncMock()


@pytest.fixture
def manager(audit):
    return PermissionManager(audit)


class TestPermissionModel:
    """Test permission definitions."""

    def test_permission_string_format(self):
        assert str(Permission.MEMBER_VIEW_SAVINGS) == "member:view_savings"
        assert Permission.ADMIN_MANAGE_MEMBERS.role == Role.ADMIN
        assert Permission.ADMIN_MANAGE_MEMBERS.action == "manage_members"

    def test_permission_from_string(self):
        perm = Permission.from_string("pengurus:manage_orders")
        assert perm is Permission.PENGURUS_MANAGE_ORDERS

    def test_invalid_permission_format(self):
        with pytest.raises(ValueError):
            Permission.from_string("invalid")

        with pytest.raises(ValueError):
            Permission.from_string("member:fly")

    def test_is_valid_permission(self):
        assert is_valid_permission("admin:view_audit_logs")
        assert is_valid_permission("super_admin:security_management")
        assert not is_valid_permission("member:manage_members")

    def test_all_permissions(self):
        all_perms = get_all_permissions()
        assert len(all_perms) == 25
        assert len(set(all_perms)) == len(all_perms)
        assert "member:place_order" in all_perms

    def test_every_permission_namespaced_by_a_role(self):
        for perm in Permission:
            assert perm.role in ROLE_HIERARCHY


class TestRoleHierarchy:
    """Test role ordering and cumulative permission sets."""

    def test_role_order(self):
        assert [r.value for r in ROLE_HIERARCHY] == ["member", "pengurus", "admin", "super_admin"]
        assert Role.ADMIN.includes(Role.PENGURUS)
        assert not Role.MEMBER.includes(Role.ADMIN)

    @pytest.mark.parametrize("lower,higher", list(zip(ROLE_HIERARCHY, ROLE_HIERARCHY[1:])))
    def test_each_role_is_strict_superset_of_the_one_below(self, lower, higher):
        assert ROLE_PERMISSIONS[lower] < ROLE_PERMISSIONS[higher]

    def test_member_permissions_held_by_every_higher_role(self):
        for perm in ROLE_PERMISSIONS[Role.MEMBER]:
            for role in ROLE_HIERARCHY[1:]:
                assert perm in ROLE_PERMISSIONS[role]

    def test_role_holds_its_own_level(self):
        for role in ROLE_HIERARCHY:
            assert set(get_permissions_for_level(role)) <= ROLE_PERMISSIONS[role]

    def test_super_admin_holds_everything(self):
        assert ROLE_PERMISSIONS[Role.SUPER_ADMIN] == frozenset(get_all_permissions())

    def test_permission_sets_are_plain_strings(self):
        for perms in ROLE_PERMISSIONS.values():
            assert all(type(p) is str for p in perms)

    def test_get_role_permissions(self):
        assert get_role_permissions("pengurus") == ROLE_PERMISSIONS[Role.PENGURUS]
        with pytest.raises(ValueError):
            get_role_permissions("treasurer")

    def test_default_roles(self):
        assert set(DEFAULT_ROLES) == {"member", "pengurus", "admin", "super_admin"}
        assert "admin:view_audit_logs" in DEFAULT_ROLES["admin"]["permissions"]
        assert "admin:view_audit_logs" not in DEFAULT_ROLES["pengurus"]["permissions"]

    def test_staff_roles(self):
        assert Role.MEMBER not in STAFF_ROLES
        assert {Role.PENGURUS, Role.ADMIN, Role.SUPER_ADMIN} == STAFF_ROLES


class TestHasPermission:
    """Test PermissionManager.has_permission."""

    @pytest.mark.asyncio
    async def test_member_granted_member_permission(self, manager, audit):
        assert await manager.has_permission(make_context(Role.MEMBER), Permission.MEMBER_VIEW_SAVINGS)
        audit.log_security_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_plain_string_permission(self, manager):
        assert await manager.has_permission(make_context(Role.ADMIN), "pengurus:process_transactions")

    @pytest.mark.asyncio
    async def test_denial_logs_low_severity_event(self, manager, audit):
        context = make_context(Role.MEMBER)

        assert not await manager.has_permission(context, Permission.ADMIN_MANAGE_MEMBERS)

        audit.log_security_event.assert_awaited_once()
        event, request = audit.log_security_event.await_args.args
        assert event.type == "permission_denied"
        assert event.severity == "low"
        assert event.user_id == "user-1"
        assert event.tenant_id == "tenant-1"
        assert event.details["permission"] == "admin:manage_members"
        assert event.details["user_role"] == "member"
        assert request.ip == "203.0.113.10"
        assert request.request_id == "req-1"

    @pytest.mark.asyncio
    async def test_super_admin_bypasses_role_table(self, manager, audit):
        context = make_context(Role.SUPER_ADMIN)

        with patch.object(manager, "_role_permissions", wraps=manager._role_permissions) as spy:
            for perm in Permission:
                assert await manager.has_permission(context, perm)

        assert spy.call_count == 0
        audit.log_security_event.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lookup_error_fails_closed(self, manager, audit):
        with patch.object(manager, "_role_permissions", side_effect=RuntimeError("table unavailable")):
            allowed = await manager.has_permission(make_context(Role.ADMIN), Permission.MEMBER_VIEW_SAVINGS)

        assert allowed is False
        event = audit.log_security_event.await_args.args[0]
        assert event.type == "system_error"
        assert event.severity == "medium"
        assert event.details["error"] == "table unavailable"

    @pytest.mark.asyncio
    async def test_unknown_role_fails_closed(self, manager, audit):
        context = make_context("treasurer")

        assert not await manager.has_permission(context, Permission.MEMBER_VIEW_SAVINGS)
        assert audit.log_security_event.await_args.args[0].type == "system_error"


class TestHasPermissions:
    """Test PermissionManager.has_permissions."""

    @pytest.mark.asyncio
    async def test_all_granted(self, manager):
        context = make_context(Role.PENGURUS)
        assert await manager.has_permissions(
            context, [Permission.MEMBER_VIEW_SAVINGS, Permission.PENGURUS_MANAGE_ORDERS]
        )

    @pytest.mark.asyncio
    async def test_one_missing_denies(self, manager):
        context = make_context(Role.PENGURUS)
        assert not await manager.has_permissions(
            context, [Permission.PENGURUS_MANAGE_ORDERS, Permission.ADMIN_GENERATE_REPORTS]
        )

    @pytest.mark.asyncio
    async def test_every_permission_checked_and_audited(self, manager, audit):
        context = make_context(Role.MEMBER)
        await manager.has_permissions(
            context,
            [Permission.ADMIN_MANAGE_MEMBERS, Permission.MEMBER_VIEW_SAVINGS, Permission.ADMIN_MANAGE_TENANTS],
        )

        denied = [c.args[0].details["permission"] for c in audit.log_security_event.await_args_list]
        assert denied == ["admin:manage_members", "admin:manage_tenants"]


class TestTenantAccess:
    """Test PermissionManager.validate_tenant_access."""

    def test_same_tenant(self, manager):
        assert manager.validate_tenant_access(make_context(Role.MEMBER, tenant_id="t1"), "t1")

    @pytest.mark.parametrize("role", [Role.MEMBER, Role.PENGURUS, Role.ADMIN])
    def test_other_tenant_denied(self, manager, role):
        assert not manager.validate_tenant_access(make_context(role, tenant_id="t1"), "t2")

    def test_missing_tenant_denied(self, manager):
        assert not manager.validate_tenant_access(make_context(Role.ADMIN, tenant_id="t1"), None)

    def test_super_admin_reaches_every_tenant(self, manager):
        assert manager.validate_tenant_access(make_context(Role.SUPER_ADMIN, tenant_id="t1"), "t2")
