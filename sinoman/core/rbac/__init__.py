"""RBAC (Role-Based Access Control) module for Sinoman.

This module defines the role hierarchy, the permission vocabulary and the
permission/ownership checks used by request handlers.
"""

from .permissions import Permission, Role, ROLE_HIERARCHY
from .roles import ROLE_PERMISSIONS, STAFF_ROLES, get_role_permissions
from .checker import (
    AccessContext,
    PermissionManager,
    ResourceLookup,
    ResourceOwnership,
    MemberRoleAndTenant,
    create_access_context,
)

__all__ = [
    "Permission",
    "Role",
    "ROLE_HIERARCHY",
    "ROLE_PERMISSIONS",
    "STAFF_ROLES",
    "get_role_permissions",
    "AccessContext",
    "PermissionManager",
    "ResourceLookup",
    "ResourceOwnership",
    "MemberRoleAndTenant",
    "create_access_context",
]
