"""Role definitions for Sinoman.

Defines the 4 hierarchical roles and their permission sets:
1. Member - Self-service access to own savings, waste balance and orders
2. Pengurus - Cooperative board, processes transactions and orders
3. Admin - Tenant administration, reports and audit logs
4. Super Admin - Platform-wide access across all tenants

Each role holds every permission of the roles below it.
"""

from typing import Dict, FrozenSet, Union

from .permissions import ROLE_HIERARCHY, Role, get_permissions_for_level

def _build_role_permissions() -> Dict[Role, FrozenSet[str]]:
    """Accumulate permissions up the hierarchy so each set contains the ones below."""
    role_permissions: Dict[Role, FrozenSet[str]] = {}
    granted: FrozenSet[str] = frozenset()
    for role in ROLE_HIERARCHY:
        granted = granted | frozenset(get_permissions_for_level(role))
        role_permissions[role] = granted
    return role_permissions

# Computed once at import, read-only afterwards
ROLE_PERMISSIONS: Dict[Role, FrozenSet[str]] = _build_role_permissions()

# Roles granted every owned resource within their tenant
STAFF_ROLES: FrozenSet[Role] = frozenset({Role.PENGURUS, Role.ADMIN, Role.SUPER_ADMIN})

DEFAULT_ROLES: Dict[str, dict] = {
    "member": {
        "name": "Member",
        "description": "Cooperative member with access to own savings, waste balance and orders",
        "permissions": sorted(ROLE_PERMISSIONS[Role.MEMBER]),
    },
    "pengurus": {
        "name": "Pengurus",
        "description": "Cooperative board member who processes transactions, waste and orders",
        "permissions": sorted(ROLE_PERMISSIONS[Role.PENGURUS]),
    },
    "admin": {
        "name": "Admin",
        "description": "Tenant administrator with member management, reports and audit logs",
        "permissions": sorted(ROLE_PERMISSIONS[Role.ADMIN]),
    },
    "super_admin": {
        "name": "Super Admin",
        "description": "Platform operator with access to every tenant",
        "permissions": sorted(ROLE_PERMISSIONS[Role.SUPER_ADMIN]),
    },
}

def get_role_permissions(role: Union[str, Role]) -> FrozenSet[str]:
    """Get the permission set for a role."""
    try:
        return ROLE_PERMISSIONS[Role(role)]
    except ValueError:
        raise ValueError(f"Unknown role: {role}")

def is_staff(role: Union[str, Role]) -> bool:
    return Role(role) in STAFF_ROLES
