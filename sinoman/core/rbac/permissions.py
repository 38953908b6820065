"""
Roles and permissions for Sinoman.

Permissions are namespaced by the lowest role that holds them, using the
format "<role>:<action>".
"""

from enum import Enum
from typing import List, Tuple


class Role(str, Enum):
    """Member roles, lowest to highest."""
    MEMBER = "member"
    PENGURUS = "pengurus"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    def __str__(self) -> str:
        return self.value

    @property
    def rank(self) -> int:
        return ROLE_HIERARCHY.index(self)

    def includes(self, other: "Role") -> bool:
        """True if this role sits at or above ``other`` in the hierarchy."""
        return self.rank >= Role(other).rank


ROLE_HIERARCHY: Tuple[Role, ...] = (Role.MEMBER, Role.PENGURUS, Role.ADMIN, Role.SUPER_ADMIN)


class Permission(str, Enum):
    """All permissions known to the system."""

    # Member
    MEMBER_READ_PROFILE = "member:read_profile"
    MEMBER_UPDATE_PROFILE = "member:update_profile"
    MEMBER_VIEW_SAVINGS = "member:view_savings"
    MEMBER_VIEW_TRANSACTIONS = "member:view_transactions"
    MEMBER_MAKE_TRANSACTION = "member:make_transaction"
    MEMBER_VIEW_WASTE_BALANCE = "member:view_waste_balance"
    MEMBER_SUBMIT_WASTE = "member:submit_waste"
    MEMBER_VIEW_PRODUCTS = "member:view_products"
    MEMBER_PLACE_ORDER = "member:place_order"
    MEMBER_VIEW_NOTIFICATIONS = "member:view_notifications"

    # Pengurus
    PENGURUS_VIEW_MEMBER_LIST = "pengurus:view_member_list"
    PENGURUS_PROCESS_TRANSACTIONS = "pengurus:process_transactions"
    PENGURUS_VERIFY_WASTE_SUBMISSIONS = "pengurus:verify_waste_submissions"
    PENGURUS_CREATE_PRODUCTS = "pengurus:create_products"
    PENGURUS_MANAGE_ORDERS = "pengurus:manage_orders"
    PENGURUS_SEND_NOTIFICATIONS = "pengurus:send_notifications"

    # Admin
    ADMIN_MANAGE_MEMBERS = "admin:manage_members"
    ADMIN_VIEW_ALL_TRANSACTIONS = "admin:view_all_transactions"
    ADMIN_GENERATE_REPORTS = "admin:generate_reports"
    ADMIN_MANAGE_SYSTEM_SETTINGS = "admin:manage_system_settings"
    ADMIN_VIEW_AUDIT_LOGS = "admin:view_audit_logs"
    ADMIN_MANAGE_TENANTS = "admin:manage_tenants"

    # Super admin
    SUPER_ADMIN_FULL_ACCESS = "super_admin:full_access"
    SUPER_ADMIN_SYSTEM_CONFIGURATION = "super_admin:system_configuration"
    SUPER_ADMIN_SECURITY_MANAGEMENT = "super_admin:security_management"

    def __str__(self) -> str:
        return self.value

    @property
    def role(self) -> Role:
        """The lowest role granted this permission."""
        return Role(self.value.split(":", 1)[0])

    @property
    def action(self) -> str:
        return self.value.split(":", 1)[1]

    @classmethod
    def from_string(cls, perm_str: str) -> "Permission":
        """Parse a permission string like 'admin:view_audit_logs'."""
        try:
            return cls(perm_str)
        except ValueError:
            raise ValueError(f"Invalid permission: {perm_str}")


def is_valid_permission(perm_str: str) -> bool:
    """Check if a permission string is valid."""
    try:
        Permission.from_string(perm_str)
        return True
    except ValueError:
        return False


def get_all_permissions() -> List[str]:
    """Get list of all permission strings."""
    return [p.value for p in Permission]


def get_permissions_for_level(role: Role) -> List[str]:
    """Permissions whose namespace is exactly ``role``."""
    role = Role(role)
    return [p.value for p in Permission if p.role == role]
