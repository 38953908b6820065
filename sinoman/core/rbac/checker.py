"""Permission checking for Sinoman.

Resolves whether an actor may perform an action, optionally against a specific
owned resource. Every decision is a pure function of the access context, the
static role table and at most one resource lookup.

Permission decisions fail closed: any unexpected error is logged as a
``system_error`` security event and treated as a denial.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, FrozenSet, Iterable, NamedTuple, Optional, Union

from .permissions import Permission, Role
from .roles import ROLE_PERMISSIONS, is_staff

if TYPE_CHECKING:
    from sinoman.services.audit import AuditLogger, RequestMeta

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccessContext:
    """The authenticated principal making a request. Lives for one request."""
    user_id: str
    tenant_id: str
    role: Role
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    request_id: Optional[str] = None

    def to_request_meta(self) -> "RequestMeta":
        from sinoman.services.audit import RequestMeta

        return RequestMeta(
            ip=self.ip_address,
            user_agent=self.user_agent,
            user_id=self.user_id,
            tenant_id=self.tenant_id,
            session_id=self.session_id,
            request_id=self.request_id,
        )


class MemberRoleAndTenant(NamedTuple):
    role: str
    tenant_id: str


class ResourceOwnership(NamedTuple):
    owner_id: str
    tenant_id: str


class ResourceLookup(ABC):
    """Data source for the member and resource reads permission checks need."""

    @abstractmethod
    def find_member_role_and_tenant(self, user_id: str) -> Optional[MemberRoleAndTenant]:
        """Return the stored role and tenant of an active member, or None."""

    @abstractmethod
    def find_resource_owner_and_tenant(
        self, resource_type: str, resource_id: str
    ) -> Optional[ResourceOwnership]:
        """Return the owning member id and tenant of a resource, or None."""


class PermissionManager:
    """
    Evaluates permissions and resource ownership for an AccessContext.

    Usage:
        manager = PermissionManager(audit_logger, SQLResourceLookup(db))
        if await manager.has_resource_access(
            context, Permission.MEMBER_VIEW_TRANSACTIONS, "transaction", transaction_id
        ):
            ...
    """

    def __init__(
        self,
        audit_logger: "AuditLogger",
        lookup: Optional[ResourceLookup] = None,
        deny_unknown_resource_types: bool = False,
    ):
        """
        Args:
            audit_logger: Sink for denial and error events
            lookup: Resource data source; without one, every resource check is denied
            deny_unknown_resource_types: Deny resource types without an ownership check
                instead of falling back to the basic permission result
        """
        self.audit_logger = audit_logger
        self.lookup = lookup
        self.deny_unknown_resource_types = deny_unknown_resource_types
        self._resource_checks: Dict[str, Callable[[AccessContext, str], Awaitable[bool]]] = {
            "member": self.check_member_access,
            "transaction": self.check_transaction_access,
            "savings_account": self.check_savings_access,
            "waste_balance": self.check_waste_access,
            "order": self.check_order_access,
        }

    @property
    def resource_types(self) -> FrozenSet[str]:
        return frozenset(self._resource_checks)

    def _role_permissions(self, role: Union[str, Role]) -> FrozenSet[str]:
        return ROLE_PERMISSIONS[Role(role)]

    async def _log_event(
        self,
        context: AccessContext,
        event_type: str,
        severity: str,
        description: str,
        details: Dict[str, Any],
    ) -> None:
        from sinoman.services.audit import SecurityEvent

        await self.audit_logger.log_security_event(
            SecurityEvent(
                type=event_type,
                severity=severity,
                description=description,
                user_id=context.user_id,
                tenant_id=context.tenant_id,
                details=details,
            ),
            context.to_request_meta(),
        )

    async def has_permission(self, context: AccessContext, permission: Union[str, Permission]) -> bool:
        """Check if the actor's role grants a permission. super_admin always passes."""
        perm_str = str(permission)
        try:
            if context.role == Role.SUPER_ADMIN:
                return True

            granted = perm_str in self._role_permissions(context.role)
            if not granted:
                await self._log_event(
                    context,
                    "permission_denied",
                    "low",
                    f"Permission denied: {perm_str}",
                    {"permission": perm_str, "user_role": str(context.role), "required_permission": perm_str},
                )
            return granted
        except Exception as e:
            logger.exception("[PERMISSIONS] Error checking permission %s", perm_str)
            await self._log_event(
                context,
                "system_error",
                "medium",
                "Error checking permission",
                {"permission": perm_str, "error": str(e)},
            )
            return False

    async def has_permissions(
        self, context: AccessContext, permissions: Iterable[Union[str, Permission]]
    ) -> bool:
        """True only if every permission is granted. Each one is checked and audited."""
        results = [await self.has_permission(context, p) for p in permissions]
        return all(results)

    async def has_resource_access(
        self,
        context: AccessContext,
        permission: Union[str, Permission],
        resource_type: str,
        resource_id: str,
    ) -> bool:
        """Check a permission and then the actor's access to a specific resource."""
        try:
            if not await self.has_permission(context, permission):
                return False

            check = self._resource_checks.get(resource_type)
            if check is None:
                if self.deny_unknown_resource_types:
                    logger.warning("[PERMISSIONS] Denying unregistered resource type %r", resource_type)
                    return False
                logger.debug("[PERMISSIONS] No ownership check for resource type %r", resource_type)
                return True

            return await check(context, resource_id)
        except Exception:
            logger.exception("[PERMISSIONS] Error checking resource access")
            return False

    def validate_tenant_access(self, context: AccessContext, target_tenant_id: Optional[str]) -> bool:
        """super_admin reaches every tenant; everyone else only their own."""
        if context.role == Role.SUPER_ADMIN:
            return True
        return target_tenant_id is not None and context.tenant_id == target_tenant_id

    async def _check_owned_resource(
        self, context: AccessContext, resource_type: str, resource_id: str
    ) -> bool:
        if self.lookup is None:
            return False

        try:
            resource = self.lookup.find_resource_owner_and_tenant(resource_type, resource_id)
        except Exception:
            logger.exception("[PERMISSIONS] Error looking up %s %s", resource_type, resource_id)
            return False

        if resource is None:
            return False

        if not self.validate_tenant_access(context, resource.tenant_id):
            return False

        if is_staff(context.role):
            return True

        return context.user_id == resource.owner_id

    async def check_member_access(self, context: AccessContext, member_id: str) -> bool:
        return await self._check_owned_resource(context, "member", member_id)

    async def check_transaction_access(self, context: AccessContext, transaction_id: str) -> bool:
        return await self._check_owned_resource(context, "transaction", transaction_id)

    async def check_savings_access(self, context: AccessContext, account_id: str) -> bool:
        return await self._check_owned_resource(context, "savings_account", account_id)

    async def check_waste_access(self, context: AccessContext, waste_balance_id: str) -> bool:
        return await self._check_owned_resource(context, "waste_balance", waste_balance_id)

    async def check_order_access(self, context: AccessContext, order_id: str) -> bool:
        return await self._check_owned_resource(context, "order", order_id)


def create_access_context(
    lookup: ResourceLookup,
    user_id: Optional[str],
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    session_id: Optional[str] = None,
    request_id: Optional[str] = None,
) -> Optional[AccessContext]:
    """
    Build the AccessContext for an authenticated member.

    Returns:
        None if there is no user, the member is unknown or inactive, the stored
        role is not recognised, or the lookup fails.
    """
    if not user_id:
        return None

    try:
        member = lookup.find_member_role_and_tenant(user_id)
    except Exception:
        logger.exception("[PERMISSIONS] Error creating access context")
        return None

    if member is None:
        return None

    try:
        role = Role(member.role)
    except ValueError:
        logger.warning("[PERMISSIONS] Member %s has unknown role %r", user_id, member.role)
        return None

    return AccessContext(
        user_id=user_id,
        tenant_id=member.tenant_id,
        role=role,
        ip_address=ip_address,
        user_agent=user_agent,
        session_id=session_id,
        request_id=request_id,
    )
