import logging
import uuid
from typing import Generator, Optional, Union

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from sinoman.api.errors import auth_required, internal_error, permission_denied
from sinoman.core.config import Settings
from sinoman.core.ratelimit import RateLimiter, get_client_ip
from sinoman.core.rbac import AccessContext, Permission, PermissionManager, create_access_context
from sinoman.core.rbac.lookup import SQLResourceLookup
from sinoman.core.security import decode_token
from sinoman.services.audit import AuditLogger

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Generator:
    """Database session dependency."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_audit_logger(request: Request) -> AuditLogger:
    return request.app.state.audit_logger


def get_rate_limiter_dep(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def get_request_id(request: Request) -> str:
    """Per-request id, taken from X-Request-ID when the client sends one."""
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id
    return request_id


def get_permission_manager(
    db: Session = Depends(get_db),
    audit_logger: AuditLogger = Depends(get_audit_logger),
    settings: Settings = Depends(get_settings_dep),
) -> PermissionManager:
    return PermissionManager(
        audit_logger,
        SQLResourceLookup(db),
        deny_unknown_resource_types=settings.deny_unknown_resource_types,
    )


def get_current_context(
    request: Request,
    db: Session = Depends(get_db),
    token: Optional[str] = Depends(oauth2_scheme),
) -> Optional[AccessContext]:
    """
    Build the AccessContext for the bearer token on the request.

    Returns None when the request is unauthenticated, the token is invalid or
    the member is unknown or inactive.
    """
    if not token:
        return None

    claims = decode_token(token)
    if claims is None:
        return None

    session_id = claims.get("sid")
    request.state.session_id = session_id

    context = create_access_context(
        SQLResourceLookup(db),
        claims["sub"],
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        session_id=session_id,
        request_id=get_request_id(request),
    )
    request.state.access_context = context
    return context


def require_context(context: Optional[AccessContext] = Depends(get_current_context)) -> AccessContext:
    """Require an authenticated member."""
    if context is None:
        raise auth_required()
    return context


class PermissionDependency:
    """
    FastAPI dependency for permission checking.

    Responds 401 without a valid session, 403 if the permission is missing
    and 500 if the check itself fails. Returns the AccessContext on success.

    Usage:
        @router.get("/logs")
        async def list_logs(
            context: AccessContext = Depends(PermissionDependency(Permission.ADMIN_VIEW_AUDIT_LOGS)),
        ):
            ...
    """

    def __init__(self, permission: Union[str, Permission]):
        self.permission = str(permission)

    async def __call__(
        self,
        context: Optional[AccessContext] = Depends(get_current_context),
        manager: PermissionManager = Depends(get_permission_manager),
    ) -> AccessContext:
        if context is None:
            raise auth_required()

        try:
            allowed = await manager.has_permission(context, self.permission)
        except Exception:
            logger.exception("[PERMISSIONS] Error in permission dependency")
            raise internal_error()

        if not allowed:
            raise permission_denied(self.permission)
        return context


def require_permission(permission: Union[str, Permission]):
    """Shorthand for ``Depends(PermissionDependency(permission))``."""
    return Depends(PermissionDependency(permission))
