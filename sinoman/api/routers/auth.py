import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from sinoman.api.deps import get_audit_logger, get_db, get_settings_dep, require_context
from sinoman.api.errors import APIError, invalid_credentials
from sinoman.api.schemas.auth import LoginRequest, MemberResponse, Token
from sinoman.core.config import Settings
from sinoman.core.rbac import AccessContext
from sinoman.core.security import create_access_token, verify_password
from sinoman.db.models import Member
from sinoman.services.audit import AuditLogger, AuthEventType, RequestMeta

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=Token)
async def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db),
    audit_logger: AuditLogger = Depends(get_audit_logger),
    settings: Settings = Depends(get_settings_dep),
):
    """Login and get an access token. Every attempt is audited."""
    meta = RequestMeta.from_request(request)
    member = db.query(Member).filter(Member.email == payload.email).first()

    if not member or not verify_password(payload.password, member.password_hash):
        await audit_logger.log_auth(
            AuthEventType.LOGIN,
            False,
            user_id=member.id if member else None,
            details={"email": payload.email, "reason": "invalid_credentials"},
            request=meta,
        )
        raise invalid_credentials()

    meta.user_id = member.id
    meta.tenant_id = member.tenant_id

    if not member.is_active:
        await audit_logger.log_auth(
            AuthEventType.LOGIN,
            False,
            user_id=member.id,
            details={"email": payload.email, "reason": "inactive_member"},
            request=meta,
        )
        raise APIError(status.HTTP_403_FORBIDDEN, "Inactive member", "ACCOUNT_INACTIVE")

    member.last_login = datetime.utcnow()
    db.commit()

    meta.session_id = uuid.uuid4().hex
    access_token = create_access_token(member.id, session_id=meta.session_id)

    await audit_logger.log_auth(
        AuthEventType.LOGIN,
        True,
        user_id=member.id,
        details={"email": payload.email, "role": member.role},
        request=meta,
    )
    return Token(access_token=access_token, expires_in=settings.access_token_expire_minutes * 60)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    context: AccessContext = Depends(require_context),
    audit_logger: AuditLogger = Depends(get_audit_logger),
):
    """Record the end of a session. Tokens are stateless and simply expire."""
    await audit_logger.log_auth(
        AuthEventType.LOGOUT,
        True,
        user_id=context.user_id,
        request=context.to_request_meta(),
    )


@router.get("/me", response_model=MemberResponse)
def get_me(
    context: AccessContext = Depends(require_context),
    db: Session = Depends(get_db),
):
    """Get current member info."""
    return db.query(Member).filter(Member.id == context.user_id).first()
