"""Security administration endpoints: audit logs, alerts and retention."""

from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Query as SAQuery, Session

from sinoman.api.deps import PermissionDependency, get_audit_logger, get_db
from sinoman.core.rbac import AccessContext, Permission, Role
from sinoman.db.models import AuditLog, SecurityAlert
from sinoman.services.audit import AuditLogger, DataAction

router = APIRouter(prefix="/admin/security", tags=["security"])

view_audit_logs = PermissionDependency(Permission.ADMIN_VIEW_AUDIT_LOGS)
manage_security = PermissionDependency(Permission.SUPER_ADMIN_SECURITY_MANAGEMENT)


# Schemas
class AuditLogResponse(BaseModel):
    id: str
    level: str
    action: str
    resource: str
    user_id: Optional[str]
    tenant_id: Optional[str]
    ip_address: Optional[str]
    user_agent: Optional[str]
    session_id: Optional[str]
    request_id: Optional[str]
    metadata: Optional[dict] = Field(None, validation_alias=AliasChoices("event_metadata", "metadata"))
    success: bool
    error_message: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class AuditLogListResponse(BaseModel):
    items: List[AuditLogResponse]
    total: int
    page: int
    per_page: int


class SecurityAlertResponse(BaseModel):
    id: str
    event_type: str
    severity: str
    description: str
    user_id: Optional[str]
    tenant_id: Optional[str]
    ip_address: Optional[str]
    metadata: Optional[dict] = Field(None, validation_alias=AliasChoices("alert_metadata", "metadata"))
    webhook_attempted: bool
    webhook_delivered: Optional[bool]
    webhook_status_code: Optional[int]
    webhook_error: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class SecurityAlertListResponse(BaseModel):
    items: List[SecurityAlertResponse]
    total: int
    page: int
    per_page: int


class SecuritySummaryResponse(BaseModel):
    total_audit_logs: int
    security_alerts: int
    rate_limit_violations: int
    suspicious_activities: int
    auth_failures: int
    admin_actions: int
    active_users: int
    since: datetime


class CleanupResponse(BaseModel):
    deleted: int
    retention_days: int


def _scope_to_tenant(query: SAQuery, model, context: AccessContext) -> SAQuery:
    """Restrict a query to the caller's tenant unless they are a super admin."""
    if context.role == Role.SUPER_ADMIN:
        return query
    return query.filter(model.tenant_id == context.tenant_id)


# Endpoints
@router.get("/logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    db: Session = Depends(get_db),
    context: AccessContext = Depends(view_audit_logs),
    audit_logger: AuditLogger = Depends(get_audit_logger),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
    level: Optional[str] = None,
    action: Optional[str] = None,
    resource: Optional[str] = None,
    user_id: Optional[str] = None,
    success: Optional[bool] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    """
    List audit logs visible to the caller.

    Supports filtering by level, action, resource, user, outcome and date range.
    """
    query = _scope_to_tenant(db.query(AuditLog), AuditLog, context)

    if level:
        query = query.filter(AuditLog.level == level)
    if action:
        query = query.filter(AuditLog.action == action)
    if resource:
        query = query.filter(AuditLog.resource == resource)
    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    if success is not None:
        query = query.filter(AuditLog.success == success)
    if start_date:
        query = query.filter(AuditLog.created_at >= start_date)
    if end_date:
        query = query.filter(AuditLog.created_at <= end_date)

    total = query.count()
    logs = query.order_by(AuditLog.created_at.desc()).offset((page - 1) * per_page).limit(per_page).all()
    items = [AuditLogResponse.model_validate(log) for log in logs]

    await audit_logger.log_data_access(
        "audit_logs",
        DataAction.READ,
        context.user_id,
        context.tenant_id,
        True,
        details={"page": page, "per_page": per_page, "returned": len(items)},
        request=context.to_request_meta(),
    )

    return AuditLogListResponse(items=items, total=total, page=page, per_page=per_page)


@router.get("/alerts", response_model=SecurityAlertListResponse)
def list_security_alerts(
    db: Session = Depends(get_db),
    context: AccessContext = Depends(view_audit_logs),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    event_type: Optional[str] = None,
):
    query = _scope_to_tenant(db.query(SecurityAlert), SecurityAlert, context)
    if event_type:
        query = query.filter(SecurityAlert.event_type == event_type)

    total = query.count()
    alerts = query.order_by(SecurityAlert.created_at.desc()).offset((page - 1) * per_page).limit(per_page).all()

    return SecurityAlertListResponse(
        items=[SecurityAlertResponse.model_validate(alert) for alert in alerts],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get("/summary", response_model=SecuritySummaryResponse)
def security_summary(
    db: Session = Depends(get_db),
    context: AccessContext = Depends(view_audit_logs),
):
    """Security metrics for the last 24 hours."""
    since = datetime.utcnow() - timedelta(days=1)

    def logs() -> SAQuery:
        return _scope_to_tenant(db.query(AuditLog), AuditLog, context).filter(AuditLog.created_at >= since)

    alerts = _scope_to_tenant(db.query(SecurityAlert), SecurityAlert, context).filter(
        SecurityAlert.created_at >= since
    )

    active_users = (
        logs()
        .filter(AuditLog.user_id.isnot(None))
        .with_entities(func.count(func.distinct(AuditLog.user_id)))
        .scalar()
    )

    return SecuritySummaryResponse(
        total_audit_logs=logs().count(),
        security_alerts=alerts.count(),
        rate_limit_violations=logs().filter(AuditLog.action == "security_event_suspicious_activity").count(),
        suspicious_activities=alerts.filter(SecurityAlert.event_type == "suspicious_activity").count(),
        auth_failures=logs().filter(AuditLog.action.like("auth\\_%", escape="\\"), AuditLog.success == False).count(),  # noqa: E712
        admin_actions=logs().filter(AuditLog.action.like("admin\\_%", escape="\\")).count(),
        active_users=active_users or 0,
        since=since,
    )


@router.post("/cleanup", response_model=CleanupResponse)
async def cleanup_audit_logs(
    context: AccessContext = Depends(manage_security),
    audit_logger: AuditLogger = Depends(get_audit_logger),
):
    """Run the audit log retention sweep now."""
    deleted = await audit_logger.cleanup_old_logs()
    await audit_logger.log_admin_action(
        "cleanup_audit_logs",
        target_user_id=context.user_id,
        admin_user_id=context.user_id,
        tenant_id=context.tenant_id,
        success=True,
        details={"deleted": deleted},
        request=context.to_request_meta(),
    )
    return CleanupResponse(deleted=deleted, retention_days=audit_logger.settings.audit_retention_days)
