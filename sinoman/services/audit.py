"""Audit logging service for Sinoman.

Records structured events to the audit_logs table:
- Generic audit entries (log)
- Security events, with alerting for critical severity
- Authentication attempts
- Financial transactions
- Admin actions
- Data access

Metadata is redacted against the configured sensitive-field list before it is
persisted. Audit writes never raise into the calling business operation: a
failed write degrades to a log record on the ``sinoman.audit`` logger.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, Optional, Union

import httpx
from fastapi import Request
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from sinoman.core.config import Settings, get_settings
from sinoman.db.models.audit import AuditLevel, AuditLog, SecurityAlert

logger = logging.getLogger("sinoman.audit")


class Severity(str, Enum):
    """Severity of a security event."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SecurityEventType(str, Enum):
    AUTH_ATTEMPT = "auth_attempt"
    AUTH_SUCCESS = "auth_success"
    AUTH_FAILURE = "auth_failure"
    PERMISSION_DENIED = "permission_denied"
    DATA_ACCESS = "data_access"
    DATA_MODIFICATION = "data_modification"
    ADMIN_ACTION = "admin_action"
    FINANCIAL_TRANSACTION = "financial_transaction"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"
    SYSTEM_ERROR = "system_error"


class AuthEventType(str, Enum):
    LOGIN = "login"
    LOGOUT = "logout"
    REGISTER = "register"
    PASSWORD_RESET = "password_reset"


class DataAction(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class SecurityEvent:
    type: SecurityEventType
    severity: Severity
    description: str
    user_id: Optional[str] = None
    tenant_id: Optional[str] = None
    ip_address: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RequestMeta:
    """Request-scoped attributes copied onto audit rows."""
    ip: Optional[str] = None
    user_agent: Optional[str] = None
    user_id: Optional[str] = None
    tenant_id: Optional[str] = None
    session_id: Optional[str] = None
    request_id: Optional[str] = None

    @classmethod
    def from_request(cls, request: Request, **overrides: Any) -> "RequestMeta":
        """Build request metadata from an incoming FastAPI request."""
        from sinoman.core.ratelimit.policy import get_client_ip

        values = {
            "ip": get_client_ip(request),
            "user_agent": request.headers.get("user-agent"),
            "session_id": getattr(request.state, "session_id", None),
            "request_id": getattr(request.state, "request_id", None),
        }
        values.update(overrides)
        return cls(**values)


def _value(item: Any) -> Any:
    return item.value if isinstance(item, Enum) else item


def redact_sensitive(
    data: Any,
    sensitive_fields: Iterable[str],
    marker: str = "***REDACTED***",
) -> Any:
    """
    Redact sensitive keys at any nesting depth.

    Keys are matched exactly. The value of a sensitive key is replaced whole,
    otherwise nested dicts and lists are walked.
    """
    fields = sensitive_fields if isinstance(sensitive_fields, (set, frozenset)) else set(sensitive_fields)
    if isinstance(data, dict):
        return {
            k: marker if k in fields else redact_sensitive(v, fields, marker)
            for k, v in data.items()
        }
    elif isinstance(data, (list, tuple)):
        return [redact_sensitive(item, fields, marker) for item in data]
    return data


def severity_to_level(severity: Severity) -> AuditLevel:
    """critical/high map to error, medium to warn, everything else to info."""
    severity = Severity(_value(severity))
    if severity in (Severity.CRITICAL, Severity.HIGH):
        return AuditLevel.ERROR
    if severity == Severity.MEDIUM:
        return AuditLevel.WARN
    return AuditLevel.INFO


class AuditLogger:
    """
    Writes audit rows and escalates critical security events.

    Each write uses its own short-lived session from ``session_factory`` so an
    audit row is committed independently of the caller's transaction.

    Usage:
        audit = AuditLogger(SessionLocal)
        await audit.log_financial_transaction(
            "deposit", 100000, member.id, member.tenant_id, True,
            {"savings_type": "pokok"},
        )
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            session_factory: Callable returning a new SQLAlchemy session
            settings: Settings to use instead of the cached application settings
            transport: Optional httpx transport for the alert webhook client
        """
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.transport = transport
        self.sensitive_fields = frozenset(self.settings.audit_sensitive_fields)

    @property
    def is_enabled(self) -> bool:
        return self.settings.enable_audit_log

    def sanitize_metadata(self, metadata: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Redact sensitive keys and coerce values (Decimal, datetime, UUID) to JSON types."""
        return jsonable_encoder(
            redact_sensitive(metadata or {}, self.sensitive_fields, self.settings.audit_redaction_marker)
        )

    async def log(
        self,
        *,
        level: AuditLevel,
        action: str,
        resource: str,
        success: bool,
        user_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
        request_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> bool:
        """
        Record one audit entry.

        Returns:
            True if the row was persisted, False if auditing is disabled or
            the write failed (the entry is then only written to the log).
        """
        if not self.is_enabled:
            return False

        level = AuditLevel(_value(level))
        timestamp = datetime.utcnow()
        entry = AuditLog.create_entry(
            level,
            action,
            resource,
            success=success,
            timestamp=timestamp,
            user_id=user_id,
            tenant_id=tenant_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata=self.sanitize_metadata(metadata),
            session_id=session_id,
            request_id=request_id,
            error_message=error_message,
        )

        if not self.settings.is_production:
            logger.info(
                "[AUDIT] %s: %s resource=%s user_id=%s success=%s metadata=%s",
                level.value.upper(), action, resource, user_id, success, entry.event_metadata,
            )

        db = self.session_factory()
        try:
            db.add(entry)
            db.commit()
            return True
        except Exception:
            db.rollback()
            logger.exception("[AUDIT] Failed to save audit log")
            logger.warning(
                "[AUDIT] Fallback log: level=%s action=%s resource=%s user_id=%s tenant_id=%s "
                "success=%s error_message=%s metadata=%s timestamp=%s",
                level.value, action, resource, user_id, tenant_id,
                success, error_message, entry.event_metadata, timestamp.isoformat(),
            )
            return False
        finally:
            db.close()

    async def log_security_event(
        self,
        event: SecurityEvent,
        request: Optional[RequestMeta] = None,
    ) -> None:
        """Log a security event; critical events additionally raise an alert."""
        request = request or RequestMeta()
        severity = Severity(_value(event.severity))
        event_type = _value(event.type)

        await self.log(
            level=severity_to_level(severity),
            action=f"security_event_{event_type}",
            resource="security",
            user_id=event.user_id or request.user_id,
            tenant_id=event.tenant_id or request.tenant_id,
            ip_address=event.ip_address or request.ip,
            user_agent=request.user_agent,
            session_id=request.session_id,
            request_id=request.request_id,
            success=severity in (Severity.LOW, Severity.MEDIUM),
            error_message=event.description if severity in (Severity.HIGH, Severity.CRITICAL) else None,
            metadata={
                "event_type": event_type,
                "severity": severity.value,
                "description": event.description,
                **(event.details or {}),
            },
        )

        if severity == Severity.CRITICAL:
            await self._send_security_alert(event, request)

    async def log_auth(
        self,
        auth_type: AuthEventType,
        success: bool,
        user_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        request: Optional[RequestMeta] = None,
    ) -> None:
        """
        Log an authentication attempt.

        A failure writes two rows, the auth entry and an ``auth_failure``
        security event, sharing a ``correlation_id`` in their metadata.
        """
        request = request or RequestMeta()
        auth_type = _value(auth_type)
        details = dict(details or {})
        if not success:
            details["correlation_id"] = uuid.uuid4().hex

        await self.log(
            level=AuditLevel.INFO if success else AuditLevel.WARN,
            action=f"auth_{auth_type}",
            resource="authentication",
            user_id=user_id,
            tenant_id=request.tenant_id,
            ip_address=request.ip,
            user_agent=request.user_agent,
            session_id=request.session_id,
            request_id=request.request_id,
            success=success,
            error_message=None if success else f"Failed {auth_type} attempt",
            metadata=details,
        )

        if not success:
            await self.log_security_event(
                SecurityEvent(
                    type=SecurityEventType.AUTH_FAILURE,
                    severity=Severity.MEDIUM,
                    description=f"Failed {auth_type} attempt",
                    user_id=user_id,
                    details=details,
                ),
                request,
            )

    async def log_financial_transaction(
        self,
        action: str,
        amount: Union[int, float, Decimal],
        user_id: str,
        tenant_id: str,
        success: bool,
        details: Optional[Dict[str, Any]] = None,
        request: Optional[RequestMeta] = None,
    ) -> None:
        request = request or RequestMeta()
        await self.log(
            level=AuditLevel.INFO if success else AuditLevel.ERROR,
            action=f"financial_{action}",
            resource="financial_transaction",
            user_id=user_id,
            tenant_id=tenant_id,
            ip_address=request.ip,
            user_agent=request.user_agent,
            session_id=request.session_id,
            request_id=request.request_id,
            success=success,
            error_message=None if success else f"Failed financial transaction: {action}",
            metadata={"amount": amount, "action": action, **(details or {})},
        )

    async def log_admin_action(
        self,
        action: str,
        target_user_id: str,
        admin_user_id: str,
        tenant_id: str,
        success: bool,
        details: Optional[Dict[str, Any]] = None,
        request: Optional[RequestMeta] = None,
    ) -> None:
        request = request or RequestMeta()
        await self.log(
            level=AuditLevel.INFO if success else AuditLevel.ERROR,
            action=f"admin_{action}",
            resource="admin_panel",
            user_id=admin_user_id,
            tenant_id=tenant_id,
            ip_address=request.ip,
            user_agent=request.user_agent,
            session_id=request.session_id,
            request_id=request.request_id,
            success=success,
            error_message=None if success else f"Failed admin action: {action}",
            metadata={
                "target_user_id": target_user_id,
                "admin_user_id": admin_user_id,
                "action": action,
                **(details or {}),
            },
        )

    async def log_data_access(
        self,
        resource: str,
        action: DataAction,
        user_id: str,
        tenant_id: str,
        success: bool,
        details: Optional[Dict[str, Any]] = None,
        request: Optional[RequestMeta] = None,
    ) -> None:
        request = request or RequestMeta()
        action = _value(action)
        await self.log(
            level=AuditLevel.INFO if success else AuditLevel.WARN,
            action=f"data_{action}",
            resource=resource,
            user_id=user_id,
            tenant_id=tenant_id,
            ip_address=request.ip,
            user_agent=request.user_agent,
            session_id=request.session_id,
            request_id=request.request_id,
            success=success,
            error_message=None if success else f"Failed data access: {action} on {resource}",
            metadata={"action": action, "resource": resource, **(details or {})},
        )

    async def _send_security_alert(self, event: SecurityEvent, request: RequestMeta) -> None:
        """Console alert, single webhook attempt, then a durable security_alerts row."""
        timestamp = datetime.utcnow()
        details = self.sanitize_metadata(event.details)
        alert_data = {
            "timestamp": timestamp.isoformat(),
            "event_type": _value(event.type),
            "severity": _value(event.severity),
            "description": event.description,
            "user_id": event.user_id or request.user_id,
            "tenant_id": event.tenant_id or request.tenant_id,
            "ip_address": event.ip_address or request.ip,
            "user_agent": request.user_agent,
            "details": details,
        }

        logger.critical("CRITICAL SECURITY ALERT: %s", alert_data)

        alert = SecurityAlert(
            event_type=alert_data["event_type"],
            severity=alert_data["severity"],
            description=event.description,
            user_id=alert_data["user_id"],
            tenant_id=alert_data["tenant_id"],
            ip_address=alert_data["ip_address"],
            user_agent=request.user_agent,
            session_id=request.session_id,
            request_id=request.request_id,
            alert_metadata=details,
            created_at=timestamp,
        )

        webhook_url = self.settings.monitoring_webhook_url
        if webhook_url:
            alert.webhook_attempted = True
            try:
                status_code = await self._deliver_webhook(
                    webhook_url, {"alert_type": "security_critical", **alert_data}
                )
                alert.webhook_delivered = True
                alert.webhook_status_code = status_code
            except httpx.HTTPStatusError as e:
                logger.error("[AUDIT] Webhook alert rejected with status %s", e.response.status_code)
                alert.webhook_delivered = False
                alert.webhook_status_code = e.response.status_code
                alert.webhook_error = str(e)
            except httpx.HTTPError as e:
                logger.error("[AUDIT] Failed to send webhook alert: %s", e)
                alert.webhook_delivered = False
                alert.webhook_error = str(e)

        db = self.session_factory()
        try:
            db.add(alert)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("[AUDIT] Failed to save security alert")
        finally:
            db.close()

    async def _deliver_webhook(self, url: str, payload: Dict[str, Any]) -> int:
        """POST the alert payload once. Returns the response status code."""
        async with httpx.AsyncClient(
            timeout=self.settings.webhook_timeout, transport=self.transport
        ) as client:
            response = await client.post(
                url, json=payload, headers={"Content-Type": "application/json"}
            )
            response.raise_for_status()
            return response.status_code

    async def cleanup_old_logs(self) -> int:
        """
        Delete audit rows older than the retention period.

        Security alerts are not affected. Intended to be called by an external
        scheduler (see sinoman.workers.maintenance).

        Returns:
            Number of deleted rows, 0 if the sweep failed.
        """
        retention_days = self.settings.audit_retention_days
        cutoff = datetime.utcnow() - timedelta(days=retention_days)

        db = self.session_factory()
        try:
            deleted = (
                db.query(AuditLog)
                .filter(AuditLog.created_at < cutoff)
                .delete(synchronize_session=False)
            )
            db.commit()
            logger.info("[AUDIT] Cleaned up %d audit logs older than %d days", deleted, retention_days)
            return deleted
        except Exception:
            db.rollback()
            logger.exception("[AUDIT] Failed to cleanup old logs")
            return 0
        finally:
            db.close()
