"""Audit log and security alert models for Sinoman.

Audit rows are insert-only from the application's point of view. The only
deletion path is the retention sweep (AuditLogger.cleanup_old_logs).
Security alerts are kept for incident review and are never swept.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, Dict, Any
from sqlalchemy import Column, String, DateTime, JSON, Text, Boolean, Integer

from sinoman.db.base import Base


class AuditLevel(str, Enum):
    """Levels for audit log entries."""
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    CRITICAL = "critical"


class AuditLog(Base):
    """Audit log entry recorded for every security- or business-relevant event."""
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    level = Column(String(20), nullable=False, default="info", index=True)
    action = Column(String(100), nullable=False, index=True)
    resource = Column(String(100), nullable=False, index=True)

    # Actor information
    user_id = Column(String(36), nullable=True, index=True)
    tenant_id = Column(String(36), nullable=True, index=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    session_id = Column(String(64), nullable=True)
    request_id = Column(String(64), nullable=True)  # For distributed tracing

    # "metadata" is reserved on declarative classes, hence the attribute name
    event_metadata = Column("metadata", JSON, nullable=True)

    success = Column(Boolean, nullable=False, default=True, index=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self) -> str:
        return f"<AuditLog {self.level} {self.action} on {self.resource} by user {self.user_id}>"

    @classmethod
    def create_entry(
        cls,
        level: AuditLevel,
        action: str,
        resource: str,
        *,
        success: bool,
        timestamp: datetime,
        user_id: Optional[str] = None,
        tenant_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None,
        request_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> "AuditLog":
        """Factory method to create a new audit log row."""
        return cls(
            level=level.value if isinstance(level, AuditLevel) else level,
            action=action,
            resource=resource,
            user_id=user_id,
            tenant_id=tenant_id,
            ip_address=ip_address,
            user_agent=user_agent,
            event_metadata=metadata,
            session_id=session_id,
            request_id=request_id,
            success=success,
            error_message=error_message,
            created_at=timestamp,
        )


class SecurityAlert(Base):
    """
    Durable record of a critical security event.

    Denormalized copy of the triggering event plus the outcome of the
    webhook delivery attempt.
    """
    __tablename__ = "security_alerts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    event_type = Column(String(50), nullable=False, index=True)
    severity = Column(String(20), nullable=False)
    description = Column(Text, nullable=False)

    user_id = Column(String(36), nullable=True, index=True)
    tenant_id = Column(String(36), nullable=True, index=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    session_id = Column(String(64), nullable=True)
    request_id = Column(String(64), nullable=True)
    alert_metadata = Column("metadata", JSON, nullable=True)

    # Delivery tracking (single attempt)
    webhook_attempted = Column(Boolean, nullable=False, default=False)
    webhook_delivered = Column(Boolean, nullable=True)
    webhook_status_code = Column(Integer, nullable=True)
    webhook_error = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self) -> str:
        return f"<SecurityAlert {self.event_type} ({self.severity}) tenant={self.tenant_id}>"
