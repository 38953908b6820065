"""Suspicious request detection middleware.

Every request matching the hostile-pattern heuristics is recorded as a
``suspicious_activity`` security event. Requests are only rejected when
``block_suspicious_requests`` is enabled and the match is high severity.
Health probes are not inspected.
"""

import logging
from typing import Callable, Optional

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from sinoman.core.config import Settings
from sinoman.core.ratelimit import check_suspicious_activity, get_client_ip
from sinoman.services.audit import AuditLogger, RequestMeta, SecurityEvent, SecurityEventType

from .rate_limit import EXCLUDED_PATHS

logger = logging.getLogger(__name__)


class SuspiciousActivityMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(app)
        self.audit_logger = audit_logger
        self.settings = settings

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        result = check_suspicious_activity(request)
        if not result.is_suspicious:
            return await call_next(request)

        settings = self.settings or request.app.state.settings
        audit_logger = self.audit_logger or request.app.state.audit_logger
        ip = get_client_ip(request)
        user_agent = request.headers.get("user-agent")

        logger.warning("[SECURITY] %s from %s on %s", result.reason, ip, request.url.path)
        await audit_logger.log_security_event(
            SecurityEvent(
                type=SecurityEventType.SUSPICIOUS_ACTIVITY,
                severity=result.severity,
                description=result.reason,
                ip_address=ip,
                details={
                    "path": request.url.path,
                    "query": request.url.query,
                    "method": request.method,
                    "user_agent": user_agent,
                },
            ),
            RequestMeta(ip=ip, user_agent=user_agent),
        )

        if settings.block_suspicious_requests and result.severity == "high":
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={"error": "Request rejected", "code": "SUSPICIOUS_REQUEST"},
            )

        return await call_next(request)
