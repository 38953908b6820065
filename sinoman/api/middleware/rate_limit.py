"""Rate limiting middleware for FastAPI.

Applies the fixed-window limiter to every request except health checks.
The context (and therefore the budget and key) is chosen from the path:
- /api/auth/login  -> auth (per IP)
- everything else under /api/auth -> general
- */upload*     -> upload (per IP and path)
- /api/admin/*  -> admin (per IP and user agent)
- everything else -> general (per IP)

Admitted responses carry X-RateLimit-Limit, X-RateLimit-Remaining and
X-RateLimit-Reset. Rejections are answered with 429 and Retry-After.
"""

from typing import Callable, Optional

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from sinoman.core.config import Settings
from sinoman.core.ratelimit import RateLimiter, apply_rate_limit, resolve_context
from sinoman.services.audit import AuditLogger

# Health probes skip rate limiting and suspicious-request inspection
EXCLUDED_PATHS = {
    "/health",
    "/health/live",
    "/health/ready",
}


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        limiter: Optional[RateLimiter] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[Settings] = None,
    ):
        super().__init__(app)
        self.limiter = limiter
        self.audit_logger = audit_logger
        self.settings = settings

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        state = request.app.state
        settings = self.settings or state.settings

        if not settings.rate_limit_enabled or request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        outcome = await apply_rate_limit(
            request,
            resolve_context(request.url.path),
            self.limiter or state.rate_limiter,
            self.audit_logger or state.audit_logger,
            settings,
        )

        if not outcome.success:
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"error": outcome.error, "code": "RATE_LIMIT_EXCEEDED"},
                headers=outcome.headers,
            )

        response = await call_next(request)
        for name, value in outcome.headers.items():
            response.headers[name] = value
        return response
