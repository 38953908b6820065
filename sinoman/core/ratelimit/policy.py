"""Request-level rate limiting policy.

Derives the client identity and per-context key from a request, runs the
limiter and produces the X-RateLimit-* headers. Limiter faults fail open.
"""

import hashlib
import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Optional

from fastapi import Request

from sinoman.core.config import RATE_LIMIT_CONTEXTS, Settings, get_settings

from .limiter import RateLimiter

if TYPE_CHECKING:
    from sinoman.services.audit import AuditLogger

logger = logging.getLogger(__name__)

UPLOAD_PATH_MARKER = "/upload"

# Only endpoints that accept credentials use the auth budget
CREDENTIAL_PATHS = frozenset({"/api/auth/login"})


@dataclass
class RateLimitOutcome:
    success: bool
    headers: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None


def get_client_ip(request: Request) -> str:
    """Extract client IP, preferring CDN and proxy headers over the socket peer."""
    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


def get_rate_limit_key(request: Request, context: str = "general") -> str:
    ip = get_client_ip(request)

    # Login throttling ignores the client fingerprint
    if context == "auth":
        return f"auth:{ip}"

    if context == "admin":
        user_agent = request.headers.get("user-agent") or "unknown"
        ua_hash = hashlib.sha256(user_agent.encode()).hexdigest()[:16]
        return f"admin:{ip}:{ua_hash}"

    if context == "upload":
        return f"upload:{ip}:{request.url.path}"

    return f"general:{ip}"


def resolve_context(path: str) -> str:
    """Pick the rate-limit context for a request path."""
    if path.rstrip("/") in CREDENTIAL_PATHS:
        return "auth"
    if UPLOAD_PATH_MARKER in path:
        return "upload"
    if path.startswith("/api/admin/"):
        return "admin"
    return "general"


async def apply_rate_limit(
    request: Request,
    context: str,
    limiter: RateLimiter,
    audit_logger: Optional["AuditLogger"] = None,
    settings: Optional[Settings] = None,
) -> RateLimitOutcome:
    """
    Count the request against its context and build the response headers.

    A rejection is logged as a medium ``suspicious_activity`` security event.
    Any error inside the limiter admits the request with a full budget.
    """
    from sinoman.services.audit import RequestMeta, SecurityEvent, SecurityEventType, Severity

    settings = settings or get_settings()
    if context not in RATE_LIMIT_CONTEXTS:
        context = "general"
    config = settings.rate_limit_config(context)

    try:
        identifier = get_rate_limit_key(request, context)
        result = await limiter.check_limit(identifier, config)

        headers = {
            "X-RateLimit-Limit": str(config.max_requests),
            "X-RateLimit-Remaining": str(result.remaining),
            "X-RateLimit-Reset": str(math.ceil(result.reset_time / 1000)),
        }

        if result.allowed:
            return RateLimitOutcome(success=True, headers=headers)

        ip = get_client_ip(request)
        user_agent = request.headers.get("user-agent")
        if audit_logger is not None:
            await audit_logger.log_security_event(
                SecurityEvent(
                    type=SecurityEventType.SUSPICIOUS_ACTIVITY,
                    severity=Severity.MEDIUM,
                    description=f"Rate limit exceeded for {context}",
                    ip_address=ip,
                    details={
                        "context": context,
                        "total_hits": result.total_hits,
                        "limit": config.max_requests,
                        "window_ms": config.window_ms,
                        "user_agent": user_agent,
                        "path": request.url.path,
                    },
                ),
                RequestMeta(ip=ip, user_agent=user_agent),
            )

        retry_after = max(1, math.ceil((result.reset_time - limiter.clock()) / 1000))
        headers["Retry-After"] = str(retry_after)
        return RateLimitOutcome(
            success=False,
            headers=headers,
            error=(
                f"Rate limit exceeded. Max {config.max_requests} requests per "
                f"{math.ceil(config.window_ms / 1000)} seconds."
            ),
        )
    except Exception:
        logger.exception("[RATE_LIMITER] Error checking rate limit")
        return RateLimitOutcome(
            success=True,
            headers={
                "X-RateLimit-Limit": str(config.max_requests),
                "X-RateLimit-Remaining": str(config.max_requests),
                "X-RateLimit-Reset": str(math.ceil((limiter.clock() + config.window_ms) / 1000)),
            },
        )
