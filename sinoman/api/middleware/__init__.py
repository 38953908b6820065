"""HTTP middleware for Sinoman."""

from .rate_limit import RateLimitMiddleware
from .security_headers import SecurityHeadersMiddleware
from .suspicious import SuspiciousActivityMiddleware

__all__ = [
    "RateLimitMiddleware",
    "SecurityHeadersMiddleware",
    "SuspiciousActivityMiddleware",
]
