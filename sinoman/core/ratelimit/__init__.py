"""Rate limiting for Sinoman: fixed-window counters, stores and request policy."""

from .limiter import RateLimiter, RateLimitResult, get_rate_limiter
from .policy import RateLimitOutcome, apply_rate_limit, get_client_ip, get_rate_limit_key, resolve_context
from .store import MemoryStore, RateLimitEntry, RateLimitStore, RedisStore
from .suspicious import SuspiciousActivity, check_suspicious_activity

__all__ = [
    "RateLimiter",
    "RateLimitResult",
    "get_rate_limiter",
    "RateLimitOutcome",
    "apply_rate_limit",
    "get_client_ip",
    "get_rate_limit_key",
    "resolve_context",
    "MemoryStore",
    "RateLimitEntry",
    "RateLimitStore",
    "RedisStore",
    "SuspiciousActivity",
    "check_suspicious_activity",
]
