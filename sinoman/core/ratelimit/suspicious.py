"""Stateless heuristics for obviously hostile requests.

The result is advisory: callers decide whether to block or only log.
"""

import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote

from fastapi import Request

SUSPICIOUS_USER_AGENTS = [
    re.compile(p, re.IGNORECASE)
    for p in (r"bot", r"crawler", r"spider", r"scanner", r"curl", r"wget", r"python")
]

SQL_INJECTION_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"(%27)|(')|(--)|(%23)|(#)",
        r"((%3D)|(=))[^\n]*((%27)|(')|(--)|(%3B)|(;))",
        r"\w*((%27)|('))((%6F)|o|(%4F))((%72)|r|(%52))",
        r"union.*select",
        r"select.*from",
        r"insert.*into",
        r"delete.*from",
        r"update.*set",
    )
]

XSS_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (r"<script", r"javascript:", r"onload=", r"onerror=", r"onclick=")
]


@dataclass(frozen=True)
class SuspiciousActivity:
    is_suspicious: bool
    reason: Optional[str] = None
    severity: Optional[str] = None  # low | medium | high


NOT_SUSPICIOUS = SuspiciousActivity(is_suspicious=False)


def _matches_any(patterns, *values: str) -> bool:
    return any(p.search(v) for p in patterns for v in values if v)


def inspect_request_parts(user_agent: str, path: str, query: str) -> SuspiciousActivity:
    """
    Check a user agent, path and raw query string against the fixed pattern lists.

    The query is examined both raw and percent-decoded. The first match wins,
    in the order: user agent, SQL injection, XSS, path traversal.
    """
    if _matches_any(SUSPICIOUS_USER_AGENTS, user_agent):
        return SuspiciousActivity(True, "Suspicious user agent detected", "low")

    decoded_query = unquote(query) if query else ""

    if _matches_any(SQL_INJECTION_PATTERNS, query, decoded_query, path):
        return SuspiciousActivity(True, "Potential SQL injection attempt", "high")

    if _matches_any(XSS_PATTERNS, query, decoded_query, path):
        return SuspiciousActivity(True, "Potential XSS attempt", "high")

    if ".." in path or "%2e%2e" in path.lower():
        return SuspiciousActivity(True, "Potential path traversal attempt", "high")

    return NOT_SUSPICIOUS


def check_suspicious_activity(request: Request) -> SuspiciousActivity:
    raw_path = request.scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else request.url.path
    return inspect_request_parts(
        request.headers.get("user-agent") or "",
        path,
        request.url.query,
    )
