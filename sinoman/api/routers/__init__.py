"""API routers for Sinoman."""

from . import auth
from . import health
from . import security

__all__ = [
    "auth",
    "health",
    "security",
]
