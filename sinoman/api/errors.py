"""Error responses for the Sinoman API.

All API errors are rendered as ``{"error": <message>, "code": <CODE>, ...}``.
Unexpected exceptions become a generic 500 body; details only go to the log.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

class APIError(HTTPException):
    """HTTPException carrying a machine-readable code and extra body fields."""

    def __init__(
        self,
        status_code: int,
        error: str,
        code: str,
        headers: Optional[Dict[str, str]] = None,
        **extra: Any,
    ):
        super().__init__(status_code=status_code, detail=error, headers=headers)
        self.error = error
        self.code = code
        self.extra = extra

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "code": self.code, **self.extra}

def auth_required() -> APIError:
    return APIError(
        status.HTTP_401_UNAUTHORIZED,
        "Authentication required",
        "AUTH_REQUIRED",
        headers={"WWW-Authenticate": "Bearer"},
    )

def permission_denied(required_permission: str) -> APIError:
    return APIError(
        status.HTTP_403_FORBIDDEN,
        "Insufficient permissions",
        "PERMISSION_DENIED",
        required_permission=str(required_permission),
    )

def internal_error() -> APIError:
    return APIError(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "INTERNAL_ERROR")

def invalid_credentials() -> APIError:
    return APIError(
        status.HTTP_401_UNAUTHORIZED,
        "Incorrect email or password",
        "INVALID_CREDENTIALS",
        headers={"WWW-Authenticate": "Bearer"},
    )

async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers)

async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=internal_error().to_dict(),
    )

def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
