import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from sinoman import __version__
from sinoman.api.errors import register_exception_handlers
from sinoman.api.middleware import RateLimitMiddleware, SecurityHeadersMiddleware, SuspiciousActivityMiddleware
from sinoman.api.routers import auth, health, security
from sinoman.core.config import Settings, get_settings, validate_security_settings
from sinoman.core.logger import setup_logger
from sinoman.core.ratelimit import RateLimiter, get_rate_limiter
from sinoman.services.audit import AuditLogger

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    limiter: RateLimiter = app.state.rate_limiter

    is_valid, errors = validate_security_settings(settings)
    for error in errors:
        logger.error("Configuration problem: %s", error)
    if not is_valid and settings.is_production:
        raise RuntimeError("Refusing to start with insecure settings in production")

    limiter.start_sweeper(settings.rate_limit_sweep_interval_seconds)
    logger.info("%s %s started (%s)", settings.app_name, __version__, settings.environment)
    try:
        yield
    finally:
        await limiter.stop_sweeper()
        await limiter.store.close()


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[Callable[[], Session]] = None,
    rate_limiter: Optional[RateLimiter] = None,
    audit_logger: Optional[AuditLogger] = None,
) -> FastAPI:
    """Build the application. Collaborators default to the process-wide instances."""
    settings = settings or get_settings()
    if session_factory is None:
        from sinoman.db.session import SessionLocal

        session_factory = SessionLocal

    setup_logger("sinoman", level=settings.log_level)

    app = FastAPI(
        title=settings.app_name,
        description="Security, access control and audit service for Sinoman cooperatives",
        version=__version__,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.rate_limiter = rate_limiter or get_rate_limiter()
    app.state.audit_logger = audit_logger or AuditLogger(session_factory, settings)

    register_exception_handlers(app)

    # Added last runs first: CORS -> headers -> rate limit -> suspicious
    app.add_middleware(SuspiciousActivityMiddleware)
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth.router, prefix="/api")
    app.include_router(security.router, prefix="/api")
    app.include_router(health.router)

    @app.get("/")
    async def root():
        return {
            "name": settings.app_name,
            "version": __version__,
            "docs": "/docs" if settings.debug else None,
        }

    return app


app = create_app()
