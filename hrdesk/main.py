"""HR Desk: FastAPI application factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from hrdesk import __version__
from hrdesk.common.exceptions import register_exception_handlers
from hrdesk.common.rate_limit import limiter
from hrdesk.config import settings
from hrdesk.database import engine
from hrdesk.helpdesk.router import router as helpdesk_router
from hrdesk.holidays.router import router as holidays_router
from hrdesk.leave.router import router as leave_router
from hrdesk.onboarding.router import router as onboarding_router

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Root logging for the service; level comes from LOG_LEVEL."""
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("HR Desk %s starting (%s)", __version__, settings.ENVIRONMENT)
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging()
    app = FastAPI(
        title="HR Desk",
        description="Onboarding, leave and helpdesk workflows",
        version=__version__,
        docs_url="/api/docs" if settings.ENVIRONMENT != "production" else None,
        redoc_url="/api/redoc" if settings.ENVIRONMENT != "production" else None,
        lifespan=lifespan,
    )

    # Exception handlers (RFC 7807)
    register_exception_handlers(app)

    # Rate limiting (slowapi)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check (no auth)
    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": __version__,
            "environment": settings.ENVIRONMENT,
        }

    # Register routers
    app.include_router(onboarding_router, prefix="/api/v1/onboarding", tags=["onboarding"])
    app.include_router(leave_router, prefix="/api/v1/leave", tags=["leave"])
    app.include_router(helpdesk_router, prefix="/api/v1/tickets", tags=["tickets"])
    app.include_router(holidays_router, prefix="/api/v1/holidays", tags=["holidays"])

    return app


app = create_app()
