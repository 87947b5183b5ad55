"""Leave Ledger — FastAPI Application Factory."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from leave_ledger import __version__
from leave_ledger.capacity.router import router as capacity_router
from leave_ledger.common.exceptions import register_exception_handlers
from leave_ledger.common.logging_config import setup_logging
from leave_ledger.common.rate_limit import limiter
from leave_ledger.comp_off.router import overtime_router
from leave_ledger.comp_off.router import router as comp_off_router
from leave_ledger.config import settings
from leave_ledger.database import engine
from leave_ledger.leave.router import router as leave_router
from leave_ledger.notifications.router import router as notifications_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("Leave Ledger %s starting (%s)", __version__, settings.ENVIRONMENT)
    yield
    await engine.dispose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    setup_logging()

    app = FastAPI(
        title="Leave Ledger",
        description="Leave balances, reservations, annual allocation, comp-off and capacity",
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

    @app.get("/api/v1/health", tags=["system"])
    async def health_check():
        return {
            "status": "healthy",
            "version": __version__,
            "environment": settings.ENVIRONMENT,
        }

    # Register routers
    app.include_router(leave_router, prefix="/api/v1/leave", tags=["leave"])
    app.include_router(overtime_router, prefix="/api/v1/leave-management", tags=["leave-management"])
    app.include_router(capacity_router, prefix="/api/v1/leave-management", tags=["leave-management"])
    app.include_router(comp_off_router, prefix="/api/v1/comp-off", tags=["comp-off"])
    app.include_router(notifications_router, prefix="/api/v1/notifications", tags=["notifications"])

    return app


app = create_app()
