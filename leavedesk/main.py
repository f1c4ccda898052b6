"""Leave Desk application factory and ASGI entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from leavedesk.common.exceptions import register_exception_handlers
from leavedesk.common.rate_limit import limiter
from leavedesk.config import settings
from leavedesk.core_hr.router import departments_router, users_router
from leavedesk.database import engine
from leavedesk.leave.router import router as leave_router
from leavedesk.logging_config import configure_logging
from leavedesk.notifications.router import router as notifications_router

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
APP_VERSION = "1.0.0"

system_router = APIRouter()


@system_router.get("/health")
async def health_check():
    """Liveness probe; needs no token and does not touch the database."""
    return {
        "status": "healthy",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Leave Desk %s starting (%s)", APP_VERSION, settings.ENVIRONMENT)
    try:
        yield
    finally:
        await engine.dispose()
        logger.info("Leave Desk stopped, connection pool disposed")


def create_app() -> FastAPI:
    """Build the app: error handlers, limiter, CORS, then the routers."""
    configure_logging()

    docs = not settings.is_production
    app = FastAPI(
        title="Leave Desk",
        description="Leave requests with manager and coordinator approval",
        version=APP_VERSION,
        docs_url=f"{API_PREFIX}/docs" if docs else None,
        redoc_url=f"{API_PREFIX}/redoc" if docs else None,
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    # Applies RATE_LIMIT_DEFAULT to every route without its own @limiter.limit
    app.add_middleware(SlowAPIMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )

    routers = (
        (system_router, "", "system"),
        (users_router, "/users", "users"),
        (departments_router, "/departments", "departments"),
        (leave_router, "/leave", "leave"),
        (notifications_router, "/notifications", "notifications"),
    )
    for router, prefix, tag in routers:
        app.include_router(router, prefix=f"{API_PREFIX}{prefix}", tags=[tag])

    return app


app = create_app()
