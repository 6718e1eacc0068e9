"""
FastAPI application setup.
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
from contextlib import asynccontextmanager

from keytao.config.settings import get_settings
from keytao.core.db import init_db
from keytao.core.error_handlers import setup_error_handlers
from keytao.core.logging import configure_logging
from keytao.middleware import InternalSecretMiddleware, RequestContextMiddleware

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging and the schema on startup."""
    settings = get_settings()
    configure_logging(settings.log_level.value, settings.log_format)
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")

    if settings.database.auto_create:
        init_db()

    yield

    logger.info("Shutting down application")


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        FastAPI: Configured application instance
    """
    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan
    )

    app.add_middleware(InternalSecretMiddleware)
    app.add_middleware(CORSMiddleware, **settings.get_cors_config())
    # Outermost, so request ids exist for everything below
    app.add_middleware(RequestContextMiddleware)

    setup_error_handlers(app)

    from keytao.api.auth_endpoints import router as auth_router
    from keytao.api.batch_endpoints import router as batch_router, admin_router as admin_batch_router
    from keytao.api.health_endpoints import router as health_router
    from keytao.api.issue_endpoints import router as issue_router
    from keytao.api.phrase_endpoints import router as phrase_router, admin_router as admin_phrase_router
    from keytao.api.pull_request_endpoints import router as pull_request_router
    from keytao.api.sync_endpoints import router as sync_router, internal_router as internal_sync_router
    from keytao.api.user_endpoints import router as user_router, admin_router as admin_user_router
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(user_router)
    app.include_router(admin_user_router)
    app.include_router(phrase_router)
    app.include_router(admin_phrase_router)
    app.include_router(issue_router)
    app.include_router(pull_request_router)
    app.include_router(batch_router)
    app.include_router(admin_batch_router)
    app.include_router(sync_router)
    app.include_router(internal_sync_router)

    @app.get("/")
    async def root():
        """Root endpoint for basic health check."""
        return {
            "message": f"Welcome to {settings.app_name}",
            "version": settings.app_version,
            "status": "running"
        }

    return app


# Create application instance
app = create_app()
