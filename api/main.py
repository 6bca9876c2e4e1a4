"""
API Application Entry Point

Defines the FastAPI application: middleware, exception handlers, routers
and startup initialization of the message store.

Design Considerations:
- Database tables are created on startup, not at import
- Documentation endpoints are disabled in production
- Demo data is opt-in through SEED_DEMO_DATA
"""

import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.config import EnvironmentType, get_settings
from api.routes import messages, policies
from api.services.message_service import get_message_service
from api.utils.error_handlers import add_exception_handlers
from src.storage.database import init_db

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO")),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("api")


def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI application
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.API_TITLE,
        description=settings.API_DESCRIPTION,
        version=settings.API_VERSION,
        docs_url="/docs" if settings.ENVIRONMENT != EnvironmentType.PRODUCTION else None,
        redoc_url="/redoc" if settings.ENVIRONMENT != EnvironmentType.PRODUCTION else None,
        debug=settings.DEBUG
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=settings.CORS_METHODS,
        allow_headers=["*"],
    )

    add_exception_handlers(app)

    app.include_router(messages.router)
    app.include_router(policies.router)

    @app.on_event("startup")
    async def startup_event():
        """Create tables and optionally seed the default workspace."""
        logger.info("API service starting up")
        init_db()
        if settings.SEED_DEMO_DATA:
            await get_message_service().seed_demo_data(settings.DEFAULT_USER_ID)

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("API service shutting down")

    @app.get("/health", tags=["Monitoring"])
    async def health_check():
        """API health check endpoint."""
        return {"status": "healthy"}

    logger.info(f"Application initialized in {settings.ENVIRONMENT.value} environment")
    return app


app = create_application()
