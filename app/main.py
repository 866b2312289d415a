from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from prometheus_client import make_asgi_app
import structlog

from app.core.config import settings
from app.core.logging import setup_logging
from app.api.v1.router import api_router
from app.middleware.authentication import BearerTokenMiddleware
from app.middleware.rate_limit import RateLimitMiddleware
from app.middleware.request_id import RequestIDMiddleware
from app.db.database import Database, create_database

logger = structlog.get_logger()


def create_app(database: Optional[Database] = None) -> FastAPI:
    """
    Build the application; ``database`` overrides the one built from settings
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging()
        logger.info("Starting StackFlow CRM API", environment=settings.ENVIRONMENT)

        if settings.is_development or settings.ENVIRONMENT == "test":
            await app.state.db.create_all()
            logger.info("Database tables created/verified")

        yield

        logger.info("Shutting down StackFlow CRM API")
        await app.state.db.dispose()

    app = FastAPI(
        title="StackFlow CRM",
        description="Multi-tenant project and task management API",
        version="1.0.0",
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        openapi_url="/openapi.json" if settings.DEBUG else None,
        lifespan=lifespan
    )
    app.state.db = database or create_database()

    # Added innermost first: the rate limiter needs the authenticated user
    if settings.RATE_LIMIT_ENABLED:
        app.add_middleware(RateLimitMiddleware)

    app.add_middleware(BearerTokenMiddleware)

    app.add_middleware(RequestIDMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(
        TrustedHostMiddleware,
        allowed_hosts=settings.ALLOWED_HOSTS
    )

    app.include_router(api_router, prefix=settings.API_PREFIX)

    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)

    @app.get("/")
    async def root():
        return {
            "message": "StackFlow CRM",
            "version": "1.0.0",
            "status": "running",
            "docs": "/docs" if settings.DEBUG else "Disabled in production"
        }

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "debug": settings.DEBUG
        }

    return app


app = create_app()
