"""FastAPI application entry point.

Exposes the dispatcher, the job queue and the pacing scheduler over HTTP.
Database setup and teardown go through the same lifecycle as the CLI.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from contentflow.config import Settings, get_settings
from contentflow.database.session import database_lifecycle
from contentflow.api.routes import router
from contentflow.pipelines.registry import REGISTRY


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the job runner API."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.app_name} v{settings.app_version} ({settings.environment})")
        logger.info(f"Registered job types: {', '.join(REGISTRY.list())}")
        async with database_lifecycle(settings):
            yield
            logger.info("Shutting down...")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="ContentFlow job runner - durable queue for content generation pipelines",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    @app.get("/")
    async def root():
        return {
            "name": settings.app_name,
            "version": settings.app_version,
            "job_types": REGISTRY.list(),
            "docs": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "contentflow.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
    )
