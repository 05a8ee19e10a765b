"""
FastAPI application entry point.

A read-only dashboard over the job store.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from queuectl import __version__
from queuectl.api.routes import health_router, jobs_router
from queuectl.config import get_settings
from queuectl.db import Database
from queuectl.observability.logging import setup_logging
from queuectl.observability.metrics import setup_metrics
from queuectl.observability.tracing import instrument_fastapi, setup_tracing

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Opens the job store unless one was handed to create_app().
    """
    setup_logging()
    setup_metrics()
    setup_tracing()

    owns_db = app.state.db is None
    if owns_db:
        app.state.db = Database()
    await app.state.db.init()

    logger.info("Application started")

    yield

    if owns_db:
        await app.state.db.close()
        app.state.db = None
    logger.info("Application shutdown")


def create_app(db: Database | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        db: Job store handle. When omitted the app opens the configured
            store on startup and closes it on shutdown.

    Returns:
        FastAPI: The configured application instance.
    """
    app = FastAPI(
        title="queuectl dashboard",
        description="Read-only view of the job queue",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.db = db

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    app.include_router(health_router)
    app.include_router(jobs_router)

    instrument_fastapi(app)

    return app


def run(db: Database | None = None, host: str | None = None, port: int | None = None) -> None:
    """Run the API server."""
    settings = get_settings()
    app = create_app(db)

    uvicorn.run(
        app,
        host=host or settings.api_host,
        port=port or settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
