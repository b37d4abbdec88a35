"""
taskrail FastAPI Application

Entry point exposing the registered tracks and orchestrators over HTTP so
they can be triggered by id and awaited for their envelope.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging

from taskrail.api.routes import api_router
from taskrail.core.config import settings
from taskrail.core.dependencies import get_runtime
from taskrail.core.logging import setup_logging
from taskrail.db.session import dispose_engine

# Setup logging first
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    runtime = get_runtime()
    logger.info(
        f"Loaded {len(runtime.registry)} tasks and "
        f"{len(runtime.catalog.describe()['tracks'])} tracks, "
        f"{len(runtime.catalog.describe()['orchestrators'])} orchestrators"
    )

    yield

    # Shutdown
    await runtime.close()
    await dispose_engine()
    logger.info("Flushed execution logs and released database connections")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Runs task tracks and orchestrators and returns a uniform result envelope.",
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "taskrail.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level="info"
    )
