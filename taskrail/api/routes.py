"""Main API router that combines all route modules."""

import logging
from fastapi import APIRouter

from taskrail.api.logs import router as logs_router
from taskrail.api.runs import router as runs_router
from taskrail.core.config import settings

logger = logging.getLogger(__name__)

# Create main API router
api_router = APIRouter(prefix=settings.api.rstrip("/"))

# Include all route modules
api_router.include_router(runs_router)
api_router.include_router(logs_router)


# Health check endpoint
@api_router.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}
