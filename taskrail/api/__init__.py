"""API routes for taskrail."""

from taskrail.api.logs import router as logs_router
from taskrail.api.routes import api_router
from taskrail.api.runs import router as runs_router

__all__ = [
    "api_router",
    "logs_router",
    "runs_router",
]
