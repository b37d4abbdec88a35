"""Task Handlers Package.

Base class for class-based task handlers.
"""

from taskrail.services.orchestrator.handlers.base import BaseTaskHandler

__all__ = [
    'BaseTaskHandler',
]
