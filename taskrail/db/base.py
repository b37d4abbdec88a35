"""
Base module for importing all models.
This is used by Alembic for migrations.
"""

from taskrail.db.session import Base
from taskrail.models.task_log import TaskLog

# Import all models here to ensure they are registered with SQLAlchemy

__all__ = ["Base", "TaskLog"]
