from typing import TYPE_CHECKING, Optional, List
from datetime import datetime
import uuid

from sqlalchemy import String, DateTime, JSON, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from taskrail.db.session import Base

if TYPE_CHECKING:
    from taskrail.services.orchestrator.execution_logger import LogRecordData


class TaskLog(Base):
    __tablename__ = "task_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    task: Mapped[str] = mapped_column(String(255), index=True)
    task_name: Mapped[str] = mapped_column(String(255))
    status: Mapped[str] = mapped_column(String(32))
    task_category: Mapped[str] = mapped_column(String(64))
    message: Mapped[str] = mapped_column(Text)
    tenant_id: Mapped[str] = mapped_column(String(255), index=True)
    project_id: Mapped[str] = mapped_column(String(255), index=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    job_id: Mapped[str] = mapped_column(String(64), index=True)
    tags: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    operation: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attributes: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    @classmethod
    def from_record(cls, record: "LogRecordData") -> "TaskLog":
        return cls(**record.to_dict())
