"""Execution Logger.

Two-tier execution events. Every event goes to the standard logging tier;
definitions that opt in also send a durable record to a secondary sink.
Secondary writes run in the background and their failures are demoted to
warnings on the primary tier.
"""

import asyncio
import dataclasses
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from taskrail.services.orchestrator.models import RunContext, RunStatus

logger = logging.getLogger(__name__)

TRACK_CATEGORY = "track_execution"
ORCHESTRATOR_CATEGORY = "orchestrator_execution"


@dataclass(frozen=True)
class LogOperation:
    """A single execution event."""
    task_name: str
    status: RunStatus
    message: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def with_details(self, error: Optional[str] = None, **attributes: Any) -> "LogOperation":
        return dataclasses.replace(
            self,
            error=error if error is not None else self.error,
            attributes={**self.attributes, **attributes},
        )


class TrackOperations:
    START = LogOperation("track_execution", RunStatus.RUNNING, "Starting track execution")
    COMPLETE = LogOperation("track_execution", RunStatus.COMPLETED, "Track execution completed")
    FAILED = LogOperation("track_execution", RunStatus.FAILED, "Track execution failed")


class OrchestratorOperations:
    START = LogOperation("orchestrator_execution", RunStatus.RUNNING, "Starting orchestrator execution")
    COMPLETE = LogOperation("orchestrator_execution", RunStatus.COMPLETED, "Orchestrator execution completed")
    FAILED = LogOperation("orchestrator_execution", RunStatus.FAILED, "Orchestrator execution failed")


class TaskOperations:

    @staticmethod
    def started(task_id: str) -> LogOperation:
        return LogOperation("task_execution", RunStatus.RUNNING, f"Starting task: {task_id}", {"taskName": task_id})

    @staticmethod
    def completed(task_id: str, **attributes: Any) -> LogOperation:
        return LogOperation(
            "task_execution",
            RunStatus.COMPLETED,
            f"Completed task: {task_id}",
            {"taskName": task_id, **attributes},
        )

    @staticmethod
    def failed(task_id: str, error: str, **attributes: Any) -> LogOperation:
        return LogOperation(
            "task_execution",
            RunStatus.FAILED,
            f"Task failed: {task_id}",
            {"taskName": task_id, **attributes},
            error=error,
        )


def event_status(status: RunStatus) -> str:
    """Map a run status onto the event vocabulary (started|completed|failed)."""
    if status == RunStatus.COMPLETED:
        return "completed"
    if status == RunStatus.FAILED:
        return "failed"
    return "started"


@dataclass
class LogRecordData:
    """Durable execution log record written by secondary sinks."""
    task: str
    task_name: str
    status: str
    task_category: str
    message: str
    tenant_id: str
    project_id: str
    job_id: str
    user_id: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    operation: Optional[str] = None
    error: Optional[str] = None
    attributes: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


class LogSink(ABC):
    """Durable destination for execution log records."""

    @abstractmethod
    async def write(self, record: LogRecordData) -> None:
        pass

    async def close(self) -> None:
        return None


class SecondaryLogTier:
    """Fire-and-forget wrapper around a ``LogSink``.

    ``submit`` never blocks and never raises; write failures become warnings
    on the primary logging tier.
    """

    def __init__(self, sink: LogSink, timeout: Optional[float] = None):
        self.sink = sink
        self.timeout = timeout
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def submit(self, record: LogRecordData) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop, dropping execution log for job {record.job_id}")
            return

        write = loop.create_task(self._write(record))
        self._pending.add(write)
        write.add_done_callback(self._pending.discard)

    async def _write(self, record: LogRecordData) -> None:
        try:
            await asyncio.wait_for(self.sink.write(record), timeout=self.timeout)
        except Exception as e:
            logger.warning(
                f"Failed to write execution log to {type(self.sink).__name__}: {e}",
                extra={"run_id": record.job_id, "task": record.task, "error": str(e)},
            )

    async def drain(self) -> None:
        """Wait for every submitted write to settle."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        await self.sink.close()


class ExecutionLogger:
    """Emits execution events for one track or orchestrator run."""

    def __init__(
        self,
        name: str,
        run_id: str,
        context: RunContext,
        category: str,
        secondary: Optional[SecondaryLogTier] = None,
    ):
        self.name = name
        self.run_id = run_id
        self.context = context
        self.category = category
        self.secondary = secondary

    def log(self, operation: LogOperation, tags: Optional[List[str]] = None, extra_operation: Optional[str] = None) -> None:
        status = event_status(operation.status)
        fields = {
            "run_id": self.run_id,
            "task": self.name,
            "task_name": operation.task_name,
            "task_category": self.category,
            "status": status,
            "tenant_id": self.context.tenant_id,
            "project_id": self.context.project_id,
            "user_id": self.context.user_id,
            "tags": tags,
            "error": operation.error,
            "attributes": operation.attributes or None,
        }

        if operation.status == RunStatus.FAILED:
            suffix = f": {operation.error}" if operation.error else ""
            logger.error(f"[{self.name}] {operation.message}{suffix}", extra=fields)
        else:
            logger.info(f"[{self.name}] {operation.message}", extra=fields)

        if self.secondary is not None:
            self.secondary.submit(LogRecordData(
                task=self.name,
                task_name=operation.task_name,
                status=status,
                task_category=self.category,
                message=operation.message,
                tenant_id=self.context.tenant_id,
                project_id=self.context.project_id,
                user_id=self.context.user_id,
                job_id=self.run_id,
                tags=list(tags or []),
                operation=extra_operation,
                error=operation.error,
                attributes=dict(operation.attributes),
            ))
