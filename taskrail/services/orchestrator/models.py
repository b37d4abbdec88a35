"""Orchestration Models.

Data models for task orchestration: task references, track and orchestrator
definitions, the per-run context, task outcomes and run results.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from taskrail.services.orchestrator.errors import PreconditionError

# (previous output, original input) -> next input
TaskInputMapper = Callable[[Dict[str, Any], Dict[str, Any]], Dict[str, Any]]
# run input -> branch input
BranchInputMapper = Callable[[Dict[str, Any]], Dict[str, Any]]

# Wire keys of the RunContext inside a run input
TENANT_ID = "tenantId"
PROJECT_ID = "projectId"
USER_ID = "userId"
TRAMP_DATA = "trampData"
PAYLOAD = "payload"

CONTEXT_KEYS = (TENANT_ID, PROJECT_ID, USER_ID, TRAMP_DATA)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStatus(str, Enum):
    """Run execution status."""
    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskErrorCode(str, Enum):
    """Classification attached to a failed task outcome."""
    TASK_FAILED = "TASK_FAILED"
    TASK_NOT_FOUND = "TASK_NOT_FOUND"
    TIMEOUT = "TIMEOUT"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_OUTPUT = "INVALID_OUTPUT"
    MAPPER_FAILED = "MAPPER_FAILED"
    PLATFORM_ERROR = "PLATFORM_ERROR"


@dataclass(frozen=True)
class TaskRef:
    """Reference to an invocable task, optionally with an input mapper."""
    task_id: str
    input_mapper: Optional[TaskInputMapper] = None

    @property
    def identifier(self) -> str:
        return self.task_id


@dataclass(frozen=True)
class TrackDefinition:
    """An ordered, non-empty pipeline of tasks."""
    name: str
    tasks: Tuple[TaskRef, ...]
    enable_secondary_logging: bool = False

    @property
    def identifier(self) -> str:
        return self.name

    @property
    def task_ids(self) -> list:
        return [task.task_id for task in self.tasks]


@dataclass(frozen=True)
class Branch:
    """One concurrently executed branch of an orchestrator."""
    target: Union[TaskRef, TrackDefinition]
    input_mapper: Optional[BranchInputMapper] = None

    @property
    def identifier(self) -> str:
        return self.target.identifier

    @property
    def kind(self) -> str:
        return "track" if isinstance(self.target, TrackDefinition) else "task"


@dataclass(frozen=True)
class OrchestratorDefinition:
    """A named set of independent branches run concurrently."""
    name: str
    branches: Tuple[Branch, ...]
    enable_secondary_logging: bool = False

    @property
    def identifier(self) -> str:
        return self.name

    @property
    def branch_ids(self) -> list:
        return [branch.identifier for branch in self.branches]


@dataclass(frozen=True)
class RunContext:
    """Per-invocation identity plus the opaque tramp data bag."""
    tenant_id: str
    project_id: str
    user_id: Optional[str] = None
    tramp_data: Optional[Dict[str, Any]] = None

    @classmethod
    def from_input(cls, run_input: Mapping[str, Any]) -> "RunContext":
        """Extract the RunContext from a run input.

        Raises:
            PreconditionError: if tenantId or projectId is missing
        """
        if not isinstance(run_input, Mapping):
            raise PreconditionError("Run input must be a mapping")
        for key in (TENANT_ID, PROJECT_ID):
            value = run_input.get(key)
            if not isinstance(value, str) or not value:
                raise PreconditionError(f"Missing required field: {key}")
        user_id = run_input.get(USER_ID)
        if user_id is not None and not isinstance(user_id, str):
            raise PreconditionError(f"Invalid field: {USER_ID} must be a string")
        return cls(
            tenant_id=run_input[TENANT_ID],
            project_id=run_input[PROJECT_ID],
            user_id=user_id,
            tramp_data=copy.deepcopy(run_input.get(TRAMP_DATA)),
        )

    def identity(self) -> Dict[str, Any]:
        """Identity fields re-injected between tasks."""
        fields = {TENANT_ID: self.tenant_id, PROJECT_ID: self.project_id}
        if self.user_id is not None:
            fields[USER_ID] = self.user_id
        return fields

    def to_dict(self) -> Dict[str, Any]:
        data = self.identity()
        if self.tramp_data is not None:
            data[TRAMP_DATA] = copy.deepcopy(self.tramp_data)
        return data


def split_payload(run_input: Mapping[str, Any]) -> Dict[str, Any]:
    """Return the payload part of a run input.

    A nested ``payload`` mapping is flattened into the top level.
    """
    payload = {key: value for key, value in run_input.items() if key not in CONTEXT_KEYS}
    nested = payload.pop(PAYLOAD, None)
    if isinstance(nested, Mapping):
        payload.update(nested)
    elif nested is not None:
        payload[PAYLOAD] = nested
    return copy.deepcopy(payload)


@dataclass(frozen=True)
class TaskOutcome:
    """Tagged result of a single task invocation."""
    ok: bool
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    code: Optional[str] = None
    run_id: Optional[str] = None
    task_identifier: Optional[str] = None

    @classmethod
    def success(cls, output: Dict[str, Any], run_id: str = None, task_identifier: str = None) -> "TaskOutcome":
        return cls(ok=True, output=output, run_id=run_id, task_identifier=task_identifier)

    @classmethod
    def failure(
        cls,
        error: str,
        code: Union[TaskErrorCode, str] = TaskErrorCode.TASK_FAILED,
        run_id: str = None,
        task_identifier: str = None,
    ) -> "TaskOutcome":
        code_value = code.value if isinstance(code, TaskErrorCode) else code
        return cls(ok=False, error=error, code=code_value, run_id=run_id, task_identifier=task_identifier)

    def require_mapping_output(self, task_id: str) -> "TaskOutcome":
        """Turn a success whose output is not a mapping into an INVALID_OUTPUT failure."""
        if not self.ok or self.output is None or isinstance(self.output, Mapping):
            return self
        return TaskOutcome.failure(
            f"Task {task_id} returned {type(self.output).__name__} output, expected a mapping",
            TaskErrorCode.INVALID_OUTPUT,
            run_id=self.run_id,
            task_identifier=self.task_identifier or task_id,
        )


@dataclass
class TaskResult:
    """Recorded result of one completed (or failed) task in a track."""
    results: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"results": self.results, "metadata": self.metadata}


@dataclass
class TrackRunResult:
    """Accumulated per-task results of a track run."""
    task_results: Dict[str, TaskResult] = field(default_factory=dict)
    final_output: Dict[str, Any] = field(default_factory=dict)
    status: RunStatus = RunStatus.NOT_STARTED
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def timing(self) -> Dict[str, Any]:
        return timing_metadata(self.started_at, self.completed_at)


@dataclass
class BranchResult:
    """Outcome of one orchestrator branch."""
    branch_id: str
    kind: str
    ok: bool
    results: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"results": self.results, "metadata": self.metadata}
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class OrchestratorRunResult:
    """Branch results of an orchestrator run, keyed by branch identifier."""
    branch_results: Dict[str, BranchResult] = field(default_factory=dict)
    status: RunStatus = RunStatus.NOT_STARTED
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def succeeded(self) -> Dict[str, BranchResult]:
        return {key: value for key, value in self.branch_results.items() if value.ok}

    @property
    def failed(self) -> Dict[str, BranchResult]:
        return {key: value for key, value in self.branch_results.items() if not value.ok}

    def timing(self) -> Dict[str, Any]:
        return timing_metadata(self.started_at, self.completed_at)


def timing_metadata(started_at: Optional[datetime], completed_at: Optional[datetime]) -> Dict[str, Any]:
    """Timestamps and duration in the envelope's metadata format."""
    duration_ms = None
    if started_at and completed_at:
        duration_ms = int((completed_at - started_at).total_seconds() * 1000)
    return {
        "startedAt": started_at.isoformat() if started_at else None,
        "completedAt": completed_at.isoformat() if completed_at else None,
        "durationMs": duration_ms,
    }
