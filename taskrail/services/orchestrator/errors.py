"""Orchestration Errors.

Exception taxonomy shared by the track and orchestrator engines.
"""

from typing import Any, Dict, List, Optional, Tuple


class OrchestrationError(Exception):
    """Base class for all orchestration errors."""

    code = "ORCHESTRATION_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class DefinitionError(OrchestrationError, ValueError):
    """A track or orchestrator definition is malformed.

    Raised at definition time, never during a run.
    """

    code = "INVALID_DEFINITION"


class PreconditionError(OrchestrationError, ValueError):
    """The run input is missing required RunContext fields."""

    code = "PRECONDITION_FAILED"


class TaskFailedError(OrchestrationError):
    """A task in a track failed, or its input mapper raised."""

    code = "TASK_FAILED"

    def __init__(
        self,
        message: str,
        task_id: str,
        error_code: Optional[str] = None,
        partial: Any = None,
    ):
        super().__init__(message)
        self.task_id = task_id
        self.error_code = error_code
        # TrackRunResult holding the tasks completed before the failure
        self.partial = partial


class AggregateBranchError(OrchestrationError):
    """One or more orchestrator branches failed."""

    code = "BRANCHES_FAILED"

    def __init__(
        self,
        failures: List[Tuple[str, str]],
        partial: Any = None,
        delimiter: str = "; ",
    ):
        joined = delimiter.join(f"{branch_id}: {error}" for branch_id, error in failures)
        super().__init__(f"Some branches failed: {joined}")
        self.failures = failures
        self.partial = partial

    def failures_by_branch(self) -> Dict[str, str]:
        return dict(self.failures)
