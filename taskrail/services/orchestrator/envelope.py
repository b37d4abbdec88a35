"""Result Envelope Builders.

Pure functions assembling the success and failure envelopes returned by the
track and orchestrator engines. Both outcomes share one top-level shape:

    {
        "job": {"success", "name", "runId", "input", "error" (failure only)},
        "results": {...},
        "metadata": {...},
        "trampData": ...,
    }
"""

import copy
from typing import Any, Dict, Mapping, Optional

from taskrail.services.orchestrator.models import (
    TRAMP_DATA,
    OrchestratorDefinition,
    OrchestratorRunResult,
    RunStatus,
    TrackDefinition,
    TrackRunResult,
)

Envelope = Dict[str, Any]


def error_message(error: Any) -> str:
    """Render an exception or error value as the envelope's error string."""
    if isinstance(error, BaseException):
        return str(error) or error.__class__.__name__
    return str(error)


def _job_input(run_input: Any) -> Dict[str, Any]:
    if isinstance(run_input, Mapping):
        return copy.deepcopy(dict(run_input))
    return {}


def _tramp_data(run_input: Any) -> Any:
    if isinstance(run_input, Mapping):
        return copy.deepcopy(run_input.get(TRAMP_DATA))
    return None


def _envelope(
    name: str,
    run_id: str,
    run_input: Any,
    results: Dict[str, Any],
    metadata: Dict[str, Any],
    error: Optional[Any] = None,
) -> Envelope:
    job = {
        "success": error is None,
        "name": name,
        "runId": run_id,
        "input": _job_input(run_input),
    }
    if error is not None:
        job["error"] = error_message(error)

    return {
        "job": job,
        "results": results,
        "metadata": metadata,
        "trampData": _tramp_data(run_input),
    }


# Track envelopes

def _track_metadata(definition: TrackDefinition, run_result: TrackRunResult, status: RunStatus) -> Dict[str, Any]:
    return {
        "track": {
            "name": definition.name,
            "taskCount": len(definition.tasks),
            "tasks": definition.task_ids,
            "status": status.value,
            **run_result.timing(),
        },
        "tasks": {
            task_id: copy.deepcopy(result.metadata)
            for task_id, result in run_result.task_results.items()
        },
    }


def _track_task_results(run_result: TrackRunResult) -> Dict[str, Any]:
    return {
        task_id: copy.deepcopy(result.to_dict())
        for task_id, result in run_result.task_results.items()
    }


def build_track_envelope(
    definition: TrackDefinition,
    run_id: str,
    run_input: Any,
    run_result: TrackRunResult,
) -> Envelope:
    """Envelope for a track whose every task succeeded."""
    return _envelope(
        name=definition.name,
        run_id=run_id,
        run_input=run_input,
        results={
            "track": copy.deepcopy(run_result.final_output),
            "tasks": _track_task_results(run_result),
        },
        metadata=_track_metadata(definition, run_result, RunStatus.COMPLETED),
    )


def build_track_error_envelope(
    definition: TrackDefinition,
    run_id: str,
    run_input: Any,
    error: Any,
    partial: Optional[TrackRunResult] = None,
) -> Envelope:
    """Envelope for a failed track.

    ``partial`` holds the tasks completed before the failure, and the failed
    task's metadata; they are kept for diagnostics.
    """
    partial = partial or TrackRunResult()
    return _envelope(
        name=definition.name,
        run_id=run_id,
        run_input=run_input,
        results={
            "track": {},
            "tasks": _track_task_results(partial),
        },
        metadata=_track_metadata(definition, partial, RunStatus.FAILED),
        error=error,
    )


# Orchestrator envelopes

def _orchestrator_metadata(
    definition: OrchestratorDefinition,
    run_result: OrchestratorRunResult,
    status: RunStatus,
) -> Dict[str, Any]:
    return {
        "orchestrator": {
            "name": definition.name,
            "branchCount": len(definition.branches),
            "branches": definition.branch_ids,
            "status": status.value,
            **run_result.timing(),
        },
        "tracks": {
            branch_id: copy.deepcopy(result.metadata)
            for branch_id, result in run_result.branch_results.items()
        },
    }


def build_orchestrator_envelope(
    definition: OrchestratorDefinition,
    run_id: str,
    run_input: Any,
    run_result: OrchestratorRunResult,
) -> Envelope:
    """Envelope for an orchestrator whose every branch succeeded."""
    return _envelope(
        name=definition.name,
        run_id=run_id,
        run_input=run_input,
        results={
            "orchestrator": {
                branch_id: copy.deepcopy(result.results)
                for branch_id, result in run_result.branch_results.items()
            },
            "tracks": {
                branch_id: copy.deepcopy(result.to_dict())
                for branch_id, result in run_result.branch_results.items()
            },
        },
        metadata=_orchestrator_metadata(definition, run_result, RunStatus.COMPLETED),
    )


def build_orchestrator_error_envelope(
    definition: OrchestratorDefinition,
    run_id: str,
    run_input: Any,
    error: Any,
    partial: Optional[OrchestratorRunResult] = None,
) -> Envelope:
    """Envelope for a failed orchestrator.

    Every branch outcome in ``partial`` is kept under ``results.tracks``,
    succeeded branches with their output and failed ones with their error.
    """
    partial = partial or OrchestratorRunResult()
    return _envelope(
        name=definition.name,
        run_id=run_id,
        run_input=run_input,
        results={
            "orchestrator": {},
            "tracks": {
                branch_id: copy.deepcopy(result.to_dict())
                for branch_id, result in partial.branch_results.items()
            },
        },
        metadata=_orchestrator_metadata(definition, partial, RunStatus.FAILED),
        error=error,
    )
