"""Track Engine.

Runs the tasks of a track one after another. Each task's output, with the
RunContext identity re-injected, becomes the next task's input. The first
failure ends the track.
"""

import copy
import logging
from typing import Any, Dict, Mapping, Optional

from taskrail.services.orchestrator.envelope import (
    Envelope,
    build_track_envelope,
    build_track_error_envelope,
    error_message,
)
from taskrail.services.orchestrator.errors import TaskFailedError
from taskrail.services.orchestrator.execution_logger import (
    TRACK_CATEGORY,
    ExecutionLogger,
    SecondaryLogTier,
    TaskOperations,
    TrackOperations,
)
from taskrail.services.orchestrator.invoker import TaskInvoker, new_run_id
from taskrail.services.orchestrator.models import (
    RunContext,
    RunStatus,
    TaskErrorCode,
    TaskOutcome,
    TaskRef,
    TaskResult,
    TrackDefinition,
    TrackRunResult,
    split_payload,
    timing_metadata,
    utcnow,
)

logger = logging.getLogger(__name__)


class TrackEngine:
    """Sequential executor for track definitions."""

    def __init__(self, invoker: TaskInvoker, secondary_log: Optional[SecondaryLogTier] = None):
        self.invoker = invoker
        self.secondary_log = secondary_log

    def _execution_logger(self, definition: TrackDefinition, run_id: str, context: RunContext) -> ExecutionLogger:
        secondary = self.secondary_log if definition.enable_secondary_logging else None
        return ExecutionLogger(definition.name, run_id, context, TRACK_CATEGORY, secondary)

    async def run(self, definition: TrackDefinition, run_input: Mapping[str, Any], run_id: Optional[str] = None) -> Envelope:
        """Run a track and return its envelope.

        Never raises: precondition violations, task failures and unexpected
        errors all come back as a failure envelope.

        Args:
            definition: The track to run
            run_input: RunContext fields (tenantId, projectId, userId,
                trampData) plus the initial payload
            run_id: Identifier for this run; generated when omitted

        Returns:
            The track envelope
        """
        run_id = run_id or new_run_id("track")

        try:
            context = RunContext.from_input(run_input)
            run_result = await self.execute(definition, context, split_payload(run_input), run_id)
        except Exception as e:
            if not isinstance(e, TaskFailedError):
                logger.error(f"Track {definition.name} run {run_id} failed: {e}")
            return build_track_error_envelope(
                definition, run_id, run_input, e, getattr(e, "partial", None)
            )

        return build_track_envelope(definition, run_id, run_input, run_result)

    async def execute(
        self,
        definition: TrackDefinition,
        context: RunContext,
        payload: Dict[str, Any],
        run_id: str,
    ) -> TrackRunResult:
        """Run every task of the track in order.

        Returns:
            TrackRunResult with per-task results and the final output

        Raises:
            TaskFailedError: a task failed or its input mapper raised; the
                error's ``partial`` holds the results recorded so far
        """
        execution_logger = self._execution_logger(definition, run_id, context)
        run_result = TrackRunResult(status=RunStatus.RUNNING, started_at=utcnow())

        original_input = {**payload, **context.to_dict()}
        current_input = copy.deepcopy(original_input)

        execution_logger.log(
            TrackOperations.START.with_details(trackName=definition.name, taskCount=len(definition.tasks)),
            ["track"],
        )

        try:
            for index, task_ref in enumerate(definition.tasks):
                output = await self._run_task(
                    task_ref, index, current_input, original_input, run_result, execution_logger
                )
                current_input = {**output, **context.identity()}
        except Exception as e:
            run_result.status = RunStatus.FAILED
            run_result.completed_at = utcnow()
            # Keep completed tasks whatever the failure was
            e.partial = run_result
            execution_logger.log(
                TrackOperations.FAILED.with_details(error=error_message(e), trackName=definition.name),
                ["track", "error"],
            )
            raise

        run_result.final_output = current_input
        run_result.status = RunStatus.COMPLETED
        run_result.completed_at = utcnow()

        execution_logger.log(
            TrackOperations.COMPLETE.with_details(trackName=definition.name, taskCount=len(definition.tasks)),
            ["track"],
        )
        return run_result

    async def _run_task(
        self,
        task_ref: TaskRef,
        index: int,
        current_input: Dict[str, Any],
        original_input: Dict[str, Any],
        run_result: TrackRunResult,
        execution_logger: ExecutionLogger,
    ) -> Dict[str, Any]:
        task_id = task_ref.task_id
        started_at = utcnow()

        try:
            if task_ref.input_mapper is not None:
                task_input = task_ref.input_mapper(copy.deepcopy(current_input), copy.deepcopy(original_input))
                if not isinstance(task_input, Mapping):
                    raise TypeError(f"expected a mapping, got {type(task_input).__name__}")
            else:
                task_input = current_input
        except Exception as e:
            outcome = TaskOutcome.failure(
                f"Input mapper for task {task_id} failed: {error_message(e)}",
                TaskErrorCode.MAPPER_FAILED,
                task_identifier=task_id,
            )
            raise self._fail(
                task_ref, index, outcome, outcome.error, started_at, run_result, execution_logger,
                extra_operation="input_mapper",
            ) from e

        execution_logger.log(TaskOperations.started(task_id).with_details(index=index), ["track", "task"])

        try:
            outcome = await self.invoker.invoke(task_id, dict(task_input))
        except Exception as e:
            logger.error(f"Invoker raised for task {task_id}: {e}")
            outcome = TaskOutcome.failure(error_message(e), TaskErrorCode.PLATFORM_ERROR, task_identifier=task_id)
        outcome = outcome.require_mapping_output(task_id)

        if not outcome.ok:
            raise self._fail(
                task_ref,
                index,
                outcome,
                f"Task {task_id} failed: {outcome.error}",
                started_at,
                run_result,
                execution_logger,
            )

        output = dict(outcome.output or {})
        run_result.task_results[task_id] = TaskResult(
            results=output,
            metadata={
                "status": RunStatus.COMPLETED.value,
                "taskId": outcome.run_id,
                "taskIdentifier": outcome.task_identifier or task_id,
                "index": index,
                **timing_metadata(started_at, utcnow()),
            },
        )

        execution_logger.log(TaskOperations.completed(task_id, index=index), ["track", "task"])
        return output

    def _fail(
        self,
        task_ref: TaskRef,
        index: int,
        outcome: TaskOutcome,
        message: str,
        started_at,
        run_result: TrackRunResult,
        execution_logger: ExecutionLogger,
        extra_operation: Optional[str] = None,
    ) -> TaskFailedError:
        """Record the failed task, log it, and build the track's error."""
        task_id = task_ref.task_id
        run_result.task_results[task_id] = TaskResult(
            results={},
            metadata={
                "status": RunStatus.FAILED.value,
                "taskId": outcome.run_id,
                "taskIdentifier": outcome.task_identifier or task_id,
                "index": index,
                "error": outcome.error,
                "code": outcome.code,
                **timing_metadata(started_at, utcnow()),
            },
        )
        execution_logger.log(
            TaskOperations.failed(task_id, outcome.error, index=index, code=outcome.code),
            ["track", "task", "error"],
            extra_operation=extra_operation,
        )
        return TaskFailedError(message, task_id, error_code=outcome.code)


async def run_track(
    definition: TrackDefinition,
    run_input: Mapping[str, Any],
    invoker: TaskInvoker,
    secondary_log: Optional[SecondaryLogTier] = None,
    run_id: Optional[str] = None,
) -> Envelope:
    """Run ``definition`` once and return its envelope."""
    return await TrackEngine(invoker, secondary_log).run(definition, run_input, run_id=run_id)
