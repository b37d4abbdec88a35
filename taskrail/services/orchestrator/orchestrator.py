"""Orchestrator Engine.

Fans a run out to independent branches (tasks or whole tracks), waits for
every branch to settle, and fails the run if any branch failed.
"""

import asyncio
import copy
import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Union

from taskrail.services.orchestrator.envelope import (
    Envelope,
    build_orchestrator_envelope,
    build_orchestrator_error_envelope,
    error_message,
)
from taskrail.services.orchestrator.errors import AggregateBranchError, TaskFailedError
from taskrail.services.orchestrator.execution_logger import (
    ORCHESTRATOR_CATEGORY,
    ExecutionLogger,
    OrchestratorOperations,
    SecondaryLogTier,
    TaskOperations,
)
from taskrail.services.orchestrator.invoker import TaskInvoker, new_run_id
from taskrail.services.orchestrator.models import (
    Branch,
    BranchResult,
    OrchestratorDefinition,
    OrchestratorRunResult,
    RunContext,
    RunStatus,
    TaskErrorCode,
    TaskOutcome,
    TrackDefinition,
    split_payload,
    timing_metadata,
    utcnow,
)
from taskrail.services.orchestrator.track import TrackEngine

logger = logging.getLogger(__name__)


class OrchestratorEngine:
    """Concurrent fan-out/fan-in executor for orchestrator definitions."""

    def __init__(
        self,
        invoker: TaskInvoker,
        track_engine: Optional[TrackEngine] = None,
        secondary_log: Optional[SecondaryLogTier] = None,
    ):
        self.invoker = invoker
        self.secondary_log = secondary_log
        self.track_engine = track_engine or TrackEngine(invoker, secondary_log)

    def _execution_logger(self, definition: OrchestratorDefinition, run_id: str, context: RunContext) -> ExecutionLogger:
        secondary = self.secondary_log if definition.enable_secondary_logging else None
        return ExecutionLogger(definition.name, run_id, context, ORCHESTRATOR_CATEGORY, secondary)

    async def run(
        self,
        definition: OrchestratorDefinition,
        run_input: Mapping[str, Any],
        run_id: Optional[str] = None,
    ) -> Envelope:
        """Run an orchestrator and return its envelope.

        Never raises. When any branch fails the envelope reports the
        aggregate error and still carries every branch's partial result.
        """
        run_id = run_id or new_run_id("orchestrator")

        try:
            context = RunContext.from_input(run_input)
            run_result = await self.execute(definition, context, split_payload(run_input), run_id)
        except Exception as e:
            if not isinstance(e, AggregateBranchError):
                logger.error(f"Orchestrator {definition.name} run {run_id} failed: {e}")
            return build_orchestrator_error_envelope(
                definition, run_id, run_input, e, getattr(e, "partial", None)
            )

        return build_orchestrator_envelope(definition, run_id, run_input, run_result)

    async def execute(
        self,
        definition: OrchestratorDefinition,
        context: RunContext,
        payload: Dict[str, Any],
        run_id: str,
    ) -> OrchestratorRunResult:
        """Run all branches concurrently and join on every one of them.

        Raises:
            AggregateBranchError: one or more branches failed; ``partial``
                holds every branch result
        """
        execution_logger = self._execution_logger(definition, run_id, context)
        run_result = OrchestratorRunResult(status=RunStatus.RUNNING, started_at=utcnow())
        base_input = {**payload, **context.to_dict()}

        execution_logger.log(
            OrchestratorOperations.START.with_details(
                orchestratorName=definition.name,
                branchCount=len(definition.branches),
                branches=definition.branch_ids,
            ),
            ["orchestrator"],
        )

        # Each branch maps its own copy of the input before anything runs
        prepared = [
            (branch, self._map_branch_input(branch, base_input))
            for branch in definition.branches
        ]

        branch_results = await asyncio.gather(*(
            self._run_branch(branch, mapped, context, execution_logger)
            for branch, mapped in prepared
        ))

        for result in branch_results:
            run_result.branch_results[result.branch_id] = result
        run_result.completed_at = utcnow()

        failed = run_result.failed
        if failed:
            run_result.status = RunStatus.FAILED
            error = AggregateBranchError(
                [(branch_id, result.error) for branch_id, result in failed.items()],
                partial=run_result,
            )
            execution_logger.log(
                OrchestratorOperations.FAILED.with_details(
                    error=error.message,
                    failedBranches=list(failed),
                    succeededBranches=list(run_result.succeeded),
                ),
                ["orchestrator", "error"],
            )
            raise error

        run_result.status = RunStatus.COMPLETED
        execution_logger.log(
            OrchestratorOperations.COMPLETE.with_details(
                orchestratorName=definition.name,
                branchCount=len(definition.branches),
            ),
            ["orchestrator"],
        )
        return run_result

    def _map_branch_input(self, branch: Branch, base_input: Dict[str, Any]) -> Union[Dict[str, Any], Exception]:
        """Compute a branch's input, or the exception its mapper raised."""
        branch_input = copy.deepcopy(base_input)
        if branch.input_mapper is None:
            return branch_input
        try:
            mapped = branch.input_mapper(branch_input)
            if not isinstance(mapped, Mapping):
                raise TypeError(f"expected a mapping, got {type(mapped).__name__}")
        except Exception as e:
            return e
        return dict(mapped)

    async def _run_branch(
        self,
        branch: Branch,
        mapped: Union[Dict[str, Any], Exception],
        context: RunContext,
        execution_logger: ExecutionLogger,
    ) -> BranchResult:
        """Settle one branch into a BranchResult; nothing it raises escapes the join."""
        started_at = utcnow()
        try:
            return await self._settle_branch(branch, mapped, context, started_at, execution_logger)
        except Exception as e:
            logger.error(f"Branch {branch.identifier} raised: {e}")
            return self._branch_failure(
                branch, error_message(e), TaskErrorCode.PLATFORM_ERROR.value, started_at, execution_logger,
            )

    async def _settle_branch(
        self,
        branch: Branch,
        mapped: Union[Dict[str, Any], Exception],
        context: RunContext,
        started_at: datetime,
        execution_logger: ExecutionLogger,
    ) -> BranchResult:
        branch_id = branch.identifier

        if isinstance(mapped, Exception):
            return self._branch_failure(
                branch,
                f"Input mapper for branch {branch_id} failed: {error_message(mapped)}",
                TaskErrorCode.MAPPER_FAILED.value,
                started_at,
                execution_logger,
                extra_operation="input_mapper",
            )

        execution_logger.log(
            TaskOperations.started(branch_id).with_details(kind=branch.kind),
            ["orchestrator", branch.kind],
        )

        if isinstance(branch.target, TrackDefinition):
            return await self._run_track_branch(branch, mapped, context, started_at, execution_logger)

        try:
            outcome = await self.invoker.invoke(branch_id, mapped)
        except Exception as e:
            logger.error(f"Invoker raised for branch {branch_id}: {e}")
            outcome = TaskOutcome.failure(error_message(e), TaskErrorCode.PLATFORM_ERROR, task_identifier=branch_id)
        outcome = outcome.require_mapping_output(branch_id)

        if not outcome.ok:
            return self._branch_failure(
                branch, outcome.error, outcome.code, started_at, execution_logger,
                taskId=outcome.run_id,
            )

        return self._branch_success(
            branch,
            dict(outcome.output or {}),
            started_at,
            execution_logger,
            taskId=outcome.run_id,
            taskIdentifier=outcome.task_identifier or branch_id,
        )

    async def _run_track_branch(
        self,
        branch: Branch,
        mapped: Dict[str, Any],
        context: RunContext,
        started_at: datetime,
        execution_logger: ExecutionLogger,
    ) -> BranchResult:
        track_run_id = new_run_id("track")
        try:
            # The track always runs under the orchestrator's identity
            track_context = RunContext.from_input({**mapped, **context.identity()})
            track_result = await self.track_engine.execute(
                branch.target, track_context, split_payload(mapped), track_run_id
            )
        except Exception as e:
            partial = getattr(e, "partial", None)
            task_metadata = (
                {task_id: result.metadata for task_id, result in partial.task_results.items()}
                if partial is not None else {}
            )
            code = e.error_code if isinstance(e, TaskFailedError) else getattr(e, "code", None)
            return self._branch_failure(
                branch, error_message(e), code, started_at, execution_logger,
                runId=track_run_id, tasks=task_metadata,
            )

        return self._branch_success(
            branch,
            track_result.final_output,
            started_at,
            execution_logger,
            runId=track_run_id,
            tasks={task_id: result.metadata for task_id, result in track_result.task_results.items()},
        )

    def _branch_success(
        self,
        branch: Branch,
        output: Dict[str, Any],
        started_at: datetime,
        execution_logger: ExecutionLogger,
        **metadata: Any,
    ) -> BranchResult:
        execution_logger.log(
            TaskOperations.completed(branch.identifier, kind=branch.kind),
            ["orchestrator", branch.kind],
        )
        return BranchResult(
            branch_id=branch.identifier,
            kind=branch.kind,
            ok=True,
            results=output,
            metadata={
                "status": RunStatus.COMPLETED.value,
                "kind": branch.kind,
                **metadata,
                **timing_metadata(started_at, utcnow()),
            },
        )

    def _branch_failure(
        self,
        branch: Branch,
        error: str,
        code: Optional[str],
        started_at: datetime,
        execution_logger: ExecutionLogger,
        extra_operation: Optional[str] = None,
        **metadata: Any,
    ) -> BranchResult:
        execution_logger.log(
            TaskOperations.failed(branch.identifier, error, kind=branch.kind, code=code),
            ["orchestrator", branch.kind, "error"],
            extra_operation=extra_operation,
        )
        return BranchResult(
            branch_id=branch.identifier,
            kind=branch.kind,
            ok=False,
            error=error,
            metadata={
                "status": RunStatus.FAILED.value,
                "kind": branch.kind,
                "error": error,
                "code": code,
                **metadata,
                **timing_metadata(started_at, utcnow()),
            },
        )


async def run_orchestrator(
    definition: OrchestratorDefinition,
    run_input: Mapping[str, Any],
    invoker: TaskInvoker,
    secondary_log: Optional[SecondaryLogTier] = None,
    run_id: Optional[str] = None,
) -> Envelope:
    """Run ``definition`` once and return its envelope."""
    return await OrchestratorEngine(invoker, secondary_log=secondary_log).run(
        definition, run_input, run_id=run_id
    )
