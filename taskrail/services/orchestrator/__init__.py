"""Task Orchestration Package.

Tracks run tasks in sequence, orchestrators run tracks and tasks in
parallel, and both return the same envelope shape.
"""

from taskrail.services.orchestrator.definitions import DefinitionCatalog, define_orchestrator, define_track
from taskrail.services.orchestrator.errors import (
    AggregateBranchError,
    DefinitionError,
    OrchestrationError,
    PreconditionError,
    TaskFailedError,
)
from taskrail.services.orchestrator.execution_logger import ExecutionLogger, LogSink, SecondaryLogTier
from taskrail.services.orchestrator.invoker import LocalTaskInvoker, TaskInvoker, TaskRegistry
from taskrail.services.orchestrator.models import (
    Branch,
    OrchestratorDefinition,
    RunContext,
    RunStatus,
    TaskErrorCode,
    TaskOutcome,
    TaskRef,
    TrackDefinition,
)
from taskrail.services.orchestrator.orchestrator import OrchestratorEngine, run_orchestrator
from taskrail.services.orchestrator.track import TrackEngine, run_track

__all__ = [
    'AggregateBranchError',
    'Branch',
    'DefinitionCatalog',
    'DefinitionError',
    'ExecutionLogger',
    'LocalTaskInvoker',
    'LogSink',
    'OrchestrationError',
    'OrchestratorDefinition',
    'OrchestratorEngine',
    'PreconditionError',
    'RunContext',
    'RunStatus',
    'SecondaryLogTier',
    'TaskErrorCode',
    'TaskFailedError',
    'TaskInvoker',
    'TaskOutcome',
    'TaskRef',
    'TaskRegistry',
    'TrackDefinition',
    'TrackEngine',
    'define_orchestrator',
    'define_track',
    'run_orchestrator',
    'run_track',
]
