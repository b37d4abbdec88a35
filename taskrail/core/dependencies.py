"""
Runtime dependencies for FastAPI.

The task registry, definition catalog, invoker and log tier are built once
per process and handed to the routes.
"""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends

from taskrail.core.config import Settings, settings
from taskrail.db import session as db_session
from taskrail.pipelines import register_samples
from taskrail.services.log_sinks import build_secondary_log
from taskrail.services.orchestrator.definitions import DefinitionCatalog
from taskrail.services.orchestrator.execution_logger import SecondaryLogTier
from taskrail.services.orchestrator.invoker import LocalTaskInvoker, TaskInvoker, TaskRegistry
from taskrail.services.orchestrator.orchestrator import OrchestratorEngine
from taskrail.services.orchestrator.track import TrackEngine


@dataclass
class Runtime:
    """Process-wide orchestration services."""
    registry: TaskRegistry
    catalog: DefinitionCatalog
    invoker: TaskInvoker
    track_engine: TrackEngine
    orchestrator_engine: OrchestratorEngine
    secondary_log: Optional[SecondaryLogTier] = None

    async def close(self) -> None:
        if self.secondary_log is not None:
            await self.secondary_log.close()


def build_runtime(
    app_settings: Settings,
    registry: Optional[TaskRegistry] = None,
    catalog: Optional[DefinitionCatalog] = None,
    secondary_log: Optional[SecondaryLogTier] = None,
) -> Runtime:
    """Wire the orchestration services together.

    When no registry/catalog is given, fresh ones with the sample pipelines
    are created.
    """
    if registry is None or catalog is None:
        registry = TaskRegistry()
        catalog = DefinitionCatalog()
        register_samples(registry, catalog)

    if secondary_log is None:
        secondary_log = build_secondary_log(app_settings, db_session.async_session_maker)

    invoker = LocalTaskInvoker(registry, default_timeout=app_settings.task_default_timeout_seconds)
    track_engine = TrackEngine(invoker, secondary_log)
    return Runtime(
        registry=registry,
        catalog=catalog,
        invoker=invoker,
        track_engine=track_engine,
        orchestrator_engine=OrchestratorEngine(invoker, track_engine, secondary_log),
        secondary_log=secondary_log,
    )


@lru_cache
def get_runtime() -> Runtime:
    """Get the process runtime, building it on first use."""
    return build_runtime(settings)


def get_catalog(runtime: Runtime = Depends(get_runtime)) -> DefinitionCatalog:
    return runtime.catalog


def get_registry(runtime: Runtime = Depends(get_runtime)) -> TaskRegistry:
    return runtime.registry


def get_track_engine(runtime: Runtime = Depends(get_runtime)) -> TrackEngine:
    return runtime.track_engine


def get_orchestrator_engine(runtime: Runtime = Depends(get_runtime)) -> OrchestratorEngine:
    return runtime.orchestrator_engine
