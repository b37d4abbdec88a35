"""Trigger endpoints for tracks and orchestrators."""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, status

from taskrail.core.dependencies import (
    get_catalog,
    get_orchestrator_engine,
    get_registry,
    get_track_engine,
)
from taskrail.schemas.runs import DefinitionsResponse, EnvelopeResponse, RunRequest, TaskDescription
from taskrail.services.orchestrator.definitions import DefinitionCatalog
from taskrail.services.orchestrator.invoker import TaskRegistry
from taskrail.services.orchestrator.orchestrator import OrchestratorEngine
from taskrail.services.orchestrator.track import TrackEngine

logger = logging.getLogger(__name__)

router = APIRouter(tags=["runs"])


@router.get("/tasks", response_model=List[TaskDescription])
async def list_tasks(registry: TaskRegistry = Depends(get_registry)) -> List[Dict[str, Any]]:
    """List registered tasks."""
    return registry.describe()


@router.get("/definitions", response_model=DefinitionsResponse)
async def list_definitions(catalog: DefinitionCatalog = Depends(get_catalog)) -> Dict[str, Any]:
    """List registered tracks and orchestrators."""
    return catalog.describe()


@router.post("/tracks/{name}/runs", responses={200: {"model": EnvelopeResponse}})
async def run_track_endpoint(
    name: str,
    request: RunRequest,
    catalog: DefinitionCatalog = Depends(get_catalog),
    engine: TrackEngine = Depends(get_track_engine),
) -> Dict[str, Any]:
    """Run a track and wait for its envelope.

    Task failures are reported inside the envelope (``job.success`` false),
    not as HTTP errors.
    """
    try:
        definition = catalog.track(name)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Track not found: {name}"
        )

    envelope = await engine.run(definition, request.to_run_input())
    logger.info(f"Track {name} run {envelope['job']['runId']} finished (success={envelope['job']['success']})")
    return envelope


@router.post("/orchestrators/{name}/runs", responses={200: {"model": EnvelopeResponse}})
async def run_orchestrator_endpoint(
    name: str,
    request: RunRequest,
    catalog: DefinitionCatalog = Depends(get_catalog),
    engine: OrchestratorEngine = Depends(get_orchestrator_engine),
) -> Dict[str, Any]:
    """Run an orchestrator and wait for its envelope."""
    try:
        definition = catalog.orchestrator(name)
    except KeyError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Orchestrator not found: {name}"
        )

    envelope = await engine.run(definition, request.to_run_input())
    logger.info(f"Orchestrator {name} run {envelope['job']['runId']} finished (success={envelope['job']['success']})")
    return envelope
