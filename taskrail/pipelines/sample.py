"""Sample pipelines.

A track and a standalone task run side by side by one orchestrator:

    sample_orchestrator
        SAMPLE_TRACK: url-inspect -> echo
        hello-world
"""

import logging
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field

from taskrail.services.orchestrator.definitions import (
    DefinitionCatalog,
    define_orchestrator,
    define_track,
)
from taskrail.services.orchestrator.handlers.base import BaseTaskHandler
from taskrail.services.orchestrator.invoker import TaskRegistry
from taskrail.services.orchestrator.models import (
    OrchestratorDefinition,
    TaskRef,
    TrackDefinition,
)

logger = logging.getLogger(__name__)


class HelloWorldInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message: str = Field(default="Hello, world!", description="Message to echo back")


class UrlInspectInput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    url: str = Field(..., min_length=1, description="URL of the media file to inspect")


class UrlInspectHandler(BaseTaskHandler):
    """Splits a media URL into the parts later tasks route on."""

    task_id = "url-inspect"
    name = "URL Inspect"
    description = "Parses a media URL into scheme, host, path and file extension"
    input_model = UrlInspectInput
    max_duration = 30.0

    async def execute(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        parsed = urlparse(payload["url"])
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Unsupported URL: {payload['url']}")

        filename = parsed.path.rsplit("/", 1)[-1]
        extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else None
        logger.debug(f"Inspected {payload['url']}: host={parsed.netloc} extension={extension}")
        return {
            "url": payload["url"],
            "scheme": parsed.scheme,
            "host": parsed.netloc,
            "path": parsed.path,
            "extension": extension,
        }


async def hello_world(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"message": payload["message"]}


async def echo(payload: Dict[str, Any]) -> Dict[str, Any]:
    return dict(payload)


def register_sample_tasks(registry: TaskRegistry) -> None:
    """Register the sample task handlers."""
    registry.register(
        "hello-world",
        hello_world,
        name="Hello World",
        description="Returns the message it was given",
        input_model=HelloWorldInput,
    )
    registry.register("echo", echo, name="Echo", description="Returns its whole input")
    registry.register_handler(UrlInspectHandler())


def _carry_tramp_data(prev_output: Dict[str, Any], original_input: Dict[str, Any]) -> Dict[str, Any]:
    return {**prev_output, "trampData": original_input.get("trampData")}


def build_sample_track() -> TrackDefinition:
    return define_track(
        "SAMPLE_TRACK",
        [
            TaskRef("url-inspect"),
            TaskRef("echo", input_mapper=_carry_tramp_data),
        ],
    )


def build_sample_orchestrator(track: Optional[TrackDefinition] = None) -> OrchestratorDefinition:
    track = track or build_sample_track()
    return define_orchestrator(
        "sample_orchestrator",
        [
            {
                "track": track,
                "input_mapper": lambda run_input: {
                    "url": run_input.get("url"),
                    "tenantId": run_input["tenantId"],
                    "projectId": run_input["projectId"],
                    "userId": run_input.get("userId"),
                    "trampData": run_input.get("trampData"),
                    "settings": run_input.get("settings") or {},
                },
            },
            {
                "task": "hello-world",
                "input_mapper": lambda run_input: {"message": "Running alongside the media track!"},
            },
        ],
    )


def register_samples(registry: TaskRegistry, catalog: DefinitionCatalog) -> Tuple[TrackDefinition, OrchestratorDefinition]:
    """Register the sample tasks and definitions."""
    register_sample_tasks(registry)
    track = catalog.add(build_sample_track())
    orchestrator = catalog.add(build_sample_orchestrator(track))
    return track, orchestrator
