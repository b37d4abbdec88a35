"""Track and Orchestrator Definitions.

Builders that validate and freeze definitions, plus a process-level catalog
that keeps definition names unique for log correlation.
"""

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from taskrail.services.orchestrator.errors import DefinitionError
from taskrail.services.orchestrator.models import (
    Branch,
    OrchestratorDefinition,
    TaskRef,
    TrackDefinition,
)

logger = logging.getLogger(__name__)

TaskLike = Union[TaskRef, str, Mapping[str, Any]]
BranchLike = Union[Branch, TaskRef, TrackDefinition, str, Mapping[str, Any]]

_TASK_ID_KEYS = ("task_id", "taskIdentifier", "taskName", "id")
_MAPPER_KEYS = ("input_mapper", "inputMapper")
_BRANCH_TARGET_KEYS = ("taskOrTrack", "task_or_track", "track", "task", "target")


def _first(item: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        if item.get(key) is not None:
            return item[key]
    return None


def _check_name(name: Any, what: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise DefinitionError(f"{what} name must be a non-empty string")
    return name


def _check_mapper(mapper: Any, owner: str) -> Any:
    if mapper is not None and not callable(mapper):
        raise DefinitionError(f"Input mapper for {owner} must be callable")
    return mapper


def _to_task_ref(item: TaskLike) -> TaskRef:
    if isinstance(item, TaskRef):
        ref = item
    elif isinstance(item, str):
        ref = TaskRef(task_id=item)
    elif isinstance(item, Mapping):
        ref = TaskRef(task_id=_first(item, _TASK_ID_KEYS), input_mapper=_first(item, _MAPPER_KEYS))
    else:
        raise DefinitionError(f"Unsupported task reference: {item!r}")

    _check_name(ref.task_id, "Task")
    _check_mapper(ref.input_mapper, f"task {ref.task_id}")
    return ref


def _to_branch(item: BranchLike) -> Branch:
    if isinstance(item, Branch):
        branch = item
    elif isinstance(item, (TaskRef, TrackDefinition)):
        branch = Branch(target=item)
    elif isinstance(item, str):
        branch = Branch(target=TaskRef(task_id=item))
    elif isinstance(item, Mapping):
        target = _first(item, _BRANCH_TARGET_KEYS)
        if target is None:
            target = _first(item, _TASK_ID_KEYS)
        if isinstance(target, str):
            target = TaskRef(task_id=target)
        branch = Branch(target=target, input_mapper=_first(item, _MAPPER_KEYS))
    else:
        raise DefinitionError(f"Unsupported orchestrator branch: {item!r}")

    if isinstance(branch.target, TaskRef):
        _to_task_ref(branch.target)
        if branch.target.input_mapper is not None:
            raise DefinitionError(
                f"Task branch {branch.target.task_id} must set its mapper on the branch, not the task"
            )
    elif not isinstance(branch.target, TrackDefinition):
        raise DefinitionError(f"Branch target must be a task or a track: {branch.target!r}")
    _check_mapper(branch.input_mapper, f"branch {branch.identifier}")
    return branch


def _check_unique(identifiers: List[str], owner: str, what: str) -> None:
    seen = set()
    duplicates = []
    for identifier in identifiers:
        if identifier in seen and identifier not in duplicates:
            duplicates.append(identifier)
        seen.add(identifier)
    if duplicates:
        raise DefinitionError(f"Duplicate {what} in {owner}: {', '.join(duplicates)}")


def define_track(
    name: str,
    tasks: Iterable[TaskLike],
    enable_secondary_logging: bool = False,
) -> TrackDefinition:
    """Build a validated, immutable track definition.

    Args:
        name: Track name, used in envelopes and log correlation
        tasks: Ordered task references (``TaskRef``, identifiers or mappings)
        enable_secondary_logging: Also write events to the durable log sink

    Returns:
        TrackDefinition

    Raises:
        DefinitionError: empty task list, blank identifiers, duplicate task
            identifiers or non-callable mappers
    """
    _check_name(name, "Track")
    refs = tuple(_to_task_ref(item) for item in (tasks or ()))
    if not refs:
        raise DefinitionError(f"Track {name} must contain at least one task")
    _check_unique([ref.task_id for ref in refs], f"track {name}", "task identifiers")

    return TrackDefinition(
        name=name,
        tasks=refs,
        enable_secondary_logging=bool(enable_secondary_logging),
    )


def define_orchestrator(
    name: str,
    branches: Iterable[BranchLike],
    enable_secondary_logging: bool = False,
) -> OrchestratorDefinition:
    """Build a validated, immutable orchestrator definition.

    Raises:
        DefinitionError: empty branch list or duplicate branch identifiers
    """
    _check_name(name, "Orchestrator")
    built = tuple(_to_branch(item) for item in (branches or ()))
    if not built:
        raise DefinitionError(f"Orchestrator {name} must contain at least one branch")
    _check_unique([branch.identifier for branch in built], f"orchestrator {name}", "branch identifiers")

    return OrchestratorDefinition(
        name=name,
        branches=built,
        enable_secondary_logging=bool(enable_secondary_logging),
    )


class DefinitionCatalog:
    """Named tracks and orchestrators available to the trigger API."""

    def __init__(self):
        self._tracks: Dict[str, TrackDefinition] = {}
        self._orchestrators: Dict[str, OrchestratorDefinition] = {}

    def add(self, definition: Union[TrackDefinition, OrchestratorDefinition]):
        """Register a definition under its name.

        Raises:
            DefinitionError: if the name is already taken by any definition
        """
        if definition.name in self._tracks or definition.name in self._orchestrators:
            raise DefinitionError(f"Definition name already registered: {definition.name}")

        if isinstance(definition, TrackDefinition):
            self._tracks[definition.name] = definition
        elif isinstance(definition, OrchestratorDefinition):
            self._orchestrators[definition.name] = definition
        else:
            raise DefinitionError(f"Not a track or orchestrator definition: {definition!r}")

        logger.debug(f"Registered definition {definition.name}")
        return definition

    def track(self, name: str) -> TrackDefinition:
        return self._tracks[name]

    def orchestrator(self, name: str) -> OrchestratorDefinition:
        return self._orchestrators[name]

    def get(self, name: str) -> Optional[Union[TrackDefinition, OrchestratorDefinition]]:
        return self._tracks.get(name) or self._orchestrators.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._tracks or name in self._orchestrators

    def describe(self) -> Dict[str, List[Dict[str, Any]]]:
        """Summarise registered definitions for the API."""
        return {
            "tracks": [
                {
                    "name": track.name,
                    "tasks": track.task_ids,
                    "enableSecondaryLogging": track.enable_secondary_logging,
                }
                for track in self._tracks.values()
            ],
            "orchestrators": [
                {
                    "name": orchestrator.name,
                    "branches": [
                        {"id": branch.identifier, "kind": branch.kind}
                        for branch in orchestrator.branches
                    ],
                    "enableSecondaryLogging": orchestrator.enable_secondary_logging,
                }
                for orchestrator in self._orchestrators.values()
            ],
        }
