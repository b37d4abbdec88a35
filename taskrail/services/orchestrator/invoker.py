"""Task Invocation Adapter.

A uniform ``invoke(task_id, payload) -> TaskOutcome`` call over whatever
executes tasks. Task failures and platform faults are returned as failed
outcomes, never raised.
"""

import asyncio
import copy
import inspect
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Type

from pydantic import BaseModel, ValidationError

from taskrail.services.orchestrator.errors import DefinitionError
from taskrail.services.orchestrator.handlers.base import BaseTaskHandler
from taskrail.services.orchestrator.models import TaskErrorCode, TaskOutcome

logger = logging.getLogger(__name__)

TaskHandler = Callable[[Dict[str, Any]], Awaitable[Any]]


def new_run_id(prefix: str = "run") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True)
class TaskRegistration:
    """A handler registered under a task identifier."""
    task_id: str
    handler: TaskHandler
    name: str
    description: str = ""
    input_model: Optional[Type[BaseModel]] = None
    max_duration: Optional[float] = None

    def prepare_input(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Validate the payload against ``input_model``.

        Validated fields (with defaults applied) override the raw ones;
        fields the model does not declare pass through untouched.
        """
        if self.input_model is None:
            return payload
        validated = self.input_model.model_validate(payload)
        return {**payload, **validated.model_dump()}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.task_id,
            "name": self.name,
            "description": self.description,
            "maxDuration": self.max_duration,
            "input": self.input_model.model_json_schema() if self.input_model else None,
        }


class TaskRegistry:
    """Flat string namespace of task handlers resolved at call time."""

    def __init__(self):
        self._tasks: Dict[str, TaskRegistration] = {}

    def register(
        self,
        task_id: str,
        handler: TaskHandler,
        *,
        name: Optional[str] = None,
        description: str = "",
        input_model: Optional[Type[BaseModel]] = None,
        max_duration: Optional[float] = None,
    ) -> TaskRegistration:
        """Register an async handler under ``task_id``.

        Raises:
            DefinitionError: blank or duplicate identifier, or a handler that
                is not callable
        """
        if not isinstance(task_id, str) or not task_id.strip():
            raise DefinitionError("Task identifier must be a non-empty string")
        if task_id in self._tasks:
            raise DefinitionError(f"Task already registered: {task_id}")
        if not callable(handler):
            raise DefinitionError(f"Handler for task {task_id} must be callable")

        registration = TaskRegistration(
            task_id=task_id,
            handler=handler,
            name=name or task_id,
            description=description,
            input_model=input_model,
            max_duration=max_duration,
        )
        self._tasks[task_id] = registration
        logger.debug(f"Registered task {task_id}")
        return registration

    def register_handler(self, handler: BaseTaskHandler) -> TaskRegistration:
        """Register a class-based handler using its class attributes."""
        return self.register(
            handler.task_id,
            handler,
            name=handler.name,
            description=handler.description,
            input_model=handler.input_model,
            max_duration=handler.max_duration,
        )

    def task(self, task_id: str, **options: Any) -> Callable[[TaskHandler], TaskHandler]:
        """Decorator form of ``register``.

        Usage:
            @registry.task("double")
            async def double(payload):
                return {"n": payload["n"] * 2}
        """
        def decorator(func: TaskHandler) -> TaskHandler:
            self.register(task_id, func, **options)
            return func
        return decorator

    def get(self, task_id: str) -> Optional[TaskRegistration]:
        return self._tasks.get(task_id)

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def describe(self) -> List[Dict[str, Any]]:
        return [registration.to_dict() for registration in self._tasks.values()]


class TaskInvoker(ABC):
    """Submits a task by identifier and waits for its outcome."""

    @abstractmethod
    async def invoke(self, task_id: str, payload: Dict[str, Any]) -> TaskOutcome:
        """Run ``task_id`` with ``payload`` and wait for it to settle.

        Must not raise for task failures or platform faults; those come back
        as a failed ``TaskOutcome`` with a ``TaskErrorCode``.
        """
        pass


class LocalTaskInvoker(TaskInvoker):
    """Runs registered handlers in-process on the running event loop."""

    def __init__(self, registry: TaskRegistry, default_timeout: Optional[float] = None):
        self.registry = registry
        self.default_timeout = default_timeout

    async def invoke(self, task_id: str, payload: Dict[str, Any]) -> TaskOutcome:
        run_id = new_run_id()

        registration = self.registry.get(task_id)
        if registration is None:
            logger.error(f"Task {task_id} is not registered")
            return TaskOutcome.failure(
                f"Task not found: {task_id}",
                TaskErrorCode.TASK_NOT_FOUND,
                run_id=run_id,
                task_identifier=task_id,
            )

        try:
            task_input = registration.prepare_input(copy.deepcopy(dict(payload or {})))
        except ValidationError as e:
            logger.warning(f"Invalid input for task {task_id}: {e}")
            return TaskOutcome.failure(
                f"Invalid input: {e}",
                TaskErrorCode.INVALID_INPUT,
                run_id=run_id,
                task_identifier=task_id,
            )

        timeout = registration.max_duration or self.default_timeout
        try:
            result = registration.handler(task_input)
            if inspect.isawaitable(result):
                result = await asyncio.wait_for(result, timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(f"Task {task_id} timed out after {timeout}s")
            return TaskOutcome.failure(
                f"Task timed out after {timeout}s",
                TaskErrorCode.TIMEOUT,
                run_id=run_id,
                task_identifier=task_id,
            )
        except Exception as e:
            logger.error(f"Task {task_id} failed: {e}")
            return TaskOutcome.failure(
                str(e) or e.__class__.__name__,
                TaskErrorCode.TASK_FAILED,
                run_id=run_id,
                task_identifier=task_id,
            )

        return self._to_outcome(task_id, run_id, result)

    def _to_outcome(self, task_id: str, run_id: str, result: Any) -> TaskOutcome:
        if isinstance(result, TaskOutcome):
            return TaskOutcome(
                ok=result.ok,
                output=result.output if result.ok else None,
                error=result.error,
                code=result.code,
                run_id=result.run_id or run_id,
                task_identifier=task_id,
            )
        if result is None:
            result = {}
        if isinstance(result, BaseModel):
            result = result.model_dump()
        if not isinstance(result, Mapping):
            logger.error(f"Task {task_id} returned {type(result).__name__}, expected a mapping")
            return TaskOutcome.failure(
                f"Task returned {type(result).__name__}, expected a mapping",
                TaskErrorCode.INVALID_OUTPUT,
                run_id=run_id,
                task_identifier=task_id,
            )
        return TaskOutcome.success(dict(result), run_id=run_id, task_identifier=task_id)
