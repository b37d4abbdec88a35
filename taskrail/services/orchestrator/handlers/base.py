"""Base Task Handler.

Base class for class-based task handlers.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class BaseTaskHandler(ABC):
    """Base class for task handlers.

    Subclasses set ``task_id`` and implement ``execute``. The registry calls
    the handler instance like a plain async function.
    """

    task_id: str = ""
    name: Optional[str] = None
    description: str = ""
    input_model: Optional[Type[BaseModel]] = None
    max_duration: Optional[float] = None

    @abstractmethod
    async def execute(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Execute the task.

        Args:
            payload: The task input, already validated against
                ``input_model`` when one is set

        Returns:
            Task output
        """
        pass

    async def __call__(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.execute(payload)
