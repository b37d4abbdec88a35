"""Pydantic schemas for taskrail."""

from taskrail.schemas.runs import (
    DefinitionsResponse,
    EnvelopeResponse,
    JobInfo,
    RunRequest,
    TaskDescription,
    TaskLogResponse,
)

__all__ = [
    "DefinitionsResponse",
    "EnvelopeResponse",
    "JobInfo",
    "RunRequest",
    "TaskDescription",
    "TaskLogResponse",
]
