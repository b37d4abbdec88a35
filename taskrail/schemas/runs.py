"""Run-related Pydantic schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RunRequest(BaseModel):
    """Request schema for triggering a track or orchestrator run.

    Fields beyond the RunContext are passed through as the run payload.
    """

    model_config = ConfigDict(
        extra="allow",
        json_schema_extra={
            "example": {
                "tenantId": "tenant123",
                "projectId": "project456",
                "userId": "user789",
                "url": "https://example.com/video.mp4",
                "trampData": {"callbackId": "abc"},
            }
        },
    )

    tenantId: str = Field(..., min_length=1, description="Tenant identifier")
    projectId: str = Field(..., min_length=1, description="Project identifier")
    userId: Optional[str] = Field(default=None, description="Optional user identifier")
    trampData: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Opaque data echoed back unchanged in the envelope"
    )

    def to_run_input(self) -> Dict[str, Any]:
        """Run input as submitted, including pass-through payload fields."""
        return self.model_dump(exclude_unset=True)


class JobInfo(BaseModel):
    success: bool
    name: str
    runId: str
    input: Dict[str, Any]
    error: Optional[str] = None


class EnvelopeResponse(BaseModel):
    """Envelope returned by a run."""
    job: JobInfo
    results: Dict[str, Any]
    metadata: Dict[str, Any]
    trampData: Optional[Any] = None


class TaskDescription(BaseModel):
    id: str
    name: str
    description: str = ""
    maxDuration: Optional[float] = None
    input: Optional[Dict[str, Any]] = None


class DefinitionsResponse(BaseModel):
    tracks: List[Dict[str, Any]]
    orchestrators: List[Dict[str, Any]]


class TaskLogResponse(BaseModel):
    """Stored execution log record."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    task: str
    task_name: str
    status: str
    task_category: str
    message: str
    tenant_id: str
    project_id: str
    user_id: Optional[str] = None
    job_id: str
    tags: Optional[List[str]] = None
    operation: Optional[str] = None
    error: Optional[str] = None
    attributes: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
