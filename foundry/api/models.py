"""
Pydantic request/response models for the ai-foundry API.
"""
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response from GET /health."""
    status: str = Field(default="ok", description="Health status")
    version: str = Field(description="API version")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Current server time"
    )


# =============================================================================
# Local directory bindings
# =============================================================================

class BindPathRequest(BaseModel):
    """Request body for PUT /local/projects/{id}/path."""
    path: str = Field(min_length=1, description="Local directory; quotes and ~ accepted")


class LocalPathResponse(BaseModel):
    """Response from GET /local/projects/{id}/path."""
    project_id: str = Field(description="Project identifier")
    path: Optional[str] = Field(default=None, description="Bound directory, if any")
    registry: str = Field(description="Registry document location")


class BindingResponse(BaseModel):
    """A stored project binding."""
    project_id: str
    path: str
    created_at: str
    updated_at: str


class ProjectRootRequest(BaseModel):
    """Request body for PUT /local/project-root."""
    path: str = Field(min_length=1, description="Directory new projects are created under")


class ProjectRootResponse(BaseModel):
    """Current project root."""
    path: str


class AutoBindRequest(BaseModel):
    """Request body for POST /local/projects/{id}/auto-bind."""
    name: str = Field(min_length=1, description="Project name used for the folder")


class OkResponse(BaseModel):
    ok: bool = True


# =============================================================================
# Task processing
# =============================================================================

class ProcessTaskRequest(BaseModel):
    """Request body for POST /tasks/{id}/process."""
    chain: bool = Field(
        default=True,
        description="Also run successor tasks after this one succeeds"
    )
    continue_session: bool = Field(
        default=False,
        description="Resume the task's previous agent conversation"
    )
    session_id: Optional[str] = Field(
        default=None,
        description="Explicit session id to resume"
    )


class TaskRunResponse(BaseModel):
    """Result of one task run."""
    task_id: str
    ok: bool
    summary: str
    session_id: Optional[str] = None
    usage: Optional[dict[str, Any]] = None
    total_cost: Optional[float] = None
    outcome: Optional[str] = None
    error: Optional[str] = None


class ProcessTaskResponse(BaseModel):
    """Response from POST /tasks/{id}/process (first task plus chain)."""
    ok: bool
    summary: str
    session_id: Optional[str] = None
    usage: Optional[dict[str, Any]] = None
    total_cost: Optional[float] = None
    runs: list[TaskRunResponse] = Field(default_factory=list)


class CommentResponse(BaseModel):
    """A task comment."""
    id: str
    task_id: str
    author: str
    summary: str
    content: Optional[dict[str, Any]] = None
    created_at: datetime
