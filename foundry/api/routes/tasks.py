"""
Task processing endpoints.

Provides endpoints for:
- POST /tasks/{id}/process - Run a task (and its successors) through the agent
- GET /tasks/{id}/comments - Comments, including run records
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.schemas import TaskStatus
from ...db.database import get_db
from ...services.task_orchestrator import ProcessResult, TaskOrchestrator
from ...services.task_service import TaskService
from ..deps import get_orchestrator
from ..models import (
    CommentResponse,
    ProcessTaskRequest,
    ProcessTaskResponse,
    TaskRunResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])

task_service = TaskService()


def result_to_response(result: ProcessResult) -> TaskRunResponse:
    return TaskRunResponse(
        task_id=result.task_id,
        ok=result.ok,
        summary=result.summary,
        session_id=result.session_id,
        usage=result.usage,
        total_cost=result.total_cost,
        outcome=str(result.outcome) if result.outcome else None,
        error=result.error,
    )


@router.post("/{task_id}/process", response_model=ProcessTaskResponse)
async def process_task(
    task_id: str,
    request: ProcessTaskRequest | None = None,
    db: AsyncSession = Depends(get_db),
    orchestrator: TaskOrchestrator = Depends(get_orchestrator),
) -> ProcessTaskResponse:
    """
    Run a task through the coding agent and wait for it to finish.

    Errors:
    - 400: project not bound to a usable directory
    - 404: task not found
    - 409: task already in progress
    - 500: the run failed (task is back in pending with a failure comment)
    """
    request = request or ProcessTaskRequest()

    task = await task_service.get_task(db, task_id)
    if task.status == TaskStatus.IN_PROGRESS:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Task {task_id} is already in progress",
        )
    # The orchestrator works with its own sessions.
    await db.close()

    if request.chain:
        results = await orchestrator.process_chain(
            task_id,
            continue_session=request.continue_session,
            session_id=request.session_id,
        )
    else:
        results = [await orchestrator.process(
            task_id,
            continue_session=request.continue_session,
            session_id=request.session_id,
        )]

    first = results[0]
    if not first.ok:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=first.summary,
        )

    return ProcessTaskResponse(
        ok=all(r.ok for r in results),
        summary=first.summary,
        session_id=first.session_id,
        usage=first.usage,
        total_cost=first.total_cost,
        runs=[result_to_response(r) for r in results],
    )


@router.get("/{task_id}/comments", response_model=list[CommentResponse])
async def list_comments(
    task_id: str,
    db: AsyncSession = Depends(get_db),
) -> list[CommentResponse]:
    """List a task's comments, oldest first."""
    await task_service.get_task(db, task_id)
    comments = await task_service.list_comments(db, task_id)
    return [
        CommentResponse(
            id=c.id,
            task_id=c.task_id,
            author=c.author,
            summary=c.summary,
            content=c.content,
            created_at=c.created_at,
        )
        for c in comments
    ]
