"""
Task service for ai-foundry.

Database access for tasks and their comments: the slice of persistence
the task orchestrator needs.

Implements robustness features:
- Retry logic for transient database failures
- Rollback on failed writes
- Database errors surfaced as PersistenceError
"""
import asyncio
import logging
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.constants import COMMENT_AUTHOR
from ..core.exceptions import PersistenceError, TaskNotFoundError
from ..core.schemas import TaskStatus
from ..db.models import Comment, Task

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Retry configuration
MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 0.1
RETRY_BACKOFF_MULTIPLIER = 2.0


def with_db_retry(
    max_retries: int = MAX_RETRIES,
    retry_delay: float = RETRY_DELAY_SECONDS,
    backoff_multiplier: float = RETRY_BACKOFF_MULTIPLIER,
) -> Callable:
    """
    Decorator for retrying database operations on transient failures.

    Retries on OperationalError (connection issues, locks, etc.)
    but not on IntegrityError (constraint violations). Any database
    error left after retrying is raised as PersistenceError.
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            last_error: Optional[Exception] = None
            delay = retry_delay

            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except OperationalError as e:
                    last_error = e
                    if attempt < max_retries:
                        logger.warning(
                            f"Database operation failed (attempt {attempt + 1}/{max_retries + 1}): {e}. "
                            f"Retrying in {delay:.2f}s..."
                        )
                        await asyncio.sleep(delay)
                        delay *= backoff_multiplier
                    else:
                        logger.error(
                            f"Database operation failed after {max_retries + 1} attempts: {e}"
                        )
                except IntegrityError as e:
                    # Don't retry integrity errors - they won't succeed
                    raise PersistenceError(f"{func.__name__} failed: {e}") from e
                except SQLAlchemyError as e:
                    raise PersistenceError(f"{func.__name__} failed: {e}") from e

            raise PersistenceError(f"{func.__name__} failed: {last_error}") from last_error
        return wrapper
    return decorator


class TaskService:
    """
    Service for task and comment persistence.

    Every method takes the AsyncSession to use, so callers decide the
    session lifetime (request-scoped in the API, one short session per
    write in the orchestrator).
    """

    @with_db_retry()
    async def get_task(self, db: AsyncSession, task_id: str) -> Task:
        """
        Get a task by ID.

        Raises:
            TaskNotFoundError: If no task has this ID.
        """
        result = await db.execute(select(Task).where(Task.id == task_id))
        task = result.scalar_one_or_none()
        if task is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")
        return task

    @with_db_retry()
    async def update_task_status(
        self,
        db: AsyncSession,
        task_id: str,
        status: TaskStatus,
    ) -> None:
        """
        Set a task's status and commit.

        Raises:
            TaskNotFoundError: If no task has this ID.
        """
        result = await db.execute(select(Task).where(Task.id == task_id))
        task = result.scalar_one_or_none()
        if task is None:
            raise TaskNotFoundError(f"Task not found: {task_id}")

        task.status = TaskStatus(status).value
        task.updated_at = datetime.now(timezone.utc)
        try:
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise
        logger.info(f"Task {task_id} status -> {task.status}")

    @with_db_retry()
    async def insert_comment(
        self,
        db: AsyncSession,
        task_id: str,
        author: str,
        summary: str,
        content: Optional[dict[str, Any]] = None,
    ) -> Comment:
        """
        Add a comment to a task and commit.

        Args:
            db: Database session.
            task_id: Task the comment belongs to.
            author: Comment author.
            summary: Short text shown in listings.
            content: Structured JSON body.

        Returns:
            The created Comment.
        """
        comment = Comment(
            task_id=task_id,
            author=author,
            summary=summary,
            content=content,
        )
        db.add(comment)
        try:
            await db.commit()
            await db.refresh(comment)
        except SQLAlchemyError:
            await db.rollback()
            raise
        logger.debug(f"Comment {comment.id} added to task {task_id}")
        return comment

    @with_db_retry()
    async def list_comments(self, db: AsyncSession, task_id: str) -> list[Comment]:
        """Comments of a task, oldest first."""
        result = await db.execute(
            select(Comment)
            .where(Comment.task_id == task_id)
            .order_by(Comment.created_at.asc())
        )
        return list(result.scalars().all())

    @with_db_retry()
    async def list_successors(self, db: AsyncSession, task_id: str) -> list[Task]:
        """Tasks whose predecessor is task_id, in creation order."""
        result = await db.execute(
            select(Task)
            .where(Task.predecessor_id == task_id)
            .order_by(Task.created_at.asc())
        )
        return list(result.scalars().all())

    @with_db_retry()
    async def latest_session_id(self, db: AsyncSession, task_id: str) -> Optional[str]:
        """
        Session id recorded by the most recent agent run on a task.

        Returns:
            The session id, or None if no run recorded one.
        """
        result = await db.execute(
            select(Comment)
            .where(Comment.task_id == task_id, Comment.author == COMMENT_AUTHOR)
            .order_by(Comment.created_at.desc())
        )
        for comment in result.scalars():
            content = comment.content or {}
            run_result = content.get("result") if isinstance(content, dict) else None
            if isinstance(run_result, dict) and run_result.get("sessionId"):
                return run_result["sessionId"]
        return None
