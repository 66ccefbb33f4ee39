"""
Tests for TaskService persistence.
"""
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from foundry.core.exceptions import PersistenceError, TaskNotFoundError
from foundry.core.schemas import TaskStatus
from foundry.db.models import Task
from foundry.services.task_service import TaskService, with_db_retry


@pytest.fixture
def service() -> TaskService:
    return TaskService()


class TestTaskService:
    """Tests for task and comment access."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_get_task(self, service, make_task, session_factory) -> None:
        """An existing task is returned."""
        task_id = await make_task("Do things")

        async with session_factory() as db:
            task = await service.get_task(db, task_id)

        assert task.description == "Do things"
        assert task.status == "pending"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_get_missing_task(self, service, test_session) -> None:
        """A missing task raises TaskNotFoundError."""
        with pytest.raises(TaskNotFoundError):
            await service.get_task(test_session, "missing")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_update_status(self, service, make_task, session_factory) -> None:
        """Status updates are committed."""
        task_id = await make_task()

        async with session_factory() as db:
            await service.update_task_status(db, task_id, TaskStatus.IN_PROGRESS)

        async with session_factory() as db:
            assert (await db.get(Task, task_id)).status == "in_progress"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_update_missing_task(self, service, test_session) -> None:
        """Updating a missing task raises TaskNotFoundError."""
        with pytest.raises(TaskNotFoundError):
            await service.update_task_status(test_session, "missing", TaskStatus.COMPLETED)

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_comments_in_order(self, service, make_task, session_factory) -> None:
        """Comments are listed oldest first with their JSON content."""
        task_id = await make_task()

        async with session_factory() as db:
            await service.insert_comment(db, task_id, "ClaudeCode", "first", {"n": 1})
            await service.insert_comment(db, task_id, "someone", "second")
            comments = await service.list_comments(db, task_id)

        assert [c.summary for c in comments] == ["first", "second"]
        assert comments[0].content == {"n": 1}
        assert comments[1].content is None

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_successors_in_creation_order(
        self, service, make_task, session_factory
    ) -> None:
        """Successors are the tasks pointing at a predecessor, oldest first."""
        base = datetime(2025, 1, 1, 12, 0, 0)
        root = await make_task("root", created_at=base)
        later = await make_task("later", predecessor_id=root, created_at=base + timedelta(minutes=2))
        earlier = await make_task("earlier", predecessor_id=root, created_at=base + timedelta(minutes=1))
        await make_task("unrelated", created_at=base)

        async with session_factory() as db:
            successors = await service.list_successors(db, root)

        assert [t.id for t in successors] == [earlier, later]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_latest_session_id(self, service, make_task, session_factory) -> None:
        """The newest agent comment with a session id wins."""
        task_id = await make_task()

        async with session_factory() as db:
            assert await service.latest_session_id(db, task_id) is None

            await service.insert_comment(
                db, task_id, "ClaudeCode", "run 1", {"result": {"sessionId": "s-old"}}
            )
            await service.insert_comment(
                db, task_id, "ClaudeCode", "run 2", {"result": {"sessionId": "s-new"}}
            )
            await service.insert_comment(
                db, task_id, "someone", "note", {"result": {"sessionId": "s-human"}}
            )

            assert await service.latest_session_id(db, task_id) == "s-new"


class TestWithDbRetry:
    """Tests for the retry decorator."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_retries_operational_errors(self) -> None:
        """Transient errors are retried until the call succeeds."""
        func = AsyncMock(side_effect=[OperationalError("stmt", {}, Exception("locked")), "ok"])
        func.__name__ = "flaky"

        wrapped = with_db_retry(max_retries=2, retry_delay=0)(func)

        assert await wrapped() == "ok"
        assert func.await_count == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_persistence_error(self) -> None:
        """Errors left after retrying surface as PersistenceError."""
        func = AsyncMock(side_effect=OperationalError("stmt", {}, Exception("locked")))
        func.__name__ = "always_locked"

        wrapped = with_db_retry(max_retries=1, retry_delay=0)(func)

        with pytest.raises(PersistenceError):
            await wrapped()
        assert func.await_count == 2

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_integrity_errors_are_not_retried(self) -> None:
        """Constraint violations fail immediately."""
        func = AsyncMock(side_effect=IntegrityError("stmt", {}, Exception("unique")))
        func.__name__ = "insert"

        wrapped = with_db_retry(max_retries=3, retry_delay=0)(func)

        with pytest.raises(PersistenceError):
            await wrapped()
        assert func.await_count == 1
