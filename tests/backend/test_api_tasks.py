"""
Tests for task processing endpoints.

Validates POST /api/v1/tasks/{id}/process and GET /api/v1/tasks/{id}/comments.
"""
import pytest
from httpx import AsyncClient

from agent_fakes import (
    ScriptedRuntime,
    assistant_text,
    init_event,
    result_error,
    result_success,
)
from foundry.api.deps import get_orchestrator
from foundry.db.models import Task


class TestProcessTask:
    """Tests for POST /api/v1/tasks/{id}/process."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_process_success(
        self, async_client: AsyncClient, make_task, session_factory, bound_project
    ) -> None:
        """A successful run returns the summary, cost and session."""
        task_id = await make_task()

        response = await async_client.post(f"/api/v1/tasks/{task_id}/process")

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["summary"] == "All done"
        assert data["total_cost"] == 0.02
        assert data["session_id"] == "sess-0001"
        assert data["usage"]["output_tokens"] == 45
        assert [run["task_id"] for run in data["runs"]] == [task_id]
        assert data["runs"][0]["outcome"] == "success"

        async with session_factory() as db:
            assert (await db.get(Task, task_id)).status == "completed"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_process_chain_flag(
        self, async_client: AsyncClient, make_task, bound_project
    ) -> None:
        """chain=false runs only the requested task."""
        root = await make_task("root")
        await make_task("child", predecessor_id=root)

        response = await async_client.post(
            f"/api/v1/tasks/{root}/process", json={"chain": False}
        )
        assert len(response.json()["runs"]) == 1

        response = await async_client.post(f"/api/v1/tasks/{root}/process")
        assert len(response.json()["runs"]) == 2

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_process_missing_task(self, async_client: AsyncClient) -> None:
        """Unknown tasks return 404."""
        response = await async_client.post("/api/v1/tasks/does-not-exist/process")
        assert response.status_code == 404

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_process_in_progress_task(
        self, async_client: AsyncClient, make_task, bound_project, scripted_runtime
    ) -> None:
        """A task already running returns 409 and is not started again."""
        task_id = await make_task(status="in_progress")

        response = await async_client.post(f"/api/v1/tasks/{task_id}/process")

        assert response.status_code == 409
        assert scripted_runtime.prompts == []

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_process_unbound_project(
        self, async_client: AsyncClient, make_task, session_factory
    ) -> None:
        """A project without a directory returns 400 and leaves the task alone."""
        task_id = await make_task()

        response = await async_client.post(f"/api/v1/tasks/{task_id}/process")

        assert response.status_code == 400
        assert "not bound" in response.json()["detail"]
        async with session_factory() as db:
            assert (await db.get(Task, task_id)).status == "pending"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_process_runtime_failure(
        self,
        async_client: AsyncClient,
        test_app,
        make_orchestrator,
        make_task,
        session_factory,
        bound_project,
    ) -> None:
        """A failed run returns 500 with the failure summary."""
        failing = make_orchestrator(
            ScriptedRuntime([init_event(), assistant_text("hi"), result_success()], fail_after=1)
        )
        test_app.dependency_overrides[get_orchestrator] = lambda: failing
        task_id = await make_task()

        response = await async_client.post(f"/api/v1/tasks/{task_id}/process")

        assert response.status_code == 500
        assert response.json()["detail"].startswith("Execution failed")
        async with session_factory() as db:
            assert (await db.get(Task, task_id)).status == "pending"


    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_process_error_result(
        self,
        async_client: AsyncClient,
        test_app,
        make_orchestrator,
        make_task,
        session_factory,
        bound_project,
    ) -> None:
        """A run that ends with an error result completes and reports the outcome."""
        erroring = make_orchestrator(ScriptedRuntime([init_event(), result_error()]))
        test_app.dependency_overrides[get_orchestrator] = lambda: erroring
        task_id = await make_task()

        response = await async_client.post(f"/api/v1/tasks/{task_id}/process")

        assert response.status_code == 200
        assert response.json()["runs"][0]["outcome"] == "error"
        async with session_factory() as db:
            assert (await db.get(Task, task_id)).status == "completed"

class TestTaskComments:
    """Tests for GET /api/v1/tasks/{id}/comments."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_run_comment_is_listed(
        self, async_client: AsyncClient, make_task, bound_project
    ) -> None:
        """A run leaves a ClaudeCode comment with the run record."""
        task_id = await make_task()
        await async_client.post(f"/api/v1/tasks/{task_id}/process")

        response = await async_client.get(f"/api/v1/tasks/{task_id}/comments")

        assert response.status_code == 200
        comments = response.json()
        assert len(comments) == 1
        assert comments[0]["author"] == "ClaudeCode"
        assert comments[0]["content"]["result"]["totalCost"] == 0.02
        assert len(comments[0]["content"]["events"]) == 3

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_comments_missing_task(self, async_client: AsyncClient) -> None:
        """Unknown tasks return 404."""
        response = await async_client.get("/api/v1/tasks/nope/comments")
        assert response.status_code == 404
