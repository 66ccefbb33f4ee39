"""
Pytest configuration and fixtures for backend tests.

Provides fixtures for:
- In-memory test database shared by every session of a test
- A directory registry and a bound project directory in tmp_path
- Task orchestrators driven by a scripted agent runtime
- FastAPI test app and async client with overridden dependencies
"""
import sys
import uuid
from datetime import datetime
from pathlib import Path
from typing import AsyncGenerator, Optional
from unittest.mock import patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Add project root and the shared test helpers to path before importing project modules
PROJECT_ROOT = Path(__file__).parent.parent.parent
TESTS_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))
sys.path.insert(0, str(TESTS_DIR))

from agent_fakes import PROJECT_ID, ScriptedRuntime, assistant_text, init_event, result_success  # noqa: E402
from foundry.api.deps import get_orchestrator, get_registry  # noqa: E402
from foundry.api.main import create_app  # noqa: E402
from foundry.core.registry import DirectoryRegistry  # noqa: E402
from foundry.core.schemas import PermissionMode, RunSettings  # noqa: E402
from foundry.db.database import Base, get_db, init_db, make_session_factory  # noqa: E402
from foundry.db.models import Project, Task  # noqa: E402
from foundry.services.task_orchestrator import TaskOrchestrator  # noqa: E402


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "unit: marks tests as unit tests (fast, no external dependencies)"
    )
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (may use real database)"
    )


# In-memory SQLite for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def test_engine():
    """
    Create a test database engine.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    await init_db(engine)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test engine."""
    return make_session_factory(test_engine)


@pytest_asyncio.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_task(session_factory):
    """
    Factory inserting a task (and its project on first use).

    Returns the new task id.
    """
    async def _make(
        description: str = "Write a README",
        project_id: str = PROJECT_ID,
        status: str = "pending",
        predecessor_id: Optional[str] = None,
        landmark_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> str:
        async with session_factory() as db:
            if await db.get(Project, project_id) is None:
                db.add(Project(id=project_id, name="Demo project"))
            task = Task(
                id=str(uuid.uuid4()),
                project_id=project_id,
                description=description,
                status=status,
                predecessor_id=predecessor_id,
                landmark_id=landmark_id,
            )
            if created_at is not None:
                task.created_at = created_at
            db.add(task)
            await db.commit()
            return task.id

    return _make


@pytest.fixture
def registry(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> DirectoryRegistry:
    """Registry in tmp_path, with HOME pointed away from real files."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    return DirectoryRegistry(config_dir=tmp_path / "registry")


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path.resolve()


@pytest.fixture
def bound_project(registry: DirectoryRegistry, project_dir: Path) -> Path:
    """The test project bound to project_dir."""
    registry.set(PROJECT_ID, str(project_dir))
    return project_dir


@pytest.fixture
def run_settings() -> RunSettings:
    return RunSettings(
        model=None,
        max_turns=20,
        permission_mode=PermissionMode.DEFAULT,
        summary_model="gemini-2.5-flash",
        summary_digest_events=18,
    )


@pytest.fixture
def make_orchestrator(registry, run_settings, session_factory):
    """Factory for orchestrators using the test database and registry."""
    def _make(runtime, summarizer=None, sessions=None) -> TaskOrchestrator:
        return TaskOrchestrator(
            registry=registry,
            settings=run_settings,
            runtime=runtime,
            summarizer=summarizer,
            session_factory=session_factory,
            sessions=sessions,
        )
    return _make


@pytest.fixture
def scripted_runtime() -> ScriptedRuntime:
    """A runtime that completes successfully."""
    return ScriptedRuntime([
        init_event(),
        assistant_text("Creating README.md"),
        result_success(cost=0.02),
    ])


@pytest.fixture
def test_app(session_factory, registry, make_orchestrator, scripted_runtime):
    """
    Create a FastAPI app configured for testing.

    Uses the in-memory database, the tmp registry and an orchestrator
    driven by scripted_runtime.
    """
    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    orchestrator = make_orchestrator(scripted_runtime)

    with patch("foundry.api.main.load_api_config") as mock_config:
        mock_config.return_value = {
            "api": {
                "host": "0.0.0.0",
                "port": 40080,
                "cors_origins": ["http://localhost:3000"],
            }
        }
        app = create_app()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_registry] = lambda: registry
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    yield app

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def async_client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test"
    ) as ac:
        yield ac
