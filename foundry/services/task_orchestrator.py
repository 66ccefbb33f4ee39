"""
Task orchestrator for ai-foundry.

Hands a task to the coding agent inside the project's bound directory
and records what happened:

1. Resolve the bound directory (BindingError before any state change).
2. Mark the task in_progress.
3. Build run options whose tool gate is bound to that directory.
4. Render the prompt, stream the run into the run log.
5. Summarize, persist the run record as a comment, set the final status.

A run that ends with a result event, successful or not, completes the
task; the outcome is kept in the run record. A stream that ends without
a result leaves the task pending. Any exception after step 2 puts the
task back to pending and records a single failure comment with whatever
events were captured. Runs are expected to be retried, so there is no
failed status.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..config import NetworkConfig
from ..core.constants import COMMENT_AUTHOR, FAILURE_SUMMARY_PREFIX
from ..core.event_pump import AgentRuntime, ClaudeAgentRuntime, EventPump, PumpState
from ..core.exceptions import BindingError, TransportError
from ..core.permissions import RunOptions
from ..core.project_fs import ContextDirs, TaskDirectories
from ..core.prompts import render_task_prompt
from ..core.registry import DirectoryRegistry, validate_directory_exists
from ..core.run_log import RunLog
from ..core.schemas import RunOutcome, RunSettings, TaskStatus
from ..core.sessions import SessionStore
from ..core.summarizer import Summarizer, generate_summary
from ..db.database import AsyncSessionLocal
from .task_service import TaskService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskInfo:
    """Task columns the orchestrator needs, detached from the ORM session."""
    id: str
    project_id: str
    description: str
    status: str
    landmark_id: Optional[str] = None
    predecessor_id: Optional[str] = None


@dataclass
class ProcessResult:
    """Outcome of processing one task."""
    task_id: str
    ok: bool
    summary: str
    session_id: Optional[str] = None
    usage: Optional[dict[str, Any]] = None
    total_cost: Optional[float] = None
    outcome: Optional[RunOutcome] = None
    error: Optional[str] = None
    events_recorded: int = 0
    denials: list[dict[str, str]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.ok and self.outcome == RunOutcome.SUCCESS


def build_run_record(
    prompt: str,
    cwd: str,
    state: PumpState,
    options: Optional[RunOptions] = None,
    error: Optional[str] = None,
) -> dict[str, Any]:
    """
    Structured comment content for a run.

    Shape: {prompt, cwd, result: {sessionId, usage, totalCost, outcome},
    tokenUsage, denials, events[, error]}.
    """
    record: dict[str, Any] = {
        "prompt": prompt,
        "cwd": cwd,
        "result": {
            "sessionId": state.session_id,
            "usage": state.usage,
            "totalCost": state.total_cost_usd,
            "outcome": str(state.outcome) if state.outcome else None,
        },
        "tokenUsage": state.token_usage.model_dump(),
        "denials": options.denial_tracker.to_list() if options else [],
        "events": [event.to_dict() for event in state.events],
    }
    if error is not None:
        record["error"] = error
    return record


class TaskOrchestrator:
    """
    Runs tasks through the coding agent.

    Stateless per invocation; concurrent runs of the same task must be
    prevented by the caller (the API returns 409 for in_progress tasks).

    Usage:
        orchestrator = TaskOrchestrator(registry, settings)
        result = await orchestrator.process(task_id)
        results = await orchestrator.process_chain(task_id)
    """

    def __init__(
        self,
        registry: DirectoryRegistry,
        settings: RunSettings,
        runtime: Optional[AgentRuntime] = None,
        summarizer: Optional[Summarizer] = None,
        session_factory: async_sessionmaker[AsyncSession] = AsyncSessionLocal,
        task_service: Optional[TaskService] = None,
        sessions: Optional[SessionStore] = None,
        network: Optional[NetworkConfig] = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            registry: Project to directory bindings.
            settings: Run settings (model, turns, permission mode, summary).
            runtime: Agent runtime. Defaults to the Claude Agent SDK.
            summarizer: Optional summary service.
            session_factory: Factory for short-lived database sessions.
            task_service: Persistence adapter.
            sessions: In-process session identities per task.
            network: Proxy settings handed to the runtime.
        """
        self._registry = registry
        self._settings = settings
        self._runtime = runtime or ClaudeAgentRuntime()
        self._summarizer = summarizer
        self._session_factory = session_factory
        self._tasks = task_service or TaskService()
        self._sessions = sessions or SessionStore()
        self._network = network or NetworkConfig()

    # -------------------------------------------------------------------------
    # Persistence helpers
    # -------------------------------------------------------------------------

    async def _load_task(self, task_id: str) -> TaskInfo:
        async with self._session_factory() as db:
            task = await self._tasks.get_task(db, task_id)
            return TaskInfo(
                id=task.id,
                project_id=task.project_id,
                description=task.description,
                status=task.status,
                landmark_id=task.landmark_id,
                predecessor_id=task.predecessor_id,
            )

    async def _set_status(self, task_id: str, status: TaskStatus) -> None:
        async with self._session_factory() as db:
            await self._tasks.update_task_status(db, task_id, status)

    async def _finish_status(self, task_id: str, status: TaskStatus) -> None:
        """Set the final status of a recorded run. Failures are logged and swallowed."""
        try:
            await self._set_status(task_id, status)
        except Exception as e:
            logger.warning(f"Could not set task {task_id} to {status}: {e}")

    async def _rollback_status(self, task_id: str) -> None:
        """Put the task back to pending. Never raises."""
        try:
            await self._set_status(task_id, TaskStatus.PENDING)
            logger.info(f"Task {task_id} rolled back to pending")
        except Exception as e:
            logger.error(f"Could not roll back task {task_id} to pending: {e}")

    async def _insert_comment(self, task_id: str, summary: str, content: dict[str, Any]) -> bool:
        """Persist a comment. Failures are logged and swallowed."""
        try:
            async with self._session_factory() as db:
                await self._tasks.insert_comment(db, task_id, COMMENT_AUTHOR, summary, content)
            return True
        except Exception as e:
            logger.warning(f"Could not save run comment for task {task_id}: {e}")
            return False

    async def _stored_session_id(self, task_id: str) -> Optional[str]:
        try:
            async with self._session_factory() as db:
                return await self._tasks.latest_session_id(db, task_id)
        except Exception as e:
            logger.warning(f"Could not look up previous session for task {task_id}: {e}")
            return None

    # -------------------------------------------------------------------------
    # Run preparation
    # -------------------------------------------------------------------------

    def resolve_directory(self, project_id: str) -> Path:
        """
        Bound directory of a project, re-validated now.

        Raises:
            BindingError: If the project is unbound or the directory is unusable.
        """
        bound = self._registry.get(project_id)
        if not bound:
            raise BindingError(f"Project {project_id} is not bound to a local directory")
        check = validate_directory_exists(bound)
        if not check.ok:
            raise BindingError(f"Bound directory {bound} is unusable: {check.reason}")
        return Path(check.path)

    async def _task_directories(self, cwd: Path, task: TaskInfo) -> TaskDirectories:
        parent_landmark: Optional[str] = None
        parent_id = task.predecessor_id
        if parent_id:
            try:
                parent_landmark = (await self._load_task(parent_id)).landmark_id
            except Exception as e:
                logger.warning(f"Predecessor {parent_id} of task {task.id} unavailable: {e}")
                parent_id = None

        dirs = TaskDirectories.for_task(
            cwd,
            task.id,
            landmark_id=task.landmark_id,
            parent_task_id=parent_id,
            parent_landmark_id=parent_landmark,
        )
        try:
            return dirs.ensure()
        except OSError as e:
            raise BindingError(f"Cannot create task directory under {cwd}: {e}") from e

    async def build_options(
        self,
        cwd: Path,
        task_id: str,
        continue_session: bool = False,
        session_id: Optional[str] = None,
    ) -> RunOptions:
        """
        Run options for a task.

        Resume precedence: explicit session_id, then the id seen in this
        process, then the id stored with the last run (only when
        continuing).
        """
        resume = session_id
        if continue_session and not resume:
            resume = self._sessions.for_task(task_id).resume_id()
            if not resume:
                resume = await self._stored_session_id(task_id)

        return RunOptions(
            cwd=cwd,
            permission_mode=self._settings.permission_mode,
            resume_session_id=resume,
            continue_conversation=bool(continue_session and not resume),
            model=self._settings.model,
            max_turns=self._settings.max_turns,
            env=self._network.runtime_env(),
        )

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    async def process(
        self,
        task_id: str,
        continue_session: bool = False,
        session_id: Optional[str] = None,
    ) -> ProcessResult:
        """
        Run one task through the agent.

        Args:
            task_id: Task to run.
            continue_session: Resume the task's previous conversation.
            session_id: Explicit session id to resume (wins over stored ids).

        Returns:
            ProcessResult. ok is True when the runtime reported a result;
            outcome tells success from an in-band error. ok is False for
            runs that crashed or ended without a result; the task is then
            back in pending.

        Raises:
            TaskNotFoundError: If the task does not exist.
            BindingError: If the project has no usable directory. The task
                status is not touched.
        """
        task = await self._load_task(task_id)
        cwd = self.resolve_directory(task.project_id)
        dirs = await self._task_directories(cwd, task)
        context = dirs.context()

        await self._set_status(task_id, TaskStatus.IN_PROGRESS)
        logger.info(f"Task {task_id} started in {cwd}")

        state = PumpState()
        options: Optional[RunOptions] = None
        run_log: Optional[RunLog] = None
        prompt = ""

        try:
            options = await self.build_options(cwd, task_id, continue_session, session_id)
            prompt = render_task_prompt(str(cwd), task.description, context)

            run_log = RunLog(dirs.task_dir)
            run_log.write_header(task_id, str(cwd), context, prompt)

            pump = EventPump(self._runtime, identity=self._sessions.for_task(task_id))
            await pump.run(prompt, options, on_event=run_log.append_event, state=state)

            summary = await generate_summary(
                self._summarizer,
                task.description,
                str(cwd),
                state.events,
                result_text=state.result_text,
                digest_events=self._settings.summary_digest_events,
            )
            run_log.write_footer(summary, state.session_id, state.total_cost_usd)

            await self._insert_comment(
                task_id, summary, build_run_record(prompt, str(cwd), state, options)
            )

            final_status = TaskStatus.COMPLETED if state.finished else TaskStatus.PENDING
            await self._finish_status(task_id, final_status)

            self._write_clean_digest(run_log, task, str(cwd), state, summary, context)

            logger.info(
                f"Task {task_id} finished: outcome={state.outcome}, "
                f"events={len(state.events)}, cost={state.total_cost_usd}"
            )
            return ProcessResult(
                task_id=task_id,
                ok=state.finished,
                summary=summary,
                session_id=state.session_id,
                usage=state.usage,
                total_cost=state.total_cost_usd,
                outcome=state.outcome,
                error=None if state.succeeded else f"Run ended with outcome {state.outcome}",
                events_recorded=len(state.events),
                denials=options.denial_tracker.to_list(),
            )

        except asyncio.CancelledError:
            logger.warning(f"Task {task_id} cancelled, rolling back")
            await self._rollback_status(task_id)
            raise

        except Exception as e:
            if isinstance(e, TransportError) and e.state is not None:
                state = e.state
            message = str(e) or e.__class__.__name__
            logger.exception(f"Task {task_id} failed: {message}")
            return await self._record_failure(
                task_id, str(cwd), prompt, state, options, run_log, message
            )

    async def _record_failure(
        self,
        task_id: str,
        cwd: str,
        prompt: str,
        state: PumpState,
        options: Optional[RunOptions],
        run_log: Optional[RunLog],
        message: str,
    ) -> ProcessResult:
        """Roll back, then write one failure comment and the log footer. Never raises."""
        await self._rollback_status(task_id)

        summary = f"{FAILURE_SUMMARY_PREFIX}{message}"
        await self._insert_comment(
            task_id, summary, build_run_record(prompt, cwd, state, options, error=message)
        )

        if run_log is not None:
            try:
                run_log.write_footer(summary, state.session_id, state.total_cost_usd)
            except OSError as e:
                logger.warning(f"Could not write run log footer for task {task_id}: {e}")

        return ProcessResult(
            task_id=task_id,
            ok=False,
            summary=summary,
            session_id=state.session_id,
            usage=state.usage,
            total_cost=state.total_cost_usd,
            outcome=state.outcome,
            error=message,
            events_recorded=len(state.events),
            denials=options.denial_tracker.to_list() if options else [],
        )

    def _write_clean_digest(
        self,
        run_log: RunLog,
        task: TaskInfo,
        cwd: str,
        state: PumpState,
        summary: str,
        context: ContextDirs,
    ) -> None:
        try:
            run_log.write_clean_digest(task.description, cwd, state.events, summary, context)
        except Exception as e:
            logger.warning(f"Could not write clean digest for task {task.id}: {e}")

    async def process_chain(
        self,
        task_id: str,
        continue_session: bool = False,
        session_id: Optional[str] = None,
    ) -> list[ProcessResult]:
        """
        Run a task, then its successors depth-first in creation order.

        Each task runs at most once per chain. The chain stops at the
        first run whose outcome is not success. Session options apply to the
        first task only.

        Returns:
            Results in the order the tasks ran.
        """
        visited: set[str] = set()
        results: list[ProcessResult] = []
        await self._walk(task_id, visited, results, continue_session, session_id)
        return results

    async def _walk(
        self,
        task_id: str,
        visited: set[str],
        results: list[ProcessResult],
        continue_session: bool = False,
        session_id: Optional[str] = None,
    ) -> bool:
        if task_id in visited:
            logger.warning(f"Skipping task {task_id}: already processed in this chain")
            return True
        visited.add(task_id)

        result = await self.process(task_id, continue_session, session_id)
        results.append(result)
        if not result.succeeded:
            logger.info(f"Chain stopped at task {task_id}: outcome={result.outcome}")
            return False

        async with self._session_factory() as db:
            successor_ids = [t.id for t in await self._tasks.list_successors(db, task_id)]

        for successor_id in successor_ids:
            if not await self._walk(successor_id, visited, results):
                return False
        return True
