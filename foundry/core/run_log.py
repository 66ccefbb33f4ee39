"""
Per-run log files.

Each task directory gets an append-only ``process_output.log``:

    ==== Process start <iso> ===
    Task / CWD / TaskDir / ParentDir / LandmarkDir / Prompt
    ---- STREAM ----
    [<ts>] [<type>] <raw event json>
    ...
    ---- SUMMARY ----
    <summary>
    Session: <id>
    Cost(USD): <cost>
    ==== Process end <iso> ====

and a condensed ``process_output.clean.md`` with the assistant's remarks,
the files it wrote and the summary. The log file does not depend on the
database and is the record of last resort for a run.
"""
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

from .constants import CLEAN_DIGEST_FILE, RUN_LOG_FILE
from .event_pump import RunEvent
from .project_fs import ContextDirs
from .prompts import render_clean_digest

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def format_event_line(event: RunEvent) -> str:
    return f"[{event.timestamp}] [{event.type}] {event.raw}\n"


def _format_cost(total_cost: Optional[float]) -> str:
    return "" if total_cost is None else str(total_cost)


class RunLog:
    """
    Append-only run log for one task directory.

    Every write opens the file in append mode and closes it again, so a
    crash leaves a valid prefix.
    """

    def __init__(self, task_dir: Path) -> None:
        self._task_dir = Path(task_dir)
        self._output_path = self._task_dir / RUN_LOG_FILE

    @property
    def output_path(self) -> Path:
        return self._output_path

    @property
    def clean_path(self) -> Path:
        return self._task_dir / CLEAN_DIGEST_FILE

    def _append(self, text: str) -> None:
        with self._output_path.open("a", encoding="utf-8") as f:
            f.write(text)
            f.flush()

    def write_header(
        self,
        task_id: str,
        cwd: str,
        context: ContextDirs,
        prompt_text: str,
    ) -> None:
        """Append the block that opens a run."""
        header = (
            f"\n==== Process start {_now_iso()} ===\n"
            f"Task: {task_id}\n"
            f"CWD: {cwd}\n"
            f"TaskDir: {context.task_dir or ''}\n"
            f"ParentDir: {context.parent_dir or ''}\n"
            f"LandmarkDir: {context.landmark_dir or ''}\n"
            f"Prompt:\n{prompt_text}\n"
            f"---- STREAM ----\n"
        )
        self._append(header)

    def append_event(self, event: RunEvent) -> None:
        """Append one event line."""
        self._append(format_event_line(event))

    def write_footer(
        self,
        summary: str,
        session_id: Optional[str],
        total_cost: Optional[float],
    ) -> None:
        """Append the block that closes a run (success or failure)."""
        footer = (
            f"---- SUMMARY ----\n"
            f"{summary}\n"
            f"Session: {session_id or ''}\n"
            f"Cost(USD): {_format_cost(total_cost)}\n"
            f"==== Process end {_now_iso()} ====\n"
        )
        self._append(footer)

    def write_clean_digest(
        self,
        description: str,
        cwd: str,
        events: Iterable[RunEvent],
        summary: str,
        context: ContextDirs,
    ) -> Path:
        """
        Write the condensed markdown record of a run.

        Args:
            description: Task description.
            cwd: Project directory; absolute written paths are shown relative to it.
            events: Recorded run events.
            summary: Final summary text.
            context: Context directories relative to cwd.

        Returns:
            Path of the written digest.
        """
        remarks, file_writes = extract_highlights(events, cwd)
        content = render_clean_digest(
            description=description,
            context=context,
            remarks=remarks,
            file_writes=file_writes,
            summary=summary,
        )
        path = self.clean_path
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, path)
        logger.debug(f"Clean digest written to {path}")
        return path


def extract_highlights(events: Iterable[RunEvent], cwd: str) -> tuple[list[str], list[str]]:
    """
    Pull assistant remarks and Write tool targets out of run events.

    Remarks are deduplicated, keeping first-seen order. Absolute file
    paths are made relative to cwd.

    Returns:
        (remarks, file_writes)
    """
    remarks: list[str] = []
    seen: set[str] = set()
    file_writes: list[str] = []

    for event in events:
        message = event.payload.get("message") if event.type == "assistant" else None
        if not isinstance(message, dict):
            continue
        content = message.get("content")
        if not isinstance(content, list):
            continue
        for item in content:
            if not isinstance(item, dict):
                continue
            if item.get("type") == "text" and isinstance(item.get("text"), str):
                text = item["text"].strip()
                if text and text not in seen:
                    seen.add(text)
                    remarks.append(text)
            elif item.get("type") == "tool_use" and item.get("name") == "Write":
                file_path = _tool_file_path(item.get("input"))
                if file_path:
                    file_writes.append(_relative(file_path, cwd))

    return remarks, file_writes


def _tool_file_path(tool_input: Any) -> Optional[str]:
    if isinstance(tool_input, dict):
        value = tool_input.get("file_path")
        if isinstance(value, str) and value:
            return value
    return None


def _relative(file_path: str, cwd: str) -> str:
    if os.path.isabs(file_path):
        return os.path.relpath(file_path, cwd)
    return file_path
