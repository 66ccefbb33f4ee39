"""
On-disk layout for task working directories inside a bound project.

    <cwd>/.project/                       project marker directory
    <cwd>/.project/<landmark>/            landmark directory
    <cwd>/.project/<landmark>/<task>/     task directory
    <cwd>/.project/_tasks/<task>/         task without a landmark

Run logs are written to the task directory. The prompt points the agent
at the task, predecessor and landmark directories as reading context.
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .constants import PROJECT_MARKER_DIR, UNGROUPED_TASKS_DIR

logger = logging.getLogger(__name__)


def project_marker_dir(cwd: Path) -> Path:
    return Path(cwd) / PROJECT_MARKER_DIR


def landmark_dir(cwd: Path, landmark_id: Optional[str]) -> Path:
    """Landmark directory, or the marker directory for ungrouped tasks."""
    root = project_marker_dir(cwd)
    return root / landmark_id if landmark_id else root


def task_dir(cwd: Path, task_id: str, landmark_id: Optional[str] = None) -> Path:
    if landmark_id:
        return landmark_dir(cwd, landmark_id) / task_id
    return project_marker_dir(cwd) / UNGROUPED_TASKS_DIR / task_id


def relative_to_cwd(cwd: Path, path: Optional[Path]) -> Optional[str]:
    """Path relative to cwd ("." for cwd itself), or None."""
    if path is None:
        return None
    try:
        rel = Path(path).relative_to(cwd)
    except ValueError:
        return str(path)
    return str(rel) if str(rel) != "." else "."


@dataclass(frozen=True)
class TaskDirectories:
    """Directories a run reads from and writes to."""
    cwd: Path
    task_dir: Path
    landmark_dir: Path
    parent_task_dir: Optional[Path] = None

    @classmethod
    def for_task(
        cls,
        cwd: Path,
        task_id: str,
        landmark_id: Optional[str] = None,
        parent_task_id: Optional[str] = None,
        parent_landmark_id: Optional[str] = None,
    ) -> "TaskDirectories":
        """Compute the directories for a task (no filesystem access)."""
        cwd = Path(cwd)
        parent = (
            task_dir(cwd, parent_task_id, parent_landmark_id)
            if parent_task_id else None
        )
        return cls(
            cwd=cwd,
            task_dir=task_dir(cwd, task_id, landmark_id),
            landmark_dir=landmark_dir(cwd, landmark_id),
            parent_task_dir=parent,
        )

    def ensure(self) -> "TaskDirectories":
        """
        Create all directories.

        Raises:
            OSError: If a directory cannot be created.
        """
        for path in (self.landmark_dir, self.task_dir, self.parent_task_dir):
            if path is not None:
                path.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Task directories ready under {self.task_dir}")
        return self

    def context(self) -> "ContextDirs":
        """Directories relative to cwd, for prompts and logs."""
        return ContextDirs(
            task_dir=relative_to_cwd(self.cwd, self.task_dir),
            parent_dir=relative_to_cwd(self.cwd, self.parent_task_dir),
            landmark_dir=relative_to_cwd(self.cwd, self.landmark_dir),
        )


@dataclass(frozen=True)
class ContextDirs:
    """Context directories relative to cwd."""
    task_dir: Optional[str] = None
    parent_dir: Optional[str] = None
    landmark_dir: Optional[str] = None
