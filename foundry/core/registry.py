"""
Local directory registry.

Durable mapping from project id to the local directory the project is
bound to. The mapping lives in a single JSON document in the per-user
config directory:

    {
      "version": 1,
      "projects": {"<id>": {"projectId", "path", "createdAt", "updatedAt"}},
      "settings": {"project_root": "..."}
    }

Writes replace the whole document atomically (temp file + rename). Two
processes writing at once is last-writer-wins.
"""
import json
import logging
import os
import re
import stat
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .constants import (
    DEFAULT_PROJECT_ROOT,
    REGISTRY_ALT_FILE_NAME,
    REGISTRY_APP_DIR,
    REGISTRY_FILE_NAME,
    REGISTRY_VERSION,
)
from .exceptions import InvalidPathError, RegistryError

logger = logging.getLogger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r'[/\\:*?"<>|]')


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ProjectBinding(BaseModel):
    """A project bound to a local directory."""
    model_config = ConfigDict(populate_by_name=True)

    project_id: str = Field(alias="projectId", description="Project identifier")
    path: str = Field(description="Absolute directory path")
    created_at: str = Field(alias="createdAt", description="ISO timestamp of first bind")
    updated_at: str = Field(alias="updatedAt", description="ISO timestamp of last bind")


class RegistrySettings(BaseModel):
    """Registry-wide settings."""
    project_root: Optional[str] = None


class RegistryDocument(BaseModel):
    """The on-disk registry document."""
    version: int = REGISTRY_VERSION
    projects: dict[str, ProjectBinding] = Field(default_factory=dict)
    settings: Optional[RegistrySettings] = None

    def to_json(self) -> str:
        data = self.model_dump(by_alias=True, exclude_none=True)
        return json.dumps(data, indent=2, ensure_ascii=False)


class DirectoryCheck(BaseModel):
    """Result of validate_directory_exists."""
    ok: bool
    reason: Optional[str] = None
    path: Optional[str] = None


# =============================================================================
# Locations
# =============================================================================

def default_config_dir(environ: Optional[dict[str, str]] = None) -> Path:
    """
    Per-user config directory holding the registry.

    Windows uses APPDATA. Elsewhere LOCAL_REGISTRY_DIR, then
    XDG_CONFIG_HOME, then ~/.config. The app directory is appended.
    """
    env = os.environ if environ is None else environ
    if sys.platform == "win32":
        base = env.get("APPDATA") or str(Path.home() / "AppData" / "Roaming")
    else:
        base = (
            env.get("LOCAL_REGISTRY_DIR")
            or env.get("XDG_CONFIG_HOME")
            or str(Path.home() / ".config")
        )
    return Path(base) / REGISTRY_APP_DIR


def legacy_registry_file() -> Path:
    """Registry location used by older macOS builds."""
    return (
        Path.home() / "Library" / "Application Support"
        / REGISTRY_APP_DIR / REGISTRY_FILE_NAME
    )


def normalize_path(raw_path: str) -> Path:
    """
    Normalize a user-supplied directory path.

    Trims whitespace and surrounding quotes, expands ~ and resolves to an
    absolute path. Does not touch the filesystem beyond resolving.
    """
    text = raw_path.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        text = text[1:-1].strip()
    if not text:
        raise InvalidPathError("Path is empty")
    return Path(text).expanduser().resolve()


def validate_directory_exists(raw_path: str) -> DirectoryCheck:
    """
    Check that a path names an existing directory.

    Args:
        raw_path: User-supplied path.

    Returns:
        DirectoryCheck with reason "Not a directory" or
        "Path not accessible" when the check fails.
    """
    try:
        path = normalize_path(raw_path)
    except (InvalidPathError, OSError, RuntimeError) as e:
        return DirectoryCheck(ok=False, reason=f"Path not accessible: {e}")

    try:
        mode = path.stat().st_mode
    except OSError as e:
        return DirectoryCheck(
            ok=False,
            reason=f"Path not accessible: {e.strerror or e}",
            path=str(path),
        )

    if not stat.S_ISDIR(mode):
        return DirectoryCheck(ok=False, reason="Not a directory", path=str(path))
    return DirectoryCheck(ok=True, path=str(path))


def sanitize_folder_name(name: str) -> str:
    """Replace characters that are unsafe in folder names with '-'."""
    cleaned = _UNSAFE_NAME_CHARS.sub("-", name).strip().strip(".")
    return cleaned or "project"


# =============================================================================
# Registry
# =============================================================================

class DirectoryRegistry:
    """
    Project to local directory bindings.

    Handles:
    - Lookup, bind and unbind of projects
    - The project root setting used for auto-binding
    - One-time migration from older file locations

    Usage:
        registry = DirectoryRegistry()
        registry.set("p1", "~/code/p1")
        registry.get("p1")   # -> "/home/me/code/p1"
    """

    def __init__(self, config_dir: Optional[Path] = None) -> None:
        """
        Initialize the registry.

        Args:
            config_dir: Directory holding the registry file. Defaults to
                default_config_dir().
        """
        self._config_dir = config_dir or default_config_dir()
        self._file = self._config_dir / REGISTRY_FILE_NAME

    @property
    def file_path(self) -> Path:
        """Path of the registry document."""
        return self._file

    # -------------------------------------------------------------------------
    # Document I/O
    # -------------------------------------------------------------------------

    def _read_file(self, path: Path) -> RegistryDocument:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("Registry document is not an object")
        return RegistryDocument.model_validate(data)

    def _migrate(self) -> RegistryDocument:
        """Copy the first readable older document into place, else start empty."""
        for candidate in (self._config_dir / REGISTRY_ALT_FILE_NAME, legacy_registry_file()):
            if not candidate.is_file():
                continue
            try:
                document = self._read_file(candidate)
                self._write(document)
                logger.info(f"Migrated directory registry from {candidate}")
                return document
            except (OSError, ValueError, ValidationError, RegistryError) as e:
                logger.warning(f"Ignoring unreadable registry at {candidate}: {e}")
        return RegistryDocument()

    def _load(self) -> RegistryDocument:
        """
        Load the registry document, creating it lazily.

        Raises:
            RegistryError: If the canonical document exists but is corrupt.
        """
        if not self._file.exists():
            return self._migrate()
        try:
            return self._read_file(self._file)
        except (OSError, ValueError, ValidationError) as e:
            raise RegistryError(f"Cannot read registry {self._file}: {e}") from e

    def _write(self, document: RegistryDocument) -> None:
        """
        Atomically replace the registry document.

        Raises:
            RegistryError: If the document cannot be written.
        """
        tmp = self._file.with_name(self._file.name + ".tmp")
        try:
            self._config_dir.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                f.write(document.to_json())
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self._file)
        except OSError as e:
            raise RegistryError(f"Cannot write registry {self._file}: {e}") from e

    # -------------------------------------------------------------------------
    # Bindings
    # -------------------------------------------------------------------------

    def get(self, project_id: str) -> Optional[str]:
        """
        Look up the bound directory for a project.

        Never raises; unreadable registries are logged and treated as empty.
        """
        try:
            binding = self._load().projects.get(project_id)
        except Exception as e:
            logger.warning(f"Registry lookup for {project_id} failed: {e}")
            return None
        return binding.path if binding else None

    def list_all(self) -> dict[str, ProjectBinding]:
        """All bindings keyed by project id."""
        return dict(self._load().projects)

    def set(self, project_id: str, raw_path: str) -> ProjectBinding:
        """
        Bind a project to a directory.

        Args:
            project_id: Project identifier.
            raw_path: Directory path; quotes and ~ are accepted.

        Returns:
            The stored binding. createdAt is kept when rebinding.

        Raises:
            InvalidPathError: If the path is not an existing directory.
            RegistryError: If the registry cannot be read or written.
        """
        check = validate_directory_exists(raw_path)
        if not check.ok:
            raise InvalidPathError(f"{raw_path}: {check.reason}")

        document = self._load()
        now = _now_iso()
        existing = document.projects.get(project_id)
        binding = ProjectBinding(
            project_id=project_id,
            path=check.path,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        document.projects[project_id] = binding
        self._write(document)
        logger.info(f"Bound project {project_id} to {binding.path}")
        return binding

    def remove(self, project_id: str) -> None:
        """Unbind a project. Unknown ids are a no-op."""
        document = self._load()
        if document.projects.pop(project_id, None) is None:
            return
        self._write(document)
        logger.info(f"Unbound project {project_id}")

    # -------------------------------------------------------------------------
    # Project root
    # -------------------------------------------------------------------------

    def get_project_root(self) -> str:
        """Directory new projects are created under."""
        try:
            settings = self._load().settings
        except RegistryError as e:
            logger.warning(f"Falling back to default project root: {e}")
            settings = None
        if settings and settings.project_root:
            return settings.project_root
        return str(Path(DEFAULT_PROJECT_ROOT).expanduser())

    def set_project_root(self, raw_path: str) -> str:
        """
        Store the project root setting.

        Unlike bindings, the directory is created when missing.

        Raises:
            InvalidPathError: If the path exists but is not a directory.
        """
        path = normalize_path(raw_path)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except FileExistsError as e:
            raise InvalidPathError(f"{raw_path}: Not a directory") from e
        except OSError as e:
            raise InvalidPathError(f"{raw_path}: Path not accessible: {e}") from e

        document = self._load()
        document.settings = RegistrySettings(project_root=str(path))
        self._write(document)
        logger.info(f"Project root set to {path}")
        return str(path)

    def auto_bind_new_project(self, project_id: str, name: str) -> Optional[str]:
        """
        Create a folder for a new project under the root and bind it.

        The folder is named after the project, suffixed with the first
        eight characters of the id when the name is taken. Never raises.

        Returns:
            The bound path, or None if binding failed.
        """
        try:
            root = Path(self.get_project_root())
            root.mkdir(parents=True, exist_ok=True)
            folder = root / sanitize_folder_name(name)
            if folder.exists():
                folder = root / f"{sanitize_folder_name(name)}-{project_id[:8]}"
            folder.mkdir(parents=True, exist_ok=True)
            return self.set(project_id, str(folder)).path
        except Exception as e:
            logger.warning(f"Auto-bind failed for project {project_id}: {e}")
            return None
