"""
Centralized constants for ai-foundry.

All magic numbers, strings, and fixed file names are defined here.

Usage:
    from .constants import (
        EVENT_RAW_LIMIT,
        RUN_LOG_FILE,
        SUMMARY_DIGEST_EVENTS,
    )
"""


# =============================================================================
# Logging Constants
# =============================================================================

LOG_FORMAT_FILE: str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

LOG_FORMAT_COLORED: str = (
    "%(log_color)s%(levelname)-8s%(reset)s %(cyan)s%(name)s%(reset)s: %(message)s"
)

LOG_MAX_BYTES: int = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT: int = 5

LOG_FILE_BACKEND: str = "backend.log"

COLORLOG_COLORS: dict[str, str] = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

# Characters of tool input shown in PERMISSION CHECK log lines
LOG_PREVIEW_LENGTH: int = 200


# =============================================================================
# Event Recording
# =============================================================================

# Serialized events longer than this are cut and suffixed with the marker.
EVENT_RAW_LIMIT: int = 15000
TRUNCATION_MARKER: str = "...[truncated]"

# Type assigned to events that carry no recognizable discriminator.
UNKNOWN_EVENT_TYPE: str = "unknown"

RESULT_SUBTYPE_SUCCESS: str = "success"


# =============================================================================
# Path Containment
# =============================================================================

PATH_ESCAPE_REASON: str = "Path escapes project directory"
VALIDATION_ERROR_REASON: str = "Validation error"

# Tool input keys whose multi-line values are file bodies, not paths.
TEXT_BODY_KEYS: frozenset[str] = frozenset({
    "content",
    "new_string",
    "old_string",
    "new_source",
    "prompt",
})


# =============================================================================
# Run Log Files
# =============================================================================

RUN_LOG_FILE: str = "process_output.log"
CLEAN_DIGEST_FILE: str = "process_output.clean.md"


# =============================================================================
# Database
# =============================================================================

DATABASE_FILE_NAME: str = "foundry.db"


# =============================================================================
# Project Layout
# =============================================================================

PROJECT_MARKER_DIR: str = ".project"
UNGROUPED_TASKS_DIR: str = "_tasks"


# =============================================================================
# Summaries and Comments
# =============================================================================

SUMMARY_DIGEST_EVENTS: int = 18
SUMMARY_EVENT_PREVIEW: int = 600
SUMMARY_PLACEHOLDER: str = (
    "Task finished; see the events section of this comment for details."
)
FAILURE_SUMMARY_PREFIX: str = "Execution failed: "
COMMENT_AUTHOR: str = "ClaudeCode"

GEMINI_API_BASE: str = "https://generativelanguage.googleapis.com/v1beta"
SUMMARY_TIMEOUT_SECONDS: float = 30.0

# Task session identities kept in memory; oldest are evicted first.
SESSION_STORE_MAX_ENTRIES: int = 256


# =============================================================================
# Directory Registry
# =============================================================================

REGISTRY_APP_DIR: str = "ai-foundry"
REGISTRY_FILE_NAME: str = "local-projects.json"
REGISTRY_ALT_FILE_NAME: str = "local-project.json"
REGISTRY_VERSION: int = 1
DEFAULT_PROJECT_ROOT: str = "~/ai-foundry/projects"
