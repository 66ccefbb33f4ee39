"""
Path containment checks for tool inputs.

Decides whether an arbitrary tool input (strings, lists and mappings,
nested to any depth) stays inside one or more allowed root directories.

Tool inputs arrive as untyped JSON. They are decoded once into a small
tagged union (Str | ListValue | MapValue | Other) and the containment
visitor walks that union, so every node kind is handled explicitly.

Rules:
- Empty values (None, "", [], {}) are compliant.
- Strings are checked line by line. A line is a path candidate only if
  it contains a path separator or starts with "~". Ordinary text such
  as "hello world" passes untouched.
- A candidate line that contains "..", starts with "~" or is absolute
  must resolve (home expanded, relative values joined to the first
  root) to a root or a location under a root.
- Each whitespace-separated token of a candidate line is checked the
  same way when it starts with ".." or "~" or is absolute (a bare "/"
  included), so shell commands like "ls ../../", "ls /" or
  "cat ~/.ssh/id_rsa" are caught.
- Multi-line values under file-body keys (content, new_string and the
  like) are text, not paths, and are skipped. Every other multi-line
  value, such as a shell script, is checked line by line.
- Lists: every element must pass. Mappings: every value must pass; keys
  are not inspected themselves.
- Any exception while resolving is a denial.

Usage:
    from .path_guard import check_within_roots

    result = check_within_roots({"file_path": "src/a.py"}, [project_dir])
    if not result.ok:
        print(result.reason)
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence, Union

from .constants import PATH_ESCAPE_REASON, TEXT_BODY_KEYS, VALIDATION_ERROR_REASON

logger = logging.getLogger(__name__)

_SEPARATORS = ("/", "\\")
_TOKEN_TRIM = "\"'`;,()"


# =============================================================================
# Decoded value union
# =============================================================================

@dataclass(frozen=True)
class Str:
    """A string leaf."""
    value: str


@dataclass(frozen=True)
class ListValue:
    """An ordered sequence of values."""
    items: tuple["Value", ...]


@dataclass(frozen=True)
class MapValue:
    """A keyed mapping of values."""
    entries: tuple[tuple[str, "Value"], ...]


@dataclass(frozen=True)
class Other:
    """Any leaf that is not a string (numbers, booleans, None)."""
    value: Any


Value = Union[Str, ListValue, MapValue, Other]


def decode_value(raw: Any) -> Value:
    """
    Decode untyped JSON-like data into the Value union.

    Tuples and sets decode as lists; mapping keys are stringified.

    Args:
        raw: Tool input as received from the agent runtime.

    Returns:
        The decoded Value tree.
    """
    if isinstance(raw, str):
        return Str(raw)
    if isinstance(raw, dict):
        return MapValue(tuple((str(k), decode_value(v)) for k, v in raw.items()))
    if isinstance(raw, (list, tuple, set, frozenset)):
        return ListValue(tuple(decode_value(item) for item in raw))
    return Other(raw)


# =============================================================================
# Result
# =============================================================================

@dataclass(frozen=True)
class GuardResult:
    """Outcome of a containment check."""
    ok: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "GuardResult":
        return cls(ok=True)

    @classmethod
    def deny(cls, reason: str) -> "GuardResult":
        return cls(ok=False, reason=reason)


# =============================================================================
# Path helpers
# =============================================================================

def is_path_like(value: str) -> bool:
    """Return True if the string contains a path separator."""
    return any(sep in value for sep in _SEPARATORS)


def resolve_roots(roots: Iterable[Union[str, Path]]) -> list[Path]:
    """Canonicalize the allowed roots."""
    return [Path(root).expanduser().resolve() for root in roots]


def is_inside(candidate: str, roots: Sequence[Path]) -> bool:
    """
    Check that a path resolves to one of the roots or below it.

    A leading "~" is expanded. Other relative candidates are joined to the
    first root before resolving.

    Args:
        candidate: Absolute or relative path string.
        roots: Already canonical root directories (at least one).

    Returns:
        True if contained.

    Raises:
        OSError, RuntimeError, ValueError: When the path cannot be resolved.
    """
    path = Path(os.path.expanduser(candidate))
    if not path.is_absolute():
        path = roots[0] / path
    resolved = path.resolve()
    return any(resolved == root or resolved.is_relative_to(root) for root in roots)


def _needs_check(text: str) -> bool:
    return ".." in text or os.path.isabs(text) or text.startswith("~")


def _is_candidate_token(token: str) -> bool:
    return token.startswith(("..", "~")) or os.path.isabs(token)


def _command_tokens(text: str) -> list[str]:
    """Split one line into tokens that look like paths."""
    tokens = []
    for raw in text.split():
        token = raw.strip(_TOKEN_TRIM)
        # --flag=value style arguments
        if "=" in token and not token.startswith(("/", ".", "~")):
            token = token.split("=", 1)[1].strip(_TOKEN_TRIM)
        if token and _is_candidate_token(token):
            tokens.append(token)
    return tokens


def _check_line(line: str, roots: Sequence[Path]) -> GuardResult:
    line = line.strip()
    if not line or not (is_path_like(line) or line.startswith("~")):
        return GuardResult.allow()

    if _needs_check(line) and not is_inside(line, roots):
        return GuardResult.deny(PATH_ESCAPE_REASON)

    for token in _command_tokens(line):
        if token != line and not is_inside(token, roots):
            return GuardResult.deny(PATH_ESCAPE_REASON)

    return GuardResult.allow()


def _check_string(text: str, roots: Sequence[Path], text_body: bool = False) -> GuardResult:
    lines = text.splitlines()
    if text_body and len(lines) > 1:
        return GuardResult.allow()

    for line in lines:
        result = _check_line(line, roots)
        if not result.ok:
            return result
    return GuardResult.allow()


# =============================================================================
# Visitor
# =============================================================================

def check_value(
    value: Value,
    roots: Sequence[Path],
    key: Optional[str] = None,
) -> GuardResult:
    """
    Walk a decoded value and verify every path leaf is contained.

    Stops at the first violation.

    Args:
        value: Decoded tool input.
        roots: Canonical allowed roots.
        key: Mapping key the value sits under, if any. List items
            inherit the key of their list.

    Returns:
        GuardResult for the whole value.
    """
    if isinstance(value, Str):
        return _check_string(value.value, roots, text_body=key in TEXT_BODY_KEYS)

    if isinstance(value, ListValue):
        for item in value.items:
            result = check_value(item, roots, key)
            if not result.ok:
                return result
        return GuardResult.allow()

    if isinstance(value, MapValue):
        for entry_key, item in value.entries:
            result = check_value(item, roots, entry_key)
            if not result.ok:
                return result
        return GuardResult.allow()

    if isinstance(value, Other):
        return GuardResult.allow()

    raise TypeError(f"Unsupported value node: {type(value).__name__}")


def check_within_roots(
    raw_input: Any,
    roots: Sequence[Union[str, Path]],
) -> GuardResult:
    """
    Check that a raw tool input stays inside the allowed roots.

    Never raises: any failure while decoding or resolving is reported as
    a denial.

    Args:
        raw_input: Tool input (any JSON-like structure).
        roots: Allowed root directories. At least one is required.

    Returns:
        GuardResult with ok=True, or ok=False and a reason.
    """
    try:
        if not roots:
            return GuardResult.deny("No allowed root directory configured")
        if raw_input is None or raw_input == "":
            return GuardResult.allow()
        return check_value(decode_value(raw_input), resolve_roots(roots))
    except Exception as e:
        logger.warning(f"Path validation failed, denying: {e}")
        return GuardResult.deny(str(e) or VALIDATION_ERROR_REASON)


def check_within_root(raw_input: Any, root: Union[str, Path]) -> GuardResult:
    """Single-root shorthand for check_within_roots."""
    return check_within_roots(raw_input, [root])
