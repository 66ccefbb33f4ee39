"""
Tool gating for agent runs.

Every tool call the agent runtime wants to execute passes through a gate
bound to the run's working directory. The gate applies the path guard to
the tool input and either echoes the input back (allow) or returns a deny
decision naming the blocked tool. The same check is also registered as a
PreToolUse hook so containment holds in bypassPermissions mode, where the
runtime skips the can_use_tool callback.

RunOptions is the only way run options are assembled. It builds its gate
and hook from its own cwd, so a gate can never be bound to another root.
"""
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from claude_agent_sdk import (
    ClaudeAgentOptions,
    HookMatcher,
    PermissionResultAllow,
    PermissionResultDeny,
    ToolPermissionContext,
)

from .constants import LOG_PREVIEW_LENGTH
from .path_guard import check_within_roots
from .schemas import PermissionMode

logger = logging.getLogger(__name__)

ToolGate = Callable[
    [str, dict[str, Any], ToolPermissionContext],
    Awaitable[PermissionResultAllow | PermissionResultDeny],
]
HookCallback = Callable[[dict[str, Any], Optional[str], Any], Awaitable[dict[str, Any]]]


@dataclass
class PermissionDenial:
    """
    Record of a permission denial.
    """
    tool_name: str
    tool_input: str
    message: str


@dataclass
class PermissionDenialTracker:
    """
    Tracks permission denials during an agent run.

    The denial list is saved with the run record so reviewers can see
    what the agent tried to reach outside its directory.
    """
    denials: list[PermissionDenial] = field(default_factory=list)

    def record_denial(self, tool_name: str, tool_input: Any, message: str) -> None:
        """
        Record a permission denial.

        Args:
            tool_name: Name of the denied tool.
            tool_input: Input the tool was called with.
            message: Denial message returned to the runtime.
        """
        self.denials.append(PermissionDenial(
            tool_name=tool_name,
            tool_input=_preview(tool_input),
            message=message,
        ))

    @property
    def last_denial(self) -> Optional[PermissionDenial]:
        """Get the most recent denial, if any."""
        return self.denials[-1] if self.denials else None

    def to_list(self) -> list[dict[str, str]]:
        """Denials as plain dicts for JSON storage."""
        return [
            {"tool": d.tool_name, "input": d.tool_input, "message": d.message}
            for d in self.denials
        ]

    def clear(self) -> None:
        """Clear all recorded denials."""
        self.denials.clear()


def _preview(tool_input: Any) -> str:
    try:
        text = json.dumps(tool_input, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        text = repr(tool_input)
    if len(text) > LOG_PREVIEW_LENGTH:
        return text[:LOG_PREVIEW_LENGTH] + "..."
    return text


def deny_message(tool_name: str, reason: Optional[str]) -> str:
    """Build the deny text relayed back to the model."""
    return f"Blocked {tool_name}: {reason or 'Validation error'}"


def create_tool_gate(
    cwd: Path,
    denial_tracker: Optional[PermissionDenialTracker] = None,
) -> ToolGate:
    """
    Create the can_use_tool callback for a run bound to cwd.

    The callback never raises. Any error while checking is a deny.

    Args:
        cwd: The run's bound project directory.
        denial_tracker: Optional tracker to record denials.

    Returns:
        Async permission callback for ClaudeAgentOptions.can_use_tool.
    """
    roots = [cwd]

    async def can_use_tool(
        tool_name: str,
        tool_input: dict[str, Any],
        context: ToolPermissionContext,
    ) -> PermissionResultAllow | PermissionResultDeny:
        try:
            logger.info(f"PERMISSION CHECK: {tool_name} with input: {_preview(tool_input)}")
            result = check_within_roots(tool_input, roots)
            if result.ok:
                return PermissionResultAllow(behavior="allow", updated_input=tool_input)

            message = deny_message(tool_name, result.reason)
            logger.warning(f"PERMISSION DENIAL: {message}")
            if denial_tracker is not None:
                denial_tracker.record_denial(tool_name, tool_input, message)
            return PermissionResultDeny(behavior="deny", message=message)
        except Exception as e:
            logger.exception(f"PERMISSION CHECK failed for {tool_name}, denying")
            return PermissionResultDeny(
                behavior="deny",
                message=deny_message(tool_name, str(e) or None),
            )

    return can_use_tool


def create_containment_hook(
    cwd: Path,
    denial_tracker: Optional[PermissionDenialTracker] = None,
) -> HookCallback:
    """
    Create a PreToolUse hook enforcing the same containment as the gate.

    Returns an empty response to let the call proceed, or a
    hookSpecificOutput deny decision.

    Args:
        cwd: The run's bound project directory.
        denial_tracker: Optional tracker to record denials.

    Returns:
        Async hook callback.
    """
    roots = [cwd]

    async def containment_hook(
        input_data: dict[str, Any],
        tool_use_id: Optional[str],
        context: Any,
    ) -> dict[str, Any]:
        tool_name = input_data.get("tool_name", "")
        tool_input = input_data.get("tool_input", {})
        try:
            result = check_within_roots(tool_input, roots)
            reason = result.reason
        except Exception as e:
            logger.exception(f"Containment hook failed for {tool_name}, denying")
            result = None
            reason = str(e) or None

        if result is not None and result.ok:
            return {}

        message = deny_message(tool_name, reason)
        logger.warning(f"PERMISSION DENIAL (hook): {message}")
        if denial_tracker is not None:
            denial_tracker.record_denial(tool_name, tool_input, message)
        return {
            "hookSpecificOutput": {
                "hookEventName": "PreToolUse",
                "permissionDecision": "deny",
                "permissionDecisionReason": message,
            }
        }

    return containment_hook


@dataclass
class RunOptions:
    """
    Options for one agent run.

    The tool gate and the PreToolUse hook are derived from cwd in
    __post_init__ and cannot be supplied by the caller.
    """
    cwd: Path
    permission_mode: PermissionMode = PermissionMode.DEFAULT
    resume_session_id: Optional[str] = None
    continue_conversation: bool = False
    model: Optional[str] = None
    max_turns: Optional[int] = None
    env: dict[str, str] = field(default_factory=dict)
    denial_tracker: PermissionDenialTracker = field(
        default_factory=PermissionDenialTracker
    )
    tool_gate: ToolGate = field(init=False, repr=False)
    containment_hook: HookCallback = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.cwd = Path(self.cwd).expanduser().resolve()
        self.permission_mode = PermissionMode(self.permission_mode)
        self.tool_gate = create_tool_gate(self.cwd, self.denial_tracker)
        self.containment_hook = create_containment_hook(self.cwd, self.denial_tracker)

    def to_sdk_options(self) -> ClaudeAgentOptions:
        """Build ClaudeAgentOptions for the Claude Agent SDK."""
        logger.info(
            f"Run options: cwd={self.cwd}, permission_mode={self.permission_mode}, "
            f"resume={self.resume_session_id}, continue={self.continue_conversation}"
        )
        return ClaudeAgentOptions(
            cwd=str(self.cwd),
            permission_mode=str(self.permission_mode),
            can_use_tool=self.tool_gate,
            hooks={
                "PreToolUse": [HookMatcher(matcher=None, hooks=[self.containment_hook])],
            },
            resume=self.resume_session_id,
            continue_conversation=self.continue_conversation,
            model=self.model,
            max_turns=self.max_turns,
            env=dict(self.env),
        )
