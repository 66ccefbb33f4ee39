"""
Data models for ai-foundry.

Contains the Pydantic models and enums shared by the core, the services
and the API: run settings, permission modes, task status and token usage.
"""
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field


class PermissionMode(StrEnum):
    """
    Agent runtime permission modes.

    Values are the names the Claude Agent SDK expects.
    """
    BYPASS = "bypassPermissions"
    DEFAULT = "default"
    ACCEPT_EDITS = "acceptEdits"
    PLAN = "plan"


class TaskStatus(StrEnum):
    """Lifecycle status of a task."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RunOutcome(StrEnum):
    """How an event pump run ended."""
    SUCCESS = "success"     # result event with success subtype
    ERROR = "error"         # result event with any other subtype
    INCOMPLETE = "incomplete"  # stream ended without a result event


class RunSettings(BaseModel):
    """
    Run settings loaded from foundry.yaml.

    Usage:
        from foundry.config import FoundryConfigLoader
        settings = FoundryConfigLoader().get_run_settings()
    """
    model: Optional[str] = Field(
        ...,
        description="Claude model to run tasks with (null uses the runtime default)"
    )
    max_turns: int = Field(
        ...,
        description="Maximum number of agent turns per run"
    )
    permission_mode: PermissionMode = Field(
        ...,
        description="Permission mode: default, acceptEdits, plan, bypassPermissions"
    )
    summary_model: str = Field(
        ...,
        description="Model used by the summarizer"
    )
    summary_digest_events: int = Field(
        ...,
        description="Number of trailing events sent to the summarizer"
    )
    summary_api_key: Optional[str] = Field(
        default=None,
        description="Summarizer API key; summaries fall back to a placeholder without it"
    )


class TokenUsage(BaseModel):
    """
    Token usage statistics.

    Tracks input and output token counts, including cached tokens.
    """
    input_tokens: int = Field(
        default=0,
        description="Number of input tokens processed"
    )
    output_tokens: int = Field(
        default=0,
        description="Number of output tokens generated"
    )
    cache_creation_input_tokens: int = Field(
        default=0,
        description="Number of tokens used to create cache"
    )
    cache_read_input_tokens: int = Field(
        default=0,
        description="Number of tokens read from cache"
    )

    @property
    def total_tokens(self) -> int:
        """Total tokens across input, cache and output."""
        return (
            self.input_tokens +
            self.cache_creation_input_tokens +
            self.cache_read_input_tokens +
            self.output_tokens
        )

    @classmethod
    def from_sdk_usage(cls, usage: Optional[dict[str, Any]]) -> "TokenUsage":
        """
        Create TokenUsage from the usage dict of a result event.

        Args:
            usage: The usage dict, or None.

        Returns:
            TokenUsage instance (all zeros when usage is missing).
        """
        if not usage:
            return cls()

        return cls(
            input_tokens=usage.get("input_tokens") or 0,
            output_tokens=usage.get("output_tokens") or 0,
            cache_creation_input_tokens=usage.get(
                "cache_creation_input_tokens"
            ) or 0,
            cache_read_input_tokens=usage.get("cache_read_input_tokens") or 0,
        )
