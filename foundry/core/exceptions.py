"""
Foundry exceptions.

Custom exception classes for ai-foundry.
"""
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .event_pump import PumpState


class FoundryError(Exception):
    """Base exception for foundry errors."""
    pass


class BindingError(FoundryError):
    """Project is not bound to a usable local directory."""
    pass


class InvalidPathError(BindingError):
    """Directory given for a binding does not exist or is not a directory."""
    pass


class RegistryError(FoundryError):
    """Registry document could not be read or written."""
    pass


class TransportError(FoundryError):
    """
    The agent runtime stream failed mid-run.

    Carries whatever run state was accumulated before the failure so the
    caller can persist the partial event log.
    """

    def __init__(self, message: str, state: Optional["PumpState"] = None) -> None:
        super().__init__(message)
        self.state = state


class SummarizerError(FoundryError):
    """Summary generation failed."""
    pass


class PersistenceError(FoundryError):
    """Database write or read failed."""
    pass


class TaskNotFoundError(FoundryError):
    """Task does not exist."""
    pass
