"""
Session identity tracking.

The agent runtime assigns an opaque session id when a conversation starts
(the system init event) and repeats it on later events. Passing that id
back as ``resume`` continues the conversation in a later run.
"""
import logging
import threading
from collections import OrderedDict
from typing import Any, Optional

from .constants import SESSION_STORE_MAX_ENTRIES

logger = logging.getLogger(__name__)


class SessionIdentity:
    """
    Latest session id seen for one conversation.

    Usage:
        identity = SessionIdentity()
        for payload in events:
            identity.observe(payload)
        options.resume_session_id = identity.resume_id(explicit=client_token)
    """

    def __init__(self, session_id: Optional[str] = None) -> None:
        self._session_id = session_id

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    def observe(self, payload: dict[str, Any]) -> Optional[str]:
        """
        Record the session id carried by an event, if any.

        Args:
            payload: Normalized event payload.

        Returns:
            The current session id after observing the event.
        """
        session_id = payload.get("session_id") if isinstance(payload, dict) else None
        if isinstance(session_id, str) and session_id and session_id != self._session_id:
            if self._session_id:
                logger.debug(f"Session id changed: {self._session_id} -> {session_id}")
            self._session_id = session_id
        return self._session_id

    def resume_id(self, explicit: Optional[str] = None) -> Optional[str]:
        """
        Session id to resume from.

        An explicit id from the caller wins over the stored one.
        """
        return explicit or self._session_id

    def reset(self) -> None:
        self._session_id = None


class SessionStore:
    """
    In-process session identities keyed by task id.

    Lets a follow-up run on the same task continue the previous
    conversation without a database lookup. Holds at most max_entries
    tasks; the least recently used one is dropped first, and a dropped
    task falls back to the session id stored with its last run.
    """

    def __init__(self, max_entries: int = SESSION_STORE_MAX_ENTRIES) -> None:
        self._identities: OrderedDict[str, SessionIdentity] = OrderedDict()
        self._max_entries = max_entries
        self._lock = threading.Lock()

    def for_task(self, task_id: str) -> SessionIdentity:
        """Get or create the identity for a task."""
        with self._lock:
            identity = self._identities.get(task_id)
            if identity is None:
                identity = SessionIdentity()
                self._identities[task_id] = identity
                while len(self._identities) > self._max_entries:
                    evicted, _ = self._identities.popitem(last=False)
                    logger.debug(f"Session identity for task {evicted} evicted")
            else:
                self._identities.move_to_end(task_id)
            return identity

    def __len__(self) -> int:
        return len(self._identities)

    def forget(self, task_id: str) -> None:
        with self._lock:
            self._identities.pop(task_id, None)
