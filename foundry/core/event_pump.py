"""
Agent event pump.

Drives one agent-runtime stream to completion and records every event.

    Idle -> Streaming -> Completed(success | error | incomplete)
                      -> Aborted (runtime raised)

The runtime's async iterator is consumed by a producer task that feeds an
EventChannel. The pump reads the channel in emission order, threads an
explicit PumpState through advance() for each message, hands each
RunEvent to the caller's callback, and closes the channel (cancelling the
producer) as soon as a successful result arrives. A result with any other
subtype is recorded as an error outcome and reading continues so trailing
context is kept.
"""
import asyncio
import dataclasses
import inspect
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol, Union

from claude_agent_sdk import (
    AssistantMessage,
    ResultMessage,
    SystemMessage,
    UserMessage,
    query,
)
from claude_agent_sdk.types import (
    StreamEvent,
    TextBlock,
    ThinkingBlock,
    ToolResultBlock,
    ToolUseBlock,
)

from .constants import (
    EVENT_RAW_LIMIT,
    RESULT_SUBTYPE_SUCCESS,
    TRUNCATION_MARKER,
    UNKNOWN_EVENT_TYPE,
)
from .exceptions import TransportError
from .permissions import RunOptions
from .schemas import RunOutcome, TokenUsage
from .sessions import SessionIdentity

logger = logging.getLogger(__name__)

EventCallback = Callable[["RunEvent"], Union[None, Awaitable[None]]]


# =============================================================================
# Runtime
# =============================================================================

class AgentRuntime(Protocol):
    """Anything that turns a prompt and run options into a message stream."""

    def stream(self, prompt: str, options: RunOptions) -> AsyncIterator[Any]:
        ...


def user_turn(text: str) -> dict[str, Any]:
    """A user message in the runtime's streaming-input format."""
    return {
        "type": "user",
        "message": {"role": "user", "content": text},
        "parent_tool_use_id": None,
        "session_id": "",
    }


async def _single_turn(text: str) -> AsyncIterator[dict[str, Any]]:
    yield user_turn(text)


class ClaudeAgentRuntime:
    """
    Agent runtime backed by the Claude Agent SDK.

    The prompt is sent in streaming-input form, which the SDK requires
    when a can_use_tool callback is set.
    """

    def stream(self, prompt: str, options: RunOptions) -> AsyncIterator[Any]:
        return query(prompt=_single_turn(prompt), options=options.to_sdk_options())


# =============================================================================
# Channel
# =============================================================================

class ChannelClosed(Exception):
    """The producer finished and every queued item has been received."""
    pass


_END = object()


@dataclass(frozen=True)
class _Failure:
    error: BaseException


class EventChannel:
    """
    Bounded queue fed by a producer task reading an async iterator.

    Errors raised by the source are delivered in order, after every item
    that preceded them. close() cancels the producer.
    """

    def __init__(self, source: AsyncIterator[Any], maxsize: int = 16) -> None:
        self._source = source
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._producer: Optional[asyncio.Task] = None
        self._done = False

    def start(self) -> None:
        if self._producer is None:
            self._producer = asyncio.create_task(self._produce())

    async def _produce(self) -> None:
        try:
            async for item in self._source:
                await self._queue.put(item)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            await self._queue.put(_Failure(e))
        await self._queue.put(_END)

    async def receive(self) -> Any:
        """
        Next item from the source.

        Raises:
            ChannelClosed: When the source is exhausted.
            Exception: Whatever the source raised.
        """
        if self._done:
            raise ChannelClosed()
        self.start()
        item = await self._queue.get()
        if item is _END:
            self._done = True
            raise ChannelClosed()
        if isinstance(item, _Failure):
            self._done = True
            raise item.error
        return item

    async def close(self) -> None:
        """Stop the producer and drop anything still queued."""
        self._done = True
        producer, self._producer = self._producer, None
        if producer is None:
            return
        if not producer.done():
            producer.cancel()
        try:
            await producer
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"Producer ended with {e!r} during close")


# =============================================================================
# Events and state
# =============================================================================

def _block_to_dict(block: Any) -> Any:
    if isinstance(block, TextBlock):
        return {"type": "text", "text": block.text}
    if isinstance(block, ThinkingBlock):
        return {"type": "thinking", "thinking": block.thinking}
    if isinstance(block, ToolUseBlock):
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    if isinstance(block, ToolResultBlock):
        return {
            "type": "tool_result",
            "tool_use_id": block.tool_use_id,
            "content": block.content,
            "is_error": block.is_error,
        }
    if dataclasses.is_dataclass(block) and not isinstance(block, type):
        return dataclasses.asdict(block)
    return block


def _content_to_list(content: Any) -> Any:
    if isinstance(content, list):
        return [_block_to_dict(block) for block in content]
    return content


def normalize_message(message: Any) -> dict[str, Any]:
    """
    Convert a runtime message into a JSON-ready dict.

    SDK message classes get a "type" discriminator and their content
    blocks are tagged by kind. Plain dicts are passed through unchanged.
    Anything else is wrapped as {"value": repr}.
    """
    if isinstance(message, dict):
        return message

    if isinstance(message, SystemMessage):
        payload = dict(message.data or {})
        payload["type"] = "system"
        payload["subtype"] = message.subtype
        return payload

    if isinstance(message, AssistantMessage):
        return {
            "type": "assistant",
            "message": {
                "role": "assistant",
                "model": getattr(message, "model", None),
                "content": _content_to_list(message.content),
            },
            "parent_tool_use_id": getattr(message, "parent_tool_use_id", None),
        }

    if isinstance(message, UserMessage):
        return {
            "type": "user",
            "message": {"role": "user", "content": _content_to_list(message.content)},
            "parent_tool_use_id": getattr(message, "parent_tool_use_id", None),
        }

    if isinstance(message, ResultMessage):
        payload = dataclasses.asdict(message)
        payload["type"] = "result"
        return payload

    if isinstance(message, StreamEvent):
        payload = dataclasses.asdict(message)
        payload["type"] = "stream_event"
        return payload

    if dataclasses.is_dataclass(message) and not isinstance(message, type):
        return dataclasses.asdict(message)

    return {"value": repr(message)}


def event_type_of(payload: dict[str, Any]) -> str:
    event_type = payload.get("type")
    if isinstance(event_type, str) and event_type:
        return event_type
    return UNKNOWN_EVENT_TYPE


def serialize_event(payload: dict[str, Any], limit: int = EVENT_RAW_LIMIT) -> tuple[str, bool]:
    """
    Serialize a payload, capping it at limit characters.

    Returns:
        (raw, truncated). A capped body is exactly limit characters
        followed by the truncation marker.
    """
    raw = json.dumps(payload, ensure_ascii=False, default=str)
    if len(raw) > limit:
        return raw[:limit] + TRUNCATION_MARKER, True
    return raw, False


@dataclass
class RunEvent:
    """One recorded event of a run."""
    timestamp: str
    type: str
    raw: str
    truncated: bool = False
    payload: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def to_dict(self) -> dict[str, Any]:
        """Stored form (the payload is not persisted, raw is)."""
        return {
            "ts": self.timestamp,
            "type": self.type,
            "raw": self.raw,
            "truncated": self.truncated,
        }


class PumpPhase(StrEnum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class PumpState:
    """
    Accumulated state of one run.

    Threaded through advance() for every message; readable after a
    transport failure through TransportError.state.
    """
    phase: PumpPhase = PumpPhase.IDLE
    session_id: Optional[str] = None
    last_result: Optional[dict[str, Any]] = None
    events: list[RunEvent] = field(default_factory=list)
    outcome: Optional[RunOutcome] = None

    @property
    def total_cost_usd(self) -> Optional[float]:
        if not self.last_result:
            return None
        return self.last_result.get("total_cost_usd")

    @property
    def usage(self) -> Optional[dict[str, Any]]:
        if not self.last_result:
            return None
        return self.last_result.get("usage")

    @property
    def token_usage(self) -> TokenUsage:
        return TokenUsage.from_sdk_usage(self.usage)

    @property
    def result_text(self) -> str:
        """Final text reported by the runtime, if any."""
        if not self.last_result:
            return ""
        for key in ("result", "message"):
            value = self.last_result.get(key)
            if isinstance(value, str) and value.strip():
                return value
        return ""

    @property
    def succeeded(self) -> bool:
        return self.outcome == RunOutcome.SUCCESS

    @property
    def finished(self) -> bool:
        """True when the runtime reported a result, successful or not."""
        return self.outcome in (RunOutcome.SUCCESS, RunOutcome.ERROR)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def advance(state: PumpState, message: Any, timestamp: Optional[str] = None) -> RunEvent:
    """
    Apply one runtime message to the run state.

    Captures the session id, tracks the last result, records the event
    and sets the outcome for result events.

    Args:
        state: Run state, updated in place.
        message: Message from the runtime.
        timestamp: Event timestamp. Defaults to now (UTC, ISO 8601).

    Returns:
        The recorded RunEvent.
    """
    payload = normalize_message(message)
    event_type = event_type_of(payload)

    session_id = payload.get("session_id")
    if isinstance(session_id, str) and session_id:
        state.session_id = session_id

    raw, truncated = serialize_event(payload)
    event = RunEvent(
        timestamp=timestamp or _now_iso(),
        type=event_type,
        raw=raw,
        truncated=truncated,
        payload=payload,
    )
    state.events.append(event)

    if event_type == "result":
        state.last_result = payload
        if payload.get("subtype") == RESULT_SUBTYPE_SUCCESS:
            state.outcome = RunOutcome.SUCCESS
        else:
            state.outcome = RunOutcome.ERROR

    return event


def is_terminal_success(event: RunEvent) -> bool:
    return event.type == "result" and event.payload.get("subtype") == RESULT_SUBTYPE_SUCCESS


# =============================================================================
# Pump
# =============================================================================

class EventPump:
    """
    Runs one agent stream and records its events.

    Usage:
        pump = EventPump(ClaudeAgentRuntime())
        state = await pump.run(prompt, options, on_event=run_log.append_event)
    """

    def __init__(
        self,
        runtime: AgentRuntime,
        identity: Optional[SessionIdentity] = None,
    ) -> None:
        """
        Initialize the pump.

        Args:
            runtime: Source of agent events.
            identity: Optional session identity updated as ids arrive.
        """
        self._runtime = runtime
        self._identity = identity

    async def _emit(self, on_event: Optional[EventCallback], event: RunEvent) -> None:
        if on_event is None:
            return
        result = on_event(event)
        if inspect.isawaitable(result):
            await result

    async def run(
        self,
        prompt: str,
        options: RunOptions,
        on_event: Optional[EventCallback] = None,
        state: Optional[PumpState] = None,
    ) -> PumpState:
        """
        Drive the runtime stream until a successful result or the end.

        Args:
            prompt: Prompt text for the agent.
            options: Run options (cwd, gate, resume id).
            on_event: Called in order for every recorded event.
            state: State to accumulate into. A fresh one by default.

        Returns:
            The final PumpState.

        Raises:
            TransportError: If the runtime raised. Carries the partial state.
        """
        state = state if state is not None else PumpState()
        state.phase = PumpPhase.STREAMING

        try:
            channel = EventChannel(self._runtime.stream(prompt, options))
        except Exception as e:
            state.phase = PumpPhase.ABORTED
            raise TransportError(f"Agent runtime failed to start: {e}", state) from e

        try:
            while True:
                try:
                    message = await channel.receive()
                except ChannelClosed:
                    break
                except Exception as e:
                    state.phase = PumpPhase.ABORTED
                    logger.error(
                        f"Agent stream failed after {len(state.events)} events: {e}"
                    )
                    raise TransportError(f"Agent runtime failed: {e}", state) from e

                event = advance(state, message)
                if self._identity is not None:
                    self._identity.observe(event.payload)
                await self._emit(on_event, event)

                if is_terminal_success(event):
                    logger.info("Result received, closing agent stream")
                    break
        finally:
            await channel.close()

        if state.outcome is None:
            logger.warning("Agent stream ended without a result event")
            state.outcome = RunOutcome.INCOMPLETE
        state.phase = PumpPhase.COMPLETED
        return state
