"""
Run summaries.

After a run, the last events are condensed into a digest and sent to a
text-generation model for a short natural-language summary. Summaries
are optional: without credentials, or when the call fails, the runtime's
own result text is used, and failing that a fixed placeholder. Nothing
here can fail a run.
"""
import logging
from typing import Iterable, Optional, Protocol

import httpx

from ..config import NetworkConfig
from .constants import (
    GEMINI_API_BASE,
    SUMMARY_DIGEST_EVENTS,
    SUMMARY_EVENT_PREVIEW,
    SUMMARY_PLACEHOLDER,
    SUMMARY_TIMEOUT_SECONDS,
)
from .event_pump import RunEvent
from .exceptions import SummarizerError
from .prompts import render_summary_prompt
from .schemas import RunSettings

logger = logging.getLogger(__name__)


class Summarizer(Protocol):
    """Opaque text-generation service."""

    async def summarize(self, prompt: str) -> str:
        ...


class GeminiSummarizer:
    """
    Summarizer backed by the Gemini generateContent REST endpoint.

    Usage:
        summarizer = GeminiSummarizer(api_key, "gemini-2.5-flash", network)
        text = await summarizer.summarize(prompt)
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        network: Optional[NetworkConfig] = None,
        timeout: float = SUMMARY_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the summarizer.

        Args:
            api_key: Gemini API key.
            model: Model name, e.g. gemini-2.5-flash.
            network: Proxy settings for the HTTP client.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests use MockTransport).
        """
        self._api_key = api_key
        self._model = model
        self._network = network or NetworkConfig()
        self._timeout = timeout
        self._transport = transport

    @property
    def model(self) -> str:
        return self._model

    def _client(self) -> httpx.AsyncClient:
        kwargs = {"timeout": self._timeout}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        elif self._network.proxy_url:
            kwargs["proxy"] = self._network.proxy_url
        return httpx.AsyncClient(**kwargs)

    async def summarize(self, prompt: str) -> str:
        """
        Generate a summary for the prompt.

        Raises:
            SummarizerError: On HTTP errors or an unusable response.
        """
        url = f"{GEMINI_API_BASE}/models/{self._model}:generateContent"
        body = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}

        try:
            async with self._client() as client:
                response = await client.post(
                    url,
                    json=body,
                    headers={"x-goog-api-key": self._api_key},
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise SummarizerError(f"Summary request failed: {e}") from e

        try:
            parts = data["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts)
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise SummarizerError(f"Unexpected summary response: {e}") from e

        return text.strip()


def create_summarizer(
    settings: RunSettings,
    network: Optional[NetworkConfig] = None,
) -> Optional[Summarizer]:
    """Build the configured summarizer, or None when no API key is set."""
    if not settings.summary_api_key:
        logger.info("No summarizer API key configured; summaries use result text")
        return None
    return GeminiSummarizer(
        api_key=settings.summary_api_key,
        model=settings.summary_model,
        network=network,
    )


def build_digest(
    events: Iterable[RunEvent],
    limit: int = SUMMARY_DIGEST_EVENTS,
    preview: int = SUMMARY_EVENT_PREVIEW,
) -> str:
    """Last `limit` events as "[type] raw" lines, each raw cut to `preview` chars."""
    recent = list(events)[-limit:] if limit > 0 else []
    return "\n".join(f"[{event.type}] {event.raw[:preview]}" for event in recent)


async def generate_summary(
    summarizer: Optional[Summarizer],
    description: str,
    cwd: str,
    events: Iterable[RunEvent],
    result_text: str = "",
    digest_events: int = SUMMARY_DIGEST_EVENTS,
) -> str:
    """
    Best-effort summary of a run. Never raises.

    Args:
        summarizer: Text service, or None to skip the model call.
        description: Task description.
        cwd: Project directory.
        events: Recorded run events.
        result_text: The runtime's own final text, used as a fallback.
        digest_events: How many trailing events to send.

    Returns:
        Model summary, else result_text, else a fixed placeholder.
    """
    summary = (result_text or "").strip()

    if summarizer is not None:
        try:
            prompt = render_summary_prompt(
                cwd=cwd,
                description=description,
                digest=build_digest(events, limit=digest_events),
            )
            text = await summarizer.summarize(prompt)
            if text and text.strip():
                summary = text.strip()
        except Exception as e:
            logger.warning(f"Summary generation failed, using fallback: {e}")

    return summary or SUMMARY_PLACEHOLDER
