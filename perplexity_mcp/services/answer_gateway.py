"""
Answer gateway: one Perplexity chat completion per call.

Turns an optional style / length hint into a system instruction, posts the query,
and normalizes the reply into AnswerResponse(text, meta). No retries, no caching.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx

from perplexity_mcp.core.config import Settings
from perplexity_mcp.core.errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)

Style = Literal["short", "medium", "long"]

# Word-count floor per style; an explicit min_words can only raise it
STYLE_WORD_FLOORS: dict[str, int] = {"short": 60, "medium": 160, "long": 300}

DEFAULT_SYSTEM_PROMPT = "Answer helpfully and accurately."
TEMPERATURE = 0.3


@dataclass(frozen=True)
class AnswerOptions:
    """Optional length hints for a single ask()."""

    style: Style | None = None
    min_words: int | None = None


@dataclass
class AnswerResponse:
    """Normalized upstream answer. meta holds model/usage diagnostics as returned."""

    text: str
    meta: dict[str, Any] = field(default_factory=dict)


@dataclass
class ParsedCompletion:
    """
    Result of reading a completion body.
    status: "ok" (text found), "empty" (valid JSON, nothing usable), "malformed" (not JSON).
    """

    status: Literal["ok", "empty", "malformed"]
    text: str = ""
    meta: dict[str, Any] = field(default_factory=dict)


def resolve_target_words(style: str | None = None, min_words: int | None = None) -> int | None:
    """
    Target word count for the instruction, or None to keep the default prompt.
    With any hint: max(style floor, min_words); no style means a floor of 0.
    """
    if not style and not min_words:
        return None
    floor = STYLE_WORD_FLOORS.get(style, 0) if style else 0
    target = max(floor, min_words or 0)
    return target if target > 0 else None


def build_system_prompt(target: int | None) -> str:
    if not target:
        return DEFAULT_SYSTEM_PROMPT
    return (
        "You are a meticulous research assistant. "
        f"Write around {target} words if appropriate, "
        "but do NOT pad or fabricate when the question is simple. "
        "Prefer precision over verbosity."
    )


def parse_completion(body: str) -> ParsedCompletion:
    """Read choices[0].message.content (or choices[0].text) from a chat completion body."""
    try:
        data = json.loads(body)
    except ValueError:
        return ParsedCompletion(status="malformed")
    if not isinstance(data, dict):
        return ParsedCompletion(status="empty")
    meta: dict[str, Any] = {"model": data.get("model"), "usage": data.get("usage")}
    if data.get("citations"):
        meta["citations"] = data["citations"]
    choices = data.get("choices") or []
    first = choices[0] if isinstance(choices, list) and choices else None
    if not isinstance(first, dict):
        return ParsedCompletion(status="empty", meta=meta)
    message = first.get("message") or {}
    text = message.get("content") if isinstance(message, dict) else None
    if not text:
        text = first.get("text")
    if not isinstance(text, str) or not text:
        return ParsedCompletion(status="empty", meta=meta)
    return ParsedCompletion(status="ok", text=text, meta=meta)


class AnswerGateway:
    """
    Async client for the Perplexity chat completions endpoint.
    Holds only read-only settings, so one instance can serve every connection.
    transport is an httpx transport override (tests pass httpx.MockTransport).
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.settings = settings
        self._transport = transport

    def build_payload(self, query: str, options: AnswerOptions | None = None) -> dict[str, Any]:
        opts = options or AnswerOptions()
        target = resolve_target_words(opts.style, opts.min_words)
        return {
            "model": self.settings.model,
            "messages": [
                {"role": "system", "content": build_system_prompt(target)},
                {"role": "user", "content": query},
            ],
            "temperature": TEMPERATURE,
        }

    async def ask(self, query: str, options: AnswerOptions | None = None) -> AnswerResponse:
        """Ask Perplexity once. Raises ConfigurationError or UpstreamError; degenerate replies give text=""."""
        if not self.settings.api_key:
            raise ConfigurationError("Missing PERPLEXITY_API_KEY")
        payload = self.build_payload(query, options)
        headers = {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
        }
        logger.info(
            "[gateway:ask] IN  query_len=%d model=%s system=%r",
            len(query),
            self.settings.model,
            payload["messages"][0]["content"][:80],
        )
        try:
            async with httpx.AsyncClient(timeout=self.settings.timeout, transport=self._transport) as client:
                response = await client.post(self.settings.api_url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.warning("[gateway:ask] request failed: %s", e)
            raise UpstreamError(0, message=f"Perplexity request failed: {e}") from e

        body = _read_body(response)
        if not response.is_success:
            logger.warning("[gateway:ask] Perplexity error %s: %s", response.status_code, body[:200])
            raise UpstreamError(response.status_code, body)

        parsed = parse_completion(body)
        if parsed.status == "malformed":
            logger.warning("[gateway:ask] non-JSON body from Perplexity: %r", body[:200])
            raise UpstreamError(response.status_code, body, message="Perplexity returned a malformed payload")
        if parsed.status == "empty":
            logger.warning("[gateway:ask] Perplexity returned no answer text; using empty answer")
        logger.info("[gateway:ask] OUT status=%s text_len=%d", parsed.status, len(parsed.text))
        return AnswerResponse(text=parsed.text, meta=parsed.meta)


def _read_body(response: httpx.Response) -> str:
    """Best-effort body text; decoding problems yield ""."""
    try:
        return response.text
    except Exception as e:
        logger.debug("[gateway:ask] could not read response body: %s", e)
        return ""
