"""
Tool registry: search, fetch and answer, built on the reference codec and the answer gateway.

One registry is created per MCP connection and closed with it. Tools:
- search: query -> one result whose reference encodes the query (no upstream call)
- fetch: reference -> full Perplexity answer for the decoded query
- answer: query (+ style/min_words) -> raw answer between markers, plus a [meta] line
"""

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import anyio
import mcp.types as types
from mcp.server.lowlevel import Server
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from perplexity_mcp.core.config import SERVER_NAME, SERVER_VERSION
from perplexity_mcp.core.errors import SessionClosedError, ValidationError
from perplexity_mcp.schemas.tools import (
    AnswerInput,
    FetchedDocument,
    FetchInput,
    SearchInput,
    SearchResponse,
    SearchResult,
)
from perplexity_mcp.services.answer_gateway import AnswerGateway, AnswerOptions, AnswerResponse
from perplexity_mcp.services.reference_codec import decode_reference, encode_reference

logger = logging.getLogger(__name__)

RAW_START = "<<<PPLX_RAW>>>"
RAW_END = "<<<END_PPLX_RAW>>>"
SEARCH_URL = "https://www.perplexity.ai/search?q="
SOURCE_TAG = "perplexity"


@dataclass(frozen=True)
class ToolSpec:
    """Declarative tool definition: contract plus async handler returning the tool's text."""

    name: str
    title: str
    description: str
    input_model: type[BaseModel]
    handler: Callable[[Any], Awaitable[str]]

    def as_mcp_tool(self) -> types.Tool:
        return types.Tool(
            name=self.name,
            title=self.title,
            description=self.description,
            inputSchema=self.input_model.model_json_schema(),
        )


def result_title(query: str) -> str:
    return f"Perplexity: {query}"


def result_url(query: str) -> str:
    # same escaping as JavaScript's encodeURIComponent
    return SEARCH_URL + quote(query, safe="-_.!~*'()")


def format_raw_answer(answer: AnswerResponse) -> str:
    """Wrap the full answer between literal markers, then a blank line and the [meta] JSON."""
    meta = json.dumps(answer.meta, separators=(",", ":"), ensure_ascii=False, default=str)
    return f"{RAW_START}\n{answer.text}\n{RAW_END}\n\n[meta] {meta}"


def _to_json(model: BaseModel) -> str:
    return json.dumps(model.model_dump(), ensure_ascii=False)


class ToolRegistry:
    """Per-connection set of tools. Not shared: build one for each session and close() it with the session."""

    def __init__(self, gateway: AnswerGateway) -> None:
        self.gateway = gateway
        self.closed = False
        self._tools: dict[str, ToolSpec] = {}
        self.register(
            ToolSpec(
                name="answer",
                title="Perplexity Answer (raw)",
                description="Return the full, uncompressed answer from Perplexity, wrapped with raw markers.",
                input_model=AnswerInput,
                handler=self._answer,
            )
        )
        self.register(
            ToolSpec(
                name="search",
                title="Search (Perplexity)",
                description="Return a list of search results for the given query (references, titles, urls).",
                input_model=SearchInput,
                handler=self._search,
            )
        )
        self.register(
            ToolSpec(
                name="fetch",
                title="Fetch full text for a search result",
                description="Given a search result reference, return the full document text and metadata.",
                input_model=FetchInput,
                handler=self._fetch,
            )
        )

    def register(self, spec: ToolSpec) -> None:
        if spec.name in self._tools:
            raise ValueError(f"Tool already registered: {spec.name}")
        self._tools[spec.name] = spec

    def list_tools(self) -> list[types.Tool]:
        return [spec.as_mcp_tool() for spec in self._tools.values()]

    async def call(self, name: str, arguments: dict[str, Any] | None) -> str:
        """Validate arguments against the tool's contract, then run it. Returns the tool's text output."""
        if self.closed:
            raise SessionClosedError(f"Session closed; cannot call {name!r}")
        spec = self._tools.get(name)
        if spec is None:
            raise ValidationError(f"Unknown tool: {name}")
        try:
            args = spec.input_model.model_validate(arguments or {})
        except PydanticValidationError as e:
            logger.info("[tools:%s] invalid arguments: %s", name, e.errors(include_url=False))
            raise ValidationError(f"Invalid arguments for {name}: {e}") from e
        return await spec.handler(args)

    async def _ask(self, query: str, options: AnswerOptions | None = None) -> AnswerResponse:
        """Call the gateway shielded: a connection torn down mid-call drops the result but never cancels the request."""
        with anyio.CancelScope(shield=True):
            return await self.gateway.ask(query, options)

    # --- search ---

    def search_results(self, query: str) -> list[SearchResult]:
        """Exactly one result; the reference is the encoded query."""
        return [SearchResult(reference=encode_reference(query), title=result_title(query), url=result_url(query))]

    async def _search(self, args: SearchInput) -> str:
        logger.info("[tools:search] IN  query=%r", args.query)
        return _to_json(SearchResponse(results=self.search_results(args.query)))

    # --- fetch ---

    async def fetch_document(self, reference: str) -> FetchedDocument:
        query = decode_reference(reference)
        logger.info("[tools:fetch] IN  reference=%s query=%r", reference[:32], query)
        answer = await self._ask(query)
        metadata: dict[str, Any] = {
            "source": SOURCE_TAG,
            "model": answer.meta.get("model") or self.gateway.settings.model,
        }
        if answer.meta.get("citations"):
            metadata["citations"] = answer.meta["citations"]
        return FetchedDocument(
            reference=reference,
            title=result_title(query),
            text=answer.text,
            url=result_url(query),
            metadata=metadata,
        )

    async def _fetch(self, args: FetchInput) -> str:
        doc = await self.fetch_document(args.reference)
        logger.info("[tools:fetch] OUT text_len=%d", len(doc.text))
        return _to_json(doc)

    # --- answer ---

    async def _answer(self, args: AnswerInput) -> str:
        logger.info("[tools:answer] IN  query=%r style=%s min_words=%s", args.query, args.style, args.min_words)
        answer = await self._ask(args.query, AnswerOptions(style=args.style, min_words=args.min_words))
        logger.info("[tools:answer] OUT text_len=%d", len(answer.text))
        return format_raw_answer(answer)

    # --- lifecycle ---

    def build_server(self) -> Server:
        """Low-level MCP server bound to this registry. Errors raised by tools become isError results."""
        server: Server = Server(SERVER_NAME, version=SERVER_VERSION)

        @server.list_tools()
        async def _list_tools() -> list[types.Tool]:
            return self.list_tools()

        @server.call_tool()
        async def _call_tool(name: str, arguments: dict[str, Any] | None) -> list[types.TextContent]:
            text = await self.call(name, arguments)
            return [types.TextContent(type="text", text=text)]

        return server

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        logger.info("[tools:close] registry closed")
