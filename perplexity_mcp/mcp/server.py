"""
MCP endpoint over Streamable HTTP: one isolated session per inbound connection.

Each POST /mcp gets a fresh ToolRegistry and a fresh StreamableHTTPServerTransport.
Session states: init -> bound -> closing -> closed. Closing terminates the transport,
then closes the registry, on every exit path and exactly once.
"""

import logging
from typing import Literal

import anyio
from mcp.server.streamable_http import StreamableHTTPServerTransport
from mcp.server.transport_security import TransportSecuritySettings
from starlette.responses import JSONResponse
from starlette.types import Message, Receive, Scope, Send

from perplexity_mcp.core.config import Settings
from perplexity_mcp.core.errors import INTERNAL_ERROR_CODE, INTERNAL_ERROR_MESSAGE
from perplexity_mcp.mcp.tools import ToolRegistry
from perplexity_mcp.services.answer_gateway import AnswerGateway

logger = logging.getLogger(__name__)

SessionState = Literal["init", "bound", "closing", "closed"]


class McpSession:
    """A registry/transport pair owned by exactly one connection."""

    def __init__(self, registry: ToolRegistry, transport: StreamableHTTPServerTransport) -> None:
        self.registry = registry
        self.transport = transport
        self.state: SessionState = "init"

    async def serve(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Run the MCP server on this session's transport for one HTTP exchange, then tear down."""
        server = self.registry.build_server()

        async def run_server(*, task_status=anyio.TASK_STATUS_IGNORED) -> None:
            async with self.transport.connect() as (read_stream, write_stream):
                self.state = "bound"
                task_status.started()
                await server.run(
                    read_stream,
                    write_stream,
                    server.create_initialization_options(),
                    stateless=True,
                )

        try:
            async with anyio.create_task_group() as tg:
                await tg.start(run_server)
                try:
                    await self.transport.handle_request(scope, receive, send)
                finally:
                    # closing the transport's streams lets server.run() return
                    await self.close()
        finally:
            await self.close()

    async def close(self) -> None:
        if self.state in ("closing", "closed"):
            return
        self.state = "closing"
        try:
            await self.transport.terminate()
        finally:
            self.registry.close()
            self.state = "closed"
            logger.info("[mcp:session] closed")


class SessionLifecycleManager:
    """
    ASGI app for POST /mcp.
    Only the frozen settings and the stateless gateway are shared between connections.
    """

    def __init__(self, settings: Settings, gateway: AnswerGateway | None = None) -> None:
        self.settings = settings
        self.gateway = gateway or AnswerGateway(settings)
        self._security = TransportSecuritySettings(enable_dns_rebinding_protection=False)

    def new_session(self) -> McpSession:
        registry = ToolRegistry(self.gateway)
        transport = StreamableHTTPServerTransport(
            mcp_session_id=None,
            is_json_response_enabled=self.settings.json_response,
            security_settings=self._security,
        )
        return McpSession(registry, transport)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        response_started = False

        async def tracking_send(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            session = self.new_session()
            await session.serve(scope, receive, tracking_send)
        except Exception:
            logger.exception("Error handling MCP request")
            if response_started:
                return
            response = JSONResponse(
                status_code=500,
                content={
                    "jsonrpc": "2.0",
                    "error": {"code": INTERNAL_ERROR_CODE, "message": INTERNAL_ERROR_MESSAGE},
                    "id": None,
                },
            )
            await response(scope, receive, send)
