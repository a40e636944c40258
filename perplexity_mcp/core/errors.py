"""
Application errors for clean tool-level error handling.

Every ToolError is scoped to the single tool call (or connection) that raised it.
The MCP server turns them into an isError tool result, so the session keeps serving.
"""

# JSON-RPC "Internal error", used when a connection fails outside of any tool call
INTERNAL_ERROR_CODE: int = -32603
INTERNAL_ERROR_MESSAGE: str = "Internal server error"


class ToolError(Exception):
    """
    Base class for failures reported back to the tool caller.
    str() is "[<code>] <message>", which is the text the caller sees in the isError result.
    """

    code: str = "tool_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"[{self.code}] {message}")


class ConfigurationError(ToolError):
    """Raised when a required setting (e.g. PERPLEXITY_API_KEY) is missing or invalid."""

    code = "configuration_error"


class UpstreamError(ToolError):
    """Raised when the Perplexity API answers with a non-success status or an unreadable body."""

    code = "upstream_error"

    def __init__(self, status_code: int, body: str = "", message: str | None = None) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(message or f"Perplexity {status_code}: {body}")


class DecodeError(ToolError):
    """Raised when a reference is not a validly encoded query."""

    code = "decode_error"


class ValidationError(ToolError):
    """Raised when tool input does not match the tool's contract."""

    code = "validation_error"


class SessionClosedError(ToolError):
    """Raised when a tool is called on a registry whose connection has been torn down."""

    code = "session_closed"
