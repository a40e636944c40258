"""
Application configuration (env, settings, constants).

Responsibility: Read the environment once at startup into an immutable Settings
object that is passed explicitly to the gateway and the listener. Nothing else in
the app calls os.getenv.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from perplexity_mcp.core.errors import ConfigurationError

# MCP server identity advertised during initialization
SERVER_NAME: str = "perplexity-mcp"
SERVER_VERSION: str = "1.3.0"

# Perplexity chat completions (OpenAI-compatible)
PERPLEXITY_URL: str = "https://api.perplexity.ai/chat/completions"
DEFAULT_MODEL: str = "sonar-pro"

DEFAULT_PORT: int = 3000
DEFAULT_HOST: str = "0.0.0.0"

# Upstream timeout (seconds)
UPSTREAM_TIMEOUT: float = 60.0

_TRUTHY = frozenset({"1", "true", "yes", "on"})
LOG_LEVELS = frozenset({"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"})


@dataclass(frozen=True)
class Settings:
    """Process-wide, read-only configuration."""

    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    api_key: str = ""
    model: str = DEFAULT_MODEL
    api_url: str = PERPLEXITY_URL
    timeout: float = UPSTREAM_TIMEOUT
    json_response: bool = False
    log_level: str = "INFO"


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default).strip()


def _parse_port(raw: str) -> int:
    try:
        port = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"PORT must be an integer, got {raw!r}") from e
    if not 0 < port < 65536:
        raise ConfigurationError(f"PORT out of range: {port}")
    return port


def _parse_timeout(raw: str) -> float:
    try:
        timeout = float(raw)
    except ValueError as e:
        raise ConfigurationError(f"PERPLEXITY_TIMEOUT must be a number, got {raw!r}") from e
    if timeout <= 0:
        raise ConfigurationError(f"PERPLEXITY_TIMEOUT must be positive, got {timeout}")
    return timeout


def _parse_log_level(raw: str) -> str:
    level = raw.upper()
    if level not in LOG_LEVELS:
        raise ConfigurationError(f"LOG_LEVEL must be one of {sorted(LOG_LEVELS)}, got {raw!r}")
    return level


def load_settings() -> Settings:
    """
    Build Settings from .env and the process environment.

    A missing PERPLEXITY_API_KEY is not an error here: it only fails answer/fetch
    calls, so the server still starts and serves search, health and root.
    """
    load_dotenv()
    return Settings(
        port=_parse_port(_env("PORT") or str(DEFAULT_PORT)),
        host=_env("HOST") or DEFAULT_HOST,
        api_key=_env("PERPLEXITY_API_KEY"),
        model=_env("PERPLEXITY_MODEL") or DEFAULT_MODEL,
        timeout=_parse_timeout(_env("PERPLEXITY_TIMEOUT") or str(UPSTREAM_TIMEOUT)),
        json_response=_env("MCP_JSON_RESPONSE").lower() in _TRUTHY,
        log_level=_parse_log_level(_env("LOG_LEVEL") or "INFO"),
    )
