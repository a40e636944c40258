# Run from project root: uvicorn perplexity_mcp.main:app --reload  (or: perplexity-mcp)

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from perplexity_mcp.api.routes import router
from perplexity_mcp.core.config import SERVER_NAME, SERVER_VERSION, Settings, load_settings
from perplexity_mcp.mcp.server import SessionLifecycleManager
from perplexity_mcp.services.answer_gateway import AnswerGateway

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, gateway: AnswerGateway | None = None) -> FastAPI:
    """Build the app. Settings are read once here and handed down; nothing re-reads the environment."""
    settings = settings or load_settings()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(title="Perplexity MCP", version=SERVER_VERSION)
    app.state.settings = settings
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "mcp-session-id"],
        expose_headers=["Mcp-Session-Id"],
    )
    app.include_router(router)
    app.add_route("/mcp", SessionLifecycleManager(settings, gateway), methods=["POST"])
    if not settings.api_key:
        logger.warning("PERPLEXITY_API_KEY is not set; answer and fetch calls will fail")
    return app


app = create_app()


def run() -> None:
    settings: Settings = app.state.settings
    logger.info("%s listening on %s:%d", SERVER_NAME, settings.host, settings.port)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
