"""
Chat API server entry point.
"""

from typing import Callable, Optional

from aiohttp import web

from cortex_chat.api.auth import TokenAuthenticator
from cortex_chat.api.chat_routes import register_routes
from cortex_chat.config.app_config import AppConfig
from cortex_chat.config.environments import get_environment_config
from cortex_chat.infrastructure.external.openai_client import build_generation_client
from cortex_chat.infrastructure.monitoring.logging_service import get_logger, initialize_logging
from cortex_chat.services.ai_service.generation_client import GenerationClient
from cortex_chat.services.chat_service.chat_store import SqliteChatStore

logger = get_logger(__name__)


def create_app(
    config: AppConfig,
    store: Optional[SqliteChatStore] = None,
    generation_client: Optional[GenerationClient] = None,
    authenticate: Optional[Callable[[web.Request], Optional[str]]] = None
) -> web.Application:
    """Build the aiohttp application; collaborators default to the configured ones"""
    max_body_bytes = config.server.max_body_bytes

    # Headroom above the limit so oversized bodies reach the 413 check in the handler
    app = web.Application(client_max_size=max_body_bytes + 1024 * 1024)

    register_routes(
        app,
        store=store or SqliteChatStore(config.server.db_path),
        generation_client=generation_client or build_generation_client(config),
        authenticate=authenticate or TokenAuthenticator(config.server.api_tokens),
        max_body_bytes=max_body_bytes,
    )
    return app


def main() -> None:
    config = get_environment_config()
    initialize_logging(config)

    errors = config.validate()
    for error in errors:
        logger.warning(f"Configuration error: {error}")
    if not config.server.api_tokens:
        logger.warning("No API tokens configured (CORTEX_API_TOKENS); every request will be rejected")

    app = create_app(config)
    logger.info(f"Starting chat API on {config.server.host}:{config.server.port} ({config.environment})")
    web.run_app(app, host=config.server.host, port=config.server.port, print=None)


if __name__ == "__main__":
    main()
