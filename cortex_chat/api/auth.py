"""
Bearer token authentication for the chat endpoints.
"""

from typing import Dict, Optional

from aiohttp import web

from cortex_chat.infrastructure.monitoring.logging_service import get_logger


class TokenAuthenticator:
    """Maps `Authorization: Bearer <token>` to a user id using a static token table"""

    def __init__(self, tokens: Dict[str, str]):
        self.tokens = dict(tokens)
        self.logger = get_logger(__name__)

    def __call__(self, request: web.Request) -> Optional[str]:
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None

        user_id = self.tokens.get(token.strip())
        if user_id is None:
            self.logger.warning(f"Rejected unknown API token from {request.remote}")
        return user_id
