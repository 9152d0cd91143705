"""
HTTP API - chat persistence and generation endpoints.
"""

from .auth import TokenAuthenticator
from .chat_routes import register_routes, DEFAULT_MAX_BODY_BYTES

__all__ = ['TokenAuthenticator', 'register_routes', 'DEFAULT_MAX_BODY_BYTES']
