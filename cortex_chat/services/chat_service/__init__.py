"""
Chat service - chat models, local cache, session management and message actions.
"""

from .models import Chat, ChatMessage, Feedback, Role, derive_title
from .local_cache import LocalChatCache
from .preferences import ClientPreferences
from .events import ChatEvent, ChatEvents, ChatEventType


__all__ = [
    'Chat',
    'ChatMessage',
    'Feedback',
    'Role',
    'derive_title',
    'LocalChatCache',
    'ClientPreferences',
    'ChatEvent',
    'ChatEvents',
    'ChatEventType'
]
