"""
Client composition root: builds one set of chat services per running client.
"""

from dataclasses import dataclass
from typing import Optional

from cortex_chat.config.app_config import AppConfig, get_config
from cortex_chat.infrastructure.external.chat_api_client import ChatApiClient
from cortex_chat.infrastructure.storage.key_value_store import JsonFileStorage, KeyValueStorage
from cortex_chat.services.ai_service.fallback_service import FallbackService
from cortex_chat.services.chat_service.chat_directory import ChatDirectory
from cortex_chat.services.chat_service.events import ChatEvents
from cortex_chat.services.chat_service.local_cache import LocalChatCache
from cortex_chat.services.chat_service.message_actions import MessageActionHandlers
from cortex_chat.services.chat_service.preferences import ClientPreferences
from cortex_chat.services.chat_service.session_manager import ChatBackend, ChatSessionManager
from cortex_chat.services.ui_service.response_delivery import ResponseDeliverySimulator


@dataclass
class ChatClient:
    """Services sharing one cache, one preference store and one event channel"""
    backend: ChatBackend
    cache: LocalChatCache
    preferences: ClientPreferences
    events: ChatEvents
    delivery: ResponseDeliverySimulator
    session: ChatSessionManager
    directory: ChatDirectory
    actions: MessageActionHandlers

    async def close(self) -> None:
        self.session.close()
        close = getattr(self.backend, "close", None)
        if close is not None:
            await close()


def build_chat_client(
    config: Optional[AppConfig] = None,
    storage: Optional[KeyValueStorage] = None,
    backend: Optional[ChatBackend] = None
) -> ChatClient:
    """Wire the client services from configuration; storage and backend can be injected"""
    config = config or get_config()
    storage = storage or JsonFileStorage(config.cache.storage_path)
    backend = backend or ChatApiClient(
        config.api.chat_api_base_url,
        api_token=config.api.chat_api_token or None,
        timeout=config.api.request_timeout,
    )

    cache = LocalChatCache(storage, namespace=config.cache.namespace)
    preferences = ClientPreferences(
        storage,
        current_chat_key=config.cache.current_chat_key,
        dark_mode_key=config.cache.dark_mode_key,
    )
    events = ChatEvents()
    delivery = ResponseDeliverySimulator(
        tick_interval=config.streaming.tick_interval,
        min_chunk=config.streaming.min_chunk,
        max_chunk=config.streaming.max_chunk,
    )
    session = ChatSessionManager(
        backend,
        cache,
        events,
        preferences=preferences,
        delivery=delivery,
        fallback=FallbackService(),
        modes=config.chat.modes,
        title_max_length=config.chat.title_max_length,
    )

    return ChatClient(
        backend=backend,
        cache=cache,
        preferences=preferences,
        events=events,
        delivery=delivery,
        session=session,
        directory=ChatDirectory(backend, cache, events),
        actions=MessageActionHandlers(session),
    )
