"""
Chat directory - listing and chat-level operations used by list views.

Server first; when the server cannot be reached or the user is not
authenticated the change is applied to the local cache only. Every change
emits the matching notification followed by a list refresh.
"""

from typing import List, Optional

from cortex_chat.infrastructure.external.chat_api_client import ApiError
from cortex_chat.infrastructure.monitoring.logging_service import get_logger
from cortex_chat.services.chat_service.events import ChatEvents, ChatEventType
from cortex_chat.services.chat_service.local_cache import LocalChatCache
from cortex_chat.services.chat_service.models import Chat
from cortex_chat.services.chat_service.session_manager import ChatBackend

# Failures after which a change is still applied locally
LOCAL_ONLY_STATUSES = frozenset({None, 401, 403})


class ChatDirectory:
    """List, rename, favorite and delete chats"""

    def __init__(self, backend: ChatBackend, cache: LocalChatCache, events: ChatEvents):
        self.backend = backend
        self.cache = cache
        self.events = events
        self.logger = get_logger(__name__)

    async def list_chats(self) -> List[Chat]:
        """Chats from the server (each with its first message), or the cached ones when that fails"""
        try:
            return await self.backend.list_chats()
        except ApiError as e:
            self.logger.warning(f"Could not list chats from the server ({e}), using local cache")
            return self.cache.get_all()

    def select_chat(self, chat_id: str) -> None:
        """Ask the session to switch to another chat"""
        self.events.emit(ChatEventType.CHAT_SELECTED, chat_id)

    async def rename_chat(self, chat_id: str, title: str) -> bool:
        title = title.strip() if title else ""
        if not title:
            return False

        try:
            await self.backend.update_chat(chat_id, title=title)
        except ApiError as e:
            if e.status not in LOCAL_ONLY_STATUSES:
                self.logger.error(f"Failed to rename chat {chat_id}: {e}")
                return False
            self.logger.warning(f"Renaming chat {chat_id} locally only ({e})")

        self.cache.update(chat_id, title=title)
        self.events.emit(ChatEventType.CHAT_RENAMED, chat_id, title=title)
        self.events.emit(ChatEventType.CHAT_LIST_REFRESH, chat_id)
        return True

    async def toggle_favorite(self, chat_id: str) -> Optional[bool]:
        """Flip the favorite flag; returns the new value, or None when the change failed"""
        cached = self.cache.get(chat_id)
        is_favorite = not (cached.is_favorite if cached else False)

        try:
            chat = await self.backend.update_chat(chat_id, is_favorite=is_favorite)
            is_favorite = chat.is_favorite
        except ApiError as e:
            if e.status not in LOCAL_ONLY_STATUSES:
                self.logger.error(f"Failed to update favorite flag of chat {chat_id}: {e}")
                return None
            self.logger.warning(f"Updating favorite flag of chat {chat_id} locally only ({e})")

        self.cache.update(chat_id, is_favorite=is_favorite)
        self.events.emit(ChatEventType.CHAT_LIST_REFRESH, chat_id)
        return is_favorite

    async def delete_chat(self, chat_id: str) -> bool:
        try:
            await self.backend.delete_chat(chat_id)
        except ApiError as e:
            if e.status == 404:
                self.logger.info(f"Chat {chat_id} already gone on the server")
            elif e.status in LOCAL_ONLY_STATUSES:
                self.logger.warning(f"Deleting chat {chat_id} locally only ({e})")
            else:
                self.logger.error(f"Failed to delete chat {chat_id}: {e}")
                return False

        self.cache.delete(chat_id)
        self.events.emit(ChatEventType.CHAT_DELETED, chat_id)
        self.events.emit(ChatEventType.CHAT_LIST_REFRESH, chat_id)
        return True
