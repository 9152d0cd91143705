"""
Local chat cache - client-side mirror of server chat state.

All chats live as one JSON list under a single namespaced key. Every writer
re-reads the collection, merges its change and writes the whole list back,
so concurrent field updates from different call sites are not lost.
The cache is best effort: unreadable storage is treated as empty and write
failures are logged, never raised.
"""

import json
from dataclasses import replace
from typing import Any, Dict, List, Optional

from cortex_chat.infrastructure.monitoring.logging_service import get_logger
from cortex_chat.infrastructure.storage.key_value_store import KeyValueStorage
from cortex_chat.services.chat_service.models import (
    Chat,
    ChatMessage,
    normalize_mode,
    sort_and_dedupe,
    utc_now,
)

UPDATABLE_FIELDS = frozenset({"title", "mode", "is_favorite", "messages", "updated_at"})


class LocalChatCache:
    """Durable client-local store of Chat records keyed by chat id"""

    def __init__(self, storage: KeyValueStorage, namespace: str = "cortexChats"):
        self.storage = storage
        self.namespace = namespace
        self.logger = get_logger(__name__)

    def _read(self) -> Dict[str, Chat]:
        try:
            raw = self.storage.get_item(self.namespace)
            if not raw:
                return {}
            items = json.loads(raw)
        except Exception as e:
            self.logger.warning(f"Local chat cache unreadable, treating as empty: {e}")
            return {}

        if not isinstance(items, list):
            self.logger.warning("Local chat cache does not hold a list, treating as empty")
            return {}

        chats: Dict[str, Chat] = {}
        for item in items:
            try:
                chat = self._normalize(Chat.from_dict(item))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                self.logger.warning(f"Skipping malformed cached chat: {e}")
                continue
            chats[chat.id] = chat
        return chats

    def _write(self, chats: Dict[str, Chat]) -> None:
        try:
            payload = json.dumps([chat.to_dict() for chat in chats.values()], ensure_ascii=False)
            self.storage.set_item(self.namespace, payload)
        except Exception as e:
            self.logger.error(f"Failed to write local chat cache: {e}")

    @staticmethod
    def _normalize(chat: Chat) -> Chat:
        return replace(
            chat,
            mode=normalize_mode(chat.mode),
            is_favorite=bool(chat.is_favorite),
            messages=sort_and_dedupe(list(chat.messages)),
        )

    def get_all(self) -> List[Chat]:
        """All cached chats, most recently updated first"""
        chats = list(self._read().values())
        chats.sort(key=lambda chat: chat.updated_at or chat.created_at, reverse=True)
        return chats

    def get(self, chat_id: str) -> Optional[Chat]:
        return self._read().get(chat_id)

    def save(self, chat: Chat) -> None:
        """Insert or replace a chat by id"""
        chats = self._read()
        chats[chat.id] = self._normalize(chat)
        self._write(chats)

    def append_message(self, chat_id: str, message: ChatMessage) -> None:
        """Append a message to a cached chat; unknown chat ids are ignored"""
        chats = self._read()
        chat = chats.get(chat_id)
        if chat is None:
            self.logger.debug(f"append_message ignored for uncached chat {chat_id}")
            return

        chats[chat_id] = replace(
            chat,
            messages=sort_and_dedupe(chat.messages + [message]),
            updated_at=max(chat.updated_at, message.created_at),
        )
        self._write(chats)

    def update(self, chat_id: str, **fields: Any) -> None:
        """
        Merge fields into a cached chat; unknown chat ids are ignored

        Args:
            chat_id: Chat to update
            **fields: Any of title, mode, is_favorite, messages, updated_at.
                updated_at advances to now unless given explicitly.

        Raises:
            ValueError: If a field name is not updatable
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update chat fields: {', '.join(sorted(unknown))}")

        chats = self._read()
        chat = chats.get(chat_id)
        if chat is None:
            self.logger.debug(f"update ignored for uncached chat {chat_id}")
            return

        fields.setdefault("updated_at", utc_now())
        chats[chat_id] = self._normalize(replace(chat, **fields))
        self._write(chats)

    def delete(self, chat_id: str) -> None:
        chats = self._read()
        if chats.pop(chat_id, None) is not None:
            self._write(chats)
