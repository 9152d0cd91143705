"""
Shared fixtures for the chat pipeline tests
"""

import asyncio
import copy
import itertools
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

from cortex_chat.infrastructure.external.chat_api_client import ApiError, ChatReply
from cortex_chat.infrastructure.storage.key_value_store import MemoryStorage
from cortex_chat.services.chat_service.events import ChatEvents
from cortex_chat.services.chat_service.local_cache import LocalChatCache
from cortex_chat.services.chat_service.models import Chat, ChatMessage, Role, utc_now
from cortex_chat.services.chat_service.preferences import ClientPreferences
from cortex_chat.services.chat_service.session_manager import ChatSessionManager
from cortex_chat.services.ui_service.response_delivery import ResponseDeliverySimulator

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    return BASE_TIME + timedelta(seconds=seconds)


def make_message(message_id: str, role: Role, content: str, seconds: float) -> ChatMessage:
    return ChatMessage(id=message_id, content=content, role=role, created_at=at(seconds))


async def instant_sleep(delay: float) -> None:
    await asyncio.sleep(0)


class RecordingSleep:
    """Async sleep replacement that records requested delays and returns at once"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeBackend:
    """In-memory stand-in for the chat API"""

    def __init__(self):
        self.chats: Dict[str, Chat] = {}
        self.reply_text = "Here is the answer."
        self.reply_degraded = False
        self.create_error: Optional[Exception] = None
        self.get_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None
        self.update_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None
        self.list_error: Optional[Exception] = None
        self.get_gates: Dict[str, asyncio.Event] = {}
        self.send_gate: Optional[asyncio.Event] = None
        self.created: List[Chat] = []
        self.sent: List[dict] = []
        self.updates: List[dict] = []
        self._ids = itertools.count(1)

    def add_chat(self, chat: Chat) -> Chat:
        self.chats[chat.id] = copy.deepcopy(chat)
        return chat

    async def create_chat(self, title: str, mode: Optional[str] = None) -> Chat:
        if self.create_error is not None:
            raise self.create_error
        chat = Chat(id=f"chat-{next(self._ids)}", title=title, mode=mode)
        self.chats[chat.id] = chat
        self.created.append(chat)
        return copy.deepcopy(chat)

    async def list_chats(self) -> List[Chat]:
        if self.list_error is not None:
            raise self.list_error
        return [copy.deepcopy(chat) for chat in self.chats.values()]

    async def get_chat(self, chat_id: str) -> Chat:
        gate = self.get_gates.get(chat_id)
        if gate is not None:
            await gate.wait()
        if self.get_error is not None:
            raise self.get_error
        if chat_id not in self.chats:
            raise ApiError(404, "Chat not found")
        return copy.deepcopy(self.chats[chat_id])

    async def update_chat(self, chat_id: str, title: Optional[str] = None, mode: Optional[str] = None,
                          is_favorite: Optional[bool] = None, clear_mode: bool = False) -> Chat:
        self.updates.append({"chat_id": chat_id, "title": title, "mode": mode,
                             "is_favorite": is_favorite, "clear_mode": clear_mode})
        if self.update_error is not None:
            raise self.update_error
        chat = self.chats.get(chat_id)
        if chat is None:
            raise ApiError(404, "Chat not found")
        if title is not None:
            chat.title = title
        if mode is not None or clear_mode:
            chat.mode = mode
        if is_favorite is not None:
            chat.is_favorite = is_favorite
        return copy.deepcopy(chat)

    async def delete_chat(self, chat_id: str) -> None:
        if self.delete_error is not None:
            raise self.delete_error
        if chat_id not in self.chats:
            raise ApiError(404, "Chat not found")
        del self.chats[chat_id]

    async def send_message(self, chat_id: str, message: str, mode: Optional[str] = None,
                           deep_search: bool = False) -> ChatReply:
        self.sent.append({"chat_id": chat_id, "message": message, "mode": mode, "deep_search": deep_search})
        if self.send_gate is not None:
            await self.send_gate.wait()
        if self.send_error is not None:
            raise self.send_error

        chat = self.chats[chat_id]
        user_message = ChatMessage(id=f"srv-u{next(self._ids)}", content=message, role=Role.USER,
                                   created_at=utc_now())
        reply = ChatMessage(id=f"srv-a{next(self._ids)}", content=self.reply_text, role=Role.ASSISTANT,
                            created_at=utc_now())
        chat.messages.extend([user_message, reply])
        return ChatReply(text=reply.content, message_id=reply.id, degraded=self.reply_degraded,
                         user_message_id=user_message.id)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def cache(storage):
    return LocalChatCache(storage)


@pytest.fixture
def preferences(storage):
    return ClientPreferences(storage)


@pytest.fixture
def events():
    return ChatEvents()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def delivery():
    return ResponseDeliverySimulator(sleep=instant_sleep)


@pytest_asyncio.fixture
async def session(backend, cache, events, preferences, delivery):
    manager = ChatSessionManager(backend, cache, events, preferences=preferences, delivery=delivery)
    yield manager
    manager.close()
