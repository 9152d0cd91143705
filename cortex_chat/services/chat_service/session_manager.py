"""
Chat session manager - owns the "current chat" and reconciles it between the server and the local cache.

State machine: NO_ACTIVE_CHAT until a first message creates a chat (or a
chat is hydrated), ACTIVE_CHAT afterwards, back to NO_ACTIVE_CHAT on an
explicit reset or when the server reports the chat gone.

The server is authoritative whenever it answers; the local cache is the
offline mirror used when it does not. Every change to the active chat is
written through to the cache and followed by a list refresh notification.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from cortex_chat.infrastructure.external.chat_api_client import ApiError, ChatReply
from cortex_chat.infrastructure.monitoring.logging_service import get_logger, log_conversation_event
from cortex_chat.services.ai_service.domain_content import CHAT_MODES
from cortex_chat.services.ai_service.fallback_service import FallbackService
from cortex_chat.services.chat_service.events import ChatEvent, ChatEvents, ChatEventType
from cortex_chat.services.chat_service.local_cache import LocalChatCache
from cortex_chat.services.chat_service.models import (
    Chat,
    ChatMessage,
    Feedback,
    Role,
    derive_title,
    new_id,
    sort_and_dedupe,
    utc_now,
)
from cortex_chat.services.chat_service.preferences import ClientPreferences
from cortex_chat.services.ui_service.response_delivery import ResponseDeliverySimulator


class ChatBackend(Protocol):
    """Persistence and generation endpoints as seen by the client"""

    async def create_chat(self, title: str, mode: Optional[str] = None) -> Chat: ...

    async def list_chats(self) -> List[Chat]: ...

    async def get_chat(self, chat_id: str) -> Chat: ...

    async def update_chat(self, chat_id: str, title: Optional[str] = None, mode: Optional[str] = None,
                          is_favorite: Optional[bool] = None, clear_mode: bool = False) -> Chat: ...

    async def delete_chat(self, chat_id: str) -> None: ...

    async def send_message(self, chat_id: str, message: str, mode: Optional[str] = None,
                           deep_search: bool = False) -> ChatReply: ...


class SessionState(str, Enum):
    NO_ACTIVE_CHAT = "no_active_chat"
    ACTIVE_CHAT = "active_chat"


class SendStatus(str, Enum):
    REPLIED = "replied"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass
class SendOutcome:
    """Result of one exchange; `message` is the assistant or error message that was appended"""
    status: SendStatus
    message: ChatMessage
    chat_id: Optional[str]
    error: Optional[str] = None


def _error_detail(error: BaseException) -> str:
    if isinstance(error, ApiError):
        return error.message
    return str(error) or error.__class__.__name__


class ChatSessionManager:
    """Current chat state, hydration, sending and cache write-through"""

    def __init__(
        self,
        backend: ChatBackend,
        cache: LocalChatCache,
        events: ChatEvents,
        preferences: Optional[ClientPreferences] = None,
        delivery: Optional[ResponseDeliverySimulator] = None,
        fallback: Optional[FallbackService] = None,
        modes: Optional[Sequence[str]] = None,
        title_max_length: int = 50
    ):
        self.backend = backend
        self.cache = cache
        self.events = events
        self.preferences = preferences
        self.delivery = delivery or ResponseDeliverySimulator()
        self.fallback = fallback or FallbackService()
        self.modes = tuple(modes) if modes is not None else CHAT_MODES
        self.title_max_length = title_max_length
        self.logger = get_logger(__name__)

        self.current_chat_id: Optional[str] = None
        self.chat: Optional[Chat] = None
        self.messages: List[ChatMessage] = []
        self.selected_mode: Optional[str] = None
        self.is_loading = False
        self.is_hydrating = False
        self._hydration_token = 0

        self._unsubscribers: List[Callable[[], None]] = [
            events.subscribe(ChatEventType.CHAT_SELECTED, self._on_chat_selected),
            events.subscribe(ChatEventType.CHAT_DELETED, self._on_chat_deleted),
            events.subscribe(ChatEventType.CHAT_RENAMED, self._on_chat_renamed),
        ]

    @property
    def state(self) -> SessionState:
        if self.current_chat_id is None:
            return SessionState.NO_ACTIVE_CHAT
        return SessionState.ACTIVE_CHAT

    @property
    def title(self) -> Optional[str]:
        return self.chat.title if self.chat else None

    def find_message(self, message_id: str) -> Optional[int]:
        """Index of a message in the visible list, or None"""
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                return index
        return None

    def visible_content(self, message: ChatMessage) -> str:
        """Text to display for a message: the revealed prefix while streaming or after a stop"""
        prefix = self.delivery.visible_text(message.id)
        return message.content if prefix is None else prefix

    # ----- state transitions -----

    def _adopt(self, chat: Chat, messages: List[ChatMessage]) -> None:
        self.current_chat_id = chat.id
        self.chat = replace(chat, messages=[])
        self.selected_mode = chat.mode
        self.messages = sort_and_dedupe(list(messages))
        if self.preferences is not None:
            self.preferences.current_chat_id = chat.id

    def reset_conversation(self) -> None:
        """Back to NO_ACTIVE_CHAT; any in-flight hydration result is discarded"""
        previous = self.current_chat_id
        self._hydration_token += 1
        self.is_hydrating = False
        self.delivery.forget()

        self.current_chat_id = None
        self.chat = None
        self.messages = []
        self.selected_mode = None
        if self.preferences is not None:
            self.preferences.current_chat_id = None

        if previous is not None:
            log_conversation_event(self.logger, "reset", previous)
            self.events.emit(ChatEventType.ACTIVE_CHAT_CHANGED, None)

    def persist(self) -> None:
        """
        Write the active chat through to the local cache and signal list views.

        Merges title, mode, messages and updated_at into the cached record so
        fields owned elsewhere (e.g. the favorite flag) survive.
        """
        if self.current_chat_id is None or self.chat is None:
            return

        now = utc_now()
        self.chat.updated_at = now
        self.chat.mode = self.selected_mode

        if self.cache.get(self.current_chat_id) is None:
            self.cache.save(replace(self.chat, messages=list(self.messages)))
        else:
            self.cache.update(
                self.current_chat_id,
                title=self.chat.title,
                mode=self.selected_mode,
                messages=list(self.messages),
                updated_at=now,
            )

        self.events.emit(ChatEventType.CHAT_LIST_REFRESH, self.current_chat_id)

    # ----- chat lifecycle -----

    async def ensure_chat(self, first_message_text: str, mode: Optional[str] = None) -> str:
        """
        Return the current chat id, creating a chat on the server if none is held

        Raises:
            ApiError: If chat creation fails; nothing is adopted or persisted then
        """
        if self.current_chat_id is not None:
            return self.current_chat_id

        mode = mode if mode is not None else self.selected_mode
        chat = await self.backend.create_chat(derive_title(first_message_text, self.title_max_length), mode)

        self._adopt(replace(chat, mode=chat.mode if chat.mode is not None else mode), self.messages)
        log_conversation_event(self.logger, "created", chat.id, mode=self.selected_mode)

        self.events.emit(ChatEventType.ACTIVE_CHAT_CHANGED, chat.id)
        self.persist()
        return chat.id

    async def hydrate(self, chat_id: str) -> bool:
        """
        Load a chat from the server, falling back to the local cache

        Only the most recently requested hydration may change visible state.

        Returns:
            True when a chat was applied (from the server or the cache),
            False on reset or when a newer request superseded this one
        """
        self._hydration_token += 1
        token = self._hydration_token
        self.is_hydrating = True
        self.delivery.forget()

        try:
            chat = await self.backend.get_chat(chat_id)
        except ApiError as e:
            if token != self._hydration_token:
                self.logger.debug(f"Discarding stale hydration failure for chat {chat_id}")
                return False
            self.is_hydrating = False

            if e.status == 404:
                self.logger.info(f"Chat {chat_id} no longer exists on the server")
                self.reset_conversation()
                return False

            self.logger.warning(f"Hydration of chat {chat_id} failed ({e}), using local cache")
            return self._hydrate_from_cache(chat_id)
        except Exception as e:
            if token != self._hydration_token:
                return False
            self.is_hydrating = False
            self.logger.warning(f"Hydration of chat {chat_id} failed unexpectedly ({e}), using local cache")
            return self._hydrate_from_cache(chat_id)

        if token != self._hydration_token:
            self.logger.debug(f"Discarding stale hydration result for chat {chat_id}")
            return False
        self.is_hydrating = False

        messages = self._carry_feedback(chat.id, chat.messages)
        self._adopt(chat, messages)
        self.cache.save(replace(self.chat, messages=list(self.messages)))
        log_conversation_event(self.logger, "hydrated", chat.id, source="server", message_count=len(self.messages))
        self.events.emit(ChatEventType.CHAT_LIST_REFRESH, chat.id)
        return True

    def _carry_feedback(self, chat_id: str, messages: List[ChatMessage]) -> List[ChatMessage]:
        # Feedback is client-local; keep cached annotations for server messages that have none
        cached = self.cache.get(chat_id)
        if cached is None:
            return list(messages)

        feedback: Dict[str, Feedback] = {
            message.id: message.feedback for message in cached.messages if message.feedback != Feedback.NONE
        }
        return [
            replace(message, feedback=feedback[message.id])
            if message.feedback == Feedback.NONE and message.id in feedback else message
            for message in messages
        ]

    def _hydrate_from_cache(self, chat_id: str) -> bool:
        cached = self.cache.get(chat_id)
        if cached is None:
            self.logger.info(f"Chat {chat_id} not in local cache, resetting")
            self.reset_conversation()
            return False

        self._adopt(cached, cached.messages)
        log_conversation_event(self.logger, "hydrated", chat_id, source="cache", message_count=len(self.messages))
        return True

    async def select_chat(self, chat_id: str) -> bool:
        if chat_id == self.current_chat_id:
            return True
        return await self.hydrate(chat_id)

    async def restore_active_chat(self) -> bool:
        """Hydrate the chat remembered in the preferences, if any"""
        if self.preferences is None:
            return False
        chat_id = self.preferences.current_chat_id
        if not chat_id:
            return False
        return await self.hydrate(chat_id)

    async def select_mode(self, mode: Optional[str]) -> None:
        """Select a mode (None clears it); an active chat is updated locally and on the server"""
        if mode is not None and mode not in self.modes:
            raise ValueError(f"Unknown chat mode: {mode}")

        self.selected_mode = mode
        if self.current_chat_id is None:
            return

        self.persist()
        try:
            await self.backend.update_chat(self.current_chat_id, mode=mode, clear_mode=mode is None)
        except ApiError as e:
            self.logger.warning(f"Could not update mode of chat {self.current_chat_id} on the server: {e}")

    def stop_generation(self) -> None:
        self.delivery.stop()

    # ----- sending -----

    async def send_message(self, text: str, deep_search: bool = False) -> Optional[SendOutcome]:
        """
        Append a user message and obtain the assistant reply

        Blank text, or a call while another request or a hydration is in
        flight, is ignored and returns None. Otherwise exactly one new message
        follows the user's: the reply, a degraded apology or an error.
        """
        if not text or not text.strip() or self.is_loading or self.is_hydrating:
            return None

        user_message = ChatMessage.create(text, Role.USER)
        self.messages.append(user_message)
        self.is_loading = True

        try:
            had_chat = self.current_chat_id is not None
            try:
                await self.ensure_chat(text)
            except Exception as e:
                self.logger.error(f"Could not create chat: {e}")
                return self._append_local_error(e)

            if had_chat:
                self.persist()

            return await self._exchange(text, deep_search, user_message_id=user_message.id)
        finally:
            self.is_loading = False

    async def request_reply(self, user_text: str, deep_search: bool = False) -> SendOutcome:
        """Generation half of an exchange for text already present as a user message"""
        self.is_loading = True
        try:
            if self.current_chat_id is None:
                try:
                    await self.ensure_chat(user_text)
                except Exception as e:
                    self.logger.error(f"Could not create chat: {e}")
                    return self._append_local_error(e)
            return await self._exchange(user_text, deep_search)
        finally:
            self.is_loading = False

    async def _exchange(self, user_text: str, deep_search: bool,
                        user_message_id: Optional[str] = None) -> SendOutcome:
        chat_id = self.current_chat_id

        try:
            reply = await self.backend.send_message(chat_id, user_text, self.selected_mode, deep_search)
        except Exception as e:
            # The server reports degraded replies as a 200; anything raised is a hard failure
            detail = _error_detail(e)
            self.logger.error(f"Generation request for chat {chat_id} failed: {detail}")
            return self._deliver(chat_id, self.fallback.error_message(detail), new_id(),
                                 SendStatus.FAILED, error=detail)

        if reply.user_message_id and user_message_id and chat_id == self.current_chat_id:
            self._confirm_message_id(user_message_id, reply.user_message_id)

        status = SendStatus.DEGRADED if reply.degraded else SendStatus.REPLIED
        return self._deliver(chat_id, reply.text, reply.message_id, status)

    def _confirm_message_id(self, provisional_id: str, server_id: str) -> None:
        index = self.find_message(provisional_id)
        if index is not None and provisional_id != server_id:
            self.messages[index] = replace(self.messages[index], id=server_id)

    def _deliver(self, chat_id: Optional[str], text: str, message_id: str, status: SendStatus,
                 error: Optional[str] = None) -> SendOutcome:
        message = ChatMessage(id=message_id, content=text, role=Role.ASSISTANT, created_at=utc_now())
        outcome = SendOutcome(status=status, message=message, chat_id=chat_id, error=error)

        if chat_id != self.current_chat_id:
            # The user moved to another chat while the request was in flight
            self.logger.info(f"Reply for chat {chat_id} arrived after a chat switch, caching only")
            self.cache.append_message(chat_id, message)
            self.events.emit(ChatEventType.CHAT_LIST_REFRESH, chat_id)
            return outcome

        self.messages.append(message)
        self.persist()
        log_conversation_event(self.logger, "message_added", chat_id, status=status.value)

        if status != SendStatus.FAILED:
            self.delivery.reveal(text, message_id)
        return outcome

    def _append_local_error(self, error: BaseException) -> SendOutcome:
        message = ChatMessage.create(self.fallback.error_message(_error_detail(error)), Role.ASSISTANT)
        self.messages.append(message)
        return SendOutcome(status=SendStatus.FAILED, message=message, chat_id=None,
                           error=_error_detail(error))

    # ----- event listeners -----

    async def _on_chat_selected(self, event: ChatEvent) -> None:
        if event.chat_id and event.chat_id != self.current_chat_id:
            await self.hydrate(event.chat_id)

    def _on_chat_deleted(self, event: ChatEvent) -> None:
        if not event.chat_id:
            return
        self.cache.delete(event.chat_id)
        if event.chat_id == self.current_chat_id:
            self.reset_conversation()

    def _on_chat_renamed(self, event: ChatEvent) -> None:
        if event.chat_id == self.current_chat_id and self.chat is not None and event.title:
            self.chat.title = event.title
            self.persist()

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self.delivery.stop()
