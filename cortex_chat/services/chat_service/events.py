"""
In-process chat notifications.

Listeners subscribe explicitly to an event type and get an unsubscribe
callable back. A listener may be a plain function or a coroutine function;
coroutine listeners are scheduled on the running loop. Listener failures are
logged and never reach the emitter.
"""

import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set

from cortex_chat.infrastructure.monitoring.logging_service import get_logger


class ChatEventType(str, Enum):
    ACTIVE_CHAT_CHANGED = "chat:active"
    CHAT_LIST_REFRESH = "chat:list-refresh"
    CHAT_RENAMED = "chat:renamed"
    CHAT_DELETED = "chat:deleted"
    CHAT_SELECTED = "chat:select"


@dataclass(frozen=True)
class ChatEvent:
    type: ChatEventType
    chat_id: Optional[str] = None
    title: Optional[str] = None


Listener = Callable[[ChatEvent], Any]


class ChatEvents:
    """Observer channel shared by the session manager, the chat directory and list views"""

    def __init__(self):
        self.logger = get_logger(__name__)
        self._listeners: Dict[ChatEventType, List[Listener]] = {}
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, event_type: ChatEventType, listener: Listener) -> Callable[[], None]:
        self._listeners.setdefault(event_type, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(event_type, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def emit(self, event_type: ChatEventType, chat_id: Optional[str] = None,
             title: Optional[str] = None) -> ChatEvent:
        event = ChatEvent(type=event_type, chat_id=chat_id, title=title)
        self.logger.debug(f"Emitting {event_type.value} for chat {chat_id}")

        for listener in list(self._listeners.get(event_type, [])):
            try:
                result = listener(event)
            except Exception as e:
                self.logger.error(f"Listener for {event_type.value} failed: {e}", exc_info=True)
                continue

            if inspect.isawaitable(result):
                self._schedule(event, result)

        return event

    def _schedule(self, event: ChatEvent, awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as e:
            # No running loop to host the listener
            self.logger.error(f"Cannot schedule async listener for {event.type.value}: {e}")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(task)
        task.add_done_callback(lambda done: self._on_listener_done(event, done))

    def _on_listener_done(self, event: ChatEvent, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.logger.error(f"Async listener for {event.type.value} failed: {error}")

    async def drain(self) -> None:
        """Wait for scheduled async listeners to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
