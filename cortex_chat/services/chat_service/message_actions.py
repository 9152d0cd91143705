"""
Message action handlers: feedback toggles, copy, retry and edit-and-regenerate.
"""

from dataclasses import replace
from typing import Callable, Optional

import pyperclip

from cortex_chat.infrastructure.monitoring.logging_service import get_logger
from cortex_chat.services.chat_service.models import Feedback, Role
from cortex_chat.services.chat_service.session_manager import ChatSessionManager, SendOutcome


class MessageActionHandlers:
    """
    Bounded state transitions over the session's message list.
    Retry and edit re-run the generation half of an exchange.
    """

    def __init__(self, session: ChatSessionManager, clipboard: Optional[Callable[[str], None]] = None):
        self.session = session
        self.clipboard = clipboard or pyperclip.copy
        self.logger = get_logger(__name__)

    def _busy(self) -> bool:
        return self.session.is_loading or self.session.is_hydrating

    def _toggle_feedback(self, message_id: str, feedback: Feedback) -> bool:
        index = self.session.find_message(message_id)
        if index is None:
            return False

        message = self.session.messages[index]
        new_feedback = Feedback.NONE if message.feedback == feedback else feedback
        self.session.messages[index] = replace(message, feedback=new_feedback)
        self.session.persist()
        return True

    def like(self, message_id: str) -> bool:
        return self._toggle_feedback(message_id, Feedback.LIKE)

    def dislike(self, message_id: str) -> bool:
        return self._toggle_feedback(message_id, Feedback.DISLIKE)

    def copy(self, message_id: str) -> bool:
        """Copy a message's content verbatim to the clipboard; failures are only logged"""
        index = self.session.find_message(message_id)
        if index is None:
            return False

        try:
            self.clipboard(self.session.messages[index].content)
        except Exception as e:
            self.logger.error(f"Failed to copy message {message_id}: {e}")
            return False
        return True

    async def retry(self, assistant_message_id: str) -> Optional[SendOutcome]:
        """
        Regenerate an assistant reply from the user message right before it

        No-op (returns None) when a request is in flight, the message is
        unknown, first in the list, not an assistant message, or not preceded
        by a user message.
        """
        if self._busy():
            return None

        messages = self.session.messages
        index = self.session.find_message(assistant_message_id)
        if index is None or index <= 0:
            return None

        target = messages[index]
        previous = messages[index - 1]
        if target.role != Role.ASSISTANT or previous.role != Role.USER:
            return None

        self.logger.info(f"Retrying reply {assistant_message_id}")
        self.session.delivery.forget(assistant_message_id)
        del messages[index]
        self.session.persist()

        return await self.session.request_reply(previous.content)

    async def edit_and_regenerate(self, user_message_id: str, new_text: str) -> Optional[SendOutcome]:
        """
        Replace a user message's content, drop everything after it and regenerate

        Blank text cancels the edit (returns None).
        """
        if not new_text or not new_text.strip() or self._busy():
            return None

        index = self.session.find_message(user_message_id)
        if index is None or self.session.messages[index].role != Role.USER:
            return None

        self.session.delivery.forget()
        edited = replace(self.session.messages[index], content=new_text)
        self.session.messages[:] = self.session.messages[:index] + [edited]
        self.session.persist()
        self.logger.info(f"Edited message {user_message_id}, regenerating")

        return await self.session.request_reply(new_text)
