"""
Client preferences stored next to the chat cache: the active chat id and the dark mode flag.
"""

import json
from typing import Optional

from cortex_chat.infrastructure.monitoring.logging_service import get_logger
from cortex_chat.infrastructure.storage.key_value_store import KeyValueStorage


class ClientPreferences:
    """Small scalar UI preferences; storage errors degrade to defaults"""

    def __init__(self, storage: KeyValueStorage, current_chat_key: str = "currentChatId",
                 dark_mode_key: str = "darkMode"):
        self.storage = storage
        self.current_chat_key = current_chat_key
        self.dark_mode_key = dark_mode_key
        self.logger = get_logger(__name__)

    @property
    def current_chat_id(self) -> Optional[str]:
        try:
            return self.storage.get_item(self.current_chat_key) or None
        except Exception as e:
            self.logger.warning(f"Could not read current chat id: {e}")
            return None

    @current_chat_id.setter
    def current_chat_id(self, chat_id: Optional[str]) -> None:
        try:
            if chat_id:
                self.storage.set_item(self.current_chat_key, chat_id)
            else:
                self.storage.remove_item(self.current_chat_key)
        except Exception as e:
            self.logger.error(f"Could not store current chat id: {e}")

    @property
    def dark_mode(self) -> bool:
        try:
            raw = self.storage.get_item(self.dark_mode_key)
            return bool(json.loads(raw)) if raw else False
        except Exception as e:
            self.logger.warning(f"Could not read dark mode preference: {e}")
            return False

    @dark_mode.setter
    def dark_mode(self, enabled: bool) -> None:
        try:
            self.storage.set_item(self.dark_mode_key, json.dumps(bool(enabled)))
        except Exception as e:
            self.logger.error(f"Could not store dark mode preference: {e}")
