"""
Key/value storage backends for client-local state.

Values are plain strings, the same shape a browser's local storage holds.
Backends raise on I/O or parse errors; callers decide how to degrade.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

from cortex_chat.infrastructure.monitoring.logging_service import get_logger


class KeyValueStorage(ABC):
    """Minimal string key/value storage interface"""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored string, or None when the key is absent"""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store a string under key, replacing any previous value"""

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove key if present"""


class MemoryStorage(KeyValueStorage):
    """In-process storage, mainly for tests and ephemeral clients"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        """Copy of the raw stored strings, e.g. to simulate a reload"""
        return dict(self._items)


class JsonFileStorage(KeyValueStorage):
    """
    Storage backed by a single JSON object file.

    The file is re-read on every access so several client instances sharing
    it observe each other's writes. Writes go to a temp file that is then
    moved over the original, so readers never see a half-written file.
    """

    def __init__(self, path: str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.logger = get_logger(__name__)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}

        with self.path.open("r", encoding="utf-8") as f:
            raw = json.load(f)

        if not isinstance(raw, dict):
            raise ValueError(f"Storage file {self.path} does not hold a JSON object")

        return {str(key): value for key, value in raw.items() if isinstance(value, str)}

    def _dump(self, items: Dict[str, str]) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), prefix=".storage-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except Exception:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._load()
        items[key] = value
        self._dump(items)

    def remove_item(self, key: str) -> None:
        items = self._load()
        if key in items:
            del items[key]
            self._dump(items)
