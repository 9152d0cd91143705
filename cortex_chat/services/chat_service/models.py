"""
Chat service data models for chats and messages.

Serialized form uses camelCase keys and ISO-8601 timestamps, shared by the
REST endpoints and the local chat cache.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Feedback(str, Enum):
    LIKE = "like"
    DISLIKE = "dislike"
    NONE = "none"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string (a trailing "Z" included) into an aware UTC datetime"""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        parsed = datetime.fromisoformat(value)
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    # Fixed width so stored strings sort chronologically
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def derive_title(text: str, max_length: int = 50) -> str:
    """Chat title from the first message: truncated with an ellipsis when longer than max_length"""
    text = text.strip()
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text


def normalize_mode(mode: Optional[str]) -> Optional[str]:
    if not mode:
        return None
    return mode


@dataclass
class ChatMessage:
    """Individual message in a chat"""
    id: str
    content: str
    role: Role
    created_at: datetime = field(default_factory=utc_now)
    feedback: Feedback = Feedback.NONE

    @classmethod
    def create(cls, content: str, role: Role, created_at: Optional[datetime] = None) -> 'ChatMessage':
        """New message with a client-issued provisional id"""
        return cls(id=new_id(), content=content, role=role, created_at=created_at or utc_now())

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "content": self.content,
            "role": self.role.value,
            "createdAt": format_timestamp(self.created_at),
        }
        if self.feedback != Feedback.NONE:
            data["feedback"] = self.feedback.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChatMessage':
        return cls(
            id=str(data["id"]),
            content=str(data.get("content", "")),
            role=Role(data["role"]),
            created_at=parse_timestamp(data["createdAt"]),
            feedback=Feedback(data.get("feedback") or Feedback.NONE.value),
        )


def sort_and_dedupe(messages: List[ChatMessage]) -> List[ChatMessage]:
    """Unique by id (later entries replace earlier ones), ascending by created_at"""
    by_id: Dict[str, ChatMessage] = {}
    for message in messages:
        by_id[message.id] = message
    return sorted(by_id.values(), key=lambda m: m.created_at)


@dataclass
class Chat:
    """Chat session containing messages and metadata"""
    id: str
    title: str
    mode: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    is_favorite: bool = False
    messages: List[ChatMessage] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "mode": self.mode,
            "createdAt": format_timestamp(self.created_at),
            "updatedAt": format_timestamp(self.updated_at),
            "isFavorite": self.is_favorite,
            "messages": [message.to_dict() for message in self.messages],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Chat':
        created_at = parse_timestamp(data["createdAt"])
        updated_raw = data.get("updatedAt")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            mode=normalize_mode(data.get("mode")),
            created_at=created_at,
            updated_at=parse_timestamp(updated_raw) if updated_raw else created_at,
            is_favorite=bool(data.get("isFavorite", False)),
            messages=[ChatMessage.from_dict(item) for item in data.get("messages") or []],
        )
