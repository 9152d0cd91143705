"""
Chat store - server-side persistence of chats and messages in SQLite.

Every chat belongs to one user; a chat of another user is reported as not found.
"""

import os
import sqlite3
from contextlib import contextmanager
from typing import Iterator, List, Optional

from cortex_chat.infrastructure.monitoring.logging_service import get_logger
from cortex_chat.services.chat_service.models import (
    Chat,
    ChatMessage,
    Role,
    format_timestamp,
    new_id,
    normalize_mode,
    parse_timestamp,
    utc_now,
)

# Marker for "field not supplied" where None is a meaningful value
UNSET = object()


class ChatNotFoundError(Exception):
    """Chat does not exist or belongs to another user"""

    def __init__(self, chat_id: str):
        super().__init__(f"Chat not found: {chat_id}")
        self.chat_id = chat_id


class SqliteChatStore:
    """
    Repository for chats and their messages.
    Opens one connection per operation.
    """

    def __init__(self, db_path: str = "data/chats.db"):
        """
        Args:
            db_path: Path to the SQLite database file
        """
        self.logger = get_logger(__name__)
        self.db_path = db_path
        self._init_database()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_database(self):
        """Create tables and indexes if missing"""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        try:
            with self._connect() as conn:
                conn.execute('''
                    CREATE TABLE IF NOT EXISTS chats (
                        id TEXT PRIMARY KEY,
                        user_id TEXT NOT NULL,
                        title TEXT NOT NULL,
                        mode TEXT,
                        is_favorite INTEGER NOT NULL DEFAULT 0,
                        created_at TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                ''')
                conn.execute('''
                    CREATE TABLE IF NOT EXISTS messages (
                        seq INTEGER PRIMARY KEY AUTOINCREMENT,
                        id TEXT NOT NULL UNIQUE,
                        chat_id TEXT NOT NULL,
                        role TEXT NOT NULL,
                        content TEXT NOT NULL,
                        created_at TEXT NOT NULL,
                        FOREIGN KEY (chat_id) REFERENCES chats (id)
                    )
                ''')
                conn.execute('CREATE INDEX IF NOT EXISTS idx_chats_user_id ON chats (user_id)')
                conn.execute('CREATE INDEX IF NOT EXISTS idx_messages_chat_id ON messages (chat_id)')

            self.logger.info("Chat database initialized successfully")

        except Exception as e:
            self.logger.error(f"Error initializing chat database: {e}")
            raise

    @staticmethod
    def _row_to_chat(row: sqlite3.Row, messages: Optional[List[ChatMessage]] = None) -> Chat:
        return Chat(
            id=row["id"],
            title=row["title"],
            mode=row["mode"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
            is_favorite=bool(row["is_favorite"]),
            messages=messages or [],
        )

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> ChatMessage:
        return ChatMessage(
            id=row["id"],
            content=row["content"],
            role=Role(row["role"]),
            created_at=parse_timestamp(row["created_at"]),
        )

    def _owned_chat_row(self, conn: sqlite3.Connection, user_id: str, chat_id: str) -> sqlite3.Row:
        row = conn.execute(
            'SELECT * FROM chats WHERE id = ? AND user_id = ?', (chat_id, user_id)
        ).fetchone()
        if row is None:
            raise ChatNotFoundError(chat_id)
        return row

    def _messages(self, conn: sqlite3.Connection, chat_id: str, limit: Optional[int] = None) -> List[ChatMessage]:
        query = 'SELECT * FROM messages WHERE chat_id = ? ORDER BY created_at ASC, seq ASC'
        params = (chat_id,)
        if limit is not None:
            query += ' LIMIT ?'
            params = (chat_id, limit)
        return [self._row_to_message(row) for row in conn.execute(query, params).fetchall()]

    def create_chat(self, user_id: str, title: str, mode: Optional[str] = None) -> Chat:
        now = format_timestamp(utc_now())
        chat_id = new_id()

        with self._connect() as conn:
            conn.execute(
                'INSERT INTO chats (id, user_id, title, mode, is_favorite, created_at, updated_at) '
                'VALUES (?, ?, ?, ?, 0, ?, ?)',
                (chat_id, user_id, title, normalize_mode(mode), now, now)
            )
            row = self._owned_chat_row(conn, user_id, chat_id)

        self.logger.info(f"Created chat {chat_id} for user {user_id}")
        return self._row_to_chat(row)

    def list_chats(self, user_id: str) -> List[Chat]:
        """Chats of a user, most recently updated first, each with its first message only"""
        with self._connect() as conn:
            rows = conn.execute(
                'SELECT * FROM chats WHERE user_id = ? ORDER BY updated_at DESC', (user_id,)
            ).fetchall()
            return [self._row_to_chat(row, self._messages(conn, row["id"], limit=1)) for row in rows]

    def get_chat(self, user_id: str, chat_id: str) -> Chat:
        with self._connect() as conn:
            row = self._owned_chat_row(conn, user_id, chat_id)
            return self._row_to_chat(row, self._messages(conn, chat_id))

    def update_chat(self, user_id: str, chat_id: str, title=UNSET, mode=UNSET, is_favorite=UNSET) -> Chat:
        """Update title, mode and/or favorite flag; only supplied fields change"""
        assignments = []
        params = []
        if title is not UNSET:
            assignments.append('title = ?')
            params.append(title)
        if mode is not UNSET:
            assignments.append('mode = ?')
            params.append(normalize_mode(mode))
        if is_favorite is not UNSET:
            assignments.append('is_favorite = ?')
            params.append(1 if is_favorite else 0)

        assignments.append('updated_at = ?')
        params.append(format_timestamp(utc_now()))

        with self._connect() as conn:
            self._owned_chat_row(conn, user_id, chat_id)
            conn.execute(
                f'UPDATE chats SET {", ".join(assignments)} WHERE id = ? AND user_id = ?',
                (*params, chat_id, user_id)
            )
            row = self._owned_chat_row(conn, user_id, chat_id)
            return self._row_to_chat(row)

    def delete_chat(self, user_id: str, chat_id: str) -> None:
        with self._connect() as conn:
            self._owned_chat_row(conn, user_id, chat_id)
            conn.execute('DELETE FROM messages WHERE chat_id = ?', (chat_id,))
            conn.execute('DELETE FROM chats WHERE id = ?', (chat_id,))

        self.logger.info(f"Deleted chat {chat_id}")

    def add_message(self, user_id: str, chat_id: str, role: Role, content: str) -> ChatMessage:
        """Persist a message and bump the chat's updated_at"""
        message = ChatMessage(id=new_id(), content=content, role=role, created_at=utc_now())
        created_at = format_timestamp(message.created_at)

        with self._connect() as conn:
            self._owned_chat_row(conn, user_id, chat_id)
            conn.execute(
                'INSERT INTO messages (id, chat_id, role, content, created_at) VALUES (?, ?, ?, ?, ?)',
                (message.id, chat_id, role.value, content, created_at)
            )
            conn.execute('UPDATE chats SET updated_at = ? WHERE id = ?', (created_at, chat_id))

        return message
