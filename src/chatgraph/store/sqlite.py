"""SQLite persistence for conversations and links.

One connection is shared by both stores. Messages, tags, context settings
and link metadata are stored as JSON columns; everything the services query
on (ids, endpoints, link type) gets its own indexed column.
"""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from chatgraph.exceptions import NotFoundError, StorageError
from chatgraph.models import Conversation, Link
from chatgraph.store.base import ConversationStore, LinkStore


@contextmanager
def _wrap_errors(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as e:
        raise StorageError(f"SQLite {action} failed: {e}") from e


class SQLiteStore:
    """Owns the SQLite connection and hands out the two store views."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None
        self.conversations = SQLiteConversationStore(self)
        self.links = SQLiteLinkStore(self)

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with _wrap_errors("connect"):
                self._conn = sqlite3.connect(str(self.db_path))
                self._conn.row_factory = sqlite3.Row
                self._conn.execute("PRAGMA journal_mode=WAL")
                self._create_tables()
        return self._conn

    def _create_tables(self) -> None:
        conn = self._conn
        assert conn is not None
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS conversations (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                model TEXT NOT NULL,
                created_at REAL NOT NULL,
                updated_at REAL NOT NULL,
                parent_id TEXT,
                folder_id TEXT,
                is_archived INTEGER NOT NULL DEFAULT 0,
                is_favorite INTEGER NOT NULL DEFAULT 0,
                tags TEXT NOT NULL DEFAULT '[]',
                context TEXT,
                messages TEXT NOT NULL DEFAULT '[]',
                seq INTEGER NOT NULL
            );

            -- No foreign keys: links may outlive their conversations
            CREATE TABLE IF NOT EXISTS links (
                id TEXT PRIMARY KEY,
                source_id TEXT NOT NULL,
                target_id TEXT NOT NULL,
                type TEXT NOT NULL,
                fork_message_id TEXT,
                created_at REAL NOT NULL,
                metadata TEXT,
                seq INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_links_source ON links(source_id);
            CREATE INDEX IF NOT EXISTS idx_links_target ON links(target_id);
            CREATE INDEX IF NOT EXISTS idx_conversations_parent ON conversations(parent_id);
        """)
        conn.commit()

    def execute(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        conn = self._get_conn()
        with _wrap_errors("query"):
            return conn.execute(sql, params).fetchall()

    def write(self, sql: str, params: tuple = ()) -> None:
        conn = self._get_conn()
        with _wrap_errors("write"):
            conn.execute(sql, params)
            conn.commit()

    def next_seq(self, table: str) -> int:
        row = self.execute(f"SELECT COALESCE(MAX(seq), 0) + 1 AS n FROM {table}")
        return row[0]["n"]

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


class SQLiteConversationStore(ConversationStore):
    def __init__(self, db: SQLiteStore) -> None:
        self.db = db

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Conversation:
        return Conversation.model_validate({
            "id": row["id"],
            "title": row["title"],
            "model": row["model"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
            "parent_id": row["parent_id"],
            "folder_id": row["folder_id"],
            "is_archived": bool(row["is_archived"]),
            "is_favorite": bool(row["is_favorite"]),
            "tags": json.loads(row["tags"]),
            "context": json.loads(row["context"]) if row["context"] else None,
            "messages": json.loads(row["messages"]),
        })

    async def get(self, conversation_id: str) -> Conversation | None:
        rows = self.db.execute(
            "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
        )
        return self._from_row(rows[0]) if rows else None

    async def save(self, conversation: Conversation) -> None:
        data = conversation.model_dump(mode="json")
        existing = self.db.execute(
            "SELECT seq FROM conversations WHERE id = ?", (conversation.id,)
        )
        seq = existing[0]["seq"] if existing else self.db.next_seq("conversations")
        self.db.write(
            """INSERT OR REPLACE INTO conversations
               (id, title, model, created_at, updated_at, parent_id, folder_id,
                is_archived, is_favorite, tags, context, messages, seq)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                data["id"], data["title"], data["model"],
                data["created_at"], data["updated_at"],
                data["parent_id"], data["folder_id"],
                int(data["is_archived"]), int(data["is_favorite"]),
                json.dumps(data["tags"]),
                json.dumps(data["context"]) if data["context"] else None,
                json.dumps(data["messages"]),
                seq,
            ),
        )

    async def update(self, conversation_id: str, changes: dict[str, Any]) -> None:
        current = await self.get(conversation_id)
        if current is None:
            raise NotFoundError("conversation", conversation_id)
        data = current.model_dump()
        data.update(changes)
        await self.save(Conversation.model_validate(data))

    async def list(self) -> list[Conversation]:
        rows = self.db.execute("SELECT * FROM conversations ORDER BY seq")
        return [self._from_row(r) for r in rows]

    async def delete(self, conversation_id: str) -> None:
        self.db.write("DELETE FROM conversations WHERE id = ?", (conversation_id,))


class SQLiteLinkStore(LinkStore):
    def __init__(self, db: SQLiteStore) -> None:
        self.db = db

    @staticmethod
    def _from_row(row: sqlite3.Row) -> Link:
        return Link.model_validate({
            "id": row["id"],
            "source_id": row["source_id"],
            "target_id": row["target_id"],
            "type": row["type"],
            "fork_message_id": row["fork_message_id"],
            "created_at": row["created_at"],
            "metadata": json.loads(row["metadata"]) if row["metadata"] else None,
        })

    def _select(self, where: str, params: tuple) -> list[Link]:
        rows = self.db.execute(f"SELECT * FROM links WHERE {where} ORDER BY seq", params)
        return [self._from_row(r) for r in rows]

    async def get(self, link_id: str) -> Link | None:
        found = self._select("id = ?", (link_id,))
        return found[0] if found else None

    async def save(self, link: Link) -> None:
        data = link.model_dump(mode="json")
        self.db.write(
            """INSERT OR REPLACE INTO links
               (id, source_id, target_id, type, fork_message_id, created_at, metadata, seq)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                data["id"], data["source_id"], data["target_id"], data["type"],
                data["fork_message_id"], data["created_at"],
                json.dumps(data["metadata"]) if data["metadata"] else None,
                self.db.next_seq("links"),
            ),
        )

    async def delete(self, link_id: str) -> None:
        self.db.write("DELETE FROM links WHERE id = ?", (link_id,))

    async def by_conversation(self, conversation_id: str) -> list[Link]:
        return self._select(
            "source_id = ? OR target_id = ?", (conversation_id, conversation_id)
        )

    async def by_source(self, conversation_id: str) -> list[Link]:
        return self._select("source_id = ?", (conversation_id,))

    async def by_target(self, conversation_id: str) -> list[Link]:
        return self._select("target_id = ?", (conversation_id,))
