"""Thread-keyed, append-only conversation history stores."""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from shop_agent.errors import StorageError, ThreadNotFound
from shop_agent.types import Message


class ConversationStore(Protocol):
    """Persistence contract for thread histories.

    `load` raises `ThreadNotFound` for an id that has never been committed and
    `StorageError` when the backend fails. `append` either stores every given
    message after the existing ones or stores none and raises `StorageError`.
    """

    def load(self, thread_id: str) -> list[Message]:
        """Full ordered history of `thread_id`."""

    def append(self, thread_id: str, messages: Sequence[Message]) -> None:
        """Atomically append `messages` to `thread_id`."""


class InMemoryConversationStore:
    """Process-local store used in tests and when no database is configured."""

    def __init__(self) -> None:
        self._threads: dict[str, tuple[Message, ...]] = {}
        self._lock = threading.Lock()

    def load(self, thread_id: str) -> list[Message]:
        with self._lock:
            messages = self._threads.get(thread_id)
        if messages is None:
            raise ThreadNotFound(thread_id)
        return list(messages)

    def append(self, thread_id: str, messages: Sequence[Message]) -> None:
        if not messages:
            return
        with self._lock:
            self._threads[thread_id] = self._threads.get(thread_id, ()) + tuple(messages)

    def thread_ids(self) -> list[str]:
        with self._lock:
            return list(self._threads)


class SqliteConversationStore:
    """SQLite checkpoint log: one row per message, ordered by `seq`."""

    def __init__(self, path: str | Path, *, timeout: float = 5.0) -> None:
        self._path = Path(path)
        self._timeout = timeout
        self._ensure_table()

    def load(self, thread_id: str) -> list[Message]:
        try:
            conn = self._connect()
            try:
                rows = conn.execute(
                    "SELECT payload FROM messages WHERE thread_id = ? ORDER BY seq",
                    (thread_id,),
                ).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to load thread {thread_id}: {exc}") from exc

        if not rows:
            raise ThreadNotFound(thread_id)
        try:
            return [Message.model_validate_json(row[0]) for row in rows]
        except ValidationError as exc:
            raise StorageError(f"Corrupt message record in thread {thread_id}") from exc

    def append(self, thread_id: str, messages: Sequence[Message]) -> None:
        if not messages:
            return
        conn = None
        try:
            conn = self._connect()
            conn.execute("BEGIN IMMEDIATE")
            (last_seq,) = conn.execute(
                "SELECT COALESCE(MAX(seq), -1) FROM messages WHERE thread_id = ?",
                (thread_id,),
            ).fetchone()
            conn.executemany(
                "INSERT INTO messages(thread_id, seq, payload) VALUES(?, ?, ?)",
                [
                    (thread_id, last_seq + offset, message.model_dump_json())
                    for offset, message in enumerate(messages, start=1)
                ],
            )
            conn.execute("COMMIT")
        except sqlite3.Error as exc:
            if conn is not None and conn.in_transaction:
                conn.execute("ROLLBACK")
            raise StorageError(f"Failed to append to thread {thread_id}: {exc}") from exc
        finally:
            if conn is not None:
                conn.close()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._path, timeout=self._timeout, isolation_level=None)

    def _ensure_table(self) -> None:
        conn = self._connect()
        try:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS messages ("
                "thread_id TEXT NOT NULL, "
                "seq INTEGER NOT NULL, "
                "payload TEXT NOT NULL, "
                "PRIMARY KEY (thread_id, seq))"
            )
        finally:
            conn.close()
