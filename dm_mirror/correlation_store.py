from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from threading import RLock
from typing import Optional

from .errors import DuplicateKey, NotFound, StoreFailure
from .logger_factory import get_logger
from .utils.logfmt import kv

_SCHEMA = (
    "CREATE TABLE IF NOT EXISTS messages ("
    "original_id TEXT PRIMARY KEY, "
    "mirror_id TEXT, "
    "author_id TEXT, "
    "content TEXT)"
)


@dataclass(frozen=True)
class CorrelationRecord:
    original_id: str
    mirror_id: str
    author_id: str
    content: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CorrelationRecord":
        return cls(
            original_id=row["original_id"],
            mirror_id=row["mirror_id"],
            author_id=row["author_id"],
            content=row["content"] or "",
        )


class CorrelationStore:
    """Durable original_id -> mirror mapping kept in the profile's SQLite file.

    Each public coroutine touches a single key. The blocking sqlite3 calls run in a
    worker thread; the connection is shared across those threads and serialized by
    a lock.
    """

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn
        self._conn.row_factory = sqlite3.Row
        self._lock = RLock()
        self.log = get_logger("CorrelationStore")

    @classmethod
    def open(cls, path: str | Path) -> "CorrelationStore":
        p = Path(path)
        if str(p) != ":memory:":
            p.parent.mkdir(parents=True, exist_ok=True)
        try:
            # check_same_thread=False because calls arrive via asyncio.to_thread
            conn = sqlite3.connect(str(p), check_same_thread=False)
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute(_SCHEMA)
            conn.commit()
        except sqlite3.Error as e:
            raise StoreFailure(f"cannot open store at {p}: {e}") from e
        store = cls(conn)
        store.log.info(f"store-open {kv(path=str(p))}")
        return store

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Blocking helpers (run in a worker thread)
    # ------------------------------------------------------------------
    def _put_sync(self, original_id: str, mirror_id: str, author_id: str, content: str) -> None:
        with self._lock:
            try:
                with self._conn:
                    self._conn.execute(
                        "INSERT INTO messages (original_id, mirror_id, author_id, content) VALUES (?, ?, ?, ?)",
                        (original_id, mirror_id, author_id, content),
                    )
            except sqlite3.IntegrityError as e:
                raise DuplicateKey(original_id) from e
            except sqlite3.Error as e:
                raise StoreFailure(f"put {original_id}: {e}") from e

    def _get_sync(self, column: str, value: str) -> Optional[CorrelationRecord]:
        with self._lock:
            try:
                row = self._conn.execute(
                    f"SELECT original_id, mirror_id, author_id, content FROM messages WHERE {column} = ?",
                    (value,),
                ).fetchone()
            except sqlite3.Error as e:
                raise StoreFailure(f"get {column}={value}: {e}") from e
        return CorrelationRecord.from_row(row) if row is not None else None

    def _update_content_sync(self, original_id: str, content: str) -> None:
        with self._lock:
            try:
                with self._conn:
                    cur = self._conn.execute(
                        "UPDATE messages SET content = ? WHERE original_id = ?",
                        (content, original_id),
                    )
            except sqlite3.Error as e:
                raise StoreFailure(f"update {original_id}: {e}") from e
        if cur.rowcount == 0:
            raise NotFound(original_id)

    def _delete_sync(self, column: str, value: str) -> int:
        with self._lock:
            try:
                with self._conn:
                    cur = self._conn.execute(f"DELETE FROM messages WHERE {column} = ?", (value,))
            except sqlite3.Error as e:
                raise StoreFailure(f"delete {column}={value}: {e}") from e
        return cur.rowcount

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def put(self, original_id: str, mirror_id: str, author_id: str, content: str) -> None:
        """Insert a new record. Raises DuplicateKey when original_id is already mapped."""
        await asyncio.to_thread(self._put_sync, str(original_id), str(mirror_id), str(author_id), content or "")

    async def get_by_original_id(self, original_id: str) -> Optional[CorrelationRecord]:
        return await asyncio.to_thread(self._get_sync, "original_id", str(original_id))

    async def get_by_mirror_id(self, mirror_id: str) -> Optional[CorrelationRecord]:
        return await asyncio.to_thread(self._get_sync, "mirror_id", str(mirror_id))

    async def update_content(self, original_id: str, content: str) -> None:
        """Replace the stored body. Raises NotFound when no record exists."""
        await asyncio.to_thread(self._update_content_sync, str(original_id), content or "")

    async def delete_by_original_id(self, original_id: str) -> bool:
        """Remove the record if present. Returns whether a row was removed; absent keys are a no-op."""
        removed = await asyncio.to_thread(self._delete_sync, "original_id", str(original_id))
        return removed > 0

    async def delete_by_mirror_id(self, mirror_id: str) -> bool:
        removed = await asyncio.to_thread(self._delete_sync, "mirror_id", str(mirror_id))
        return removed > 0
