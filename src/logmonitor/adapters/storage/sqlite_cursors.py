"""SQLite storage adapter for reader cursors."""

import asyncio
import sqlite3
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiosqlite

from logmonitor.core.errors import StorageError

_CURSORS_SCHEMA = """
CREATE TABLE IF NOT EXISTS cursors (
    source TEXT PRIMARY KEY,
    cursor TEXT NOT NULL,
    updated REAL NOT NULL
);
"""

_SELECT_CURSOR = """
SELECT cursor FROM cursors WHERE source = ?
"""

_UPSERT_CURSOR = """
INSERT INTO cursors (source, cursor, updated) VALUES (?, ?, ?)
ON CONFLICT(source) DO UPDATE SET cursor = excluded.cursor, updated = excluded.updated
"""

_DELETE_CURSOR = """
DELETE FROM cursors WHERE source = ?
"""

_MEMORY = ":memory:"


class SQLiteCursorStore:
    """SQLite implementation of CursorStorePort.

    Uses aiosqlite for non-blocking access and WAL mode for file databases,
    opening one connection per operation. For :memory: databases a
    persistent connection is kept, since in-memory databases are
    connection-scoped in SQLite.

    All sqlite3 failures surface as StorageError.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._initialized = False
        self._init_lock: asyncio.Lock | None = None
        self._persistent_conn: aiosqlite.Connection | None = None

    @property
    def db_path(self) -> str:
        return self._db_path

    def _get_lock(self) -> asyncio.Lock:
        # Created lazily so the store can be built outside a running loop
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        return self._init_lock

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        async with self._get_lock():
            if self._initialized:
                return
            if self._db_path == _MEMORY:
                self._persistent_conn = await aiosqlite.connect(_MEMORY)
                await self._persistent_conn.executescript(_CURSORS_SCHEMA)
            else:
                async with aiosqlite.connect(self._db_path) as db:
                    await db.execute("PRAGMA journal_mode=WAL")
                    await db.executescript(_CURSORS_SCHEMA)
            self._initialized = True

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[aiosqlite.Connection]:
        try:
            await self._ensure_initialized()
            if self._persistent_conn is not None:
                yield self._persistent_conn
                return
            async with aiosqlite.connect(self._db_path) as db:
                yield db
        except sqlite3.Error as e:
            raise StorageError(f"cursor store {self._db_path}: {e}") from e

    async def load(self, source: str) -> str | None:
        """Return the saved cursor for a source, or None."""
        async with self._connection() as db:
            async with db.execute(_SELECT_CURSOR, (source,)) as cursor:
                row = await cursor.fetchone()
        return None if row is None else str(row[0])

    async def save(self, source: str, cursor: str) -> None:
        """Persist the cursor for a source, replacing any previous one."""
        async with self._connection() as db:
            await db.execute(_UPSERT_CURSOR, (source, cursor, time.time()))
            await db.commit()

    async def delete(self, source: str) -> None:
        """Forget the cursor for a source. Unknown sources are ignored."""
        async with self._connection() as db:
            await db.execute(_DELETE_CURSOR, (source,))
            await db.commit()

    async def close(self) -> None:
        """Close the persistent connection (for :memory: databases)."""
        if self._persistent_conn is not None:
            await self._persistent_conn.close()
            self._persistent_conn = None
            self._initialized = False
