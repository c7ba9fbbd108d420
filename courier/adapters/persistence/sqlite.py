"""SQLite persistence adapter.

Implements PersistencePort using SQLite with aiosqlite for async access.
Each persisted record is one row in a key-value table, so every
set/remove is a single atomic statement.
"""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from courier.core.ports import PersistencePort

logger = logging.getLogger(__name__)


class SQLitePersistence(PersistencePort):
    """SQLite-backed key-value store with connection pooling and async access."""

    def __init__(self, db_path: str, pool_size: int = 5):
        """Initialize SQLite store with connection pooling.

        Args:
            db_path: Path to SQLite database file.
            pool_size: Number of connections to maintain in the pool.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._pool: list[aiosqlite.Connection] = []
        self._pool_lock = asyncio.Lock()
        self._schema_lock = asyncio.Lock()
        self._pool_size = pool_size
        self._schema_initialized = False

    async def _get_connection(self) -> aiosqlite.Connection:
        """Get a connection from the pool or create a new one."""
        async with self._pool_lock:
            if self._pool:
                return self._pool.pop()
        conn = await aiosqlite.connect(str(self.db_path))
        await conn.execute("PRAGMA journal_mode = WAL")
        return conn

    async def _return_connection(self, conn: aiosqlite.Connection) -> None:
        """Return a connection to the pool."""
        async with self._pool_lock:
            if len(self._pool) < self._pool_size:
                self._pool.append(conn)
                return
        await conn.close()

    async def close(self) -> None:
        """Close all pooled connections."""
        async with self._pool_lock:
            for conn in self._pool:
                await conn.close()
            self._pool.clear()

    async def _init_schema(self) -> None:
        """Initialize database schema on first use.

        Only runs once per instance. Subsequent calls are no-ops.
        """
        if self._schema_initialized:
            return
        async with self._schema_lock:
            # Check again after acquiring lock to prevent race
            if self._schema_initialized:
                return

            conn = await self._get_connection()
            try:
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS kv_store (
                        key TEXT PRIMARY KEY,
                        value TEXT NOT NULL,
                        updated_at TIMESTAMP NOT NULL
                    )
                    """
                )
                await conn.commit()
                self._schema_initialized = True
                logger.debug(f"Initialized key-value schema in {self.db_path}")
            finally:
                await self._return_connection(conn)

    async def get(self, key: str) -> str | None:
        """Read the value stored under a key."""
        await self._init_schema()

        conn = await self._get_connection()
        try:
            cursor = await conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return row[0]
        finally:
            await self._return_connection(conn)

    async def set(self, key: str, value: str) -> None:
        """Create or replace the value under a key."""
        await self._init_schema()

        conn = await self._get_connection()
        try:
            await conn.execute(
                """
                INSERT OR REPLACE INTO kv_store (key, value, updated_at)
                VALUES (?, ?, ?)
                """,
                (key, value, datetime.now(timezone.utc).isoformat()),
            )
            await conn.commit()
        finally:
            await self._return_connection(conn)

    async def remove(self, key: str) -> None:
        """Delete a key if present."""
        await self._init_schema()

        conn = await self._get_connection()
        try:
            await conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
            await conn.commit()
        finally:
            await self._return_connection(conn)

    async def keys(self) -> list[str]:
        """Return every stored key, sorted."""
        await self._init_schema()

        conn = await self._get_connection()
        try:
            cursor = await conn.execute("SELECT key FROM kv_store ORDER BY key")
            rows = await cursor.fetchall()
            return [row[0] for row in rows]
        finally:
            await self._return_connection(conn)
