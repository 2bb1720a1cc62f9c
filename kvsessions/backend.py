"""
KVSessions - Key-value backing store on an embedded SQLite file.

Every bucket is a two-column table (``key TEXT PRIMARY KEY, value BLOB``)
inside one database file. Single-key operations each run in their own
transaction; ``update()`` groups several operations on one bucket into one
transaction.

Durability and file locking belong to SQLite. The adapter owns one
connection, shared by all requests, and serializes transactions on it
with an asyncio lock.
"""

from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

import aiosqlite

from .faults import BackingStoreFault, ConfigFault, StoreClosedFault

logger = logging.getLogger("kvsessions.backend")

__all__ = ["KVBackend", "BucketTransaction"]

_BUCKET_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _table(bucket: str) -> str:
    """Quote a bucket name for use as a table identifier."""
    if not _BUCKET_RE.match(bucket):
        raise ConfigFault(f"invalid bucket name {bucket!r}", field="bucket_name")
    return f'"{bucket}"'


class BucketTransaction:
    """
    Operations on one bucket inside an open transaction.

    Only valid inside ``KVBackend.update()``.
    """

    def __init__(self, connection: Any, bucket: str):
        self._connection = connection
        self._table = _table(bucket)
        self.bucket = bucket

    async def get(self, key: str) -> Optional[bytes]:
        cursor = await self._connection.execute(
            f"SELECT value FROM {self._table} WHERE key = ?", (key,)
        )
        row = await cursor.fetchone()
        await cursor.close()
        if row is None:
            return None
        return bytes(row[0])

    async def put(self, key: str, value: bytes) -> None:
        await self._connection.execute(
            f"INSERT INTO {self._table} (key, value) VALUES (?, ?) "
            f"ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, sqlite3.Binary(value)),
        )

    async def delete(self, key: str) -> None:
        await self._connection.execute(f"DELETE FROM {self._table} WHERE key = ?", (key,))


class KVBackend:
    """
    Embedded key-value store adapter.

    Example:
        >>> backend = KVBackend("./sessions.db")
        >>> await backend.open("sessions")
        >>> await backend.put("sessions", "abc", b"...")
        >>> await backend.get("sessions", "abc")
        b'...'
        >>> await backend.close()
    """

    def __init__(self, path: str):
        self.path = path
        self._connection: Any = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._connection is not None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def open(self, *buckets: str) -> None:
        """
        Open (or create) the database file and create missing buckets.

        Safe to call against an existing file; existing records are kept.

        Raises:
            BackingStoreFault: File cannot be opened or buckets created
        """
        if self._connection is not None:
            return
        tables = [_table(bucket) for bucket in buckets]

        try:
            connection = await aiosqlite.connect(self.path, isolation_level=None)
        except (sqlite3.Error, OSError) as e:
            raise BackingStoreFault("open", str(e)) from e

        try:
            await connection.execute("PRAGMA journal_mode=WAL")
            await connection.execute("PRAGMA busy_timeout=5000")
            for table in tables:
                await connection.execute(
                    f"CREATE TABLE IF NOT EXISTS {table} "
                    f"(key TEXT PRIMARY KEY NOT NULL, value BLOB NOT NULL) WITHOUT ROWID"
                )
        except (sqlite3.Error, OSError) as e:
            await connection.close()
            raise BackingStoreFault("open", str(e)) from e

        self._connection = connection
        logger.info(f"Session database opened: {self.path} (buckets: {', '.join(buckets)})")

    async def close(self) -> None:
        """
        Release the database handle.

        Later operations raise StoreClosedFault. Closing twice is a no-op.
        """
        async with self._lock:
            if self._connection is None:
                return
            connection, self._connection = self._connection, None
            try:
                await connection.close()
            except (sqlite3.Error, OSError) as e:
                raise BackingStoreFault("close", str(e)) from e
        logger.info(f"Session database closed: {self.path}")

    # ========================================================================
    # Transactions
    # ========================================================================

    @asynccontextmanager
    async def update(self, bucket: str, operation: str = "update") -> AsyncIterator[BucketTransaction]:
        """
        Run several operations on one bucket in a single write transaction.

        Commits when the block exits normally, rolls back otherwise.

        Example:
            >>> async with backend.update("sessions") as tx:
            ...     data = await tx.get(key)
            ...     await tx.delete(key)

        Raises:
            StoreClosedFault: Store is not open
            BackingStoreFault: Database error (transaction rolled back)
        """
        async with self._lock:
            connection = self._connection
            if connection is None:
                raise StoreClosedFault(operation)

            tx = BucketTransaction(connection, bucket)
            try:
                await connection.execute("BEGIN IMMEDIATE")
            except (sqlite3.Error, OSError) as e:
                raise BackingStoreFault(operation, str(e)) from e

            try:
                yield tx
            except (sqlite3.Error, OSError) as e:
                await self._rollback(connection)
                raise BackingStoreFault(operation, str(e)) from e
            except BaseException:
                await self._rollback(connection)
                raise

            try:
                await connection.execute("COMMIT")
            except (sqlite3.Error, OSError) as e:
                await self._rollback(connection)
                raise BackingStoreFault(operation, str(e)) from e

    @staticmethod
    async def _rollback(connection: Any) -> None:
        try:
            await connection.execute("ROLLBACK")
        except sqlite3.OperationalError:
            # No transaction is active when SQLite already rolled it back.
            pass

    # ========================================================================
    # Single-key operations
    # ========================================================================

    async def get(self, bucket: str, key: str) -> Optional[bytes]:
        """Point lookup. Returns None when the key is absent."""
        async with self.update(bucket, "get") as tx:
            return await tx.get(key)

    async def put(self, bucket: str, key: str, value: bytes) -> None:
        """Insert or replace the value stored under key."""
        async with self.update(bucket, "put") as tx:
            await tx.put(key, value)

    async def delete(self, bucket: str, key: str) -> None:
        """Remove key. Succeeds when the key does not exist."""
        async with self.update(bucket, "delete") as tx:
            await tx.delete(key)
