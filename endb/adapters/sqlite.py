"""
SQLite adapter.

Uses aiosqlite for async SQLite access.
WAL mode enabled for file databases.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Sequence

import aiosqlite

from endb.adapters.base import DEFAULT_NAMESPACE, ErrorHandler
from endb.adapters.sql import DEFAULT_KEY_SIZE, DEFAULT_TABLE, SQLAdapter

logger = logging.getLogger(__name__)

DEFAULT_URI = "sqlite://:memory:"
MEMORY = ":memory:"


def sqlite_path(uri: str) -> str:
    """
    Extract the database path from a sqlite URI.

        sqlite://:memory:        → :memory:
        sqlite:///abs/path.db    → /abs/path.db
        sqlite://relative.db     → relative.db
    """
    path = uri.split(":", 1)[1] if uri.lower().startswith("sqlite:") else uri
    if path.startswith("//"):
        path = path[2:]
    return path or MEMORY


class AiosqliteConnection:
    """SQLConnection over one aiosqlite connection."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db
        self._closed = False

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        cursor = await self._db.execute(sql, tuple(params))
        try:
            rowcount = cursor.rowcount
        finally:
            await cursor.close()
        await self._db.commit()
        return rowcount

    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
        async with self._db.execute(sql, tuple(params)) as cursor:
            rows = await cursor.fetchall()
        return [tuple(row) for row in rows]

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._db.close()

    @property
    def is_closed(self) -> bool:
        return self._closed

    def is_disconnect(self, error: BaseException) -> bool:
        return isinstance(error, (OSError, aiosqlite.ProgrammingError)) and (
            "closed" in str(error).lower()
        )


class SQLiteAdapter(SQLAdapter):
    """
    SQLite-backed key-value adapter.

    Usage:
        adapter = SQLiteAdapter("sqlite://~/.endb/data.db", namespace="app")
        await adapter.set("app:name", '"Alex"')
        await adapter.close()
    """

    def __init__(
        self,
        uri: str = DEFAULT_URI,
        namespace: str = DEFAULT_NAMESPACE,
        table: str = DEFAULT_TABLE,
        key_size: int = DEFAULT_KEY_SIZE,
        busy_timeout: int | None = None,
        on_error: ErrorHandler | None = None,
    ) -> None:
        self.uri = uri
        self.path = sqlite_path(uri)
        self.busy_timeout = busy_timeout
        super().__init__(
            "sqlite",
            self._open,
            namespace=namespace,
            table=table,
            key_size=key_size,
            on_error=on_error,
        )

    async def _open(self) -> AiosqliteConnection:
        path = self.path
        if path != MEMORY:
            db_path = Path(path).expanduser()
            # Ensure directory exists
            db_path.parent.mkdir(parents=True, exist_ok=True)
            path = str(db_path)

        db = await aiosqlite.connect(path)
        try:
            if self.busy_timeout is not None:
                await db.execute(f"PRAGMA busy_timeout = {int(self.busy_timeout)}")
            if path != MEMORY:
                await db.execute("PRAGMA journal_mode=WAL")
        except Exception:
            await db.close()
            raise

        logger.debug(f"SQLite database opened at {path}")
        return AiosqliteConnection(db)
