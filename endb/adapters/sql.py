"""
Dialect-agnostic relational adapter.

One implementation of the adapter contract for every relational engine.
Engine differences live in a table of Dialect descriptors:

    dialect   quoting   placeholders   upsert
    sqlite    "ident"   ?              INSERT ... ON CONFLICT (key) DO UPDATE
    postgres  "ident"   $1, $2         INSERT ... ON CONFLICT (key) DO UPDATE
    mysql     `ident`   %s             INSERT ... ON DUPLICATE KEY UPDATE

Statements are rendered once when the adapter is built. The concrete
integrations (sqlite.py, postgres.py, mysql.py) only supply a connect
factory returning a SQLConnection.

Table:
    key    VARCHAR(key_size)  PK
    value  TEXT               serialized value, opaque to the engine
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol, Sequence

from endb.adapters.base import (
    DEFAULT_NAMESPACE,
    Adapter,
    Element,
    ErrorHandler,
    SharedAttempt,
)
from endb.core.errors import (
    BackendConnectionError,
    ConfigError,
    KeyTooLongError,
    StorageError,
)

logger = logging.getLogger(__name__)

DEFAULT_TABLE = "endb"
DEFAULT_KEY_SIZE = 255

# LIKE escape character; portable across engines, unlike backslash in MySQL
LIKE_ESCAPE = "!"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Dialects
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class PlaceholderStyle(str, Enum):
    """How a driver expects bound parameters to be written."""

    QMARK = "qmark"  # ?
    FORMAT = "format"  # %s
    NUMERIC = "numeric"  # $1, $2


@dataclass(frozen=True, slots=True)
class Dialect:
    """Static per-engine SQL metadata."""

    name: str
    quote: str
    placeholder: PlaceholderStyle
    upsert: str
    scheme: str
    value_type: str = "TEXT"

    def ident(self, name: str) -> str:
        """Quote an identifier, doubling any embedded quote characters."""
        return f"{self.quote}{name.replace(self.quote, self.quote * 2)}{self.quote}"

    def params(self, count: int) -> list[str]:
        """Placeholder tokens for ``count`` positional parameters."""
        if self.placeholder is PlaceholderStyle.NUMERIC:
            return [f"${i}" for i in range(1, count + 1)]
        token = "?" if self.placeholder is PlaceholderStyle.QMARK else "%s"
        return [token] * count


DIALECTS: dict[str, Dialect] = {
    "sqlite": Dialect(
        name="sqlite",
        quote='"',
        placeholder=PlaceholderStyle.QMARK,
        upsert=(
            "INSERT INTO {table} ({key}, {value}) VALUES ({p1}, {p2}) "
            "ON CONFLICT ({key}) DO UPDATE SET {value} = excluded.{value}"
        ),
        scheme="sqlite",
    ),
    "postgres": Dialect(
        name="postgres",
        quote='"',
        placeholder=PlaceholderStyle.NUMERIC,
        upsert=(
            "INSERT INTO {table} ({key}, {value}) VALUES ({p1}, {p2}) "
            "ON CONFLICT ({key}) DO UPDATE SET {value} = EXCLUDED.{value}"
        ),
        scheme="postgresql",
    ),
    "mysql": Dialect(
        name="mysql",
        quote="`",
        placeholder=PlaceholderStyle.FORMAT,
        upsert=(
            "INSERT INTO {table} ({key}, {value}) VALUES ({p1}, {p2}) "
            "ON DUPLICATE KEY UPDATE {value} = VALUES({value})"
        ),
        scheme="mysql",
    ),
}


def get_dialect(name: str | Dialect) -> Dialect:
    if isinstance(name, Dialect):
        return name
    try:
        return DIALECTS[name]
    except KeyError:
        available = ", ".join(DIALECTS)
        raise ConfigError(
            f"Unknown SQL dialect '{name}'. Available: {available}"
        ) from None


@dataclass(frozen=True, slots=True)
class Statements:
    """Every statement the adapter issues, rendered for one dialect/table."""

    create_table: str
    select: str
    exists: str
    upsert: str
    delete: str
    select_prefix: str
    delete_prefix: str


def build_statements(dialect: Dialect, table: str, key_size: int) -> Statements:
    t = dialect.ident(table)
    k = dialect.ident("key")
    v = dialect.ident("value")
    p1, p2 = dialect.params(2)
    like = f"{k} LIKE {p1} ESCAPE '{LIKE_ESCAPE}'"

    return Statements(
        create_table=(
            f"CREATE TABLE IF NOT EXISTS {t} "
            f"({k} VARCHAR({int(key_size)}) PRIMARY KEY, {v} {dialect.value_type})"
        ),
        select=f"SELECT {v} FROM {t} WHERE {k} = {p1}",
        exists=f"SELECT 1 FROM {t} WHERE {k} = {p1}",
        upsert=dialect.upsert.format(table=t, key=k, value=v, p1=p1, p2=p2),
        delete=f"DELETE FROM {t} WHERE {k} = {p1}",
        select_prefix=f"SELECT {k}, {v} FROM {t} WHERE {like}",
        delete_prefix=f"DELETE FROM {t} WHERE {like}",
    )


def like_prefix(prefix: str) -> str:
    """LIKE pattern matching every key that starts with ``prefix``."""
    escaped = (
        prefix.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", f"{LIKE_ESCAPE}%")
        .replace("_", f"{LIKE_ESCAPE}_")
    )
    return f"{escaped}%"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Connection boundary
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class SQLConnection(Protocol):
    """What the adapter needs from a driver."""

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a statement and return the affected-row count."""
        ...

    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
        """Run a query and return its rows."""
        ...

    async def close(self) -> None: ...

    @property
    def is_closed(self) -> bool: ...

    def is_disconnect(self, error: BaseException) -> bool:
        """True if ``error`` means the connection itself is gone."""
        ...


ConnectFactory = Callable[[], Awaitable[SQLConnection]]


def _is_already_exists(error: BaseException) -> bool:
    return "already exists" in str(error).lower()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Adapter
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class SQLAdapter(Adapter):
    """
    Relational key-value adapter over a (dialect, connect factory) pair.

    The connection is opened lazily on first use, exactly once even under
    concurrent first calls, and the table is created on that connection.
    A failed CREATE TABLE is fatal for the adapter; a failed connect is
    reported and retried on the next call.

    Usage:
        adapter = SQLAdapter("sqlite", open_connection, namespace="app")
        await adapter.set("app:theme", '"dark"')
        await adapter.get("app:theme")   # '"dark"'
        await adapter.close()
    """

    def __init__(
        self,
        dialect: str | Dialect,
        connect: ConnectFactory,
        namespace: str = DEFAULT_NAMESPACE,
        table: str = DEFAULT_TABLE,
        key_size: int = DEFAULT_KEY_SIZE,
        on_error: ErrorHandler | None = None,
    ) -> None:
        super().__init__(namespace, on_error)
        if not isinstance(key_size, int) or key_size <= 0:
            raise ConfigError(f"key_size must be a positive integer, got {key_size!r}")
        if not table:
            raise ConfigError("table must be a non-empty string")

        self.dialect = get_dialect(dialect)
        self.table = table
        self.key_size = key_size
        self.statements = build_statements(self.dialect, table, key_size)

        self._connect = connect
        self._conn: SQLConnection | None = None
        self._connecting: SharedAttempt[SQLConnection] = SharedAttempt(self._open_connection)
        self._fatal: StorageError | None = None

    # ━━━ Connection ━━━

    async def connect(self) -> None:
        await self._connection()

    async def _connection(self) -> SQLConnection:
        conn = self._usable()
        if conn is not None:
            return conn
        return await self._connecting()

    async def _open_connection(self) -> SQLConnection:
        """Connect and create the table. Runs once for all concurrent callers."""
        self._conn = None
        try:
            conn = await self._connect()
        except Exception as e:
            error = BackendConnectionError(
                f"Failed to connect to {self.dialect.name}: {e}",
                details=self._details(),
            )
            self.report_error(error)
            raise error from e

        try:
            await conn.execute(self.statements.create_table)
        except Exception as e:
            if not _is_already_exists(e):
                await self._close_quietly(conn)
                self._fatal = StorageError(
                    f"Failed to create table '{self.table}' on "
                    f"{self.dialect.name}: {e}",
                    details=self._details(),
                )
                self.report_error(self._fatal)
                raise self._fatal from e
            logger.debug(f"Table '{self.table}' already exists")

        self._conn = conn
        logger.debug(
            f"{self.dialect.name} adapter connected (table={self.table}, "
            f"namespace={self.namespace})"
        )
        return conn

    def _usable(self) -> SQLConnection | None:
        if self._fatal is not None:
            raise self._fatal
        if self._conn is not None and not self._conn.is_closed:
            return self._conn
        return None

    async def close(self) -> None:
        await self._connecting.wait()
        conn, self._conn = self._conn, None
        if conn is not None:
            await conn.close()
            logger.debug(f"{self.dialect.name} adapter closed")

    async def _discard(self, conn: SQLConnection) -> None:
        """Forget a connection that stopped working and release it."""
        if self._conn is conn:
            self._conn = None
        await self._close_quietly(conn)

    @staticmethod
    async def _close_quietly(conn: SQLConnection) -> None:
        try:
            await conn.close()
        except Exception as e:
            logger.debug(f"Ignoring error while closing connection: {e}")

    # ━━━ Contract ━━━

    async def get(self, key: str) -> Any | None:
        if not self._fits(key):
            return None
        rows = await self._fetch(self.statements.select, (key,), key)
        return rows[0][0] if rows else None

    async def set(self, key: str, value: Any) -> None:
        self._check_key(key)
        await self._execute(self.statements.upsert, (key, value), key)

    async def has(self, key: str) -> bool:
        if not self._fits(key):
            return False
        rows = await self._fetch(self.statements.exists, (key,), key)
        return bool(rows)

    async def delete(self, key: str) -> bool:
        if not self._fits(key):
            return False
        count = await self._execute(self.statements.delete, (key,), key)
        return count > 0

    async def clear(self) -> None:
        await self._execute(self.statements.delete_prefix, (like_prefix(self.key_prefix),))

    async def all(self) -> list[Element[Any]]:
        rows = await self._fetch(
            self.statements.select_prefix, (like_prefix(self.key_prefix),)
        )
        return [Element(row[0], row[1]) for row in rows]

    # ━━━ Internals ━━━

    def _fits(self, key: str) -> bool:
        """False for keys that cannot be stored, so reads skip the query."""
        if len(key) <= self.key_size:
            return True
        logger.debug(
            f"Key of {len(key)} characters exceeds key_size {self.key_size} "
            f"of table '{self.table}'; treating it as absent"
        )
        return False

    def _check_key(self, key: str) -> None:
        if len(key) > self.key_size:
            raise KeyTooLongError(
                f"Key is too long: {len(key)} characters, table "
                f"'{self.table}' allows {self.key_size}",
                key=key,
                key_size=self.key_size,
                details=self._details(key),
            )

    async def _execute(self, sql: str, params: Sequence[Any], key: str | None = None) -> int:
        conn = await self._connection()
        try:
            return await conn.execute(sql, params)
        except Exception as e:
            raise await self._translate(e, conn, key) from e

    async def _fetch(self, sql: str, params: Sequence[Any], key: str | None = None) -> list[tuple]:
        conn = await self._connection()
        try:
            return await conn.fetch(sql, params)
        except Exception as e:
            raise await self._translate(e, conn, key) from e

    async def _translate(
        self, error: Exception, conn: SQLConnection, key: str | None
    ) -> StorageError:
        details = self._details(key)
        if conn.is_closed or conn.is_disconnect(error):
            await self._discard(conn)
            lost = BackendConnectionError(
                f"Connection to {self.dialect.name} lost: {error}", details=details
            )
            self.report_error(lost)
            return lost
        return StorageError(f"{self.dialect.name} query failed: {error}", details=details)

    def _details(self, key: str | None = None) -> dict[str, Any]:
        details: dict[str, Any] = {
            "dialect": self.dialect.name,
            "table": self.table,
            "namespace": self.namespace,
        }
        if key is not None:
            details["key"] = key
        return details

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} dialect={self.dialect.name} "
            f"table={self.table!r} namespace={self.namespace!r}>"
        )
