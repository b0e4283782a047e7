"""Shared test fixtures for Endb."""

from __future__ import annotations

import asyncio
import re
from collections import defaultdict
from types import SimpleNamespace
from typing import Any, Sequence

import pytest
import pytest_asyncio

from endb.adapters.memory import MemoryAdapter
from endb.adapters.sql import SQLAdapter
from endb.adapters.sqlite import SQLiteAdapter
from endb.core.bus import EventBus
from endb.core.config import EndbOptions
from endb.core.registry import AdapterRegistry
from endb.facade import Endb


class RecordingConnection:
    """SQLConnection double that records every statement it is given."""

    def __init__(
        self,
        rows: list[tuple] | None = None,
        rowcount: int = 1,
        fail_on: str | None = None,
        error: Exception | None = None,
    ) -> None:
        self.statements: list[tuple[str, tuple]] = []
        self.rows = rows or []
        self.rowcount = rowcount
        self.fail_on = fail_on
        self.error = error or RuntimeError("statement failed")
        self.closed = False
        self.disconnected = False

    async def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        await asyncio.sleep(0)
        self.statements.append((sql, tuple(params)))
        self._maybe_fail(sql)
        return self.rowcount

    async def fetch(self, sql: str, params: Sequence[Any] = ()) -> list[tuple]:
        await asyncio.sleep(0)
        self.statements.append((sql, tuple(params)))
        self._maybe_fail(sql)
        return list(self.rows)

    async def close(self) -> None:
        self.closed = True

    @property
    def is_closed(self) -> bool:
        return self.closed

    def is_disconnect(self, error: BaseException) -> bool:
        return self.disconnected

    def _maybe_fail(self, sql: str) -> None:
        if self.fail_on is not None and sql.startswith(self.fail_on):
            raise self.error

    def sql(self) -> list[str]:
        return [statement for statement, _ in self.statements]


class ConnectCounter:
    """Async connect factory that hands out one RecordingConnection per call."""

    def __init__(self, **connection_kwargs: Any) -> None:
        self.calls = 0
        self.connections: list[RecordingConnection] = []
        self.connection_kwargs = connection_kwargs

    async def __call__(self) -> RecordingConnection:
        self.calls += 1
        # Yield so concurrent first callers really interleave
        await asyncio.sleep(0.01)
        conn = RecordingConnection(**self.connection_kwargs)
        self.connections.append(conn)
        return conn


class RecordingCollection:
    """Async collection double holding ``{"key", "value"}`` documents in a list."""

    def __init__(self) -> None:
        self.docs: list[dict[str, Any]] = []
        self.indexes: list[tuple[str, bool]] = []
        self.calls: list[str] = []
        self.error: Exception | None = None

    async def create_index(self, key: str, unique: bool = False) -> str:
        self._record("create_index")
        self.indexes.append((key, unique))
        return f"{key}_1"

    async def find_one(self, query: dict[str, Any]) -> dict[str, Any] | None:
        self._record("find_one")
        return next((dict(doc) for doc in self.docs if self._matches(doc, query)), None)

    async def replace_one(
        self, query: dict[str, Any], replacement: dict[str, Any], upsert: bool = False
    ) -> SimpleNamespace:
        self._record("replace_one")
        for i, doc in enumerate(self.docs):
            if self._matches(doc, query):
                self.docs[i] = dict(replacement)
                return SimpleNamespace(matched_count=1)
        if upsert:
            self.docs.append(dict(replacement))
        return SimpleNamespace(matched_count=0)

    async def count_documents(self, query: dict[str, Any], limit: int = 0) -> int:
        self._record("count_documents")
        count = sum(1 for doc in self.docs if self._matches(doc, query))
        return min(count, limit) if limit else count

    async def delete_one(self, query: dict[str, Any]) -> SimpleNamespace:
        self._record("delete_one")
        for i, doc in enumerate(self.docs):
            if self._matches(doc, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    async def delete_many(self, query: dict[str, Any]) -> SimpleNamespace:
        self._record("delete_many")
        kept = [doc for doc in self.docs if not self._matches(doc, query)]
        deleted, self.docs = len(self.docs) - len(kept), kept
        return SimpleNamespace(deleted_count=deleted)

    def find(self, query: dict[str, Any], projection: dict[str, int] | None = None):
        self._record("find")
        matched = [doc for doc in self.docs if self._matches(doc, query)]

        async def cursor():
            for doc in matched:
                await asyncio.sleep(0)
                if projection:
                    yield {k: v for k, v in doc.items() if projection.get(k)}
                else:
                    yield dict(doc)

        return cursor()

    @staticmethod
    def _matches(doc: dict[str, Any], query: dict[str, Any]) -> bool:
        expected = query["key"]
        if isinstance(expected, dict):
            return re.search(expected["$regex"], doc["key"]) is not None
        return doc["key"] == expected

    def _record(self, name: str) -> None:
        self.calls.append(name)
        if self.error is not None:
            raise self.error


class FakeMongoClient:
    """Client double; its default database maps names to shared collections."""

    def __init__(self, host: "FakeMongo", uri: str, options: dict[str, Any]) -> None:
        self.host = host
        self.uri = uri
        self.options = options
        self.database: str | None = None
        self.closed = False

    def get_default_database(self, default: str | None = None):
        self.database = default
        return self.host.collections

    async def close(self) -> None:
        self.closed = True


class FakeMongo:
    """Stands in for the client class; every client it builds sees one server."""

    def __init__(self) -> None:
        self.collections: defaultdict[str, RecordingCollection] = defaultdict(
            RecordingCollection
        )
        self.clients: list[FakeMongoClient] = []

    def __call__(self, uri: str, **options: Any) -> FakeMongoClient:
        client = FakeMongoClient(self, uri, options)
        self.clients.append(client)
        return client


@pytest.fixture
def bus():
    """Create a fresh event bus."""
    return EventBus()


@pytest.fixture
def registry():
    """Create a fresh, unfrozen adapter registry."""
    return AdapterRegistry()


@pytest.fixture
def options():
    """Default options without loading from disk."""
    return EndbOptions()


@pytest.fixture
def counter():
    return ConnectCounter()


@pytest.fixture
def make_counter():
    """Build connect factories with custom RecordingConnection behaviour."""
    return ConnectCounter


@pytest.fixture
def make_mongo():
    """Build stand-ins for the Mongo client class."""
    return FakeMongo


@pytest.fixture
def fake_sql(counter):
    """SQL adapter over recording connections (sqlite dialect)."""
    return SQLAdapter("sqlite", counter, namespace="test")


@pytest.fixture
def shared_dict():
    """One physical in-memory backend shared by several facades."""
    return {}


@pytest_asyncio.fixture
async def db():
    """In-memory facade."""
    endb = Endb(namespace="test")
    yield endb
    await endb.close()


@pytest_asyncio.fixture
async def sqlite_db(tmp_path):
    """Facade over a real SQLite file."""
    endb = Endb(f"sqlite://{tmp_path / 'endb.db'}", namespace="test")
    yield endb
    await endb.close()


@pytest_asyncio.fixture
async def sqlite_adapter(tmp_path):
    adapter = SQLiteAdapter(f"sqlite://{tmp_path / 'adapter.db'}", namespace="test")
    yield adapter
    await adapter.close()


@pytest.fixture
def memory_adapter(shared_dict):
    return MemoryAdapter(namespace="test", store=shared_dict)
