"""Tests for the SQLite adapter over a real aiosqlite database."""

import asyncio

import pytest

from endb.adapters.sqlite import SQLiteAdapter, sqlite_path
from endb.core.errors import KeyTooLongError


@pytest.mark.parametrize(
    "uri,path",
    [
        ("sqlite://:memory:", ":memory:"),
        ("sqlite:///abs/path.db", "/abs/path.db"),
        ("sqlite://relative.db", "relative.db"),
        ("sqlite://", ":memory:"),
        ("SQLITE://data.db", "data.db"),
    ],
)
def test_sqlite_path(uri, path):
    assert sqlite_path(uri) == path


@pytest.mark.asyncio
async def test_basic_operations(sqlite_adapter: SQLiteAdapter):
    assert await sqlite_adapter.get("test:a") is None

    await sqlite_adapter.set("test:a", '"1"')
    await sqlite_adapter.set("test:a", '"2"')

    assert await sqlite_adapter.get("test:a") == '"2"'
    assert await sqlite_adapter.has("test:a") is True
    assert await sqlite_adapter.delete("test:a") is True
    assert await sqlite_adapter.delete("test:a") is False
    assert await sqlite_adapter.has("test:a") is False


@pytest.mark.asyncio
async def test_persists_across_instances(tmp_path):
    uri = f"sqlite://{tmp_path / 'nested' / 'dir' / 'data.db'}"

    first = SQLiteAdapter(uri, namespace="app")
    await first.set("app:theme", '"dark"')
    await first.close()

    second = SQLiteAdapter(uri, namespace="app")
    try:
        assert await second.get("app:theme") == '"dark"'
    finally:
        await second.close()


@pytest.mark.asyncio
async def test_namespaces_share_one_table(tmp_path):
    uri = f"sqlite://{tmp_path / 'shared.db'}"
    users = SQLiteAdapter(uri, namespace="users")
    my_app = SQLiteAdapter(uri, namespace="my_app")
    my_app_lookalike = SQLiteAdapter(uri, namespace="myxapp")
    try:
        await users.set("users:1", '"alex"')
        await my_app.set("my_app:1", '"x"')
        await my_app_lookalike.set("myxapp:1", '"y"')

        # "_" in the namespace must not act as a LIKE wildcard
        await my_app.clear()

        assert await my_app.all() == []
        assert [e.as_tuple() for e in await users.all()] == [("users:1", '"alex"')]
        assert await my_app_lookalike.get("myxapp:1") == '"y"'
    finally:
        await asyncio.gather(users.close(), my_app.close(), my_app_lookalike.close())


@pytest.mark.asyncio
async def test_custom_table_and_key_size(tmp_path):
    adapter = SQLiteAdapter(
        f"sqlite://{tmp_path / 'kv.db'}", namespace="t", table="kv", key_size=10
    )
    try:
        await adapter.set("t:short", '"ok"')
        with pytest.raises(KeyTooLongError):
            await adapter.set("t:far-too-long", '"no"')
        assert await adapter.get("t:short") == '"ok"'
    finally:
        await adapter.close()


@pytest.mark.asyncio
async def test_in_memory_database():
    adapter = SQLiteAdapter(busy_timeout=1000)
    try:
        await adapter.set("endb:k", "1")
        assert await adapter.get("endb:k") == "1"
    finally:
        await adapter.close()


@pytest.mark.asyncio
async def test_concurrent_writes(sqlite_adapter: SQLiteAdapter):
    await asyncio.gather(*(sqlite_adapter.set(f"test:{i}", str(i)) for i in range(20)))
    assert len(await sqlite_adapter.all()) == 20
