"""Tests for the adapter registry and resolver."""

import pytest

from endb.adapters.memory import MemoryAdapter
from endb.adapters.sql import SQLAdapter
from endb.adapters.sqlite import SQLiteAdapter
from endb.core.config import EndbOptions
from endb.core.errors import AdapterNotFoundError, ConfigError, RegistryError
from endb.core.registry import ADAPTERS, AdapterRegistry, resolve_adapter, scheme_of


def test_register_and_get(registry: AdapterRegistry):
    registry.register("memory", lambda options: MemoryAdapter(options.namespace))
    factory = registry.get("memory")
    assert isinstance(factory(EndbOptions()), MemoryAdapter)


def test_names_are_case_insensitive(registry: AdapterRegistry):
    registry.register("SQLite", lambda options: MemoryAdapter())
    assert registry.has("sqlite")
    assert registry.has("SQLITE")


def test_missing_name_raises(registry: AdapterRegistry):
    registry.register("sqlite", lambda options: MemoryAdapter())

    with pytest.raises(AdapterNotFoundError, match="'oracle'") as excinfo:
        registry.get("oracle")
    assert excinfo.value.adapter == "oracle"
    assert "sqlite" in excinfo.value.message


def test_frozen_registry_rejects_registration(registry: AdapterRegistry):
    registry.freeze()
    assert registry.frozen is True

    with pytest.raises(RegistryError, match="frozen"):
        registry.register("memory", lambda options: MemoryAdapter())


def test_default_registry_is_frozen():
    assert ADAPTERS.frozen is True
    with pytest.raises(RegistryError):
        ADAPTERS.register("memory", lambda options: MemoryAdapter())


def test_default_registry_schemes():
    assert sorted(ADAPTERS.get_names()) == [
        "mongo",
        "mongodb",
        "mysql",
        "postgres",
        "postgresql",
        "redis",
        "sqlite",
    ]


def test_scheme_of():
    assert scheme_of("mysql://root@localhost/db") == "mysql"
    assert scheme_of("SQLite://:memory:") == "sqlite"
    assert scheme_of("redis:") == "redis"


@pytest.mark.parametrize("uri", ["localhost/db", "", ":memory:"])
def test_scheme_missing(uri):
    with pytest.raises(ConfigError, match="Could not infer adapter"):
        scheme_of(uri)


def test_no_uri_no_adapter_is_memory():
    adapter = resolve_adapter(EndbOptions(namespace="plain"))
    assert isinstance(adapter, MemoryAdapter)
    assert adapter.namespace == "plain"


def test_unknown_scheme_is_config_error():
    with pytest.raises(ConfigError, match="'oracle'"):
        resolve_adapter(EndbOptions(uri="oracle://localhost"))


def test_unknown_explicit_adapter_is_config_error():
    with pytest.raises(AdapterNotFoundError):
        resolve_adapter(EndbOptions(adapter="cassandra"))


def test_sqlite_uri_resolves():
    adapter = resolve_adapter(
        EndbOptions(uri="sqlite://:memory:", namespace="app", table="kv", key_size=64)
    )
    assert isinstance(adapter, SQLiteAdapter)
    assert adapter.dialect.name == "sqlite"
    assert adapter.namespace == "app"
    assert adapter.table == "kv"
    assert adapter.key_size == 64


def test_explicit_adapter_wins_over_uri(registry: AdapterRegistry):
    registry.register("memory", lambda options: MemoryAdapter(options.namespace))
    registry.register("sqlite", lambda options: SQLiteAdapter(namespace=options.namespace))

    adapter = resolve_adapter(EndbOptions(adapter="memory", uri="sqlite://data.db"), registry)
    assert isinstance(adapter, MemoryAdapter)


def test_explicit_adapter_without_uri_uses_default():
    adapter = resolve_adapter(EndbOptions(adapter="sqlite"))
    assert isinstance(adapter, SQLiteAdapter)
    assert adapter.path == ":memory:"


def test_mysql_uri_resolves_to_sql_backend():
    pytest.importorskip("aiomysql")
    adapter = resolve_adapter(EndbOptions(uri="mysql://root:pw@localhost:3307/app"))
    assert isinstance(adapter, SQLAdapter)
    assert adapter.dialect.name == "mysql"


@pytest.mark.parametrize("uri", ["postgres://localhost/db", "postgresql://localhost/db"])
def test_postgres_uris_resolve(uri):
    pytest.importorskip("asyncpg")
    adapter = resolve_adapter(EndbOptions(uri=uri))
    assert isinstance(adapter, SQLAdapter)
    assert adapter.dialect.name == "postgres"


def test_redis_uri_resolves():
    pytest.importorskip("redis")
    from endb.adapters.redis import RedisAdapter

    adapter = resolve_adapter(EndbOptions(uri="redis://localhost:6379", namespace="cache"))
    assert isinstance(adapter, RedisAdapter)
    assert adapter.namespace == "cache"


@pytest.mark.parametrize("uri", ["mongo://localhost/app", "mongodb://localhost/app"])
def test_mongo_uris_resolve(uri):
    pytest.importorskip("pymongo")
    from endb.adapters.mongo import MongoAdapter

    adapter = resolve_adapter(EndbOptions(uri=uri, collection="kv"))
    assert isinstance(adapter, MongoAdapter)
    assert adapter.uri == "mongodb://localhost/app"
    assert adapter.collection_name == "kv"


def test_custom_registry(registry: AdapterRegistry):
    registry.register("memory", lambda options: MemoryAdapter(options.namespace))
    adapter = resolve_adapter(EndbOptions(uri="memory://", namespace="x"), registry)
    assert isinstance(adapter, MemoryAdapter)
    assert adapter.namespace == "x"
