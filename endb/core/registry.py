"""
Endb Adapter Registry: static scheme → adapter factory table.

Resolution order for a connection descriptor:
1. An explicit ``adapter`` name
2. The URI scheme (text before the first ':')
3. Neither → in-memory adapter, no persistence

The process-wide ``ADAPTERS`` registry is filled once at import and then
frozen. Factories import their driver lazily, so a missing optional
driver only matters when that backend is selected.
"""

from __future__ import annotations

import logging
from typing import Callable

from endb.adapters.base import Adapter
from endb.adapters.memory import MemoryAdapter
from endb.core.config import EndbOptions
from endb.core.errors import AdapterNotFoundError, ConfigError, RegistryError

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[EndbOptions], Adapter]


class AdapterRegistry:
    """
    Name → factory lookup for storage adapters.

    Usage:
        registry = AdapterRegistry()
        registry.register("sqlite", make_sqlite)
        registry.freeze()

        adapter = registry.resolve(EndbOptions(uri="sqlite://data.db"))
    """

    def __init__(self) -> None:
        self._factories: dict[str, AdapterFactory] = {}
        self._frozen = False

    def register(self, name: str, factory: AdapterFactory) -> None:
        """
        Register a factory under a scheme/adapter name.

        Raises:
            RegistryError: If the registry is frozen
        """
        if self._frozen:
            raise RegistryError(f"Cannot register '{name}': registry is frozen")
        self._factories[name.lower()] = factory
        logger.debug(f"Registered adapter {name}")

    def freeze(self) -> None:
        """Make the registry read-only."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, name: str) -> AdapterFactory:
        """
        Get the factory for a name.

        Raises:
            AdapterNotFoundError: If no factory is registered under ``name``
        """
        factory = self._factories.get(name.lower())
        if factory is None:
            available = ", ".join(self.get_names())
            raise AdapterNotFoundError(
                f"Invalid adapter '{name}'. Available: {available}",
                adapter=name,
            )
        return factory

    def has(self, name: str) -> bool:
        return name.lower() in self._factories

    def get_names(self) -> list[str]:
        return list(self._factories)

    def resolve(self, options: EndbOptions) -> Adapter:
        """Build the adapter a descriptor selects."""
        if options.adapter:
            name = options.adapter
        elif options.uri:
            name = scheme_of(options.uri)
        else:
            logger.debug("No uri or adapter given, using in-memory adapter")
            return MemoryAdapter(namespace=options.namespace)

        factory = self.get(name)
        adapter = factory(options)
        logger.debug(f"Resolved {name} → {adapter!r}")
        return adapter


def scheme_of(uri: str) -> str:
    """
    The adapter name a URI selects.

    Raises:
        ConfigError: If the URI has no scheme
    """
    scheme, sep, _ = uri.partition(":")
    if not sep or not scheme:
        raise ConfigError(f"Could not infer adapter from URI '{uri}'")
    return scheme.lower()


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Built-in factories
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _missing_driver(adapter: str, extra: str, error: ImportError) -> ConfigError:
    return ConfigError(
        f"The '{adapter}' adapter needs an optional driver: "
        f"pip install 'endb[{extra}]' ({error})",
        details={"adapter": adapter},
    )


def _sqlite(options: EndbOptions) -> Adapter:
    from endb.adapters.sqlite import DEFAULT_URI, SQLiteAdapter

    return SQLiteAdapter(
        uri=options.uri or DEFAULT_URI,
        namespace=options.namespace,
        table=options.table,
        key_size=options.key_size,
        busy_timeout=options.busy_timeout,
    )


def _postgres(options: EndbOptions) -> Adapter:
    try:
        from endb.adapters.postgres import DEFAULT_URI, PostgresAdapter
    except ImportError as e:
        raise _missing_driver("postgres", "postgres", e) from e

    return PostgresAdapter(
        uri=options.uri or DEFAULT_URI,
        namespace=options.namespace,
        table=options.table,
        key_size=options.key_size,
        pool_size=options.pool_size,
    )


def _mysql(options: EndbOptions) -> Adapter:
    try:
        from endb.adapters.mysql import DEFAULT_URI, MySQLAdapter
    except ImportError as e:
        raise _missing_driver("mysql", "mysql", e) from e

    return MySQLAdapter(
        uri=options.uri or DEFAULT_URI,
        namespace=options.namespace,
        table=options.table,
        key_size=options.key_size,
        pool_size=options.pool_size,
    )


def _redis(options: EndbOptions) -> Adapter:
    try:
        from endb.adapters.redis import DEFAULT_URI, RedisAdapter
    except ImportError as e:
        raise _missing_driver("redis", "redis", e) from e

    return RedisAdapter(uri=options.uri or DEFAULT_URI, namespace=options.namespace)


def _mongo(options: EndbOptions) -> Adapter:
    try:
        from endb.adapters.mongo import DEFAULT_URI, MongoAdapter
    except ImportError as e:
        raise _missing_driver("mongo", "mongo", e) from e

    return MongoAdapter(
        uri=options.uri or DEFAULT_URI,
        namespace=options.namespace,
        collection=options.collection,
    )


def _build_default_registry() -> AdapterRegistry:
    registry = AdapterRegistry()
    registry.register("mongo", _mongo)
    registry.register("mongodb", _mongo)
    registry.register("mysql", _mysql)
    registry.register("postgres", _postgres)
    registry.register("postgresql", _postgres)
    registry.register("redis", _redis)
    registry.register("sqlite", _sqlite)
    registry.freeze()
    return registry


ADAPTERS = _build_default_registry()


def resolve_adapter(options: EndbOptions, registry: AdapterRegistry | None = None) -> Adapter:
    """Resolve a descriptor against ``registry`` (default: ADAPTERS)."""
    return (registry or ADAPTERS).resolve(options)
