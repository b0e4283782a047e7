"""
Endb: the public key-value facade.

Composes a KeyEncoder (namespacing), a codec (serialization) and one
Adapter (persistence), and adds nested-path access on top of whole-value
get/set. Adapter faults are relayed onto the facade's event bus as
``error`` events.

Path writes (``set``/``delete`` with a path) are read-modify-write: the
whole value is read, changed in a copy and written back. Two concurrent
path writes on the same key can lose one of the updates; callers that
need both must await one before issuing the other.
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import logging
from contextlib import contextmanager
from pathlib import Path as FilePath
from typing import Any, Callable, Iterator, Mapping, MutableMapping

from endb.adapters.base import Adapter, Element
from endb.adapters.memory import MemoryAdapter
from endb.codec import parse, stringify
from endb.core.bus import EventBus, EventHandler
from endb.core.config import EndbOptions, coerce_options
from endb.core.errors import ConfigError, EndbError
from endb.core.events import Event, EventType
from endb.core.registry import resolve_adapter
from endb.keys import KeyEncoder
from endb.paths import Path, get_path, has_path, set_path, unset_path

logger = logging.getLogger(__name__)


class Endb:
    """
    Key-value storage with pluggable backends.

    Usage:
        db = Endb()                                   # in-memory
        db = Endb("sqlite://data.db", namespace="app")
        db = Endb(uri="redis://localhost", namespace="cache")
        db = Endb(store={})                           # borrow a dict

        await db.set("profile", {"name": "Alex"})
        await db.set("profile", True, "verified")
        await db.get("profile", "verified")           # True
        await db.close()

    Events:
        db.on("error", handler)   # backend faults, e.g. lost connection
    """

    def __init__(
        self,
        options: str | Mapping[str, Any] | EndbOptions | None = None,
        /,
        **kwargs: Any,
    ) -> None:
        self.options = coerce_options(options, **kwargs)
        self._bus = EventBus()
        self._serialize: Callable[[Any], Any] = self.options.serialize or stringify
        self._deserialize: Callable[[Any], Any] = self.options.deserialize or parse

        self._store, self._owns_store = self._attach_store()
        self._keys = KeyEncoder(self._store.namespace)
        self._store.add_error_handler(self._relay_error)
        self._closed = False

        self._warmup: asyncio.Task | None = None
        if self._owns_store and self.options.eager:
            self._schedule_warmup()

    @classmethod
    def from_config(
        cls,
        overrides: dict[str, Any] | None = None,
        project_path: FilePath | None = None,
    ) -> Endb:
        """Build a facade from endb.toml and ENDB_* environment variables."""
        return cls(EndbOptions.load(overrides, project_path))

    # ━━━ Properties ━━━

    @property
    def namespace(self) -> str:
        return self._keys.namespace

    @property
    def store(self) -> Adapter:
        return self._store

    @property
    def events(self) -> EventBus:
        return self._bus

    # ━━━ Events ━━━

    def on(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe to facade events, e.g. ``db.on("error", handler)``."""
        self._bus.on(event_type, handler)

    def off(self, event_type: str, handler: EventHandler) -> None:
        self._bus.off(event_type, handler)

    # ━━━ Operations ━━━

    async def get(self, key: str, path: Path | None = None) -> Any:
        """
        Get the value stored under ``key``.

        Returns None when the key does not exist, or when ``path`` is given
        and does not resolve inside the stored value.
        """
        physical = self._keys.prefix(key)
        with self._context(key):
            raw = await self._store.get(physical)
        value = self._decode(raw)
        if value is None:
            return None
        if path is not None:
            return get_path(value, path)
        return value

    async def set(self, key: str, value: Any, path: Path | None = None) -> bool:
        """
        Store ``value`` under ``key``.

        With ``path``, only the addressed property of the stored value is
        replaced; missing intermediate levels are created as mappings.
        """
        if path is not None:
            current = await self.get(key)
            base = copy.deepcopy(current) if current is not None else {}
            with self._context(key):
                value = set_path(base, path, value)

        physical = self._keys.prefix(key)
        serialized = self._serialize(value)
        with self._context(key):
            await self._store.set(physical, serialized)
        return True

    async def has(self, key: str, path: Path | None = None) -> bool:
        """Check whether ``key`` (or ``path`` inside its value) exists."""
        if path is not None:
            current = await self.get(key)
            return current is not None and has_path(current, path)

        physical = self._keys.prefix(key)
        with self._context(key):
            return await self._store.has(physical)

    async def delete(self, key: str, path: Path | None = None) -> bool:
        """
        Delete ``key``, or only the property at ``path`` inside its value.

        Returns True if something was removed, False if nothing existed.
        """
        if path is not None:
            current = await self.get(key)
            if current is None:
                return False
            updated = copy.deepcopy(current)
            if not unset_path(updated, path):
                return False
            return await self.set(key, updated)

        physical = self._keys.prefix(key)
        with self._context(key):
            return await self._store.delete(physical)

    async def all(self) -> list[Element[Any]]:
        """Every element in this namespace."""
        with self._context():
            stored = await self._store.all()
        return [
            Element(self._keys.strip(element.key), self._decode(element.value))
            for element in stored
            if self._keys.owns(element.key)
        ]

    async def keys(self) -> list[str]:
        return [element.key for element in await self.all()]

    async def values(self) -> list[Any]:
        return [element.value for element in await self.all()]

    async def entries(self) -> list[tuple[str, Any]]:
        return [element.as_tuple() for element in await self.all()]

    async def find(self, predicate: Callable[[Any, str], Any]) -> Any:
        """
        First value for which ``predicate(value, key)`` is truthy, else None.

        The predicate may be a plain function or a coroutine function.
        """
        for element in await self.all():
            result = predicate(element.value, element.key)
            if inspect.isawaitable(result):
                result = await result
            if result:
                return element.value
        return None

    async def clear(self) -> None:
        """Remove every element in this namespace. Other namespaces are untouched."""
        with self._context():
            await self._store.clear()

    # ━━━ Lifecycle ━━━

    async def close(self) -> None:
        """Release the adapter if this facade created it. Borrowed stores stay open."""
        if self._closed:
            return
        self._closed = True

        if self._warmup is not None and not self._warmup.done():
            await asyncio.gather(self._warmup, return_exceptions=True)
        self._warmup = None

        self._store.remove_error_handler(self._relay_error)
        if self._owns_store:
            await self._store.close()
            await self._emit_lifecycle(EventType.ADAPTER_CLOSE)
        await self._bus.drain()
        logger.debug(f"Endb '{self.namespace}' closed")

    async def __aenter__(self) -> Endb:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ━━━ Internals ━━━

    def _attach_store(self) -> tuple[Adapter, bool]:
        store = self.options.store
        if store is None:
            return resolve_adapter(self.options), True

        if isinstance(store, Adapter):
            explicit = "namespace" in self.options.model_fields_set
            if explicit and store.namespace != self.options.namespace:
                raise ConfigError(
                    f"Adapter is bound to namespace '{store.namespace}', "
                    f"cannot attach it as '{self.options.namespace}'",
                    details={"namespace": self.options.namespace},
                )
            return store, False

        if isinstance(store, MutableMapping):
            return MemoryAdapter(namespace=self.options.namespace, store=store), True

        raise ConfigError(
            f"store must be an Adapter or a mutable mapping, got {type(store).__name__}"
        )

    def _decode(self, raw: Any) -> Any:
        if isinstance(raw, (str, bytes, bytearray)):
            return self._deserialize(raw)
        return raw

    @contextmanager
    def _context(self, key: str | None = None) -> Iterator[None]:
        """Attach namespace/key to errors passing through the facade."""
        try:
            yield
        except EndbError as e:
            e.details.setdefault("namespace", self.namespace)
            if key is not None:
                e.details.setdefault("key", key)
            raise

    def _relay_error(self, error: BaseException) -> None:
        logger.error(f"Backend error in namespace '{self.namespace}': {error}")
        data: dict[str, Any] = {"error": error, "namespace": self.namespace}
        if isinstance(error, EndbError) and "key" in error.details:
            data["key"] = error.details["key"]
        self._bus.emit_nowait(Event(type=EventType.ERROR, data=data, source=self.namespace))

    async def _emit_lifecycle(self, event_type: str) -> None:
        await self._bus.emit(
            Event(type=event_type, data={"namespace": self.namespace}, source=self.namespace)
        )

    def _schedule_warmup(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Not inside a loop; the first operation connects instead
            return
        self._warmup = loop.create_task(self._warm_up())

    async def _warm_up(self) -> None:
        try:
            await self._store.connect()
        except EndbError as e:
            # Already reported on the adapter's error channel
            logger.debug(f"Warm-up failed for '{self.namespace}': {e}")
        except Exception as e:
            self._relay_error(e)
        else:
            await self._emit_lifecycle(EventType.ADAPTER_CONNECT)

    def __repr__(self) -> str:
        return f"<Endb namespace={self.namespace!r} store={self._store!r}>"
