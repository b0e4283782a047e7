"""
In-memory adapter: the default when no URI or adapter is given.

Dict-based storage. Data lost when process exits. A dict may be shared
between adapters of different namespaces.
"""

from __future__ import annotations

from typing import Any, MutableMapping

from endb.adapters.base import DEFAULT_NAMESPACE, Adapter, Element, ErrorHandler


class MemoryAdapter(Adapter):
    """
    In-memory key-value adapter.

    Usage:
        adapter = MemoryAdapter(namespace="cache")
        await adapter.set("cache:key", '"value"')
        assert await adapter.get("cache:key") == '"value"'
    """

    def __init__(
        self,
        namespace: str = DEFAULT_NAMESPACE,
        store: MutableMapping[str, Any] | None = None,
        on_error: ErrorHandler | None = None,
    ) -> None:
        super().__init__(namespace, on_error)
        self._data: MutableMapping[str, Any] = {} if store is None else store

    @property
    def store(self) -> MutableMapping[str, Any]:
        return self._data

    async def get(self, key: str) -> Any | None:
        return self._data.get(key)

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    async def has(self, key: str) -> bool:
        return key in self._data

    async def delete(self, key: str) -> bool:
        if key in self._data:
            del self._data[key]
            return True
        return False

    async def clear(self) -> None:
        for key in self._owned_keys():
            del self._data[key]

    async def all(self) -> list[Element[Any]]:
        return [Element(key, self._data[key]) for key in self._owned_keys()]

    def _owned_keys(self) -> list[str]:
        prefix = self.key_prefix
        return [k for k in list(self._data) if isinstance(k, str) and k.startswith(prefix)]
