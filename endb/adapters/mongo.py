"""
MongoDB adapter.

Uses pymongo's asyncio client. One document per element:
``{"key": <physical key>, "value": <serialized value>}`` with a unique
index on ``key``.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Awaitable, Callable, TypeVar

from pymongo import AsyncMongoClient
from pymongo.errors import ConnectionFailure, PyMongoError

from endb.adapters.base import (
    DEFAULT_NAMESPACE,
    Adapter,
    Element,
    ErrorHandler,
    SharedAttempt,
)
from endb.core.errors import BackendConnectionError, StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_URI = "mongodb://127.0.0.1:27017"
DEFAULT_COLLECTION = "endb"
DEFAULT_DATABASE = "endb"


def mongo_uri(uri: str) -> str:
    """Accept the short ``mongo://`` scheme the driver does not know."""
    if uri.lower().startswith("mongo://"):
        return "mongodb://" + uri[len("mongo://"):]
    return uri


class MongoAdapter(Adapter):
    """
    MongoDB-backed key-value adapter.

    Usage:
        adapter = MongoAdapter("mongodb://localhost/app", collection="kv")
        await adapter.set("endb:key", '"value"')
        await adapter.close()
    """

    def __init__(
        self,
        uri: str = DEFAULT_URI,
        namespace: str = DEFAULT_NAMESPACE,
        collection: str = DEFAULT_COLLECTION,
        server_selection_timeout_ms: int = 5000,
        on_error: ErrorHandler | None = None,
    ) -> None:
        super().__init__(namespace, on_error)
        self.uri = mongo_uri(uri)
        self.collection_name = collection
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self._client: AsyncMongoClient | None = None
        self._collection = None
        self._connecting: SharedAttempt[Any] = SharedAttempt(self._open)

    # ━━━ Connection ━━━

    async def connect(self) -> None:
        await self._ensure_collection()

    async def _ensure_collection(self):
        if self._collection is not None:
            return self._collection
        return await self._connecting()

    async def _open(self):
        client: AsyncMongoClient = AsyncMongoClient(
            self.uri, serverSelectionTimeoutMS=self.server_selection_timeout_ms
        )
        try:
            db = client.get_default_database(default=DEFAULT_DATABASE)
            collection = db[self.collection_name]
            await collection.create_index("key", unique=True)
        except PyMongoError as e:
            await client.close()
            error = BackendConnectionError(
                f"Failed to connect to mongodb: {e}",
                details={"namespace": self.namespace, "collection": self.collection_name},
            )
            self.report_error(error)
            raise error from e

        self._client = client
        self._collection = collection
        logger.debug(
            f"Mongo adapter connected (collection={self.collection_name}, "
            f"namespace={self.namespace})"
        )
        return collection

    async def close(self) -> None:
        await self._connecting.wait()
        client, self._client, self._collection = self._client, None, None
        if client is not None:
            await client.close()

    # ━━━ Contract ━━━

    async def get(self, key: str) -> Any | None:
        doc = await self._call(key, lambda c: c.find_one({"key": key}))
        return None if doc is None else doc.get("value")

    async def set(self, key: str, value: Any) -> None:
        await self._call(
            key,
            lambda c: c.replace_one({"key": key}, {"key": key, "value": value}, upsert=True),
        )

    async def has(self, key: str) -> bool:
        count = await self._call(key, lambda c: c.count_documents({"key": key}, limit=1))
        return count > 0

    async def delete(self, key: str) -> bool:
        result = await self._call(key, lambda c: c.delete_one({"key": key}))
        return result.deleted_count > 0

    async def clear(self) -> None:
        await self._call(None, lambda c: c.delete_many(self._namespace_filter()))

    async def all(self) -> list[Element[Any]]:
        async def _all(collection) -> list[Element[Any]]:
            cursor = collection.find(self._namespace_filter(), {"_id": 0, "key": 1, "value": 1})
            return [Element(doc["key"], doc.get("value")) async for doc in cursor]

        return await self._call(None, _all)

    # ━━━ Internals ━━━

    def _namespace_filter(self) -> dict[str, Any]:
        return {"key": {"$regex": f"^{re.escape(self.key_prefix)}"}}

    async def _call(self, key: str | None, op: Callable[[Any], Awaitable[T]]) -> T:
        collection = await self._ensure_collection()
        details: dict[str, Any] = {"namespace": self.namespace}
        if key is not None:
            details["key"] = key
        try:
            return await op(collection)
        except ConnectionFailure as e:
            error = BackendConnectionError(f"Connection to mongodb lost: {e}", details=details)
            self.report_error(error)
            raise error from e
        except PyMongoError as e:
            raise StorageError(f"mongodb operation failed: {e}", details=details) from e

    def __repr__(self) -> str:
        return (
            f"<MongoAdapter collection={self.collection_name!r} "
            f"namespace={self.namespace!r}>"
        )
