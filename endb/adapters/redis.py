"""
Redis adapter.

Uses redis.asyncio. Namespace enumeration and clearing use SCAN with a
``namespace:*`` match pattern, never KEYS or FLUSHDB.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

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

DEFAULT_URI = "redis://localhost:6379"


def escape_glob(text: str) -> str:
    """Escape Redis glob metacharacters so ``text`` matches literally."""
    return "".join(f"\\{c}" if c in "*?[]\\^" else c for c in text)


class RedisAdapter(Adapter):
    """
    Redis-backed key-value adapter.

    Usage:
        adapter = RedisAdapter("redis://localhost:6379/0", namespace="cache")
        await adapter.set("cache:token", '"abc"')
        await adapter.close()
    """

    def __init__(
        self,
        uri: str = DEFAULT_URI,
        namespace: str = DEFAULT_NAMESPACE,
        scan_count: int = 500,
        on_error: ErrorHandler | None = None,
    ) -> None:
        super().__init__(namespace, on_error)
        self.uri = uri
        self.scan_count = scan_count
        self._client: aioredis.Redis | None = None
        self._connecting: SharedAttempt[aioredis.Redis] = SharedAttempt(self._open)

    # ━━━ Connection ━━━

    async def connect(self) -> None:
        await self._ensure_client()

    async def _ensure_client(self) -> aioredis.Redis:
        if self._client is not None:
            return self._client
        return await self._connecting()

    async def _open(self) -> aioredis.Redis:
        client = aioredis.from_url(self.uri, decode_responses=True)
        try:
            await client.ping()
        except RedisError as e:
            await client.aclose()
            error = BackendConnectionError(
                f"Failed to connect to redis: {e}",
                details={"namespace": self.namespace},
            )
            self.report_error(error)
            raise error from e

        self._client = client
        logger.debug(f"Redis adapter connected (namespace={self.namespace})")
        return client

    async def close(self) -> None:
        await self._connecting.wait()
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()

    # ━━━ Contract ━━━

    async def get(self, key: str) -> Any | None:
        return await self._call(key, lambda c: c.get(key))

    async def set(self, key: str, value: Any) -> None:
        await self._call(key, lambda c: c.set(key, value))

    async def has(self, key: str) -> bool:
        return await self._call(key, lambda c: c.exists(key)) > 0

    async def delete(self, key: str) -> bool:
        return await self._call(key, lambda c: c.delete(key)) > 0

    async def clear(self) -> None:
        async def _clear(client: aioredis.Redis) -> None:
            batch: list[str] = []
            async for key in client.scan_iter(match=self._pattern(), count=self.scan_count):
                batch.append(key)
                if len(batch) >= self.scan_count:
                    await client.delete(*batch)
                    batch = []
            if batch:
                await client.delete(*batch)

        await self._call(None, _clear)

    async def all(self) -> list[Element[Any]]:
        async def _all(client: aioredis.Redis) -> list[Element[Any]]:
            keys = [k async for k in client.scan_iter(match=self._pattern(), count=self.scan_count)]
            if not keys:
                return []
            values = await client.mget(keys)
            # A key may expire or be deleted between SCAN and MGET
            return [Element(k, v) for k, v in zip(keys, values) if v is not None]

        return await self._call(None, _all)

    # ━━━ Internals ━━━

    def _pattern(self) -> str:
        return f"{escape_glob(self.key_prefix)}*"

    async def _call(self, key: str | None, op: Callable[[aioredis.Redis], Awaitable[T]]) -> T:
        client = await self._ensure_client()
        details: dict[str, Any] = {"namespace": self.namespace}
        if key is not None:
            details["key"] = key
        try:
            return await op(client)
        except (RedisConnectionError, RedisTimeoutError) as e:
            error = BackendConnectionError(f"Connection to redis lost: {e}", details=details)
            self.report_error(error)
            raise error from e
        except RedisError as e:
            raise StorageError(f"redis command failed: {e}", details=details) from e

    def __repr__(self) -> str:
        return f"<RedisAdapter namespace={self.namespace!r}>"
