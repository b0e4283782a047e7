"""
Adapter contract.

Minimal operation set every storage backend implements. Adapters work on
physical keys (``namespace:key``) and serialized values; prefixing and
serialization are the facade's responsibility.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, TypeVar

from endb.core.errors import NotSupportedError
from endb.keys import SEPARATOR, validate_namespace

logger = logging.getLogger(__name__)

T = TypeVar("T")

ErrorHandler = Callable[[BaseException], None]

DEFAULT_NAMESPACE = "endb"


@dataclass(slots=True)
class Element(Generic[T]):
    """A single stored element: key plus value."""

    key: str
    value: T

    def as_tuple(self) -> tuple[str, T]:
        return (self.key, self.value)


class SharedAttempt(Generic[T]):
    """
    One in-flight run of an async operation, shared by concurrent callers.

    Callers arriving while a run is pending await that same run and get its
    result or its exception. Once it settles the next call starts a new run,
    so a failed connect is retried by the next operation and never once per
    waiter.

    Usage:
        self._connecting = SharedAttempt(self._open)
        conn = await self._connecting()
    """

    def __init__(self, operation: Callable[[], Awaitable[T]]) -> None:
        self._operation = operation
        self._task: asyncio.Task[T] | None = None

    async def __call__(self) -> T:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._run())
            self._task.add_done_callback(self._finished)
        # A cancelled caller must not cancel the run the others are waiting on
        return await asyncio.shield(self._task)

    async def wait(self) -> None:
        """Let a pending run settle, ignoring its outcome."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def _run(self) -> T:
        return await self._operation()

    def _finished(self, task: asyncio.Task[T]) -> None:
        if self._task is task:
            self._task = None
        if not task.cancelled():
            # Waiters received it through shield; mark it retrieved
            task.exception()


class Adapter(ABC):
    """
    Abstract base class for storage backends.

    Every adapter is bound to one namespace at construction and only ever
    touches keys under ``namespace + ":"`` when clearing or enumerating.

    Implementations:
        MemoryAdapter: dict-backed, no persistence
        SQLAdapter: relational engines (sqlite, postgres, mysql)
        RedisAdapter: cache server
        MongoAdapter: document store
    """

    def __init__(
        self,
        namespace: str = DEFAULT_NAMESPACE,
        on_error: ErrorHandler | None = None,
    ) -> None:
        self._namespace = validate_namespace(namespace)
        self._error_handlers: list[ErrorHandler] = []
        if on_error is not None:
            self._error_handlers.append(on_error)

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def key_prefix(self) -> str:
        return f"{self._namespace}{SEPARATOR}"

    # ━━━ Required ━━━

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Get a serialized value by physical key. Returns None if not found."""
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Store a serialized value. Overwrites if exists."""
        ...

    @abstractmethod
    async def has(self, key: str) -> bool:
        """Check if a physical key exists."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a physical key. Returns True if it existed."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Remove every element in this adapter's namespace."""
        ...

    # ━━━ Optional ━━━

    async def all(self) -> list[Element[Any]]:
        """Every element in this adapter's namespace, keys still prefixed."""
        raise NotSupportedError(
            f"{type(self).__name__} does not support enumeration"
        )

    async def connect(self) -> None:
        """Establish the backend connection. Idempotent."""
        return None

    async def close(self) -> None:
        """Release the backend connection."""
        return None

    # ━━━ Error channel ━━━

    def add_error_handler(self, handler: ErrorHandler) -> None:
        if handler not in self._error_handlers:
            self._error_handlers.append(handler)

    def remove_error_handler(self, handler: ErrorHandler) -> None:
        self._error_handlers = [h for h in self._error_handlers if h != handler]

    def report_error(self, error: BaseException) -> None:
        """Hand an asynchronous fault to every registered handler."""
        if not self._error_handlers:
            logger.error(f"Unhandled {type(self).__name__} error: {error}")
            return
        for handler in list(self._error_handlers):
            try:
                handler(error)
            except Exception as e:
                logger.error(f"Error handler failed for {type(self).__name__}: {e}")

    def __repr__(self) -> str:
        return f"<{type(self).__name__} namespace={self._namespace!r}>"
