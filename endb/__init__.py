"""
Endb: simple key-value storage with pluggable backends.

Public API:
    from endb import Endb, Element, EndbOptions
"""

__version__ = "0.1.0"

# Facade
from endb.facade import Endb

# Core
from endb.core.config import EndbOptions
from endb.core.events import Event, EventType
from endb.core.errors import (
    AdapterNotFoundError,
    BackendConnectionError,
    ConfigError,
    ConstraintError,
    EndbError,
    KeyTooLongError,
    NotSupportedError,
    PathError,
    SerializationError,
    StorageError,
)

# Adapters
from endb.adapters.base import Adapter, Element
from endb.adapters.memory import MemoryAdapter
from endb.adapters.sql import Dialect, SQLAdapter

__all__ = [
    # Facade
    "Endb",
    # Core
    "EndbOptions",
    "Event",
    "EventType",
    "EndbError",
    "ConfigError",
    "AdapterNotFoundError",
    "StorageError",
    "BackendConnectionError",
    "ConstraintError",
    "KeyTooLongError",
    "NotSupportedError",
    "PathError",
    "SerializationError",
    # Adapters
    "Adapter",
    "Element",
    "MemoryAdapter",
    "SQLAdapter",
    "Dialect",
]
