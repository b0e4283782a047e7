"""
Value serialization for Endb.

The default wire format is "buffer JSON": ordinary JSON in which byte
strings are written as ``{"type": "Buffer", "data": "base64:<b64>"}`` so
binary payloads survive a trip through text-only backends.
"""

from __future__ import annotations

import base64
import json
from typing import Any, Protocol

from endb.core.errors import SerializationError

BUFFER_TYPE = "Buffer"
BUFFER_PREFIX = "base64:"


class Serializer(Protocol):
    """Serialize/deserialize values for backends that store text.

    Implementations must be symmetric: ``load(dump(v)) == v``.
    """

    def dump(self, value: Any) -> str: ...

    def load(self, data: str) -> Any: ...


def _encode_default(obj: Any) -> Any:
    if isinstance(obj, (bytes, bytearray, memoryview)):
        encoded = base64.b64encode(bytes(obj)).decode("ascii")
        return {"type": BUFFER_TYPE, "data": BUFFER_PREFIX + encoded}
    raise TypeError(f"Object of type {type(obj).__name__} is not serializable")


def _decode_hook(obj: dict[str, Any]) -> Any:
    if len(obj) == 2 and obj.get("type") == BUFFER_TYPE:
        data = obj.get("data")
        if isinstance(data, str) and data.startswith(BUFFER_PREFIX):
            return base64.b64decode(data[len(BUFFER_PREFIX):])
        if isinstance(data, list):
            # Plain byte arrays, as written by older encoders
            return bytes(data)
    return obj


class BufferJSONSerializer:
    """Default serializer: JSON with base64-tagged byte strings."""

    def dump(self, value: Any) -> str:
        try:
            return json.dumps(value, default=_encode_default, allow_nan=True)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Cannot serialize value: {e}") from e

    def load(self, data: str | bytes) -> Any:
        if isinstance(data, (bytes, bytearray)):
            data = bytes(data).decode("utf-8")
        try:
            return json.loads(data, object_hook=_decode_hook)
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Corrupted payload: {e}") from e


_default = BufferJSONSerializer()


def stringify(value: Any) -> str:
    """Encode a value with the default codec."""
    return _default.dump(value)


def parse(data: str | bytes) -> Any:
    """Decode a payload written by :func:`stringify`."""
    return _default.load(data)
