"""
Endb Event System: types and constants.

Adapters report asynchronous faults on their error channel; the facade
turns each one into an Event and publishes it on its bus.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any
import time
import uuid


class EventType:
    """
    Event type constants.

    Hierarchical naming: "category:action"
    Supports wildcard matching: "adapter:*" matches "adapter:connect"
    """

    # Backend faults (lost connection, failed warm-up, driver errors)
    ERROR = "error"

    # Adapter lifecycle
    ADAPTER_CONNECT = "adapter:connect"
    ADAPTER_CLOSE = "adapter:close"

    # Wildcard
    ALL = "*"


@dataclass(slots=True)
class Event:
    """
    A single event published by an Endb facade.

    - Typed (hierarchical string)
    - Timestamped
    - Attributed (source is the facade namespace)
    - Extensible (data dict for event-specific payload)
    """

    type: str
    data: dict[str, Any] = field(default_factory=dict)
    source: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    timestamp: float = field(default_factory=time.time)

    @property
    def error(self) -> BaseException | None:
        """The fault carried by an ``error`` event, if any."""
        return self.data.get("error")
