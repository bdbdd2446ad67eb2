"""Watch event data structures."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class EventType(StrEnum):
    """Kind of change observed by a watcher."""

    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


# Kubernetes watch stream type -> EventType
WATCH_EVENT_TYPES: dict[str, EventType] = {
    "ADDED": EventType.ADD,
    "MODIFIED": EventType.UPDATE,
    "DELETED": EventType.DELETE,
}


@dataclass(frozen=True)
class WatchEvent:
    """A single observed change, carrying the full object as the API returned it.

    Produced by the watchers, consumed by the Reconciler. ``obj`` is the raw
    (camelCase) JSON object; it is only turned into a ResourceSnapshot on the
    consumer side so that unsupported or malformed objects are rejected there.
    """

    obj: dict[str, Any]
    event_type: EventType

    @property
    def resource_kind(self) -> str:
        kind = self.obj.get("kind") if isinstance(self.obj, dict) else None
        return str(kind or "")

    @property
    def display_name(self) -> str:
        """``namespace/name`` for logging; never raises."""
        metadata = self.obj.get("metadata") if isinstance(self.obj, dict) else None
        if not isinstance(metadata, dict):
            return "<unknown>"
        name = metadata.get("name") or "<unknown>"
        namespace = metadata.get("namespace")
        return f"{namespace}/{name}" if namespace else str(name)
