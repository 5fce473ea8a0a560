"""Shared type definitions for the watcher subsystem."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Hashable, Iterable, Protocol

from ..errors import ConfigurationError

WatchHandle = Hashable


class EventKind(Enum):
    """Filesystem change categories a caller can subscribe to."""

    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"

    @classmethod
    def parse(cls, value: "EventKind | str") -> "EventKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            choices = ", ".join(kind.value for kind in cls)
            raise ConfigurationError(
                f"Unknown event kind {value!r}; expected one of: {choices}"
            ) from None


ALL_EVENT_KINDS: frozenset[EventKind] = frozenset(EventKind)


def parse_event_kinds(values: Iterable[EventKind | str]) -> frozenset[EventKind]:
    """Normalize *values* into a non-empty, immutable set of :class:`EventKind`."""

    kinds = frozenset(EventKind.parse(value) for value in values)
    if not kinds:
        raise ConfigurationError(
            "At least one event kind must be given: create, modify or delete"
        )
    return kinds


@dataclass(frozen=True, slots=True)
class WatchedDirectory:
    """A registered directory and the handle the service issued for it."""

    handle: WatchHandle
    path: Path


@dataclass(frozen=True, slots=True)
class RawEvent:
    """Change notification as reported by a watch service.

    ``name`` is relative to the directory owning ``handle`` and is empty when
    the event concerns that directory itself.
    """

    handle: WatchHandle
    name: str
    kinds: frozenset[EventKind] = frozenset()
    is_directory: bool = False
    overflow: bool = False


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """Resolved change delivered to the application callback."""

    kind: EventKind
    path: Path


class WatcherCallback(Protocol):
    """Anything that consumes ``(kind, absolute path)`` pairs."""

    def __call__(self, kind: EventKind, path: str) -> object: ...


__all__ = [
    "ALL_EVENT_KINDS",
    "ChangeEvent",
    "EventKind",
    "RawEvent",
    "WatchHandle",
    "WatchedDirectory",
    "WatcherCallback",
    "parse_event_kinds",
]
