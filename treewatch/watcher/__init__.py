"""Watcher subsystem for treewatch."""
from .directory_watcher import DirectoryWatcher, create_watcher
from .registry import WatchRegistry
from .service import InotifyWatchService, WatchService, WatchdogWatchService, create_service
from .types import (
    ALL_EVENT_KINDS,
    ChangeEvent,
    EventKind,
    RawEvent,
    WatchedDirectory,
    WatcherCallback,
    parse_event_kinds,
)

__all__ = [
    "ALL_EVENT_KINDS",
    "ChangeEvent",
    "DirectoryWatcher",
    "EventKind",
    "InotifyWatchService",
    "RawEvent",
    "WatchRegistry",
    "WatchService",
    "WatchdogWatchService",
    "WatchedDirectory",
    "WatcherCallback",
    "create_service",
    "create_watcher",
    "parse_event_kinds",
]
