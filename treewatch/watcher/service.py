"""Native watch services: the seam between the watcher and the operating system.

A service hands out one handle per registered directory, blocks until change
notifications are available, and reports handles that the OS has invalidated.
Two implementations exist: :class:`InotifyWatchService` talks to Linux inotify
directly, :class:`WatchdogWatchService` schedules one non-recursive
``watchdog`` observer watch per directory and works on every platform
``watchdog`` supports.
"""
from __future__ import annotations

import itertools
import logging
import os
import select
import sys
import threading
from pathlib import Path
from queue import Empty, Queue
from typing import Any, Callable

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

try:  # pragma: no cover - Linux only dependency
    from inotify_simple import INotify, flags
except (ImportError, OSError):  # pragma: no cover - Linux only dependency
    INotify = None  # type: ignore[assignment,misc]
    flags = None  # type: ignore[assignment]

from ..config import BACKENDS
from ..errors import ConfigurationError, ServiceInitError, ShutdownError, StaleHandleError
from ..logger import log_event
from .types import EventKind, RawEvent, WatchHandle

LOGGER_NAME = "treewatch.service"


class WatchService:
    """Base protocol for native watch services."""

    def add_watch(self, path: Path, kinds: frozenset[EventKind]) -> WatchHandle:
        """Start watching *path* and return its handle; raise ``OSError`` on failure."""
        raise NotImplementedError

    def read(self) -> list[RawEvent] | None:
        """Block until events are available; ``None`` once cancelled."""
        raise NotImplementedError

    def reset(self, handle: WatchHandle) -> None:
        """Re-arm *handle* after its events were drained.

        Raises :class:`StaleHandleError` when the OS no longer honours it.
        """
        raise NotImplementedError

    def cancel(self) -> None:
        """Wake a pending :meth:`read` and make every later call return ``None``."""
        raise NotImplementedError

    def close(self) -> None:
        """Release the native resources; raise :class:`ShutdownError` on failure."""
        raise NotImplementedError


class InotifyWatchService(WatchService):
    """Linux inotify backend.

    Watch descriptors are the handles. Cancellation uses a self-pipe that is
    selected together with the inotify descriptor.
    """

    def __init__(self) -> None:
        if INotify is None:
            raise ServiceInitError("inotify_simple is not available on this platform")
        try:
            self._inotify = INotify()
        except OSError as exc:
            raise ServiceInitError(f"Cannot allocate inotify instance: {exc}") from exc
        try:
            self._wake_r, self._wake_w = os.pipe()
        except OSError as exc:
            self._inotify.close()
            raise ServiceInitError(f"Cannot allocate wake-up pipe: {exc}") from exc
        self._kind_masks = {
            EventKind.CREATE: flags.CREATE | flags.MOVED_TO,
            EventKind.MODIFY: flags.MODIFY,
            EventKind.DELETE: flags.DELETE | flags.MOVED_FROM,
        }
        self._stale: set[int] = set()
        self._cancelled = False
        self._closed = False
        self._lock = threading.Lock()

    def add_watch(self, path: Path, kinds: frozenset[EventKind]) -> int:
        mask = flags.ONLYDIR
        for kind in kinds:
            mask |= self._kind_masks[kind]
        wd = self._inotify.add_watch(os.fspath(path), mask)
        # inotify reuses the descriptor when the same inode is watched again.
        self._stale.discard(wd)
        return wd

    def read(self) -> list[RawEvent] | None:
        while not self._cancelled:
            ready, _, _ = select.select([self._inotify, self._wake_r], [], [])
            if self._wake_r in ready:
                self._cancelled = True
                break
            batch = []
            for event in self._inotify.read(timeout=0):
                raw = self._translate(event)
                if raw is not None:
                    batch.append(raw)
            if batch:
                return batch
        return None

    def _translate(self, event: Any) -> RawEvent | None:
        mask = event.mask
        if mask & flags.Q_OVERFLOW:
            return RawEvent(handle=event.wd, name="", overflow=True)
        if mask & flags.IGNORED:
            self._stale.add(event.wd)
            return RawEvent(handle=event.wd, name="")
        kinds = frozenset(kind for kind, bits in self._kind_masks.items() if mask & bits)
        if not kinds:
            return None
        return RawEvent(
            handle=event.wd,
            name=event.name,
            kinds=kinds,
            is_directory=bool(mask & flags.ISDIR),
        )

    def reset(self, handle: WatchHandle) -> None:
        if handle in self._stale:
            self._stale.discard(handle)
            raise StaleHandleError(handle)

    def cancel(self) -> None:
        with self._lock:
            if self._closed or self._cancelled:
                return
            self._cancelled = True
            os.write(self._wake_w, b"\0")

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        errors: list[str] = []
        for release in (self._inotify.close, lambda: os.close(self._wake_r), lambda: os.close(self._wake_w)):
            try:
                release()
            except OSError as exc:
                errors.append(repr(exc))
        if errors:
            raise ShutdownError("; ".join(errors))


class _DirectoryHandler(FileSystemEventHandler):
    """Routes watchdog events of one directory back to its service."""

    def __init__(
        self,
        service: "WatchdogWatchService",
        handle: int,
        directory: str,
        kinds: frozenset[EventKind],
    ) -> None:
        super().__init__()
        self.service = service
        self.handle = handle
        self.kinds = kinds
        # Some platforms report the resolved path (e.g. /private/var on macOS).
        self.aliases = frozenset({directory, os.path.realpath(directory)})

    def on_any_event(self, event: FileSystemEvent) -> None:
        self.service.accept(self, event)


_Sentinel = object()


class WatchdogWatchService(WatchService):
    """Portable backend built on ``watchdog`` observers.

    Every registered directory gets its own non-recursive watch; recursion is
    left to the directory watcher, exactly as with inotify. Handles are
    integer tokens issued by the service.
    """

    def __init__(self, observer_factory: Callable[[], Any] | None = None) -> None:
        self.logger = logging.getLogger(LOGGER_NAME)
        self._queue: Queue[list[RawEvent] | object] = Queue()
        self._tokens = itertools.count(1)
        self._watches: dict[int, Any] = {}
        self._handles_by_path: dict[str, int] = {}
        self._stale: set[int] = set()
        self._lock = threading.Lock()
        self._cancelled = False
        self._closed = False
        try:
            self._observer = (observer_factory or Observer)()
            self._observer.start()
        except (OSError, RuntimeError) as exc:
            raise ServiceInitError(f"Cannot start watchdog observer: {exc}") from exc

    def add_watch(self, path: Path, kinds: frozenset[EventKind]) -> int:
        directory = os.path.normpath(os.fspath(path))
        if not os.path.exists(directory):
            raise FileNotFoundError(f"No such directory: {directory}")
        if not os.path.isdir(directory):
            raise NotADirectoryError(f"Not a directory: {directory}")

        with self._lock:
            existing = self._handles_by_path.get(directory)
            if existing is not None:
                return existing
            handle = next(self._tokens)
            handler = _DirectoryHandler(self, handle, directory, kinds)
            self._watches[handle] = self._observer.schedule(handler, directory, recursive=False)
            self._handles_by_path[directory] = handle
        return handle

    def accept(self, handler: _DirectoryHandler, event: FileSystemEvent) -> None:
        """Translate a watchdog *event* seen by *handler* into raw events."""

        handle = handler.handle
        src = os.path.normpath(os.fsdecode(event.src_path))
        batch: list[RawEvent] = []

        if event.event_type == EVENT_TYPE_MOVED:
            dest = os.path.normpath(os.fsdecode(event.dest_path))
            if os.path.dirname(src) in handler.aliases:
                batch.append(self._raw(handle, src, EventKind.DELETE, event.is_directory))
            if os.path.dirname(dest) in handler.aliases:
                batch.append(self._raw(handle, dest, EventKind.CREATE, event.is_directory))
        elif src in handler.aliases:
            if event.event_type == EVENT_TYPE_DELETED:
                with self._lock:
                    self._stale.add(handle)
                batch.append(RawEvent(handle=handle, name=""))
        elif os.path.dirname(src) in handler.aliases:
            kind = _WATCHDOG_KINDS.get(event.event_type)
            if kind is not None:
                batch.append(self._raw(handle, src, kind, event.is_directory))

        batch = [raw for raw in batch if not raw.kinds or raw.kinds & handler.kinds]
        if batch:
            self._queue.put(batch)

    @staticmethod
    def _raw(handle: int, path: str, kind: EventKind, is_directory: bool) -> RawEvent:
        return RawEvent(
            handle=handle,
            name=os.path.basename(path),
            kinds=frozenset({kind}),
            is_directory=is_directory,
        )

    def read(self) -> list[RawEvent] | None:
        if self._cancelled:
            return None
        item = self._queue.get()
        if item is _Sentinel:
            self._cancelled = True
            return None
        batch = list(item)  # type: ignore[call-overload]
        while True:
            try:
                item = self._queue.get_nowait()
            except Empty:
                break
            if item is _Sentinel:
                self._cancelled = True
                break
            batch.extend(item)  # type: ignore[arg-type]
        return batch

    def reset(self, handle: WatchHandle) -> None:
        with self._lock:
            if handle not in self._stale:
                return
            self._stale.discard(handle)
            watch = self._watches.pop(handle, None)
            for path, known in list(self._handles_by_path.items()):
                if known == handle:
                    del self._handles_by_path[path]
        if watch is not None:
            try:
                self._observer.unschedule(watch)
            except KeyError:
                log_event(
                    self.logger,
                    level=logging.DEBUG,
                    action="service.unschedule",
                    message="Watch was already removed by the observer",
                    handle=handle,
                )
        raise StaleHandleError(handle)

    def cancel(self) -> None:
        self._cancelled = True
        self._queue.put(_Sentinel)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._observer.stop()
            self._observer.join()
        except (OSError, RuntimeError) as exc:
            raise ShutdownError(f"Cannot stop watchdog observer: {exc}") from exc


_WATCHDOG_KINDS = {
    EVENT_TYPE_CREATED: EventKind.CREATE,
    EVENT_TYPE_MODIFIED: EventKind.MODIFY,
    EVENT_TYPE_DELETED: EventKind.DELETE,
}


def create_service(backend: str = "auto") -> WatchService:
    """Instantiate the watch service named by *backend*."""

    if backend not in BACKENDS:
        raise ConfigurationError(f"Unknown backend {backend!r}")
    if backend == "inotify" or (
        backend == "auto" and sys.platform.startswith("linux") and INotify is not None
    ):
        return InotifyWatchService()
    return WatchdogWatchService()


__all__ = [
    "InotifyWatchService",
    "WatchService",
    "WatchdogWatchService",
    "create_service",
]
