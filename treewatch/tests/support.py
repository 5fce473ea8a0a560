"""Test doubles and polling helpers shared by the test-suite."""
from __future__ import annotations

import itertools
import os
import time
from pathlib import Path
from queue import Queue
from typing import Callable

from treewatch.errors import ShutdownError, StaleHandleError
from treewatch.watcher.service import WatchService
from treewatch.watcher.types import EventKind, RawEvent

_Sentinel = object()


class FakeWatchService(WatchService):
    """In-memory service: tests push batches and mark handles stale by hand."""

    def __init__(self) -> None:
        self._queue: Queue[list[RawEvent] | object] = Queue()
        self._tokens = itertools.count(1)
        self.handles: dict[Path, int] = {}
        self.stale: set[int] = set()
        self.fail_paths: set[Path] = set()
        self.fail_close = False
        self.closed = False
        self.cancelled = False

    def add_watch(self, path: Path, kinds: frozenset[EventKind]) -> int:
        if path in self.fail_paths:
            raise PermissionError(13, "Permission denied", os.fspath(path))
        if not path.is_dir():
            raise FileNotFoundError(2, "No such file or directory", os.fspath(path))
        if path not in self.handles:
            self.handles[path] = next(self._tokens)
        return self.handles[path]

    def handle_for(self, path: Path) -> int:
        return self.handles[path]

    def emit(self, *events: RawEvent) -> None:
        self._queue.put(list(events))

    def read(self) -> list[RawEvent] | None:
        if self.cancelled:
            return None
        item = self._queue.get()
        if item is _Sentinel:
            return None
        return item  # type: ignore[return-value]

    def reset(self, handle: object) -> None:
        if handle in self.stale:
            self.stale.discard(handle)
            raise StaleHandleError(handle)

    def cancel(self) -> None:
        self.cancelled = True
        self._queue.put(_Sentinel)

    def close(self) -> None:
        self.closed = True
        if self.fail_close:
            raise ShutdownError("close failed")


class Recorder:
    """Callback collecting ``(kind, path)`` pairs delivered by a watcher."""

    def __init__(self) -> None:
        self.calls: list[tuple[EventKind, str]] = []

    def __call__(self, kind: EventKind, path: str) -> None:
        self.calls.append((kind, path))


def wait_for(predicate: Callable[[], bool], *, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


