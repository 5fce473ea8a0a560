"""Bookkeeping of watch handles and the directories they represent."""
from __future__ import annotations

import os
import threading
from pathlib import Path

from ..errors import RegistrationError
from .service import WatchService
from .types import EventKind, WatchedDirectory, WatchHandle


class WatchRegistry:
    """Flat map from service handles to absolute directory paths.

    The service call and the insert happen under one lock, so a reader never
    sees a handle that is live in the OS but missing here.
    """

    def __init__(self, service: WatchService, event_kinds: frozenset[EventKind]) -> None:
        self._service = service
        self._event_kinds = event_kinds
        self._directories: dict[WatchHandle, Path] = {}
        self._lock = threading.Lock()

    def register(self, path: str | os.PathLike[str]) -> WatchHandle:
        """Watch *path* for the configured kinds and remember its handle.

        Raises :class:`RegistrationError` when the service refuses the
        directory; nothing is stored in that case.
        """

        directory = Path(path).expanduser().absolute()
        with self._lock:
            try:
                handle = self._service.add_watch(directory, self._event_kinds)
            except OSError as exc:
                raise RegistrationError(directory, exc.strerror or str(exc)) from exc
            self._directories[handle] = directory
        return handle

    def resolve(self, handle: WatchHandle) -> Path | None:
        with self._lock:
            return self._directories.get(handle)

    def unregister(self, handle: WatchHandle) -> Path | None:
        """Forget *handle*; returns the path it mapped to, if any."""

        with self._lock:
            return self._directories.pop(handle, None)

    def snapshot(self) -> list[WatchedDirectory]:
        with self._lock:
            return [WatchedDirectory(handle, path) for handle, path in self._directories.items()]

    def handles(self) -> set[WatchHandle]:
        with self._lock:
            return set(self._directories)

    def paths(self) -> set[Path]:
        with self._lock:
            return set(self._directories.values())

    def __contains__(self, handle: object) -> bool:
        with self._lock:
            return handle in self._directories

    def __len__(self) -> int:
        with self._lock:
            return len(self._directories)


__all__ = ["WatchRegistry"]
