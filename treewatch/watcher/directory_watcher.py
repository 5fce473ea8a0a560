"""Recursive directory watcher with a self-extending watch set."""
from __future__ import annotations

import logging
import os
import stat
import threading
from functools import partial
from pathlib import Path
from typing import Callable, Iterable, Iterator

from ..config import WatcherOptions
from ..errors import RegistrationError, ServiceInitError, ShutdownError, StaleHandleError
from ..logger import configure_logging, log_event
from .registry import WatchRegistry
from .service import WatchService, create_service
from .types import (
    ChangeEvent,
    EventKind,
    RawEvent,
    WatchHandle,
    WatcherCallback,
    parse_event_kinds,
)

LOGGER_NAME = "treewatch.watcher"


class DirectoryWatcher:
    """Watches directories and reports create, modify and delete events.

    Each instance owns one native watch service and one daemon thread that
    drains it. Directories are added with :meth:`watch_directory` (exactly
    one directory) or :meth:`watch_directory_tree` (a directory and all its
    descendants). Whenever a new directory appears below any watched
    directory, it is registered together with its subtree, so a watched tree
    keeps being watched as it grows. The callback runs on the watcher thread
    and receives ``(kind, absolute_path)``.
    """

    def __init__(
        self,
        callback: WatcherCallback,
        event_kinds: Iterable[EventKind | str],
        *,
        options: WatcherOptions | None = None,
        service_factory: Callable[[], WatchService] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._event_kinds = parse_event_kinds(event_kinds)
        self.callback = callback
        self.options = options or WatcherOptions()

        self.logger = logger or logging.getLogger(LOGGER_NAME)
        if not self.logger.hasHandlers():
            configure_logging()

        factory = service_factory or partial(create_service, self.options.backend)
        try:
            self._service = factory()
        except (OSError, ServiceInitError) as exc:
            log_event(
                self.logger,
                level=logging.ERROR,
                action="watcher.service_error",
                message="Failed to allocate the native watch service",
                extra={"error": repr(exc)},
            )
            if isinstance(exc, ServiceInitError):
                raise
            raise ServiceInitError(f"Cannot allocate watch service: {exc}") from exc

        self._registry = WatchRegistry(self._service, self._event_kinds)
        self._closed = False
        self._lock = threading.Lock()
        self._worker = threading.Thread(target=self._run, name=self.options.thread_name, daemon=True)

        log_event(
            self.logger,
            level=logging.INFO,
            action="watcher.start",
            message="Starting directory watcher",
            extra={
                "kinds": sorted(kind.value for kind in self._event_kinds),
                "service": type(self._service).__name__,
            },
        )
        self._worker.start()

    @classmethod
    def create(
        cls,
        callback: WatcherCallback,
        event_kinds: Iterable[EventKind | str],
        **kwargs: object,
    ) -> "DirectoryWatcher":
        """Build a watcher; no directory is watched until one is registered."""

        return cls(callback, event_kinds, **kwargs)  # type: ignore[arg-type]

    @property
    def event_kinds(self) -> frozenset[EventKind]:
        return self._event_kinds

    @property
    def registry(self) -> WatchRegistry:
        return self._registry

    @property
    def closed(self) -> bool:
        return self._closed

    def watch_directory(self, path: str | os.PathLike[str]) -> None:
        """Watch exactly *path*, without its subdirectories."""

        if self._reject_if_closed(path):
            return
        self._register(Path(path))

    def watch_directory_tree(self, path: str | os.PathLike[str]) -> None:
        """Watch *path* and every directory below it.

        The traversal is pre-order and does not follow symbolic links. A
        directory that cannot be registered or listed is logged and the
        traversal carries on with the remaining directories.
        """

        if self._reject_if_closed(path):
            return
        for directory in self._walk(Path(path).expanduser()):
            self.watch_directory(directory)

    def close(self) -> None:
        """Stop the dispatch thread and release the native watch service."""

        with self._lock:
            if self._closed:
                log_event(
                    self.logger,
                    level=logging.INFO,
                    action="watcher.closed",
                    message="Directory watcher already closed",
                )
                return
            self._closed = True

        log_event(
            self.logger,
            level=logging.INFO,
            action="watcher.stop",
            message="Stopping directory watcher",
        )
        self._service.cancel()

        worker = self._worker
        if worker is threading.current_thread():
            return
        worker.join(self.options.close_timeout)
        if worker.is_alive():
            log_event(
                self.logger,
                level=logging.WARNING,
                action="watcher.stop_timeout",
                message="Dispatch thread still busy after close timeout",
                extra={"timeout": self.options.close_timeout},
            )

    def __enter__(self) -> "DirectoryWatcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _reject_if_closed(self, path: str | os.PathLike[str]) -> bool:
        if not self._closed:
            return False
        log_event(
            self.logger,
            level=logging.WARNING,
            action="watcher.rejected",
            message="Registration ignored, watcher is closed",
            path=os.fspath(path),
        )
        return True

    def _register(self, directory: Path) -> WatchHandle | None:
        try:
            handle = self._registry.register(directory)
        except RegistrationError as exc:
            self._report_registration_error(exc)
            return None
        log_event(
            self.logger,
            level=logging.INFO,
            action="watcher.register",
            message=f"Watching directory: {directory}",
            path=directory,
            handle=handle,
        )
        return handle

    def _walk(self, root: Path) -> Iterator[Path]:
        """Yield *root* and its descendant directories in pre-order."""

        stack = [root]
        while stack:
            directory = stack.pop()
            yield directory
            if not directory.is_dir():
                continue
            try:
                with os.scandir(directory) as entries:
                    children = sorted(
                        (Path(entry.path) for entry in entries if entry.is_dir(follow_symlinks=False)),
                        reverse=True,
                    )
            except OSError as exc:
                self._report_registration_error(
                    RegistrationError(directory, f"cannot list subdirectories ({exc.strerror or exc})")
                )
                continue
            stack.extend(children)

    def _report_registration_error(self, error: RegistrationError) -> None:
        log_event(
            self.logger,
            level=logging.ERROR,
            action="watcher.register_error",
            message=str(error),
            path=error.path,
            extra={"error": repr(error.__cause__ or error)},
        )

    def _run(self) -> None:
        try:
            while True:
                batch = self._service.read()
                if batch is None:
                    break
                self._dispatch_batch(batch)
        except OSError as exc:
            log_event(
                self.logger,
                level=logging.ERROR,
                action="watcher.read_error",
                message="Reading from the watch service failed",
                extra={"error": repr(exc)},
            )
        finally:
            try:
                self._service.close()
            except ShutdownError as exc:
                log_event(
                    self.logger,
                    level=logging.ERROR,
                    action="watcher.shutdown_error",
                    message="Failed to release the watch service",
                    extra={"error": repr(exc)},
                )
            else:
                log_event(
                    self.logger,
                    level=logging.INFO,
                    action="watcher.closed",
                    message="Watch service released, dispatch thread exiting",
                )

    def _dispatch_batch(self, batch: list[RawEvent]) -> None:
        touched: dict[WatchHandle, None] = {}
        for raw in batch:
            if raw.overflow:
                log_event(
                    self.logger,
                    level=logging.WARNING,
                    action="watcher.overflow",
                    message="Event queue overflowed, some changes were lost",
                )
                continue
            touched.setdefault(raw.handle, None)
            self._dispatch_event(raw)

        for handle in touched:
            try:
                self._service.reset(handle)
            except StaleHandleError:
                directory = self._registry.unregister(handle)
                if directory is not None:
                    log_event(
                        self.logger,
                        level=logging.INFO,
                        action="watcher.stale",
                        message=f"Stopped watching directory: {directory}",
                        path=directory,
                        handle=handle,
                    )

    def _dispatch_event(self, raw: RawEvent) -> None:
        directory = self._registry.resolve(raw.handle)
        if directory is None or not raw.name:
            return

        absolute = directory / raw.name
        log_event(
            self.logger,
            level=logging.INFO,
            action="watcher.event",
            message=f"{'/'.join(sorted(kind.value for kind in raw.kinds))}: {absolute}",
            path=absolute,
            handle=raw.handle,
            extra={"name": raw.name, "directory": directory, "is_directory": raw.is_directory},
        )

        if EventKind.CREATE in raw.kinds and self._is_new_directory(absolute):
            log_event(
                self.logger,
                level=logging.INFO,
                action="watcher.subtree",
                message=f"New directory, watching its subtree: {absolute}",
                path=absolute,
            )
            self.watch_directory_tree(absolute)

        for kind in EventKind:
            if kind in raw.kinds and kind in self._event_kinds:
                self._notify(ChangeEvent(kind=kind, path=absolute))

    def _is_new_directory(self, path: Path) -> bool:
        try:
            mode = os.lstat(path).st_mode
        except OSError as exc:
            self._report_registration_error(
                RegistrationError(path, f"created entry vanished before inspection ({exc.strerror or exc})")
            )
            return False
        return stat.S_ISDIR(mode)

    def _notify(self, event: ChangeEvent) -> None:
        try:
            self.callback(event.kind, str(event.path))
        except Exception as exc:
            log_event(
                self.logger,
                level=logging.ERROR,
                action="watcher.callback_error",
                message="Watcher callback raised an exception",
                path=event.path,
                extra={"kind": event.kind.value, "error": repr(exc)},
            )


create_watcher = DirectoryWatcher.create


__all__ = ["DirectoryWatcher", "create_watcher"]
