"""Exception hierarchy for treewatch."""
from __future__ import annotations

from pathlib import Path
from typing import Hashable


class WatcherError(Exception):
    """Base class for all watcher failures."""


class ConfigurationError(WatcherError, ValueError):
    """Raised when a watcher is constructed with invalid settings."""


class ServiceInitError(WatcherError):
    """Raised when the native watch service cannot be allocated."""


class RegistrationError(WatcherError):
    """A single directory could not be registered with the watch service."""

    def __init__(self, path: str | Path, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot watch {self.path}: {reason}")


class StaleHandleError(WatcherError):
    """A watch handle was reported invalid by the operating system."""

    def __init__(self, handle: Hashable) -> None:
        self.handle = handle
        super().__init__(f"Watch handle {handle!r} is no longer valid")


class ShutdownError(WatcherError):
    """Releasing the native watch service failed."""


__all__ = [
    "ConfigurationError",
    "RegistrationError",
    "ServiceInitError",
    "ShutdownError",
    "StaleHandleError",
    "WatcherError",
]
