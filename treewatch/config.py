"""Configuration for treewatch watchers."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import ConfigurationError

BACKENDS = ("auto", "inotify", "watchdog")


@dataclass(frozen=True)
class WatcherOptions:
    """Options that control how a watcher talks to the operating system."""

    backend: str = "auto"
    close_timeout: float = 5.0
    thread_name: str = "DirectoryWatcher"

    def __post_init__(self) -> None:
        if self.backend not in BACKENDS:
            raise ConfigurationError(
                f"Unknown backend {self.backend!r}; expected one of: {', '.join(BACKENDS)}"
            )
        if self.close_timeout < 0:
            raise ConfigurationError("close_timeout must not be negative")
