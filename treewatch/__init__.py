"""treewatch package exports."""

from .cli import main as cli_main
from .config import WatcherOptions
from .errors import (
    ConfigurationError,
    RegistrationError,
    ServiceInitError,
    ShutdownError,
    StaleHandleError,
    WatcherError,
)
from .watcher import DirectoryWatcher, EventKind, create_watcher

__all__ = [
    "cli_main",
    "ConfigurationError",
    "DirectoryWatcher",
    "EventKind",
    "RegistrationError",
    "ServiceInitError",
    "ShutdownError",
    "StaleHandleError",
    "WatcherError",
    "WatcherOptions",
    "create_watcher",
]
