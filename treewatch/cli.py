"""Command line interface for treewatch."""
from __future__ import annotations

import argparse
import logging
import sys
import threading
from pathlib import Path

from .config import BACKENDS, WatcherOptions
from .errors import WatcherError
from .logger import configure_logging
from .watcher import DirectoryWatcher, EventKind, parse_event_kinds


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "handler"):
        parser.print_help()
        return 1
    return args.handler(args)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="treewatch", description="Recursive directory watcher")
    subparsers = parser.add_subparsers(dest="command")

    watch = subparsers.add_parser("watch", help="Print change events for directories")
    watch.add_argument(
        "--tree",
        type=Path,
        action="append",
        default=[],
        help="Directory to watch together with all of its subdirectories",
    )
    watch.add_argument(
        "--dir",
        type=Path,
        action="append",
        default=[],
        help="Directory to watch without its subdirectories",
    )
    watch.add_argument(
        "--events",
        default="create,modify,delete",
        help="Comma separated event kinds (default: create,modify,delete)",
    )
    watch.add_argument("--backend", choices=BACKENDS, default="auto")
    watch.add_argument("--log-file", type=Path, help="Write JSON logs to this file instead of stderr")
    watch.add_argument("--verbose", action="store_true", help="Log every registration and event")
    watch.add_argument(
        "--duration",
        type=float,
        help="Stop after this many seconds (default: run until interrupted)",
    )
    watch.set_defaults(handler=_handle_watch)

    return parser


def _print_event(kind: EventKind, path: str) -> None:
    print(f"{kind.value}\t{path}", flush=True)


def _handle_watch(args: argparse.Namespace) -> int:
    configure_logging(args.log_file, level=logging.INFO if args.verbose else logging.WARNING)
    if not args.tree and not args.dir:
        print("Nothing to watch: pass --tree or --dir", file=sys.stderr)
        return 1

    try:
        kinds = parse_event_kinds(kind for kind in args.events.split(",") if kind.strip())
        options = WatcherOptions(backend=args.backend)
        watcher = DirectoryWatcher.create(_print_event, kinds, options=options)
    except WatcherError as exc:
        print(f"Watch failed: {exc}", file=sys.stderr)
        return 1

    with watcher:
        for root in args.tree:
            watcher.watch_directory_tree(root)
        for directory in args.dir:
            watcher.watch_directory(directory)
        try:
            threading.Event().wait(args.duration)
        except KeyboardInterrupt:
            pass
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
