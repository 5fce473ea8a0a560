"""Shared fixtures for the treewatch test-suite."""
from __future__ import annotations

import logging

import pytest

from support import FakeWatchService, Recorder
from treewatch.watcher.directory_watcher import DirectoryWatcher
from treewatch.watcher.types import EventKind


@pytest.fixture()
def watch_logger() -> logging.Logger:
    logger = logging.getLogger("tests.treewatch")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture()
def fake_service() -> FakeWatchService:
    return FakeWatchService()


@pytest.fixture()
def watcher_factory(fake_service: FakeWatchService, watch_logger: logging.Logger):
    created: list[DirectoryWatcher] = []

    def factory(kinds=(EventKind.CREATE, EventKind.MODIFY, EventKind.DELETE), **kwargs):
        recorder = kwargs.pop("callback", None) or Recorder()
        watcher = DirectoryWatcher.create(
            recorder,
            kinds,
            service_factory=lambda: fake_service,
            logger=watch_logger,
            **kwargs,
        )
        created.append(watcher)
        return watcher, recorder

    yield factory

    for watcher in created:
        watcher.close()
