"""Shared fixtures: an in-memory watchdog observer and helpers around it."""

import logging
import os
from pathlib import Path

import pytest

from claude_pulse.watch import DirectoryWatcher


class FakeWatch:
    """Stand-in for watchdog's ObservedWatch."""

    def __init__(self, path: str):
        self.path = path

    def __repr__(self) -> str:
        return f"FakeWatch({self.path!r})"


class FakeObserver:
    """Records schedules instead of touching the filesystem."""

    def __init__(self):
        self.handlers: dict[FakeWatch, object] = {}
        self.started = False
        self.stopped = False

    @property
    def scheduled_paths(self) -> list[str]:
        return sorted(watch.path for watch in self.handlers)

    def schedule(self, handler, path, recursive=False):
        watch = FakeWatch(path)
        self.handlers[watch] = handler
        return watch

    def unschedule(self, watch):
        del self.handlers[watch]

    def unschedule_all(self):
        self.handlers.clear()

    def start(self):
        self.started = True

    def stop(self):
        self.stopped = True

    def join(self, timeout=None):
        pass


@pytest.fixture
def fake_observer():
    return FakeObserver()


@pytest.fixture
def directory_watcher(fake_observer):
    """DirectoryWatcher backed by FakeObserver; callbacks run via notify()."""
    return DirectoryWatcher(observer_factory=lambda: fake_observer)


@pytest.fixture
def notify(directory_watcher):
    """Simulate a filesystem change to `path`, delivered as on the loop."""

    def _notify(path: Path) -> None:
        directory_watcher._dispatch(os.path.abspath(path.parent), Path(path))

    return _notify


@pytest.fixture
def restore_root_logger():
    """Undo configure_logging() changes to the root logger."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
