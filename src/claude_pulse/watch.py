"""
Directory watching on top of watchdog.

One watchdog observer serves every watch in the process. Each directory is
scheduled at most once, however many subscribers reference it; the schedule
is dropped when its last subscriber goes away.

Watchdog delivers events on its own thread. They are handed to the owning
asyncio loop with ``call_soon_threadsafe`` and dispatched there, so all
subscriber callbacks run on the loop and never concurrently. Dispatch
re-checks that a subscription is still active, so once ``unsubscribe()``
returns (on the loop) its callback is never invoked again.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

logger = logging.getLogger("claude_pulse.watch")

ChangeCallback = Callable[[Path], None]

# Event types that mean directory contents or file contents changed.
# Reads (opened / closed_no_write) are ignored so re-reading a transcript
# doesn't trigger another read.
_CHANGE_EVENT_TYPES = {"created", "modified", "moved", "deleted", "closed"}


class Subscription:
    """
    Interest in changes inside one directory.

    Attributes:
        directory: Watched directory (absolute)
        name: If set, only changes to this file name are delivered
        active: False once released
    """

    def __init__(
        self,
        watcher: "DirectoryWatcher",
        directory: str,
        callback: ChangeCallback,
        name: str | None,
    ):
        self._watcher = watcher
        self.directory = directory
        self.callback = callback
        self.name = name
        self.active = True

    def cancel(self) -> None:
        """Release this subscription. Safe to call more than once."""
        self._watcher.unsubscribe(self)

    def matches(self, path: Path) -> bool:
        return self.name is None or path.name == self.name

    def __repr__(self) -> str:
        target = os.path.join(self.directory, self.name) if self.name else self.directory
        return f"Subscription({target!r}, active={self.active})"


class _DirectoryEventHandler(FileSystemEventHandler):
    """Forwards watchdog events for one directory to the DirectoryWatcher."""

    def __init__(self, directory: str, on_change: Callable[[str, Path], None]):
        super().__init__()
        self.directory = directory
        self._on_change = on_change

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in _CHANGE_EVENT_TYPES:
            return
        self._on_change(self.directory, Path(os.fsdecode(event.src_path)))
        dest_path = getattr(event, "dest_path", "")
        if dest_path:
            self._on_change(self.directory, Path(os.fsdecode(dest_path)))


class DirectoryWatcher:
    """
    Shared, reference-counted directory watches.

    Usage:
        watcher = DirectoryWatcher()
        watcher.start()          # inside the running loop
        sub = watcher.subscribe(Path("/some/dir"), on_change)
        ...
        sub.cancel()
        watcher.stop()
    """

    def __init__(
        self,
        *,
        use_polling: bool = False,
        poll_interval: float = 1.0,
        loop: asyncio.AbstractEventLoop | None = None,
        observer_factory: Callable[[], object] | None = None,
    ):
        """
        Args:
            use_polling: Use watchdog's PollingObserver instead of native events
            poll_interval: Seconds between polls when polling
            loop: Loop that owns all state (defaults to the running loop at start())
            observer_factory: Override observer construction (tests)
        """
        self.use_polling = use_polling
        self.poll_interval = poll_interval
        self._loop = loop
        self._observer_factory = observer_factory
        self._observer = None
        self._started = False
        # directory -> watchdog ObservedWatch
        self._watches: dict[str, object] = {}
        # directory -> active subscriptions
        self._subscribers: dict[str, list[Subscription]] = {}

    @property
    def watched_directories(self) -> set[str]:
        """Directories currently scheduled on the observer."""
        return set(self._watches)

    def start(self) -> None:
        """Start the observer. Captures the running loop unless one was given."""
        if self._started:
            return
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        observer = self._ensure_observer()
        try:
            observer.start()
        except OSError as e:
            if self.use_polling or self._observer_factory is not None:
                raise
            # Native backend unavailable (e.g. inotify limits); fall back to polling.
            logger.warning(f"Native file events unavailable ({e}), falling back to polling")
            self._switch_to_polling()
        self._started = True

    def stop(self) -> None:
        """Release every subscription and stop the observer."""
        for subscriptions in list(self._subscribers.values()):
            for subscription in subscriptions:
                subscription.active = False
        self._subscribers.clear()
        self._watches.clear()

        if self._observer is not None and self._started:
            self._observer.unschedule_all()
            self._observer.stop()
            self._observer.join(timeout=5.0)
        self._observer = None
        self._started = False

    def subscribe(
        self,
        directory: Path,
        callback: ChangeCallback,
        *,
        name: str | None = None,
    ) -> Subscription:
        """
        Subscribe to changes inside a directory.

        Args:
            directory: Directory to watch (must exist)
            callback: Called on the loop with the changed path
            name: Restrict delivery to changes of this file name

        Returns:
            Subscription to cancel later

        Raises:
            OSError: If the directory cannot be watched
        """
        key = os.path.abspath(directory)
        if key not in self._watches:
            if not os.path.isdir(key):
                raise FileNotFoundError(f"Not a directory: {key}")
            observer = self._ensure_observer()
            handler = _DirectoryEventHandler(key, self._on_fs_change)
            self._watches[key] = observer.schedule(handler, key, recursive=False)
            logger.debug(f"Watching directory {key}")

        subscription = Subscription(self, key, callback, name)
        self._subscribers.setdefault(key, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Release a subscription, dropping the directory watch if it was the last."""
        if not subscription.active:
            return
        subscription.active = False

        key = subscription.directory
        subscriptions = self._subscribers.get(key, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)
        if subscriptions:
            return

        self._subscribers.pop(key, None)
        watch = self._watches.pop(key, None)
        if watch is not None and self._observer is not None:
            try:
                self._observer.unschedule(watch)
            except KeyError:
                # Already gone (directory deleted under the observer)
                pass
            logger.debug(f"Stopped watching directory {key}")

    def subscriber_count(self, directory: Path) -> int:
        """Number of active subscriptions for a directory."""
        return len(self._subscribers.get(os.path.abspath(directory), []))

    def _ensure_observer(self):
        if self._observer is None:
            if self._observer_factory is not None:
                self._observer = self._observer_factory()
            elif self.use_polling:
                self._observer = PollingObserver(timeout=self.poll_interval)
            else:
                self._observer = Observer()
        return self._observer

    def _switch_to_polling(self) -> None:
        # Re-create every schedule on a polling observer.
        try:
            self._observer.unschedule_all()
        except Exception:
            logger.debug("Failed to release native observer watches", exc_info=True)
        self.use_polling = True
        self._observer = PollingObserver(timeout=self.poll_interval)
        for key in list(self._watches):
            handler = _DirectoryEventHandler(key, self._on_fs_change)
            self._watches[key] = self._observer.schedule(handler, key, recursive=False)
        self._observer.start()

    def _on_fs_change(self, directory: str, path: Path) -> None:
        """Called from the watchdog thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self._dispatch, directory, path)
        except RuntimeError:
            # Loop closed between the check and the call
            pass

    def _dispatch(self, directory: str, path: Path) -> None:
        """Deliver a change to the directory's subscribers. Runs on the loop."""
        for subscription in list(self._subscribers.get(directory, [])):
            if not subscription.active or not subscription.matches(path):
                continue
            try:
                subscription.callback(path)
            except Exception:
                logger.exception(f"Error in change callback for {path}")
