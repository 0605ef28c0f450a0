"""
Gomon Change Event Source.

Cross-platform file system monitoring using watchdog, exposed to
asyncio as a stream of change events and a stream of errors.
Requires Python 3.11+.
"""

import asyncio
import os
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import Any

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver, ObservedWatch

from utils.errors import WatchError, WatcherInitError
from utils.logger import LoggerMixin
from watcher.events import ChangeEvent, Operation, SourceError

_OPERATIONS = {
    EVENT_TYPE_CREATED: Operation.CREATE,
    EVENT_TYPE_DELETED: Operation.REMOVE,
    EVENT_TYPE_MODIFIED: Operation.MODIFY,
    EVENT_TYPE_MOVED: Operation.RENAME,
}

# Marks the end of a stream after close()
_CLOSED = object()


def to_change_event(event: FileSystemEvent) -> ChangeEvent | None:
    """
    Convert a watchdog event into a ChangeEvent.

    Moves are reported against their destination. Open/close events and
    the modified events watchdog emits for a parent directory whenever an
    entry inside it changes are not changes of their own and map to None.
    """
    operation = _OPERATIONS.get(event.event_type)
    if operation is None:
        return None
    if operation is Operation.MODIFY and event.is_directory:
        return None

    raw = event.dest_path if operation is Operation.RENAME else event.src_path
    return ChangeEvent(path=os.fsdecode(raw), operation=operation)


class _QueueingHandler(FileSystemEventHandler):
    """Forwards watchdog events from the observer thread to the source."""

    def __init__(self, source: "ChangeEventSource") -> None:
        super().__init__()
        self._source = source

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            change = to_change_event(event)
        except Exception as e:
            self._source.post_error(SourceError(message=f"unreadable event: {e}"))
            return
        if change is not None:
            self._source.post_event(change)


class ChangeEventSource(LoggerMixin):
    """
    Live stream of filesystem change notifications.

    Owns one non-recursive watchdog watch per registered directory. Events
    arrive on watchdog's observer thread and are handed to the asyncio
    loop that called open().
    """

    def __init__(self, observer_factory: Callable[[], BaseObserver] = Observer) -> None:
        """
        Initialize the source.

        Args:
            observer_factory: Creates the watchdog observer
        """
        self._observer_factory = observer_factory
        self._observer: BaseObserver | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._events: asyncio.Queue[Any] = asyncio.Queue()
        self._errors: asyncio.Queue[Any] = asyncio.Queue()
        self._watches: dict[str, ObservedWatch] = {}
        self._closed = False
        self.handler = _QueueingHandler(self)

    def open(self) -> None:
        """
        Start the observer. Must be called from the running event loop.

        Raises:
            WatcherInitError: If the notification subsystem is unavailable
        """
        if self._observer is not None:
            return
        if self._closed:
            raise WatcherInitError("change event source is closed")

        self._loop = asyncio.get_running_loop()
        try:
            observer = self._observer_factory()
            observer.start()
        except (OSError, RuntimeError) as e:
            raise WatcherInitError(f"cannot start file watcher: {e}") from e

        self._observer = observer
        self.log.debug("observer_started", observer=type(observer).__name__)

    def watch(self, path: Path | str) -> None:
        """
        Register a single directory, non-recursively.

        Args:
            path: Directory to watch

        Raises:
            WatchError: If the directory cannot be watched
        """
        key = str(path)
        if self._observer is None:
            raise WatchError(key, "source is not open")
        if key in self._watches:
            return
        if not os.path.isdir(key):
            raise WatchError(key, "not a directory")

        try:
            watch = self._observer.schedule(self.handler, key, recursive=False)
        except OSError as e:
            raise WatchError(key, e.strerror or str(e)) from e
        self._watches[key] = watch

    @property
    def watch_set(self) -> frozenset[str]:
        """Directories currently registered."""
        return frozenset(self._watches)

    @property
    def is_open(self) -> bool:
        """Check if the source is open."""
        return self._observer is not None and not self._closed

    def post_event(self, change: ChangeEvent) -> None:
        """Queue a change event. Safe to call from any thread."""
        self._call_in_loop(self._publish, change)

    def post_error(self, error: SourceError) -> None:
        """Queue an error notification. Safe to call from any thread."""
        self._call_in_loop(self._errors.put_nowait, error)

    def _call_in_loop(self, callback: Callable[..., None], *args: Any) -> None:
        if self._closed or self._loop is None:
            return
        try:
            self._loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            # Loop already closed, nobody is listening anymore
            pass

    def _publish(self, change: ChangeEvent) -> None:
        if self._closed:
            return
        if change.operation is Operation.REMOVE and change.path in self._watches:
            self._forget(change.path)
            self._errors.put_nowait(
                SourceError(message="watched directory removed", path=change.path)
            )
        self._events.put_nowait(change)

    def _forget(self, key: str) -> None:
        watch = self._watches.pop(key)
        if self._observer is None:
            return
        try:
            self._observer.unschedule(watch)
        except KeyError:
            # Emitter already gone with its directory
            pass

    async def events(self) -> AsyncIterator[ChangeEvent]:
        """Yield change events in arrival order until the source is closed."""
        while True:
            item = await self._events.get()
            if item is _CLOSED:
                return
            yield item

    async def errors(self) -> AsyncIterator[SourceError]:
        """Yield transient error notifications until the source is closed."""
        while True:
            item = await self._errors.get()
            if item is _CLOSED:
                return
            yield item

    def close(self) -> None:
        """
        Stop watching and release all watches. Idempotent.

        Only asks the observer thread to stop; await wait_closed() to
        join it without blocking the event loop.
        """
        if self._closed:
            return
        self._closed = True

        if self._observer is not None:
            self._observer.stop()
        self._watches.clear()

        self._events.put_nowait(_CLOSED)
        self._errors.put_nowait(_CLOSED)
        self.log.info("file_watcher_stopped")

    async def wait_closed(self, timeout: float = 5.0) -> None:
        """Wait for the observer thread to finish after close()."""
        if self._observer is None or not self._closed:
            return
        await asyncio.to_thread(self._observer.join, timeout)
