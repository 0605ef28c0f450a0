"""
Gomon Monitor.

Ties the watcher, the debouncer and the process supervisor together
into the watch-debounce-restart loop.
Requires Python 3.11+.
"""

import asyncio
import os
import time
from collections.abc import Callable, Coroutine, Sequence
from pathlib import Path
from typing import Any

from monitor.shutdown import (
    ShutdownCoordinator,
    install_signal_handlers,
    remove_signal_handlers,
)
from process.supervisor import ProcessSupervisor
from utils.config import Settings, get_settings
from utils.errors import EnumerationError, GomonError, WatchError
from utils.logger import LoggerMixin
from watcher.debouncer import DebounceFilter
from watcher.events import Operation
from watcher.file_watcher import ChangeEventSource
from watcher.tree import IgnoreRules, sub_directories


class Monitor(LoggerMixin):
    """
    The supervisor object: constructed once, then run until shutdown.

    Lifecycle is start() (enumerate, watch, launch the child), the event
    loop, then the shutdown sequence. Every background task is watched by
    a fault boundary that turns an unexpected exception into a shutdown
    request, so the child's process group is never left behind.
    """

    def __init__(
        self,
        command: Sequence[str],
        root: Path | str | None = None,
        settings: Settings | None = None,
        source: ChangeEventSource | None = None,
        supervisor: ProcessSupervisor | None = None,
        clock: Callable[[], float] = time.monotonic,
        handle_signals: bool = True,
    ) -> None:
        """
        Initialize the monitor.

        Args:
            command: Program and arguments of the supervised child
            root: Project root to watch, defaults to the working directory
            settings: Application settings, defaults to get_settings()
            source: Change event source, defaults to a watchdog source
            supervisor: Process supervisor, defaults to one for `command`
            clock: Monotonic time source for the debouncer
            handle_signals: Register SIGINT/SIGHUP/SIGTERM handlers
        """
        settings = settings or get_settings()
        watcher_settings = settings.watcher

        self.root = Path(root) if root is not None else Path.cwd()
        self.ignore = IgnoreRules(
            names=frozenset(watcher_settings.ignored_dirs),
            hidden_prefix=watcher_settings.hidden_prefix,
        )
        self.source = source or ChangeEventSource()
        self.supervisor = supervisor or ProcessSupervisor(
            command, kill_timeout=settings.process.kill_timeout
        )
        self.debouncer = DebounceFilter(
            threshold=watcher_settings.debounce_threshold,
            relevant_extensions=watcher_settings.relevant_extensions,
            clock=clock,
        )
        self.coordinator = ShutdownCoordinator(self.source, self.supervisor)
        self._watch_new_directories = watcher_settings.watch_new_directories
        self._handle_signals = handle_signals
        self._tasks: set[asyncio.Task[Any]] = set()

    async def start(self) -> None:
        """
        Enumerate the tree, register watches and launch the first child.

        Raises:
            EnumerationError: If the root cannot be read
            WatcherInitError: If the watcher cannot be started
            LaunchError: If the child cannot be launched
        """
        directories = sub_directories(self.root, self.ignore)
        self.source.open()
        self._watch_all(directories)

        self.log.info(
            "starting_gomon",
            root=str(self.root),
            watched=len(self.source.watch_set),
            command=" ".join(self.supervisor.command),
        )
        await self.supervisor.start()

    async def run(self) -> int:
        """
        Run until a signal or a fault requests shutdown.

        Returns:
            Exit code for the process

        Raises:
            GomonError: If startup fails; watches and child are released first
        """
        loop = asyncio.get_running_loop()
        installed = (
            install_signal_handlers(loop, self.coordinator) if self._handle_signals else []
        )
        previous_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._on_loop_exception)

        try:
            try:
                await self.start()
            except GomonError:
                await self.coordinator.shutdown()
                raise

            self._spawn(self._consume_events(), "events")
            self._spawn(self._consume_errors(), "errors")

            await self.coordinator.wait()
            return await self.coordinator.shutdown()
        finally:
            await self._cancel_tasks()
            loop.set_exception_handler(previous_handler)
            remove_signal_handlers(loop, installed)

    def _watch_all(self, directories: list[Path]) -> None:
        for directory in directories:
            try:
                self.source.watch(directory)
            except WatchError as e:
                self.log.warning("watch_failed", path=e.path, error=e.reason)

    async def _consume_events(self) -> None:
        async for event in self.source.events():
            if self.coordinator.requested:
                return
            if self._watch_new_directories and event.operation is Operation.CREATE:
                self._watch_new_tree(event.path)

            if not self.debouncer.should_act(event):
                continue

            self.log.info(
                "change_detected",
                operation=event.operation.value,
                file=os.path.basename(event.path),
            )
            self.log.info("restarting")
            self._spawn(self.supervisor.restart(), "restart")

    async def _consume_errors(self) -> None:
        async for error in self.source.errors():
            self.log.error("watch_error", error=error.message, path=error.path)

    def _watch_new_tree(self, path: str) -> None:
        if not os.path.isdir(path) or self.ignore.matches(os.path.basename(path)):
            return
        try:
            directories = sub_directories(path, self.ignore)
        except EnumerationError as e:
            self.log.warning("watch_failed", path=path, error=str(e))
            return
        self._watch_all(directories)
        self.log.debug("watch_set_extended", path=path, added=len(directories))

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task[Any]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.coordinator.request_fault(exc)

    def _on_loop_exception(
        self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
    ) -> None:
        exc = context.get("exception")
        if exc is None:
            exc = RuntimeError(context.get("message", "unhandled event loop error"))
        self.coordinator.request_fault(exc)

    async def _cancel_tasks(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
