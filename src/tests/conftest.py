"""
Gomon Test Configuration.

Pytest fixtures and test doubles.
Requires Python 3.11+.
"""

import asyncio
import os
import signal
import sys
import threading
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
from watchdog.events import FileSystemEvent

from utils.config import Settings, WatcherSettings, get_settings
from watcher.file_watcher import ChangeEventSource

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX process groups")


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeWatch:
    def __init__(self, path: str) -> None:
        self.path = path


class FakeObserver:
    """
    In-memory stand-in for a watchdog observer.

    Like the inotify backend, it only delivers events whose parent
    directory has been scheduled.
    """

    def __init__(self) -> None:
        self.handlers: dict[str, Any] = {}
        self.started = False
        self.stopped = 0
        self.joined_in: list[threading.Thread] = []

    def start(self) -> None:
        self.started = True

    def schedule(self, handler: Any, path: str, recursive: bool = False) -> FakeWatch:
        if not os.path.isdir(path):
            raise FileNotFoundError(2, "No such file or directory", path)
        self.handlers[path] = handler
        return FakeWatch(path)

    def unschedule(self, watch: FakeWatch) -> None:
        del self.handlers[watch.path]

    def stop(self) -> None:
        self.stopped += 1

    def join(self, timeout: float | None = None) -> None:
        self.joined_in.append(threading.current_thread())

    def emit(self, event: FileSystemEvent) -> bool:
        """Deliver an event if its directory is watched."""
        parent = os.path.dirname(os.fsdecode(event.src_path))
        handler = self.handlers.get(parent) or self.handlers.get(os.fsdecode(event.src_path))
        if handler is None:
            return False
        handler.dispatch(event)
        return True


class FakeProcess:
    """Minimal asyncio.subprocess.Process look-alike."""

    _next_pid = 40000

    def __init__(self, command: list[str]) -> None:
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.command = command
        self.returncode: int | None = None
        self.ignore_term = False
        # Other live members of the group this process leads
        self.descendants = 0
        self._exited = asyncio.Event()

    def exit(self, returncode: int) -> None:
        if self.returncode is None:
            self.returncode = returncode
            self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode


class FakeProcessFactory:
    """
    Records spawns and group kills of fake processes.

    `log` holds ("spawn", pid, live_pids) and ("kill", pid, force)
    tuples in call order.
    """

    def __init__(self) -> None:
        self.processes: list[FakeProcess] = []
        self.log: list[tuple[Any, ...]] = []
        self.missing_executable = False

    @property
    def live(self) -> list[FakeProcess]:
        """Processes whose group still has a member, leader or descendant."""
        return [p for p in self.processes if p.returncode is None or p.descendants]

    async def spawn(self, *command: str, **kwargs: Any) -> FakeProcess:
        if self.missing_executable:
            raise FileNotFoundError(2, "No such file or directory", command[0])
        live = [p.pid for p in self.live]
        process = FakeProcess(list(command))
        self.processes.append(process)
        self.log.append(("spawn", process.pid, live))
        return process

    def kill(self, pgid: int, force: bool = False) -> None:
        process = next(p for p in self.processes if p.pid == pgid)
        if process.returncode is not None and not process.descendants:
            raise ProcessLookupError(pgid)
        self.log.append(("kill", pgid, force))
        if force:
            process.descendants = 0
            process.exit(-signal.SIGKILL)
        elif not process.ignore_term:
            process.descendants = 0
            process.exit(-signal.SIGTERM)

    @property
    def spawns(self) -> list[tuple[Any, ...]]:
        return [entry for entry in self.log if entry[0] == "spawn"]

    @property
    def kills(self) -> list[tuple[Any, ...]]:
        return [entry for entry in self.log if entry[0] == "kill"]


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    """Poll the event loop until predicate() holds."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Keep the settings singleton from leaking between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_observer() -> FakeObserver:
    return FakeObserver()


@pytest.fixture
def source(fake_observer: FakeObserver) -> ChangeEventSource:
    """Change event source backed by the fake observer."""
    return ChangeEventSource(observer_factory=lambda: fake_observer)


@pytest.fixture
def processes() -> FakeProcessFactory:
    return FakeProcessFactory()


@pytest.fixture
def settings() -> Settings:
    """Default settings with a short debounce window."""
    return Settings(watcher=WatcherSettings(debounce_threshold_ms=100))


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """
    A small Go project.

    project/
        main.go
        README.md
        src/main.go
        src/templates/index.tmpl
        vendor/lib/x.go
        node_modules/pkg/
        .git/objects/
    """
    root = tmp_path / "project"
    (root / "src" / "templates").mkdir(parents=True)
    (root / "vendor" / "lib").mkdir(parents=True)
    (root / "node_modules" / "pkg").mkdir(parents=True)
    (root / ".git" / "objects").mkdir(parents=True)

    (root / "main.go").write_text("package main\n")
    (root / "README.md").write_text("# project\n")
    (root / "src" / "main.go").write_text("package src\n")
    (root / "src" / "templates" / "index.tmpl").write_text("{{ . }}\n")
    (root / "vendor" / "lib" / "x.go").write_text("package lib\n")
    return root
