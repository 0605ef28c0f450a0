"""
Gomon Process Supervisor.

Owns the lifecycle of the single supervised child process.
Requires Python 3.11+.
"""

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from process.group import kill_group, new_group_kwargs
from utils.errors import LaunchError
from utils.logger import LoggerMixin


class ProcessState(str, Enum):
    """Lifecycle states of the supervisor."""

    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    TERMINATING = "terminating"
    TERMINATED = "terminated"


@dataclass(slots=True)
class SupervisedProcess:
    """A spawned child and the group it leads."""

    command: list[str]
    process: asyncio.subprocess.Process
    pgid: int
    stopping: bool = False
    waiter: asyncio.Task[int] | None = field(default=None, repr=False)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def running(self) -> bool:
        return self.process.returncode is None


class ProcessSupervisor(LoggerMixin):
    """
    Runs one child process at a time, in its own process group.

    Every start and stop goes through a single restart gate, so a new
    child is only spawned once the previous one has exited. Restart
    requests that arrive while the gate is held join the restart already
    in progress instead of queueing another one.
    """

    def __init__(
        self,
        command: Sequence[str],
        kill_timeout: float = 5.0,
        spawn: Callable[..., Any] = asyncio.create_subprocess_exec,
        killer: Callable[[int, bool], None] = kill_group,
    ) -> None:
        """
        Initialize the supervisor.

        Args:
            command: Program and arguments of the child
            kill_timeout: Seconds to wait for exit before a forced kill
            spawn: Coroutine function creating the subprocess
            killer: Signals a process group, see process.group.kill_group
        """
        if not command:
            raise ValueError("command must not be empty")
        self._command = list(command)
        self._kill_timeout = kill_timeout
        self._spawn = spawn
        self._killer = killer
        self._gate = asyncio.Lock()
        self._current: SupervisedProcess | None = None
        self._state = ProcessState.IDLE
        self.restarts = 0

    @property
    def command(self) -> list[str]:
        return list(self._command)

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def current(self) -> SupervisedProcess | None:
        """The most recently started child, if it has not been reaped by a stop."""
        return self._current

    @property
    def restart_in_progress(self) -> bool:
        return self._gate.locked()

    async def start(self) -> SupervisedProcess:
        """
        Start the child under the restart gate.

        Raises:
            LaunchError: If the executable cannot be launched
        """
        async with self._gate:
            if self._state is ProcessState.TERMINATED:
                raise RuntimeError("supervisor has been shut down")
            await self._stop_locked()
            return await self._start_locked()

    async def restart(self) -> bool:
        """
        Stop the current child, wait for it to exit, then start a new one.

        Returns:
            False if the request was coalesced into a restart in progress
            or the supervisor is shut down, True otherwise

        Raises:
            LaunchError: If the executable cannot be launched
        """
        if self._state is ProcessState.TERMINATED:
            return False
        if self._gate.locked():
            self.log.info("restart_coalesced")
            return False

        async with self._gate:
            if self._state is ProcessState.TERMINATED:
                return False
            await self._stop_locked()
            await self._start_locked()

        self.restarts += 1
        return True

    async def shutdown(self) -> None:
        """Kill the current child and refuse any later start. Idempotent."""
        async with self._gate:
            if self._state is ProcessState.TERMINATED:
                return
            await self._stop_locked()
            self._state = ProcessState.TERMINATED

    def kill(self, force: bool = False) -> bool:
        """
        Signal the current child's whole process group.

        Does not wait for the exit; the waiter task observes it. The group
        is signalled even when its leader has already exited, since
        descendants it left behind still belong to the group. A group that
        no longer exists counts as killed. Other OS errors are logged and
        the kill is treated as best effort.

        Args:
            force: Send a non-catchable kill instead of a termination request

        Returns:
            True if the group was signalled or is already gone
        """
        proc = self._current
        if proc is None:
            return False

        proc.stopping = True
        if proc.running and self._state is not ProcessState.TERMINATED:
            self._state = ProcessState.TERMINATING

        try:
            self._killer(proc.pgid, force)
        except ProcessLookupError:
            self.log.debug("process_group_gone", pgid=proc.pgid)
            return True
        except OSError as e:
            self.log.error("kill_failed", pgid=proc.pgid, error=str(e))
            return False

        self.log.debug("process_group_signalled", pgid=proc.pgid, force=force)
        return True

    async def _start_locked(self) -> SupervisedProcess:
        self._state = ProcessState.STARTING
        try:
            process = await self._spawn(*self._command, **new_group_kwargs())
        except OSError as e:
            self._state = ProcessState.IDLE
            raise LaunchError(self._command, e.strerror or str(e)) from e

        # The child leads its new group, so the group id is its pid
        proc = SupervisedProcess(
            command=self._command,
            process=process,
            pgid=process.pid,
        )
        proc.waiter = asyncio.create_task(
            self._wait(proc), name=f"waiter-{process.pid}"
        )
        self._current = proc
        self._state = ProcessState.RUNNING
        self.log.info("process_started", pid=process.pid, command=" ".join(self._command))
        return proc

    async def _stop_locked(self) -> None:
        proc = self._current
        if proc is None:
            return

        # Signal the group even if the leader is gone; its descendants may not be
        self.kill()
        if not await self._reap(proc):
            self.log.warning(
                "process_kill_timeout",
                pid=proc.pid,
                timeout_seconds=self._kill_timeout,
            )
            self.kill(force=True)
            if not await self._reap(proc):
                self.log.error("process_unkillable", pid=proc.pid, pgid=proc.pgid)

        self._current = None
        if self._state is not ProcessState.TERMINATED:
            self._state = ProcessState.IDLE

    async def _reap(self, proc: SupervisedProcess) -> bool:
        """Wait up to kill_timeout for the leader to exit."""
        if proc.waiter is None:
            return True
        try:
            await asyncio.wait_for(asyncio.shield(proc.waiter), self._kill_timeout)
        except asyncio.TimeoutError:
            return False
        return True

    async def _wait(self, proc: SupervisedProcess) -> int:
        returncode = await proc.process.wait()

        if proc.stopping:
            self.log.info("process_stopped", pid=proc.pid, returncode=returncode)
        elif returncode != 0:
            self.log.warning("process_crashed", pid=proc.pid, returncode=returncode)
            self.log.info("waiting_for_changes")
        else:
            self.log.info("process_exited", pid=proc.pid)

        if proc is self._current and self._state is ProcessState.RUNNING:
            self._state = ProcessState.IDLE
        return returncode
