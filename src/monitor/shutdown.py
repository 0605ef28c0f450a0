"""
Gomon Shutdown Coordinator.

Turns termination signals and unrecovered faults into a single,
orderly shutdown.
Requires Python 3.11+.
"""

import asyncio
import signal
from typing import Protocol

from utils.errors import GomonError
from utils.logger import LoggerMixin

SHUTDOWN_SIGNALS = tuple(
    sig
    for sig in (
        getattr(signal, "SIGINT", None),
        getattr(signal, "SIGHUP", None),
        getattr(signal, "SIGTERM", None),
    )
    if sig is not None
)


class Closeable(Protocol):
    def close(self) -> None: ...

    async def wait_closed(self) -> None: ...


class Stoppable(Protocol):
    async def shutdown(self) -> None: ...


class ShutdownCoordinator(LoggerMixin):
    """
    Drives the shutdown sequence exactly once.

    The first request wins and sets the exit code; later requests are
    ignored. The sequence closes the change event source, then kills the
    supervised process under the supervisor's restart gate.
    """

    def __init__(self, source: Closeable, supervisor: Stoppable) -> None:
        """
        Initialize the coordinator.

        Args:
            source: Change event source to close
            supervisor: Process supervisor to shut down
        """
        self._source = source
        self._supervisor = supervisor
        self._requested = asyncio.Event()
        self._reason: str | None = None
        self._exit_code = 0
        self._task: asyncio.Task[int] | None = None

    @property
    def requested(self) -> bool:
        return self._requested.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    @property
    def exit_code(self) -> int:
        return self._exit_code

    def request(self, reason: str, exit_code: int = 0) -> bool:
        """
        Ask for shutdown.

        Args:
            reason: Human readable trigger, for the log
            exit_code: Process exit status to report

        Returns:
            True if this was the first request
        """
        if self._requested.is_set():
            self.log.debug("shutdown_already_requested", reason=reason)
            return False

        self._reason = reason
        self._exit_code = exit_code
        self._requested.set()
        self.log.info("shutdown_requested", reason=reason)
        return True

    def request_fault(self, exc: BaseException) -> bool:
        """
        Fault boundary: convert an unrecovered exception into a shutdown.

        Fatal gomon errors exit non-zero, anything else shuts down cleanly.
        """
        fatal = isinstance(exc, GomonError) and exc.fatal
        self.log.error(
            "unrecovered_fault",
            error=str(exc),
            error_type=type(exc).__name__,
            fatal=fatal,
        )
        return self.request(f"fault: {type(exc).__name__}", exit_code=1 if fatal else 0)

    async def wait(self) -> str | None:
        """Block until shutdown is requested and return the reason."""
        await self._requested.wait()
        return self._reason

    async def shutdown(self) -> int:
        """
        Run the shutdown sequence, at most once.

        Concurrent and repeated calls share the same run.

        Returns:
            Exit code for the process
        """
        if self._task is None:
            self.request("shutdown")
            self._task = asyncio.ensure_future(self._run())
        return await asyncio.shield(self._task)

    async def _run(self) -> int:
        self._source.close()
        await self._supervisor.shutdown()
        await self._source.wait_closed()
        self.log.info("shutting_down", reason=self._reason, exit_code=self._exit_code)
        return self._exit_code


def install_signal_handlers(
    loop: asyncio.AbstractEventLoop, coordinator: ShutdownCoordinator
) -> list[signal.Signals]:
    """
    Route termination signals to the coordinator.

    Uses the loop's signal handling where available, otherwise falls back
    to signal.signal and hands the request over to the loop.

    Returns:
        Signals registered through the loop, for remove_signal_handlers
    """
    installed: list[signal.Signals] = []
    for sig in SHUTDOWN_SIGNALS:
        reason = f"signal: {sig.name}"
        try:
            loop.add_signal_handler(sig, coordinator.request, reason)
            installed.append(sig)
        except NotImplementedError:
            signal.signal(
                sig,
                lambda signum, frame, reason=reason: loop.call_soon_threadsafe(
                    coordinator.request, reason
                ),
            )
    return installed


def remove_signal_handlers(
    loop: asyncio.AbstractEventLoop, installed: list[signal.Signals]
) -> None:
    for sig in installed:
        loop.remove_signal_handler(sig)
