"""
Gomon Errors.

Exception hierarchy shared by the watcher, process and monitor packages.
Requires Python 3.11+.
"""


class GomonError(Exception):
    """Base class for all gomon errors."""

    #: Whether the error prevents the supervisor from running at all.
    fatal: bool = False


class EnumerationError(GomonError, OSError):
    """The project root could not be read."""

    fatal = True


class WatcherInitError(GomonError):
    """The change notification subsystem could not be started."""

    fatal = True


class WatchError(GomonError):
    """A single directory could not be registered for watching."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"cannot watch {path}: {reason}")
        self.path = path
        self.reason = reason


class LaunchError(GomonError):
    """The child executable could not be launched."""

    fatal = True

    def __init__(self, command: list[str], reason: str) -> None:
        super().__init__(f"unable to start process {' '.join(command)}: {reason}")
        self.command = command
        self.reason = reason
