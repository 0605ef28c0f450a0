"""
Gomon Debouncer.

Decides which raw change events are worth a restart.
Requires Python 3.11+.
"""

import os
import stat
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from utils.logger import LoggerMixin
from watcher.events import ChangeEvent


@dataclass(slots=True)
class DebounceState:
    """Time of the last accepted event, on the filter's clock."""

    last_action_time: float


class DebounceFilter(LoggerMixin):
    """
    Debounces rapid file changes.

    An event can only trigger an action once `threshold` seconds have
    passed since the last accepted one. Past the gate, directories are
    always relevant and files are relevant only for the configured
    extensions. A save that emits several raw events therefore results
    in a single action, as long as the threshold exceeds the burst.
    """

    def __init__(
        self,
        threshold: float = 0.5,
        relevant_extensions: Iterable[str] = (".go", ".tmpl"),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the filter.

        The gate starts closed: the first window after construction is
        treated as if an action had just happened, since the supervised
        process is started at the same time.

        Args:
            threshold: Minimum seconds between two accepted events
            relevant_extensions: File extensions that trigger an action
            clock: Monotonic time source
        """
        self._threshold = threshold
        self._extensions = frozenset(relevant_extensions)
        self._clock = clock
        self.state = DebounceState(last_action_time=clock())

    @property
    def threshold(self) -> float:
        """Debounce window in seconds."""
        return self._threshold

    def should_act(self, event: ChangeEvent) -> bool:
        """
        Check whether an event should trigger an action.

        Updates the state when the event is accepted, or when its path has
        vanished so the rest of the same burst stays suppressed.

        Args:
            event: Raw change event

        Returns:
            True if the event is actionable
        """
        now = self._clock()
        if now - self.state.last_action_time < self._threshold:
            return False

        if not event.path:
            return False

        try:
            mode = os.stat(event.path).st_mode
        except OSError as e:
            self.state.last_action_time = now
            self.log.debug("event_path_unavailable", path=event.path, error=str(e))
            return False

        if not self.is_relevant(event.path, stat.S_ISDIR(mode)):
            return False

        self.state.last_action_time = now
        return True

    def is_relevant(self, path: str, is_dir: bool) -> bool:
        """Relevance predicate: directories always, files by extension."""
        if is_dir:
            return True
        return os.path.splitext(path)[1] in self._extensions
