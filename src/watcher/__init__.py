"""
Gomon File Watcher Package.

Directory enumeration, change notifications and debouncing.
Requires Python 3.11+.
"""

from watcher.debouncer import DebounceFilter, DebounceState
from watcher.events import ChangeEvent, Operation, SourceError
from watcher.file_watcher import ChangeEventSource
from watcher.tree import IgnoreRules, sub_directories

__all__ = [
    "ChangeEvent",
    "ChangeEventSource",
    "DebounceFilter",
    "DebounceState",
    "IgnoreRules",
    "Operation",
    "SourceError",
    "sub_directories",
]
