"""
Gomon Change Events.

Data model for filesystem change notifications.
Requires Python 3.11+.
"""

import time
from dataclasses import dataclass, field
from enum import Enum


class Operation(str, Enum):
    """Kinds of filesystem change."""

    CREATE = "create"
    REMOVE = "delete"
    MODIFY = "modify"
    RENAME = "rename"
    ATTRIBUTE_CHANGE = "chmod"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """A single change notification. Empty path means the source had none."""

    path: str
    operation: Operation
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class SourceError:
    """A transient error reported by the change event source."""

    message: str
    path: str | None = None
    timestamp: float = field(default_factory=time.time)
