"""
Gomon Tree Enumerator.

Collects the directories of a project that should be watched.
Requires Python 3.11+.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from utils.errors import EnumerationError
from utils.logger import get_logger

logger = get_logger("watcher.tree")

_PSEUDO_ENTRIES = (".", "..")


@dataclass(frozen=True, slots=True)
class IgnoreRules:
    """
    Directory ignore predicate.

    A directory is ignored when its base name is one of the configured
    names or starts with the hidden marker. Keeping dependency and hidden
    directories out of the watch set keeps the number of OS watches low.
    """

    names: frozenset[str] = frozenset({"node_modules", "vendor"})
    hidden_prefix: str = "."

    def matches(self, name: str) -> bool:
        """Check whether a directory base name should be pruned."""
        if name in _PSEUDO_ENTRIES:
            return False
        return name in self.names or name.startswith(self.hidden_prefix)


def sub_directories(root: Path | str, ignore: IgnoreRules | None = None) -> list[Path]:
    """
    Walk a directory tree and return every directory worth watching.

    The walk is depth-first, pre-order, in lexical order. The root is
    always included. Ignored directories are pruned together with their
    whole subtree. Symlinked directories are not followed.

    Args:
        root: Directory to start from
        ignore: Ignore predicate, defaults to IgnoreRules()

    Returns:
        Absolute directory paths, root first

    Raises:
        EnumerationError: If the root cannot be read
    """
    rules = ignore or IgnoreRules()
    root_path = Path(root).absolute()

    try:
        entries = _list_dirs(root_path)
    except OSError as e:
        raise EnumerationError(e.errno, e.strerror, str(root_path)) from e

    result = [root_path]
    # Reversed so popping from the end visits entries in lexical order
    stack = list(reversed(entries))

    while stack:
        directory = stack.pop()
        if rules.matches(directory.name):
            logger.debug("directory_ignored", path=str(directory))
            continue

        result.append(directory)
        try:
            children = _list_dirs(directory)
        except OSError as e:
            logger.warning("directory_unreadable", path=str(directory), error=str(e))
            continue
        stack.extend(reversed(children))

    return result


def _list_dirs(directory: Path) -> list[Path]:
    """List the immediate subdirectories of a directory, sorted by name."""
    with os.scandir(directory) as it:
        names = sorted(
            entry.name for entry in it if entry.is_dir(follow_symlinks=False)
        )
    return [directory / name for name in names]
