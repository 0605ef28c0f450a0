"""
Gomon Process Groups.

Platform-specific spawning and signalling of whole process groups.
Requires Python 3.11+.
"""

import os
import signal
import subprocess
import sys
from typing import Any

IS_WINDOWS = sys.platform == "win32"


def new_group_kwargs() -> dict[str, Any]:
    """
    Spawn options that put the child in a process group of its own.

    Returns:
        Keyword arguments for subprocess / asyncio subprocess creation
    """
    if IS_WINDOWS:
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"process_group": 0}


def kill_group(pgid: int, force: bool = False) -> None:
    """
    Signal every process in a group.

    On POSIX the group leader's pid is the group id and the signal goes to
    the negative pid. On Windows, CTRL_BREAK_EVENT reaches the console
    process group, and a forced kill terminates the whole tree.

    Args:
        pgid: Process group id
        force: Kill without giving the processes a chance to clean up

    Raises:
        ProcessLookupError: If the group no longer exists
        OSError: If the OS refuses to deliver the signal
    """
    if IS_WINDOWS:
        _kill_group_windows(pgid, force)
        return
    os.killpg(pgid, signal.SIGKILL if force else signal.SIGTERM)


def _kill_group_windows(pgid: int, force: bool) -> None:
    if not force:
        os.kill(pgid, signal.CTRL_BREAK_EVENT)
        return
    result = subprocess.run(
        ["taskkill", "/PID", str(pgid), "/T", "/F"],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        check=False,
    )
    # 128: no such process
    if result.returncode == 128:
        raise ProcessLookupError(pgid)
    if result.returncode != 0:
        raise OSError(f"taskkill exited with {result.returncode}")
