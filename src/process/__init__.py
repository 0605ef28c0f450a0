"""
Gomon Process Package.

Supervision of the child process and its process group.
Requires Python 3.11+.
"""

from process.group import kill_group, new_group_kwargs
from process.supervisor import ProcessState, ProcessSupervisor, SupervisedProcess

__all__ = [
    "ProcessState",
    "ProcessSupervisor",
    "SupervisedProcess",
    "kill_group",
    "new_group_kwargs",
]
