"""
Gomon Monitor Package.

The watch-debounce-restart loop and its shutdown protocol.
Requires Python 3.11+.
"""

from monitor.app import Monitor
from monitor.shutdown import ShutdownCoordinator, install_signal_handlers

__all__ = ["Monitor", "ShutdownCoordinator", "install_signal_handlers"]
