"""
Tests for structured logging.

Requires Python 3.11+.
"""

import os

from structlog.testing import capture_logs

from utils.logger import LoggerMixin, _add_app_context, get_logger


class Widget(LoggerMixin):
    pass


class TestLogger:
    """Test cases for logger binding and context."""

    def test_mixin_binds_component(self):
        with capture_logs() as logs:
            Widget().log.info("process_started", pid=4242)

        assert logs == [
            {
                "component": "Widget",
                "event": "process_started",
                "pid": 4242,
                "log_level": "info",
            }
        ]

    def test_module_logger_without_component(self):
        with capture_logs() as logs:
            get_logger().warning("watch_failed", path="/project/src")

        assert logs == [
            {"event": "watch_failed", "path": "/project/src", "log_level": "warning"}
        ]

    def test_app_context_separates_gomon_pid(self):
        event_dict = _add_app_context(None, "info", {"event": "process_started", "pid": 1})

        assert event_dict["app"] == "gomon"
        assert event_dict["gomon_pid"] == os.getpid()
        assert event_dict["pid"] == 1
