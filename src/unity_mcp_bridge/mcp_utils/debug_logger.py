"""Debug logger utility for the Unity MCP bridge.

Verbose diagnostics (connection transitions, tool timings, retry decisions) are
only emitted when debug mode is switched on via ``MCP_VERBOSE`` or ``--verbose``.
"""

from __future__ import annotations

import logging
import sys
import time

from typing import Any

logger = logging.getLogger(__name__)


class DebugLogger:
    """Debug logger utility that respects the bridge's verbose setting."""

    _debug_enabled: bool = False

    @staticmethod
    def set_debug_enabled(enabled: bool) -> None:
        """Set whether debug logging is enabled."""
        DebugLogger._debug_enabled = enabled

    @staticmethod
    def is_debug_enabled() -> bool:
        return DebugLogger._debug_enabled

    @staticmethod
    def debug(source: Any, message: str) -> None:
        """Log ``message`` tagged with the class name of ``source``."""
        if DebugLogger._debug_enabled:
            logger.info(f"[DEBUG] {type(source).__name__}: {message}")

    @staticmethod
    def debug_connection(source: Any, message: str) -> None:
        """Log a connection-related debug message (URL reloads, health probes)."""
        if DebugLogger._debug_enabled:
            logger.info(f"[DEBUG-CONNECTION] {message}")

    @staticmethod
    def debug_performance(source: Any, operation: str, duration_ms: int) -> None:
        if DebugLogger._debug_enabled:
            logger.info(f"[DEBUG-PERF] {operation} took {duration_ms}ms")

    @staticmethod
    def debug_tool_execution(source: Any, tool_name: str, status: str, details: str | None = None) -> None:
        """Log a tool dispatch step if debug mode is enabled.

        Args:
            source: The source object for the log message
            tool_name: The name of the tool being dispatched
            status: The status (START, SUCCESS, ERROR, REJECTED, RETRY)
            details: Additional details (optional)
        """
        if DebugLogger._debug_enabled:
            message = f"[DEBUG-TOOL] {tool_name} - {status}"
            if details:
                message += f": {details}"
            logger.info(message)

    @classmethod
    def time_operation(cls, source: Any, operation_name: str):
        """Context manager that times a tool dispatch and logs the duration.

        Example:
            with DebugLogger.time_operation(self, "unity.scene.list"):
                result = await backend.call_tool(...)
        """

        class Timer:
            def __init__(self, src: Any, op: str):
                self.source = src
                self.operation = op
                self.start_time: float | None = None

            def __enter__(self):
                self.start_time = time.monotonic()
                cls.debug_tool_execution(self.source, self.operation, "START")
                return self

            def __exit__(self, exc_type, exc_val, exc_tb):
                if self.start_time is not None:
                    duration_ms = int((time.monotonic() - self.start_time) * 1000)
                    status = "ERROR" if exc_type else "SUCCESS"
                    cls.debug_performance(self.source, self.operation, duration_ms)
                    cls.debug_tool_execution(self.source, self.operation, status)

        return Timer(source, operation_name)


BRIDGE_MESSAGE_PREFIX = "[MCP Bridge]"


def bridge_message(message: str) -> None:
    """Write an operator-facing message to stderr; stdout carries the MCP protocol."""
    sys.stderr.write(f"{BRIDGE_MESSAGE_PREFIX} {message}\n")
