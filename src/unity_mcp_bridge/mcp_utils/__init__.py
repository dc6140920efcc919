"""MCP utilities shared across the Unity MCP bridge."""

from .debug_logger import DebugLogger, bridge_message

__all__ = [
    "DebugLogger",
    "bridge_message",
]
