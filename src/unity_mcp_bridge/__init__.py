"""Unity MCP Bridge - safety layer between MCP clients and the Unity editor.

This package provides a stdio MCP server that forwards tool calls to the Unity
editor's HTTP endpoint, adding confirmation gates for destructive tools,
unambiguous scene-target resolution, per-call timeouts and argument
normalization. The policy functions live in ``unity_mcp_bridge.policy`` and
can be used on their own.
"""

try:
    from ._version import version as __version__
except ImportError:
    # Fallback version if not installed or in development without git tags
    __version__ = "0.0.0.dev0"

from unity_mcp_bridge.client import (
    ClientError,
    MalformedResponseError,
    RequestTimeoutError,
    ServerNotRunningError,
    UnityHttpBackend,
    UnityRpcError,
)
from unity_mcp_bridge.config import BridgeConfig, ConfigManager, create_bridge_config
from unity_mcp_bridge.policy import classify, normalize_unity_arguments

__all__ = [
    "BridgeConfig",
    "ClientError",
    "ConfigManager",
    "MalformedResponseError",
    "RequestTimeoutError",
    "ServerNotRunningError",
    "UnityHttpBackend",
    "UnityRpcError",
    "__version__",
    "classify",
    "create_bridge_config",
    "normalize_unity_arguments",
]
