"""Configuration management for the Unity MCP bridge."""

from .config_manager import (
    BridgeConfig,
    ConfigManager,
    FileConfigResult,
    create_bridge_config,
    load_bridge_file_config,
    parse_boolean,
    parse_positive_int,
)

__all__ = [
    "BridgeConfig",
    "ConfigManager",
    "FileConfigResult",
    "create_bridge_config",
    "load_bridge_file_config",
    "parse_boolean",
    "parse_positive_int",
]
