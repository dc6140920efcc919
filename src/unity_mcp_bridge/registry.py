"""Bridge-owned tool definitions and ``tools/list`` merging."""

from __future__ import annotations

import logging

from collections.abc import Iterable
from typing import Any

from mcp import types
from pydantic import ValidationError

from unity_mcp_bridge.config.config_manager import ConfigManager
from unity_mcp_bridge.policy.tool_names import INVOKE_STATIC_METHOD_TOOL
from unity_mcp_bridge.schema_patch import patch_tool_schemas

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Diagnostic tools answered by the bridge itself
# ---------------------------------------------------------------------------
BRIDGE_STATUS_TOOL = "bridge.status"
BRIDGE_RELOAD_CONFIG_TOOL = "bridge.reload_config"
BRIDGE_PING_TOOL = "bridge.ping"

_NO_ARGUMENTS_SCHEMA: dict[str, Any] = {"type": "object", "additionalProperties": False}

BRIDGE_TOOLS: tuple[types.Tool, ...] = (
    types.Tool(
        name=BRIDGE_STATUS_TOOL,
        description="Show bridge and Unity connection status",
        inputSchema=_NO_ARGUMENTS_SCHEMA,
    ),
    types.Tool(
        name=BRIDGE_RELOAD_CONFIG_TOOL,
        description=f"Reload {ConfigManager.RUNTIME_CONFIG_FILE_NAME} and update the Unity HTTP URL",
        inputSchema=_NO_ARGUMENTS_SCHEMA,
    ),
    types.Tool(
        name=BRIDGE_PING_TOOL,
        description="Ping Unity /health endpoint and return its response",
        inputSchema=_NO_ARGUMENTS_SCHEMA,
    ),
)


def get_bridge_tools() -> list[types.Tool]:
    return list(BRIDGE_TOOLS)


def raw_tools_to_mcp(raw_tools: Iterable[Any]) -> list[types.Tool]:
    """Validate raw ``tools/list`` entries, skipping the ones that do not parse."""
    tools: list[types.Tool] = []
    for raw in raw_tools:
        try:
            tools.append(types.Tool.model_validate(raw))
        except ValidationError as e:
            logger.debug("Skipping unparsable Unity tool %r: %s", raw, e)
    return tools


def prepare_unity_tools(raw_tools: Iterable[Any], enable_unsafe_editor_invoke: bool) -> list[types.Tool]:
    """Patch schemas and hide the arbitrary-method tool unless it was explicitly enabled."""
    tools = raw_tools_to_mcp(patch_tool_schemas(list(raw_tools)))
    if not enable_unsafe_editor_invoke:
        tools = [tool for tool in tools if tool.name != INVOKE_STATIC_METHOD_TOOL]
    return tools


def merge_tools(unity_tools: Iterable[types.Tool], bridge_tools: Iterable[types.Tool]) -> list[types.Tool]:
    """Merge by name keeping first-seen order; a bridge definition replaces a Unity one of the same name."""
    tool_by_name: dict[str, types.Tool] = {}
    for tool in list(unity_tools) + list(bridge_tools):
        if not isinstance(tool, types.Tool):
            continue
        # Re-assignment keeps the original insertion position.
        tool_by_name[tool.name] = tool
    return list(tool_by_name.values())
