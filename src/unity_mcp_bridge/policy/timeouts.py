"""Per-call time budgets."""

from __future__ import annotations

import math
import re

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from unity_mcp_bridge.policy.arguments import TIMEOUT_KEYS, first_present

if TYPE_CHECKING:
    from unity_mcp_bridge.config import BridgeConfig

# Retrying a slow mutation risks duplicate side effects, so these get the long budget up front.
HEAVY_TOOL_PATTERN = re.compile(r"build|import|export|pack|compile|test|bake|lighting|optimi[sz]e", re.IGNORECASE)


def get_tool_timeout_ms(tool_name: str, config: BridgeConfig) -> int:
    if HEAVY_TOOL_PATTERN.search(tool_name):
        return config.heavy_tool_timeout_ms
    return config.default_tool_timeout_ms


def clamp_timeout_ms(timeout_ms: Any, config: BridgeConfig) -> float:
    """Clamp a budget into ``(0, max_tool_timeout_ms]``; bad values fall back to the default."""
    if isinstance(timeout_ms, bool) or not isinstance(timeout_ms, (int, float)):
        return config.default_tool_timeout_ms
    if not math.isfinite(timeout_ms) or timeout_ms <= 0:
        return config.default_tool_timeout_ms
    return min(timeout_ms, config.max_tool_timeout_ms)


def _coerce_number(value: Any) -> float:
    """Convert an override value the way a loose numeric cast would; failures give NaN."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def resolve_call_timeout_ms(tool_name: str, args: Mapping[str, Any] | None, config: BridgeConfig) -> float:
    """Budget for one call: the ``__timeoutMs`` override if present, else the name-based budget, clamped."""
    override = first_present(args, TIMEOUT_KEYS)
    if override is not None:
        return clamp_timeout_ms(_coerce_number(override), config)
    return clamp_timeout_ms(get_tool_timeout_ms(tool_name, config), config)
