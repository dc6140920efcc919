"""Tool classification by name.

Decides, from a tool name and the bridge configuration alone, whether a call
is read-only, needs an explicit ``__confirm`` flag, must target exactly one
scene object, or most likely addresses a GameObject.
"""

from __future__ import annotations

import re

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from unity_mcp_bridge.config import BridgeConfig

# ----- Names with fixed policy -----
INVOKE_STATIC_METHOD_TOOL = "unity.editor.invokeStaticMethod"
SET_TEXTURE_TYPE_TOOL = "unity.assetImport.setTextureType"
BRIDGE_TOOL_PREFIX = "bridge."

# ----- Action patterns (matched against the last name segment) -----
_ACTION_SPLIT_RE = re.compile(r"[.:/]")

READ_ONLY_ACTION_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (r"^get", r"^list", r"^find", r"^analy[sz]e", r"^validate", r"^status", r"^ping")
)

DANGEROUS_ACTION_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^destroy",
        r"^delete",
        r"^remove",
        r"^build",
        r"^import",
        r"^export",
        r"^pack",
        r"^embed",
        r"^execute",
        r"^set(?:Build|Player|Quality|Physics|Platform|Profile|Time)Settings",
        r"^set(?:Entitlements|Manifest|Plist|XcodeSettings|GradleProperties|Keystore|BundleVersionCode|BuildNumber)",
    )
)

# ----- Whole-name patterns -----
_DESTRUCTIVE_RE = re.compile(r"(destroy|delete)", re.IGNORECASE)
_REMOVE_RE = re.compile(r"remove", re.IGNORECASE)
_UNITY_OBJECT_NOUN_RE = re.compile(r"(gameobject|asset|component|prefab|listener|light|camera)", re.IGNORECASE)
_GAME_OBJECT_TARGET_RE = re.compile(r"^unity\.(gameObject|gameobject|transform|rectTransform|component)\.", re.IGNORECASE)


@dataclass(frozen=True)
class ToolClassification:
    """Policy verdict for one tool name."""

    name: str
    is_read_only: bool
    requires_confirmation: bool
    requires_unambiguous_target: bool
    is_likely_game_object_target: bool


def _action_of(tool_name: str) -> str:
    return _ACTION_SPLIT_RE.split(tool_name)[-1] or tool_name


def matches_tool_pattern(pattern: str, tool_name: str) -> bool:
    """Match ``tool_name`` against an allow/deny pattern where ``*`` matches any run of characters."""
    if not isinstance(pattern, str) or not pattern:
        return False
    if not isinstance(tool_name, str) or not tool_name:
        return False
    if pattern == "*":
        return True
    regex = "^" + re.escape(pattern).replace(r"\*", ".*") + "$"
    return re.match(regex, tool_name, re.IGNORECASE | re.DOTALL) is not None


def matches_any_tool_pattern(patterns: tuple[str, ...] | list[str] | None, tool_name: str) -> bool:
    if not patterns:
        return False
    return any(matches_tool_pattern(pattern, tool_name) for pattern in patterns)


def is_read_only_tool_name(tool_name: str) -> bool:
    action = _action_of(tool_name)
    return any(pattern.search(action) for pattern in READ_ONLY_ACTION_PATTERNS)


def is_confirmation_required(tool_name: str, config: BridgeConfig | None) -> bool:
    """Whether ``tool_name`` must carry ``__confirm: true`` before it is forwarded.

    Precedence: arbitrary static invocation, denylist, allowlist, global toggle,
    ``bridge.*`` exemption, texture-importer override, read-only verbs, dangerous verbs.
    """
    if tool_name == INVOKE_STATIC_METHOD_TOOL:
        return True

    denylist = config.confirm_denylist if config is not None else ()
    allowlist = config.confirm_allowlist if config is not None else ()
    if matches_any_tool_pattern(denylist, tool_name):
        return True
    if matches_any_tool_pattern(allowlist, tool_name):
        return False

    if config is None or not config.require_confirmation:
        return False

    if tool_name.startswith(BRIDGE_TOOL_PREFIX):
        return False

    # Rewrites importer settings and optionally reimports.
    if tool_name == SET_TEXTURE_TYPE_TOOL:
        return True

    action = _action_of(tool_name)
    if any(pattern.search(action) for pattern in READ_ONLY_ACTION_PATTERNS):
        return False
    return any(pattern.search(action) for pattern in DANGEROUS_ACTION_PATTERNS)


def is_unambiguous_target_required(tool_name: str, config: BridgeConfig | None) -> bool:
    """Whether the call must resolve to exactly one target before it is forwarded."""
    if config is None or not config.require_unambiguous_targets:
        return False
    if tool_name.startswith(BRIDGE_TOOL_PREFIX):
        return False
    if _DESTRUCTIVE_RE.search(tool_name):
        return True
    # Package removal and similar are not object-targeted.
    return bool(_REMOVE_RE.search(tool_name) and _UNITY_OBJECT_NOUN_RE.search(tool_name))


def is_likely_game_object_target(tool_name: str) -> bool:
    return _GAME_OBJECT_TARGET_RE.match(tool_name) is not None


def classify(tool_name: str, config: BridgeConfig | None) -> ToolClassification:
    """Compute the full policy verdict for ``tool_name``."""
    return ToolClassification(
        name=tool_name,
        is_read_only=is_read_only_tool_name(tool_name),
        requires_confirmation=is_confirmation_required(tool_name, config),
        requires_unambiguous_target=is_unambiguous_target_required(tool_name, config),
        is_likely_game_object_target=is_likely_game_object_target(tool_name),
    )
