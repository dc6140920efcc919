"""Scene-hierarchy target resolution.

Destructive GameObject tools must address exactly one object. The resolver
walks a freshly fetched ``unity.scene.list`` snapshot, collects exact matches
(by full path or by leaf name) and substring suggestions, and either yields
the single canonical path or a disambiguation payload the agent can retry from.
"""

from __future__ import annotations

import json
import math

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from mcp.types import CallToolResult, TextContent

from unity_mcp_bridge.policy.arguments import GameObjectQuery, extract_game_object_query, find_target_identifier
from unity_mcp_bridge.policy.tool_names import (
    is_likely_game_object_target,
    is_read_only_tool_name,
    is_unambiguous_target_required,
)

if TYPE_CHECKING:
    from unity_mcp_bridge.config import BridgeConfig

MATCH_MODE_PATH = "path"
MATCH_MODE_NAME = "name"
MAX_SCENE_LIST_DEPTH = 100


@dataclass
class SceneMatches:
    matches: list[dict[str, Any]] = field(default_factory=list)
    suggestions: list[dict[str, Any]] = field(default_factory=list)


@dataclass(frozen=True)
class ScenePlan:
    """How a query is looked up: compare mode and the scene-list depth to request."""

    query: str
    source_key: str
    match_mode: str
    max_depth: int


def plan_scene_query(query_info: GameObjectQuery, configured_depth: int) -> ScenePlan:
    query = query_info.query
    if query_info.force_name_match:
        match_mode = MATCH_MODE_NAME
    else:
        match_mode = MATCH_MODE_PATH if "/" in query else MATCH_MODE_NAME
    query_depth = len(query.split("/")) - 1 if match_mode == MATCH_MODE_PATH else 0
    max_depth = min(max(configured_depth, query_depth), MAX_SCENE_LIST_DEPTH)
    return ScenePlan(query=query, source_key=query_info.source_key, match_mode=match_mode, max_depth=max_depth)


def find_scene_matches(root_objects: Any, query: Any, match_mode: str, candidate_limit: int) -> SceneMatches:
    """Depth-first walk over the snapshot with an explicit stack.

    Stops once ``candidate_limit + 1`` matches are found, which is enough to
    prove ambiguity. Suggestions are bounded the same way.
    """
    result = SceneMatches()
    normalized_query = str(query)
    query_lower = normalized_query.lower()

    stack: list[Any] = list(root_objects) if isinstance(root_objects, list) else []
    while stack:
        node = stack.pop()
        if not isinstance(node, Mapping):
            continue

        node_name = node.get("name") if isinstance(node.get("name"), str) else ""
        node_path = node.get("path") if isinstance(node.get("path"), str) else ""

        compared = node_path if match_mode == MATCH_MODE_PATH else node_name
        if compared == normalized_query:
            result.matches.append(node)
            if len(result.matches) > candidate_limit:
                break
        elif query_lower and len(result.suggestions) <= candidate_limit:
            if query_lower in node_name.lower() or query_lower in node_path.lower():
                result.suggestions.append(node)

        children = node.get("children")
        if isinstance(children, list):
            stack.extend(children)

    return result


def _is_finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def summarize_scene_candidate(node: Any) -> dict[str, Any] | None:
    """Reduce a tree node to the stable fields shown to agents; ill-typed fields become None."""
    if not isinstance(node, Mapping):
        return None

    transform = node.get("transform")
    transform = transform if isinstance(transform, Mapping) else {}

    def _object_or_none(value: Any) -> Any:
        return value if isinstance(value, Mapping) else None

    return {
        "name": node.get("name") if isinstance(node.get("name"), str) else None,
        "path": node.get("path") if isinstance(node.get("path"), str) else None,
        "active": node.get("active") if isinstance(node.get("active"), bool) else None,
        "childCount": node.get("childCount") if _is_finite_number(node.get("childCount")) else None,
        "position": _object_or_none(transform.get("position")),
        "rotation": _object_or_none(transform.get("rotation")),
        "scale": _object_or_none(transform.get("scale")),
        "components": node.get("components") if isinstance(node.get("components"), list) else None,
    }


def build_target_resolution_error(
    *,
    tool_name: str,
    query: str,
    match_mode: str,
    max_depth: int,
    matches: list[Any] | None,
    suggestions: list[Any] | None,
    candidate_limit: int,
    confirm_required: bool,
) -> CallToolResult:
    """Disambiguation response for a query that did not resolve to exactly one object."""
    matches = matches or []
    suggestions = suggestions or []
    shown_matches = [s for s in (summarize_scene_candidate(n) for n in matches[:candidate_limit]) if s is not None]
    shown_suggestions = [s for s in (summarize_scene_candidate(n) for n in suggestions[:candidate_limit]) if s is not None]

    retry: dict[str, Any] = {"path": "<one of candidates[].path>"}
    if confirm_required:
        retry["__confirm"] = True

    payload = {
        "error": "unambiguous_target_required",
        "tool": tool_name,
        "query": query,
        "matchMode": match_mode,
        "sceneListMaxDepth": max_depth,
        "matchesFound": len(matches),
        "candidates": shown_matches,
        "suggestions": shown_suggestions,
        "truncated": len(matches) > candidate_limit or len(suggestions) > candidate_limit,
        "retry": retry,
        "note": "If multiple objects share the same full path, rename them in Unity so hierarchy paths become unique.",
    }

    headline = f"Unambiguous target required for tool: {tool_name}\n"
    headline += f'Query ({match_mode}): "{query}"\n'
    if not matches:
        headline += f"No matching GameObject found in the current scene (searched up to maxDepth={max_depth}).\n"
    else:
        headline += f"Matched {len(matches)} objects (must be exactly 1).\n"
    headline += "Pick an exact path from candidates and retry.\n"
    headline += "To bypass (not recommended), set __allowAmbiguous: true.\n"
    if confirm_required:
        headline += "This tool also requires __confirm: true to execute.\n"

    text = f"{headline}\n{json.dumps(payload, indent=2, ensure_ascii=False)}"
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=True)


def build_missing_target_error(tool_name: str) -> CallToolResult:
    text = (
        f"Unambiguous target required for tool: {tool_name}\n"
        "No target identifier was provided.\n"
        "Provide a GameObject identifier (path/gameObjectPath) and retry, "
        "or set __allowAmbiguous: true (not recommended)."
    )
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=True)


def build_unstable_path_error(tool_name: str) -> CallToolResult:
    return CallToolResult(
        content=[TextContent(type="text", text=f"Failed to resolve a stable path for tool: {tool_name}")],
        isError=True,
    )


def build_ambiguous_name_error(tool_name: str, key: str, value: str) -> CallToolResult:
    text = (
        f"Ambiguous target for tool: {tool_name}\n"
        f'Target specified by {key}="{value}" may match multiple objects.\n'
        "Please resolve to a unique identifier (e.g. path/guid/instanceId) and retry.\n"
        "If you really want to bypass this safety check, set __allowAmbiguous: true "
        "(and __confirm: true if required)."
    )
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=True)


def apply_resolved_path(args: Mapping[str, Any], resolved_path: str) -> dict[str, Any]:
    """Write the resolved path into ``gameObjectPath`` and into any string ``path``/``hierarchyPath``."""
    resolved = dict(args)
    resolved["gameObjectPath"] = resolved_path
    if isinstance(args.get("path"), str):
        resolved["path"] = resolved_path
    if isinstance(args.get("hierarchyPath"), str):
        resolved["hierarchyPath"] = resolved_path
    return resolved


def build_ambiguous_target_warning(*, tool_name: str, source_key: str, query: str, match_mode: str) -> TextContent:
    text = (
        f"[Warning] Possible ambiguous GameObject target for tool: {tool_name}\n"
        f'Target specified by {source_key}="{query}" is treated as a {match_mode} match.\n'
        "If multiple objects share the same name, Unity may act on an unexpected object.\n"
        'Prefer a unique hierarchy path (e.g. "Root/Child") from unity.scene.list.'
    )
    return TextContent(type="text", text=text)


def get_non_destructive_ambiguous_target_warning(
    tool_name: str,
    args: Mapping[str, Any] | None,
    config: BridgeConfig | None,
) -> TextContent | None:
    """Advisory warning for mutating GameObject tools addressed by a bare name.

    Strictly resolved (destructive) and read-only tools never warn, and
    guid/instanceId style identifiers are treated as unambiguous.
    """
    if not is_likely_game_object_target(tool_name):
        return None
    if is_unambiguous_target_required(tool_name, config):
        return None
    if is_read_only_tool_name(tool_name):
        return None

    identifier = find_target_identifier(args)
    if identifier is not None:
        key_lower = identifier.key.lower()
        value = identifier.value
        if isinstance(value, str) and key_lower.endswith("path") and "/" not in value:
            return build_ambiguous_target_warning(
                tool_name=tool_name,
                source_key=identifier.key,
                query=value,
                match_mode=MATCH_MODE_NAME,
            )
        return None

    query_info = extract_game_object_query(args)
    if query_info is None:
        return None
    return build_ambiguous_target_warning(
        tool_name=tool_name,
        source_key=query_info.source_key,
        query=query_info.query,
        match_mode=MATCH_MODE_NAME,
    )
