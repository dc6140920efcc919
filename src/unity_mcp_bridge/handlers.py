"""Composite tool handlers.

A few Unity tools need more than one round trip, or post-processing of what
Unity returns: log history truncation, ``unity.asset.find`` by filter string,
the ``unity.component.setReference`` reference-type fallback, and the
TilemapRenderer pitfall hint.
"""

from __future__ import annotations

import json
import logging
import re

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from mcp.types import CallToolResult, TextContent
from pydantic import ValidationError

from unity_mcp_bridge.client import UnityRpcError
from unity_mcp_bridge.mcp_utils import DebugLogger
from unity_mcp_bridge.policy.arguments import MAX_MESSAGE_CHARS_KEYS, MAX_STACK_TRACE_CHARS_KEYS, first_present
from unity_mcp_bridge.policy.assets import filter_asset_candidates, normalize_search_in_folders, parse_asset_filter
from unity_mcp_bridge.policy.log_history import truncate_log_history_payload
from unity_mcp_bridge.policy.timeouts import clamp_timeout_ms

if TYPE_CHECKING:
    from unity_mcp_bridge.client import UnityHttpBackend
    from unity_mcp_bridge.config import BridgeConfig

logger = logging.getLogger(__name__)

SET_REFERENCE_TOOL = "unity.component.setReference"
LOG_HISTORY_TOOL = "unity.log.history"
ASSET_FIND_TOOL = "unity.asset.find"
ASSET_LIST_TOOL = "unity.asset.list"

_ASSET_ROOT_RE = re.compile(r"^(Assets|Packages)/")
_COMPONENT_TOOL_RE = re.compile(r"^unity\.component\.", re.IGNORECASE)
_ADD_RE = re.compile(r"add", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Result helpers
# ---------------------------------------------------------------------------


def dump_json(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


def text_result(text: str, is_error: bool = False) -> CallToolResult:
    return CallToolResult(content=[TextContent(type="text", text=text)], isError=is_error)


def stringify_tool_call_result(result: Any) -> str:
    """Join the text parts of a Unity tool result; non-text parts are rendered as JSON."""
    content = result.get("content") if isinstance(result, dict) else None
    parts: list[str] = []
    for item in content if isinstance(content, list) else []:
        if isinstance(item, dict) and item.get("type") == "text" and isinstance(item.get("text"), str):
            parts.append(item["text"])
        else:
            parts.append(dump_json(item))
    if not parts:
        return dump_json(result)
    return "\n".join(parts)


def to_call_tool_result(
    result: Mapping[str, Any],
    leading: Sequence[TextContent] = (),
    trailing: Sequence[TextContent] = (),
) -> CallToolResult:
    """Wrap a Unity ``tools/call`` result, optionally surrounded by bridge-authored text.

    A result without ``content`` (or with content that does not validate) is
    rendered as pretty-printed JSON.
    """
    is_error = result.get("isError") is True
    content = result.get("content")
    try:
        body = CallToolResult.model_validate({"content": content}).content if isinstance(content, list) else None
    except ValidationError:
        body = None
    if body is None:
        body = [TextContent(type="text", text=dump_json(dict(result)))]
    return CallToolResult(content=[*leading, *body, *trailing], isError=is_error)


# ---------------------------------------------------------------------------
# unity.log.history
# ---------------------------------------------------------------------------


async def handle_log_history(backend: UnityHttpBackend, args: Mapping[str, Any], timeout_ms: float) -> CallToolResult:
    """Forward only ``limit``/``level``; truncate long messages when asked to."""
    max_message_chars = first_present(args, MAX_MESSAGE_CHARS_KEYS)
    max_stack_trace_chars = first_present(args, MAX_STACK_TRACE_CHARS_KEYS)
    should_truncate = max_message_chars is not None or max_stack_trace_chars is not None

    call_args = {key: args[key] for key in ("limit", "level") if args.get(key) is not None}
    try:
        outer = await backend.call_tool(LOG_HISTORY_TOOL, call_args, timeout_ms)
    except UnityRpcError as e:
        return text_result(e.describe(), is_error=True)

    if not should_truncate:
        return text_result(dump_json(outer))

    message_json = outer.get("message")
    if not isinstance(message_json, str) or not message_json.strip():
        DebugLogger.debug_tool_execution(backend, LOG_HISTORY_TOOL, "SKIP-TRUNCATE", "missing message")
        return text_result(dump_json(outer))
    try:
        payload = json.loads(message_json)
    except ValueError as e:
        DebugLogger.debug_tool_execution(backend, LOG_HISTORY_TOOL, "SKIP-TRUNCATE", str(e))
        return text_result(dump_json(outer))

    truncated = truncate_log_history_payload(payload, max_message_chars, max_stack_trace_chars)
    compact = json.dumps(truncated, ensure_ascii=False, separators=(",", ":"))
    return text_result(dump_json({**outer, "message": compact}))


# ---------------------------------------------------------------------------
# unity.asset.find with a filter string
# ---------------------------------------------------------------------------


def build_empty_asset_result() -> dict[str, Any]:
    return {
        "found": False,
        "asset": {"name": "", "path": "", "guid": "", "type": "", "fileSize": 0, "lastModified": ""},
    }


def should_find_by_filter(args: Mapping[str, Any]) -> bool:
    """A string ``filter`` and no usable direct identifier."""
    def _usable(key: str) -> bool:
        return isinstance(args.get(key), str) and bool(args[key])

    return isinstance(args.get("filter"), str) and not _usable("path") and not _usable("guid")


async def _find_direct(backend: UnityHttpBackend, find_args: dict[str, Any], timeout_ms: float) -> CallToolResult:
    try:
        result = await backend.call_tool(ASSET_FIND_TOOL, find_args, timeout_ms)
    except UnityRpcError as e:
        return text_result(e.describe(), is_error=True)
    return text_result(dump_json(result))


async def handle_asset_find_by_filter(
    backend: UnityHttpBackend,
    args: Mapping[str, Any],
    timeout_ms: float,
    config: BridgeConfig,
) -> CallToolResult:
    """Answer a filter query by listing folders and matching locally.

    ``guid:``/``path:`` inside the filter short-circuit to a direct find. A
    single match is re-fetched by guid (or path) so the caller gets Unity's own
    find result; zero or several matches produce a candidate payload.
    """
    filter_text = args.get("filter") if isinstance(args.get("filter"), str) else ""
    parsed = parse_asset_filter(filter_text)

    if parsed.guid and parsed.guid.strip():
        return await _find_direct(backend, {"guid": parsed.guid.strip()}, timeout_ms)
    if parsed.path and parsed.path.strip():
        return await _find_direct(backend, {"path": parsed.path.strip()}, timeout_ms)

    search_folders = normalize_search_in_folders(args.get("searchInFolders")) or ["Assets"]
    asset_type = parsed.asset_type.strip() if parsed.asset_type and parsed.asset_type.strip() else "Object"
    list_timeout_ms = clamp_timeout_ms(max(timeout_ms, config.heavy_tool_timeout_ms), config)

    seen: dict[str, dict[str, Any]] = {}
    folder_errors: list[dict[str, Any]] = []
    for folder in search_folders:
        list_args = {"path": folder, "recursive": True, "assetType": asset_type}
        try:
            listed = await backend.call_tool(ASSET_LIST_TOOL, list_args, list_timeout_ms)
        except UnityRpcError as e:
            folder_errors.append({"folder": folder, "error": e.message, "code": e.code})
            continue

        assets = listed.get("assets") if isinstance(listed.get("assets"), list) else []
        for asset in assets:
            if not isinstance(asset, dict):
                continue
            guid = asset.get("guid") if isinstance(asset.get("guid"), str) else ""
            key = f"guid:{guid}" if guid.strip() else f"path:{asset.get('path') or ''}"
            seen.setdefault(key, asset)

    base_payload = {
        **build_empty_asset_result(),
        "filter": filter_text,
        "assetType": asset_type,
        "searchInFolders": search_folders,
    }

    if not seen and folder_errors:
        return text_result(dump_json({**base_payload, "errors": folder_errors}), is_error=True)

    matches = filter_asset_candidates(list(seen.values()), parsed)

    if len(matches) == 1:
        match = matches[0]
        guid = match.get("guid").strip() if isinstance(match.get("guid"), str) else ""
        path = match.get("path").strip() if isinstance(match.get("path"), str) else ""
        return await _find_direct(backend, {"guid": guid} if guid else {"path": path}, timeout_ms)

    shown = matches[: config.ambiguous_candidate_limit]
    payload: dict[str, Any] = {
        **base_payload,
        "matchCount": len(matches),
        "matches": shown,
        "truncated": len(matches) > len(shown),
    }
    if folder_errors:
        payload["folderErrors"] = folder_errors
    payload["note"] = (
        "No assets matched the filter."
        if not matches
        else "Multiple assets matched the filter. Refine the filter (e.g. add name:...) or use an exact path/guid."
    )
    return text_result(dump_json(payload))


# ---------------------------------------------------------------------------
# unity.component.setReference
# ---------------------------------------------------------------------------


def _string_or(args: Mapping[str, Any], key: str, fallback: str) -> str:
    value = args.get(key)
    return value if isinstance(value, str) else fallback


def looks_like_sprite_reference_mismatch(args: Mapping[str, Any], error_text: str | None) -> bool:
    """The reference points at an asset and either the field or the error mentions sprites."""
    if isinstance(args.get("referencePath"), str):
        candidate = args["referencePath"].strip()
    elif isinstance(args.get("assetPath"), str):
        candidate = args["assetPath"].strip()
    else:
        candidate = ""
    if not _ASSET_ROOT_RE.match(candidate):
        return False

    field_name = args.get("fieldName").strip().lower() if isinstance(args.get("fieldName"), str) else ""
    error = error_text.lower() if isinstance(error_text, str) else ""
    sprite_error = (
        "expects sprite" in error
        or "unityengine.sprite" in error
        or ("sprite" in error and "texture2d" in error)
        or ("type mismatch" in error and "sprite" in error)
    )
    return "sprite" in field_name or sprite_error


def set_reference_candidates(reference_type: Any, user_provided: bool) -> list[str]:
    """Reference types to try, in order. An explicit type is never second-guessed."""
    requested = reference_type.strip() if isinstance(reference_type, str) else ""
    inferred = requested or "gameObject"
    if user_provided:
        return [inferred]
    if inferred == "asset":
        return ["asset"]
    if inferred == "component":
        return ["component", "gameObject"]
    return ["gameObject", "component"]


def build_set_reference_guidance(
    args: Mapping[str, Any],
    attempted_reference_types: Sequence[str],
    last_error: str | None,
    user_provided_reference_type: bool,
) -> CallToolResult:
    missing_keys = [
        key
        for key in ("path", "componentType", "fieldName", "referencePath")
        if not isinstance(args.get(key), str) or not args[key].strip()
    ]

    retry_template = {
        "path": _string_or(args, "path", _string_or(args, "gameObjectPath", "<SOURCE_PATH>")),
        "componentType": _string_or(args, "componentType", "<ComponentType>"),
        "fieldName": _string_or(args, "fieldName", "<fieldName>"),
        "referencePath": _string_or(args, "referencePath", "<TARGET_PATH>"),
        "referenceType": "<asset|gameObject|component>",
    }

    text = f"{SET_REFERENCE_TOOL} guidance\n\n"
    if missing_keys:
        text += f"Missing/invalid keys: {', '.join(missing_keys)}\n\n"
    if attempted_reference_types:
        text += f"Tried referenceType candidates: {', '.join(attempted_reference_types)}\n\n"
    if user_provided_reference_type:
        text += "Note: referenceType was provided explicitly; the bridge does not override it.\n\n"
    text += (
        "referenceType values:\n"
        '- asset: set an Asset reference (use referencePath like "Assets/Foo.asset")\n'
        "- gameObject: set a GameObject reference\n"
        "- component: set a Component reference (e.g. Transform, Rigidbody2D)\n\n"
        "referencePath format:\n"
        '- Use a hierarchy path (e.g. "Root/Child") when possible.\n'
        "- If you only have a name, ensure it's unique in the scene.\n"
        "- Use unity.scene.list to find the exact path.\n\n"
    )
    if isinstance(args.get("fieldName"), str) and looks_like_sprite_reference_mismatch(args, last_error):
        texture_path = _string_or(args, "referencePath", "Assets/Foo.png")
        text += (
            "Sprite fields:\n"
            "- setReference may fail when referencePath points to a texture file (Texture2D main asset) "
            "but the field expects a Sprite.\n"
            f'- Make sure "{texture_path}" is imported with textureType Sprite '
            "(unity.assetImport.setTextureType, requires __confirm: true), then retry.\n"
            "- Sprite sheets contain several sprites; the bridge never picks one silently.\n\n"
        )
    text += f"Retry template:\n{dump_json(retry_template)}\n\n"
    if last_error:
        text += f"Last error:\n{last_error}"

    return text_result(text, is_error=True)


async def handle_component_set_reference(
    backend: UnityHttpBackend,
    args: Mapping[str, Any],
    timeout_ms: float,
    user_provided_reference_type: bool,
    leading: Sequence[TextContent] = (),
) -> CallToolResult:
    """Try each candidate reference type; return the first success, else guidance."""
    candidates = set_reference_candidates(args.get("referenceType"), user_provided_reference_type)

    last_error: str | None = None
    for reference_type in candidates:
        call_args = {**args, "referenceType": reference_type}
        try:
            result = await backend.call_tool(SET_REFERENCE_TOOL, call_args, timeout_ms)
        except UnityRpcError as e:
            last_error = e.describe()
            DebugLogger.debug_tool_execution(backend, SET_REFERENCE_TOOL, "RETRY", f"{reference_type}: {last_error}")
            continue

        if result.get("isError") is True:
            last_error = stringify_tool_call_result(result)
            DebugLogger.debug_tool_execution(backend, SET_REFERENCE_TOOL, "RETRY", f"{reference_type} rejected")
            continue

        return to_call_tool_result(result, leading=leading)

    guidance = build_set_reference_guidance(args, candidates, last_error, user_provided_reference_type)
    return CallToolResult(content=[*leading, *guidance.content], isError=True)


# ---------------------------------------------------------------------------
# TilemapRenderer
# ---------------------------------------------------------------------------


def get_tilemap_renderer_pitfall_hint(tool_name: Any, args: Mapping[str, Any] | None) -> str | None:
    """Hint for adding a TilemapRenderer to an object that already renders a mesh."""
    if not isinstance(tool_name, str) or not tool_name:
        return None
    if not _COMPONENT_TOOL_RE.match(tool_name) or not _ADD_RE.search(tool_name):
        return None

    args = args if isinstance(args, Mapping) else {}
    raw = ""
    for key in ("componentType", "type", "name"):
        if isinstance(args.get(key), str):
            raw = args[key]
            break

    component_type = raw.strip()
    if not component_type or component_type.split(".")[-1] != "TilemapRenderer":
        return None

    return (
        "[Tilemap Pitfall] TilemapRenderer conflicts with MeshFilter/MeshRenderer, so adding it to a "
        "primitive (Cube, Quad, ...) fails.\n"
        "Workarounds:\n"
        "- Create an empty GameObject and add Tilemap + TilemapRenderer to it\n"
        '- Or use unity.editor.executeMenuItem("GameObject/2D Object/Tilemap/Rectangular")\n'
    )
