"""Argument inspection and normalization for Unity tool calls.

Agents spell the same target in many ways (``path``, ``gameObjectPath``,
``instancePath``, ``elementName`` ...). The helpers here read the bridge's
reserved ``__`` flags, locate the target identifier, and rewrite known aliases
into the keys the Unity side validates. None of them mutate their input.
"""

from __future__ import annotations

import math
import re

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from unity_mcp_bridge.config.config_manager import parse_boolean

# ----- Reserved (bridge-private) argument keys -----
TIMEOUT_KEYS = ("__timeoutMs", "__timeout_ms", "__timeout")
CONFIRM_KEYS = ("__confirm", "__confirmed", "__confirmDangerous", "__confirm_dangerous")
CONFIRM_NOTE_KEYS = ("__confirmNote", "__confirm_note")
ALLOW_AMBIGUOUS_KEYS = ("__allowAmbiguous", "__allow_ambiguous", "__allowAmbiguousTarget", "__allow_ambiguous_target")
MAX_MESSAGE_CHARS_KEYS = ("__maxMessageChars", "__max_message_chars")
MAX_STACK_TRACE_CHARS_KEYS = ("__maxStackTraceChars", "__max_stack_trace_chars")

RESERVED_ARGUMENT_KEYS: tuple[str, ...] = (
    TIMEOUT_KEYS
    + CONFIRM_KEYS
    + CONFIRM_NOTE_KEYS
    + ALLOW_AMBIGUOUS_KEYS
    + MAX_MESSAGE_CHARS_KEYS
    + MAX_STACK_TRACE_CHARS_KEYS
)

# ----- Target identifier keys -----
IDENTIFIER_KEYS = ("path", "assetPath", "gameObjectPath", "hierarchyPath", "guid", "instanceId", "instanceID", "id")
IDENTIFIER_CONTAINER_KEYS = ("target", "object")
NAME_KEYS = ("name", "objectName", "gameObjectName", "assetName", "componentName", "prefabName")
GAME_OBJECT_PATH_KEYS = ("gameObjectPath", "path", "hierarchyPath")

PREFAB_INSTANCE_TOOLS = frozenset({"unity.prefab.apply", "unity.prefab.revert", "unity.prefab.unpack"})

_ASSET_ROOT_RE = re.compile(r"^(Assets|Packages)/")
_COMPONENT_FIELD_RE = re.compile(r"(transform|component|renderer|collider|rigidbody|camera|light|animator|audio)")
_SELECTOR_PREFIX_RE = re.compile(r"^[#.\[*:]")
_ASSET_TYPE_FILTER_RE = re.compile(r"^t\s*:\s*([A-Za-z0-9_]+)", re.IGNORECASE)


@dataclass(frozen=True)
class ConfirmFlags:
    confirm: bool = False
    confirm_note: Any = None
    allow_ambiguous: bool = False


@dataclass(frozen=True)
class TargetIdentifier:
    key: str
    value: Any


@dataclass(frozen=True)
class GameObjectQuery:
    """A scene lookup derived from call arguments.

    ``force_name_match`` is set when the query came from a name-like key, in
    which case it must be compared against leaf names even if it contains ``/``.
    """

    query: str
    source_key: str
    force_name_match: bool


def first_present(args: Mapping[str, Any] | None, keys: tuple[str, ...]) -> Any:
    """Return the first value under ``keys`` that is not None."""
    if not isinstance(args, Mapping):
        return None
    for key in keys:
        value = args.get(key)
        if value is not None:
            return value
    return None


def _trimmed(args: Mapping[str, Any], key: str) -> str:
    value = args.get(key)
    return value.strip() if isinstance(value, str) else ""


def has_meaningful_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, bool):
        return True
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    return True


def get_confirm_flags(args: Mapping[str, Any] | None) -> ConfirmFlags:
    """Read the reserved confirmation and ambiguity-bypass flags."""
    return ConfirmFlags(
        confirm=parse_boolean(first_present(args, CONFIRM_KEYS), False),
        confirm_note=first_present(args, CONFIRM_NOTE_KEYS),
        allow_ambiguous=parse_boolean(first_present(args, ALLOW_AMBIGUOUS_KEYS), False),
    )


def find_target_identifier(args: Mapping[str, Any] | None) -> TargetIdentifier | None:
    """Find the first identifying key, also looking inside ``target``/``object`` containers."""
    if not isinstance(args, Mapping):
        return None

    for key in IDENTIFIER_KEYS:
        if has_meaningful_value(args.get(key)):
            return TargetIdentifier(key, args[key])

    for container_key in IDENTIFIER_CONTAINER_KEYS:
        container = args.get(container_key)
        if isinstance(container, Mapping):
            for key in IDENTIFIER_KEYS:
                if has_meaningful_value(container.get(key)):
                    return TargetIdentifier(f"{container_key}.{key}", container[key])

    return None


def find_ambiguous_name(args: Mapping[str, Any] | None) -> TargetIdentifier | None:
    """Find a name-like key, which may match several objects."""
    if not isinstance(args, Mapping):
        return None
    for key in NAME_KEYS:
        value = args.get(key)
        if isinstance(value, str) and value.strip():
            return TargetIdentifier(key, value)
    return None


def extract_game_object_query(args: Mapping[str, Any] | None) -> GameObjectQuery | None:
    if not isinstance(args, Mapping):
        return None

    for key in GAME_OBJECT_PATH_KEYS:
        value = _trimmed(args, key)
        if value:
            return GameObjectQuery(query=value, source_key=key, force_name_match=False)

    name = find_ambiguous_name(args)
    if name is not None:
        return GameObjectQuery(query=name.value.strip(), source_key=name.key, force_name_match=True)
    return None


def _normalize_set_reference(normalized: dict[str, Any]) -> None:
    reference_type = _trimmed(normalized, "referenceType")
    if isinstance(normalized.get("referenceType"), str):
        normalized["referenceType"] = reference_type

    alias = _trimmed(normalized, "reference_type")
    if not reference_type and alias:
        normalized["referenceType"] = alias
        del normalized["reference_type"]
        reference_type = alias

    reference_path = _trimmed(normalized, "referencePath")
    if not reference_type:
        if _ASSET_ROOT_RE.match(reference_path):
            reference_type = "asset"
        elif _COMPONENT_FIELD_RE.search(_trimmed(normalized, "fieldName").lower()):
            reference_type = "component"
        else:
            reference_type = "gameObject"
        normalized["referenceType"] = reference_type

    # Unity validates kind-specific keys, the schema only exposes referencePath.
    if reference_path:
        if reference_type in ("gameObject", "component"):
            if not _trimmed(normalized, "referenceGameObjectPath"):
                normalized["referenceGameObjectPath"] = reference_path
        elif reference_type == "asset":
            if not _trimmed(normalized, "referenceAssetPath"):
                normalized["referenceAssetPath"] = reference_path


def _normalize_uitoolkit(tool_name: str, normalized: dict[str, Any]) -> None:
    game_object = _trimmed(normalized, "gameObject")
    game_object_path = _trimmed(normalized, "gameObjectPath")

    if not game_object:
        fallback = game_object_path or _trimmed(normalized, "gameObjectName")
        if fallback:
            normalized["gameObject"] = fallback

    if not game_object_path:
        alias_source = _trimmed(normalized, "gameObject")
        if alias_source:
            normalized["gameObjectPath"] = alias_source

    if not tool_name.startswith("unity.uitoolkit.runtime."):
        return

    selector = _trimmed(normalized, "selector")
    if selector:
        normalized["selector"] = selector
        normalized.pop("query", None)
        normalized.pop("elementName", None)
        return

    query = _trimmed(normalized, "query")
    if query:
        normalized["selector"] = query
        del normalized["query"]
        normalized.pop("elementName", None)
        return

    element_name = _trimmed(normalized, "elementName")
    if element_name:
        looks_like_selector = bool(_SELECTOR_PREFIX_RE.match(element_name)) or " " in element_name or ">" in element_name
        normalized["selector"] = element_name if looks_like_selector else f"#{element_name}"
        del normalized["elementName"]
        normalized.pop("query", None)


def normalize_unity_arguments(tool_name: str, args: Mapping[str, Any] | None) -> dict[str, Any]:
    """Rewrite known argument aliases into the keys the Unity side expects.

    Only fills keys that are missing or blank; caller-supplied values are never
    overwritten. Applying it twice gives the same result as applying it once.
    """
    if not isinstance(args, Mapping):
        return {}

    normalized = dict(args)

    if tool_name == "unity.component.setReference":
        _normalize_set_reference(normalized)

    if tool_name in PREFAB_INSTANCE_TOOLS:
        instance_path = _trimmed(normalized, "instancePath")
        if instance_path and not _trimmed(normalized, "gameObjectPath"):
            normalized["gameObjectPath"] = instance_path

    if tool_name == "unity.create" and _trimmed(normalized, "type") and not _trimmed(normalized, "primitiveType"):
        normalized["primitiveType"] = normalized["type"]

    if tool_name == "unity.asset.createFolder" and not _trimmed(normalized, "path"):
        parent_folder = _trimmed(normalized, "parentFolder")
        new_folder_name = _trimmed(normalized, "newFolderName")
        if parent_folder and new_folder_name:
            normalized["path"] = f"{parent_folder.rstrip('/')}/{new_folder_name.lstrip('/')}"

    if tool_name == "unity.asset.list" and not _trimmed(normalized, "assetType"):
        match = _ASSET_TYPE_FILTER_RE.match(_trimmed(normalized, "filter"))
        if match:
            normalized["assetType"] = match.group(1)

    if _trimmed(normalized, "path"):
        if not _trimmed(normalized, "gameObjectPath"):
            normalized["gameObjectPath"] = normalized["path"]
        if tool_name == "unity.asset.delete" and not _trimmed(normalized, "assetPath"):
            normalized["assetPath"] = normalized["path"]

    # Runs after the path mirror so gameObject sees the final gameObjectPath.
    if tool_name.startswith("unity.uitoolkit."):
        _normalize_uitoolkit(tool_name, normalized)

    return normalized


def strip_reserved_arguments(args: Mapping[str, Any]) -> dict[str, Any]:
    """Drop bridge-private keys so Unity-side schema validation does not reject the call."""
    return {key: value for key, value in args.items() if key not in RESERVED_ARGUMENT_KEYS}
