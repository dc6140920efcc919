"""Adjustments to the tool schemas Unity advertises.

Unity's schemas lag behind what the bridge accepts (aliases it rewrites, tools
that only exist when an optional package is installed). Patching happens on the
raw ``tools/list`` dicts before they are validated into ``mcp.types.Tool``.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

_MISSING_SUFFIX = "Calls fail if it is not installed."

OPTIONAL_PACKAGE_NOTES: tuple[tuple[str, str], ...] = (
    ("unity.cinemachine.", f"[Optional] Requires package: com.unity.cinemachine (Cinemachine). {_MISSING_SUFFIX}"),
    ("unity.inputsystem.", f"[Optional] Requires package: com.unity.inputsystem (Input System). {_MISSING_SUFFIX}"),
    ("unity.probuilder.", f"[Optional] Requires package: com.unity.probuilder (ProBuilder). {_MISSING_SUFFIX}"),
    ("unity.recorder.", f"[Optional] Requires package: com.unity.recorder (Recorder). {_MISSING_SUFFIX}"),
    ("unity.shadergraph.", f"[Optional] Requires package: com.unity.shadergraph (Shader Graph). {_MISSING_SUFFIX}"),
    ("unity.timeline.", f"[Optional] Requires package: com.unity.timeline (Timeline). {_MISSING_SUFFIX}"),
    ("unity.compositing.", f"[Optional] Requires extension: LocalMcp.UnityServer.Compositing.Editor. {_MISSING_SUFFIX}"),
    ("unity.volume.", f"[Optional] Requires extension: LocalMcp.UnityServer.Volume.Editor. {_MISSING_SUFFIX}"),
    (
        "unity.uitoolkit.",
        "[Optional] Requires extension: LocalMcp.UnityServer.UIToolkit.Editor "
        f"(import the UIToolkit Extension sample). {_MISSING_SUFFIX}",
    ),
    ("unity.textmeshpro.", f"[Optional] Requires package: TextMeshPro. {_MISSING_SUFFIX}"),
    (
        "unity.import.",
        "[Optional] Requires extension: LocalMcp.UnityServer.AssetImport.Editor. "
        f"{_MISSING_SUFFIX} (Alternative: unity.assetImport.setTextureType.)",
    ),
)

UITOOLKIT_RUNTIME_SELECTOR_TOOLS = frozenset(
    {
        "unity.uitoolkit.runtime.setElementText",
        "unity.uitoolkit.runtime.setElementValue",
        "unity.uitoolkit.runtime.setElementVisibility",
        "unity.uitoolkit.runtime.setElementEnabled",
        "unity.uitoolkit.runtime.addRuntimeClass",
        "unity.uitoolkit.runtime.removeRuntimeClass",
    }
)


def optional_package_note(tool_name: str) -> str | None:
    name_lower = tool_name.lower()
    for prefix, note in OPTIONAL_PACKAGE_NOTES:
        if name_lower.startswith(prefix):
            return note
    return None


def _schema_parts(tool: dict[str, Any]) -> tuple[dict[str, Any], dict[str, Any]]:
    schema = tool.get("inputSchema")
    schema = dict(schema) if isinstance(schema, dict) else {"type": "object"}
    properties = schema.get("properties")
    properties = dict(properties) if isinstance(properties, dict) else {}
    return schema, properties


def _existing(properties: dict[str, Any], key: str) -> dict[str, Any]:
    value = properties.get(key)
    return dict(value) if isinstance(value, dict) else {"type": "string"}


def _patch_asset_find(tool: dict[str, Any]) -> dict[str, Any]:
    schema, properties = _schema_parts(tool)
    note = "(bridge compatibility: the Unity implementation may require path or guid)"
    properties["path"] = {"type": "string", "description": f"Asset path {note}"}
    properties["guid"] = {"type": "string", "description": f"Asset GUID {note}"}
    schema["properties"] = properties
    schema["anyOf"] = [{"required": ["filter"]}, {"required": ["path"]}, {"required": ["guid"]}]
    schema.pop("required", None)
    return {**tool, "inputSchema": schema}


def _patch_asset_list(tool: dict[str, Any]) -> dict[str, Any]:
    schema, properties = _schema_parts(tool)
    properties["assetType"] = {
        "type": "string",
        "description": (
            "Asset type (bridge compatibility: the Unity implementation may require assetType, "
            "e.g. 'Material', 'Scene', 'Prefab', 'Object')"
        ),
    }
    schema["properties"] = properties
    return {**tool, "inputSchema": schema}


def _patch_set_reference(tool: dict[str, Any]) -> dict[str, Any]:
    schema, properties = _schema_parts(tool)
    properties["referenceType"] = {
        **_existing(properties, "referenceType"),
        "description": (
            "Reference kind ('asset' / 'gameObject' / 'component'). When omitted the bridge infers it "
            "from referencePath and fieldName; set it explicitly if that fails."
        ),
    }
    reference_path = properties.get("referencePath")
    if isinstance(reference_path, dict):
        current = reference_path.get("description")
        prefix = f"{current}\n\n" if isinstance(current, str) and current.strip() else ""
        properties["referencePath"] = {
            **reference_path,
            "description": prefix
            + 'Target GameObject path (e.g. "Root/Child"). If it is ambiguous, get candidate paths from unity.scene.list.',
        }
    schema["properties"] = properties
    if isinstance(schema.get("required"), list):
        schema["required"] = [key for key in schema["required"] if key != "referenceType"]
    return {**tool, "inputSchema": schema}


def _patch_configure_ui_document(tool: dict[str, Any]) -> dict[str, Any]:
    schema, properties = _schema_parts(tool)
    properties["uxmlPath"] = {"type": "string", "description": "UXML path (optional)"}
    properties["panelSettingsPath"] = {"type": "string", "description": "PanelSettings path (optional)"}
    properties["sortingOrder"] = {"type": "integer", "description": "Sorting order (optional)"}
    schema["properties"] = properties
    return {**tool, "inputSchema": schema}


def _patch_create_ui_document(tool: dict[str, Any]) -> dict[str, Any]:
    schema, properties = _schema_parts(tool)
    properties["panelSettingsPath"] = {"type": "string", "description": "PanelSettings path (optional)"}
    properties["sortingOrder"] = {"type": "integer", "description": "Sorting order (optional)"}
    schema["properties"] = properties
    return {**tool, "inputSchema": schema}


def _patch_query_element(tool: dict[str, Any]) -> dict[str, Any]:
    schema, properties = _schema_parts(tool)
    properties["selector"] = {"type": "string", "description": 'USS selector (e.g. "#HPLabel" / ".some-class")'}
    properties["query"] = {
        **_existing(properties, "query"),
        "description": "Query (bridge compatibility: Unity may require selector; the bridge converts query to selector)",
    }
    schema["properties"] = properties
    schema["required"] = ["gameObjectPath"]
    schema["anyOf"] = [{"required": ["selector"]}, {"required": ["query"]}]
    return {**tool, "inputSchema": schema}


def _patch_runtime_selector_tool(tool: dict[str, Any]) -> dict[str, Any]:
    schema, properties = _schema_parts(tool)
    properties["selector"] = {"type": "string", "description": 'USS selector (e.g. "#HPLabel"). Can replace elementName.'}
    properties["elementName"] = {
        **_existing(properties, "elementName"),
        "description": (
            "Element name (bridge compatibility: Unity may require selector; "
            "the bridge converts elementName to selector, e.g. HPLabel -> #HPLabel)"
        ),
    }
    schema["properties"] = properties

    required = schema.get("required") if isinstance(schema.get("required"), list) else []
    required = [key for key in dict.fromkeys(required) if key != "elementName"]
    if "gameObjectPath" not in required:
        required.append("gameObjectPath")
    schema["required"] = required
    schema["anyOf"] = [{"required": ["selector"]}, {"required": ["elementName"]}]
    return {**tool, "inputSchema": schema}


_SCHEMA_PATCHES: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
    "unity.asset.find": _patch_asset_find,
    "unity.asset.list": _patch_asset_list,
    "unity.component.setReference": _patch_set_reference,
    "unity.uitoolkit.scene.configureUIDocument": _patch_configure_ui_document,
    "unity.uitoolkit.runtime.createUIDocument": _patch_create_ui_document,
    "unity.uitoolkit.runtime.queryElement": _patch_query_element,
}


def patch_tool_schema(tool: Any) -> Any:
    """Patch one raw tool dict. Non-dict entries are returned unchanged; the input is never mutated."""
    if not isinstance(tool, dict):
        return tool

    name = tool.get("name") if isinstance(tool.get("name"), str) else ""
    patched = tool

    note = optional_package_note(name)
    if note:
        description = tool.get("description").strip() if isinstance(tool.get("description"), str) else ""
        if note not in description:
            patched = {**tool, "description": f"{description}\n\n{note}" if description else note}

    if name in _SCHEMA_PATCHES:
        return _SCHEMA_PATCHES[name](patched)
    if name in UITOOLKIT_RUNTIME_SELECTOR_TOOLS:
        return _patch_runtime_selector_tool(patched)
    return patched


def patch_tool_schemas(tools: Any) -> list[Any]:
    return [patch_tool_schema(tool) for tool in tools or []]
