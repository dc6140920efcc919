"""Test helper utilities for the Unity MCP bridge tests.

Provides common functionality used across multiple test modules:
- Bridge configuration construction
- A scripted in-memory Unity backend
- Scene tree builders
- Response validation
"""

from __future__ import annotations

import json

from pathlib import Path
from typing import Any

from unity_mcp_bridge.client import ServerNotRunningError
from unity_mcp_bridge.config import BridgeConfig, ConfigManager, create_bridge_config


def make_config(**env: str) -> BridgeConfig:
    """Build a BridgeConfig from keyword environment variables only (no os.environ)."""
    return create_bridge_config(env)


def make_config_manager(tmp_path: Path, env: dict[str, str] | None = None, runtime_port: int | None = None) -> ConfigManager:
    """ConfigManager rooted at ``tmp_path``, optionally with a runtime file publishing ``runtime_port``."""
    if runtime_port is not None:
        (tmp_path / ConfigManager.RUNTIME_CONFIG_FILE_NAME).write_text(
            json.dumps({"httpPort": runtime_port, "projectName": "TestProject"}),
            encoding="utf-8",
        )
    return ConfigManager(env=env or {}, cwd=tmp_path)


def scene_node(name: str, path: str | None = None, children: list[dict[str, Any]] | None = None, **extra: Any) -> dict[str, Any]:
    """A ``unity.scene.list`` tree node; ``path`` defaults to ``name``."""
    node: dict[str, Any] = {
        "name": name,
        "path": path if path is not None else name,
        "active": True,
        "childCount": len(children or []),
        "children": children or [],
    }
    node.update(extra)
    return node


def unity_text_result(text: str, is_error: bool = False) -> dict[str, Any]:
    """A raw Unity ``tools/call`` result with one text part."""
    return {"content": [{"type": "text", "text": text}], "isError": is_error}


class FakeUnityBackend:
    """In-memory stand-in for UnityHttpBackend.

    ``responses`` maps tool names to a result dict, an exception instance to
    raise, or a list of those consumed one per call. Every call is recorded.
    """

    def __init__(
        self,
        responses: dict[str, Any] | None = None,
        scene: list[dict[str, Any]] | BaseException | None = None,
        tools: list[dict[str, Any]] | None = None,
        healthy: bool = True,
    ):
        self.base_url = ""
        self.responses: dict[str, Any] = dict(responses or {})
        self.scene = scene or []
        self.tools = tools or []
        self.healthy = healthy
        self.health_payload: dict[str, Any] = {"status": "ok", "projectName": "TestProject", "unityVersion": "6000.0.1f1"}
        self.calls: list[tuple[str, dict[str, Any], float]] = []
        self.scene_requests: list[tuple[int | None, float]] = []
        self.health_calls = 0
        self.closed = False

    def _next(self, name: str) -> Any:
        response = self.responses.get(name, unity_text_result("ok"))
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if isinstance(response, BaseException):
            raise response
        return response

    async def call_tool(self, name: str, arguments: dict[str, Any] | None, timeout_ms: float) -> dict[str, Any]:
        self.calls.append((name, dict(arguments or {}), timeout_ms))
        return self._next(name)

    async def fetch_scene_list(self, max_depth: int | None, timeout_ms: float) -> dict[str, Any]:
        self.scene_requests.append((max_depth, timeout_ms))
        if isinstance(self.scene, BaseException):
            raise self.scene
        return {"rootObjects": self.scene}

    async def list_tools(self, timeout_ms: float = 10_000) -> list[dict[str, Any]]:
        return list(self.tools)

    async def health(self, timeout_ms: float = 3_000) -> dict[str, Any]:
        self.health_calls += 1
        if not self.healthy:
            raise ServerNotRunningError("Connection refused")
        return dict(self.health_payload)

    async def close(self) -> None:
        self.closed = True

    def forwarded(self, name: str) -> list[dict[str, Any]]:
        """Arguments of every forwarded call to ``name``."""
        return [arguments for called, arguments, _ in self.calls if called == name]


def result_text(result: Any) -> str:
    """Concatenate the text parts of a CallToolResult."""
    assert result is not None
    assert hasattr(result, "content")
    return "\n".join(item.text for item in result.content if getattr(item, "type", None) == "text")


def assert_tool_response_common(result: Any) -> None:
    assert result is not None
    assert hasattr(result, "content")
    assert hasattr(result, "isError")
    assert isinstance(result.isError, bool)
    assert isinstance(result.content, list)
    assert all(item.type == "text" for item in result.content)
    assert all(isinstance(item.text, str) for item in result.content)
    assert all("\0" not in item.text for item in result.content)


def assert_text_block_invariants(value: str, *, must_contain: list[str] | None = None) -> None:
    assert isinstance(value, str)
    assert value.strip() != ""
    assert not value.startswith("\n")
    assert "\0" not in value
    assert value.encode("utf-8").decode("utf-8") == value
    if must_contain:
        for token in must_contain:
            assert token in value, f"{token!r} not found in {value!r}"


def parse_trailing_json(text: str) -> dict[str, Any]:
    """Parse the JSON object that follows a human-readable headline."""
    assert "{" in text
    payload = json.loads(text[text.index("{") :])
    assert isinstance(payload, dict)
    return payload


def parse_single_text_content_json(result: Any) -> dict[str, Any]:
    assert_tool_response_common(result)
    assert len(result.content) >= 1
    first = result.content[0]
    assert first.text.strip().startswith("{")
    assert first.text.strip().endswith("}")
    payload = json.loads(first.text)
    assert isinstance(payload, dict)
    return payload


def assert_mapping_invariants(mapping: dict[str, Any], *, expected_keys: list[str] | None = None) -> None:
    assert isinstance(mapping, dict)
    assert all(isinstance(k, str) for k in mapping.keys())
    assert all(k.strip() == k and k != "" for k in mapping.keys())
    assert mapping.copy() == mapping
    if expected_keys is not None:
        for key in expected_keys:
            assert key in mapping, f"missing key {key!r}"


def assert_tool_schema_invariants(tool: Any, *, expected_name: str | None = None) -> None:
    assert tool is not None
    assert isinstance(tool.name, str)
    assert tool.name.strip() == tool.name
    assert tool.name != ""
    if expected_name is not None:
        assert tool.name == expected_name
    assert isinstance(tool.inputSchema, dict)
    assert tool.inputSchema.get("type") in ("object", None)
    properties = tool.inputSchema.get("properties", {})
    assert isinstance(properties, dict)
    assert all(isinstance(k, str) and k for k in properties)
    required = tool.inputSchema.get("required", [])
    assert isinstance(required, list)
    assert all(isinstance(k, str) for k in required)


def assert_int_invariants(value: int, *, min_value: int | None = None, max_value: int | None = None) -> None:
    assert isinstance(value, int)
    assert not isinstance(value, bool)
    if min_value is not None:
        assert value >= min_value
    if max_value is not None:
        assert value <= max_value


def assert_bool_invariants(value: bool) -> None:
    assert isinstance(value, bool)
    assert value in (True, False)
