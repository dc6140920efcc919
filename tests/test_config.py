"""Test bridge configuration parsing and file loading.

Verifies that:
- Numeric and boolean environment values parse loosely but safely
- Environment variables layer over the optional JSON file
- Invalid config files are reported, never raised
"""

from __future__ import annotations

import json

from pathlib import Path

import pytest

from unity_mcp_bridge.config import BridgeConfig, ConfigManager, create_bridge_config, load_bridge_file_config
from unity_mcp_bridge.config.config_manager import normalize_tool_patterns, parse_boolean, parse_positive_int
from unity_mcp_bridge.mcp_utils import DebugLogger
from tests.helpers import assert_bool_invariants, assert_int_invariants

pytestmark = pytest.mark.unit


@pytest.fixture(autouse=True)
def _reset_debug(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(DebugLogger, "_debug_enabled", False)


class TestParsePositiveInt:
    """Leading-integer semantics with a fallback for anything unusable."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("10", 10),
            ("10.5", 10),
            (" 7ms", 7),
            (42, 42),
            ("+3", 3),
        ],
    )
    def test_parses_leading_integer(self, raw, expected):
        value = parse_positive_int(raw, 99)
        assert value == expected
        assert_int_invariants(value, min_value=1)

    @pytest.mark.parametrize("raw", [None, "", "abc", "0", "-5", True, False])
    def test_falls_back(self, raw):
        assert parse_positive_int(raw, 99) == 99
        assert parse_positive_int(raw, None) is None


class TestParseBoolean:
    @pytest.mark.parametrize("raw", ["1", "true", "TRUE", "yes", "y", "on", " On ", True])
    def test_truthy(self, raw):
        value = parse_boolean(raw, False)
        assert value is True
        assert_bool_invariants(value)

    @pytest.mark.parametrize("raw", ["0", "false", "No", "n", "off", False])
    def test_falsy(self, raw):
        assert parse_boolean(raw, True) is False

    @pytest.mark.parametrize("raw", [None, "", "maybe", "2"])
    def test_unrecognized_uses_fallback(self, raw):
        assert parse_boolean(raw, True) is True
        assert parse_boolean(raw, False) is False


class TestNormalizeToolPatterns:
    def test_trims_and_drops_blank_and_non_strings(self):
        assert normalize_tool_patterns([" unity.asset.* ", "", "   ", 3, None, "unity.build"]) == ("unity.asset.*", "unity.build")

    def test_non_list_yields_empty(self):
        assert normalize_tool_patterns("unity.*") == ()
        assert normalize_tool_patterns(None) == ()


class TestCreateBridgeConfig:
    """Environment layering, caps and derived defaults."""

    def test_defaults(self):
        config = create_bridge_config({})
        assert config == BridgeConfig()
        assert config.default_tool_timeout_ms == 60_000
        assert config.heavy_tool_timeout_ms == 300_000
        assert config.max_tool_timeout_ms == 600_000
        assert config.require_confirmation is True
        assert config.require_unambiguous_targets is True
        assert config.enable_unsafe_editor_invoke is False
        assert config.scene_list_max_depth == 20
        assert config.ambiguous_candidate_limit == 25
        assert config.preflight_scene_list_timeout_ms == 60_000

    def test_none_env_is_defaults(self):
        assert create_bridge_config(None) == BridgeConfig()

    def test_caps_depth_and_candidate_limit(self):
        config = create_bridge_config({"MCP_SCENE_LIST_MAX_DEPTH": "500", "MCP_AMBIGUOUS_CANDIDATE_LIMIT": "1000"})
        assert config.scene_list_max_depth == 100
        assert config.ambiguous_candidate_limit == 200

    def test_preflight_follows_default_timeout(self):
        config = create_bridge_config({"MCP_TOOL_TIMEOUT_MS": "1234"})
        assert config.preflight_scene_list_timeout_ms == 1234

    def test_preflight_capped_at_max(self):
        config = create_bridge_config({"MCP_MAX_TOOL_TIMEOUT_MS": "4000"})
        assert config.max_tool_timeout_ms == 4000
        assert config.preflight_scene_list_timeout_ms == 4000

    def test_explicit_preflight(self):
        config = create_bridge_config({"MCP_PREFLIGHT_SCENE_LIST_TIMEOUT_MS": "1500"})
        assert config.preflight_scene_list_timeout_ms == 1500

    def test_invalid_numbers_fall_back(self):
        config = create_bridge_config({"MCP_TOOL_TIMEOUT_MS": "abc", "MCP_HEAVY_TOOL_TIMEOUT_MS": "-1"})
        assert config.default_tool_timeout_ms == 60_000
        assert config.heavy_tool_timeout_ms == 300_000

    def test_booleans(self):
        config = create_bridge_config(
            {
                "MCP_REQUIRE_CONFIRMATION": "off",
                "MCP_REQUIRE_UNAMBIGUOUS_TARGETS": "no",
                "MCP_ENABLE_UNSAFE_EDITOR_INVOKE": "yes",
                "MCP_ALLOW_REMOTE_UNITY_HTTP_URL": "1",
                "MCP_STRICT_LOCAL_UNITY_HTTP_URL": "true",
            }
        )
        assert config.require_confirmation is False
        assert config.require_unambiguous_targets is False
        assert config.enable_unsafe_editor_invoke is True
        assert config.allow_remote_unity_http_url is True
        assert config.strict_local_unity_http_url is True

    def test_file_require_confirmation_used_when_env_unset(self):
        config = create_bridge_config({}, {"requireConfirmation": False})
        assert config.require_confirmation is False

    def test_env_require_confirmation_wins_over_file(self):
        config = create_bridge_config({"MCP_REQUIRE_CONFIRMATION": "true"}, {"requireConfirmation": False})
        assert config.require_confirmation is True

    def test_unparsable_env_does_not_defer_to_file(self):
        config = create_bridge_config({"MCP_REQUIRE_CONFIRMATION": "sometimes"}, {"requireConfirmation": False})
        assert config.require_confirmation is True

    def test_confirm_lists_from_file(self):
        config = create_bridge_config({}, {"confirm": {"allowlist": ["unity.asset.import*"], "denylist": [" unity.scene.* "]}})
        assert config.confirm_allowlist == ("unity.asset.import*",)
        assert config.confirm_denylist == ("unity.scene.*",)

    def test_config_is_immutable(self):
        config = create_bridge_config({})
        with pytest.raises(AttributeError):
            config.require_confirmation = False  # type: ignore[misc]


class TestLoadBridgeFileConfig:
    """The JSON file is optional and never raises."""

    def test_no_path(self):
        result = load_bridge_file_config(None)
        assert result.path is None
        assert result.exists is False
        assert result.config is None

    def test_missing_file(self, tmp_path: Path):
        result = load_bridge_file_config(tmp_path / "missing.json")
        assert result.exists is False
        assert result.error is None
        assert result.config is None

    def test_valid_file(self, tmp_path: Path):
        path = tmp_path / "bridge.json"
        path.write_text(json.dumps({"requireConfirmation": False, "confirm": {"allowlist": ["a"], "denylist": []}}))
        result = load_bridge_file_config(path)
        assert result.exists is True
        assert result.error is None
        assert result.warnings == []
        assert result.config == {"requireConfirmation": False, "confirm": {"allowlist": ["a"], "denylist": []}}

    def test_invalid_json(self, tmp_path: Path):
        path = tmp_path / "bridge.json"
        path.write_text("{not json")
        result = load_bridge_file_config(path)
        assert result.exists is True
        assert result.config is None
        assert result.error is not None
        assert result.error.startswith("Failed to load bridge config")

    def test_non_object(self, tmp_path: Path):
        path = tmp_path / "bridge.json"
        path.write_text("[1, 2]")
        result = load_bridge_file_config(path)
        assert result.config is None
        assert "must contain a JSON object" in (result.error or "")

    def test_unknown_keys_warn(self, tmp_path: Path):
        path = tmp_path / "bridge.json"
        path.write_text(json.dumps({"requireConfirmaton": True, "confirm": {"allowList": [], "denylist": "unity.*"}}))
        result = load_bridge_file_config(path)
        assert "Unknown key: requireConfirmaton" in result.warnings
        assert "Unknown key: confirm.allowList" in result.warnings
        assert "confirm.denylist must be an array of tool name patterns" in result.warnings
        assert result.config is not None


class TestConfigManager:
    def test_default_paths(self, tmp_path: Path):
        manager = ConfigManager(env={}, cwd=tmp_path)
        assert manager.config_path == tmp_path / ".unity-mcp-bridge.json"
        assert manager.runtime_config_path == tmp_path / ".unity-mcp-runtime.json"
        assert manager.file_config.exists is False
        assert manager.bridge_config == BridgeConfig()

    def test_env_config_path(self, tmp_path: Path):
        path = tmp_path / "custom.json"
        path.write_text(json.dumps({"confirm": {"denylist": ["unity.scene.save"]}}))
        manager = ConfigManager(env={"MCP_BRIDGE_CONFIG_PATH": str(path)}, cwd=tmp_path)
        assert manager.config_path == path
        assert manager.bridge_config.confirm_denylist == ("unity.scene.save",)

    def test_explicit_config_file_wins(self, tmp_path: Path):
        explicit = tmp_path / "explicit.json"
        explicit.write_text(json.dumps({"requireConfirmation": False}))
        manager = ConfigManager(config_file=explicit, env={"MCP_BRIDGE_CONFIG_PATH": str(tmp_path / "other.json")}, cwd=tmp_path)
        assert manager.config_path == explicit
        assert manager.bridge_config.require_confirmation is False

    def test_fallback_url(self, tmp_path: Path):
        manager = ConfigManager(env={}, cwd=tmp_path)
        assert manager.fallback_unity_http_url == "http://localhost:5051"
        assert manager.fallback_unity_http_url_source == "default"

        manager = ConfigManager(env={"UNITY_HTTP_URL": "http://127.0.0.1:6000"}, cwd=tmp_path)
        assert manager.fallback_unity_http_url == "http://127.0.0.1:6000"
        assert manager.fallback_unity_http_url_source == "env:UNITY_HTTP_URL"

    def test_verbose_env_enables_debug(self, tmp_path: Path):
        ConfigManager(env={"MCP_VERBOSE": "true"}, cwd=tmp_path)
        assert DebugLogger.is_debug_enabled() is True
