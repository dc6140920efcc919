"""Configuration manager for the Unity MCP bridge.

The bridge configuration is assembled exactly once at startup: an optional JSON
file supplies project-level policy (confirmation allow/deny lists), environment
variables layer numeric and boolean settings on top, and the result is frozen.
Every consumer receives the resulting ``BridgeConfig`` by parameter.
"""

from __future__ import annotations

import json
import logging
import os
import re

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from unity_mcp_bridge.mcp_utils.debug_logger import DebugLogger

logger = logging.getLogger(__name__)

# Environment variable names
ENV_TOOL_TIMEOUT_MS = "MCP_TOOL_TIMEOUT_MS"
ENV_HEAVY_TOOL_TIMEOUT_MS = "MCP_HEAVY_TOOL_TIMEOUT_MS"
ENV_MAX_TOOL_TIMEOUT_MS = "MCP_MAX_TOOL_TIMEOUT_MS"
ENV_REQUIRE_CONFIRMATION = "MCP_REQUIRE_CONFIRMATION"
ENV_REQUIRE_UNAMBIGUOUS_TARGETS = "MCP_REQUIRE_UNAMBIGUOUS_TARGETS"
ENV_ENABLE_UNSAFE_EDITOR_INVOKE = "MCP_ENABLE_UNSAFE_EDITOR_INVOKE"
ENV_ALLOW_REMOTE_UNITY_HTTP_URL = "MCP_ALLOW_REMOTE_UNITY_HTTP_URL"
ENV_STRICT_LOCAL_UNITY_HTTP_URL = "MCP_STRICT_LOCAL_UNITY_HTTP_URL"
ENV_SCENE_LIST_MAX_DEPTH = "MCP_SCENE_LIST_MAX_DEPTH"
ENV_AMBIGUOUS_CANDIDATE_LIMIT = "MCP_AMBIGUOUS_CANDIDATE_LIMIT"
ENV_PREFLIGHT_SCENE_LIST_TIMEOUT_MS = "MCP_PREFLIGHT_SCENE_LIST_TIMEOUT_MS"
ENV_BRIDGE_CONFIG_PATH = "MCP_BRIDGE_CONFIG_PATH"
ENV_VERBOSE = "MCP_VERBOSE"
ENV_UNITY_HTTP_URL = "UNITY_HTTP_URL"

_TRUE_VALUES = ("1", "true", "yes", "y", "on")
_FALSE_VALUES = ("0", "false", "no", "n", "off")
_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")

_KNOWN_FILE_KEYS = frozenset({"requireConfirmation", "confirm"})
_KNOWN_CONFIRM_KEYS = frozenset({"allowlist", "denylist"})


def parse_positive_int(value: Any, fallback: int | None) -> int | None:
    """Parse the leading integer of ``value``; non-positive or unparsable values yield ``fallback``.

    ``"10.5"`` parses as 10, ``"abc"``, ``"0"`` and ``None`` fall back.
    """
    if value is None or isinstance(value, bool):
        return fallback
    match = _LEADING_INT_RE.match(str(value))
    if match is None:
        return fallback
    number = int(match.group(1))
    if number <= 0:
        return fallback
    return number


def parse_boolean(value: Any, fallback: bool) -> bool:
    """Parse a loose boolean (``yes``/``no``, ``1``/``0``, ``on``/``off`` ...)."""
    if value is None:
        return fallback
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    return fallback


def normalize_tool_patterns(entries: Any) -> tuple[str, ...]:
    """Keep trimmed, non-empty string patterns from a list; anything else yields ``()``."""
    if not isinstance(entries, (list, tuple)):
        return ()
    return tuple(entry.strip() for entry in entries if isinstance(entry, str) and entry.strip())


@dataclass(frozen=True)
class BridgeConfig:
    """Immutable, process-wide bridge settings."""

    default_tool_timeout_ms: int = 60_000
    heavy_tool_timeout_ms: int = 300_000
    max_tool_timeout_ms: int = 600_000
    require_confirmation: bool = True
    require_unambiguous_targets: bool = True
    enable_unsafe_editor_invoke: bool = False
    allow_remote_unity_http_url: bool = False
    strict_local_unity_http_url: bool = False
    scene_list_max_depth: int = 20
    ambiguous_candidate_limit: int = 25
    preflight_scene_list_timeout_ms: int = 60_000
    confirm_allowlist: tuple[str, ...] = ()
    confirm_denylist: tuple[str, ...] = ()


def create_bridge_config(env: Mapping[str, str] | None, file_config: Mapping[str, Any] | None = None) -> BridgeConfig:
    """Build the bridge configuration from environment variables layered over the file config."""
    env = env or {}
    file_config = file_config if isinstance(file_config, Mapping) else {}

    default_timeout = parse_positive_int(env.get(ENV_TOOL_TIMEOUT_MS), BridgeConfig.default_tool_timeout_ms)
    heavy_timeout = parse_positive_int(env.get(ENV_HEAVY_TOOL_TIMEOUT_MS), BridgeConfig.heavy_tool_timeout_ms)
    max_timeout = parse_positive_int(env.get(ENV_MAX_TOOL_TIMEOUT_MS), BridgeConfig.max_tool_timeout_ms)

    # Env wins over the file, even when the env value is unparsable (falls back to the default).
    if ENV_REQUIRE_CONFIRMATION in env:
        require_confirmation_raw = env.get(ENV_REQUIRE_CONFIRMATION)
    else:
        require_confirmation_raw = file_config.get("requireConfirmation")

    confirm_section = file_config.get("confirm")
    if not isinstance(confirm_section, Mapping):
        confirm_section = {}

    return BridgeConfig(
        default_tool_timeout_ms=default_timeout,
        heavy_tool_timeout_ms=heavy_timeout,
        max_tool_timeout_ms=max_timeout,
        require_confirmation=parse_boolean(require_confirmation_raw, True),
        require_unambiguous_targets=parse_boolean(env.get(ENV_REQUIRE_UNAMBIGUOUS_TARGETS), True),
        enable_unsafe_editor_invoke=parse_boolean(env.get(ENV_ENABLE_UNSAFE_EDITOR_INVOKE), False),
        allow_remote_unity_http_url=parse_boolean(env.get(ENV_ALLOW_REMOTE_UNITY_HTTP_URL), False),
        strict_local_unity_http_url=parse_boolean(env.get(ENV_STRICT_LOCAL_UNITY_HTTP_URL), False),
        scene_list_max_depth=min(parse_positive_int(env.get(ENV_SCENE_LIST_MAX_DEPTH), 20), 100),
        ambiguous_candidate_limit=min(parse_positive_int(env.get(ENV_AMBIGUOUS_CANDIDATE_LIMIT), 25), 200),
        preflight_scene_list_timeout_ms=min(
            parse_positive_int(env.get(ENV_PREFLIGHT_SCENE_LIST_TIMEOUT_MS), default_timeout),
            max_timeout,
        ),
        confirm_allowlist=normalize_tool_patterns(confirm_section.get("allowlist")),
        confirm_denylist=normalize_tool_patterns(confirm_section.get("denylist")),
    )


@dataclass
class FileConfigResult:
    """Outcome of reading the optional bridge config file."""

    path: str | None
    exists: bool = False
    error: str | None = None
    warnings: list[str] = field(default_factory=list)
    config: dict[str, Any] | None = None


def load_bridge_file_config(path: Path | None) -> FileConfigResult:
    """Read the JSON bridge config file.

    Never raises: a missing file is not an error, while unreadable or invalid
    content is reported through ``error`` and suspicious keys through ``warnings``.
    """
    if path is None:
        return FileConfigResult(path=None)

    result = FileConfigResult(path=str(path))
    if not path.exists():
        return result

    result.exists = True
    try:
        with open(path, encoding="utf-8") as f:
            parsed = json.load(f)
    except (OSError, ValueError) as e:
        result.error = f"Failed to load bridge config {path}: {e}"
        logger.warning(result.error)
        return result

    if not isinstance(parsed, dict):
        result.error = f"Bridge config {path} must contain a JSON object"
        logger.warning(result.error)
        return result

    for key in parsed:
        if key not in _KNOWN_FILE_KEYS:
            result.warnings.append(f"Unknown key: {key}")

    confirm_section = parsed.get("confirm")
    if confirm_section is not None:
        if not isinstance(confirm_section, dict):
            result.warnings.append("confirm must be an object with allowlist/denylist arrays")
        else:
            for key, value in confirm_section.items():
                if key not in _KNOWN_CONFIRM_KEYS:
                    result.warnings.append(f"Unknown key: confirm.{key}")
                elif not isinstance(value, list):
                    result.warnings.append(f"confirm.{key} must be an array of tool name patterns")

    result.config = parsed
    DebugLogger.debug(result, f"Loaded bridge config from {path}")
    return result


class ConfigManager:
    """Builds the bridge configuration once at startup."""

    CONFIG_FILE_NAME = ".unity-mcp-bridge.json"
    RUNTIME_CONFIG_FILE_NAME = ".unity-mcp-runtime.json"
    DEFAULT_UNITY_HTTP_URL = "http://localhost:5051"

    def __init__(
        self,
        config_file: Path | None = None,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ):
        """Initialize configuration manager.

        Args:
            config_file: Optional explicit config file (overrides MCP_BRIDGE_CONFIG_PATH)
            env: Environment mapping (defaults to ``os.environ``)
            cwd: Project directory holding the config and runtime files
        """
        self.env: dict[str, str] = dict(os.environ if env is None else env)
        self.cwd: Path = cwd if cwd is not None else Path.cwd()
        self.config_path: Path = self._resolve_config_path(config_file)
        self.file_config: FileConfigResult = load_bridge_file_config(self.config_path)
        self.bridge_config: BridgeConfig = create_bridge_config(self.env, self.file_config.config)

        self._apply_debug_override()

    def _resolve_config_path(self, config_file: Path | None) -> Path:
        if config_file is not None:
            return config_file
        env_path = self.env.get(ENV_BRIDGE_CONFIG_PATH, "").strip()
        if env_path:
            return Path(env_path)
        return self.cwd / self.CONFIG_FILE_NAME

    def _apply_debug_override(self) -> None:
        if ENV_VERBOSE in self.env:
            DebugLogger.set_debug_enabled(parse_boolean(self.env[ENV_VERBOSE], False))

    @property
    def runtime_config_path(self) -> Path:
        return self.cwd / self.RUNTIME_CONFIG_FILE_NAME

    @property
    def fallback_unity_http_url(self) -> str:
        """The endpoint used when no runtime file is present."""
        return self.env.get(ENV_UNITY_HTTP_URL) or self.DEFAULT_UNITY_HTTP_URL

    @property
    def fallback_unity_http_url_source(self) -> str:
        return f"env:{ENV_UNITY_HTTP_URL}" if self.env.get(ENV_UNITY_HTTP_URL) else "default"
