"""Unity endpoint selection and connection status.

``UnityConnection`` is the only mutable state the bridge carries. It owns the
current endpoint URL (re-read from the runtime file after connectivity
failures, filtered through the URL policy) and the health bookkeeping used to
log connect/disconnect transitions exactly once.
"""

from __future__ import annotations

import json
import logging
import math

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from unity_mcp_bridge.config import BridgeConfig
from unity_mcp_bridge.config.config_manager import ConfigManager
from unity_mcp_bridge.mcp_utils import DebugLogger, bridge_message
from unity_mcp_bridge.policy.url_safety import apply_url_policy

logger = logging.getLogger(__name__)

SOURCE_RUNTIME_CONFIG = "runtime-config"


class RuntimeConfigError(ValueError):
    """Raised when the runtime file exists but does not name a usable port."""


@dataclass(frozen=True)
class RuntimeConfigRead:
    config: dict[str, Any] | None = None
    url: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class UrlReloadResult:
    url: str
    changed: bool
    source: str

    def as_dict(self) -> dict[str, Any]:
        return {"url": self.url, "changed": self.changed, "source": self.source}


def _parse_http_port(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip() or "0")
        except ValueError:
            return math.nan
    return math.nan


def _load_runtime_config(path: Path) -> tuple[dict[str, Any], str]:
    with open(path, encoding="utf-8") as f:
        parsed = json.load(f)
    if not isinstance(parsed, dict):
        raise RuntimeConfigError(f"Invalid httpPort in {path.name} ({path})")
    port = _parse_http_port(parsed.get("httpPort"))
    if not math.isfinite(port) or port <= 0:
        raise RuntimeConfigError(f"Invalid httpPort in {path.name} ({path})")
    port_text = str(int(port)) if port.is_integer() else str(port)
    return parsed, f"http://localhost:{port_text}"


def read_runtime_config(path: Path) -> RuntimeConfigRead:
    """Read the port Unity published for this project; a missing file is not an error."""
    if not path.exists():
        return RuntimeConfigRead()
    try:
        config, url = _load_runtime_config(path)
    except (OSError, ValueError) as e:
        return RuntimeConfigRead(error=str(e))
    return RuntimeConfigRead(config=config, url=url)


class UnityConnection:
    """Current Unity endpoint plus connection health."""

    def __init__(
        self,
        config: BridgeConfig,
        runtime_config_path: Path,
        fallback_url: str = ConfigManager.DEFAULT_UNITY_HTTP_URL,
        fallback_source: str = "default",
        default_url: str = ConfigManager.DEFAULT_UNITY_HTTP_URL,
    ):
        self.config = config
        self.runtime_config_path = runtime_config_path
        self.fallback_url = fallback_url
        self.fallback_source = fallback_source
        self.default_url = default_url

        self.url: str | None = None
        self.source: str | None = None
        self.runtime_config: dict[str, Any] | None = None
        self.last_runtime_config_error: str | None = None
        self.last_url_warning: str | None = None
        self.last_url_error: str | None = None
        self.blocked_url: str | None = None

        self._connected = False
        self._last_health_check: datetime | None = None
        self._connection_warning_shown = False

    @classmethod
    def from_config_manager(cls, manager: ConfigManager) -> UnityConnection:
        return cls(
            manager.bridge_config,
            manager.runtime_config_path,
            fallback_url=manager.fallback_unity_http_url,
            fallback_source=manager.fallback_unity_http_url_source,
        )

    # ----- Endpoint -----

    def reload_url(self, silent: bool = False, reason: str = "manual") -> UrlReloadResult:
        """Re-resolve the endpoint: runtime file, else ``UNITY_HTTP_URL``/default, then the URL policy."""
        previous_url = self.url

        runtime = read_runtime_config(self.runtime_config_path)
        self.last_runtime_config_error = runtime.error
        if runtime.url:
            self.url = runtime.url
            self.source = SOURCE_RUNTIME_CONFIG
            self.runtime_config = runtime.config
        else:
            self.url = self.fallback_url
            self.source = self.fallback_source
            self.runtime_config = None

        if not silent and (previous_url is None or previous_url != self.url):
            if self.source == SOURCE_RUNTIME_CONFIG:
                project_name = (self.runtime_config or {}).get("projectName")
                project_info = f" (Project: {project_name})" if project_name else ""
                bridge_message(f"Using runtime config: {self.url}{project_info}")
            else:
                bridge_message(f"Using fallback URL: {self.url}")
            DebugLogger.debug_connection(self, f"URL reload reason: {reason}")

        decision = apply_url_policy(self.url, self.config, self.default_url)
        self.last_url_warning = decision.warning
        self.last_url_error = decision.error
        self.blocked_url = decision.blocked_url

        if decision.blocked_url is not None:
            self.url = decision.url
            self.source = decision.fallback_source
            if not silent:
                bridge_message(f"ERROR: {decision.error}")
                bridge_message(f"Falling back to safe URL: {self.url}")
        elif decision.error is not None:
            if not silent:
                bridge_message(f"Invalid Unity HTTP URL: {decision.error}")
            return self._reload_result(previous_url)

        if decision.warning is not None and not silent:
            bridge_message(f"WARNING: {decision.warning}")

        if runtime.error and not silent:
            bridge_message(f"Failed to read runtime config: {runtime.error}")

        return self._reload_result(previous_url)

    @property
    def url_config_error(self) -> str | None:
        """The URL error when the endpoint is unusable; None once a safe fallback replaced it."""
        return self.last_url_error if self.blocked_url is None else None

    def _reload_result(self, previous_url: str | None) -> UrlReloadResult:
        changed = previous_url is not None and previous_url != self.url
        return UrlReloadResult(url=self.url or "", changed=changed, source=self.source or "")

    # ----- Health bookkeeping -----

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def last_health_check(self) -> datetime | None:
        return self._last_health_check

    @property
    def connection_warning_shown(self) -> bool:
        return self._connection_warning_shown

    def mark_healthy(self) -> bool:
        """Record a successful probe. Returns True when this is a (re)connection."""
        was_disconnected = not self._connected
        self._connected = True
        self._last_health_check = datetime.now(timezone.utc)
        self._connection_warning_shown = False
        if was_disconnected:
            DebugLogger.debug_connection(self, f"Unity reachable at {self.url}")
        return was_disconnected

    def mark_unreachable(self) -> str | None:
        """Record a failed probe.

        Returns ``"lost"`` when an established connection just dropped,
        ``"not-running"`` when Unity was never reached, and None when the
        operator has already been told.
        """
        was_connected = self._connected
        self._connected = False
        if self._connection_warning_shown:
            return None
        if not was_connected and self._last_health_check is not None:
            return None
        self._connection_warning_shown = True
        DebugLogger.debug_connection(self, f"Unity unreachable at {self.url}")
        return "lost" if was_connected else "not-running"

    def mark_disconnected(self) -> bool:
        """Drop the connected flag after a failed call. Returns whether it was set."""
        was_connected = self._connected
        self._connected = False
        return was_connected

    def status_snapshot(self) -> dict[str, Any]:
        return {
            "unityHttpUrl": self.url,
            "unityHttpUrlSource": self.source,
            "runtimeConfigPath": str(self.runtime_config_path),
            "runtimeConfigExists": self.runtime_config_path.exists(),
            "lastRuntimeConfigError": self.last_runtime_config_error,
            "lastUnityHttpUrlWarning": self.last_url_warning,
            "lastUnityHttpUrlError": self.last_url_error,
            "blockedUnityHttpUrl": self.blocked_url,
            "isUnityConnected": self._connected,
            "lastHealthCheck": self._last_health_check.isoformat() if self._last_health_check else None,
        }
