"""Stdio MCP server that mediates tool calls to the Unity editor.

``UnityMcpStdioBridge`` is the dispatch orchestrator. For every ``tools/call``
it runs the policy layer in a fixed order before anything reaches Unity:

1. ``bridge.*`` diagnostics are answered locally.
2. The arbitrary-method tool is refused unless explicitly enabled.
3. Unity must be reachable (a health probe runs if it is not known to be).
4. Arguments are normalized and the time budget resolved.
5. Destructive GameObject tools are resolved against a fresh scene snapshot
   so they address exactly one object.
6. Confirmation-required tools need ``__confirm: true``.
7. Composite handlers run, or the call is forwarded with the bridge-private
   ``__`` keys stripped. Read-only calls get one retry after a health probe.

Policy rejections are returned as ``isError`` results. Transport failures
downgrade the connection, reload the endpoint and return recovery guidance.
"""

from __future__ import annotations

import asyncio
import sys

from typing import TYPE_CHECKING, Any

from anyio import BrokenResourceError, ClosedResourceError
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import CallToolResult, LoggingCapability, ServerCapabilities, TextContent, Tool

from unity_mcp_bridge.client import (
    ClientError,
    MalformedResponseError,
    RequestTimeoutError,
    ServerNotRunningError,
    UnityHttpBackend,
    UnityRpcError,
)
from unity_mcp_bridge.config import ConfigManager
from unity_mcp_bridge.config.config_manager import parse_boolean
from unity_mcp_bridge.connection import UnityConnection, UrlReloadResult
from unity_mcp_bridge.handlers import (
    dump_json,
    get_tilemap_renderer_pitfall_hint,
    handle_asset_find_by_filter,
    handle_component_set_reference,
    handle_log_history,
    should_find_by_filter,
    text_result,
    to_call_tool_result,
)
from unity_mcp_bridge.mcp_utils import DebugLogger, bridge_message
from unity_mcp_bridge.policy.arguments import (
    extract_game_object_query,
    find_ambiguous_name,
    find_target_identifier,
    get_confirm_flags,
    normalize_unity_arguments,
    strip_reserved_arguments,
)
from unity_mcp_bridge.policy.scene import (
    apply_resolved_path,
    build_ambiguous_name_error,
    build_missing_target_error,
    build_target_resolution_error,
    build_unstable_path_error,
    find_scene_matches,
    get_non_destructive_ambiguous_target_warning,
    plan_scene_query,
)
from unity_mcp_bridge.policy.timeouts import resolve_call_timeout_ms
from unity_mcp_bridge.policy.tool_names import (
    BRIDGE_TOOL_PREFIX,
    INVOKE_STATIC_METHOD_TOOL,
    is_confirmation_required,
    is_likely_game_object_target,
    is_read_only_tool_name,
    is_unambiguous_target_required,
)
from unity_mcp_bridge.registry import (
    BRIDGE_PING_TOOL,
    BRIDGE_RELOAD_CONFIG_TOOL,
    BRIDGE_STATUS_TOOL,
    get_bridge_tools,
    merge_tools,
    prepare_unity_tools,
)

if TYPE_CHECKING:
    from mcp.server.models import InitializationOptions

try:
    from unity_mcp_bridge import __version__
except ImportError:
    __version__ = "0.0.0.dev0"

__all__ = [
    "ClientError",
    "MalformedResponseError",
    "RequestTimeoutError",
    "ServerNotRunningError",
    "UnityMcpStdioBridge",
    "UnityRpcError",
]

SERVER_NAME = "unity-mcp-bridge"
HEALTH_CHECK_INTERVAL_SECONDS = 10.0

COMPONENT_ADD_TOOL = "unity.component.add"
LOG_HISTORY_TOOL = "unity.log.history"
ASSET_FIND_TOOL = "unity.asset.find"
SET_REFERENCE_TOOL = "unity.component.setReference"

REMOVE_CONFLICTING_RENDERERS_KEY = "removeConflictingRenderers"
REMOVE_CONFLICTING_RENDERERS_ALIAS = "remove_conflicting_renderers"


class UnityMcpStdioBridge:
    """MCP Server that bridges stdio to the Unity editor's HTTP endpoint."""

    def __init__(
        self,
        config_manager: ConfigManager,
        backend: UnityHttpBackend | None = None,
        connection: UnityConnection | None = None,
    ):
        """Initialize the stdio bridge.

        Args:
            config_manager: Startup configuration (bridge config, file config, paths)
            backend: HTTP backend; created for the resolved endpoint when omitted
            connection: Endpoint/connection state; derived from ``config_manager`` when omitted
        """
        self.config_manager = config_manager
        self.config = config_manager.bridge_config
        self.connection = connection if connection is not None else UnityConnection.from_config_manager(config_manager)

        self._report_file_config()
        self.connection.reload_url(silent=False, reason="startup")

        self.backend = backend if backend is not None else UnityHttpBackend(self.connection.url or "")
        self.backend.base_url = self.connection.url or ""

        self.server: Server = Server(SERVER_NAME, version=__version__)
        self._health_task: asyncio.Task[None] | None = None

        if self.config.enable_unsafe_editor_invoke:
            bridge_message(
                f"WARNING: MCP_ENABLE_UNSAFE_EDITOR_INVOKE=true; {INVOKE_STATIC_METHOD_TOOL} will be exposed "
                "(still requires __confirm: true).",
            )

        self._register_handlers()

    def _report_file_config(self) -> None:
        file_config = self.config_manager.file_config
        if file_config.error:
            bridge_message(file_config.error)
        for warning in file_config.warnings:
            bridge_message(f"Config warning: {warning}")

    # ----- Endpoint and health -----

    def reload_url(self, silent: bool = False, reason: str = "manual") -> UrlReloadResult:
        result = self.connection.reload_url(silent=silent, reason=reason)
        self.backend.base_url = self.connection.url or ""
        return result

    async def _probe_health(self) -> dict[str, Any]:
        data = await self.backend.health()
        if data.get("status") != "ok":
            raise ServerNotRunningError("Unity health check did not return status=ok")
        return data

    def _on_healthy(self, data: dict[str, Any]) -> None:
        if not self.connection.mark_healthy():
            return
        bridge_message("Connected to Unity Editor")
        if data.get("projectName"):
            bridge_message(f"  Project: {data['projectName']}")
        if data.get("unityVersion"):
            bridge_message(f"  Unity Version: {data['unityVersion']}")
        bridge_message(f"  URL: {self.connection.url}")

    async def check_unity_health(self) -> bool:
        """Probe ``/health``; on failure reload the endpoint and probe once more if it moved.

        Logs only on state transitions (connected, lost, never reached).
        """
        try:
            data = await self._probe_health()
        except ClientError as e:
            error: ClientError = e
            if self.reload_url(silent=True, reason="health-check-failure").changed:
                try:
                    data = await self._probe_health()
                except ClientError as retry_error:
                    error = retry_error
                else:
                    self._on_healthy(data)
                    return True

            transition = self.connection.mark_unreachable()
            if transition == "lost":
                bridge_message("Lost connection to Unity Editor")
                bridge_message(f"  Error: {error}")
                bridge_message("  Unity Editor may have been closed")
                bridge_message("  Waiting for reconnection...")
            elif transition == "not-running":
                bridge_message("Unity Editor is not running")
                bridge_message(f"  Error: {error}")
                bridge_message("  Please start Unity Editor")
            return False

        self._on_healthy(data)
        return True

    async def _health_loop(self) -> None:
        await self.check_unity_health()
        while True:
            await asyncio.sleep(HEALTH_CHECK_INTERVAL_SECONDS)
            await self.check_unity_health()

    def disconnected_result(self) -> CallToolResult:
        """Recovery steps for when Unity cannot be reached."""
        text = (
            "Unity Editor is not running or not responding (often during recompilation / domain reload)\n\n"
            "Next steps:\n"
            "1) Confirm Unity is open\n"
            "2) In Unity, run menu: MCP/Server/Start\n"
            f"3) Check {BRIDGE_STATUS_TOOL} (URL / runtime config path / last error)\n"
            f"4) If Unity was restarted and the port changed, run {BRIDGE_RELOAD_CONFIG_TOOL}\n"
            "5) Check logs:\n"
            "   - Unity Console\n"
            f"   - {LOG_HISTORY_TOOL} (optional: __maxMessageChars / __maxStackTraceChars)\n\n"
            f"Project cwd: {self.config_manager.cwd}\n"
            f"Current Unity HTTP URL: {self.connection.url}\n"
        )
        return text_result(text, is_error=True)

    def url_config_error_result(self) -> CallToolResult:
        """Reported instead of contacting Unity while the endpoint cannot be parsed."""
        return text_result(
            f"Invalid Unity HTTP URL: {self.connection.url_config_error}\n\n"
            "Fix UNITY_HTTP_URL (or the httpPort in the runtime config), then run "
            f"{BRIDGE_RELOAD_CONFIG_TOOL}.\n"
            f"Current Unity HTTP URL: {self.connection.url}\n",
            is_error=True,
        )

    # ----- Bridge diagnostic tools -----

    def status(self) -> dict[str, Any]:
        file_config = self.config_manager.file_config
        snapshot = self.connection.status_snapshot()
        return {
            "unityHttpUrl": snapshot["unityHttpUrl"],
            "unityHttpUrlSource": snapshot["unityHttpUrlSource"],
            "runtimeConfigPath": snapshot["runtimeConfigPath"],
            "runtimeConfigExists": snapshot["runtimeConfigExists"],
            "lastRuntimeConfigError": snapshot["lastRuntimeConfigError"],
            "bridgeConfig": {
                "path": file_config.path,
                "exists": file_config.exists,
                "error": file_config.error,
                "warnings": list(file_config.warnings),
                "requireConfirmation": self.config.require_confirmation,
                "confirmAllowlist": list(self.config.confirm_allowlist),
                "confirmDenylist": list(self.config.confirm_denylist),
            },
            "lastUnityHttpUrlWarning": snapshot["lastUnityHttpUrlWarning"],
            "lastUnityHttpUrlError": snapshot["lastUnityHttpUrlError"],
            "blockedUnityHttpUrl": snapshot["blockedUnityHttpUrl"],
            "isUnityConnected": snapshot["isUnityConnected"],
            "lastHealthCheck": snapshot["lastHealthCheck"],
            "timeouts": {
                "defaultMs": self.config.default_tool_timeout_ms,
                "heavyMs": self.config.heavy_tool_timeout_ms,
                "maxMs": self.config.max_tool_timeout_ms,
            },
            "safety": {
                "requireConfirmation": self.config.require_confirmation,
                "requireUnambiguousTargets": self.config.require_unambiguous_targets,
                "enableUnsafeEditorInvoke": self.config.enable_unsafe_editor_invoke,
            },
            "urlPolicy": {
                "allowRemoteUnityHttpUrl": self.config.allow_remote_unity_http_url,
                "strictLocalUnityHttpUrl": self.config.strict_local_unity_http_url,
            },
        }

    async def handle_bridge_tool(self, name: str) -> CallToolResult:
        if name == BRIDGE_STATUS_TOOL:
            return text_result(dump_json(self.status()))

        if name == BRIDGE_RELOAD_CONFIG_TOOL:
            result = self.reload_url(silent=False, reason=BRIDGE_RELOAD_CONFIG_TOOL)
            return text_result(dump_json(result.as_dict()))

        if name == BRIDGE_PING_TOOL:
            try:
                data = await self.backend.health()
            except ClientError as e:
                return text_result(f"Error: {e}", is_error=True)
            return text_result(dump_json(data))

        return text_result(f"Unknown bridge tool: {name}", is_error=True)

    # ----- tools/list -----

    async def list_tools(self) -> list[Tool]:
        """Unity's tools (patched, unsafe tool hidden) merged with the bridge tools.

        When Unity is unreachable only the bridge tools are advertised.
        """
        bridge_tools = get_bridge_tools()
        if self.connection.url_config_error is not None:
            DebugLogger.debug(self, "Unity HTTP URL is invalid; advertising bridge tools only")
            return bridge_tools
        if not self.connection.is_connected:
            DebugLogger.debug(self, "Unity not connected, attempting to connect...")
            if not await self.check_unity_health():
                DebugLogger.debug(self, "Failed to connect to Unity Editor; advertising bridge tools only")
                return bridge_tools

        try:
            raw_tools = await self.backend.list_tools()
        except ClientError as e:
            DebugLogger.debug(self, f"Failed to list tools: {e}")
            self.connection.mark_disconnected()
            self.reload_url(silent=True, reason="tools/list-failure")
            return bridge_tools

        unity_tools = prepare_unity_tools(raw_tools, self.config.enable_unsafe_editor_invoke)
        return merge_tools(unity_tools, bridge_tools)

    # ----- tools/call -----

    async def call_tool(self, name: str, arguments: dict[str, Any] | None) -> CallToolResult:
        """Dispatch one tool call; never raises."""
        try:
            return await self._dispatch(name, arguments if isinstance(arguments, dict) else {})
        except MalformedResponseError as e:
            DebugLogger.debug_tool_execution(self, name, "ERROR", str(e))
            return text_result(str(e), is_error=True)
        except UnityRpcError as e:
            DebugLogger.debug_tool_execution(self, name, "ERROR", e.describe())
            return text_result(e.describe(), is_error=True)
        except ServerNotRunningError as e:
            was_connected = self.connection.mark_disconnected()
            self.reload_url(silent=True, reason="tools/call-failure")
            DebugLogger.debug_tool_execution(self, name, "ERROR", str(e))
            if was_connected:
                bridge_message(f"Connection lost during API call: {e}")
                return self.disconnected_result()
            return text_result(f"Error: {e}", is_error=True)

    async def _dispatch(self, name: str, args: dict[str, Any]) -> CallToolResult:
        if name.startswith(BRIDGE_TOOL_PREFIX):
            return await self.handle_bridge_tool(name)

        if name == INVOKE_STATIC_METHOD_TOOL and not self.config.enable_unsafe_editor_invoke:
            return text_result(
                f"Tool is disabled by default for safety: {name}\n"
                "This tool can execute arbitrary public static methods inside Unity Editor.\n\n"
                "To enable it, set environment variable:\n"
                "  MCP_ENABLE_UNSAFE_EDITOR_INVOKE=true\n"
                "Then re-run the tool with:\n"
                "  __confirm: true",
                is_error=True,
            )

        if self.connection.url_config_error is not None:
            return self.url_config_error_result()

        if not self.connection.is_connected:
            DebugLogger.debug(self, "Unity not connected, attempting to connect...")
            if not await self.check_unity_health():
                return self.disconnected_result()

        flags = get_confirm_flags(args)
        timeout_ms = resolve_call_timeout_ms(name, args, self.config)
        forwarded = normalize_unity_arguments(name, args)

        if name == COMPONENT_ADD_TOOL:
            rejection = self._apply_component_add_guard(forwarded, flags.confirm)
            if rejection is not None:
                return rejection

        # Resolve targets before asking for confirmation so agents can fetch candidates first.
        if is_unambiguous_target_required(name, self.config) and not flags.allow_ambiguous:
            if is_likely_game_object_target(name):
                resolved, rejection = await self._resolve_unambiguous_target(name, forwarded)
                if rejection is not None:
                    return rejection
                forwarded = resolved
            elif find_target_identifier(forwarded) is None:
                ambiguous = find_ambiguous_name(forwarded)
                if ambiguous is not None:
                    return build_ambiguous_name_error(name, ambiguous.key, ambiguous.value)

        if is_confirmation_required(name, self.config) and not flags.confirm:
            DebugLogger.debug_tool_execution(self, name, "REJECTED", "confirmation required")
            note = f"\nNote: {flags.confirm_note}" if flags.confirm_note else ""
            return text_result(
                f"Confirmation required for potentially destructive tool: {name}\n"
                "Re-run the same tool call with an explicit confirmation flag:\n"
                "  - __confirm: true\n"
                '  - (optional) __confirmNote: "why this is safe"\n' + note,
                is_error=True,
            )

        if name == LOG_HISTORY_TOOL:
            return await handle_log_history(self.backend, args, timeout_ms)

        forwarded = strip_reserved_arguments(forwarded)

        if name == ASSET_FIND_TOOL and should_find_by_filter(forwarded):
            return await handle_asset_find_by_filter(self.backend, forwarded, timeout_ms, self.config)

        if name == SET_REFERENCE_TOOL:
            warning = get_non_destructive_ambiguous_target_warning(name, forwarded, self.config)
            user_provided = any(isinstance(args.get(k), str) and args[k].strip() for k in ("referenceType", "reference_type"))
            return await handle_component_set_reference(
                self.backend,
                forwarded,
                timeout_ms,
                user_provided,
                leading=[warning] if warning else [],
            )

        return await self._forward(name, forwarded, timeout_ms)

    def _apply_component_add_guard(self, forwarded: dict[str, Any], confirmed: bool) -> CallToolResult | None:
        """Canonicalize ``removeConflictingRenderers``; it deletes components, so it needs confirmation."""
        if REMOVE_CONFLICTING_RENDERERS_KEY not in forwarded and REMOVE_CONFLICTING_RENDERERS_ALIAS not in forwarded:
            return None

        raw = forwarded.get(REMOVE_CONFLICTING_RENDERERS_KEY)
        if raw is None:
            raw = forwarded.get(REMOVE_CONFLICTING_RENDERERS_ALIAS)
        remove_conflicting = parse_boolean(raw, False)
        forwarded[REMOVE_CONFLICTING_RENDERERS_KEY] = remove_conflicting
        forwarded.pop(REMOVE_CONFLICTING_RENDERERS_ALIAS, None)

        if remove_conflicting and not confirmed:
            return text_result(
                "removeConflictingRenderers: true will remove MeshFilter/MeshRenderer when adding SpriteRenderer.\n"
                "Re-run the same tool call with an explicit confirmation flag:\n"
                "  - __confirm: true\n"
                '  - (optional) __confirmNote: "why this is safe"',
                is_error=True,
            )
        return None

    async def _resolve_unambiguous_target(
        self,
        name: str,
        args: dict[str, Any],
    ) -> tuple[dict[str, Any], CallToolResult | None]:
        """Resolve the target against a fresh scene snapshot; exactly one match is required."""
        query_info = extract_game_object_query(args)
        if query_info is None:
            return args, build_missing_target_error(name)

        plan = plan_scene_query(query_info, self.config.scene_list_max_depth)
        scene = await self.backend.fetch_scene_list(plan.max_depth, self.config.preflight_scene_list_timeout_ms)
        found = find_scene_matches(
            scene.get("rootObjects"),
            plan.query,
            plan.match_mode,
            self.config.ambiguous_candidate_limit,
        )

        if len(found.matches) != 1:
            DebugLogger.debug_tool_execution(self, name, "REJECTED", f"{len(found.matches)} matches for {plan.query!r}")
            return args, build_target_resolution_error(
                tool_name=name,
                query=plan.query,
                match_mode=plan.match_mode,
                max_depth=plan.max_depth,
                matches=found.matches,
                suggestions=found.suggestions,
                candidate_limit=self.config.ambiguous_candidate_limit,
                confirm_required=is_confirmation_required(name, self.config),
            )

        resolved_path = found.matches[0].get("path")
        if not isinstance(resolved_path, str) or not resolved_path:
            return args, build_unstable_path_error(name)

        DebugLogger.debug_tool_execution(self, name, "RESOLVED", f"{plan.query!r} -> {resolved_path!r}")
        return apply_resolved_path(args, resolved_path), None

    async def _forward(self, name: str, forwarded: dict[str, Any], timeout_ms: float) -> CallToolResult:
        try:
            with DebugLogger.time_operation(self, name):
                try:
                    result = await self.backend.call_tool(name, forwarded, timeout_ms)
                except ServerNotRunningError as e:
                    if not is_read_only_tool_name(name):
                        raise
                    DebugLogger.debug_tool_execution(self, name, "RETRY", f"read-only call failed: {e}")
                    await self.check_unity_health()
                    if not self.connection.is_connected:
                        raise
                    result = await self.backend.call_tool(name, forwarded, timeout_ms)
        except UnityRpcError as e:
            hint = get_tilemap_renderer_pitfall_hint(name, forwarded)
            return text_result(f"{e.describe()}\n\n{hint}" if hint else e.describe(), is_error=True)

        warning = get_non_destructive_ambiguous_target_warning(name, forwarded, self.config)
        hint = get_tilemap_renderer_pitfall_hint(name, forwarded) if result.get("isError") is True else None
        return to_call_tool_result(
            result,
            leading=[warning] if warning else [],
            trailing=[TextContent(type="text", text=hint)] if hint else [],
        )

    # ----- MCP wiring -----

    def _register_handlers(self):
        """Register MCP protocol handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            return await self.list_tools()

        # Reserved "__" keys are not in Unity's schemas, so input validation happens here instead.
        @self.server.call_tool(validate_input=False)
        async def call_tool(name: str, arguments: dict[str, Any]) -> CallToolResult:
            return await self.call_tool(name, arguments)

    def _create_initialization_options(self) -> InitializationOptions:
        """Create MCP initialization options with explicit logging capability.

        Some MCP clients attempt to set the server log level during/after
        initialize and expect `capabilities.logging` to be present.
        """
        options = self.server.create_initialization_options()
        capabilities = getattr(options, "capabilities", None)
        if capabilities is None:
            capabilities = ServerCapabilities()

        if getattr(capabilities, "logging", None) is None:
            capabilities = capabilities.model_copy(update={"logging": LoggingCapability()})

        return options.model_copy(update={"capabilities": capabilities})

    async def run(self):
        """Serve MCP over stdio and monitor Unity until the client disconnects."""
        bridge_message("Unity MCP Bridge server running on stdio")
        if DebugLogger.is_debug_enabled():
            bridge_message("Verbose logging enabled")
        bridge_message("Starting connection monitoring...")
        self._health_task = asyncio.create_task(self._health_loop())

        try:
            async with stdio_server() as (stdio_read, stdio_write):
                await self.server.run(
                    stdio_read,
                    stdio_write,
                    self._create_initialization_options(),
                )
        except ClosedResourceError:
            sys.stderr.write("Client disconnected\n")
        except BrokenResourceError:
            sys.stderr.write("Client connection broken - disconnecting\n")
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._health_task is not None:
            self._health_task.cancel()
            try:
                await self._health_task
            except asyncio.CancelledError:
                pass
            self._health_task = None
        await self.backend.close()

    def stop(self):
        """Stop health monitoring and release the HTTP client."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.create_task(self.aclose())
