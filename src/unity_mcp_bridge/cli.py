"""Diagnostic CLI for the Unity MCP bridge.

Runs the bridge's policy layer offline, so a rule can be checked without an
MCP client, and probes a running editor.

Usage:
  unity-mcp-bridge-cli classify unity.gameObject.destroy
  unity-mcp-bridge-cli normalize unity.asset.createFolder --args '{"parentFolder": "Assets", "newFolderName": "Foo"}'
  unity-mcp-bridge-cli parse-filter 't:Material name:Hero "Main Menu"'
  unity-mcp-bridge-cli check-url http://10.0.0.5:5051
  unity-mcp-bridge-cli -f json ping
"""

from __future__ import annotations

import asyncio
import json
import sys

from typing import Any

import click

from unity_mcp_bridge import __version__
from unity_mcp_bridge.client import ClientError, UnityHttpBackend
from unity_mcp_bridge.config import ConfigManager
from unity_mcp_bridge.connection import UnityConnection
from unity_mcp_bridge.policy import (
    UnityUrlError,
    analyze_unity_http_url,
    apply_url_policy,
    classify,
    normalize_unity_arguments,
    parse_asset_filter,
    resolve_call_timeout_ms,
    strip_reserved_arguments,
)


def format_output(data: Any, fmt: str) -> str:
    """Format data for human-readable output ('json' or 'text')."""
    if fmt == "json":
        return json.dumps(data, indent=2, ensure_ascii=False)
    if isinstance(data, dict):
        return "\n".join(f"{k}: {json.dumps(v, ensure_ascii=False) if isinstance(v, (dict, list)) else v}" for k, v in data.items())
    if isinstance(data, list):
        return "\n".join(f"- {item}" for item in data)
    return str(data)


def _get_opts(ctx: click.Context) -> dict[str, Any]:
    """Global options from context (set by main group)."""
    return ctx.obj or {}


def _fmt(ctx: click.Context) -> str:
    return _get_opts(ctx).get("format", "text")


def _config_manager(ctx: click.Context) -> ConfigManager:
    manager = _get_opts(ctx).get("config_manager")
    if manager is None:
        manager = ConfigManager()
        ctx.obj["config_manager"] = manager
    return manager


def _parse_arguments(arguments: str | None) -> dict[str, Any]:
    if not arguments:
        return {}
    try:
        parsed = json.loads(arguments)
    except json.JSONDecodeError as e:
        click.echo(f"Invalid JSON arguments: {e}", err=True)
        sys.exit(1)
    if not isinstance(parsed, dict):
        click.echo("Arguments must be a JSON object.", err=True)
        sys.exit(1)
    return parsed


# ---------------------------------------------------------------------------
# Main group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("--unity-url", help="Unity HTTP URL (overrides the runtime file and UNITY_HTTP_URL)")
@click.option(
    "-f",
    "--format",
    type=click.Choice(["json", "text"]),
    default="text",
    help="Output format",
)
@click.version_option(__version__, "--version", "-V")
@click.pass_context
def main(ctx: click.Context, unity_url: str | None, format: str) -> None:
    """Unity MCP bridge diagnostics: policy checks and connectivity."""
    ctx.obj = {
        "unity_url": unity_url,
        "format": format,
    }


@main.command("classify")
@click.argument("name")
@click.pass_context
def classify_command(ctx: click.Context, name: str) -> None:
    """Show how the bridge treats a tool name."""
    config = _config_manager(ctx).bridge_config
    verdict = classify(name, config)
    data = {
        "name": verdict.name,
        "isReadOnly": verdict.is_read_only,
        "requiresConfirmation": verdict.requires_confirmation,
        "requiresUnambiguousTarget": verdict.requires_unambiguous_target,
        "isLikelyGameObjectTarget": verdict.is_likely_game_object_target,
        "timeoutMs": resolve_call_timeout_ms(name, {}, config),
    }
    click.echo(format_output(data, _fmt(ctx)))


@main.command("normalize")
@click.argument("name")
@click.option("--args", "arguments", help="Tool arguments as a JSON object")
@click.pass_context
def normalize_command(ctx: click.Context, name: str, arguments: str | None) -> None:
    """Show the arguments the bridge would forward to Unity."""
    raw = _parse_arguments(arguments)
    normalized = normalize_unity_arguments(name, raw)
    data = {
        "normalized": normalized,
        "forwarded": strip_reserved_arguments(normalized),
        "timeoutMs": resolve_call_timeout_ms(name, raw, _config_manager(ctx).bridge_config),
    }
    click.echo(format_output(data, _fmt(ctx)))


@main.command("parse-filter")
@click.argument("filter_text", metavar="FILTER")
@click.pass_context
def parse_filter_command(ctx: click.Context, filter_text: str) -> None:
    """Parse a Unity asset search filter."""
    click.echo(format_output(parse_asset_filter(filter_text).as_dict(), _fmt(ctx)))


@main.command("check-url")
@click.argument("url")
@click.pass_context
def check_url_command(ctx: click.Context, url: str) -> None:
    """Classify a Unity HTTP URL and apply the remote-host policy."""
    manager = _config_manager(ctx)
    try:
        analysis = analyze_unity_http_url(url)
    except UnityUrlError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    decision = apply_url_policy(url, manager.bridge_config, manager.DEFAULT_UNITY_HTTP_URL)
    data = {
        "url": analysis.url,
        "protocol": f"{analysis.scheme}:",
        "hostname": analysis.hostname,
        "port": analysis.port,
        "origin": analysis.origin,
        "isHttp": analysis.is_http,
        "isLoopback": analysis.is_loopback,
        "effectiveUrl": decision.url,
        "warning": decision.warning,
        "error": decision.error,
    }
    click.echo(format_output(data, _fmt(ctx)))


async def _ping(url: str) -> dict[str, Any]:
    backend = UnityHttpBackend(url)
    try:
        return await backend.health()
    finally:
        await backend.close()


@main.command("ping")
@click.pass_context
def ping_command(ctx: click.Context) -> None:
    """Probe the Unity editor's /health endpoint."""
    url = _get_opts(ctx).get("unity_url")
    if not url:
        connection = UnityConnection.from_config_manager(_config_manager(ctx))
        url = connection.reload_url(silent=True, reason="cli").url

    try:
        data = asyncio.run(_ping(url))
    except ClientError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(format_output({"url": url, **data}, _fmt(ctx)))


if __name__ == "__main__":
    main()
