#!/usr/bin/env python3
"""Unity MCP Bridge - Main entry point.

Provides stdio MCP transport in front of the Unity editor's HTTP endpoint.
Usage: claude mcp add unity -- unity-mcp-bridge [--config PATH] [--unity-url URL] [--verbose]

The endpoint comes from ``.unity-mcp-runtime.json`` in the working directory
(written by Unity), else ``--unity-url``/``UNITY_HTTP_URL``, else http://localhost:5051.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys

from pathlib import Path
from typing import TYPE_CHECKING

from unity_mcp_bridge.bridge import UnityMcpStdioBridge
from unity_mcp_bridge.config import ConfigManager
from unity_mcp_bridge.config.config_manager import ENV_UNITY_HTTP_URL
from unity_mcp_bridge.mcp_utils import DebugLogger

try:
    from unity_mcp_bridge import __version__
except ImportError:
    __version__ = "0.0.0.dev0"

if TYPE_CHECKING:
    from types import FrameType


class UnityBridgeCLI:
    """Main CLI application."""

    def __init__(self, config_manager: ConfigManager):
        self.config_manager: ConfigManager = config_manager
        self.bridge: UnityMcpStdioBridge | None = None
        self.cleanup_done: bool = False

    def setup_signal_handlers(self):
        """Setup signal handlers for clean shutdown."""

        def signal_handler(sig: int, frame: FrameType | None):
            if not self.cleanup_done:
                sys.stderr.write(f"\nReceived signal {sig}, shutting down gracefully...\n")
                self.cleanup()
            sys.exit(0)

        signal.signal(signal.SIGINT, signal_handler)
        signal.signal(signal.SIGTERM, signal_handler)

    def cleanup(self):
        """Stop health monitoring and close the HTTP client."""
        if self.cleanup_done:
            return
        self.cleanup_done = True
        if self.bridge is not None:
            self.bridge.stop()

    async def run(self):
        """Run the stdio bridge until the client disconnects."""
        try:
            self.setup_signal_handlers()
            self.bridge = UnityMcpStdioBridge(self.config_manager)
            await self.bridge.run()
        except KeyboardInterrupt:
            sys.stderr.write("\nInterrupted by user\n")
        finally:
            # run() already released its resources; only mark the shutdown as done.
            self.cleanup_done = True


def main():
    """Main entry point for the unity-mcp-bridge command."""
    parser = argparse.ArgumentParser(
        description="Unity MCP bridge with stdio transport for MCP clients",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to the bridge config file (default: MCP_BRIDGE_CONFIG_PATH or ./.unity-mcp-bridge.json)",
        required=False,
    )
    parser.add_argument(
        "--unity-url",
        type=str,
        help=f"Unity HTTP URL used when no runtime file is present (overrides {ENV_UNITY_HTTP_URL})",
        required=False,
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
        default=False,
        required=False,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    args = parser.parse_args()

    # stdout carries the MCP protocol; every log line goes to stderr.
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.config and not args.config.exists():
        sys.stderr.write(f"Error: Configuration file not found: {args.config}\n")
        sys.exit(1)

    env = None
    if args.unity_url:
        env = {**os.environ, ENV_UNITY_HTTP_URL: args.unity_url}

    config_manager = ConfigManager(config_file=args.config, env=env)
    if args.verbose:
        DebugLogger.set_debug_enabled(True)

    cli = UnityBridgeCLI(config_manager)
    try:
        asyncio.run(cli.run())
    except KeyboardInterrupt:
        sys.stderr.write("\nShutdown complete\n")
        sys.exit(0)


if __name__ == "__main__":
    main()
