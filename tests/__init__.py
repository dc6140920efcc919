"""Unity MCP Bridge unit tests

These tests run without a Unity editor. The orchestrator is exercised against
``tests.helpers.FakeUnityBackend`` and the HTTP client against an httpx
``MockTransport``.

Test Structure:
- test_config.py - Environment and file configuration parsing
- test_tool_names.py, test_arguments.py, test_timeouts.py - Tool classification, argument normalization, time budgets
- test_assets.py, test_url_safety.py, test_scene.py, test_log_history.py - Remaining policy functions
- test_connection.py - Runtime endpoint reload and health bookkeeping
- test_client.py - JSON-RPC client and error mapping
- test_schema_patch.py, test_registry.py - tools/list schema patching and merging
- test_handlers.py - Composite tool handlers
- test_bridge.py - End-to-end tools/call dispatch
- test_cli.py - Diagnostic CLI

Usage:
    pytest tests/ -v
    pytest tests/test_bridge.py -v
    pytest tests/ -k "confirm" -v
"""
