"""Truncation of Unity console history payloads."""

from __future__ import annotations

from typing import Any

from unity_mcp_bridge.config.config_manager import parse_positive_int

ELLIPSIS = "…"


def truncate_text(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    if limit == 1:
        return ELLIPSIS
    return value[: limit - 1] + ELLIPSIS


def truncate_log_history_payload(
    payload: Any,
    max_message_chars: Any = None,
    max_stack_trace_chars: Any = None,
) -> Any:
    """Shorten ``logs[].message`` and ``logs[].stackTrace`` to the given limits.

    Returns ``payload`` itself when nothing was shortened, otherwise a shallow
    copy with new log entries. Entries that are not objects pass through.
    """
    if not isinstance(payload, dict):
        return payload

    logs = payload.get("logs")
    if not isinstance(logs, list):
        return payload

    message_limit = parse_positive_int(max_message_chars, None)
    stack_trace_limit = parse_positive_int(max_stack_trace_chars, None)
    if message_limit is None and stack_trace_limit is None:
        return payload

    changed = False
    next_logs: list[Any] = []
    for entry in logs:
        if not isinstance(entry, dict):
            next_logs.append(entry)
            continue

        next_entry = dict(entry)
        for key, limit in (("message", message_limit), ("stackTrace", stack_trace_limit)):
            value = next_entry.get(key)
            if limit is None or not isinstance(value, str):
                continue
            truncated = truncate_text(value, limit)
            if truncated != value:
                next_entry[key] = truncated
                changed = True
        next_logs.append(next_entry)

    if not changed:
        return payload
    return {**payload, "logs": next_logs}
