"""Unit tests for console log history truncation."""

from __future__ import annotations

import pytest

from unity_mcp_bridge.policy import truncate_log_history_payload
from unity_mcp_bridge.policy.log_history import ELLIPSIS, truncate_text

pytestmark = pytest.mark.unit


class TestTruncateText:
    @pytest.mark.parametrize(
        ("value", "limit", "expected"),
        [
            ("hello", 10, "hello"),
            ("hello", 5, "hello"),
            ("hello", 4, "hel…"),
            ("hello", 1, "…"),
        ],
    )
    def test_truncate(self, value: str, limit: int, expected: str):
        assert truncate_text(value, limit) == expected


class TestTruncateLogHistoryPayload:
    def payload(self) -> dict:
        return {
            "count": 2,
            "logs": [
                {"message": "A" * 50, "stackTrace": "at X\n" * 20, "type": "Error"},
                {"message": "short", "stackTrace": ""},
                "raw-entry",
            ],
        }

    def test_message_limit(self):
        original = self.payload()
        out = truncate_log_history_payload(original, max_message_chars=10)
        assert out is not original
        assert out["logs"][0]["message"] == "A" * 9 + ELLIPSIS
        assert len(out["logs"][0]["message"]) == 10
        assert out["logs"][0]["stackTrace"] == original["logs"][0]["stackTrace"]
        assert out["logs"][1]["message"] == "short"
        assert out["logs"][2] == "raw-entry"
        assert out["count"] == 2
        assert original["logs"][0]["message"] == "A" * 50

    def test_stack_trace_limit_from_string(self):
        out = truncate_log_history_payload(self.payload(), max_stack_trace_chars="1")
        assert out["logs"][0]["stackTrace"] == ELLIPSIS
        assert out["logs"][1]["stackTrace"] == ""

    def test_nothing_to_truncate_returns_same_object(self):
        original = self.payload()
        assert truncate_log_history_payload(original, max_message_chars=1000) is original

    @pytest.mark.parametrize("limit", [None, 0, -3, "abc"])
    def test_invalid_limits_are_ignored(self, limit):
        original = self.payload()
        assert truncate_log_history_payload(original, max_message_chars=limit, max_stack_trace_chars=limit) is original

    @pytest.mark.parametrize("payload", [None, "text", {"logs": "nope"}, {"count": 0}])
    def test_non_log_payload_passthrough(self, payload):
        assert truncate_log_history_payload(payload, max_message_chars=5) is payload
