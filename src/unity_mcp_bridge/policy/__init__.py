"""Pure policy layer: classification, normalization, timeouts, asset filters, URL safety, scene resolution."""

from .arguments import (
    RESERVED_ARGUMENT_KEYS,
    ConfirmFlags,
    GameObjectQuery,
    TargetIdentifier,
    extract_game_object_query,
    find_ambiguous_name,
    find_target_identifier,
    get_confirm_flags,
    normalize_unity_arguments,
    strip_reserved_arguments,
)
from .assets import AssetFilter, filter_asset_candidates, parse_asset_filter, tokenize_filter_string
from .log_history import truncate_log_history_payload
from .scene import (
    SceneMatches,
    ScenePlan,
    build_target_resolution_error,
    find_scene_matches,
    get_non_destructive_ambiguous_target_warning,
    plan_scene_query,
    summarize_scene_candidate,
)
from .timeouts import clamp_timeout_ms, get_tool_timeout_ms, resolve_call_timeout_ms
from .tool_names import (
    INVOKE_STATIC_METHOD_TOOL,
    ToolClassification,
    classify,
    is_confirmation_required,
    is_likely_game_object_target,
    is_read_only_tool_name,
    is_unambiguous_target_required,
)
from .url_safety import UnityUrlError, UrlAnalysis, UrlPolicyDecision, analyze_unity_http_url, apply_url_policy

__all__ = [
    "INVOKE_STATIC_METHOD_TOOL",
    "RESERVED_ARGUMENT_KEYS",
    "AssetFilter",
    "ConfirmFlags",
    "GameObjectQuery",
    "SceneMatches",
    "ScenePlan",
    "TargetIdentifier",
    "ToolClassification",
    "UnityUrlError",
    "UrlAnalysis",
    "UrlPolicyDecision",
    "analyze_unity_http_url",
    "apply_url_policy",
    "build_target_resolution_error",
    "clamp_timeout_ms",
    "classify",
    "extract_game_object_query",
    "filter_asset_candidates",
    "find_ambiguous_name",
    "find_scene_matches",
    "find_target_identifier",
    "get_confirm_flags",
    "get_non_destructive_ambiguous_target_warning",
    "get_tool_timeout_ms",
    "is_confirmation_required",
    "is_likely_game_object_target",
    "is_read_only_tool_name",
    "is_unambiguous_target_required",
    "normalize_unity_arguments",
    "parse_asset_filter",
    "plan_scene_query",
    "resolve_call_timeout_ms",
    "strip_reserved_arguments",
    "summarize_scene_candidate",
    "tokenize_filter_string",
    "truncate_log_history_payload",
]
