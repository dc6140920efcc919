"""Unit tests for argument inspection and normalization."""

from __future__ import annotations

import pytest

from unity_mcp_bridge.policy import (
    RESERVED_ARGUMENT_KEYS,
    extract_game_object_query,
    find_ambiguous_name,
    find_target_identifier,
    get_confirm_flags,
    normalize_unity_arguments,
    strip_reserved_arguments,
)
from unity_mcp_bridge.policy.arguments import first_present, has_meaningful_value
from tests.helpers import assert_mapping_invariants

pytestmark = pytest.mark.unit


class TestConfirmFlags:
    def test_defaults(self):
        flags = get_confirm_flags({})
        assert flags.confirm is False
        assert flags.confirm_note is None
        assert flags.allow_ambiguous is False

    @pytest.mark.parametrize("key", ["__confirm", "__confirmed", "__confirmDangerous", "__confirm_dangerous"])
    def test_confirm_aliases(self, key: str):
        assert get_confirm_flags({key: True}).confirm is True

    def test_string_values_parse(self):
        flags = get_confirm_flags({"__confirm": "yes", "__allow_ambiguous": "1", "__confirm_note": "cleanup"})
        assert flags.confirm is True
        assert flags.allow_ambiguous is True
        assert flags.confirm_note == "cleanup"

    def test_first_present_wins(self):
        assert get_confirm_flags({"__confirm": False, "__confirmed": True}).confirm is False

    def test_none_skipped(self):
        assert first_present({"__timeoutMs": None, "__timeout": 5}, ("__timeoutMs", "__timeout_ms", "__timeout")) == 5

    def test_non_mapping(self):
        assert get_confirm_flags(None).confirm is False


class TestTargetIdentifier:
    def test_top_level(self):
        identifier = find_target_identifier({"name": "Player", "path": "Root/Player"})
        assert identifier is not None
        assert identifier.key == "path"
        assert identifier.value == "Root/Player"

    def test_container(self):
        identifier = find_target_identifier({"target": {"instanceId": 1234}})
        assert identifier is not None
        assert identifier.key == "target.instanceId"
        assert identifier.value == 1234

    def test_blank_values_ignored(self):
        assert find_target_identifier({"path": "   ", "guid": ""}) is None

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, False), ("", False), ("  ", False), ("x", True), (0, True), (False, True), (float("nan"), False), ({}, True)],
    )
    def test_has_meaningful_value(self, value, expected):
        assert has_meaningful_value(value) is expected

    def test_ambiguous_name(self):
        name = find_ambiguous_name({"objectName": "Enemy"})
        assert name is not None
        assert (name.key, name.value) == ("objectName", "Enemy")
        assert find_ambiguous_name({"name": "  "}) is None


class TestGameObjectQuery:
    def test_path_keys_first(self):
        query = extract_game_object_query({"gameObjectPath": " Root/Player ", "name": "Other"})
        assert query is not None
        assert query.query == "Root/Player"
        assert query.source_key == "gameObjectPath"
        assert query.force_name_match is False

    def test_name_forces_name_match(self):
        query = extract_game_object_query({"name": "UI/Button"})
        assert query is not None
        assert query.query == "UI/Button"
        assert query.force_name_match is True

    def test_none(self):
        assert extract_game_object_query({"guid": "abc"}) is None
        assert extract_game_object_query(None) is None


class TestNormalizeSetReference:
    TOOL = "unity.component.setReference"

    def test_infers_asset(self):
        out = normalize_unity_arguments(self.TOOL, {"referencePath": "Assets/Materials/Hero.mat", "fieldName": "material"})
        assert out["referenceType"] == "asset"
        assert out["referenceAssetPath"] == "Assets/Materials/Hero.mat"
        assert "referenceGameObjectPath" not in out

    def test_infers_component_from_field(self):
        out = normalize_unity_arguments(self.TOOL, {"referencePath": "Root/Cam", "fieldName": "targetCamera"})
        assert out["referenceType"] == "component"
        assert out["referenceGameObjectPath"] == "Root/Cam"

    def test_defaults_to_game_object(self):
        out = normalize_unity_arguments(self.TOOL, {"referencePath": "Root/Target", "fieldName": "target"})
        assert out["referenceType"] == "gameObject"
        assert out["referenceGameObjectPath"] == "Root/Target"

    def test_alias_adopted(self):
        out = normalize_unity_arguments(self.TOOL, {"reference_type": " asset ", "referencePath": "Packages/x.asset"})
        assert out["referenceType"] == "asset"
        assert "reference_type" not in out

    def test_trims_explicit_type(self):
        out = normalize_unity_arguments(self.TOOL, {"referenceType": " component ", "referencePath": "A"})
        assert out["referenceType"] == "component"

    def test_existing_kind_key_kept(self):
        out = normalize_unity_arguments(
            self.TOOL,
            {"referenceType": "gameObject", "referencePath": "A", "referenceGameObjectPath": "B"},
        )
        assert out["referenceGameObjectPath"] == "B"


class TestNormalizeFamilies:
    def test_create_folder(self):
        out = normalize_unity_arguments("unity.asset.createFolder", {"parentFolder": "Assets", "newFolderName": "Foo"})
        assert out["path"] == "Assets/Foo"
        assert out["gameObjectPath"] == "Assets/Foo"

    def test_create_folder_slashes(self):
        out = normalize_unity_arguments("unity.asset.createFolder", {"parentFolder": "Assets/", "newFolderName": "/Foo"})
        assert out["path"] == "Assets/Foo"

    def test_create_folder_keeps_path(self):
        out = normalize_unity_arguments("unity.asset.createFolder", {"path": "Assets/Bar", "parentFolder": "Assets", "newFolderName": "Foo"})
        assert out["path"] == "Assets/Bar"

    @pytest.mark.parametrize("tool", ["unity.prefab.apply", "unity.prefab.revert", "unity.prefab.unpack"])
    def test_prefab_instance_path(self, tool: str):
        out = normalize_unity_arguments(tool, {"instancePath": "Root/Enemy"})
        assert out["gameObjectPath"] == "Root/Enemy"

    def test_create_primitive_type(self):
        out = normalize_unity_arguments("unity.create", {"type": "Cube"})
        assert out["primitiveType"] == "Cube"
        out = normalize_unity_arguments("unity.create", {"type": "Cube", "primitiveType": "Sphere"})
        assert out["primitiveType"] == "Sphere"

    def test_asset_list_type_from_filter(self):
        out = normalize_unity_arguments("unity.asset.list", {"filter": "t: Material hero"})
        assert out["assetType"] == "Material"

    def test_asset_delete_mirrors_path(self):
        out = normalize_unity_arguments("unity.asset.delete", {"path": "Assets/Old.mat"})
        assert out["assetPath"] == "Assets/Old.mat"
        assert out["gameObjectPath"] == "Assets/Old.mat"

    def test_universal_path_mirror(self):
        out = normalize_unity_arguments("unity.gameObject.setActive", {"path": "Root/A", "active": False})
        assert out["gameObjectPath"] == "Root/A"

    def test_uitoolkit_game_object_aliases(self):
        out = normalize_unity_arguments("unity.uitoolkit.scene.configureUIDocument", {"gameObjectName": "HUD"})
        assert out["gameObject"] == "HUD"
        assert out["gameObjectPath"] == "HUD"

    @pytest.mark.parametrize(
        ("args", "selector"),
        [
            ({"elementName": "HPLabel"}, "#HPLabel"),
            ({"elementName": ".hp"}, ".hp"),
            ({"elementName": "Panel > Label"}, "Panel > Label"),
            ({"query": "#Score"}, "#Score"),
            ({"query": " ", "elementName": "btn"}, "#btn"),
            ({"selector": " #A ", "query": "#B", "elementName": "C"}, "#A"),
        ],
    )
    def test_uitoolkit_runtime_selector(self, args, selector):
        out = normalize_unity_arguments("unity.uitoolkit.runtime.setElementText", {"gameObjectPath": "HUD", **args})
        assert out["selector"] == selector
        assert "query" not in out
        assert "elementName" not in out

    def test_non_mapping(self):
        assert normalize_unity_arguments("unity.create", None) == {}

    def test_input_not_mutated(self):
        args = {"parentFolder": "Assets", "newFolderName": "Foo"}
        normalize_unity_arguments("unity.asset.createFolder", args)
        assert args == {"parentFolder": "Assets", "newFolderName": "Foo"}


class TestNormalizeFixedPoint:
    """Normalizing twice gives the same result as normalizing once."""

    @pytest.mark.parametrize(
        ("tool", "args"),
        [
            ("unity.component.setReference", {"reference_type": "asset", "referencePath": "Assets/a.png", "fieldName": "icon"}),
            ("unity.component.setReference", {"referencePath": "Root/Cam", "fieldName": "cameraRef"}),
            ("unity.prefab.unpack", {"instancePath": "Root/Enemy"}),
            ("unity.create", {"type": "Quad"}),
            ("unity.asset.createFolder", {"parentFolder": "Assets", "newFolderName": "Foo"}),
            ("unity.asset.list", {"filter": "t:Prefab"}),
            ("unity.asset.delete", {"path": "Assets/Old.mat"}),
            ("unity.uitoolkit.runtime.queryElement", {"path": "HUD", "elementName": "HPLabel"}),
            ("unity.uitoolkit.runtime.queryElement", {"path": "UI", "elementName": "btn", "query": " "}),
            ("unity.uitoolkit.runtime.setElementText", {"gameObjectName": "HUD", "query": "#Score"}),
            ("unity.uitoolkit.scene.configureUIDocument", {"gameObject": "HUD"}),
            ("unity.gameObject.destroy", {"path": "Root/Player", "__confirm": True}),
        ],
    )
    def test_fixed_point(self, tool, args):
        once = normalize_unity_arguments(tool, args)
        assert normalize_unity_arguments(tool, once) == once
        assert_mapping_invariants(once)


class TestStripReserved:
    def test_strips_every_reserved_key(self):
        args = {key: True for key in RESERVED_ARGUMENT_KEYS}
        args["path"] = "Root/A"
        assert strip_reserved_arguments(args) == {"path": "Root/A"}

    def test_reserved_key_list(self):
        assert len(RESERVED_ARGUMENT_KEYS) == 17
        assert "__timeoutMs" in RESERVED_ARGUMENT_KEYS
        assert "__max_stack_trace_chars" in RESERVED_ARGUMENT_KEYS
