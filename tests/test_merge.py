"""Tests for simsala.merge — deep merge and embedded-entity extraction."""

import copy
import json

from simsala.merge import (
    EMBEDDED_KEY,
    deep_merge,
    extract_embedded,
    get_path,
    is_generated,
    mark_generated,
    summarize_embedded,
)


class TestDeepMerge:
    def test_disjoint_keys_are_united(self) -> None:
        assert deep_merge({"a": 1}, {"b": 2}) == {"a": 1, "b": 2}

    def test_nested_objects_merge_recursively(self) -> None:
        base = {"system": {"rarity": "rare", "type": {"value": "martialM"}}}
        overlay = {"system": {"type": {"baseItem": "longsword"}, "weight": {"value": 3}}}
        assert deep_merge(base, overlay) == {
            "system": {
                "rarity": "rare",
                "type": {"value": "martialM", "baseItem": "longsword"},
                "weight": {"value": 3},
            },
        }

    def test_scalar_overlay_wins(self) -> None:
        assert deep_merge({"name": "Old"}, {"name": "New"}) == {"name": "New"}

    def test_lists_replace_wholesale(self) -> None:
        base = {"system": {"properties": ["mgc", "fin", "lgt"]}}
        overlay = {"system": {"properties": ["ver"]}}
        assert deep_merge(base, overlay)["system"]["properties"] == ["ver"]

    def test_list_replaces_object(self) -> None:
        assert deep_merge({"x": {"a": 1}}, {"x": [1, 2]}) == {"x": [1, 2]}

    def test_object_replaces_scalar(self) -> None:
        assert deep_merge({"x": 3}, {"x": {"a": 1}}) == {"x": {"a": 1}}

    def test_empty_list_clears(self) -> None:
        assert deep_merge({"langs": ["common"]}, {"langs": []}) == {"langs": []}

    def test_inputs_are_not_mutated(self) -> None:
        base = {"system": {"damage": {"types": ["fire"]}}}
        overlay = {"system": {"damage": {"types": ["cold"]}, "extra": {"a": [1]}}}
        base_before, overlay_before = copy.deepcopy(base), copy.deepcopy(overlay)
        deep_merge(base, overlay)
        assert base == base_before
        assert overlay == overlay_before

    def test_result_does_not_alias_overlay(self) -> None:
        overlay = {"system": {"properties": ["mgc"], "price": {"value": 5}}}
        merged = deep_merge({}, overlay)
        merged["system"]["properties"].append("fin")
        merged["system"]["price"]["value"] = 10
        assert overlay == {"system": {"properties": ["mgc"], "price": {"value": 5}}}

    def test_same_sequence_is_byte_identical(self) -> None:
        updates = [{"name": "A", "system": {"x": 1}}, {"system": {"y": [1, 2]}}, {"system": {"x": 2}}]
        first: dict = {}
        second: dict = {}
        for u in updates:
            first = deep_merge(first, u)
        for u in updates:
            second = deep_merge(second, u)
        assert json.dumps(first) == json.dumps(second)


class TestExtractEmbedded:
    def test_without_reserved_key(self) -> None:
        update = {"system": {"hp": 10}}
        remainder, entities = extract_embedded(update)
        assert remainder == update
        assert entities == []

    def test_splits_entities_off(self) -> None:
        bite = {"name": "Bite", "type": "weapon"}
        claw = {"name": "Claw", "type": "weapon"}
        remainder, entities = extract_embedded({"system": {"a": 1}, EMBEDDED_KEY: [bite, claw]})
        assert remainder == {"system": {"a": 1}}
        assert entities == [bite, claw]

    def test_entities_are_copies(self) -> None:
        update = {EMBEDDED_KEY: [{"name": "Bite", "system": {}}]}
        _, entities = extract_embedded(update)
        entities[0]["system"]["x"] = 1
        assert update[EMBEDDED_KEY][0]["system"] == {}


class TestSummaries:
    def test_none_yet(self) -> None:
        assert summarize_embedded([]) == "none yet"

    def test_name_and_type(self) -> None:
        entities = [{"name": "Bite", "type": "weapon"}, {"name": "Fireball", "type": "spell"}]
        assert summarize_embedded(entities) == "Bite (weapon); Fireball (spell)"


class TestGeneratedFlag:
    def test_mark_and_check(self) -> None:
        entity = {"name": "Bite", "flags": {"core": {"x": 1}}}
        marked = mark_generated(entity)
        assert is_generated(marked)
        assert marked["flags"]["core"] == {"x": 1}
        assert not is_generated(entity)


class TestGetPath:
    def test_reads_nested_value(self) -> None:
        assert get_path({"system": {"details": {"cr": 5}}}, "system.details.cr") == 5

    def test_missing_gives_default(self) -> None:
        assert get_path({"system": {}}, "system.details.cr", 1) == 1

    def test_none_gives_default(self) -> None:
        assert get_path({"name": None}, "name", "unnamed") == "unnamed"
