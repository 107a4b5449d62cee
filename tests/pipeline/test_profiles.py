"""Tests for simsala.pipeline.profiles."""

import pytest
from pydantic import ValidationError

from simsala.groups.items import ITEM_GROUPS
from simsala.pipeline import EntityProfile, build_profiles


class TestBuildProfiles:
    def test_supported_types(self) -> None:
        assert set(build_profiles()) == {"weapon", "equipment", "consumable", "tool", "loot", "npc"}

    @pytest.mark.parametrize("entity_type, waves", [
        ("weapon", [["identity"], ["description", "damage", "properties", "physical"]]),
        ("equipment", [["identity"], ["description", "defense", "properties", "physical"]]),
        ("consumable", [["identity"], ["description", "damage", "uses", "properties", "physical"]]),
        ("tool", [["identity"], ["description", "properties", "physical"]]),
        ("loot", [["identity"], ["description", "properties", "physical"]]),
        ("npc", [
            ["concept"], ["mechanical"], ["coreStats"],
            ["savesSkills", "sensesLanguages", "attacks"], ["abilities"], ["description"],
        ]),
    ])
    def test_wave_sequences(self, entity_type, waves) -> None:
        profile = build_profiles()[entity_type]
        assert [list(w) for w in profile.waves] == waves

    def test_items_filter_properties_npcs_do_not(self) -> None:
        profiles = build_profiles()
        assert profiles["weapon"].postprocess is not None
        assert profiles["npc"].postprocess is None

    def test_npc_description_is_the_biography_group(self) -> None:
        profile = build_profiles()["npc"]
        assert type(profile.groups["description"]).__name__ == "BiographyGroup"

    def test_group_count(self) -> None:
        assert build_profiles()["consumable"].group_count() == 6


class TestEntityProfileValidation:
    def test_unknown_group_rejected(self) -> None:
        with pytest.raises(ValidationError, match="unknown group"):
            EntityProfile(entity_type="weapon", waves=(("identity", "sharpness"),), groups=ITEM_GROUPS)

    def test_empty_wave_rejected(self) -> None:
        with pytest.raises(ValidationError, match="empty wave"):
            EntityProfile(entity_type="weapon", waves=(("identity",), ()), groups=ITEM_GROUPS)

    def test_profiles_are_frozen(self) -> None:
        profile = build_profiles()["weapon"]
        with pytest.raises(ValidationError):
            profile.entity_type = "loot"
