"""Tests for the NPC field groups."""

import pytest

from simsala.groups.npc import NPC_GROUPS, compute_hp_average
from simsala.merge import EMBEDDED_KEY, EMBEDDED_SUMMARY_KEY


class TestComputeHpAverage:
    @pytest.mark.parametrize("formula, expected", [
        ("8d8+16", 52),
        ("2d6", 7),
        ("12d10+48", 114),
        ("3d6-2", 8),
        ("1d4", 2),
        ("8d8 + 16", 52),
    ])
    def test_average(self, formula, expected) -> None:
        assert compute_hp_average(formula) == expected

    @pytest.mark.parametrize("formula", ["", "lots", "d8", "8d"])
    def test_unparseable_gives_one(self, formula) -> None:
        assert compute_hp_average(formula) == 1


class TestConcept:
    group = NPC_GROUPS["concept"]

    def test_maps_concept(self) -> None:
        result = {"name": "Cult Fanatic", "cr": 2, "creatureType": "humanoid", "subtype": "human"}
        assert self.group.map_result(result, "npc", {}) == {
            "name": "Cult Fanatic",
            "system": {"details": {"cr": 2, "type": {"value": "humanoid", "subtype": "human"}}},
        }

    def test_fractional_cr_kept(self) -> None:
        mapped = self.group.map_result({"name": "Goblin", "cr": 0.25, "creatureType": "humanoid"}, "npc", {})
        assert mapped["system"]["details"]["cr"] == 0.25

    def test_negative_cr_defaults_to_one(self) -> None:
        mapped = self.group.map_result({"name": "X", "cr": -3, "creatureType": ""}, "npc", {})
        assert mapped["system"]["details"]["cr"] == 1
        assert mapped["system"]["details"]["type"] == {"value": "humanoid"}


class TestCoreStats:
    group = NPC_GROUPS["coreStats"]

    def _result(self, formula: str) -> dict:
        return {"str": 16, "dex": 14, "con": 14, "int": 10, "wis": 12, "cha": 8, "ac": 15, "hpFormula": formula}

    def test_hp_computed_from_formula(self) -> None:
        mapped = self.group.map_result(self._result("8d8+16"), "npc", {})
        assert mapped["system"]["attributes"]["hp"] == {"value": 52, "max": 52, "formula": "8d8+16"}
        assert mapped["system"]["attributes"]["ac"] == {"flat": 15, "calc": "natural"}
        assert mapped["system"]["abilities"]["str"] == {"value": 16}

    def test_zero_scores_and_ac_kept(self) -> None:
        result = {**self._result("1d4"), "int": 0, "cha": 0, "ac": 0}
        mapped = self.group.map_result(result, "npc", {})
        assert mapped["system"]["abilities"]["int"] == {"value": 0}
        assert mapped["system"]["abilities"]["cha"] == {"value": 0}
        assert mapped["system"]["attributes"]["ac"]["flat"] == 0

    def test_missing_scores_default_to_ten(self) -> None:
        result = self._result("1d4")
        del result["wis"]
        mapped = self.group.map_result(result, "npc", {})
        assert mapped["system"]["abilities"]["wis"] == {"value": 10}

    def test_missing_dice_count_is_fixed(self) -> None:
        mapped = self.group.map_result(self._result("d8+8"), "npc", {})
        assert mapped["system"]["attributes"]["hp"]["formula"] == "1d8+8"
        assert mapped["system"]["attributes"]["hp"]["max"] == 12

    def test_prompt_uses_size_hit_die(self) -> None:
        prior = {"system": {"traits": {"size": "lg"}}}
        assert "Hit die for this size: d10" in self.group.build_prompt("an ogre", "npc", prior)


class TestSensesLanguages:
    group = NPC_GROUPS["sensesLanguages"]
    result = {
        "darkvision": 60, "blindsight": 0, "tremorsense": 0, "truesight": 0,
        "languages": ["common", "abyssal"], "customLanguages": "Telepathy 60 ft.",
    }

    def test_maps_senses_and_languages(self) -> None:
        prior = {"system": {"details": {"type": {"value": "fiend"}}}}
        mapped = self.group.map_result(self.result, "npc", prior)
        assert mapped["system"]["attributes"]["senses"]["ranges"]["darkvision"] == 60
        assert mapped["system"]["traits"]["languages"] == {
            "value": ["common", "abyssal"], "custom": "Telepathy 60 ft.",
        }

    @pytest.mark.parametrize("ctype", ["beast", "ooze", "plant"])
    def test_non_speaking_types_get_no_languages(self, ctype) -> None:
        prior = {"system": {"details": {"type": {"value": ctype}}}}
        mapped = self.group.map_result(self.result, "npc", prior)
        assert mapped["system"]["traits"]["languages"] == {"value": [], "custom": ""}


class TestAttacks:
    group = NPC_GROUPS["attacks"]

    def test_attacks_become_embedded_weapons(self) -> None:
        result = {"attacks": [
            {"name": "Bite", "weaponType": "natural", "formula": "2d6+4", "types": ["piercing"], "reach": 10},
            {"name": "Claw", "weaponType": "natural", "formula": "1d8+4", "types": ["slashing"],
             "description": "One target."},
        ]}
        mapped = self.group.map_result(result, "npc", {})
        assert list(mapped) == [EMBEDDED_KEY]
        bite, claw = mapped[EMBEDDED_KEY]
        assert bite == {
            "name": "Bite",
            "type": "weapon",
            "system": {
                "type": {"value": "natural"},
                "damage": {"base": {"formula": "2d6+4", "types": ["piercing"]}},
                "range": {"reach": 10, "units": "ft"},
            },
        }
        assert claw["system"]["range"]["reach"] == 5
        assert claw["system"]["description"] == {"value": "<p>One target.</p>"}

    def test_incomplete_attacks_skipped(self) -> None:
        result = {"attacks": [{"name": "", "weaponType": "natural", "formula": "1d4", "types": []}]}
        assert self.group.map_result(result, "npc", {}) == {}


class TestBiography:
    group = NPC_GROUPS["description"]

    def test_prompt_includes_embedded_summary(self) -> None:
        prior = {"name": "Ash Wolf", EMBEDDED_SUMMARY_KEY: "Bite (weapon)"}
        prompt = self.group.build_prompt("a wolf of cinders", "npc", prior)
        assert "Abilities and attacks: Bite (weapon)" in prompt

    def test_maps_biography(self) -> None:
        mapped = self.group.map_result({"biography": "<p>Grey.</p>"}, "npc", {})
        assert mapped == {"system": {"details": {"biography": {"value": "<p>Grey.</p>"}}}}
