"""Tests for simsala.catalog — CatalogRegistry loading and lookups."""

import json
import shutil
from pathlib import Path

import pytest

from simsala.catalog import CatalogRegistry

FIXTURES = Path(__file__).parent / "fixtures" / "catalogs"


@pytest.fixture
def catalog_dir(tmp_path: Path) -> Path:
    target = tmp_path / "catalogs"
    shutil.copytree(FIXTURES, target)
    return target


class TestLoadDir:
    def test_loads_catalogs_and_packs(self, catalog_dir: Path) -> None:
        registry = CatalogRegistry.load_dir(catalog_dir)
        ids = [entry.id for entry in registry.group_index()]
        assert ids == ["passive-defense", "breath-weapons", "damage-fire", "defense", "control"]
        assert registry.resolve_items(["Web"], "dnd5e.spells")[0]["type"] == "spell"

    def test_bad_catalog_file_skipped(self, catalog_dir: Path) -> None:
        (catalog_dir / "broken.json").write_text("{not json")
        registry = CatalogRegistry.load_dir(catalog_dir)
        assert len(registry.group_index()) == 5

    def test_pack_that_is_not_a_list_skipped(self, catalog_dir: Path) -> None:
        (catalog_dir / "packs" / "odd.json").write_text(json.dumps({"name": "x"}))
        registry = CatalogRegistry.load_dir(catalog_dir)
        assert registry.resolve_items(["x"], "odd") == []

    def test_empty_directory(self, tmp_path: Path) -> None:
        registry = CatalogRegistry.load_dir(tmp_path)
        assert registry.group_index() == []


class TestLookups:
    def test_index_has_counts_and_sources(self, catalog_registry) -> None:
        entry = next(e for e in catalog_registry.group_index() if e.id == "damage-fire")
        assert entry.item_count == 4
        assert entry.source == "dnd5e.spells"
        assert entry.description == "Fire damage spells"

    def test_groups_carry_their_source(self, catalog_registry) -> None:
        groups = catalog_registry.groups(["passive-defense", "defense", "nope"])
        assert [(g.id, g.source) for g in groups] == [
            ("defense", "dnd5e.spells"),
            ("passive-defense", "dnd5e.monsterfeatures"),
        ]
        assert [i.name for i in groups[0].items] == ["Shield", "Mage Armor", "Misty Step"]

    def test_resolve_is_case_insensitive_and_trimmed(self, catalog_registry) -> None:
        records = catalog_registry.resolve_items(["  fireball ", "MAGE ARMOR"], "dnd5e.spells")
        assert [r["name"] for r in records] == ["Fireball", "Mage Armor"]

    def test_resolve_skips_missing_names(self, catalog_registry) -> None:
        records = catalog_registry.resolve_items(["Wish", "Web"], "dnd5e.spells")
        assert [r["name"] for r in records] == ["Web"]

    def test_resolve_unknown_source(self, catalog_registry) -> None:
        assert catalog_registry.resolve_items(["Web"], "homebrew.spells") == []

    def test_resolved_records_are_copies(self, catalog_registry) -> None:
        first = catalog_registry.resolve_items(["Web"], "dnd5e.spells")[0]
        first["system"]["level"] = 9
        again = catalog_registry.resolve_items(["Web"], "dnd5e.spells")[0]
        assert again["system"]["level"] == 2
