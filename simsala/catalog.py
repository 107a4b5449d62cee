"""Catalog registry — ability and spell catalogs for LLM-driven selection.

A catalog references one compendium source and organises its items into
thematic groups. Full item records live in a separate pack per source.
Supporting new content means adding files, not code.

Directory layout:

    {catalog_dir}/
      srd-spells.json        ← {"source": "dnd5e.spells", "groups": [...]}
      srd-abilities.json
      packs/
        dnd5e.spells.json    ← list of full item records ({"name", "type", "system", ...})
        dnd5e.monsterfeatures.json

The registry is loaded once and read-only afterwards.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from simsala.models import Catalog, CatalogGroup, CatalogIndexEntry

logger = logging.getLogger(__name__)


class CatalogRegistry:
    def __init__(
        self,
        catalogs: list[Catalog] | None = None,
        packs: dict[str, list[dict[str, Any]]] | None = None,
    ) -> None:
        self._catalogs = list(catalogs or [])
        self._packs = dict(packs or {})
        self._index_cache: dict[str, dict[str, dict[str, Any]]] = {}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    @classmethod
    def load_dir(cls, path: Path) -> CatalogRegistry:
        """Load every catalog and pack under `path`. Bad files are skipped."""
        catalogs: list[Catalog] = []
        for file in sorted(path.glob("*.json")):
            try:
                catalogs.append(Catalog.model_validate_json(file.read_text()))
            except (OSError, ValidationError) as e:
                logger.warning("Failed to load catalog %s: %s", file.name, e)

        packs: dict[str, list[dict[str, Any]]] = {}
        pack_dir = path / "packs"
        if pack_dir.is_dir():
            for file in sorted(pack_dir.glob("*.json")):
                try:
                    records = json.loads(file.read_text())
                except (OSError, json.JSONDecodeError) as e:
                    logger.warning("Failed to load pack %s: %s", file.name, e)
                    continue
                if isinstance(records, list):
                    packs[file.stem] = records
                else:
                    logger.warning("Pack %s is not a list of records", file.name)

        registry = cls(catalogs, packs)
        logger.info(
            "Loaded %d catalog(s) with %d groups",
            len(catalogs), len(registry.group_index()),
        )
        return registry

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def group_index(self) -> list[CatalogIndexEntry]:
        """All groups across all catalogs, without item contents."""
        return [
            CatalogIndexEntry(
                id=group.id,
                description=group.description,
                source=catalog.source,
                item_count=len(group.items),
            )
            for catalog in self._catalogs
            for group in catalog.groups
        ]

    def groups(self, ids: list[str]) -> list[CatalogGroup]:
        """Group data (items with names and summaries) for the given ids."""
        wanted = set(ids)
        return [
            group.model_copy(update={"source": catalog.source})
            for catalog in self._catalogs
            for group in catalog.groups
            if group.id in wanted
        ]

    def resolve_items(self, names: list[str], source: str) -> list[dict[str, Any]]:
        """Full records for `names` from a source's pack.

        Matching is case-insensitive and exact. Missing names are skipped
        with a warning. Returned records are copies.
        """
        if source not in self._packs:
            logger.warning("Compendium pack %r not found", source)
            return []

        index = self._index_cache.get(source)
        if index is None:
            index = {str(r.get("name", "")).lower(): r for r in self._packs[source]}
            self._index_cache[source] = index

        results: list[dict[str, Any]] = []
        missing: list[str] = []
        for name in names:
            record = index.get(name.strip().lower())
            if record is None:
                missing.append(name)
            else:
                results.append(copy.deepcopy(record))

        if missing:
            logger.warning("Items not found in %s: %s", source, ", ".join(missing))
        return results
