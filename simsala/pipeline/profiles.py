"""Entity-type profiles — which groups run, in which waves, for each type.

Profiles are built once at startup and passed into the orchestrator. A wave
is a list of group names; groups in the same wave run concurrently and see
the same prior snapshot.
"""

from __future__ import annotations

from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, model_validator

from simsala.catalog import CatalogRegistry
from simsala.groups import ITEM_GROUPS, NPC_GROUPS, CatalogSelectionGroup, Group, filter_properties
from simsala.models import Tree

ITEM_WAVES: dict[str, list[list[str]]] = {
    "weapon":     [["identity"], ["description", "damage", "properties", "physical"]],
    "equipment":  [["identity"], ["description", "defense", "properties", "physical"]],
    "consumable": [["identity"], ["description", "damage", "uses", "properties", "physical"]],
    "tool":       [["identity"], ["description", "properties", "physical"]],
    "loot":       [["identity"], ["description", "properties", "physical"]],
}

NPC_WAVES: list[list[str]] = [
    ["concept"],
    ["mechanical"],
    ["coreStats"],
    ["savesSkills", "sensesLanguages", "attacks"],
    ["abilities"],
    ["description"],
]


class EntityProfile(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    entity_type: str
    waves: tuple[tuple[str, ...], ...]
    groups: dict[str, Group]
    postprocess: Callable[[Tree, str], Tree] | None = None

    @model_validator(mode="after")
    def _check_waves(self) -> EntityProfile:
        if not self.waves:
            raise ValueError(f"Profile {self.entity_type!r} has no waves")
        for wave in self.waves:
            if not wave:
                raise ValueError(f"Profile {self.entity_type!r} has an empty wave")
            for name in wave:
                if name not in self.groups:
                    raise ValueError(f"Profile {self.entity_type!r}: unknown group {name!r}")
        return self

    def group_count(self) -> int:
        return sum(len(wave) for wave in self.waves)


def build_profiles(catalog: CatalogRegistry | None = None) -> dict[str, EntityProfile]:
    """All supported entity types. Without a catalog, ability selection finds nothing."""
    profiles = {
        entity_type: EntityProfile(
            entity_type=entity_type,
            waves=tuple(tuple(wave) for wave in waves),
            groups=ITEM_GROUPS,
            postprocess=filter_properties,
        )
        for entity_type, waves in ITEM_WAVES.items()
    }

    abilities = CatalogSelectionGroup(catalog or CatalogRegistry())
    profiles["npc"] = EntityProfile(
        entity_type="npc",
        waves=tuple(tuple(wave) for wave in NPC_WAVES),
        groups={**NPC_GROUPS, abilities.name: abilities},
    )
    return profiles
