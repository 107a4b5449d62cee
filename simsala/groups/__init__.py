"""Field groups — one prompt, one schema, one partial update each.

Item groups: identity, description, damage, properties, defense, uses, physical.
NPC groups:  concept, mechanical, coreStats, savesSkills, sensesLanguages,
             attacks, abilities (catalog selection), description.
"""

from .base import Group  # noqa: F401
from .catalog import CatalogSelectionGroup, ability_budget, run_catalog_selection  # noqa: F401
from .items import ITEM_GROUPS, filter_properties  # noqa: F401
from .npc import NPC_GROUPS, compute_hp_average  # noqa: F401
