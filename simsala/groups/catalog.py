"""Catalog selection — map → explore → reduce over an arbitrarily large catalog.

  1. Map     — the model picks 2–6 thematic groups (sees only the group index)
  2. Explore — one call per picked group, concurrently; each proposes up to 3
               candidates (sees item names and summaries of that group only)
  3. Reduce  — the model makes the final selection from all candidates within
               a CR-scaled budget, plus spellcasting and legendary fields

Prompt size stays bounded by (picked groups × items per group) no matter how
big the catalog is. A phase that yields nothing ends the run with an empty
result; transport errors in map or reduce fail the group, while a failed
explore call only drops that group's candidates.

Selected names are resolved to full records through the registry, batched per
compendium source, and returned as embedded entities.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from pydantic import BaseModel

from simsala.catalog import CatalogRegistry
from simsala.llm import LLM, KeepAlive
from simsala.merge import EMBEDDED_KEY, EMBEDDED_SUMMARY_KEY, deep_merge, get_path
from simsala.models import CatalogGroup, GroupResult, Tree
from simsala.prompts import build_messages
from simsala.tables import ABILITY_KEYS, SPELL_MODES, SPELLCASTING_ABILITIES

from .base import Group, object_schema

logger = logging.getLogger(__name__)

CANDIDATES_PER_GROUP = 3
LEGENDARY_MIN_CR = 15

# (highest CR in band, min abilities, max abilities)
BUDGET_BANDS = [
    (2, 2, 4),
    (5, 4, 6),
    (10, 5, 8),
    (15, 6, 10),
]
BUDGET_TOP = (8, 12)


class Candidate(BaseModel):
    name: str
    reason: str = ""
    group_id: str
    source: str


def ability_budget(cr: float) -> tuple[int, int]:
    """(min, max) abilities for a challenge rating."""
    for top, low, high in BUDGET_BANDS:
        if cr <= top:
            return low, high
    return BUDGET_TOP


def _cr(prior: Tree) -> float:
    try:
        return float(get_path(prior, "system.details.cr", 1))
    except (TypeError, ValueError):
        return 1.0


def npc_context(instruction: str, prior: Tree) -> str:
    """Short NPC summary shared by every catalog prompt."""
    name = get_path(prior, "name", "unnamed")
    cr = get_path(prior, "system.details.cr", "?")
    ctype = get_path(prior, "system.details.type.value", "unknown")
    size = get_path(prior, "system.traits.size", "med")
    abilities = ", ".join(
        f"{k.upper()} {get_path(prior, f'system.abilities.{k}.value', '?')}" for k in ABILITY_KEYS
    )
    return "\n".join([
        f'NPC: "{name}", CR {cr}, {size} {ctype}',
        f"Abilities: {abilities}",
        f"Attacks: {prior.get(EMBEDDED_SUMMARY_KEY) or 'none yet'}",
        f'GM description: "{instruction}"',
    ])


# ---------------------------------------------------------------------------
# Step 1 — Map
# ---------------------------------------------------------------------------

MAP_SCHEMA = object_schema(
    {
        "selectedGroups": {
            "type": "array",
            "items": object_schema(
                {"groupId": {"type": "string"}, "refinement": {"type": "string"}},
                ["groupId", "refinement"],
            ),
        },
    },
    ["selectedGroups"],
)


async def select_groups(
    llm: LLM,
    registry: CatalogRegistry,
    instruction: str,
    prior: Tree,
    system_prompt: str = "",
) -> list[tuple[str, str]]:
    """Return [(group_id, refinement)] for the groups worth exploring."""
    index = registry.group_index()
    if not index:
        return []

    group_list = "\n".join(f"- {g.id}: {g.description} ({g.item_count} items)" for g in index)
    prompt = "\n".join([
        "You are a D&D 5e assistant. Choose which ability groups to explore for this NPC.",
        "",
        npc_context(instruction, prior),
        "",
        "Available groups:",
        group_list,
        "",
        "Select 2–6 groups that fit this creature thematically and mechanically.",
        "For each group, optionally provide a refinement prompt to narrow the search",
        '(e.g. "fire-themed only" or "levels 1-3 only"). Empty string if no refinement needed.',
        "",
        "Consider:",
        "- Beasts typically need only passive-combat and passive-sensory, no spells",
        "- Spellcasters need damage spells + defense spells + possibly buff/debuff",
        "- Dragons need breath weapons + legendary actions + passive-defense",
        "- Undead often need passive-defense + damage-necrotic-poison",
        "- Low CR creatures (0-2) need fewer groups, high CR (15+) need more",
        "",
        'Return JSON: { "selectedGroups": [{ "groupId": "...", "refinement": "..." }] }',
    ])

    generation = await llm(
        "catalog_map", build_messages(prompt, system_prompt), MAP_SCHEMA, KeepAlive.KEEP_LOADED,
    )
    if not isinstance(generation.parsed, dict):
        return []

    valid_ids = {g.id for g in index}
    selected: list[tuple[str, str]] = []
    for entry in generation.parsed.get("selectedGroups") or []:
        group_id = entry.get("groupId")
        if group_id in valid_ids and group_id not in {s[0] for s in selected}:
            selected.append((group_id, entry.get("refinement") or ""))
        else:
            logger.debug("Map phase discarded group id %r", group_id)
    return selected


# ---------------------------------------------------------------------------
# Step 2 — Explore
# ---------------------------------------------------------------------------

EXPLORE_SCHEMA = object_schema(
    {
        "candidates": {
            "type": "array",
            "items": object_schema(
                {"name": {"type": "string"}, "reason": {"type": "string"}},
                ["name", "reason"],
            ),
        },
    },
    ["candidates"],
)


async def explore_candidates(
    llm: LLM,
    group: CatalogGroup,
    refinement: str,
    instruction: str,
    prior: Tree,
    system_prompt: str = "",
) -> list[Candidate]:
    """Pick up to 3 candidates from one group. Names must exist in the group."""
    item_list = "\n".join(f"- {i.name}: {i.summary}" for i in group.items)
    lines = [
        "You are a D&D 5e assistant. Pick the 3 best items from this group for the NPC.",
        "",
        npc_context(instruction, prior),
    ]
    if refinement:
        lines += ["", f"Refinement: {refinement}"]
    lines += [
        "",
        f"Group: {group.description}",
        "",
        "Available items:",
        item_list,
        "",
        f"Pick exactly {CANDIDATES_PER_GROUP} items (or fewer if the group has less than {CANDIDATES_PER_GROUP}).",
        "The name must match exactly as listed above.",
        "Provide a short reason for each pick (one sentence).",
        "",
        'Return JSON: { "candidates": [{ "name": "...", "reason": "..." }] }',
    ]

    generation = await llm(
        "catalog_explore",
        build_messages("\n".join(lines), system_prompt),
        EXPLORE_SCHEMA,
        KeepAlive.KEEP_LOADED,
    )
    if not isinstance(generation.parsed, dict):
        return []

    valid_names = {i.name.lower() for i in group.items}
    candidates: list[Candidate] = []
    for entry in generation.parsed.get("candidates") or []:
        name = (entry.get("name") or "").strip()
        if name.lower() not in valid_names:
            logger.debug("Explore %s discarded unknown item %r", group.id, name)
            continue
        candidates.append(Candidate(
            name=name,
            reason=entry.get("reason") or "",
            group_id=group.id,
            source=group.source,
        ))
    return candidates[:CANDIDATES_PER_GROUP]


# ---------------------------------------------------------------------------
# Step 3 — Reduce
# ---------------------------------------------------------------------------

REDUCE_SCHEMA = object_schema(
    {
        "spellcastingAbility": {"type": "string", "enum": ["", *SPELLCASTING_ABILITIES]},
        "spellcastingLevel": {"type": "integer"},
        "legendaryActionCount": {"type": "integer"},
        "legendaryResistanceCount": {"type": "integer"},
        "selected": {
            "type": "array",
            "items": object_schema(
                {"name": {"type": "string"}, "mode": {"type": "string", "enum": [*SPELL_MODES, ""]}},
                ["name", "mode"],
            ),
        },
    },
    [
        "spellcastingAbility", "spellcastingLevel",
        "legendaryActionCount", "legendaryResistanceCount", "selected",
    ],
)


def build_reduce_prompt(candidates: list[Candidate], instruction: str, prior: Tree) -> str:
    cr = get_path(prior, "system.details.cr", 1)
    low, high = ability_budget(_cr(prior))
    candidate_list = "\n".join(f"- {c.name} (from {c.group_id}): {c.reason}" for c in candidates)
    return "\n".join([
        "You are a D&D 5e assistant. Make the final ability selection for this NPC.",
        "",
        npc_context(instruction, prior),
        "",
        f"Budget: {low}–{high} abilities total (CR {cr})",
        "",
        "Candidates:",
        candidate_list,
        "",
        "Select the best combination. You may discard candidates that don't fit.",
        "Aim for a balanced loadout (mix of offense, defense, utility where appropriate).",
        "",
        "HARD RULES:",
        f"- legendaryActionCount and legendaryResistanceCount MUST be 0 for creatures below CR {LEGENDARY_MIN_CR}.",
        f"  Only CR {LEGENDARY_MIN_CR}+ creatures get legendary actions (typically 3) "
        "and legendary resistances (typically 3).",
        f"- Do NOT include Legendary Resistance or legendary action abilities for creatures below CR {LEGENDARY_MIN_CR}.",
        "",
        "For spells, assign a mode:",
        '- "atwill": cantrips or at-will spells (unlimited use)',
        '- "innate": innate spellcasting (limited uses per day)',
        '- "prepared": standard spell slot casting',
        'For non-spell abilities, use mode "".',
        "",
        'If the NPC is a spellcaster, also set spellcastingAbility ("int", "wis", or "cha")',
        "and spellcastingLevel (usually equal to CR for full casters, half for half-casters).",
        'Set both to "" and 0 if the NPC has no spells.',
        "",
        "Return JSON:",
        "{",
        '  "spellcastingAbility": "int",',
        '  "spellcastingLevel": 7,',
        '  "legendaryActionCount": 0,',
        '  "legendaryResistanceCount": 0,',
        '  "selected": [{ "name": "Fireball", "mode": "prepared" }]',
        "}",
    ])


async def assemble_selection(
    llm: LLM,
    candidates: list[Candidate],
    instruction: str,
    prior: Tree,
    system_prompt: str = "",
) -> dict[str, Any] | None:
    generation = await llm(
        "catalog_reduce",
        build_messages(build_reduce_prompt(candidates, instruction, prior), system_prompt),
        REDUCE_SCHEMA,
        KeepAlive.KEEP_LOADED,
    )
    return generation.parsed if isinstance(generation.parsed, dict) else None


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def _actor_update(selection: dict[str, Any], cr: float, notices: list[str]) -> Tree:
    """Spellcasting and legendary fields, only where they differ from defaults."""
    update: Tree = {}
    ability = selection.get("spellcastingAbility") or ""
    if ability:
        update = deep_merge(update, {
            "system": {
                "attributes": {
                    "spellcasting": ability,
                    "spell": {"level": selection.get("spellcastingLevel") or 1},
                },
            },
        })

    legact = max(int(selection.get("legendaryActionCount") or 0), 0)
    legres = max(int(selection.get("legendaryResistanceCount") or 0), 0)
    if (legact or legres) and cr < LEGENDARY_MIN_CR:
        notices.append(
            f"Legendary counts {legact}/{legres} cleared: CR {cr:g} is below {LEGENDARY_MIN_CR}"
        )
        legact = legres = 0
    if legact or legres:
        update = deep_merge(update, {
            "system": {"resources": {"legact": {"max": legact}, "legres": {"max": legres}}},
        })
    return update


def _resolve(
    registry: CatalogRegistry,
    selection: dict[str, Any],
    candidates: list[Candidate],
    notices: list[str],
) -> list[dict[str, Any]]:
    by_name: dict[str, Candidate] = {}
    for c in candidates:
        by_name.setdefault(c.name.lower(), c)

    # source → [(name, mode)], in selection order
    by_source: dict[str, list[tuple[str, str]]] = {}
    for entry in selection.get("selected") or []:
        name = (entry.get("name") or "").strip()
        candidate = by_name.get(name.lower())
        if candidate is None:
            logger.debug("Reduce picked %r which is not a candidate", name)
            continue
        picks = by_source.setdefault(candidate.source, [])
        if name.lower() not in {n.lower() for n, _ in picks}:
            picks.append((name, entry.get("mode") or ""))

    entities: list[dict[str, Any]] = []
    for source, picks in by_source.items():
        modes = {name.lower(): mode for name, mode in picks}
        resolved = registry.resolve_items([name for name, _ in picks], source)

        found = {str(r.get("name", "")).lower() for r in resolved}
        missing = [name for name, _ in picks if name.lower() not in found]
        if missing:
            notices.append(f"Not found in {source}: {', '.join(missing)}")

        for record in resolved:
            mode = modes.get(str(record.get("name", "")).lower(), "")
            if mode in SPELL_MODES and record.get("type") == "spell":
                system = dict(record.get("system") or {})
                system["preparation"] = {"mode": mode}
                record = {**record, "system": system}
            entities.append(record)
    return entities


async def run_catalog_selection(
    llm: LLM,
    registry: CatalogRegistry,
    instruction: str,
    prior: Tree,
    system_prompt: str = "",
) -> GroupResult:
    """Run map → explore → reduce and resolve the final picks."""
    notices: list[str] = []

    logger.info("Catalog map: selecting groups")
    selected = await select_groups(llm, registry, instruction, prior, system_prompt)
    if not selected:
        return GroupResult()

    groups: dict[str, CatalogGroup] = {}
    for g in registry.groups([group_id for group_id, _ in selected]):
        groups.setdefault(g.id, g)
    explorable = [(groups[gid], refinement) for gid, refinement in selected if gid in groups]

    logger.info("Catalog explore: %d group(s)", len(explorable))
    results = await asyncio.gather(
        *(
            explore_candidates(llm, group, refinement, instruction, prior, system_prompt)
            for group, refinement in explorable
        ),
        return_exceptions=True,
    )

    candidates: list[Candidate] = []
    for (group, _), result in zip(explorable, results):
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.warning("Catalog explore %s failed: %s", group.id, result)
            notices.append(f"Explore {group.id} failed: {result}")
            continue
        candidates.extend(result)

    if not candidates:
        return GroupResult(notices=notices)

    logger.info("Catalog reduce: %d candidate(s)", len(candidates))
    selection = await assemble_selection(llm, candidates, instruction, prior, system_prompt)
    if not selection or not selection.get("selected"):
        return GroupResult(notices=notices)

    entities = _resolve(registry, selection, candidates, notices)
    update = _actor_update(selection, _cr(prior), notices)
    if entities:
        update[EMBEDDED_KEY] = entities
    return GroupResult(update=update, notices=notices)


class CatalogSelectionGroup(Group):
    """The "abilities" group: runs the catalog pipeline instead of one call."""

    name = "abilities"
    label = "Selecting abilities…"

    def __init__(self, registry: CatalogRegistry) -> None:
        self.registry = registry

    async def run(
        self,
        llm: LLM,
        instruction: str,
        entity_type: str,
        prior: Tree,
        system_prompt: str = "",
    ) -> GroupResult:
        return await run_catalog_selection(llm, self.registry, instruction, prior, system_prompt)
