"""Field groups for NPC generation.

Each wave builds on the accumulated state: concept → mechanical identity →
core stats → (saves & skills, senses & languages, attacks) → abilities
from the catalog → description.
"""

from __future__ import annotations

import math
import re
from typing import Any

from simsala.merge import EMBEDDED_KEY, EMBEDDED_SUMMARY_KEY, get_path
from simsala.models import Tree
from simsala.tables import (
    ABILITY_KEYS,
    ALL_LANGUAGES,
    CONDITIONS,
    CREATURE_TYPES,
    DAMAGE_TYPES,
    EXOTIC_LANGUAGES,
    HIT_DICE,
    ITEM_TYPE_VALUES,
    NO_SPEECH_TYPES,
    SIZES,
    SKILL_KEYS,
    STANDARD_LANGUAGES,
)

from .base import Group, creature_line, object_schema, quoted

_HP_FORMULA = re.compile(r"^(\d+)d(\d+)([+-]\d+)?$")


def compute_hp_average(formula: str) -> int:
    """Average HP for a dice formula like "8d8+16"; 1 when it doesn't parse.

    Computed here rather than asked of the model, which tends to return
    formula/max pairs that disagree.
    """
    match = _HP_FORMULA.match(formula.replace(" ", ""))
    if not match:
        return 1
    count, die = int(match.group(1)), int(match.group(2))
    mod = int(match.group(3) or 0)
    return math.floor(count * (die + 1) / 2 + mod)


def _ability_line(prior: Tree) -> str:
    return ", ".join(
        f"{k.upper()} {get_path(prior, f'system.abilities.{k}.value', '?')}" for k in ABILITY_KEYS
    )


# ── Wave 1: concept ──────────────────────────────────────


class ConceptGroup(Group):
    name = "concept"
    label = "Generating concept…"

    def schema(self, entity_type: str) -> dict[str, Any]:
        return object_schema(
            {
                "name": {"type": "string"},
                "cr": {"type": "number"},
                "creatureType": {"type": "string", "enum": CREATURE_TYPES},
                "subtype": {"type": "string"},
            },
            ["name", "cr", "creatureType"],
        )

    def build_prompt(self, instruction: str, entity_type: str, prior: Tree) -> str:
        return "\n".join([
            "You are a D&D 5e assistant. Create an NPC concept from the GM's description.",
            "",
            quoted(instruction),
            "",
            "Creature type guide (pick the type that best fits):",
            "- aberration: mind flayers, beholders, aboleths; alien/psionic creatures from the Far Realm",
            "- beast: wolves, spiders, bears, hawks, giant animals; natural creatures, no magic",
            "- celestial: angels, unicorns, couatls; creatures from the Upper Planes",
            "- construct: golems, animated armor, shield guardians; magically created objects",
            "- dragon: dragons, drakes, wyverns, dragon turtles",
            "- elemental: fire/water/earth/air elementals, genies, gargoyles, mephits",
            "- fey: pixies, sprites, satyrs, dryads, hags; creatures from the Feywild",
            "- fiend: demons, devils, yugoloths; creatures from the Lower Planes",
            "- giant: hill giants, frost giants, ogres, trolls, ettins",
            "- humanoid: humans, elves, dwarves, goblins, orcs, cultists, bandits, knights",
            "- monstrosity: owlbears, basilisks, manticores, minotaurs",
            "- ooze: gelatinous cubes, black puddings, gray oozes",
            "- plant: treants, blights, shambling mounds, myconids",
            "- undead: zombies, skeletons, vampires, liches, wraiths, ghosts, wights",
            "",
            "CR ranges: 0 (commoner) to 30 (tarrasque). Typical: goblin CR 1/4, ogre CR 2, "
            "young dragon CR 6–10, adult dragon CR 13–17, ancient dragon CR 20+, lich CR 21.",
            'subtype is optional; use for race/category like "elf", "goblinoid", "shapechanger". '
            "Empty string if not relevant.",
            "",
            'IMPORTANT: If the description says "a cultist" or "an acolyte" (generic/indefinite), '
            'use a type name like "Blood Cultist", NOT a personal name. Only invent a personal name '
            "if the GM asks for a specific named character.",
            'Think Monster Manual style: "Bandit Captain", "Cult Fanatic", "Shadow Demon".',
            "",
            'Return JSON: { "name": "Cult Fanatic", "cr": 2, "creatureType": "humanoid", "subtype": "human" }',
        ])

    def map_result(self, result: dict[str, Any], entity_type: str, prior: Tree) -> Tree:
        cr = result.get("cr")
        ctype: Tree = {"value": result.get("creatureType") or "humanoid"}
        if result.get("subtype"):
            ctype["subtype"] = result["subtype"]
        update: Tree = {
            "system": {
                "details": {
                    "cr": cr if isinstance(cr, (int, float)) and cr >= 0 else 1,
                    "type": ctype,
                },
            },
        }
        if result.get("name"):
            update["name"] = result["name"]
        return update


# ── Wave 2: mechanical identity ──────────────────────────


class MechanicalGroup(Group):
    name = "mechanical"
    label = "Generating mechanical identity…"

    def schema(self, entity_type: str) -> dict[str, Any]:
        damage_list = {"type": "array", "items": {"type": "string", "enum": DAMAGE_TYPES}}
        return object_schema(
            {
                "size": {"type": "string", "enum": SIZES},
                "damageImmunities": damage_list,
                "damageResistances": damage_list,
                "conditionImmunities": {"type": "array", "items": {"type": "string", "enum": CONDITIONS}},
                "walk": {"type": "integer"},
                "fly": {"type": "integer"},
                "swim": {"type": "integer"},
                "burrow": {"type": "integer"},
                "climb": {"type": "integer"},
            },
            ["size", "damageImmunities", "damageResistances", "conditionImmunities", "walk"],
        )

    def build_prompt(self, instruction: str, entity_type: str, prior: Tree) -> str:
        return "\n".join([
            "You are a D&D 5e assistant. Determine the mechanical identity for an NPC.",
            "",
            quoted(instruction),
            creature_line(prior),
            "",
            "Sizes: tiny, sm (Small), med (Medium), lg (Large), huge, grg (Gargantuan)",
            "",
            "Typical patterns:",
            "- Undead: immune to poison damage + poisoned condition, often necrotic resistant",
            "- Constructs: immune to poison + psychic, immune to charmed/exhaustion/frightened/paralyzed/petrified/poisoned",
            "- Fiends: resistant to cold/fire/lightning, immune to poison + poisoned",
            "- Elementals: immune to poison + poisoned/paralyzed, often one elemental immunity",
            "- Beasts/Humanoids: usually no immunities or resistances",
            "",
            "Movement: walk 30 is standard for Medium humanoids. Set fly/swim/burrow/climb to 0 if not applicable.",
            "",
            'Return JSON: { "size": "med", "damageImmunities": [], "damageResistances": ["fire"], '
            '"conditionImmunities": [], "walk": 30, "fly": 0, "swim": 0, "burrow": 0, "climb": 0 }',
        ])

    def map_result(self, result: dict[str, Any], entity_type: str, prior: Tree) -> Tree:
        walk = result.get("walk")
        return {
            "system": {
                "traits": {
                    "size": result.get("size") or "med",
                    "di": {"value": list(result.get("damageImmunities") or [])},
                    "dr": {"value": list(result.get("damageResistances") or [])},
                    "ci": {"value": list(result.get("conditionImmunities") or [])},
                },
                "attributes": {
                    "movement": {
                        "walk": 30 if walk is None else walk,
                        "fly": result.get("fly") or 0,
                        "swim": result.get("swim") or 0,
                        "burrow": result.get("burrow") or 0,
                        "climb": result.get("climb") or 0,
                    },
                },
            },
        }


# ── Wave 3: core stats ───────────────────────────────────


class CoreStatsGroup(Group):
    name = "coreStats"
    label = "Generating core stats…"

    def schema(self, entity_type: str) -> dict[str, Any]:
        props: dict[str, Any] = {k: {"type": "integer"} for k in ABILITY_KEYS}
        props["ac"] = {"type": "integer"}
        props["hpFormula"] = {"type": "string"}
        return object_schema(props, [*ABILITY_KEYS, "ac", "hpFormula"])

    def build_prompt(self, instruction: str, entity_type: str, prior: Tree) -> str:
        hit_die = HIT_DICE.get(get_path(prior, "system.traits.size", "med"), "d8")
        return "\n".join([
            "You are a D&D 5e assistant. Determine ability scores, AC, and HP formula for an NPC.",
            "",
            quoted(instruction),
            creature_line(prior, size=True),
            f"Hit die for this size: {hit_die}",
            "",
            "CR benchmarks (approximate HP, AC, ability score range):",
            "CR 0: HP 3, AC 10, scores 8–12",
            "CR 1: HP 50, AC 13, scores 12–16",
            "CR 3: HP 80, AC 13, scores 13–17",
            "CR 5: HP 110, AC 15, scores 14–18",
            "CR 8: HP 150, AC 16, scores 15–20",
            "CR 11: HP 190, AC 17, scores 16–22",
            "CR 15: HP 230, AC 18, scores 18–24",
            "CR 20: HP 310, AC 19, scores 20–26",
            "",
            "hpFormula: use the size's hit die + CON modifier per die.",
            'Example: Medium creature, 8 hit dice, CON 14 (+2): "8d8+16" (8 dice × +2 CON = +16).',
            'Example: Large creature, 12 hit dice, CON 18 (+4): "12d10+48" (12 dice × +4 CON = +48).',
            "HP will be calculated automatically from the formula. Only provide the formula.",
            "",
            'Return JSON: { "str": 16, "dex": 14, "con": 14, "int": 10, "wis": 12, "cha": 8, '
            '"ac": 15, "hpFormula": "8d8+16" }',
        ])

    def map_result(self, result: dict[str, Any], entity_type: str, prior: Tree) -> Tree:
        formula = (result.get("hpFormula") or "1d8").replace(" ", "")
        if re.match(r"^d\d", formula):
            formula = "1" + formula
        hp = compute_hp_average(formula)
        ac = result.get("ac")
        return {
            "system": {
                "abilities": {
                    k: {"value": 10 if result.get(k) is None else result[k]} for k in ABILITY_KEYS
                },
                "attributes": {
                    "ac": {"flat": 10 if ac is None else ac, "calc": "natural"},
                    "hp": {"value": hp, "max": hp, "formula": formula},
                },
            },
        }


# ── Wave 4: saves & skills, senses & languages, attacks ──


class SavesSkillsGroup(Group):
    name = "savesSkills"
    label = "Generating saves & skills…"

    def schema(self, entity_type: str) -> dict[str, Any]:
        prof = {"type": "integer", "enum": [0, 1]}
        skill = {"type": "integer", "enum": [0, 1, 2]}
        return object_schema(
            {
                "saves": object_schema({k: prof for k in ABILITY_KEYS}, list(ABILITY_KEYS)),
                "skills": object_schema({k: skill for k in SKILL_KEYS}, list(SKILL_KEYS)),
            },
            ["saves", "skills"],
        )

    def build_prompt(self, instruction: str, entity_type: str, prior: Tree) -> str:
        return "\n".join([
            "You are a D&D 5e assistant. Choose saving throw and skill proficiencies for an NPC.",
            "",
            quoted(instruction),
            creature_line(prior),
            f"Ability scores: {_ability_line(prior)}",
            "",
            "saves: 0 = not proficient, 1 = proficient. Most creatures have 2–3 save proficiencies.",
            "skills: 0 = not proficient, 1 = proficient, 2 = expertise. Most creatures have 2–4 skill proficiencies.",
            "",
            "Skill keys: acr (Acrobatics), ani (Animal Handling), arc (Arcana), ath (Athletics),",
            "dec (Deception), his (History), ins (Insight), itm (Intimidation), inv (Investigation),",
            "med (Medicine), nat (Nature), prc (Perception), prf (Performance), per (Persuasion),",
            "rel (Religion), slt (Sleight of Hand), ste (Stealth), sur (Survival)",
            "",
            "Return JSON with ALL keys set to 0 or 1/2:",
            '{ "saves": { "str": 0, "dex": 1, "con": 1, "int": 0, "wis": 0, "cha": 0 },',
            '  "skills": { "acr": 0, "ani": 0, "arc": 0, "ath": 1, "dec": 0, "his": 0, "ins": 0, '
            '"itm": 1, "inv": 0, "med": 0, "nat": 0, "prc": 1, "prf": 0, "per": 0, "rel": 0, '
            '"slt": 0, "ste": 0, "sur": 0 } }',
        ])

    def map_result(self, result: dict[str, Any], entity_type: str, prior: Tree) -> Tree:
        saves = result.get("saves") or {}
        skills = result.get("skills") or {}
        return {
            "system": {
                "abilities": {k: {"proficient": saves.get(k) or 0} for k in ABILITY_KEYS},
                "skills": {k: {"value": skills.get(k) or 0} for k in SKILL_KEYS},
            },
        }


class SensesLanguagesGroup(Group):
    name = "sensesLanguages"
    label = "Generating senses & languages…"

    def schema(self, entity_type: str) -> dict[str, Any]:
        return object_schema(
            {
                "darkvision": {"type": "integer"},
                "blindsight": {"type": "integer"},
                "tremorsense": {"type": "integer"},
                "truesight": {"type": "integer"},
                "languages": {"type": "array", "items": {"type": "string", "enum": ALL_LANGUAGES}},
                "customLanguages": {"type": "string"},
            },
            ["darkvision", "blindsight", "tremorsense", "truesight", "languages"],
        )

    def build_prompt(self, instruction: str, entity_type: str, prior: Tree) -> str:
        return "\n".join([
            "You are a D&D 5e assistant. Determine senses and languages for an NPC.",
            "",
            quoted(instruction),
            creature_line(prior),
            "",
            "Senses: range in feet, 0 if none.",
            "- Most undead/fiends: darkvision 60 or 120",
            "- Beasts: may have blindsight or tremorsense",
            "- Humanoids: usually no special senses (all 0)",
            "",
            "Languages: pick ONLY the 1–3 languages that make sense for this creature.",
            '- Almost all intelligent creatures speak "common"; always include it unless the creature '
            "cannot speak or has no reason to know it.",
            '- Humanoids: "common" plus maybe one racial language (e.g. "elvish", "dwarvish")',
            '- Fiends: "common" + "abyssal" or "infernal"',
            '- Undead: whatever languages they knew in life, usually "common"',
            "- Beasts/oozes/plants: empty array []; they do not speak",
            "Do NOT select all languages. Be selective and realistic.",
            "",
            f"Standard: {', '.join(STANDARD_LANGUAGES)}",
            f"Exotic: {', '.join(EXOTIC_LANGUAGES)}",
            'customLanguages: semicolon-separated for non-standard (e.g. "Telepathy 60 ft."). Empty string if none.',
            "",
            'Return JSON: { "darkvision": 0, "blindsight": 0, "tremorsense": 0, "truesight": 0, '
            '"languages": ["common"], "customLanguages": "" }',
        ])

    def map_result(self, result: dict[str, Any], entity_type: str, prior: Tree) -> Tree:
        mute = get_path(prior, "system.details.type.value") in NO_SPEECH_TYPES
        languages = result.get("languages")
        return {
            "system": {
                "attributes": {
                    "senses": {
                        "ranges": {
                            sense: result.get(sense) or 0
                            for sense in ("darkvision", "blindsight", "tremorsense", "truesight")
                        },
                    },
                },
                "traits": {
                    "languages": {
                        "value": [] if mute else list(["common"] if languages is None else languages),
                        "custom": "" if mute else (result.get("customLanguages") or ""),
                    },
                },
            },
        }


class AttacksGroup(Group):
    """Weapon and natural attacks, emitted as embedded weapon entities."""

    name = "attacks"
    label = "Generating attacks…"

    def schema(self, entity_type: str) -> dict[str, Any]:
        attack = object_schema(
            {
                "name": {"type": "string"},
                "weaponType": {"type": "string", "enum": ITEM_TYPE_VALUES["weapon"]},
                "formula": {"type": "string"},
                "types": {"type": "array", "items": {"type": "string", "enum": DAMAGE_TYPES}},
                "reach": {"type": "integer"},
                "description": {"type": "string"},
            },
            ["name", "weaponType", "formula", "types"],
        )
        return object_schema({"attacks": {"type": "array", "items": attack}}, ["attacks"])

    def build_prompt(self, instruction: str, entity_type: str, prior: Tree) -> str:
        return "\n".join([
            "You are a D&D 5e assistant. Choose the attacks an NPC makes.",
            "",
            quoted(instruction),
            creature_line(prior, size=True),
            f"Ability scores: {_ability_line(prior)}",
            "",
            "Give 1–3 attacks. Beasts and monsters use natural attacks (Bite, Claw, Slam) with weaponType \"natural\".",
            "Armed humanoids use their weapons (simpleM, simpleR, martialM, martialR).",
            "formula is the damage dice plus the ability modifier, e.g. \"1d8+3\". reach is in feet (5 for most melee).",
            f"Damage types: {', '.join(DAMAGE_TYPES)}.",
            "",
            'Return JSON: { "attacks": [{ "name": "Bite", "weaponType": "natural", "formula": "2d6+4", '
            '"types": ["piercing"], "reach": 5, "description": "One target." }] }',
        ])

    def map_result(self, result: dict[str, Any], entity_type: str, prior: Tree) -> Tree:
        entities = []
        for attack in result.get("attacks") or []:
            if not attack.get("name") or not attack.get("formula"):
                continue
            system: Tree = {
                "type": {"value": attack.get("weaponType") or "natural"},
                "damage": {
                    "base": {"formula": attack["formula"], "types": list(attack.get("types") or [])},
                },
                "range": {"reach": attack.get("reach") or 5, "units": "ft"},
            }
            if attack.get("description"):
                system["description"] = {"value": f"<p>{attack['description']}</p>"}
            entities.append({"name": attack["name"], "type": "weapon", "system": system})
        return {EMBEDDED_KEY: entities} if entities else {}


# ── Final wave: description ──────────────────────────────


class BiographyGroup(Group):
    name = "description"
    label = "Generating description…"

    def schema(self, entity_type: str) -> dict[str, Any]:
        return object_schema({"biography": {"type": "string"}}, ["biography"])

    def build_prompt(self, instruction: str, entity_type: str, prior: Tree) -> str:
        name = get_path(prior, "name", "unnamed creature")
        ctype = get_path(prior, "system.details.type.value", "unknown")
        cr = get_path(prior, "system.details.cr", "unknown")
        size = get_path(prior, "system.traits.size", "unknown")
        return "\n".join([
            "You are a D&D 5e assistant writing NPC flavor text.",
            "",
            quoted(instruction),
            f'Creature: "{name}", CR {cr}, {size} {ctype}',
            f"Abilities and attacks: {prior.get(EMBEDDED_SUMMARY_KEY, 'none yet')}",
            "",
            "Write 3–5 sentences covering appearance, personality, and a hint of backstory.",
            "Use the style of a D&D Monster Manual entry.",
            "Wrap in <p> tags, one per paragraph, 2 paragraphs max.",
            "",
            'Return JSON: { "biography": "<p>First paragraph about appearance.</p>'
            '<p>Second paragraph about personality and lore.</p>" }',
        ])

    def map_result(self, result: dict[str, Any], entity_type: str, prior: Tree) -> Tree:
        return {"system": {"details": {"biography": {"value": result.get("biography") or ""}}}}


NPC_GROUPS: dict[str, Group] = {
    g.name: g
    for g in (
        ConceptGroup(),
        MechanicalGroup(),
        CoreStatsGroup(),
        SavesSkillsGroup(),
        SensesLanguagesGroup(),
        AttacksGroup(),
        BiographyGroup(),
    )
}
