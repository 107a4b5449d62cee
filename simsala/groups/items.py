"""Field groups for item generation (weapon, equipment, consumable, tool, loot)."""

from __future__ import annotations

from typing import Any

from simsala.merge import get_path
from simsala.models import Tree
from simsala.tables import (
    ATTUNEMENT,
    DAMAGE_TYPES,
    ITEM_PROPERTIES,
    ITEM_TYPE_VALUES,
    PRICE_DENOMINATIONS,
    RARITY,
    USES_RECOVERY,
    WEAPON_MASTERIES,
    valid_properties,
)

from .base import Group, object_schema, quoted


def _item_line(prior: Tree, entity_type: str) -> str:
    name = get_path(prior, "name")
    if not name:
        return f"Item type: {entity_type}"
    rarity = get_path(prior, "system.rarity", "unknown rarity")
    return f'Item: "{name}", {rarity} {entity_type}'


class IdentityGroup(Group):
    name = "identity"
    label = "Generating identity…"

    def schema(self, entity_type: str) -> dict[str, Any]:
        props: dict[str, Any] = {
            "name": {"type": "string"},
            "rarity": {"type": "string", "enum": RARITY},
            "typeValue": {"type": "string", "enum": ITEM_TYPE_VALUES.get(entity_type, [])},
        }
        required = ["name", "rarity", "typeValue"]
        if entity_type != "loot":
            props["attunement"] = {"type": "string", "enum": ATTUNEMENT}
            required.append("attunement")
        if entity_type == "weapon":
            props["mastery"] = {"type": "string", "enum": WEAPON_MASTERIES}
            required.append("mastery")
        return object_schema(props, required)

    def build_prompt(self, instruction: str, entity_type: str, prior: Tree) -> str:
        type_values = ITEM_TYPE_VALUES.get(entity_type, [])
        lines = [
            f"You are a D&D 5e assistant. Determine the identity fields for a {entity_type} item.",
            "",
            quoted(instruction),
            "",
            f"Rarity options: {', '.join(RARITY)}",
            f"typeValue options: {', '.join(type_values)}",
        ]
        fields = ["name", "rarity", "typeValue"]
        if entity_type != "loot":
            lines.append('attunement options: "" (none), "required", "optional"')
            fields.append("attunement")
        if entity_type == "weapon":
            lines.append(
                f"mastery options: {', '.join(WEAPON_MASTERIES)} "
                "(pick the most fitting for this weapon's combat style)"
            )
            fields.append("mastery")
        lines += ["", f"Return JSON with: {', '.join(fields)}."]
        return "\n".join(lines)

    def map_result(self, result: dict[str, Any], entity_type: str, prior: Tree) -> Tree:
        system: Tree = {
            "rarity": result.get("rarity") or "common",
            "type": {"value": result.get("typeValue") or ""},
        }
        if entity_type != "loot" and result.get("attunement") is not None:
            system["attunement"] = result["attunement"]
        if entity_type == "weapon" and result.get("mastery"):
            system["mastery"] = result["mastery"]
        update: Tree = {"system": system}
        if result.get("name"):
            update["name"] = result["name"]
        return update


class DescriptionGroup(Group):
    name = "description"
    label = "Generating description…"

    def schema(self, entity_type: str) -> dict[str, Any]:
        return object_schema({"description": {"type": "string"}}, ["description"])

    def build_prompt(self, instruction: str, entity_type: str, prior: Tree) -> str:
        return "\n".join([
            "You are a D&D 5e assistant writing item flavor text.",
            "",
            quoted(instruction),
            _item_line(prior, entity_type),
            "",
            "Write 2–4 sentences in the style of a D&D sourcebook. Be evocative and specific. Wrap in a single <p> tag.",
            'Return JSON: { "description": "<p>...</p>" }',
        ])

    def map_result(self, result: dict[str, Any], entity_type: str, prior: Tree) -> Tree:
        return {"system": {"description": {"value": result.get("description") or ""}}}


class DamageGroup(Group):
    name = "damage"
    label = "Generating damage…"

    def schema(self, entity_type: str) -> dict[str, Any]:
        return object_schema(
            {
                "formula": {"type": "string"},
                "types": {"type": "array", "items": {"type": "string", "enum": DAMAGE_TYPES}},
                "versatileFormula": {"type": "string"},
            },
            ["formula", "types"],
        )

    def build_prompt(self, instruction: str, entity_type: str, prior: Tree) -> str:
        lines = [
            f"You are a D&D 5e assistant. Determine the damage for a {entity_type}.",
            "",
            quoted(instruction),
            _item_line(prior, entity_type),
            "",
        ]
        if entity_type == "consumable":
            lines.append(
                'If this item does NOT deal direct damage (e.g. a healing potion, food), '
                'return formula: "" and types: [].'
            )
        lines += [
            "5e damage benchmarks: dagger 1d4 piercing, shortsword 1d6 piercing, "
            "longsword 1d8 slashing (versatile 1d10), greatsword 2d6 slashing, handaxe 1d6 slashing.",
            f"Damage types: {', '.join(DAMAGE_TYPES)}.",
            'For versatile weapons, also return versatileFormula (e.g. "1d10"). Omit it if the weapon is not versatile.',
            "",
            'Return JSON: { "formula": "1d6", "types": ["slashing"] }',
        ]
        return "\n".join(lines)

    def map_result(self, result: dict[str, Any], entity_type: str, prior: Tree) -> Tree:
        formula = (result.get("formula") or "").strip()
        if not formula:
            return {}
        types = list(result.get("types") or [])
        damage: Tree = {"base": {"formula": formula, "types": types}}
        if result.get("versatileFormula"):
            damage["versatile"] = {"formula": result["versatileFormula"], "types": list(types)}
        return {"system": {"damage": damage}}


class PropertiesGroup(Group):
    name = "properties"
    label = "Generating properties…"

    def schema(self, entity_type: str) -> dict[str, Any]:
        return object_schema(
            {"properties": {"type": "array", "items": {"type": "string"}}},
            ["properties"],
        )

    def build_prompt(self, instruction: str, entity_type: str, prior: Tree) -> str:
        valid_keys = ", ".join(
            f"{key} ({ITEM_PROPERTIES[key][0]})" for key in valid_properties(entity_type)
        )
        return "\n".join([
            f"You are a D&D 5e assistant. Choose which properties apply to this {entity_type}.",
            "",
            quoted(instruction),
            _item_line(prior, entity_type),
            "",
            f"Valid property keys for {entity_type}: {valid_keys}",
            "Return only properties that genuinely apply. Return empty array if none fit.",
            'Return JSON: { "properties": ["mgc", "fin"] }',
        ])

    def map_result(self, result: dict[str, Any], entity_type: str, prior: Tree) -> Tree:
        return {"system": {"properties": list(result.get("properties") or [])}}


class DefenseGroup(Group):
    name = "defense"
    label = "Generating defense…"

    def schema(self, entity_type: str) -> dict[str, Any]:
        return object_schema(
            {"armorValue": {"type": "number"}, "strength": {"type": "number"}},
            ["armorValue", "strength"],
        )

    def build_prompt(self, instruction: str, entity_type: str, prior: Tree) -> str:
        return "\n".join([
            "You are a D&D 5e assistant. Determine the AC and strength requirement for armor or a shield.",
            "",
            quoted(instruction),
            _item_line(prior, entity_type),
            "",
            "5e AC benchmarks: padded/leather 11–12, chain shirt 13, scale mail 14, breastplate 14, "
            "half plate 15, chain mail 16, splint 17, plate 18, shield adds +2.",
            "Minimum strength: only for heavy armor (chain mail 13, splint 15, plate 15). Use 0 if not applicable.",
            "",
            'Return JSON: { "armorValue": 16, "strength": 15 }',
        ])

    def map_result(self, result: dict[str, Any], entity_type: str, prior: Tree) -> Tree:
        system: Tree = {"armor": {"value": result.get("armorValue") or 0}}
        if result.get("strength"):
            system["strength"] = result["strength"]
        return {"system": system}


class UsesGroup(Group):
    name = "uses"
    label = "Generating uses…"

    def schema(self, entity_type: str) -> dict[str, Any]:
        return object_schema(
            {"max": {"type": "integer"}, "per": {"type": "string", "enum": USES_RECOVERY}},
            ["max", "per"],
        )

    def build_prompt(self, instruction: str, entity_type: str, prior: Tree) -> str:
        return "\n".join([
            "You are a D&D 5e assistant. Determine the uses/charges for a consumable item.",
            "",
            quoted(instruction),
            _item_line(prior, entity_type),
            "",
            "max: an INTEGER, the number of uses. Never use words. Examples: 1, 3, 10.",
            'per: one of "sr" (short rest), "lr" (long rest), "day" (dawn), "charges" (item consumed permanently).',
            'Single-use items (potions, scrolls, food, poisons): max 1, per "charges".',
            'Multi-charge items (wands, rods): max 3–10, per "lr" or "day".',
            "",
            'Return JSON: { "max": 3, "per": "lr" }',
        ])

    def map_result(self, result: dict[str, Any], entity_type: str, prior: Tree) -> Tree:
        try:
            max_uses = int(result.get("max"))
        except (TypeError, ValueError):
            max_uses = 0
        per = result.get("per")
        return {
            "system": {
                "uses": {
                    "max": str(max_uses if max_uses > 0 else 1),
                    "per": per if per in USES_RECOVERY else "charges",
                },
            },
        }


class PhysicalGroup(Group):
    name = "physical"
    label = "Generating physical properties…"

    def schema(self, entity_type: str) -> dict[str, Any]:
        return object_schema(
            {
                "price": {"type": "number"},
                "denomination": {"type": "string", "enum": PRICE_DENOMINATIONS},
                "weight": {"type": "number"},
            },
            ["price", "denomination", "weight"],
        )

    def build_prompt(self, instruction: str, entity_type: str, prior: Tree) -> str:
        return "\n".join([
            f"You are a D&D 5e assistant. Determine the price and weight for a {entity_type}.",
            "",
            quoted(instruction),
            _item_line(prior, entity_type),
            "",
            "Rarity pricing: common ~50gp, uncommon ~500gp, rare ~5000gp, very rare ~50000gp, legendary ~500000gp.",
            f"Denominations: {', '.join(PRICE_DENOMINATIONS)}. Use gp for most items.",
            "Typical weights: dagger 1lb, sword 2–4lb, armor 10–65lb, potion 0.5lb, wand 1lb, gem 0lb.",
            "",
            'Return JSON: { "price": 5000, "denomination": "gp", "weight": 1 }',
        ])

    def map_result(self, result: dict[str, Any], entity_type: str, prior: Tree) -> Tree:
        return {
            "system": {
                "price": {
                    "value": result.get("price") or 0,
                    "denomination": result.get("denomination") or "gp",
                },
                "weight": {"value": result.get("weight") or 0},
            },
        }


ITEM_GROUPS: dict[str, Group] = {
    g.name: g
    for g in (
        IdentityGroup(),
        DescriptionGroup(),
        DamageGroup(),
        PropertiesGroup(),
        DefenseGroup(),
        UsesGroup(),
        PhysicalGroup(),
    )
}


def filter_properties(state: Tree, entity_type: str) -> Tree:
    """Drop property keys the validity table does not allow for this type."""
    props = get_path(state, "system.properties")
    if not isinstance(props, list):
        return state
    allowed = set(valid_properties(entity_type))
    system = dict(state["system"])
    system["properties"] = [p for p in props if p in allowed]
    return {**state, "system": system}
