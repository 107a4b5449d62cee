"""D&D 5e enumeration tables.

Sourced from the dnd5e system config; update when the system updates.

Used in two places:
  1. Group prompts and JSON schemas, so the model only picks legal values
  2. Post-processing, to drop values that are not valid for an entity type
"""

# ── Items ────────────────────────────────────────────────

RARITY = ["common", "uncommon", "rare", "veryRare", "legendary", "artifact"]

# "" means no attunement required
ATTUNEMENT = ["", "required", "optional"]

PRICE_DENOMINATIONS = ["cp", "sp", "ep", "gp", "pp"]

DAMAGE_TYPES = [
    "acid", "bludgeoning", "cold", "fire", "force",
    "lightning", "necrotic", "piercing", "poison",
    "psychic", "radiant", "slashing", "thunder",
]

WEAPON_MASTERIES = ["cleave", "graze", "nick", "push", "sap", "slow", "topple", "vex"]

USES_RECOVERY = ["sr", "lr", "day", "charges"]

# system.type.value per top-level item type
ITEM_TYPE_VALUES: dict[str, list[str]] = {
    "weapon": ["simpleM", "simpleR", "martialM", "martialR", "natural", "improv"],
    "equipment": [
        # armor
        "light", "medium", "heavy", "natural", "shield",
        # misc
        "clothing", "ring", "rod", "trinket", "vehicle", "wand", "wondrous",
    ],
    "consumable": ["ammo", "potion", "poison", "food", "scroll", "wand", "rod", "trinket", "wondrous"],
    "tool": ["art", "game", "music"],
    "loot": ["art", "gear", "gem", "junk", "material", "resource", "trade", "treasure"],
}

ITEM_TYPES = list(ITEM_TYPE_VALUES)

# system.properties — key → (label, entity types it is valid for)
ITEM_PROPERTIES: dict[str, tuple[str, tuple[str, ...]]] = {
    "ada": ("Adamantine", ("weapon", "equipment")),
    "amm": ("Ammunition", ("weapon",)),
    "fin": ("Finesse", ("weapon",)),
    "fir": ("Firearm", ("weapon",)),
    "foc": ("Spellcasting Focus", ("weapon", "equipment", "tool")),
    "hvy": ("Heavy", ("weapon",)),
    "lgt": ("Light", ("weapon",)),
    "lod": ("Loading", ("weapon",)),
    "mgc": ("Magical", ("weapon", "equipment", "consumable", "tool", "loot", "container")),
    "rch": ("Reach", ("weapon",)),
    "ret": ("Returning", ("weapon",)),
    "sil": ("Silvered", ("weapon",)),
    "spc": ("Special", ("weapon",)),
    "stealthDisadvantage": ("Stealth Disadvantage", ("equipment",)),
    "thr": ("Thrown", ("weapon",)),
    "two": ("Two-Handed", ("weapon",)),
    "ver": ("Versatile", ("weapon",)),
}


def valid_properties(entity_type: str) -> list[str]:
    """Property keys legal for an entity type, in table order."""
    return [key for key, (_, valid_for) in ITEM_PROPERTIES.items() if entity_type in valid_for]


# ── NPCs ─────────────────────────────────────────────────

CREATURE_TYPES = [
    "aberration", "beast", "celestial", "construct", "dragon", "elemental",
    "fey", "fiend", "giant", "humanoid", "monstrosity", "ooze", "plant", "undead",
]

SIZES = ["tiny", "sm", "med", "lg", "huge", "grg"]

HIT_DICE = {"tiny": "d4", "sm": "d6", "med": "d8", "lg": "d10", "huge": "d12", "grg": "d20"}

CONDITIONS = [
    "blinded", "charmed", "deafened", "exhaustion", "frightened", "grappled",
    "incapacitated", "invisible", "paralyzed", "petrified", "poisoned",
    "prone", "restrained", "stunned", "unconscious",
]

ABILITY_KEYS = ["str", "dex", "con", "int", "wis", "cha"]

SKILL_KEYS = [
    "acr", "ani", "arc", "ath", "dec", "his", "ins", "itm",
    "inv", "med", "nat", "prc", "prf", "per", "rel", "slt", "ste", "sur",
]

STANDARD_LANGUAGES = [
    "common", "draconic", "dwarvish", "elvish", "giant",
    "gnomish", "goblin", "halfling", "orc",
]

EXOTIC_LANGUAGES = [
    "abyssal", "celestial", "deep", "infernal", "primordial",
    "sylvan", "undercommon", "gith", "gnoll", "aarakocra",
]

ALL_LANGUAGES = STANDARD_LANGUAGES + EXOTIC_LANGUAGES

# Creature types that cannot speak
NO_SPEECH_TYPES = ("beast", "ooze", "plant")

SPELL_MODES = ["atwill", "innate", "prepared"]

SPELLCASTING_ABILITIES = ["int", "wis", "cha"]
