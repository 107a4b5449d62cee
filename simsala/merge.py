"""Deep merge of partial updates and extraction of embedded entities.

Merge rules (overlay onto base):
  object onto object  → recurse key by key
  list                → replaces the base value wholesale, whatever it was
  anything else       → overlay wins

Lists are never merged element-wise: a list-valued field (damage types,
properties, languages) is always a complete set.

A group's mapped output may carry child entities under EMBEDDED_KEY. They
are split off before merging and collected separately by the orchestrator.
"""

from __future__ import annotations

import copy
from typing import Any

from simsala.models import Tree

EMBEDDED_KEY = "_embedded"
EMBEDDED_SUMMARY_KEY = "_embedded_summary"
GENERATED_FLAG = ("flags", "simsala", "generated")


def deep_merge(base: Tree, overlay: Tree) -> Tree:
    """Return a new tree with `overlay` merged onto `base`. Inputs are not mutated."""
    merged: Tree = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(value, dict):
            if isinstance(current, dict):
                merged[key] = deep_merge(current, value)
            else:
                merged[key] = copy.deepcopy(value)
        elif isinstance(value, list):
            merged[key] = copy.deepcopy(value)
        else:
            merged[key] = value
    return merged


def extract_embedded(update: Tree) -> tuple[Tree, list[dict[str, Any]]]:
    """Split a mapped update into (field update, embedded entities).

    Entity order is preserved. Updates without EMBEDDED_KEY come back equal
    to the input with an empty entity list.
    """
    if EMBEDDED_KEY not in update:
        return dict(update), []
    remainder = {k: v for k, v in update.items() if k != EMBEDDED_KEY}
    entities = update[EMBEDDED_KEY] or []
    return remainder, [copy.deepcopy(e) for e in entities if isinstance(e, dict)]


def summarize_embedded(entities: list[dict[str, Any]]) -> str:
    """One-line summary of collected entities for later prompts."""
    if not entities:
        return "none yet"
    return "; ".join(
        f"{e.get('name', 'unnamed')} ({e.get('type', 'item')})" for e in entities
    )


def mark_generated(entity: dict[str, Any]) -> dict[str, Any]:
    """Tag an entity as machine-generated so a later run may replace it."""
    flags, scope, key = GENERATED_FLAG
    return deep_merge(entity, {flags: {scope: {key: True}}})


def is_generated(entity: dict[str, Any]) -> bool:
    flags, scope, key = GENERATED_FLAG
    return bool(entity.get(flags, {}).get(scope, {}).get(key))


def get_path(tree: Tree, path: str, default: Any = None) -> Any:
    """Read a dotted path ("system.details.cr") from a tree."""
    node: Any = tree
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return default if node is None else node
