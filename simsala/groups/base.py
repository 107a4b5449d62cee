"""Group contract — the atomic unit of generation.

A group turns (instruction, entity type, prior state) into one prompt and one
JSON schema, and maps the parsed response back into a partial update. All
three are pure functions of their arguments, so groups in the same wave can
run concurrently and any group can be retried in isolation.
"""

from __future__ import annotations

import logging
from typing import Any

from simsala.llm import LLM, KeepAlive, ParseFailure
from simsala.merge import get_path
from simsala.models import GroupResult, Tree
from simsala.prompts import build_messages

logger = logging.getLogger(__name__)


class Group:
    """Base class for single-call groups. Subclasses override the three hooks."""

    name: str = ""
    label: str = ""

    def build_prompt(self, instruction: str, entity_type: str, prior: Tree) -> str:
        raise NotImplementedError

    def schema(self, entity_type: str) -> dict[str, Any]:
        raise NotImplementedError

    def map_result(self, result: dict[str, Any], entity_type: str, prior: Tree) -> Tree:
        raise NotImplementedError

    async def run(
        self,
        llm: LLM,
        instruction: str,
        entity_type: str,
        prior: Tree,
        system_prompt: str = "",
    ) -> GroupResult:
        """One prompt → one schema-constrained call → one mapped update."""
        prompt = self.build_prompt(instruction, entity_type, prior)
        generation = await llm(
            self.name,
            build_messages(prompt, system_prompt),
            self.schema(entity_type),
            KeepAlive.KEEP_LOADED,
        )
        if not isinstance(generation.parsed, dict):
            raise ParseFailure(self.name, generation.raw)
        return GroupResult(update=self.map_result(generation.parsed, entity_type, prior))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


def object_schema(properties: dict[str, Any], required: list[str]) -> dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


def quoted(instruction: str) -> str:
    return f'GM description: "{instruction}"'


def creature_line(prior: Tree, *, size: bool = False) -> str:
    """'Creature: "Name", CR 2, humanoid' from the accumulated NPC state."""
    name = get_path(prior, "name", "unnamed")
    cr = get_path(prior, "system.details.cr", "unknown")
    ctype = get_path(prior, "system.details.type.value", "unknown")
    line = f'Creature: "{name}", CR {cr}, {ctype}'
    if size:
        line += f", size {get_path(prior, 'system.traits.size', 'med')}"
    return line
