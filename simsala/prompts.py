"""System prompt rendering and chat message assembly.

Group prompts are plain text built in code. The only user-editable prompt is
the optional system prompt override from settings, a Handlebars template
rendered with:

    {{entity_type}}   the entity type being generated ("weapon", "npc", ...)
    {{instruction}}   the GM's free-text instruction
"""

from collections.abc import Callable
from typing import Any

import pybars

from simsala.llm import Message

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


def build_system_prompt(override: str, entity_type: str, instruction: str) -> str:
    """Render the system prompt override, or "" when none is configured."""
    if not override.strip():
        return ""
    return render_prompt(override, {"entity_type": entity_type, "instruction": instruction}).strip()


def build_messages(prompt: str, system_prompt: str = "") -> list[Message]:
    """Wrap a user prompt (and optional system prompt) as chat messages."""
    messages: list[Message] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})
    return messages
