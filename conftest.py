import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from simsala.catalog import CatalogRegistry
from simsala.llm import Generation, KeepAlive, Message, parse_structured
from simsala.models import Catalog

FIXTURES_DIR = Path(__file__).parent / "tests" / "fixtures"


class StubLLM:
    """Records every call and answers from canned per-stage responses.

    A response may be:
      dict       → serialised and validated against the requested schema
      list       → one entry per call, consumed in order
      Exception  → raised
      callable   → called with the messages, its return value used as above
      str        → sent back as raw text (use for unparseable output)
    Stages without a response get an empty (unparsed) Generation.
    """

    def __init__(self, responses: dict[str, Any] | None = None) -> None:
        self.responses = {
            stage: list(r) if isinstance(r, list) else r
            for stage, r in (responses or {}).items()
        }
        self.calls: list[tuple[str, list[Message], dict | None, KeepAlive]] = []

    async def __call__(
        self,
        stage: str,
        messages: list[Message],
        schema: dict[str, Any] | None,
        keep_alive: KeepAlive = KeepAlive.UNLOAD_NOW,
    ) -> Generation:
        self.calls.append((stage, messages, schema, keep_alive))
        response = self.responses.get(stage)
        if isinstance(response, list):
            response = response.pop(0) if response else None
        if callable(response) and not isinstance(response, Exception):
            response = response(messages)
        if isinstance(response, Exception):
            raise response
        if response is None:
            return Generation()
        raw = response if isinstance(response, str) else json.dumps(response)
        return Generation(parsed=parse_structured(raw, schema), raw=raw)

    def stages(self) -> list[str]:
        return [call[0] for call in self.calls]

    def count(self, stage: str) -> int:
        return self.stages().count(stage)

    def prompt(self, stage: str, index: int = 0) -> str:
        """User prompt text of the index-th call for a stage."""
        calls = [c for c in self.calls if c[0] == stage]
        return calls[index][1][-1]["content"]


@pytest.fixture
def make_llm() -> Callable[..., StubLLM]:
    return StubLLM


@pytest.fixture
def catalog_registry() -> CatalogRegistry:
    """Two small catalogs (spells and monster features) with their packs."""
    catalogs = [
        Catalog.model_validate_json((FIXTURES_DIR / "catalogs" / name).read_text())
        for name in ("srd-spells.json", "srd-features.json")
    ]
    packs = {
        path.stem: json.loads(path.read_text())
        for path in sorted((FIXTURES_DIR / "catalogs" / "packs").glob("*.json"))
    }
    return CatalogRegistry(catalogs, packs)
