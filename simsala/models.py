"""Core domain models.

All pipeline stages, the catalog registry and the document store operate on
these types. Pydantic is used for validation and serialisation at every data
boundary.

Generated field data travels as a `Tree`: a JSON object whose values are
scalars, ordered lists or nested objects. The merge engine dispatches on
exactly those three shapes.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, JsonValue

Tree = dict[str, JsonValue]

EntityType = Literal["weapon", "equipment", "consumable", "tool", "loot", "npc"]


# ---------------------------------------------------------------------------
# Pipeline results
# ---------------------------------------------------------------------------

class GroupResult(BaseModel):
    """What one group hands back to the orchestrator."""

    update: dict[str, Any] = Field(default_factory=dict)
    notices: list[str] = Field(default_factory=list)  # non-fatal diagnostics


class LogEntry(BaseModel):
    """One diagnostic line of a pipeline run."""

    wave: int
    group: str
    level: Literal["error", "warning"]
    kind: str  # exception class name for errors, "notice" for warnings
    message: str
    raw: str | None = None  # model output, present on parse failures


class PipelineOutcome(BaseModel):
    """Everything a run produced. Frozen once the run returns."""

    model_config = ConfigDict(frozen=True)

    entity_type: str
    state: dict[str, Any] = Field(default_factory=dict)
    embedded: list[dict[str, Any]] = Field(default_factory=list)
    success: bool
    first_error: str | None = None
    log: list[LogEntry] = Field(default_factory=list)

    def failed_groups(self) -> list[str]:
        """Names of groups that failed, in log order."""
        return [e.group for e in self.log if e.level == "error"]


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class CatalogItem(BaseModel):
    name: str
    summary: str = ""


class CatalogGroup(BaseModel):
    """A thematic slice of a catalog, e.g. "damage-fire" spells."""

    id: str
    description: str
    source: str = ""  # filled from the owning catalog when loaded
    items: list[CatalogItem] = Field(default_factory=list)


class CatalogIndexEntry(BaseModel):
    """What the map phase sees. Never includes item contents."""

    id: str
    description: str
    source: str
    item_count: int


class Catalog(BaseModel):
    """One catalog file: a compendium source organised into groups."""

    source: str
    groups: list[CatalogGroup] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

class Document(BaseModel):
    """A persisted item or NPC with its child records."""

    id: str
    type: str
    name: str = ""
    data: dict[str, Any] = Field(default_factory=dict)
    children: list[dict[str, Any]] = Field(default_factory=list)
