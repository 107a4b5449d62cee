"""JSON file storage for generated documents.

Each document is one JSON file. There is no database; reads and writes go
through plain helper methods that load and dump JSON.

Directory layout:

    {base}/
      documents/
        {id}.json     ← {"id", "type", "name", "data", "children"}
"""

from __future__ import annotations

import json
import re
import unicodedata
from pathlib import Path
from typing import Any

from simsala.merge import deep_merge, is_generated
from simsala.models import Document, PipelineOutcome


class DocumentNotFound(LookupError):
    def __init__(self, doc_id: str) -> None:
        super().__init__(f"Document not found: {doc_id!r}")
        self.doc_id = doc_id


def slugify(title: str) -> str:
    """Convert a name to a filesystem-safe id.

    "Flame Tongue" → "flame-tongue"
    """
    text = unicodedata.normalize("NFKD", title)
    text = text.encode("ascii", "ignore").decode("ascii").lower()
    text = re.sub(r"['\"]", "", text)
    text = re.sub(r"[^a-z0-9]+", "-", text).strip("-")
    return text or "untitled"


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._doc_root = base_path / "documents"
        self._doc_root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _doc_file(self, doc_id: str) -> Path:
        return self._doc_root / f"{doc_id}.json"

    def _unique_id(self, name: str) -> str:
        base = slugify(name)
        doc_id, n = base, 2
        while self._doc_file(doc_id).exists():
            doc_id = f"{base}-{n}"
            n += 1
        return doc_id

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def create_document(
        self, type: str, name: str = "", data: dict[str, Any] | None = None,
    ) -> Document:
        doc = Document(
            id=self._unique_id(name or type),
            type=type,
            name=name,
            data=data or {},
        )
        self.save_document(doc)
        return doc

    def get_document(self, doc_id: str) -> Document:
        path = self._doc_file(doc_id)
        if not path.is_file():
            raise DocumentNotFound(doc_id)
        return Document.model_validate_json(path.read_text())

    def save_document(self, doc: Document) -> None:
        self._doc_file(doc.id).write_text(doc.model_dump_json(indent=2))

    def list_documents(self) -> list[Document]:
        return [
            Document.model_validate_json(path.read_text())
            for path in sorted(self._doc_root.glob("*.json"))
        ]

    def apply_outcome(self, doc_id: str, outcome: PipelineOutcome) -> Document:
        """Write a run's results into a document.

        The accumulated state is deep-merged into `data`. Children tagged as
        generated are replaced by the run's embedded entities; hand-made
        children stay.
        """
        doc = self.get_document(doc_id)
        data = deep_merge(doc.data, outcome.state)
        kept = [c for c in doc.children if not is_generated(c)]
        updated = doc.model_copy(update={
            "name": data.get("name") or doc.name,
            "data": data,
            "children": kept + list(outcome.embedded),
        })
        self.save_document(updated)
        return updated
