"""FastAPI API endpoints under /api.

Endpoint groups: health, settings, entity types, generation (ad hoc or into a
stored document), documents.
"""

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from simsala.config import get_config, llm_from_config, update_config
from simsala.llm import LLM
from simsala.models import Document, PipelineOutcome, Tree
from simsala.pipeline import PipelineExhausted, UnsupportedType, run_pipeline
from simsala.prompts import PromptError, build_system_prompt
from simsala.storage import DocumentNotFound, Storage

router = APIRouter()


# ── Request bodies ──────────────────────────────────────


class GenerateBody(BaseModel):
    entity_type: str
    instruction: str
    prior: dict[str, Any] | None = None


class CreateDocument(BaseModel):
    type: str
    name: str = ""
    data: dict[str, Any] = {}


class GenerateIntoDocument(BaseModel):
    instruction: str
    apply: bool = True


# ── Helpers ─────────────────────────────────────────────


def _storage(request: Request) -> Storage:
    return request.app.state.storage


def _llm(request: Request, config: dict[str, Any]) -> LLM:
    return request.app.state.llm or llm_from_config(config)


async def _generate(
    request: Request, entity_type: str, instruction: str, prior: Tree | None,
) -> PipelineOutcome:
    """Run the pipeline, translating its errors into HTTP errors."""
    profiles = request.app.state.profiles
    if entity_type not in profiles:
        raise HTTPException(400, str(UnsupportedType(entity_type)))

    config = get_config(request.app.state.data_dir)
    try:
        system_prompt = build_system_prompt(
            config["system_prompt_override"], entity_type, instruction,
        )
    except PromptError as e:
        raise HTTPException(400, str(e))

    try:
        return await run_pipeline(
            instruction=instruction,
            entity_type=entity_type,
            llm=_llm(request, config),
            profiles=profiles,
            prior=prior,
            system_prompt=system_prompt,
        )
    except PipelineExhausted as e:
        raise HTTPException(502, {"error": str(e), "outcome": e.outcome.model_dump()})


# ── Settings ────────────────────────────────────────────


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(request: Request):
    """Get app settings (model connection, timeouts, prompt override)."""
    return get_config(request.app.state.data_dir)


@router.patch("/settings")
async def update_settings(request: Request, body: dict):
    """Update app settings (partial merge)."""
    return update_config(request.app.state.data_dir, body)


@router.get("/entity-types")
async def entity_types(request: Request):
    """Supported entity types with their wave sequences."""
    return {
        entity_type: [list(wave) for wave in profile.waves]
        for entity_type, profile in request.app.state.profiles.items()
    }


# ── Generation ──────────────────────────────────────────


@router.post("/generate")
async def generate(request: Request, body: GenerateBody) -> PipelineOutcome:
    """Generate an entity without storing it."""
    return await _generate(request, body.entity_type, body.instruction, body.prior)


# ── Documents ───────────────────────────────────────────


@router.post("/documents", status_code=201)
async def create_document(request: Request, body: CreateDocument) -> Document:
    """Create an empty (or pre-filled) document."""
    if body.type not in request.app.state.profiles:
        raise HTTPException(400, str(UnsupportedType(body.type)))
    return _storage(request).create_document(body.type, body.name, body.data)


@router.get("/documents/{doc_id}")
async def get_document(request: Request, doc_id: str) -> Document:
    try:
        return _storage(request).get_document(doc_id)
    except DocumentNotFound as e:
        raise HTTPException(404, str(e))


@router.post("/documents/{doc_id}/generate")
async def generate_into_document(request: Request, doc_id: str, body: GenerateIntoDocument):
    """Generate using the document as prior state; apply the result unless apply=false."""
    storage = _storage(request)
    try:
        doc = storage.get_document(doc_id)
    except DocumentNotFound as e:
        raise HTTPException(404, str(e))

    outcome = await _generate(request, doc.type, body.instruction, doc.data)
    if body.apply:
        doc = storage.apply_outcome(doc_id, outcome)
    return {"outcome": outcome, "document": doc}
