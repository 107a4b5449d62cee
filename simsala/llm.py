"""LLM client — HTTP connection to a structured-output chat backend.

The pipeline injects an LLM callable matching the protocol:

    async def __call__(self, stage, messages, schema, keep_alive) -> Generation: ...

`stage` identifies which group or catalog phase is calling (e.g. "identity",
"catalog_map"). `schema` is a JSON Schema the response must satisfy; the
backend uses it to constrain decoding and the client validates it again
after parsing. `keep_alive` is the resource-lifetime hint: keep the model
loaded between calls, or unload it now.

Three implementations are provided:

    HttpLLM    — real HTTP client, supports Ollama and OpenAI-compatible
                 chat backends. Selected by provider_format.
    TimeoutLLM — wraps another LLM and bounds every call by wall-clock time.
    NullLLM    — answers every request with a parse failure. Useful for
                 smoke-testing the pipeline wiring without a running model.

Tests use StubLLM (defined in the test helpers) instead.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import IntEnum
from typing import Any, Literal, Protocol

import httpx
import jsonschema
from pydantic import BaseModel

logger = logging.getLogger(__name__)

Message = dict[str, str]  # {"role": "system"|"user"|"assistant", "content": ...}


class KeepAlive(IntEnum):
    """Ollama keep_alive values: -1 keeps the model resident, 0 unloads it."""

    KEEP_LOADED = -1
    UNLOAD_NOW = 0


class Generation(BaseModel):
    """One model response. `parsed` is None when the content was unusable."""

    parsed: Any = None
    raw: str = ""


# ---------------------------------------------------------------------------
# Protocol — every LLM implementation must match this signature
# ---------------------------------------------------------------------------

class LLM(Protocol):
    async def __call__(
        self,
        stage: str,
        messages: list[Message],
        schema: dict[str, Any] | None,
        keep_alive: KeepAlive = KeepAlive.UNLOAD_NOW,
    ) -> Generation: ...


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------

def _strip_fences(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)
    return cleaned


def parse_structured(raw: str, schema: dict[str, Any] | None) -> Any | None:
    """Parse model output as JSON and validate it against `schema`.

    Returns None on any failure. The caller decides whether that is fatal.
    """
    if not raw.strip():
        return None
    try:
        data = json.loads(_strip_fences(raw))
    except json.JSONDecodeError as e:
        logger.warning("Model output is not valid JSON: %s", e)
        return None
    if schema:
        try:
            jsonschema.validate(data, schema)
        except jsonschema.ValidationError as e:
            logger.warning("Model output does not match schema: %s", e.message)
            return None
    return data


# ---------------------------------------------------------------------------
# HttpLLM — connects to a real backend
# ---------------------------------------------------------------------------

ProviderFormat = Literal["ollama", "openai"]


class HttpLLM:
    """Async HTTP client for structured-output chat backends.

    Supported formats:
      "ollama"  — POST /api/chat  {"model", "messages", "format": schema,
                                   "stream": false, "keep_alive"}
                  Response: {"message": {"content": "..."}}
      "openai"  — POST /v1/chat/completions  {"model", "messages",
                                   "response_format": {"type": "json_schema", ...}}
                  Response: {"choices": [{"message": {"content": "..."}}]}

    Args:
        provider_url:    Base URL of the backend, e.g. "http://localhost:11434".
        model:           Model identifier sent with every request.
        api_key:         Bearer token, or empty string if not required.
        provider_format: Wire format to use. Defaults to "ollama".
        timeout:         HTTP timeout in seconds. Defaults to 120.
    """

    def __init__(
        self,
        provider_url: str,
        model: str,
        api_key: str = "",
        provider_format: ProviderFormat = "ollama",
        timeout: float = 120.0,
    ) -> None:
        self._base_url = provider_url.rstrip("/")
        self._model = model
        self._api_key = api_key
        self._format = provider_format
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _build_request(
        self,
        stage: str,
        messages: list[Message],
        schema: dict[str, Any] | None,
        keep_alive: KeepAlive,
    ) -> tuple[str, dict]:
        """Return (url, body) for the configured format."""
        if self._format == "openai":
            url = f"{self._base_url}/v1/chat/completions"
            body: dict = {"model": self._model, "messages": messages}
            if schema:
                body["response_format"] = {
                    "type": "json_schema",
                    "json_schema": {"name": stage, "schema": schema},
                }
            return url, body

        # ollama (default)
        url = f"{self._base_url}/api/chat"
        body = {
            "model": self._model,
            "messages": messages,
            "stream": False,
            "keep_alive": int(keep_alive),
        }
        if schema:
            body["format"] = schema
        return url, body

    def _parse_response(self, data: dict) -> str:
        """Extract the message content from the response body."""
        if self._format == "openai":
            choices = data.get("choices")
            if not choices or "content" not in (choices[0].get("message") or {}):
                raise TransportError("Unexpected response format from OpenAI-compatible backend")
            return choices[0]["message"]["content"] or ""

        # ollama
        message = data.get("message")
        if not isinstance(message, dict) or "content" not in message:
            raise TransportError("Unexpected response format from Ollama backend")
        return message["content"] or ""

    async def __call__(
        self,
        stage: str,
        messages: list[Message],
        schema: dict[str, Any] | None,
        keep_alive: KeepAlive = KeepAlive.UNLOAD_NOW,
    ) -> Generation:
        if not messages and self._format == "openai":
            # No resident-model control on this wire format; nothing to unload.
            return Generation()

        url, body = self._build_request(stage, messages, schema, keep_alive)
        logger.debug(
            "llm call stage=%s url=%s messages=%d keep_alive=%d",
            stage, url, len(messages), int(keep_alive),
        )

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.post(url, json=body, headers=self._headers())
                resp.raise_for_status()
        except httpx.ConnectError as e:
            raise TransportError(f"Cannot connect to LLM backend at {self._base_url}") from e
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"LLM backend returned HTTP {e.response.status_code}"
            ) from e
        except httpx.TimeoutException as e:
            raise TransportError(f"LLM backend timed out after {self._timeout}s") from e
        except httpx.RequestError as e:
            raise TransportError(f"LLM backend request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise TransportError("LLM backend returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise TransportError("Unexpected response format: body is not a JSON object")

        raw = self._parse_response(data)
        logger.debug("llm response stage=%s len=%d", stage, len(raw))
        if not messages:
            return Generation(raw=raw)
        return Generation(parsed=parse_structured(raw, schema), raw=raw)


# ---------------------------------------------------------------------------
# TimeoutLLM — per-call wall-clock bound around any LLM
# ---------------------------------------------------------------------------

class TimeoutLLM:
    """Bounds each call of the wrapped LLM to `seconds` of wall-clock time.

    A call that runs out of time raises TransportError, so the pipeline
    records it like any other failed group.
    """

    def __init__(self, llm: LLM, seconds: float) -> None:
        self._llm = llm
        self._seconds = seconds

    async def __call__(
        self,
        stage: str,
        messages: list[Message],
        schema: dict[str, Any] | None,
        keep_alive: KeepAlive = KeepAlive.UNLOAD_NOW,
    ) -> Generation:
        try:
            return await asyncio.wait_for(
                self._llm(stage, messages, schema, keep_alive), self._seconds
            )
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"Call for stage {stage!r} exceeded {self._seconds}s"
            ) from e


# ---------------------------------------------------------------------------
# NullLLM — never produces usable output; useful for pipeline smoke tests
# ---------------------------------------------------------------------------

class NullLLM:
    """Returns an empty, unparsed Generation for every request. No network calls.

    Lets you verify that the pipeline wiring (wave ordering, failure
    bookkeeping, unload signalling) works without a running model. Every
    group fails, so a run ends in PipelineExhausted.
    """

    async def __call__(
        self,
        stage: str,
        messages: list[Message],
        schema: dict[str, Any] | None,
        keep_alive: KeepAlive = KeepAlive.UNLOAD_NOW,
    ) -> Generation:
        logger.debug("NullLLM stage=%s messages=%d", stage, len(messages))
        return Generation()


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class LLMError(RuntimeError):
    """Base class for generation failures a group may hit."""


class TransportError(LLMError):
    """Raised when the backend cannot be reached or returns an error."""


class ParseFailure(LLMError):
    """Raised when a response could not be parsed into the requested schema."""

    def __init__(self, stage: str, raw: str) -> None:
        super().__init__(f"Unparseable response for {stage!r}")
        self.stage = stage
        self.raw = raw
