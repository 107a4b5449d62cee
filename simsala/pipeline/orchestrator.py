"""Pipeline orchestrator — runs one generation request end-to-end.

Run flow:
  1. Look up the entity type's profile (unknown type → UnsupportedType).
  2. For each wave, in order:
       a. Build the prior snapshot: caller's prior state, then everything
          accumulated so far, plus a one-line summary of embedded entities.
       b. Run the wave's groups: a lone group directly, several groups
          concurrently. Each gets the same snapshot.
       c. In declaration order: split off embedded entities, deep-merge the
          rest into the accumulated state, record failures and notices.
  3. Ask the model server to unload (always, even on error or cancel).
  4. Post-process the accumulated state when at least one group succeeded,
     otherwise raise PipelineExhausted.

A failing group never aborts the run. Later waves see whatever the earlier
waves managed to produce.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from simsala.groups import Group
from simsala.llm import LLM, KeepAlive, ParseFailure
from simsala.merge import (
    EMBEDDED_SUMMARY_KEY,
    deep_merge,
    extract_embedded,
    mark_generated,
    summarize_embedded,
)
from simsala.models import GroupResult, LogEntry, PipelineOutcome, Tree

from .profiles import EntityProfile

logger = logging.getLogger(__name__)


class UnsupportedType(ValueError):
    """Raised when no profile exists for the requested entity type."""

    def __init__(self, entity_type: str) -> None:
        super().__init__(f"Unsupported entity type: {entity_type!r}")
        self.entity_type = entity_type


class PipelineExhausted(RuntimeError):
    """Raised when every group of a run failed. Carries the (empty) outcome."""

    def __init__(self, outcome: PipelineOutcome) -> None:
        super().__init__(outcome.first_error or "No group succeeded")
        self.outcome = outcome


async def run_pipeline(
    *,
    instruction: str,
    entity_type: str,
    llm: LLM,
    profiles: dict[str, EntityProfile],
    prior: Tree | None = None,
    system_prompt: str = "",
    on_status: Callable[[str], Any] | None = None,
) -> PipelineOutcome:
    """Generate one entity and return the outcome of the run."""
    profile = profiles.get(entity_type)
    if profile is None:
        raise UnsupportedType(entity_type)

    seed: Tree = prior or {}
    state: Tree = {}
    embedded: list[dict[str, Any]] = []
    log: list[LogEntry] = []
    first_error: str | None = None
    first_exc: Exception | None = None
    succeeded = 0

    try:
        for wave_no, wave in enumerate(profile.waves, start=1):
            groups = [profile.groups[name] for name in wave]
            snapshot = deep_merge(seed, state)
            snapshot[EMBEDDED_SUMMARY_KEY] = summarize_embedded(embedded)

            logger.info(
                "Wave %d/%d for %s: %s",
                wave_no, len(profile.waves), entity_type, ", ".join(wave),
            )
            results = await _run_wave(
                groups, llm, instruction, entity_type, snapshot, system_prompt, on_status,
            )

            for group, result in zip(groups, results):
                if isinstance(result, Exception):
                    logger.warning("Group %s failed: %s", group.name, result)
                    log.append(LogEntry(
                        wave=wave_no,
                        group=group.name,
                        level="error",
                        kind=type(result).__name__,
                        message=str(result),
                        raw=result.raw if isinstance(result, ParseFailure) else None,
                    ))
                    if first_exc is None:
                        first_exc = result
                        first_error = f"{group.name}: {result}"
                    continue

                update, entities = extract_embedded(result.update)
                state = deep_merge(state, update)
                embedded.extend(mark_generated(e) for e in entities)
                succeeded += 1
                for notice in result.notices:
                    log.append(LogEntry(
                        wave=wave_no, group=group.name, level="warning",
                        kind="notice", message=notice,
                    ))
    finally:
        await _unload(llm)

    if not succeeded:
        outcome = PipelineOutcome(
            entity_type=entity_type, success=False, first_error=first_error, log=log,
        )
        raise PipelineExhausted(outcome) from first_exc

    if profile.postprocess is not None:
        state = profile.postprocess(state, entity_type)

    logger.info(
        "Generated %s: %d/%d groups succeeded, %d embedded",
        entity_type, succeeded, profile.group_count(), len(embedded),
    )
    return PipelineOutcome(
        entity_type=entity_type,
        state=state,
        embedded=embedded,
        success=True,
        first_error=first_error,
        log=log,
    )


async def _run_wave(
    groups: list[Group],
    llm: LLM,
    instruction: str,
    entity_type: str,
    snapshot: Tree,
    system_prompt: str,
    on_status: Callable[[str], Any] | None,
) -> list[GroupResult | Exception]:
    """Results in declaration order; a failed group yields its exception."""
    if on_status is not None:
        for group in groups:
            on_status(group.label)

    if len(groups) == 1:
        try:
            return [await groups[0].run(llm, instruction, entity_type, snapshot, system_prompt)]
        except Exception as e:
            return [e]

    results = await asyncio.gather(
        *(g.run(llm, instruction, entity_type, snapshot, system_prompt) for g in groups),
        return_exceptions=True,
    )
    for result in results:
        # Cancellation and interpreter exits are not group failures
        if isinstance(result, BaseException) and not isinstance(result, Exception):
            raise result
    return results


async def _unload(llm: LLM) -> None:
    try:
        await llm("unload", [], None, KeepAlive.UNLOAD_NOW)
    except Exception as e:
        logger.debug("Unload request failed: %s", e)
