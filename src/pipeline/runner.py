"""Run the three-stage pipeline over one transcript or a batch of them.

A run reads the existing-task snapshot once, finds tasks (Stage 1), builds
creation payloads (Stage 2) and updates (Stage 3) against that same snapshot,
reconciles them into instructions and applies the instructions. Any stage
failure fails the whole run; nothing is applied and the caller retries the
transcript as a unit.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from src.extraction.llm import LLMClient
from src.extraction.models import ExistingTask, NewTask, TaskInstruction
from src.ingestion.models import TranscriptEntry
from src.integrations.teams import format_run_summary, send_summary, summarize_instructions
from src.pipeline.apply import ApplyResult, IssueTracker, apply_instructions
from src.pipeline.creator import CreatorResult, create_tasks
from src.pipeline.enrichment import DescriptionEnricher
from src.pipeline.errors import ApplyError, PipelineError, StageError, TranscriptRunError
from src.pipeline.finder import FinderResult, find_tasks
from src.pipeline.reconcile import reconcile
from src.pipeline.updater import UpdaterResult, update_tasks
from src.pipeline_config import PipelineConfig, ProcessingContext, RunOutcome

logger = logging.getLogger(__name__)


class PipelineStore(Protocol):
    def get_active_tasks(self, limit: int | None = None) -> list[ExistingTask]: ...

    def store_transcript(
        self,
        entries: Sequence[TranscriptEntry],
        metadata: dict[str, Any] | None = None,
        transcript_id: str | None = None,
    ) -> str: ...

    def store_new_tasks(
        self,
        tasks: Sequence[NewTask],
        transcript_id: str | None = None,
        ticket_ids: Sequence[str | None] | None = None,
    ) -> dict[str, dict[str, int]]: ...

    def apply_update(self, ticket_id: str, fields: dict[str, Any]) -> bool: ...


@dataclass(frozen=True)
class PipelineDeps:
    """Collaborators for a run, built once by the entry point."""

    llm: LLMClient
    store: PipelineStore
    tracker: IssueTracker | None = None
    enricher: DescriptionEnricher | None = None


@dataclass
class RunResult:
    outcome: RunOutcome
    transcript_index: int = 1
    instructions: list[TaskInstruction] = field(default_factory=list)
    existing_tasks: list[ExistingTask] = field(default_factory=list)
    finder: FinderResult | None = None
    creator: CreatorResult | None = None
    updater: UpdaterResult | None = None
    applied: ApplyResult | None = None
    error: PipelineError | None = None


Notifier = Callable[[RunResult], None]


def load_snapshot(store: PipelineStore, context: ProcessingContext) -> list[ExistingTask]:
    """The batch baseline when there is one, otherwise a single store read."""
    if context.baseline_tasks is not None:
        return list(context.baseline_tasks)
    try:
        return store.get_active_tasks()
    except Exception as e:
        raise StageError(1, "Task Finder", e) from e


def run_finder(
    entries: Sequence[TranscriptEntry],
    existing: Sequence[ExistingTask],
    deps: PipelineDeps,
    config: PipelineConfig,
    context: ProcessingContext,
) -> FinderResult:
    try:
        return find_tasks(
            entries,
            existing,
            deps.llm,
            context=context,
            context_limit=config.existing_tasks_context_limit,
        )
    except Exception as e:
        raise StageError(1, "Task Finder", e) from e


def finish_run(
    entries: Sequence[TranscriptEntry],
    existing: Sequence[ExistingTask],
    found: FinderResult,
    deps: PipelineDeps,
    config: PipelineConfig,
    context: ProcessingContext,
) -> RunResult:
    """Stages 2 and 3, reconciliation and apply."""
    enricher = deps.enricher if config.enrich_descriptions else None
    try:
        created = create_tasks(
            found.found_tasks,
            existing,
            entries,
            enricher,
            project_key=config.tracker_project_key,
        )
    except Exception as e:
        raise StageError(2, "Task Creator", e) from e

    try:
        updated = update_tasks(
            found.found_tasks,
            existing,
            entries,
            confidence_threshold=config.status_confidence_threshold,
        )
    except Exception as e:
        raise StageError(3, "Task Updater", e) from e

    instructions = reconcile(created.new_tasks, updated.task_updates, updated.status_changes)
    result = RunResult(
        outcome=RunOutcome.NO_TASKS,
        transcript_index=context.transcript_index,
        instructions=instructions,
        existing_tasks=list(existing),
        finder=found,
        creator=created,
        updater=updated,
    )
    if not instructions:
        logger.info("Transcript %d produced no instructions", context.transcript_index)
        return result

    # The transcript row is written last: a run that fails while applying
    # leaves no processed-transcript record behind.
    transcript_id = str(uuid.uuid4())
    result.applied = apply_instructions(
        instructions,
        deps.store,
        tracker=deps.tracker,
        project_key=config.tracker_project_key,
        transcript_id=transcript_id,
    )
    try:
        deps.store.store_transcript(entries, found.metadata, transcript_id=transcript_id)
    except Exception as e:
        raise ApplyError(None, e) from e
    result.outcome = RunOutcome.APPLIED
    return result


def process_transcript(
    entries: Sequence[TranscriptEntry],
    deps: PipelineDeps,
    config: PipelineConfig | None = None,
    context: ProcessingContext | None = None,
) -> RunResult:
    """Process one transcript end to end.

    Raises:
        PipelineError: ``StageError`` for a failed stage, ``ApplyError`` for
            a failed write.
    """
    config = config or PipelineConfig()
    context = context or ProcessingContext()
    existing = load_snapshot(deps.store, context)
    found = run_finder(entries, existing, deps, config, context)
    return finish_run(entries, existing, found, deps, config, context)


async def process_transcript_async(
    entries: Sequence[TranscriptEntry],
    deps: PipelineDeps,
    config: PipelineConfig,
    context: ProcessingContext,
) -> RunResult:
    """Async variant; cancellation takes effect once the LLM call returns."""
    existing = await asyncio.to_thread(load_snapshot, deps.store, context)
    found = await asyncio.to_thread(run_finder, entries, existing, deps, config, context)
    return await asyncio.to_thread(finish_run, entries, existing, found, deps, config, context)


async def process_transcripts(
    batch: Sequence[Sequence[TranscriptEntry]],
    deps: PipelineDeps,
    config: PipelineConfig | None = None,
    notify: Notifier | None = None,
) -> list[RunResult]:
    """Process several transcripts with bounded concurrency.

    The active-task snapshot is read once before any transcript starts and
    shared by all of them, so a task created from one transcript is never a
    match candidate for another in the same batch. A failed transcript is
    reported as ``FAILED`` and does not stop the others.
    """
    config = config or PipelineConfig()
    total = len(batch)
    baseline = tuple(await asyncio.to_thread(deps.store.get_active_tasks))
    semaphore = asyncio.Semaphore(max(1, config.max_concurrent_transcripts))

    logger.info("Processing %d transcript(s) against %d active tasks", total, len(baseline))

    async def run_one(index: int, entries: Sequence[TranscriptEntry]) -> RunResult:
        context = ProcessingContext(
            transcript_index=index, total_transcripts=total, baseline_tasks=baseline
        )
        async with semaphore:
            try:
                result = await process_transcript_async(entries, deps, config, context)
            except PipelineError as e:
                error = TranscriptRunError(index, e)
                logger.error("%s", error)
                result = RunResult(
                    outcome=RunOutcome.FAILED,
                    transcript_index=index,
                    existing_tasks=list(baseline),
                    error=error,
                )

        if notify is not None:
            try:
                await asyncio.to_thread(notify, result)
            except Exception:
                logger.exception("Notification for transcript %d failed", index)
        return result

    results = await asyncio.gather(
        *(run_one(i, entries) for i, entries in enumerate(batch, start=1))
    )

    logger.info(
        "Batch complete: %d applied, %d without tasks, %d failed",
        sum(1 for r in results if r.outcome is RunOutcome.APPLIED),
        sum(1 for r in results if r.outcome is RunOutcome.NO_TASKS),
        sum(1 for r in results if r.outcome is RunOutcome.FAILED),
    )
    return list(results)


def teams_notifier(webhook_url: str, admin_panel_url: str = "") -> Notifier:
    """A notifier that posts each run's summary to a Teams webhook."""

    def notify(result: RunResult) -> None:
        participants = summarize_instructions(
            result.instructions,
            result.existing_tasks,
            result.applied.created_ids if result.applied else None,
        )
        text = format_run_summary(
            result.outcome,
            participants,
            error=str(result.error) if result.error else None,
            admin_panel_url=admin_panel_url,
        )
        send_summary(webhook_url, text)

    return notify
