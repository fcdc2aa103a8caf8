"""Stage 2: turn NEW_TASK candidates into creation payloads."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from src.detection.ticket_ids import (
    find_ticket_ids,
    is_legacy_ticket,
    is_tracker_ticket,
    normalize_ticket_id,
)
from src.extraction.models import ExistingTask, ExtractedTask, NewTask, TaskCategory
from src.extraction.response_parser import generate_task_title
from src.ingestion.models import TranscriptEntry
from src.pipeline.enrichment import DescriptionEnricher

logger = logging.getLogger(__name__)


@dataclass
class SkippedTask:
    task: ExtractedTask
    reason: str


@dataclass
class CreatorResult:
    new_tasks: list[NewTask] = field(default_factory=list)
    skipped: list[SkippedTask] = field(default_factory=list)


def _normalize_text(text: str | None) -> str:
    return re.sub(r"\s+", " ", (text or "").lower()).strip(" .")


def find_duplicate(task: ExtractedTask, existing_tasks: Sequence[ExistingTask]) -> ExistingTask | None:
    """An existing task whose description or title matches this one verbatim."""
    wanted = _normalize_text(task.description)
    if not wanted:
        return None
    for existing in existing_tasks:
        if wanted in (_normalize_text(existing.description), _normalize_text(existing.title)):
            return existing
    return None


def referenced_tickets(
    text: str, existing_tasks: Sequence[ExistingTask], project_key: str = ""
) -> list[str]:
    """Ticket IDs in *text* that name real work.

    Hyphenated words such as ``utf-8`` or ``covid-19`` look like tracker keys,
    so only legacy ``SP-`` IDs, the tracker project's keys and IDs present in
    the snapshot count.
    """
    known = {normalize_ticket_id(t.ticket_id) for t in existing_tasks}
    return [
        ticket_id
        for ticket_id in find_ticket_ids(text)
        if is_legacy_ticket(ticket_id)
        or is_tracker_ticket(ticket_id, project_key)
        or ticket_id in known
    ]


def create_tasks(
    found_tasks: Sequence[ExtractedTask],
    existing_tasks: Sequence[ExistingTask],
    entries: Sequence[TranscriptEntry] = (),
    enricher: DescriptionEnricher | None = None,
    project_key: str = "",
) -> CreatorResult:
    """Run Stage 2.

    Only NEW_TASK items are considered. A candidate is dropped when its
    description mentions a ticket ID (it refers to existing work) or when it
    repeats an existing task word for word. Survivors are optionally enriched;
    if enrichment fails or returns nothing the original description is kept.
    """
    candidates = [t for t in found_tasks if t.category is TaskCategory.NEW_TASK]
    logger.info(
        "Stage 2 starting: %d new-task candidates, %d existing tasks",
        len(candidates),
        len(existing_tasks),
    )

    result = CreatorResult()
    for task in candidates:
        hidden_ids = referenced_tickets(task.description, existing_tasks, project_key)
        if hidden_ids:
            logger.info(
                "Not creating %r: description references %s",
                task.description[:60],
                ", ".join(hidden_ids),
            )
            result.skipped.append(
                SkippedTask(task, f"references existing ticket {', '.join(hidden_ids)}")
            )
            continue

        duplicate = find_duplicate(task, existing_tasks)
        if duplicate is not None:
            logger.info("Not creating %r: duplicate of %s", task.description[:60], duplicate.ticket_id)
            result.skipped.append(SkippedTask(task, f"duplicate of {duplicate.ticket_id}"))
            continue

        description = task.description
        enriched = False
        if enricher is not None:
            try:
                better = enricher.enrich(task, entries)
            except Exception:
                logger.exception("Enrichment failed for %r; keeping original", task.description[:60])
                better = None
            if better:
                description, enriched = better, True

        result.new_tasks.append(
            NewTask(
                title=generate_task_title(task.description),
                description=description,
                assignee=task.assignee,
                type=task.type,
                work_type=task.work_type,
                is_future_plan=task.is_future_plan,
                estimated_time=task.estimated_time,
                priority=task.priority,
                story_points=task.story_points,
                project_code=task.project_code,
                evidence=task.evidence,
                context=task.context,
                enriched=enriched,
                creation_confidence=1.0,
                creation_reason=(
                    "explicit new task, enriched with transcript context"
                    if enriched
                    else "explicit new task"
                ),
            )
        )

    logger.info(
        "Stage 2 complete: %d to create, %d skipped, %d enriched",
        len(result.new_tasks),
        len(result.skipped),
        sum(1 for t in result.new_tasks if t.enriched),
    )
    return result
