"""Stage 3: resolve status changes and ticket updates against the snapshot."""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from src.detection.status_changes import (
    detect_status_changes_from_transcript,
    filter_by_confidence,
    summarize_status_changes,
)
from src.detection.ticket_ids import normalize_ticket_id
from src.extraction.models import (
    ExistingTask,
    ExtractedTask,
    StatusChange,
    TaskCategory,
    TaskStatus,
    TaskUpdate,
    UpdateOutcome,
)
from src.ingestion.models import TranscriptEntry
from src.pipeline.reconcile import pick_status_changes

logger = logging.getLogger(__name__)

NOT_FOUND = "not found"

# Confidence given to a STATUS tag the finder attached to an UPDATE_TASK item
FINDER_STATUS_CONFIDENCE = 0.8


@dataclass
class UpdaterResult:
    task_updates: list[TaskUpdate] = field(default_factory=list)
    status_changes: list[StatusChange] = field(default_factory=list)
    outcomes: list[UpdateOutcome] = field(default_factory=list)

    @property
    def not_found(self) -> list[UpdateOutcome]:
        return [o for o in self.outcomes if not o.success and o.reason == NOT_FOUND]


def index_by_ticket(existing_tasks: Sequence[ExistingTask]) -> dict[str, ExistingTask]:
    """Map normalized ticket ID to task; the first (newest) entry wins."""
    index: dict[str, ExistingTask] = {}
    for task in existing_tasks:
        key = normalize_ticket_id(task.ticket_id)
        if key:
            index.setdefault(key, task)
    return index


def describe_update(task: ExtractedTask) -> str:
    """The new information an update item carries: description, context, quote."""
    parts = [task.description.strip().rstrip(".") + "."]
    if task.context:
        parts.append(task.context.strip())
    if task.evidence:
        parts.append(f'Evidence: "{task.evidence.strip()}"')
    return " ".join(parts)


def _status_from_finder(task: ExtractedTask, ticket_id: str) -> StatusChange | None:
    if task.status is TaskStatus.TODO:
        return None
    return StatusChange(
        task_id=ticket_id,
        new_status=task.status,
        confidence=FINDER_STATUS_CONFIDENCE,
        evidence=task.evidence or task.description,
        speaker=task.speaker or task.assignee or "Unknown",
        pattern_type="finder",
    )


def update_tasks(
    found_tasks: Sequence[ExtractedTask],
    existing_tasks: Sequence[ExistingTask],
    entries: Sequence[TranscriptEntry],
    confidence_threshold: float = 0.7,
) -> UpdaterResult:
    """Run Stage 3.

    Status language is detected over the whole transcript, not only over
    Stage 1's items. References to tickets missing from the snapshot become
    ``UpdateOutcome(success=False, reason="not found")``. Description updates
    only ever append to what the task already says.
    """
    updates = [t for t in found_tasks if t.category is TaskCategory.UPDATE_TASK]
    index = index_by_ticket(existing_tasks)
    result = UpdaterResult()

    logger.info(
        "Stage 3 starting: %d update items, %d existing tasks",
        len(updates),
        len(existing_tasks),
    )

    detected = detect_status_changes_from_transcript(list(entries))
    candidates = filter_by_confidence(detected, confidence_threshold)
    if len(candidates) < len(detected):
        logger.info(
            "Dropped %d status change(s) below confidence %.2f",
            len(detected) - len(candidates),
            confidence_threshold,
        )

    # Running description per ticket so several updates to one ticket stack up
    amended: dict[str, TaskUpdate] = {}

    for task in updates:
        ticket_id = normalize_ticket_id(task.ticket_id) or task.ticket_id
        existing = index.get(ticket_id)
        if existing is None:
            logger.warning("Update references %s, which is not in the task snapshot", ticket_id)
            result.outcomes.append(UpdateOutcome(ticket_id=ticket_id, success=False, reason=NOT_FOUND))
            continue

        finder_status = _status_from_finder(task, ticket_id)
        if finder_status is not None and finder_status.confidence >= confidence_threshold:
            candidates.append(finder_status)

        new_information = describe_update(task)
        previous = amended.get(ticket_id)
        base = previous.updated_description if previous else existing.description
        time_taken = previous.time_taken if previous else None
        estimated_time = previous.estimated_time if previous else None

        if task.time_spent > 0:
            time_taken = (time_taken if time_taken is not None else existing.time_taken) + task.time_spent
        if not existing.estimated_time and task.estimated_time > 0 and estimated_time is None:
            estimated_time = task.estimated_time

        if task.description.strip().lower() == existing.description.strip().lower():
            updated_description = base
        else:
            updated_description = f"{base}\n\nUpdate: {new_information}"

        if updated_description == base and time_taken is None and estimated_time is None:
            logger.info("Update for %s adds nothing new; skipping", ticket_id)
            continue

        amended[ticket_id] = TaskUpdate(
            ticket_id=ticket_id,
            original_description=existing.description,
            new_information=(
                f"{previous.new_information}\n{new_information}" if previous else new_information
            ),
            updated_description=updated_description,
            speaker=task.speaker or task.assignee,
            evidence=task.evidence,
            participant_name=existing.participant_name,
            type=existing.type,
            title=existing.title,
            time_taken=time_taken,
            estimated_time=estimated_time,
        )

    result.task_updates = list(amended.values())
    result.outcomes.extend(
        UpdateOutcome(ticket_id=u.ticket_id, success=True, reason="description amended")
        for u in result.task_updates
    )

    # Settle conflicting claims before comparing with the current status, so a
    # later claim that matches it still overrides an earlier one that does not.
    for change in pick_status_changes(candidates):
        existing = index.get(change.task_id)
        if existing is None:
            logger.warning(
                "Status change for %s (%s, said by %s) has no matching task",
                change.task_id,
                change.new_status,
                change.speaker,
            )
            result.outcomes.append(
                UpdateOutcome(
                    ticket_id=change.task_id,
                    success=False,
                    reason=NOT_FOUND,
                    kind="status",
                    new_status=change.new_status,
                )
            )
            continue

        if str(existing.status) == change.new_status.value:
            logger.debug("%s is already %s", change.task_id, change.new_status)
            continue

        result.status_changes.append(dataclasses.replace(change, old_status=str(existing.status)))

    logger.info("Status change summary: %s", summarize_status_changes(result.status_changes))
    logger.info(
        "Stage 3 complete: %d description updates, %d status changes, %d not found",
        len(result.task_updates),
        len(result.status_changes),
        len(result.not_found),
    )
    return result
