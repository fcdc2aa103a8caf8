"""Turn Stage 2 and Stage 3 output into one list of task instructions."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from src.detection.ticket_ids import normalize_ticket_id
from src.extraction.models import (
    CreateTask,
    NewTask,
    StatusChange,
    TaskInstruction,
    TaskUpdate,
    UpdateDescription,
    UpdateStatus,
)

logger = logging.getLogger(__name__)


def pick_status_changes(changes: Sequence[StatusChange]) -> list[StatusChange]:
    """One change per ticket: highest confidence, later claims win ties.

    Input is in transcript order, so "later" means said later in the meeting.
    Output keeps the order in which each ticket was first mentioned.
    """
    winners: dict[str, StatusChange] = {}
    for change in changes:
        key = normalize_ticket_id(change.task_id) or change.task_id
        current = winners.get(key)
        if current is not None and current.new_status != change.new_status:
            logger.info(
                "Conflicting status for %s: %s (%.2f, %s) vs %s (%.2f, %s)",
                key,
                current.new_status,
                current.confidence,
                current.speaker,
                change.new_status,
                change.confidence,
                change.speaker,
            )
        if current is None or change.confidence >= current.confidence:
            winners[key] = change
    return list(winners.values())


def reconcile(
    new_tasks: Sequence[NewTask],
    task_updates: Sequence[TaskUpdate],
    status_changes: Sequence[StatusChange],
) -> list[TaskInstruction]:
    """Build the instruction set: creates, then description updates, then transitions."""
    instructions: list[TaskInstruction] = [CreateTask(task=task) for task in new_tasks]

    merged: dict[str, TaskUpdate] = {}
    for update in task_updates:
        key = normalize_ticket_id(update.ticket_id) or update.ticket_id
        # Stage 3 already stacks updates per ticket; the latest carries everything
        merged[key] = update
    instructions.extend(
        UpdateDescription(
            ticket_id=key,
            description=update.updated_description,
            new_information=update.new_information,
            speaker=update.speaker,
            time_taken=update.time_taken,
            estimated_time=update.estimated_time,
        )
        for key, update in merged.items()
    )

    for change in pick_status_changes(status_changes):
        instructions.append(
            UpdateStatus(
                ticket_id=normalize_ticket_id(change.task_id) or change.task_id,
                new_status=change.new_status,
                old_status=change.old_status,
                confidence=change.confidence,
                speaker=change.speaker,
                evidence=change.evidence,
            )
        )

    logger.info(
        "Reconciled %d instruction(s): %d create, %d description, %d status",
        len(instructions),
        len(new_tasks),
        len(merged),
        len(instructions) - len(new_tasks) - len(merged),
    )
    return instructions
