"""Microsoft Teams run summaries posted to an incoming webhook."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import httpx

from src.detection.ticket_ids import normalize_ticket_id
from src.extraction.models import (
    CreateTask,
    ExistingTask,
    TaskInstruction,
    TaskType,
    UpdateDescription,
    UpdateStatus,
)
from src.pipeline_config import RunOutcome

logger = logging.getLogger(__name__)


@dataclass
class SummaryItem:
    ticket_id: str | None
    title: str
    type: str


@dataclass
class ParticipantSummary:
    new_tasks: list[SummaryItem] = field(default_factory=list)
    updated_tasks: list[SummaryItem] = field(default_factory=list)


def summarize_instructions(
    instructions: Sequence[TaskInstruction],
    existing_tasks: Sequence[ExistingTask] = (),
    created_ids: Mapping[int, str | None] | None = None,
) -> dict[str, ParticipantSummary]:
    """Group applied instructions by participant.

    ``created_ids`` maps the position of a ``CreateTask`` in *instructions*
    to the ticket ID it received. A ticket with both a description and a
    status change is listed once.
    """
    created_ids = created_ids or {}
    by_ticket = {normalize_ticket_id(t.ticket_id): t for t in existing_tasks}
    summary: dict[str, ParticipantSummary] = {}
    listed: set[str] = set()

    for i, instruction in enumerate(instructions):
        if isinstance(instruction, CreateTask):
            task = instruction.task
            summary.setdefault(task.assignee, ParticipantSummary()).new_tasks.append(
                SummaryItem(created_ids.get(i), task.title or task.description, task.type.value)
            )
        elif isinstance(instruction, UpdateDescription | UpdateStatus):
            key = normalize_ticket_id(instruction.ticket_id) or instruction.ticket_id
            if key in listed:
                continue
            listed.add(key)
            existing = by_ticket.get(key)
            participant = existing.participant_name if existing else instruction.speaker
            title = (existing.title or existing.description) if existing else key
            task_type = existing.type if existing else TaskType.NON_CODING.value
            summary.setdefault(participant or "Unknown", ParticipantSummary()).updated_tasks.append(
                SummaryItem(key, title, task_type)
            )

    return summary


def _task_lines(items: Sequence[SummaryItem], placeholder: str) -> list[str]:
    lines = []
    for n, item in enumerate(items, start=1):
        task_type = "Coding" if item.type == TaskType.CODING.value else "Non-Coding"
        lines.append(f"{n}. {item.ticket_id or placeholder}: {item.title} ({task_type})")
    return lines


def format_run_summary(
    outcome: RunOutcome,
    participants: Mapping[str, ParticipantSummary] | None = None,
    error: str | None = None,
    admin_panel_url: str = "",
) -> str:
    """Render the Markdown body of a Teams summary message."""
    lines: list[str] = []

    if outcome is RunOutcome.FAILED:
        lines.append("**Standup processing failed. No tasks were created or updated.**")
        if error:
            lines.append(f"Error: {error}")
        lines.append("")
    elif outcome is RunOutcome.NO_TASKS or not participants:
        lines.append("**No new or updated tasks reported in today's standup.**")
        lines.append("")
    else:
        for name, data in participants.items():
            if not data.new_tasks and not data.updated_tasks:
                continue
            lines.append(f"**{name}:**")
            if data.new_tasks:
                lines.append("**New Tasks**")
                lines.extend(_task_lines(data.new_tasks, "SP-??"))
                lines.append("")
            if data.updated_tasks:
                lines.append("**Updated Tasks**")
                lines.extend(_task_lines(data.updated_tasks, "SP-XX"))
                lines.append("")

    if admin_panel_url:
        lines.append(
            f"**Please check [Admin Panel]({admin_panel_url}) to see the new and updated tasks.**"
        )

    return "\n".join(lines).strip()


def send_summary(webhook_url: str, text: str, title: str = "Daily Standup Summary") -> None:
    """Post a message card to the webhook. HTTP errors propagate."""
    card = {
        "@type": "MessageCard",
        "@context": "https://schema.org/extensions",
        "summary": title,
        "title": title,
        "text": text,
    }
    r = httpx.post(webhook_url, json=card, timeout=10.0)
    r.raise_for_status()
    logger.info("Sent Teams summary (%d chars)", len(text))
