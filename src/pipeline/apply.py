"""Apply reconciled task instructions to the issue tracker and the task store."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from src.detection.ticket_ids import is_tracker_ticket, normalize_ticket_id
from src.extraction.models import (
    CreateTask,
    NewTask,
    TaskInstruction,
    TaskStatus,
    UpdateDescription,
    UpdateOutcome,
    UpdateStatus,
)
from src.pipeline.errors import ApplyError

logger = logging.getLogger(__name__)


class IssueTracker(Protocol):
    def create_issue(self, task: NewTask) -> Any: ...

    def update_description(self, issue_key: str, description: str) -> None: ...

    def transition_issue(self, issue_key: str, status: TaskStatus) -> bool: ...

    def close(self) -> None: ...

class TaskSink(Protocol):
    def store_new_tasks(
        self,
        tasks: Sequence[NewTask],
        transcript_id: str | None = None,
        ticket_ids: Sequence[str | None] | None = None,
    ) -> dict[str, dict[str, int]]: ...

    def apply_update(self, ticket_id: str, fields: dict[str, Any]) -> bool: ...


@dataclass
class ApplyResult:
    outcomes: list[UpdateOutcome] = field(default_factory=list)
    # position of each CreateTask in the instruction list -> ticket ID it got
    created_ids: dict[int, str | None] = field(default_factory=dict)
    created_counts: dict[str, dict[str, int]] = field(default_factory=dict)


def apply_instructions(
    instructions: Sequence[TaskInstruction],
    store: TaskSink,
    tracker: IssueTracker | None = None,
    project_key: str = "",
    transcript_id: str | None = None,
) -> ApplyResult:
    """Write every instruction once, in order.

    Creates go to the tracker first (when one is configured) so the store
    records the issue key. Status and description changes reach the tracker
    only for tickets in its project; legacy ``SP-`` tickets live in the
    store alone. Nothing is retried here: the first failure raises
    :class:`ApplyError` and the caller reruns the whole transcript.

    Tracker writes cannot be rolled back. Issues created before a failure
    stay in the tracker and are logged so they can be cleaned up before the
    transcript is rerun.
    """
    result = ApplyResult()
    creates: list[tuple[int, NewTask]] = [
        (i, ins.task) for i, ins in enumerate(instructions) if isinstance(ins, CreateTask)
    ]

    ticket_ids: list[str | None] = []
    for i, task in creates:
        key = None
        if tracker is not None:
            try:
                key = tracker.create_issue(task).key
            except Exception as e:
                _log_orphaned_issues(ticket_ids)
                raise ApplyError(None, e) from e
        ticket_ids.append(key)
        result.created_ids[i] = key

    if creates:
        try:
            result.created_counts = store.store_new_tasks(
                [task for _, task in creates], transcript_id=transcript_id, ticket_ids=ticket_ids
            )
        except Exception as e:
            _log_orphaned_issues(ticket_ids)
            raise ApplyError(None, e) from e

    for instruction in instructions:
        if isinstance(instruction, CreateTask):
            continue
        ticket_id = normalize_ticket_id(instruction.ticket_id) or instruction.ticket_id
        target = tracker if is_tracker_ticket(ticket_id, project_key) else None
        try:
            if isinstance(instruction, UpdateStatus):
                result.outcomes.append(_apply_status(instruction, ticket_id, store, target))
            elif isinstance(instruction, UpdateDescription):
                result.outcomes.append(_apply_description(instruction, ticket_id, store, target))
        except Exception as e:
            raise ApplyError(ticket_id, e) from e

    logger.info(
        "Applied %d instruction(s): %d created, %d updated, %d failed",
        len(instructions),
        len(creates),
        sum(1 for o in result.outcomes if o.success),
        sum(1 for o in result.outcomes if not o.success),
    )
    return result


def _apply_status(
    instruction: UpdateStatus,
    ticket_id: str,
    store: TaskSink,
    tracker: IssueTracker | None,
) -> UpdateOutcome:
    if tracker is not None and not tracker.transition_issue(ticket_id, instruction.new_status):
        return UpdateOutcome(
            ticket_id=ticket_id,
            success=False,
            reason="no tracker transition",
            kind="status",
            old_status=instruction.old_status,
            new_status=instruction.new_status.value,
        )

    stored = store.apply_update(ticket_id, {"status": instruction.new_status.value})
    return UpdateOutcome(
        ticket_id=ticket_id,
        success=stored or tracker is not None,
        reason="status updated" if stored or tracker is not None else "not found",
        kind="status",
        old_status=instruction.old_status,
        new_status=instruction.new_status.value,
    )


def _apply_description(
    instruction: UpdateDescription,
    ticket_id: str,
    store: TaskSink,
    tracker: IssueTracker | None,
) -> UpdateOutcome:
    if tracker is not None:
        tracker.update_description(ticket_id, instruction.description)

    stored = store.apply_update(
        ticket_id,
        {
            "description": instruction.description,
            "time_taken": instruction.time_taken,
            "estimated_time": instruction.estimated_time,
        },
    )
    ok = stored or tracker is not None
    return UpdateOutcome(
        ticket_id=ticket_id,
        success=ok,
        reason="description updated" if ok else "not found",
    )


def _log_orphaned_issues(ticket_ids: Sequence[str | None]) -> None:
    created = [key for key in ticket_ids if key]
    if created:
        logger.error(
            "Tracker issues %s were created but not stored; remove them before rerunning",
            ", ".join(created),
        )
