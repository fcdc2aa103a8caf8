"""Data models for extracted tasks, status changes, and task instructions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

NO_TICKET = "NONE"
UNASSIGNED = "TBD"


class TaskType(StrEnum):
    """Whether the work is engineering work or not."""

    CODING = "Coding"
    NON_CODING = "Non-Coding"


class WorkType(StrEnum):
    """Tracker issue type."""

    TASK = "Task"
    BUG = "Bug"


class TaskCategory(StrEnum):
    """Stage 1 classification of an extracted item."""

    NEW_TASK = "NEW_TASK"
    UPDATE_TASK = "UPDATE_TASK"


class TaskStatus(StrEnum):
    """Lifecycle status shared by the store and the tracker."""

    TODO = "To-do"
    IN_PROGRESS = "In-progress"
    COMPLETED = "Completed"


class Priority(StrEnum):
    HIGHEST = "Highest"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    LOWEST = "Lowest"


class AssigneeMethod(StrEnum):
    """Which assignee strategy produced a match."""

    SPEAKER_INFERENCE = "SPEAKER_INFERENCE"
    EXPLICIT_MENTION = "EXPLICIT_MENTION"
    DATABASE_MATCH = "DATABASE_MATCH"
    NAME_MAPPING = "NAME_MAPPING"
    DEFAULT_ASSIGNMENT = "DEFAULT_ASSIGNMENT"


@dataclass
class ParsedTask:
    """A single task line parsed out of an LLM completion."""

    description: str
    type: TaskType
    assignee: str  # empty when the completion named nobody
    participant: str
    task_kind: str = "NEW TASK"  # NEW TASK, EXISTING TASK UPDATE, STATUS CHANGE, FUTURE PLAN
    ticket_id: str = NO_TICKET
    category: TaskCategory | None = None
    status: TaskStatus = TaskStatus.TODO
    estimated_time: float = 0.0
    time_spent: float = 0.0
    is_future_plan: bool = False
    work_type: WorkType = WorkType.TASK
    priority: Priority | None = None
    story_points: float | None = None
    project_code: str | None = None
    evidence: str = ""
    context: str = ""


@dataclass
class ExtractedTask:
    """Output of Stage 1. ``category`` is always derived from ``ticket_id``."""

    description: str
    assignee: str
    type: TaskType
    ticket_id: str = NO_TICKET
    work_type: WorkType = WorkType.TASK
    is_future_plan: bool = False
    estimated_time: float = 0.0
    time_spent: float = 0.0
    status: TaskStatus = TaskStatus.TODO
    priority: Priority | None = None
    story_points: float | None = None
    project_code: str | None = None
    evidence: str = ""
    context: str = ""
    speaker: str = ""  # participant header the task was listed under

    @property
    def category(self) -> TaskCategory:
        if self.ticket_id != NO_TICKET:
            return TaskCategory.UPDATE_TASK
        return TaskCategory.NEW_TASK


@dataclass(frozen=True)
class StatusChange:
    """A detected claim that a ticket moved to a new status."""

    task_id: str
    new_status: TaskStatus
    confidence: float
    evidence: str
    speaker: str = "Unknown"
    pattern_type: str = ""  # "completion", "in-progress" or "finder"
    old_status: str | None = None  # filled in once matched against the snapshot


@dataclass
class ExistingTask:
    """Read-only snapshot of a task as the store knows it."""

    ticket_id: str
    description: str
    status: TaskStatus | str = TaskStatus.TODO
    participant_name: str = ""
    title: str | None = None
    type: str = TaskType.NON_CODING.value
    estimated_time: float = 0.0
    time_taken: float = 0.0
    is_future_plan: bool = False

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> ExistingTask:
        """Build from a store row (snake_case or the legacy camelCase keys)."""
        return cls(
            ticket_id=str(record.get("ticket_id") or record.get("ticketId") or ""),
            description=str(record.get("description") or record.get("text") or ""),
            status=record.get("status") or TaskStatus.TODO,
            participant_name=str(
                record.get("participant_name") or record.get("participantName") or ""
            ),
            title=record.get("title"),
            type=record.get("type") or TaskType.NON_CODING.value,
            estimated_time=float(record.get("estimated_time") or record.get("estimatedTime") or 0),
            time_taken=float(record.get("time_taken") or record.get("timeTaken") or 0),
            is_future_plan=bool(record.get("is_future_plan") or record.get("isFuturePlan")),
        )


@dataclass
class AssigneeMatch:
    """Result of one assignee detection strategy."""

    assignee: str
    confidence: float
    method: AssigneeMethod
    original_mention: str | None = None
    alternative_candidates: list[str] = field(default_factory=list)


@dataclass
class NewTask:
    """Output of Stage 2: a task ready to be created."""

    title: str
    description: str
    assignee: str
    type: TaskType
    work_type: WorkType = WorkType.TASK
    is_future_plan: bool = False
    estimated_time: float = 0.0
    priority: Priority | None = None
    story_points: float | None = None
    project_code: str | None = None
    evidence: str = ""
    context: str = ""
    enriched: bool = False
    creation_confidence: float = 1.0
    creation_reason: str = ""


@dataclass
class TaskUpdate:
    """Output of Stage 3: an append-only description amendment."""

    ticket_id: str
    original_description: str
    new_information: str
    updated_description: str
    speaker: str = ""
    evidence: str = ""
    confidence: float = 0.7
    enriched: bool = False
    participant_name: str = ""
    type: str = TaskType.NON_CODING.value
    title: str | None = None
    time_taken: float | None = None  # new running total, when time was reported
    estimated_time: float | None = None  # only set when the task had no estimate


@dataclass
class UpdateOutcome:
    """Per-reference result from Stage 3 or from applying an instruction."""

    ticket_id: str
    success: bool
    reason: str = ""
    kind: str = "description"  # "description" or "status"
    old_status: str | None = None
    new_status: str | None = None


# ---------------------------------------------------------------------------
# Task instructions (reconciliation output)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CreateTask:
    """Instruction: create a new task from a description bundle."""

    task: NewTask


@dataclass(frozen=True)
class UpdateStatus:
    """Instruction: transition a ticket to a new status."""

    ticket_id: str
    new_status: TaskStatus
    old_status: str | None = None
    confidence: float = 0.0
    speaker: str = ""
    evidence: str = ""


@dataclass(frozen=True)
class UpdateDescription:
    """Instruction: replace a ticket's description with its amended version."""

    ticket_id: str
    description: str
    new_information: str = ""
    speaker: str = ""
    time_taken: float | None = None
    estimated_time: float | None = None


TaskInstruction = CreateTask | UpdateStatus | UpdateDescription
