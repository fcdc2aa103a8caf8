"""Stage 1: find every actionable task in a transcript with one LLM call."""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from src.detection.assignee import detect_assignee, find_best_participant_match
from src.detection.participants import known_participants, normalize_participant_name
from src.extraction.llm import LLMClient
from src.extraction.models import UNASSIGNED, ExistingTask, ExtractedTask, ParsedTask, TaskCategory
from src.extraction.response_parser import iter_parsed_tasks, parse_task_response
from src.ingestion.models import TranscriptEntry
from src.ingestion.parsers import extract_participants, format_transcript
from src.pipeline.errors import EmptyCompletionError
from src.pipeline_config import ProcessingContext

logger = logging.getLogger(__name__)

CANCELLATION_PATTERNS: list[re.Pattern[str]] = [
    re.compile(p, re.IGNORECASE)
    for p in [
        r"actually,?\s*let's not(?:\s+do\s+that)?",
        r"never\s*mind",
        r"scratch\s+that",
        r"forget\s+about\s+that",
        r"we\s+decided\s+not\s+to",
        r"on\s+second\s+thought",
        r"let's\s+hold\s+off\s+on\s+that",
        r"maybe\s+later",
        r"not\s+right\s+now",
        r"let's\s+table\s+that",
        r"actually,?\s*don't",
        r"changed\s+my\s+mind",
        r"let's\s+skip\s+that",
    ]
]

SYSTEM_PROMPT = (
    "You are a Scrum task finder. Your job is to surface actionable work items "
    "from meeting transcripts, grounded strictly in what was said.\n\n"
    "- Be analytical and evidence-oriented; never speculate.\n"
    "- Keep output structured and traceable to quotes in the transcript.\n"
    "- Do not prioritise, advise, or coach."
)

OUTPUT_FORMAT = """\
**OUTPUT FORMAT** (follow exactly, one section per person):
<Name>'s Tasks:
1. <complete task description> (Coding|Non-Coding) [TYPE: NEW TASK|EXISTING TASK UPDATE|STATUS CHANGE|FUTURE PLAN] [CATEGORY: NEW_TASK|UPDATE_TASK] [TASK_ID: <ticket id> or NONE] [WORK_TYPE: Task|Bug] [ESTIMATED: <duration>] [TIME SPENT: <duration>] [STATUS: To-do|In-progress|Completed] [IS_FUTURE_PLAN: true|false] [ASSIGNEE: <name or TBD>] [PRIORITY: Highest|High|Medium|Low|Lowest] [STORY_POINTS: <n>] [EVIDENCE: <verbatim quote>]

Future plans without a named owner go under "TBD's Tasks:".
If there are no tasks at all, reply with exactly: NO TASKS IDENTIFIED"""

RULES = """\
**RULES**:
1. Only create a NEW_TASK when someone explicitly asks for one ("new task", "create a task for Sarah", "this will be a task for me") or explicitly calls something a future plan.
2. Any mention of a ticket ID (SP-12, TDS-204, "sp 25") makes the item an UPDATE_TASK for that ticket, with TASK_ID set to the ID.
3. Gather every mention of the same work item across the whole transcript into one complete description.
4. Assignment: "for me" / "I will" / "my task" is the speaker; "for <Name>" or "<Name> will" is that person, even if they are not in the meeting. Use TBD only for future plans with no named owner.
5. Status must be exactly To-do, In-progress or Completed.
6. Durations: "will take 5 hours" is ESTIMATED, "spent 3 hours" is TIME SPENT.
7. If a task is mentioned and later cancelled ("never mind", "scratch that", "let's table that"), leave it out.
8. Use the exact participant names listed below when assigning."""


@dataclass
class FinderResult:
    """Output of Stage 1."""

    found_tasks: list[ExtractedTask]
    attendees: str
    participants: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    raw_completion: str = ""

    @property
    def tasks_to_create(self) -> list[ExtractedTask]:
        return [t for t in self.found_tasks if t.category is TaskCategory.NEW_TASK]

    @property
    def tasks_to_update(self) -> list[ExtractedTask]:
        return [t for t in self.found_tasks if t.category is TaskCategory.UPDATE_TASK]


def build_existing_tasks_context(existing_tasks: Sequence[ExistingTask], limit: int = 20) -> str:
    """One line per recent task: ``- SP-12: description (status, assigned to name)``."""
    if not existing_tasks:
        return "**EXISTING TASKS**: none in the system."

    lines = [
        f"- {task.ticket_id}: {task.description} ({task.status}, assigned to {task.participant_name})"
        for task in list(existing_tasks)[:limit]
    ]
    return "**EXISTING TASKS** (most recent first):\n" + "\n".join(lines)


def build_system_prompt(context: ProcessingContext) -> str:
    if not context.is_multi_transcript:
        return SYSTEM_PROMPT
    return (
        f"{SYSTEM_PROMPT}\n\n"
        f"This is transcript {context.transcript_index} of {context.total_transcripts}. "
        "Extract tasks from THIS meeting only."
    )


def build_user_prompt(
    transcript_text: str,
    existing_context: str,
    participants: Sequence[str],
) -> str:
    team = ", ".join(known_participants())
    people = ", ".join(participants) if participants else "unknown"
    return (
        "Extract every actionable work item from this meeting transcript.\n\n"
        f"{existing_context}\n\n"
        f"{RULES}\n\n"
        f"{OUTPUT_FORMAT}\n\n"
        f"**PARTICIPANTS IN THIS MEETING**: {people}\n"
        f"**TEAM MEMBERS**: {team}\n\n"
        f"**MEETING TRANSCRIPT**:\n{transcript_text}"
    )


def detect_cancellations(transcript_text: str) -> list[str]:
    """Return the cancellation phrases found in the transcript."""
    return [m.group(0) for p in CANCELLATION_PATTERNS if (m := p.search(transcript_text))]


def resolve_assignee(task: ParsedTask, participants: Sequence[str]) -> str:
    """Pick the final assignee for a parsed task.

    A stated name is fuzzy-matched against the meeting's participants and
    kept as-is (canonicalised) when nobody matches, since tasks can be
    assigned to people who were absent. Without a stated name the assignee
    cascade runs over the description with the section owner as speaker.
    """
    raw = re.sub(r"\s*\([^)]*\)\s*", " ", task.assignee or "").strip()

    if raw == UNASSIGNED:
        return UNASSIGNED

    if raw and raw.lower() != "unknown":
        if participants:
            match = find_best_participant_match(raw, participants)
            if match.confidence > 0.7 and match.participant:
                return match.participant
        return normalize_participant_name(raw) or raw

    speaker = task.participant if task.participant != UNASSIGNED else None
    return detect_assignee(task.description, speaker, participants).assignee


def to_extracted_task(task: ParsedTask, participants: Sequence[str]) -> ExtractedTask:
    assignee = resolve_assignee(task, participants)
    extracted = ExtractedTask(
        description=task.description,
        assignee=assignee,
        type=task.type,
        ticket_id=task.ticket_id,
        work_type=task.work_type,
        estimated_time=task.estimated_time,
        time_spent=task.time_spent,
        status=task.status,
        priority=task.priority,
        story_points=task.story_points,
        project_code=task.project_code,
        evidence=task.evidence,
        context=task.context,
        speaker=task.participant,
        is_future_plan=task.is_future_plan or assignee == UNASSIGNED,
    )

    if task.category is not None and task.category != extracted.category:
        logger.debug(
            "Overriding model category %s for %r (ticket %s)",
            task.category,
            task.description[:60],
            task.ticket_id,
        )
    return extracted


def find_tasks(
    entries: Sequence[TranscriptEntry],
    existing_tasks: Sequence[ExistingTask],
    llm: LLMClient,
    context: ProcessingContext | None = None,
    context_limit: int = 20,
) -> FinderResult:
    """Run Stage 1 over one transcript.

    Args:
        entries: Transcript entries in order.
        existing_tasks: Snapshot of active tasks, newest first.
        llm: Completion collaborator; called exactly once.
        context: Position of this transcript in a batch.
        context_limit: How many existing tasks to show the model.

    Returns:
        The classified tasks. ``category`` is always derived from ``ticket_id``.

    Raises:
        EmptyCompletionError: If the model returned no text.
    """
    context = context or ProcessingContext()
    participants = extract_participants(list(entries))
    transcript_text = format_transcript(list(entries))

    logger.info(
        "Stage 1 starting for transcript %d/%d: %d entries, %d participants",
        context.transcript_index,
        context.total_transcripts,
        len(entries),
        len(participants),
    )

    if not transcript_text:
        logger.info("Transcript %d has no spoken text; nothing to find", context.transcript_index)
        return FinderResult(found_tasks=[], attendees="", participants=participants)

    user_prompt = build_user_prompt(
        transcript_text,
        build_existing_tasks_context(existing_tasks, context_limit),
        participants,
    )
    completion = llm.complete(build_system_prompt(context), user_prompt)
    if not completion or not completion.strip():
        raise EmptyCompletionError("Task finder received an empty completion")

    parsed = iter_parsed_tasks(parse_task_response(completion))
    found = [to_extracted_task(task, participants) for task in parsed]

    cancellations = detect_cancellations(transcript_text)
    if cancellations:
        logger.info(
            "Cancellation phrases in transcript %d: %s",
            context.transcript_index,
            ", ".join(cancellations),
        )

    result = FinderResult(
        found_tasks=found,
        attendees=", ".join(participants),
        participants=participants,
        raw_completion=completion,
    )
    result.metadata = {
        "total_tasks": len(found),
        "tasks_to_create": len(result.tasks_to_create),
        "tasks_to_update": len(result.tasks_to_update),
        "cancellation_phrases": cancellations,
        "transcript_index": context.transcript_index,
    }

    logger.info(
        "Stage 1 complete for transcript %d: %d tasks (%d new, %d updates)",
        context.transcript_index,
        len(found),
        len(result.tasks_to_create),
        len(result.tasks_to_update),
    )
    return result
