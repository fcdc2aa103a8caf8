"""Parse the task finder's plain-text completion into typed task records.

The completion is grouped by participant::

    Doug's Tasks:
    1. Refactor the login validation (Coding) [TYPE: NEW TASK] [TASK_ID: NONE] [ASSIGNEE: Doug]

Everything after the ``(Coding|Non-Coding)`` marker is a run of optional
``[KEY: value]`` tags. Missing tags fall back to defaults, and lines that do
not fit the grammar are skipped. Parsing never raises.
"""

from __future__ import annotations

import logging
import re

from src.detection.status_changes import detect_explicit_status
from src.detection.ticket_ids import normalize_ticket_id
from src.extraction.models import (
    NO_TICKET,
    UNASSIGNED,
    ParsedTask,
    Priority,
    TaskCategory,
    TaskStatus,
    TaskType,
    WorkType,
)

logger = logging.getLogger(__name__)

ParsedResponse = dict[str, dict[TaskType, list[ParsedTask]]]

NO_TASKS_MARKER = "NO TASKS IDENTIFIED"

_HEADER_RE = re.compile(r"^(.+?)(?:'s)?\s+Tasks:$", re.IGNORECASE)
_TASK_LINE_RE = re.compile(r"^\d+\.\s*(.+?)\s*\((Coding|Non-Coding)\)(.*)$", re.IGNORECASE)
_TAG_RE = re.compile(r"\[([A-Z_ ]+):\s*([^\]]*)\]", re.IGNORECASE)

_PLACEHOLDER_HEADERS = ("[", "Participant Name", "Next Participant", "Another Participant")
_PLACEHOLDER_DESCRIPTIONS = ("[Task description]", "[COMPLETE task description]", "Actual task mentioned")

FUTURE_PLAN_RE = re.compile(
    r"future plan|future enhancement|future consideration|roadmap|\bQ\d\b|\blater\b|planned for"
    r"|for the future|something for later|future initiative|down the line|eventually",
    re.IGNORECASE,
)

_WORD_NUMBERS = {
    "zero": 0, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
    "eleven": 11, "twelve": 12, "thirteen": 13, "fourteen": 14, "fifteen": 15,
    "sixteen": 16, "seventeen": 17, "eighteen": 18, "nineteen": 19, "twenty": 20,
    "a": 1, "an": 1, "couple": 2, "few": 3, "several": 4,
}
_WORD_TIME_RE = re.compile(
    r"\b(" + "|".join(_WORD_NUMBERS) + r")\s+(?:of\s+)?(hours?|hrs?|days?)\b"
)

_PRIORITY_ALIASES = {
    "highest": Priority.HIGHEST,
    "critical": Priority.HIGHEST,
    "blocker": Priority.HIGHEST,
    "urgent": Priority.HIGHEST,
    "high": Priority.HIGH,
    "important": Priority.HIGH,
    "medium": Priority.MEDIUM,
    "normal": Priority.MEDIUM,
    "standard": Priority.MEDIUM,
    "moderate": Priority.MEDIUM,
    "low": Priority.LOW,
    "minor": Priority.LOW,
    "lowest": Priority.LOWEST,
    "trivial": Priority.LOWEST,
}

HOURS_PER_DAY = 8


def parse_time_to_hours(value: str | None) -> float:
    """Convert a spoken duration to hours. Unparseable input gives 0.

    >>> parse_time_to_hours("2 days")
    16.0
    >>> parse_time_to_hours("a couple hours")
    2.0
    """
    if not value or not isinstance(value, str):
        return 0.0

    text = value.lower().strip()

    if "half day" in text or "half-day" in text or "half a day" in text:
        return 4.0
    if "full day" in text or "whole day" in text:
        return 8.0

    hours = re.search(r"(\d+(?:\.\d+)?)\s*(?:hour|hr)s?", text)
    if hours:
        return float(hours.group(1))

    days = re.search(r"(\d+(?:\.\d+)?)\s*days?", text)
    if days:
        return float(days.group(1)) * HOURS_PER_DAY

    words = _WORD_TIME_RE.search(text)
    if words:
        number = float(_WORD_NUMBERS[words.group(1)])
        return number * HOURS_PER_DAY if words.group(2).startswith("day") else number

    if "morning" in text or "afternoon" in text:
        return 4.0

    bare = re.search(r"(\d+(?:\.\d+)?)", text)
    if bare:
        number = float(bare.group(1))
        return number * HOURS_PER_DAY if "day" in text else number

    return 0.0


def normalize_priority(value: str | None) -> Priority | None:
    """Map free-form priority wording to a tracker priority, or None."""
    if not value:
        return None
    return _PRIORITY_ALIASES.get(value.strip().lower())


def infer_future_plan(task_kind: str, participant: str, assignee: str, description: str) -> bool:
    """Fallback when the completion carries no ``IS_FUTURE_PLAN`` tag."""
    if "FUTURE PLAN" in (task_kind or "").upper():
        return True
    if participant == UNASSIGNED or assignee == UNASSIGNED:
        return True
    return bool(FUTURE_PLAN_RE.search(description or ""))


def generate_task_title(description: str | None) -> str:
    """Short tracker title from a task description."""
    if not description or not description.strip():
        return "Untitled Task"

    if len(description) <= 50:
        return description.strip()

    title = description.strip()
    sentences = re.split(r"[.!?]", title)
    if len(sentences) > 1 and sentences[0]:
        title = sentences[0]

    if len(title) > 50:
        words: list[str] = []
        for word in title.split(" "):
            words.append(word)
            if len(words) >= 5 or len(" ".join(words)) > 40:
                break
        title = " ".join(words)

    title = re.sub(r"['\"]", "", title)
    title = re.sub(r"^Title:\s*", "", title, flags=re.IGNORECASE)
    title = re.sub(r"\.$", "", title).strip()

    if len(title) > 60:
        title = title[:57] + "..."

    if len(title) < 3:
        title = " ".join(w for w in description.split() if len(w) > 2)
        title = " ".join(title.split()[:3])

    return title or "Untitled Task"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "yes", "1")


def _parse_float(value: str) -> float | None:
    match = re.search(r"\d+(?:\.\d+)?", value)
    return float(match.group(0)) if match else None


def _parse_status(value: str | None) -> TaskStatus:
    if value:
        cleaned = value.strip()
        for status in TaskStatus:
            if cleaned.lower() == status.value.lower():
                return status
        explicit = detect_explicit_status(cleaned)
        if explicit.status is not None:
            return explicit.status
    return TaskStatus.TODO


def _read_tags(tail: str) -> dict[str, str]:
    """Collect ``[KEY: value]`` tags; the first occurrence of a key wins."""
    tags: dict[str, str] = {}
    for match in _TAG_RE.finditer(tail):
        key = re.sub(r"[\s_]+", "_", match.group(1).strip().upper())
        tags.setdefault(key, match.group(2).strip())
    return tags


def _parse_task_line(line: str, participant: str) -> ParsedTask | None:
    match = _TASK_LINE_RE.match(line)
    if not match:
        return None

    description = match.group(1).strip()
    if len(description) < 5 or any(p in description for p in _PLACEHOLDER_DESCRIPTIONS):
        return None

    task_type = TaskType.CODING if match.group(2).lower() == "coding" else TaskType.NON_CODING
    tags = _read_tags(match.group(3) or "")

    task_kind = tags.get("TYPE", "NEW TASK") or "NEW TASK"
    assignee = tags.get("ASSIGNEE", "").strip()

    ticket_id = NO_TICKET
    raw_ticket = tags.get("TASK_ID") or tags.get("TICKET_ID")
    if raw_ticket and raw_ticket.upper() != NO_TICKET:
        ticket_id = normalize_ticket_id(raw_ticket) or NO_TICKET

    if "IS_FUTURE_PLAN" in tags:
        is_future_plan = _parse_bool(tags["IS_FUTURE_PLAN"])
    else:
        is_future_plan = infer_future_plan(task_kind, participant, assignee, description)

    category = None
    raw_category = (tags.get("CATEGORY") or "").upper()
    if "UPDATE" in raw_category:
        category = TaskCategory.UPDATE_TASK
    elif "NEW" in raw_category:
        category = TaskCategory.NEW_TASK

    work_type = WorkType.BUG if (tags.get("WORK_TYPE") or "").strip().lower() == "bug" else WorkType.TASK

    return ParsedTask(
        description=description,
        type=task_type,
        assignee=assignee,
        participant=participant,
        task_kind=task_kind,
        ticket_id=ticket_id,
        category=category,
        status=_parse_status(tags.get("STATUS")),
        estimated_time=parse_time_to_hours(tags.get("ESTIMATED")),
        time_spent=parse_time_to_hours(tags.get("TIME_SPENT")),
        is_future_plan=is_future_plan,
        work_type=work_type,
        priority=normalize_priority(tags.get("PRIORITY")),
        story_points=_parse_float(tags.get("STORY_POINTS", "")),
        project_code=tags.get("PROJECT") or None,
        evidence=tags.get("EVIDENCE", ""),
        context=tags.get("CONTEXT", ""),
    )


def parse_task_response(completion: str | None) -> ParsedResponse:
    """Parse a completion into ``{participant: {Coding: [...], Non-Coding: [...]}}``.

    Participants that end up with no tasks are dropped. Returns an empty map
    for empty, unstructured or "NO TASKS IDENTIFIED" completions.
    """
    result: ParsedResponse = {}
    if not completion or not completion.strip():
        return result
    if NO_TASKS_MARKER in completion.upper():
        return result

    participant: str | None = None
    for raw_line in completion.splitlines():
        line = raw_line.strip()
        if not line:
            continue

        header = _HEADER_RE.match(line)
        if header:
            name = header.group(1).strip().strip("*#").strip()
            if not name or any(p in name for p in _PLACEHOLDER_HEADERS):
                participant = None
                continue
            participant = name
            result.setdefault(participant, {TaskType.CODING: [], TaskType.NON_CODING: []})
            continue

        if participant is None:
            continue

        try:
            task = _parse_task_line(line, participant)
        except (ValueError, KeyError):
            logger.exception("Skipping unparseable task line: %r", line[:120])
            continue
        if task is not None:
            result[participant][task.type].append(task)

    return {name: buckets for name, buckets in result.items() if any(buckets.values())}


def iter_parsed_tasks(parsed: ParsedResponse) -> list[ParsedTask]:
    """Flatten a parsed response in participant then Coding/Non-Coding order."""
    return [
        task
        for buckets in parsed.values()
        for task_type in (TaskType.CODING, TaskType.NON_CODING)
        for task in buckets.get(task_type, [])
    ]
