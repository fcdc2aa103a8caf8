"""Status-change detection: "SP-25 is complete", "started TDS-204", ...

Patterns are split into a completion family and an in-progress family. Each
pattern carries a fixed confidence; the more specific phrasings score 0.9 and
the looser ``SP-25 - completed`` style scores 0.8.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from src.detection.ticket_ids import TICKET_REF, normalize_ticket_id
from src.extraction.models import StatusChange, TaskStatus
from src.ingestion.models import TranscriptEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusPattern:
    pattern: re.Pattern[str]
    status: TaskStatus
    confidence: float


def _p(source: str) -> re.Pattern[str]:
    return re.compile(source.replace("REF", TICKET_REF), re.IGNORECASE)


COMPLETION_PATTERNS: list[StatusPattern] = [
    # "SP-25 is completed", "TDS-204 has been done"
    StatusPattern(
        _p(
            r"(REF)\s+(?:is|was|has\s+been)\s+(?:now\s+|definitely\s+)?"
            r"(?:completed?|done|finished|resolved)\b"
        ),
        TaskStatus.COMPLETED,
        0.9,
    ),
    # "completed SP-25", "done with TDS-204"
    StatusPattern(
        _p(r"\b(?:completed?|finished|done\s+with)\s+(REF)"),
        TaskStatus.COMPLETED,
        0.9,
    ),
    # "SP-25 - completed", "TDS-204 done" (but not "SP-25 done by Friday")
    StatusPattern(
        _p(r"(REF)(?:\s*[-:]\s*|\s+)(?:completed?|finished|done)\b(?!\s+(?:by|in|within|about)\b)"),
        TaskStatus.COMPLETED,
        0.8,
    ),
    # "I completed SP-25", "I have finished working on TDS-204"
    StatusPattern(
        _p(
            r"\b(?:i\s+)?(?:have\s+)?(?:completed?|finished|done)\s+"
            r"(?:working\s+on\s+)?(REF)"
        ),
        TaskStatus.COMPLETED,
        0.9,
    ),
]

IN_PROGRESS_PATTERNS: list[StatusPattern] = [
    # "SP-25 is in progress", "TDS-204 underway"
    StatusPattern(
        _p(r"(REF)\s+(?:is|was)?\s*(?:in\s+progress|started|begun|underway|ongoing)\b"),
        TaskStatus.IN_PROGRESS,
        0.9,
    ),
    # "started SP-25", "began working on TDS-204"
    StatusPattern(
        _p(r"\b(?:started|began|begun)\s+(?:working\s+on\s+)?(REF)"),
        TaskStatus.IN_PROGRESS,
        0.9,
    ),
    # "working on SP-25"
    StatusPattern(
        _p(r"\b(?:working\s+on|currently\s+on)\s+(REF)"),
        TaskStatus.IN_PROGRESS,
        0.8,
    ),
    # "SP-25 - started"
    StatusPattern(
        _p(r"(REF)(?:\s*[-:]\s*|\s+)(?:started|begun|in\s+progress)\b"),
        TaskStatus.IN_PROGRESS,
        0.8,
    ),
]

_COMPLETION_WORDS = [
    "completed", "complete", "finished", "done", "resolved",
    "closed", "finalized", "delivered", "deployed",
]
_IN_PROGRESS_WORDS = [
    "started", "begun", "beginning", "working", "in progress",
    "ongoing", "underway", "currently", "developing",
]
_TODO_WORDS = ["pending", "todo", "to-do", "planned", "scheduled", "will start"]


def _scan(
    text: str, speaker: str, patterns: list[StatusPattern], pattern_type: str
) -> list[StatusChange]:
    found: list[StatusChange] = []
    for info in patterns:
        for match in info.pattern.finditer(text):
            task_id = normalize_ticket_id(match.group(1))
            if not task_id:
                continue
            found.append(
                StatusChange(
                    task_id=task_id,
                    new_status=info.status,
                    confidence=info.confidence,
                    evidence=match.group(0),
                    speaker=speaker or "Unknown",
                    pattern_type=pattern_type,
                )
            )
    return found


def dedupe_by_task(changes: list[StatusChange]) -> list[StatusChange]:
    """Keep one change per task ID: the highest confidence, first one on ties."""
    best: dict[str, StatusChange] = {}
    for change in changes:
        current = best.get(change.task_id)
        if current is None or change.confidence > current.confidence:
            best[change.task_id] = change
    return list(best.values())


def detect_status_changes(text: str, speaker: str = "Unknown") -> list[StatusChange]:
    """Detect status changes in one utterance.

    Completion claims win over in-progress claims for the same ticket, and
    at most one change survives per ticket. Never raises.
    """
    try:
        if not text:
            return []

        completions = _scan(text, speaker, COMPLETION_PATTERNS, "completion")
        completed_ids = {c.task_id for c in completions}
        in_progress = [
            c
            for c in _scan(text, speaker, IN_PROGRESS_PATTERNS, "in-progress")
            if c.task_id not in completed_ids
        ]

        changes = dedupe_by_task(completions + in_progress)
        if changes:
            logger.info(
                "Detected %d status change(s) from %s: %s",
                len(changes),
                speaker,
                ", ".join(f"{c.task_id}: {c.new_status}" for c in changes),
            )
        return changes
    except Exception:
        logger.exception("Status change detection failed for speaker %s", speaker)
        return []


def detect_status_changes_from_transcript(entries: list[TranscriptEntry]) -> list[StatusChange]:
    """Run :func:`detect_status_changes` over every entry, in transcript order.

    The same ticket may appear once per utterance; cross-speaker conflicts are
    left for reconciliation.
    """
    changes: list[StatusChange] = []
    for entry in entries:
        text = entry.clean_text
        if not text:
            continue
        changes.extend(detect_status_changes(text, entry.speaker or "Unknown"))
    return changes


def filter_by_confidence(changes: list[StatusChange], threshold: float = 0.7) -> list[StatusChange]:
    return [c for c in changes if c.confidence >= threshold]


@dataclass
class ExplicitStatus:
    """Status implied by keywords alone, without a ticket reference."""

    status: TaskStatus | None
    confidence: float = 0.0
    evidence: list[str] = field(default_factory=list)


def detect_explicit_status(text: str) -> ExplicitStatus:
    """Infer a status from completion / in-progress / to-do keywords."""
    lower = (text or "").lower()

    families = [
        (_COMPLETION_WORDS, TaskStatus.COMPLETED, 0.8),
        (_IN_PROGRESS_WORDS, TaskStatus.IN_PROGRESS, 0.7),
        (_TODO_WORDS, TaskStatus.TODO, 0.6),
    ]
    for words, status, confidence in families:
        hits = [w for w in words if w in lower]
        if hits:
            return ExplicitStatus(status=status, confidence=confidence, evidence=hits)

    return ExplicitStatus(status=None)


def summarize_status_changes(changes: list[StatusChange]) -> dict[str, object]:
    """Counts by status and confidence band, for logging."""
    by_status = {status.value: 0 for status in TaskStatus}
    by_confidence = {"high": 0, "medium": 0, "low": 0}

    for change in changes:
        by_status[change.new_status.value] += 1
        if change.confidence >= 0.8:
            by_confidence["high"] += 1
        elif change.confidence >= 0.6:
            by_confidence["medium"] += 1
        else:
            by_confidence["low"] += 1

    return {
        "total": len(changes),
        "by_status": by_status,
        "by_confidence": by_confidence,
        "unique_task_count": len({c.task_id for c in changes}),
    }
