"""Assignee detection from a task description.

Each strategy is a plain function ``(text, speaker, candidates) -> AssigneeMatch | None``.
:func:`detect_assignee` walks them in order and returns the first result whose
confidence clears that strategy's threshold, falling back to the speaker (or
``"TBD"``) when nothing does.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from src.detection.participants import known_participants, normalize_participant_name
from src.extraction.models import UNASSIGNED, AssigneeMatch, AssigneeMethod

logger = logging.getLogger(__name__)

Strategy = Callable[[str, str | None, Sequence[str]], AssigneeMatch | None]


@dataclass(frozen=True)
class ParticipantMatch:
    participant: str | None
    confidence: float
    alternatives: list[str]


_NO_MATCH = ParticipantMatch(participant=None, confidence=0.0, alternatives=[])

# Capitalised words that commonly follow "for" but are never people.
_NOT_NAMES = {
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    "january", "february", "march", "april", "may", "june", "july", "august",
    "september", "october", "november", "december", "today", "tomorrow",
    "the", "this", "that", "next", "now", "everyone", "all", "us", "them",
    "i", "we", "you", "he", "she", "they", "it", "q1", "q2", "q3", "q4",
}

_SELF_PATTERNS = [
    re.compile(r"\b(?:for me|my task|i will|i'll|i need to|i have to|i should)\b", re.I),
    re.compile(r"\b(?:i'm going to|i am going to|i plan to|i'm planning to)\b", re.I),
    re.compile(r"\b(?:assigned to me|my responsibility|my job)\b", re.I),
    re.compile(r"\b(?:new task for me|task for me)\b", re.I),
]

_EXPLICIT_PATTERNS = [
    re.compile(r"\b(?:assign(?:ed)?\s+to|task\s+for|for)\s+([A-Za-z]+(?:\s+[A-Z][a-z]+)?)"),
    re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)?)\s+(?:will|should|needs?\s+to|has\s+to)\s+"),
]

# "who isn't here today", "is out sick", "on leave"
_ABSENCE_RE = re.compile(
    r"^\W*(?:who|since\s+they)?\s*(?:(?:is|was|are)\s*(?:n['’]t|not)|['’]s\s+not)\s+"
    r"(?:here|present|in|around|on\s+(?:the\s+)?call)\b"
    r"|^\W*(?:who\s+)?(?:is|was)\s+(?:absent|away|off|out|on\s+leave)\b",
    re.I,
)

_CAPITALISED_NAME_RE = re.compile(r"\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+)*)\b")
_NAME_BEFORE_VERB_RE = re.compile(r"\b([A-Za-z]+)\s+(?:will|should|needs|has\s+to)\b", re.I)


def string_similarity(a: str, b: str) -> float:
    """``1 - levenshtein(a, b) / max(len(a), len(b))``."""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current

    return 1 - previous[-1] / max(len(a), len(b))


def find_best_participant_match(mention: str | None, participants: Sequence[str]) -> ParticipantMatch:
    """Fuzzy-match *mention* against *participants*.

    Both sides are canonicalised first. Confidence tiers, best first: exact
    1.0, first+last name 0.9, first-name exact 0.85, containment 0.8,
    first-name similarity 0.75, last name 0.6, overall similarity 0.4.
    Containment needs at least three characters.
    """
    if not mention or not participants:
        return _NO_MATCH

    lower_mention = (normalize_participant_name(mention) or "").lower().strip()
    if not lower_mention:
        return _NO_MATCH

    best = _NO_MATCH
    for participant in participants:
        if not participant:
            continue
        canonical = normalize_participant_name(participant) or participant
        lower = canonical.lower()
        parts = lower.split()
        first, last = parts[0], parts[-1]

        if lower_mention == lower:
            confidence = 1.0
        elif len(parts) > 1 and first in lower_mention and last in lower_mention:
            confidence = 0.9
        elif lower_mention == first:
            confidence = 0.85
        elif lower_mention in lower or lower in lower_mention:
            confidence = 0.8 if len(lower_mention) >= 3 else 0.0
        elif string_similarity(lower_mention, first) > 0.8:
            confidence = 0.75
        elif len(parts) > 1 and (lower_mention == last or last in lower_mention):
            confidence = 0.6
        elif string_similarity(lower_mention, lower) > 0.7:
            confidence = 0.4
        else:
            confidence = 0.0

        if confidence > best.confidence:
            best = ParticipantMatch(
                participant=canonical,
                confidence=confidence,
                alternatives=[p for p in participants if p != participant][:3],
            )

    return best


def _looks_like_name(mention: str) -> bool:
    words = mention.split()
    return bool(words) and all(w[0].isupper() and w.lower() not in _NOT_NAMES for w in words)


def _in_directory(mention: str) -> bool:
    canonical = (normalize_participant_name(mention) or mention).lower()
    return any(name.lower() == canonical for name in known_participants())


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


def self_assignment(text: str, speaker: str | None, participants: Sequence[str]) -> AssigneeMatch | None:
    """ "for me", "I will", "my task" -> the speaker."""
    for pattern in _SELF_PATTERNS:
        match = pattern.search(text)
        if match:
            return AssigneeMatch(
                assignee=normalize_participant_name(speaker) or UNASSIGNED,
                confidence=0.9,
                method=AssigneeMethod.SPEAKER_INFERENCE,
                original_mention=match.group(0),
            )
    return None


def explicit_mention(text: str, speaker: str | None, participants: Sequence[str]) -> AssigneeMatch | None:
    """ "for Doug", "assigned to Shafkat", "Sarah will ..."

    A participant match scores 0.8. A capitalised name that is not in the
    meeting is taken at 0.75 only when the directory knows it or the text
    says the person is absent, so "slides for Acme Corp" names nobody.
    """
    for pattern in _EXPLICIT_PATTERNS:
        for match in pattern.finditer(text):
            mention = match.group(1).strip()
            if mention.lower() in _NOT_NAMES:
                continue

            found = find_best_participant_match(mention, participants)
            if found.confidence > 0.7 and found.participant:
                return AssigneeMatch(
                    assignee=found.participant,
                    confidence=0.8,
                    method=AssigneeMethod.EXPLICIT_MENTION,
                    original_mention=mention,
                    alternative_candidates=found.alternatives,
                )

            if _looks_like_name(mention) and (
                _in_directory(mention) or _ABSENCE_RE.search(text[match.end() :])
            ):
                return AssigneeMatch(
                    assignee=normalize_participant_name(mention) or mention,
                    confidence=0.75,
                    method=AssigneeMethod.EXPLICIT_MENTION,
                    original_mention=mention,
                )
    return None


def database_match(text: str, speaker: str | None, participants: Sequence[str]) -> AssigneeMatch | None:
    """Any capitalised name in the text that matches a known participant."""
    if not participants:
        return None

    mentions = [m.group(1) for m in _CAPITALISED_NAME_RE.finditer(text)]
    mentions += [m.group(1) for m in _NAME_BEFORE_VERB_RE.finditer(text)]

    best = _NO_MATCH
    for mention in mentions:
        found = find_best_participant_match(mention, participants)
        if found.confidence > best.confidence:
            best = found

    if best.participant is None:
        return None
    return AssigneeMatch(
        assignee=best.participant,
        confidence=best.confidence,
        method=AssigneeMethod.DATABASE_MATCH,
        original_mention=", ".join(mentions),
        alternative_candidates=best.alternatives,
    )


def name_mapping(text: str, speaker: str | None, participants: Sequence[str]) -> AssigneeMatch | None:
    """Names from the static directory: full name 0.8, first name 0.6."""
    lower = text.lower()
    directory = known_participants()
    for name in directory:
        full = name.lower()
        if full in lower:
            return AssigneeMatch(
                assignee=normalize_participant_name(name) or name,
                confidence=0.8,
                method=AssigneeMethod.NAME_MAPPING,
                original_mention=name,
            )
        first = full.split()[0]
        if len(first) > 2 and re.search(rf"\b{re.escape(first)}\b", lower):
            return AssigneeMatch(
                assignee=normalize_participant_name(name) or name,
                confidence=0.6,
                method=AssigneeMethod.NAME_MAPPING,
                original_mention=first,
                alternative_candidates=[n for n in directory if n != name],
            )
    return None


def default_assignment(speaker: str | None) -> AssigneeMatch:
    if speaker and speaker.strip() and speaker != "Unknown":
        return AssigneeMatch(
            assignee=normalize_participant_name(speaker) or speaker,
            confidence=0.3,
            method=AssigneeMethod.DEFAULT_ASSIGNMENT,
        )
    return AssigneeMatch(assignee=UNASSIGNED, confidence=0.1, method=AssigneeMethod.DEFAULT_ASSIGNMENT)


# (strategy, confidence it must exceed)
DEFAULT_STRATEGIES: list[tuple[Strategy, float]] = [
    (self_assignment, 0.8),
    (explicit_mention, 0.7),
    (database_match, 0.6),
    (name_mapping, 0.5),
]


def first_confident_match(
    strategies: Sequence[tuple[Strategy, float]],
    text: str,
    speaker: str | None,
    participants: Sequence[str],
) -> AssigneeMatch | None:
    """Return the first strategy result whose confidence exceeds its threshold."""
    for strategy, threshold in strategies:
        result = strategy(text, speaker, participants)
        if result is not None and result.confidence > threshold:
            return result
    return None


def detect_assignee(
    description: str,
    speaker: str | None,
    known_participants: Sequence[str] = (),
    strategies: Sequence[tuple[Strategy, float]] = DEFAULT_STRATEGIES,
) -> AssigneeMatch:
    """Work out who a task belongs to."""
    result = first_confident_match(strategies, description or "", speaker, known_participants)
    if result is None:
        result = default_assignment(speaker)

    logger.debug(
        "Assignee for %r: %s (%.2f, %s)",
        (description or "")[:60],
        result.assignee,
        result.confidence,
        result.method,
    )
    return result
