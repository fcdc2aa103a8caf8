"""Ticket-ID normalization and free-text ticket reference detection.

Two ID families are recognised:

- legacy internal IDs ``SP-<digits>`` (also spoken as ``sp25`` or ``SP 25``)
- tracker IDs ``<2+ letters>-<digits>`` such as ``TDS-204``

The canonical form is uppercase with a single hyphen and no whitespace.
Every equality comparison between two ticket references must go through
:func:`normalize_ticket_id` first.
"""

from __future__ import annotations

import re

_LEGACY_RE = re.compile(r"^SP-?(\d+)$")
_TRACKER_RE = re.compile(r"^([A-Z]{2,})-?(\d+)$")

# Ticket reference inside free text. Legacy IDs tolerate a space or no
# separator; tracker keys need the hyphen so ordinary words followed by a
# number ("in 2", "at 5") are not mistaken for tickets.
TICKET_REF = r"(?:\bsp[-\s]?\d+|\b[a-z]{2,}-\d+)\b"
TICKET_REF_RE = re.compile(TICKET_REF, re.IGNORECASE)


def normalize_ticket_id(raw: str | None) -> str | None:
    """Return the canonical ``KEY-NNN`` form of *raw*, or None if invalid."""
    if not raw:
        return None

    cleaned = re.sub(r"\s+", "", str(raw)).upper()

    legacy = _LEGACY_RE.match(cleaned)
    if legacy:
        return f"SP-{legacy.group(1)}"

    tracker = _TRACKER_RE.match(cleaned)
    if tracker:
        return f"{tracker.group(1)}-{tracker.group(2)}"

    return None


def display_ticket_id(raw: str | None) -> str:
    """Human-facing form: canonical when valid, otherwise the stripped input."""
    normalized = normalize_ticket_id(raw)
    if normalized:
        return normalized
    return (raw or "").strip()


def same_ticket(a: str | None, b: str | None) -> bool:
    """True when both references normalize to the same ticket."""
    left = normalize_ticket_id(a)
    return left is not None and left == normalize_ticket_id(b)


def find_ticket_ids(text: str | None) -> list[str]:
    """Return every valid ticket ID mentioned in *text*, normalized and de-duplicated."""
    if not text:
        return []
    found: dict[str, None] = {}
    for match in TICKET_REF_RE.finditer(text):
        normalized = normalize_ticket_id(match.group(0))
        if normalized:
            found.setdefault(normalized, None)
    return list(found)


def first_ticket_id(text: str | None) -> str | None:
    """First ticket ID mentioned in *text*, or None."""
    ids = find_ticket_ids(text)
    return ids[0] if ids else None


def is_legacy_ticket(ticket_id: str | None) -> bool:
    normalized = normalize_ticket_id(ticket_id)
    return normalized is not None and normalized.startswith("SP-")


def is_tracker_ticket(ticket_id: str | None, project_key: str) -> bool:
    """True for IDs that belong to the configured tracker project."""
    normalized = normalize_ticket_id(ticket_id)
    if normalized is None or not project_key:
        return False
    return normalized.startswith(f"{project_key.upper()}-")
