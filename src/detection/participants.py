"""Static participant directory: spelling variants and tracker identities."""

from __future__ import annotations

# Spellings that refer to the same person, keyed by lowercase variant.
NAME_VARIANTS: dict[str, str] = {
    "fayaz": "Faiyaz Rahman",
    "faiyaz": "Faiyaz Rahman",
    "fayaz rahman": "Faiyaz Rahman",
    "faiyaz rahman": "Faiyaz Rahman",
    "faiyazrahman1685": "Faiyaz Rahman",
}

# Transcript name -> tracker account ID. First names are listed too
# because Teams sometimes only shows a first name.
TRACKER_IDENTITIES: dict[str, str] = {
    "Azmain Morshed": "712020:azmain-morshed",
    "Doug Whitewolff": "712020:doug-whitewolff",
    "Shafkat Kabir": "712020:shafkat-kabir",
    "Faiyaz Rahman": "712020:faiyaz-rahman",
    "Azmain": "712020:azmain-morshed",
    "Doug": "712020:doug-whitewolff",
    "Shafkat": "712020:shafkat-kabir",
}

DEFAULT_TRACKER_ASSIGNEE: str | None = "712020:azmain-morshed"


def normalize_participant_name(name: str | None) -> str | None:
    """Collapse known spelling variants to one canonical name."""
    if not name:
        return name
    canonical = NAME_VARIANTS.get(name.strip().lower())
    return canonical or name.strip()


def known_participants() -> list[str]:
    """Canonical full names from the directory (first-name aliases excluded)."""
    return [name for name in TRACKER_IDENTITIES if " " in name]


def tracker_identity_for(name: str | None) -> str | None:
    """Tracker account for *name*.

    Lookup order: exact, case-insensitive, first-name containment, then the
    default assignee.
    """
    name = normalize_participant_name(name)
    if not name or name == "TBD":
        return DEFAULT_TRACKER_ASSIGNEE

    if name in TRACKER_IDENTITIES:
        return TRACKER_IDENTITIES[name]

    lower = name.lower()
    for mapped, identity in TRACKER_IDENTITIES.items():
        if mapped.lower() == lower:
            return identity

    first = lower.split()[0]
    for mapped, identity in TRACKER_IDENTITIES.items():
        if first in mapped.lower():
            return identity

    return DEFAULT_TRACKER_ASSIGNEE
