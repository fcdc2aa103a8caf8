"""Data models for transcript input."""

from __future__ import annotations

import re
from dataclasses import dataclass

_VOICE_TAG_RE = re.compile(r"<v\s*([^>]+)>")
_ANY_TAG_RE = re.compile(r"<[^>]*>")
_TIMESTAMP_RE = re.compile(r"^\d{1,2}:\d{2}(?::\d{2})?(?:[.,]\d+)?")


@dataclass(frozen=True)
class TranscriptEntry:
    """One raw unit of meeting transcript.

    ``speaker_or_timestamp`` is whatever the transcript source put in its
    first column: a cue timestamp for Teams VTT exports, or a speaker name
    for plain-text transcripts. Teams embeds the speaker inside ``text`` as
    ``<v Name>...</v>``.
    """

    speaker_or_timestamp: str
    text: str

    @property
    def speaker(self) -> str | None:
        """Speaker name, preferring an inline ``<v Name>`` tag."""
        match = _VOICE_TAG_RE.search(self.text or "")
        if match:
            name = match.group(1).strip()
            return name or None

        raw = _ANY_TAG_RE.sub("", self.speaker_or_timestamp or "")
        raw = re.sub(r"^v\s+", "", raw).strip()
        if not raw or _TIMESTAMP_RE.match(raw):
            return None
        return raw

    @property
    def clean_text(self) -> str:
        """Text with every markup tag removed."""
        return _ANY_TAG_RE.sub("", self.text or "").strip()
