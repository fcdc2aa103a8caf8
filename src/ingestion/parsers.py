"""Transcript parsers for VTT, plain text, and JSON formats."""

from __future__ import annotations

import json
import re
from collections.abc import Callable

from src.ingestion.models import TranscriptEntry


def parse_vtt(content: str) -> list[TranscriptEntry]:
    """Parse a WebVTT file into transcript entries.

    Each cue becomes one entry keyed by its start timestamp. Speaker labels
    come in two formats:

    - Microsoft Teams inline voice tags: ``<v SpeakerName>Hello</v>``. The
      tag is kept in ``text``; :attr:`TranscriptEntry.speaker` reads it.
    - Standard colon-style: ``Speaker 1: Hello``. The label moves into
      ``speaker_or_timestamp``.
    """
    entries: list[TranscriptEntry] = []

    timestamp_re = re.compile(
        r"(\d{1,2}:\d{2}:\d{2}[.,]\d{3})\s*-->\s*(\d{1,2}:\d{2}:\d{2}[.,]\d{3})"
    )
    speaker_re = re.compile(r"^([^<:]+?):\s+(.+)$")

    lines = content.strip().splitlines()
    i = 0
    while i < len(lines):
        line = lines[i].strip()
        match = timestamp_re.search(line)
        if match:
            start = match.group(1).replace(",", ".")

            # Collect text lines until blank line or next timestamp / end
            text_lines: list[str] = []
            i += 1
            while i < len(lines) and lines[i].strip() and not timestamp_re.search(lines[i]):
                text_lines.append(lines[i].strip())
                i += 1

            full_text = " ".join(text_lines)
            if not full_text:
                continue

            if full_text.startswith("<v"):
                entries.append(TranscriptEntry(speaker_or_timestamp=start, text=full_text))
                continue

            speaker_match = speaker_re.match(full_text)
            if speaker_match:
                entries.append(
                    TranscriptEntry(
                        speaker_or_timestamp=speaker_match.group(1).strip(),
                        text=speaker_match.group(2).strip(),
                    )
                )
            else:
                entries.append(TranscriptEntry(speaker_or_timestamp=start, text=full_text))
        else:
            i += 1

    return entries


def parse_plain_text(content: str) -> list[TranscriptEntry]:
    """Parse a plain-text transcript.

    Lines shaped ``Speaker: text`` carry their speaker; other lines get an
    empty speaker column.
    """
    entries: list[TranscriptEntry] = []
    speaker_re = re.compile(r"^([^:]{1,60}?):\s+(.+)$")

    for line in content.strip().splitlines():
        line = line.strip()
        if not line:
            continue

        match = speaker_re.match(line)
        if match:
            entries.append(
                TranscriptEntry(speaker_or_timestamp=match.group(1).strip(), text=match.group(2))
            )
        else:
            entries.append(TranscriptEntry(speaker_or_timestamp="", text=line))

    return entries


def parse_json(content: str) -> list[TranscriptEntry]:
    """Parse a JSON transcript.

    Supported formats:

    Stored transcript entries (top-level list or under ``entries``)::

        [{"speaker": "00:00:01.000", "text": "<v Doug>I will ...</v>"}]

    AssemblyAI::

        {"utterances": [{"speaker": "A", "text": "...", "start": ms, "end": ms}]}
    """
    data = json.loads(content)

    if isinstance(data, dict) and "entries" in data:
        data = data["entries"]

    if isinstance(data, list):
        return [
            TranscriptEntry(
                speaker_or_timestamp=str(item.get("speaker") or item.get("speaker_or_timestamp") or ""),
                text=str(item.get("text") or ""),
            )
            for item in data
            if isinstance(item, dict) and item.get("text")
        ]

    if isinstance(data, dict) and "utterances" in data:
        return [
            TranscriptEntry(speaker_or_timestamp=str(utt.get("speaker") or ""), text=utt["text"])
            for utt in data["utterances"]
            if utt.get("text")
        ]

    keys = list(data.keys()) if isinstance(data, dict) else type(data).__name__
    msg = f"Unrecognized JSON transcript format. Keys: {keys}"
    raise ValueError(msg)


def parse_transcript(content: str, format: str) -> list[TranscriptEntry]:
    """Dispatch to the correct parser based on *format*.

    Args:
        content: Raw transcript text.
        format: One of ``"vtt"``, ``"text"`` / ``"plain_text"`` / ``"txt"``,
                or ``"json"``.

    Returns:
        Parsed transcript entries.

    Raises:
        ValueError: If *format* is not recognized.
    """
    dispatch: dict[str, Callable[[str], list[TranscriptEntry]]] = {
        "vtt": parse_vtt,
        "text": parse_plain_text,
        "plain_text": parse_plain_text,
        "txt": parse_plain_text,
        "json": parse_json,
    }

    parser = dispatch.get(format)
    if parser is None:
        msg = f"Unknown transcript format: {format!r}. Supported: {list(dispatch.keys())}"
        raise ValueError(msg)

    return parser(content)


def format_transcript(entries: list[TranscriptEntry]) -> str:
    """Render entries as ``Speaker: text`` lines, dropping empty ones."""
    lines: list[str] = []
    for entry in entries:
        text = entry.clean_text
        if not text:
            continue
        speaker = entry.speaker or "Unknown"
        lines.append(f"{speaker}: {text}")
    return "\n".join(lines)


def extract_participants(entries: list[TranscriptEntry]) -> list[str]:
    """Return unique speaker names in order of first appearance."""
    seen: dict[str, None] = {}
    for entry in entries:
        speaker = entry.speaker
        if speaker and speaker != "Unknown":
            seen.setdefault(speaker, None)
    return list(seen)
