"""Description enrichment from related transcript excerpts.

Stage 2 may hand each new task to a :class:`DescriptionEnricher`, which
returns a fuller description or None. The default implementation ranks the
transcript's lines by embedding similarity to the task and asks the LLM to
rewrite the description using the best excerpts.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Protocol

from src.extraction.llm import LLMClient
from src.extraction.models import ExtractedTask
from src.ingestion.embeddings import cosine_similarity, embed_texts
from src.ingestion.models import TranscriptEntry
from src.ingestion.parsers import format_transcript

logger = logging.getLogger(__name__)

EmbedFn = Callable[[list[str]], list[list[float]]]

ENRICHMENT_SYSTEM_PROMPT = (
    "You write task descriptions for an issue tracker. Rewrite the task using "
    "only facts present in the task or the meeting excerpts. Keep it to one "
    "short paragraph. Do not invent requirements, owners, or dates. Reply with "
    "the description text only."
)


class DescriptionEnricher(Protocol):
    def enrich(self, task: ExtractedTask, entries: Sequence[TranscriptEntry]) -> str | None: ...


class TranscriptContextEnricher:
    """Rewrite descriptions with the most relevant lines of the same transcript."""

    def __init__(
        self,
        llm: LLMClient,
        embed: EmbedFn = embed_texts,
        top_k: int = 5,
        score_threshold: float = 0.3,
    ) -> None:
        self._llm = llm
        self._embed = embed
        self._top_k = top_k
        self._score_threshold = score_threshold

    def related_excerpts(self, task: ExtractedTask, entries: Sequence[TranscriptEntry]) -> list[str]:
        lines = [line for line in format_transcript(list(entries)).splitlines() if line.strip()]
        if not lines:
            return []

        query = " ".join(part for part in (task.description, task.evidence, task.context) if part)
        vectors = self._embed([query, *lines])
        query_vector, line_vectors = vectors[0], vectors[1:]

        scored = [
            (cosine_similarity(query_vector, vector), index)
            for index, vector in enumerate(line_vectors)
        ]
        best = sorted(
            (item for item in scored if item[0] >= self._score_threshold),
            key=lambda item: item[0],
            reverse=True,
        )[: self._top_k]

        # Back into transcript order so the model reads the conversation as it happened
        return [lines[index] for _, index in sorted(best, key=lambda item: item[1])]

    def enrich(self, task: ExtractedTask, entries: Sequence[TranscriptEntry]) -> str | None:
        excerpts = self.related_excerpts(task, entries)
        if not excerpts:
            return None

        prompt = (
            f"Task: {task.description}\n"
            f"Assignee: {task.assignee}\n"
            f"Type: {task.type}\n\n"
            "Meeting excerpts:\n" + "\n".join(f"- {line}" for line in excerpts)
        )
        description = self._llm.complete(ENRICHMENT_SYSTEM_PROMPT, prompt).strip()
        return description or None
