"""Pipeline configuration: run outcome enum and PipelineConfig dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from src.config import Settings
from src.extraction.models import ExistingTask


class RunOutcome(str, Enum):
    """Result of processing a single transcript."""

    APPLIED = "applied"
    NO_TASKS = "no_tasks"
    FAILED = "failed"


@dataclass(frozen=True)
class PipelineConfig:
    """Immutable configuration for the extraction pipeline.

    Built once at the entry point and passed into every run, so a run never
    reads settings lazily mid-pipeline.
    """

    existing_tasks_context_limit: int = 20
    status_confidence_threshold: float = 0.7
    max_concurrent_transcripts: int = 2
    enrich_descriptions: bool = True
    tracker_project_key: str = ""

    @classmethod
    def from_settings(cls, settings: Settings) -> PipelineConfig:
        return cls(
            existing_tasks_context_limit=settings.existing_tasks_context_limit,
            status_confidence_threshold=settings.status_confidence_threshold,
            max_concurrent_transcripts=settings.max_concurrent_transcripts,
            enrich_descriptions=settings.enrich_descriptions,
            tracker_project_key=settings.jira_project_key.upper(),
        )


@dataclass(frozen=True)
class ProcessingContext:
    """Where a transcript sits in a batch, plus the snapshot it must match against.

    ``baseline_tasks`` is captured once before any transcript in the batch
    runs. When set, it replaces the per-run store fetch so transcripts in the
    same batch never see each other's new tasks.
    """

    transcript_index: int = 1
    total_transcripts: int = 1
    baseline_tasks: tuple[ExistingTask, ...] | None = field(default=None, compare=False)

    @property
    def is_multi_transcript(self) -> bool:
        return self.total_transcripts > 1
