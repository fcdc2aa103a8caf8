"""Tests for Settings, PipelineConfig, ProcessingContext and the run outcome enum."""

from __future__ import annotations

import pytest

from src.config import Settings
from src.extraction.models import ExistingTask
from src.pipeline_config import PipelineConfig, ProcessingContext, RunOutcome


class TestRunOutcome:
    def test_values(self) -> None:
        assert RunOutcome.APPLIED.value == "applied"
        assert RunOutcome.NO_TASKS.value == "no_tasks"
        assert RunOutcome.FAILED.value == "failed"

    def test_from_string(self) -> None:
        assert RunOutcome("failed") is RunOutcome.FAILED

    def test_invalid_raises(self) -> None:
        with pytest.raises(ValueError):
            RunOutcome("partial")

    def test_is_str_subclass(self) -> None:
        """Enum values behave as plain strings for JSON serialization."""
        assert isinstance(RunOutcome.APPLIED, str)


class TestPipelineConfig:
    def test_defaults(self) -> None:
        cfg = PipelineConfig()
        assert cfg.existing_tasks_context_limit == 20
        assert cfg.status_confidence_threshold == 0.7
        assert cfg.max_concurrent_transcripts == 2
        assert cfg.enrich_descriptions
        assert cfg.tracker_project_key == ""

    def test_from_settings(self) -> None:
        settings = Settings(
            _env_file=None,  # type: ignore[call-arg]
            jira_project_key="tds",
            status_confidence_threshold=0.85,
            max_concurrent_transcripts=4,
            enrich_descriptions=False,
        )
        cfg = PipelineConfig.from_settings(settings)
        assert cfg.tracker_project_key == "TDS"
        assert cfg.status_confidence_threshold == 0.85
        assert cfg.max_concurrent_transcripts == 4
        assert not cfg.enrich_descriptions

    def test_immutable(self) -> None:
        cfg = PipelineConfig()
        with pytest.raises(AttributeError):
            cfg.enrich_descriptions = False  # type: ignore[misc]


class TestProcessingContext:
    def test_single_transcript(self) -> None:
        ctx = ProcessingContext()
        assert not ctx.is_multi_transcript
        assert ctx.baseline_tasks is None

    def test_batch_position(self) -> None:
        ctx = ProcessingContext(transcript_index=2, total_transcripts=3)
        assert ctx.is_multi_transcript

    def test_baseline_not_compared(self) -> None:
        baseline = (ExistingTask(ticket_id="SP-1", description="x"),)
        assert ProcessingContext(baseline_tasks=baseline) == ProcessingContext()


class TestSettings:
    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("JIRA_URL", "https://example.atlassian.net")
        monkeypatch.setenv("ENRICH_DESCRIPTIONS", "false")
        settings = Settings(_env_file=None)  # type: ignore[call-arg]
        assert settings.jira_url == "https://example.atlassian.net"
        assert settings.enrich_descriptions is False
