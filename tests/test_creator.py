"""Tests for Stage 2, the task creator, and description enrichment."""

from __future__ import annotations

from unittest.mock import MagicMock

from src.extraction.models import ExistingTask, ExtractedTask, Priority, TaskType
from src.ingestion.parsers import parse_plain_text
from src.pipeline.creator import create_tasks, find_duplicate, referenced_tickets
from src.pipeline.enrichment import TranscriptContextEnricher


def _task(description: str, ticket_id: str = "NONE", **kwargs) -> ExtractedTask:
    kwargs.setdefault("assignee", "Doug")
    kwargs.setdefault("type", TaskType.CODING)
    return ExtractedTask(description=description, ticket_id=ticket_id, **kwargs)


class TestCreateTasks:
    def test_builds_payload_from_new_task(self) -> None:
        found = [_task("Refactor the login validation", estimated_time=3.0, priority=Priority.HIGH)]

        result = create_tasks(found, [])

        [new] = result.new_tasks
        assert new.title == "Refactor the login validation"
        assert new.assignee == "Doug"
        assert new.type is TaskType.CODING
        assert new.estimated_time == 3.0
        assert new.priority is Priority.HIGH
        assert new.creation_reason == "explicit new task"
        assert not new.enriched

    def test_update_items_are_ignored(self) -> None:
        result = create_tasks([_task("Finish the schema", ticket_id="SP-25")], [])
        assert result.new_tasks == []
        assert result.skipped == []

    def test_hidden_ticket_reference_is_not_created(self) -> None:
        result = create_tasks([_task("Follow up on sp 12 rollout checks")], [])
        assert result.new_tasks == []
        assert "SP-12" in result.skipped[0].reason

    def test_hyphenated_words_are_not_ticket_references(self) -> None:
        found = [_task("Fix utf-8 encoding in the CSV export"), _task("Update the covid-19 leave policy page")]

        result = create_tasks(found, [], project_key="TDS")

        assert [t.description for t in result.new_tasks] == [
            "Fix utf-8 encoding in the CSV export",
            "Update the covid-19 leave policy page",
        ]
        assert result.skipped == []

    def test_tracker_key_reference_is_not_created(self) -> None:
        result = create_tasks([_task("Follow up on TDS-204 rollout")], [], project_key="TDS")
        assert result.new_tasks == []
        assert "TDS-204" in result.skipped[0].reason

    def test_snapshot_ticket_reference_is_not_created(self) -> None:
        existing = [ExistingTask(ticket_id="OPS-9", description="Rotate the staging keys")]
        result = create_tasks([_task("Check OPS-9 once the keys land")], existing)
        assert result.new_tasks == []
        assert "OPS-9" in result.skipped[0].reason

    def test_referenced_tickets_filters_unknown_prefixes(self) -> None:
        text = "After SP-3 and TDS-8, bump utf-8 handling and mp-3 parsing"
        assert referenced_tickets(text, [], "TDS") == ["SP-3", "TDS-8"]
        assert referenced_tickets(text, [], "") == ["SP-3"]

    def test_verbatim_duplicate_is_skipped(self) -> None:
        existing = [ExistingTask(ticket_id="SP-3", description="Refactor the login validation.")]
        result = create_tasks([_task("refactor the  login validation")], existing)
        assert result.new_tasks == []
        assert result.skipped[0].reason == "duplicate of SP-3"

    def test_title_match_counts_as_duplicate(self) -> None:
        existing = [ExistingTask(ticket_id="SP-4", description="Long text", title="Write release notes")]
        assert find_duplicate(_task("Write release notes"), existing) is existing[0]

    def test_similar_but_different_is_created(self) -> None:
        existing = [ExistingTask(ticket_id="SP-3", description="Refactor the login validation")]
        result = create_tasks([_task("Refactor the signup validation")], existing)
        assert len(result.new_tasks) == 1

    def test_future_plan_flag_carried(self) -> None:
        found = [_task("Evaluate analytics vendors", assignee="TBD", is_future_plan=True)]
        [new] = create_tasks(found, []).new_tasks
        assert new.is_future_plan
        assert new.assignee == "TBD"


class TestEnrichment:
    def test_enriched_description_used(self) -> None:
        enricher = MagicMock()
        enricher.enrich.return_value = "Refactor login validation to share rules with signup."
        entries = parse_plain_text("Doug: I will refactor the login validation.")

        [new] = create_tasks([_task("Refactor the login validation")], [], entries, enricher).new_tasks

        assert new.description == "Refactor login validation to share rules with signup."
        assert new.title == "Refactor the login validation"
        assert new.enriched
        assert "enriched" in new.creation_reason
        enricher.enrich.assert_called_once()

    def test_enrichment_failure_keeps_original(self) -> None:
        enricher = MagicMock()
        enricher.enrich.side_effect = RuntimeError("embedding service down")

        [new] = create_tasks([_task("Refactor the login validation")], [], [], enricher).new_tasks

        assert new.description == "Refactor the login validation"
        assert not new.enriched

    def test_empty_enrichment_keeps_original(self) -> None:
        enricher = MagicMock()
        enricher.enrich.return_value = None
        [new] = create_tasks([_task("Refactor the login validation")], [], [], enricher).new_tasks
        assert new.description == "Refactor the login validation"


class TestTranscriptContextEnricher:
    def _embed(self, texts: list[str]) -> list[list[float]]:
        # login-related lines point one way, everything else the other
        return [[1.0, 0.0] if "login" in t.lower() else [0.0, 1.0] for t in texts]

    def test_related_excerpts_in_transcript_order(self) -> None:
        enricher = TranscriptContextEnricher(MagicMock(), embed=self._embed, top_k=5)
        entries = parse_plain_text(
            "Doug: The login form accepts empty passwords.\n"
            "Mike: Lunch is at noon.\n"
            "Doug: I will refactor the login validation."
        )
        excerpts = enricher.related_excerpts(_task("Refactor the login validation"), entries)
        assert excerpts == [
            "Doug: The login form accepts empty passwords.",
            "Doug: I will refactor the login validation.",
        ]

    def test_enrich_calls_llm_with_excerpts(self) -> None:
        llm = MagicMock()
        llm.complete.return_value = "  Tighten login validation.  "
        enricher = TranscriptContextEnricher(llm, embed=self._embed)
        entries = parse_plain_text("Doug: The login form accepts empty passwords.")

        assert enricher.enrich(_task("Refactor the login validation"), entries) == "Tighten login validation."
        _, prompt = llm.complete.call_args.args
        assert "- Doug: The login form accepts empty passwords." in prompt

    def test_no_related_lines_means_no_call(self) -> None:
        llm = MagicMock()
        enricher = TranscriptContextEnricher(llm, embed=self._embed)
        entries = parse_plain_text("Mike: Lunch is at noon.")
        assert enricher.enrich(_task("Refactor the login validation"), entries) is None
        llm.complete.assert_not_called()
