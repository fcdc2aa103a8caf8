"""End-to-end tests for the per-transcript runner and the batch runner."""

from __future__ import annotations

import asyncio
import threading
from unittest.mock import MagicMock, patch

import pytest

from src.extraction.models import CreateTask, TaskStatus, TaskType, UpdateDescription, UpdateStatus
from src.ingestion.parsers import parse_plain_text
from src.pipeline.errors import ApplyError, StageError, TranscriptRunError
from src.pipeline.runner import PipelineDeps, process_transcript, process_transcripts
from src.pipeline_config import PipelineConfig, ProcessingContext, RunOutcome

ONBOARDING_COMPLETION = (
    "Doug's Tasks:\n"
    "1. Update the onboarding docs (Non-Coding) [TYPE: NEW TASK] [TASK_ID: NONE] [ASSIGNEE: Doug]"
)


class TestScenarios:
    def test_self_assigned_new_task(self, llm, make_store) -> None:
        llm.completion = (
            "Doug's Tasks:\n"
            "1. Refactor the login validation (Coding) [TYPE: NEW TASK] [TASK_ID: NONE] [ASSIGNEE: Doug]"
        )
        store = make_store()

        result = process_transcript(
            parse_plain_text("Doug: I will refactor the login validation."), PipelineDeps(llm, store)
        )

        assert result.outcome is RunOutcome.APPLIED
        [create] = result.instructions
        assert isinstance(create, CreateTask)
        assert create.task.assignee == "Doug"
        assert create.task.type is TaskType.CODING
        [found] = result.finder.found_tasks
        assert found.ticket_id == "NONE"
        assert store.created == [create.task]

    def test_status_change_updates_existing_task(self, llm, fake_store) -> None:
        llm.completion = (
            "John's Tasks:\n"
            "1. Finished the database schema updates (Coding) [TYPE: STATUS CHANGE] "
            "[TASK_ID: SP-25] [STATUS: Completed]"
        )
        entries = parse_plain_text("John: SP-25 is complete. I finished the database schema updates.")

        result = process_transcript(entries, PipelineDeps(llm, fake_store))

        assert result.outcome is RunOutcome.APPLIED
        assert not any(isinstance(i, CreateTask) for i in result.instructions)
        [status] = [i for i in result.instructions if isinstance(i, UpdateStatus)]
        assert status.ticket_id == "SP-25"
        assert status.new_status is TaskStatus.COMPLETED
        assert status.confidence == 0.9
        assert ("SP-25", {"status": "Completed"}) in fake_store.updates
        assert fake_store.created == []

    def test_absent_person_keeps_assignment(self, llm, make_store) -> None:
        llm.completion = (
            "Mike's Tasks:\n"
            "1. Mobile app optimization (Coding) [TYPE: NEW TASK] [TASK_ID: NONE] [ASSIGNEE: John Doe]"
        )
        entries = parse_plain_text(
            "Mike: new task for John Doe who isn't here today - mobile app optimization."
        )

        result = process_transcript(entries, PipelineDeps(llm, make_store()))

        [create] = result.instructions
        assert create.task.assignee == "John Doe"
        assert create.task.assignee != "TBD"

    def test_batch_uses_isolated_baseline(self, llm, make_store) -> None:
        llm.completion = ONBOARDING_COMPLETION
        store = make_store()
        batch = [
            parse_plain_text("Doug: New task for me, update the onboarding docs."),
            parse_plain_text("Doug: New task for me, update the onboarding docs."),
        ]

        results = asyncio.run(
            process_transcripts(batch, PipelineDeps(llm, store), PipelineConfig(max_concurrent_transcripts=1))
        )

        assert [r.outcome for r in results] == [RunOutcome.APPLIED, RunOutcome.APPLIED]
        assert store.fetches == 1
        assert len(store.created) == 2
        assert all(r.creator.skipped == [] for r in results)

    def test_without_baseline_second_run_sees_first(self, llm, make_store) -> None:
        llm.completion = ONBOARDING_COMPLETION
        store = make_store()
        entries = parse_plain_text("Doug: New task for me, update the onboarding docs.")

        process_transcript(entries, PipelineDeps(llm, store))
        second = process_transcript(entries, PipelineDeps(llm, store))

        assert second.outcome is RunOutcome.NO_TASKS
        assert second.creator.skipped[0].reason.startswith("duplicate of SP-")


class TestRunOutcomes:
    def test_no_tasks(self, llm, fake_store) -> None:
        result = process_transcript(parse_plain_text("Doug: morning all"), PipelineDeps(llm, fake_store))
        assert result.outcome is RunOutcome.NO_TASKS
        assert result.instructions == []
        assert fake_store.transcripts == []

    def test_snapshot_read_once(self, llm, fake_store) -> None:
        process_transcript(parse_plain_text("Doug: morning all"), PipelineDeps(llm, fake_store))
        assert fake_store.fetches == 1

    def test_baseline_replaces_store_read(self, llm, fake_store, existing_tasks) -> None:
        context = ProcessingContext(baseline_tasks=tuple(existing_tasks[:1]))
        result = process_transcript(
            parse_plain_text("Doug: morning all"), PipelineDeps(llm, fake_store), context=context
        )
        assert fake_store.fetches == 0
        assert [t.ticket_id for t in result.existing_tasks] == ["SP-25"]

    def test_llm_failure_is_stage_one_error(self, llm, fake_store) -> None:
        llm.completion = RuntimeError("overloaded")
        with pytest.raises(StageError, match=r"Stage 1 \(Task Finder\) failed: overloaded"):
            process_transcript(parse_plain_text("Doug: hi"), PipelineDeps(llm, fake_store))
        assert fake_store.updates == []

    def test_creator_failure_applies_nothing(self, llm, fake_store) -> None:
        llm.completion = ONBOARDING_COMPLETION
        with (
            patch("src.pipeline.runner.create_tasks", side_effect=RuntimeError("boom")),
            pytest.raises(StageError, match=r"Stage 2 \(Task Creator\) failed: boom") as excinfo,
        ):
            process_transcript(parse_plain_text("Doug: hi"), PipelineDeps(llm, fake_store))
        assert excinfo.value.stage == 2
        assert fake_store.created == []
        assert fake_store.transcripts == []

    def test_updater_failure(self, llm, fake_store) -> None:
        with (
            patch("src.pipeline.runner.update_tasks", side_effect=ValueError("bad")),
            pytest.raises(StageError, match=r"Stage 3 \(Task Updater\)"),
        ):
            process_transcript(parse_plain_text("Doug: hi"), PipelineDeps(llm, fake_store))

    def test_store_failure_is_apply_error(self, llm, make_store) -> None:
        llm.completion = ONBOARDING_COMPLETION
        store = make_store()
        store.store_new_tasks = MagicMock(side_effect=ConnectionError("db gone"))
        with pytest.raises(ApplyError, match="db gone"):
            process_transcript(parse_plain_text("Doug: hi"), PipelineDeps(llm, store))
        assert store.transcripts == []

    def test_transcript_row_shares_the_task_transcript_id(self, llm, fake_store) -> None:
        llm.completion = ONBOARDING_COMPLETION
        process_transcript(parse_plain_text("Doug: hi"), PipelineDeps(llm, fake_store))
        [transcript_id] = fake_store.transcript_ids
        assert fake_store.task_transcript_ids == [transcript_id]

    def test_enrichment_disabled_by_config(self, llm, make_store) -> None:
        llm.completion = ONBOARDING_COMPLETION
        enricher = MagicMock()
        process_transcript(
            parse_plain_text("Doug: hi"),
            PipelineDeps(llm, make_store(), enricher=enricher),
            PipelineConfig(enrich_descriptions=False),
        )
        enricher.enrich.assert_not_called()

    def test_description_updates_reach_store(self, llm, fake_store) -> None:
        llm.completion = (
            "Shafkat Kabir's Tasks:\n"
            "1. Added the hiring slide (Non-Coding) [TASK_ID: TDS-204] [TIME SPENT: 2 hours]"
        )
        result = process_transcript(
            parse_plain_text("Shafkat Kabir: Added the hiring slide to TDS-204, took 2 hours."),
            PipelineDeps(llm, fake_store),
        )
        [describe] = [i for i in result.instructions if isinstance(i, UpdateDescription)]
        assert describe.time_taken == 3.0
        ticket_id, fields = fake_store.updates[0]
        assert ticket_id == "TDS-204"
        assert fields["time_taken"] == 3.0


class FlakyLLM:
    """Fails for transcripts that mention "boom"."""

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        if "boom" in user_prompt:
            raise RuntimeError("upstream exploded")
        return ONBOARDING_COMPLETION


class TestBatch:
    def test_failure_is_isolated(self, make_store) -> None:
        store = make_store()
        batch = [parse_plain_text("Doug: boom"), parse_plain_text("Doug: docs please")]

        results = asyncio.run(process_transcripts(batch, PipelineDeps(FlakyLLM(), store)))

        assert [r.outcome for r in results] == [RunOutcome.FAILED, RunOutcome.APPLIED]
        assert [r.transcript_index for r in results] == [1, 2]
        assert isinstance(results[0].error, TranscriptRunError)
        assert results[0].error.transcript_index == 1
        assert "Stage 1 (Task Finder) failed" in str(results[0].error)
        assert len(store.created) == 1

    def test_notifier_called_per_transcript(self, make_store) -> None:
        notify = MagicMock(side_effect=[RuntimeError("webhook down"), None])
        batch = [parse_plain_text("Doug: boom"), parse_plain_text("Doug: docs please")]

        results = asyncio.run(
            process_transcripts(batch, PipelineDeps(FlakyLLM(), make_store()), notify=notify)
        )

        assert notify.call_count == 2
        assert {r.outcome for r in results} == {RunOutcome.FAILED, RunOutcome.APPLIED}

    def test_batch_prompts_carry_position(self, llm, make_store) -> None:
        batch = [parse_plain_text("Doug: hi"), parse_plain_text("Mike: hey")]
        asyncio.run(process_transcripts(batch, PipelineDeps(llm, make_store())))
        systems = sorted(system for system, _ in llm.calls)
        assert "transcript 1 of 2" in systems[0]
        assert "transcript 2 of 2" in systems[1]

    def test_slow_notifier_does_not_block_other_runs(self, llm, make_store) -> None:
        # Both notifications must be in flight at once for the barrier to open
        barrier = threading.Barrier(2, timeout=5)
        passed: list[bool] = []

        def notify(result) -> None:
            try:
                barrier.wait()
                passed.append(True)
            except threading.BrokenBarrierError:
                passed.append(False)

        batch = [parse_plain_text("Doug: hi"), parse_plain_text("Mike: hey")]
        asyncio.run(
            process_transcripts(
                batch,
                PipelineDeps(llm, make_store()),
                PipelineConfig(max_concurrent_transcripts=2),
                notify=notify,
            )
        )

        assert passed == [True, True]
