"""Shared fakes for pipeline tests: a canned LLM and an in-memory task store."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import pytest

from src.detection.ticket_ids import normalize_ticket_id
from src.extraction.models import ExistingTask, NewTask, TaskStatus
from src.ingestion.models import TranscriptEntry


class FakeLLM:
    """Returns a canned completion (or raises a canned error) and records prompts."""

    def __init__(self, completion: str | BaseException = "NO TASKS IDENTIFIED") -> None:
        self.completion = completion
        self.calls: list[tuple[str, str]] = []

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        if isinstance(self.completion, BaseException):
            raise self.completion
        return self.completion


class FakeStore:
    """In-memory stand-in for TaskStore; new tasks become visible immediately."""

    def __init__(self, tasks: Sequence[ExistingTask] = ()) -> None:
        self.tasks = list(tasks)
        self.fetches = 0
        self.transcripts: list[list[TranscriptEntry]] = []
        self.transcript_ids: list[str] = []
        self.task_transcript_ids: list[str | None] = []
        self.created: list[NewTask] = []
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self._next_id = 100

    def get_active_tasks(self, limit: int | None = None) -> list[ExistingTask]:
        self.fetches += 1
        active = [t for t in reversed(self.tasks) if str(t.status) != TaskStatus.COMPLETED.value]
        return active[:limit] if limit else active

    def store_transcript(
        self,
        entries: Sequence[TranscriptEntry],
        metadata: dict[str, Any] | None = None,
        transcript_id: str | None = None,
    ) -> str:
        self.transcripts.append(list(entries))
        self.transcript_ids.append(transcript_id or f"transcript-{len(self.transcripts)}")
        return self.transcript_ids[-1]

    def store_new_tasks(
        self,
        tasks: Sequence[NewTask],
        transcript_id: str | None = None,
        ticket_ids: Sequence[str | None] | None = None,
    ) -> dict[str, dict[str, int]]:
        ids = list(ticket_ids) if ticket_ids is not None else [None] * len(tasks)
        counts: dict[str, dict[str, int]] = {}
        for task, ticket_id in zip(tasks, ids, strict=True):
            if ticket_id is None:
                self._next_id += 1
                ticket_id = f"SP-{self._next_id}"
            self.created.append(task)
            self.task_transcript_ids.append(transcript_id)
            self.tasks.append(
                ExistingTask(
                    ticket_id=ticket_id,
                    description=task.description,
                    participant_name=task.assignee,
                    title=task.title,
                    type=task.type.value,
                )
            )
            bucket = counts.setdefault(task.assignee, {"Coding": 0, "Non-Coding": 0})
            bucket[task.type.value] += 1
        return counts

    def apply_update(self, ticket_id: str, fields: dict[str, Any]) -> bool:
        self.updates.append((ticket_id, fields))
        for task in self.tasks:
            if normalize_ticket_id(task.ticket_id) == normalize_ticket_id(ticket_id):
                if fields.get("status"):
                    task.status = fields["status"]
                if fields.get("description"):
                    task.description = fields["description"]
                return True
        return False


@pytest.fixture
def existing_tasks() -> list[ExistingTask]:
    return [
        ExistingTask(
            ticket_id="SP-25",
            description="Update the database schema for invoices",
            status=TaskStatus.TODO,
            participant_name="John",
            title="Database schema updates",
            type="Coding",
        ),
        ExistingTask(
            ticket_id="TDS-204",
            description="Prepare the quarterly roadmap deck",
            status=TaskStatus.IN_PROGRESS,
            participant_name="Shafkat Kabir",
            title="Roadmap deck",
            type="Non-Coding",
            estimated_time=3.0,
            time_taken=1.0,
        ),
    ]


@pytest.fixture
def fake_store(existing_tasks: list[ExistingTask]) -> FakeStore:
    return FakeStore(existing_tasks)


@pytest.fixture
def llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def make_store() -> type[FakeStore]:
    return FakeStore
