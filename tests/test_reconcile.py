"""Tests for turning stage output into task instructions."""

from __future__ import annotations

from src.extraction.models import (
    CreateTask,
    NewTask,
    StatusChange,
    TaskStatus,
    TaskType,
    TaskUpdate,
    UpdateDescription,
    UpdateStatus,
)
from src.pipeline.reconcile import pick_status_changes, reconcile


def _change(ticket: str, status: TaskStatus, confidence: float, speaker: str) -> StatusChange:
    return StatusChange(ticket, status, confidence, f"{speaker} said so", speaker=speaker)


class TestPickStatusChanges:
    def test_highest_confidence_wins(self) -> None:
        changes = [
            _change("SP-1", TaskStatus.COMPLETED, 0.9, "John"),
            _change("SP-1", TaskStatus.IN_PROGRESS, 0.8, "Mike"),
        ]
        [winner] = pick_status_changes(changes)
        assert winner.new_status is TaskStatus.COMPLETED

    def test_later_claim_wins_a_tie(self) -> None:
        changes = [
            _change("SP-1", TaskStatus.IN_PROGRESS, 0.9, "John"),
            _change("sp 1", TaskStatus.COMPLETED, 0.9, "Mike"),
        ]
        [winner] = pick_status_changes(changes)
        assert winner.speaker == "Mike"

    def test_order_of_first_mention_kept(self) -> None:
        changes = [
            _change("SP-2", TaskStatus.COMPLETED, 0.9, "a"),
            _change("SP-1", TaskStatus.COMPLETED, 0.9, "b"),
            _change("SP-2", TaskStatus.COMPLETED, 0.9, "c"),
        ]
        assert [c.task_id for c in pick_status_changes(changes)] == ["SP-2", "SP-1"]


class TestReconcile:
    def test_instruction_order_and_uniqueness(self) -> None:
        new = NewTask(title="Refactor login", description="Refactor login", assignee="Doug", type=TaskType.CODING)
        first = TaskUpdate("SP-25", "orig", "one", "orig\n\nUpdate: one")
        second = TaskUpdate("SP-25", "orig", "one\ntwo", "orig\n\nUpdate: one\n\nUpdate: two", time_taken=3.0)
        changes = [
            _change("SP-25", TaskStatus.IN_PROGRESS, 0.8, "John"),
            _change("SP-25", TaskStatus.COMPLETED, 0.9, "John"),
        ]

        instructions = reconcile([new], [first, second], changes)

        assert [type(i) for i in instructions] == [CreateTask, UpdateDescription, UpdateStatus]
        create, describe, status = instructions
        assert create.task is new
        assert describe.description.endswith("Update: two")
        assert describe.time_taken == 3.0
        assert status.ticket_id == "SP-25"
        assert status.new_status is TaskStatus.COMPLETED

    def test_empty(self) -> None:
        assert reconcile([], [], []) == []

    def test_status_ids_are_normalized(self) -> None:
        [status] = reconcile([], [], [_change("tds204", TaskStatus.COMPLETED, 0.9, "x")])
        assert status.ticket_id == "TDS-204"
