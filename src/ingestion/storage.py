"""Supabase storage for tasks and processed transcripts."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from supabase import Client, create_client

from src.config import Settings
from src.detection.ticket_ids import normalize_ticket_id
from src.extraction.models import ExistingTask, NewTask, TaskStatus, TaskType
from src.ingestion.models import TranscriptEntry

logger = logging.getLogger(__name__)

BATCH_SIZE = 50


def get_supabase_client(settings: Settings) -> Client:
    """Create a Supabase client. Call once at the entry point and pass it around."""
    return create_client(settings.supabase_url, settings.supabase_key)


class TaskStore:
    """Task and transcript persistence backed by Supabase tables."""

    def __init__(
        self,
        client: Client,
        tasks_table: str = "tasks",
        transcripts_table: str = "transcripts",
    ) -> None:
        self._client = client
        self._tasks = tasks_table
        self._transcripts = transcripts_table

    @classmethod
    def from_settings(cls, settings: Settings) -> TaskStore:
        return cls(
            get_supabase_client(settings),
            tasks_table=settings.tasks_table,
            transcripts_table=settings.transcripts_table,
        )

    def get_active_tasks(self, limit: int | None = None) -> list[ExistingTask]:
        """Tasks that are not completed, newest first."""
        query = (
            self._client.table(self._tasks)
            .select("*")
            .neq("status", TaskStatus.COMPLETED.value)
            .order("created_at", desc=True)
        )
        if limit:
            query = query.limit(limit)
        result = query.execute()
        return [ExistingTask.from_record(row) for row in result.data or []]

    def store_transcript(
        self,
        entries: Sequence[TranscriptEntry],
        metadata: dict[str, Any] | None = None,
        transcript_id: str | None = None,
    ) -> str:
        """Save a processed transcript and return its ID.

        Pass *transcript_id* when tasks already reference the row.
        """
        row: dict[str, Any] = {
            "entries": [
                {"speaker": e.speaker_or_timestamp, "text": e.text} for e in entries
            ],
            "metadata": metadata or {},
            "processed_at": datetime.now(UTC).isoformat(),
        }
        if transcript_id is not None:
            row["id"] = transcript_id
        result = self._client.table(self._transcripts).insert(row).execute()
        return str(result.data[0]["id"])

    def store_new_tasks(
        self,
        tasks: Sequence[NewTask],
        transcript_id: str | None = None,
        ticket_ids: Sequence[str | None] | None = None,
    ) -> dict[str, dict[str, int]]:
        """Insert new tasks (batched by 50).

        Returns counts keyed by participant then Coding / Non-Coding bucket.
        ``ticket_ids`` lines up with ``tasks`` and holds tracker keys where
        issues were created.
        """
        ids = list(ticket_ids) if ticket_ids is not None else [None] * len(tasks)
        rows: list[dict[str, Any]] = []
        buckets: dict[str, dict[str, int]] = {}

        for task, ticket_id in zip(tasks, ids, strict=True):
            rows.append(
                {
                    "ticket_id": ticket_id,
                    "participant_name": task.assignee,
                    "title": task.title,
                    "description": task.description,
                    "type": task.type.value,
                    "work_type": task.work_type.value,
                    "status": TaskStatus.TODO.value,
                    "estimated_time": task.estimated_time,
                    "time_taken": 0,
                    "is_future_plan": task.is_future_plan,
                    "priority": task.priority.value if task.priority else None,
                    "story_points": task.story_points,
                    "project_code": task.project_code,
                    "transcript_id": transcript_id,
                }
            )
            per_person = buckets.setdefault(
                task.assignee, {TaskType.CODING.value: 0, TaskType.NON_CODING.value: 0}
            )
            per_person[task.type.value] += 1

        for i in range(0, len(rows), BATCH_SIZE):
            self._client.table(self._tasks).insert(rows[i : i + BATCH_SIZE]).execute()

        logger.info("Stored %d new task(s) for %d participant(s)", len(rows), len(buckets))
        return buckets

    def apply_update(self, ticket_id: str, fields: dict[str, Any]) -> bool:
        """Write a field delta to the task with this ticket ID.

        Returns False when no row matched.
        """
        normalized = normalize_ticket_id(ticket_id) or ticket_id
        payload = {k: v for k, v in fields.items() if v is not None}
        if not payload:
            return True
        payload["updated_at"] = datetime.now(UTC).isoformat()

        result = self._client.table(self._tasks).update(payload).eq("ticket_id", normalized).execute()
        updated = bool(result.data)
        if not updated:
            logger.warning("No stored task with ticket ID %s", normalized)
        return updated
