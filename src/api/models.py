"""Pydantic request/response schemas for the task sync API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from src.pipeline_config import RunOutcome


class ProcessTranscriptRequest(BaseModel):
    """Request body for the /api/transcripts/process endpoint."""

    content: str
    format: str = "vtt"  # vtt, txt or json
    notify: bool = False


class NewTaskResponse(BaseModel):
    ticket_id: str | None = None
    title: str
    description: str
    assignee: str
    type: str
    work_type: str
    is_future_plan: bool = False
    estimated_time: float = 0.0
    priority: str | None = None
    enriched: bool = False


class DescriptionUpdateResponse(BaseModel):
    ticket_id: str
    new_information: str
    updated_description: str
    time_taken: float | None = None


class StatusChangeResponse(BaseModel):
    ticket_id: str
    new_status: str
    old_status: str | None = None
    confidence: float
    speaker: str


class OutcomeResponse(BaseModel):
    ticket_id: str
    success: bool
    reason: str = ""
    kind: str = "description"


class ProcessTranscriptResponse(BaseModel):
    """Response body for the /api/transcripts/process endpoint."""

    outcome: RunOutcome
    attendees: str = ""
    tasks_found: int = 0
    created: list[NewTaskResponse] = Field(default_factory=list)
    updated: list[DescriptionUpdateResponse] = Field(default_factory=list)
    status_changes: list[StatusChangeResponse] = Field(default_factory=list)
    outcomes: list[OutcomeResponse] = Field(default_factory=list)


class TaskResponse(BaseModel):
    """An active task as listed by /api/tasks."""

    ticket_id: str
    title: str | None = None
    description: str
    status: str
    participant_name: str = ""
    type: str
    estimated_time: float = 0.0
    time_taken: float = 0.0
    is_future_plan: bool = False
