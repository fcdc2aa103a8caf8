"""Transcript processing and active-task listing endpoints."""

from __future__ import annotations

import logging

from anthropic import APIStatusError
from fastapi import APIRouter, Depends, HTTPException, Request

from src.api.models import (
    DescriptionUpdateResponse,
    NewTaskResponse,
    OutcomeResponse,
    ProcessTranscriptRequest,
    ProcessTranscriptResponse,
    StatusChangeResponse,
    TaskResponse,
)
from src.config import get_settings
from src.extraction.models import CreateTask
from src.ingestion.parsers import parse_transcript
from src.pipeline.errors import PipelineError
from src.pipeline.runner import Notifier, PipelineDeps, RunResult, process_transcript
from src.pipeline_config import PipelineConfig, RunOutcome

logger = logging.getLogger(__name__)

router = APIRouter()


def get_pipeline_deps(request: Request) -> PipelineDeps:
    """Clients built once by the application lifespan."""
    return request.app.state.deps


def get_notifier(request: Request) -> Notifier | None:
    return request.app.state.notifier


def get_pipeline_config() -> PipelineConfig:
    return PipelineConfig.from_settings(get_settings())


def _notify(notify: Notifier | None, result: RunResult) -> None:
    if notify is None:
        return
    try:
        notify(result)
    except Exception:
        logger.exception("Teams notification failed")


def _upstream_status_error(exc: BaseException) -> APIStatusError | None:
    """Find an Anthropic status error in a chain of wrapped pipeline errors."""
    seen: BaseException | None = exc
    while seen is not None:
        if isinstance(seen, APIStatusError):
            return seen
        seen = getattr(seen, "cause", None) or seen.__cause__
    return None


def to_response(result: RunResult) -> ProcessTranscriptResponse:
    created_ids = result.applied.created_ids if result.applied else {}
    created = [
        NewTaskResponse(
            ticket_id=created_ids.get(i),
            title=ins.task.title,
            description=ins.task.description,
            assignee=ins.task.assignee,
            type=ins.task.type.value,
            work_type=ins.task.work_type.value,
            is_future_plan=ins.task.is_future_plan,
            estimated_time=ins.task.estimated_time,
            priority=ins.task.priority.value if ins.task.priority else None,
            enriched=ins.task.enriched,
        )
        for i, ins in enumerate(result.instructions)
        if isinstance(ins, CreateTask)
    ]
    updater = result.updater
    return ProcessTranscriptResponse(
        outcome=result.outcome,
        attendees=result.finder.attendees if result.finder else "",
        tasks_found=len(result.finder.found_tasks) if result.finder else 0,
        created=created,
        updated=[
            DescriptionUpdateResponse(
                ticket_id=u.ticket_id,
                new_information=u.new_information,
                updated_description=u.updated_description,
                time_taken=u.time_taken,
            )
            for u in (updater.task_updates if updater else [])
        ],
        status_changes=[
            StatusChangeResponse(
                ticket_id=c.task_id,
                new_status=c.new_status.value,
                old_status=c.old_status,
                confidence=c.confidence,
                speaker=c.speaker,
            )
            for c in (updater.status_changes if updater else [])
        ],
        outcomes=[
            OutcomeResponse(ticket_id=o.ticket_id, success=o.success, reason=o.reason, kind=o.kind)
            for o in (updater.outcomes if updater else [])
        ],
    )


@router.post("/api/transcripts/process", response_model=ProcessTranscriptResponse)
def process(
    request: ProcessTranscriptRequest,
    deps: PipelineDeps = Depends(get_pipeline_deps),
    config: PipelineConfig = Depends(get_pipeline_config),
    notifier: Notifier | None = Depends(get_notifier),
) -> ProcessTranscriptResponse:
    """Run the task pipeline over one transcript and apply the result."""
    try:
        entries = parse_transcript(request.content, request.format)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    try:
        result = process_transcript(entries, deps, config)
    except PipelineError as exc:
        if request.notify:
            _notify(notifier, RunResult(outcome=RunOutcome.FAILED, error=exc))
        upstream = _upstream_status_error(exc)
        if upstream is not None:
            # Claude overloaded (529) or other upstream error
            raise HTTPException(
                status_code=503, detail=f"LLM unavailable: {upstream.message}"
            ) from exc
        logger.exception("Transcript processing failed")
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    if request.notify:
        _notify(notifier, result)

    return to_response(result)


@router.get("/api/tasks", response_model=list[TaskResponse])
def list_tasks(
    limit: int | None = None, deps: PipelineDeps = Depends(get_pipeline_deps)
) -> list[TaskResponse]:
    """Active (not completed) tasks, newest first."""
    tasks = deps.store.get_active_tasks(limit)
    return [
        TaskResponse(
            ticket_id=t.ticket_id,
            title=t.title,
            description=t.description,
            status=str(t.status),
            participant_name=t.participant_name,
            type=t.type,
            estimated_time=t.estimated_time,
            time_taken=t.time_taken,
            is_future_plan=t.is_future_plan,
        )
        for t in tasks
    ]
