"""Exceptions raised by the task pipeline."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for pipeline failures. A failed run applies nothing."""


class StageError(PipelineError):
    """A pipeline stage failed; wraps the underlying cause."""

    def __init__(self, stage: int, name: str, cause: BaseException) -> None:
        self.stage = stage
        self.name = name
        self.cause = cause
        super().__init__(f"Stage {stage} ({name}) failed: {cause}")


class EmptyCompletionError(PipelineError):
    """The LLM returned no text for the task finder prompt."""


class TranscriptRunError(PipelineError):
    """Processing of one transcript in a batch failed."""

    def __init__(self, transcript_index: int, cause: BaseException) -> None:
        self.transcript_index = transcript_index
        self.cause = cause
        super().__init__(f"Transcript {transcript_index} failed: {cause}")


class ApplyError(PipelineError):
    """Writing an instruction to the tracker or the store failed."""

    def __init__(self, ticket_id: str | None, cause: BaseException) -> None:
        self.ticket_id = ticket_id
        self.cause = cause
        target = ticket_id or "new task"
        super().__init__(f"Applying instruction for {target} failed: {cause}")
