"""Tests for API endpoints (no external API keys required)."""

from unittest.mock import MagicMock, patch

import anthropic
import httpx
import pytest
from fastapi.testclient import TestClient

from src.api.main import app
from src.api.routes.transcripts import get_notifier, get_pipeline_config, get_pipeline_deps
from src.pipeline.runner import PipelineDeps
from src.pipeline_config import PipelineConfig

# Used without a ``with`` block, so the lifespan never builds real clients
client = TestClient(app)

DOUG_COMPLETION = (
    "Doug's Tasks:\n"
    "1. Refactor the login validation (Coding) [TYPE: NEW TASK] [TASK_ID: NONE] [ASSIGNEE: Doug]"
)


@pytest.fixture(autouse=True)
def overrides(llm, fake_store):
    """Point the endpoints at the in-memory store and fake LLM."""
    app.dependency_overrides[get_pipeline_deps] = lambda: PipelineDeps(llm, fake_store)
    app.dependency_overrides[get_pipeline_config] = lambda: PipelineConfig()
    app.dependency_overrides[get_notifier] = lambda: None
    yield app.dependency_overrides
    app.dependency_overrides.clear()


def _overloaded() -> anthropic.APIStatusError:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    return anthropic.InternalServerError(
        "Overloaded", response=httpx.Response(529, request=request), body=None
    )


def test_health():
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_process_requires_content():
    response = client.post("/api/transcripts/process", json={})
    assert response.status_code == 422  # missing required field


def test_process_rejects_unknown_format():
    response = client.post("/api/transcripts/process", json={"content": "x", "format": "docx"})
    assert response.status_code == 400
    assert "Unknown transcript format" in response.json()["detail"]


def test_process_creates_task(llm, make_store, overrides):
    llm.completion = DOUG_COMPLETION
    store = make_store()
    overrides[get_pipeline_deps] = lambda: PipelineDeps(llm, store)

    response = client.post(
        "/api/transcripts/process",
        json={"content": "Doug: I will refactor the login validation.", "format": "txt"},
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["outcome"] == "applied"
    assert body["attendees"] == "Doug"
    assert body["tasks_found"] == 1
    [created] = body["created"]
    assert created["assignee"] == "Doug"
    assert created["type"] == "Coding"
    assert created["ticket_id"] is None
    assert len(store.created) == 1


def test_process_status_change(llm):
    llm.completion = "NO TASKS IDENTIFIED"
    response = client.post(
        "/api/transcripts/process",
        json={"content": "John: SP-25 is complete.", "format": "txt"},
    )

    assert response.status_code == 200
    [change] = response.json()["status_changes"]
    assert change["ticket_id"] == "SP-25"
    assert change["new_status"] == "Completed"
    assert change["old_status"] == "To-do"


def test_process_without_tasks(fake_store):
    response = client.post(
        "/api/transcripts/process", json={"content": "Doug: morning all", "format": "txt"}
    )
    assert response.status_code == 200
    assert response.json()["outcome"] == "no_tasks"
    assert fake_store.transcripts == []


def test_llm_overload_returns_503(llm):
    """Claude overload surfaces as 503 through the stage error wrapper."""
    llm.completion = _overloaded()
    response = client.post(
        "/api/transcripts/process", json={"content": "Doug: hi", "format": "txt"}
    )
    assert response.status_code == 503
    assert response.json()["detail"].startswith("LLM unavailable")


def test_stage_failure_returns_502(llm):
    llm.completion = RuntimeError("parser exploded")
    response = client.post(
        "/api/transcripts/process", json={"content": "Doug: hi", "format": "txt"}
    )
    assert response.status_code == 502
    assert response.json()["detail"] == "Stage 1 (Task Finder) failed: parser exploded"


def test_failed_run_notifies_when_asked(llm, overrides):
    llm.completion = RuntimeError("boom")
    notify = MagicMock()
    overrides[get_notifier] = lambda: notify

    response = client.post(
        "/api/transcripts/process",
        json={"content": "Doug: hi", "format": "txt", "notify": True},
    )

    assert response.status_code == 502
    [result] = notify.call_args.args
    assert result.outcome.value == "failed"


def test_notification_failure_does_not_fail_request(overrides):
    overrides[get_notifier] = lambda: MagicMock(side_effect=httpx.ConnectError("webhook down"))
    response = client.post(
        "/api/transcripts/process",
        json={"content": "Doug: hi", "format": "txt", "notify": True},
    )
    assert response.status_code == 200


def test_list_tasks():
    response = client.get("/api/tasks")

    assert response.status_code == 200
    tasks = response.json()
    assert [t["ticket_id"] for t in tasks] == ["TDS-204", "SP-25"]
    assert tasks[0]["status"] == "In-progress"
    assert tasks[0]["time_taken"] == 1.0


def test_list_tasks_limit():
    response = client.get("/api/tasks", params={"limit": 1})
    assert [t["ticket_id"] for t in response.json()] == ["TDS-204"]


class TestLifespan:
    def test_clients_built_once_and_closed(self) -> None:
        app.dependency_overrides.clear()
        tracker = MagicMock()
        deps = PipelineDeps(MagicMock(), MagicMock(), tracker=tracker)
        deps.store.get_active_tasks.return_value = []

        with (
            patch("src.api.main.build_pipeline_deps", return_value=deps) as mock_build,
            patch("src.api.main.build_notifier", return_value=None),
            TestClient(app) as lifespan_client,
        ):
            assert lifespan_client.get("/api/tasks").json() == []
            assert lifespan_client.get("/api/tasks").json() == []
            assert app.state.deps is deps

        mock_build.assert_called_once()
        tracker.close.assert_called_once()
