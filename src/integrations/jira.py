"""Jira REST client: create issues, replace descriptions, move status."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from src.config import Settings
from src.detection.participants import tracker_identity_for
from src.extraction.models import NewTask, Priority, TaskStatus, TaskType, WorkType

logger = logging.getLogger(__name__)

# Jira workflow status name for each task status
JIRA_STATUS_NAMES = {
    TaskStatus.TODO: "To Do",
    TaskStatus.IN_PROGRESS: "In Progress",
    TaskStatus.COMPLETED: "Done",
}

# Fallback transition-name keywords when no transition lands on the exact status
_TRANSITION_KEYWORDS = {
    TaskStatus.TODO: ["to do", "move to board", "move to sprint", "reopen"],
    TaskStatus.IN_PROGRESS: ["start progress", "in progress", "begin work", "work in progress"],
    TaskStatus.COMPLETED: ["done", "complete", "close", "resolve"],
}


@dataclass
class CreatedIssue:
    key: str
    id: str
    url: str
    labels: list[str] = field(default_factory=list)
    transitioned: bool = False


@dataclass
class IssueUpdateResult:
    success: bool
    status_updated: bool = False
    description_updated: bool = False


def build_labels(task: NewTask) -> list[str]:
    labels = ["coding" if task.type is TaskType.CODING else "non-coding"]
    if task.is_future_plan:
        labels.append("future-plan")
    if task.work_type is WorkType.BUG:
        labels.append("bug")
    return labels


def format_estimate(hours: float) -> str | None:
    """Jira time-tracking string: whole hours, or minutes under an hour."""
    if hours <= 0:
        return None
    if hours >= 1:
        return f"{round(hours)}h"
    return f"{round(hours * 60)}m"


class JiraClient:
    """Thin wrapper over the Jira REST API v2.

    Every method makes single-shot requests; HTTP failures surface as
    ``httpx.HTTPStatusError`` to the caller.
    """

    def __init__(
        self,
        http: httpx.Client,
        project_key: str,
        story_points_field: str | None = "customfield_10166",
    ) -> None:
        self._http = http
        self.project_key = project_key.upper()
        self._story_points_field = story_points_field

    @classmethod
    def from_settings(cls, settings: Settings) -> JiraClient:
        http = httpx.Client(
            base_url=settings.jira_url.rstrip("/"),
            auth=(settings.jira_email, settings.jira_api_token),
            headers={"Accept": "application/json"},
            timeout=15.0,
        )
        return cls(http, settings.jira_project_key, settings.jira_story_points_field or None)

    def close(self) -> None:
        self._http.close()

    def build_issue_fields(self, task: NewTask) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "project": {"key": self.project_key},
            "summary": task.title,
            "description": task.description,
            "issuetype": {"name": task.work_type.value},
            "labels": build_labels(task),
            "priority": {"name": (task.priority or Priority.MEDIUM).value},
        }

        estimate = format_estimate(task.estimated_time)
        if estimate:
            fields["timetracking"] = {"originalEstimate": estimate}

        if task.story_points and self._story_points_field:
            fields[self._story_points_field] = task.story_points

        # Future plans stay unassigned in the backlog
        if not task.is_future_plan:
            identity = tracker_identity_for(task.assignee)
            if identity:
                fields["assignee"] = {"accountId": identity}

        return fields

    def create_issue(self, task: NewTask) -> CreatedIssue:
        """Create an issue; non-future tasks are then moved onto the board."""
        fields = self.build_issue_fields(task)
        response = self._http.post("/rest/api/2/issue", json={"fields": fields})
        response.raise_for_status()
        data = response.json()

        issue = CreatedIssue(
            key=data["key"],
            id=str(data["id"]),
            url=f"{str(self._http.base_url).rstrip('/')}/browse/{data['key']}",
            labels=fields["labels"],
        )
        if not task.is_future_plan:
            issue.transitioned = self.transition_issue(issue.key, TaskStatus.TODO)

        logger.info(
            "Created Jira issue %s (%s, %s) for %s",
            issue.key,
            task.work_type,
            ", ".join(issue.labels),
            task.assignee,
        )
        return issue

    def update_description(self, issue_key: str, description: str) -> None:
        response = self._http.put(
            f"/rest/api/2/issue/{issue_key}",
            json={"fields": {"description": description}},
        )
        response.raise_for_status()

    def transition_issue(self, issue_key: str, status: TaskStatus) -> bool:
        """Move an issue to *status*. False when the workflow offers no route."""
        response = self._http.get(f"/rest/api/2/issue/{issue_key}/transitions")
        response.raise_for_status()
        transitions: list[dict[str, Any]] = response.json().get("transitions", [])

        target = JIRA_STATUS_NAMES[status].lower()
        chosen = next(
            (t for t in transitions if (t.get("to") or {}).get("name", "").lower() == target),
            None,
        )
        if chosen is None:
            keywords = _TRANSITION_KEYWORDS[status]
            chosen = next(
                (
                    t
                    for t in transitions
                    if any(
                        k in t.get("name", "").lower()
                        or k in (t.get("to") or {}).get("name", "").lower()
                        for k in keywords
                    )
                ),
                None,
            )

        if chosen is None:
            logger.warning(
                "No transition to %s for %s; available: %s",
                JIRA_STATUS_NAMES[status],
                issue_key,
                [t.get("name") for t in transitions],
            )
            return False

        response = self._http.post(
            f"/rest/api/2/issue/{issue_key}/transitions",
            json={"transition": {"id": chosen["id"]}},
        )
        response.raise_for_status()
        logger.info("Moved %s to %s via %r", issue_key, JIRA_STATUS_NAMES[status], chosen.get("name"))
        return True

    def update_issue(
        self,
        issue_key: str,
        status: TaskStatus | None = None,
        description: str | None = None,
    ) -> IssueUpdateResult:
        """Apply a status and/or description change to one issue."""
        description_updated = False
        status_updated = False

        if description is not None:
            self.update_description(issue_key, description)
            description_updated = True
        if status is not None:
            status_updated = self.transition_issue(issue_key, status)

        return IssueUpdateResult(
            success=(status is None or status_updated),
            status_updated=status_updated,
            description_updated=description_updated,
        )
