from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest
from jira import JIRAError

from devflow.connectors.auth import JiraAuth, load_jira_auth_from_env
from devflow.connectors.jira_connector import build_tracker_connector_from_env
from devflow.connectors.jira_connector_api import JiraAPIConnector, adf_document
from devflow.connectors.jira_connector_inmemory import InMemoryJiraConnector
from devflow.models.entities import ServiceProfile
from devflow.shared.errors import ErrorKind, WorkflowError
from devflow.sources.adapters import TrackerAdapter, build_ticket_jql

AUTH = JiraAuth(server="https://acme.atlassian.net", email="me@acme.io", token="secret-token")


@dataclass
class FakeResponse:
    status_code: int
    payload: Any

    @property
    def text(self) -> str:
        return str(self.payload)

    def json(self) -> Any:
        return self.payload


class FakeSession:
    def __init__(self, responses: list[FakeResponse]) -> None:
        self.responses = responses
        self.calls: list[dict[str, Any]] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": "GET", "url": url, **kwargs})
        return self.responses.pop(0)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": "POST", "url": url, **kwargs})
        return self.responses.pop(0)


@dataclass
class FakeIssue:
    raw: dict[str, Any]


@dataclass
class FakeJiraClient:
    issues: dict[str, dict[str, Any]] = field(default_factory=dict)
    transitions_by_key: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    applied: list[tuple[str, str]] = field(default_factory=list)
    _session: FakeSession | None = None

    def myself(self) -> dict[str, Any]:
        return {"accountId": "acc-me", "displayName": "Me"}

    def issue(self, key: str, fields: str = "") -> FakeIssue:
        if key not in self.issues:
            raise JIRAError(status_code=404, text="Issue does not exist or you do not have permission to see it.")
        return FakeIssue(raw=self.issues[key])

    def transitions(self, key: str) -> list[dict[str, Any]]:
        return self.transitions_by_key.get(key, [])

    def transition_issue(self, key: str, transition_id: str) -> None:
        self.applied.append((key, transition_id))


def _issue(key: str, status: str) -> dict[str, Any]:
    return {
        "key": key,
        "fields": {
            "summary": "Add login",
            "status": {"name": status},
            "assignee": {"displayName": "Me", "accountId": "acc-me"},
            "priority": {"name": "High"},
            "description": {
                "type": "doc",
                "content": [{"type": "paragraph", "content": [{"type": "text", "text": "Use OAuth."}]}],
            },
            "comment": {
                "comments": [
                    {
                        "author": {"displayName": "Bo", "accountId": "acc-bo"},
                        "body": {"type": "doc", "content": [{"type": "paragraph", "content": [{"type": "text", "text": "LGTM"}]}]},
                        "created": "2026-01-02T10:00:00.000+0000",
                    }
                ]
            },
        },
    }


def test_factory_and_auth_fallbacks() -> None:
    assert isinstance(
        build_tracker_connector_from_env(env={"DEVFLOW_TRACKER_CONNECTOR": "in_memory"}), InMemoryJiraConnector
    )
    auth = load_jira_auth_from_env(
        {"JIRA_SERVER": "https://acme.atlassian.net/", "JIRA_EMAIL": "me@acme.io", "JIRA_API_TOKEN": "t"}
    )
    assert auth == JiraAuth(server="https://acme.atlassian.net", email="me@acme.io", token="t")
    assert load_jira_auth_from_env({}).missing() == ["server", "email", "token"]


def test_missing_credentials_are_not_configured_with_remedy() -> None:
    connector = JiraAPIConnector(auth=JiraAuth(server="https://acme.atlassian.net", email=None, token=None))

    with pytest.raises(WorkflowError) as excinfo:
        connector.current_account()

    assert excinfo.value.kind is ErrorKind.NOT_CONFIGURED
    assert "missing email, token" in excinfo.value.message
    assert "DEVFLOW_JIRA_TOKEN" in excinfo.value.describe()


def test_ticket_is_fetched_with_live_transitions() -> None:
    client = FakeJiraClient(
        issues={"KH-1": _issue("KH-1", "In Progress")},
        transitions_by_key={"KH-1": [{"id": 21, "name": "Submit for Review", "to": {"name": "Review"}}]},
    )
    tracker = TrackerAdapter(JiraAPIConnector(auth=AUTH, client=client))

    ticket = tracker.get_ticket("KH-1")

    assert ticket.status == "In Progress"
    assert ticket.description == "Use OAuth.\n"
    assert ticket.comments[0].author == "Bo"
    assert ticket.comments[0].body == "LGTM\n"
    assert ticket.transitions[0].id == "21"
    assert ticket.transitions[0].target_status == "Review"
    assert ticket.url == "https://acme.atlassian.net/browse/KH-1"


def test_not_found_is_classified() -> None:
    tracker = TrackerAdapter(JiraAPIConnector(auth=AUTH, client=FakeJiraClient()))

    with pytest.raises(WorkflowError) as excinfo:
        tracker.get_ticket("KH-404")

    assert excinfo.value.kind is ErrorKind.NOT_FOUND
    assert "Issue does not exist" in excinfo.value.message


def test_search_follows_next_page_token() -> None:
    session = FakeSession(
        [
            FakeResponse(200, {"issues": [_issue("KH-1", "To Do")], "nextPageToken": "p2"}),
            FakeResponse(200, {"issues": [_issue("KH-2", "Review")], "isLast": True}),
        ]
    )
    connector = JiraAPIConnector(auth=AUTH, client=FakeJiraClient(_session=session), timeout_s=9.0)

    rows = connector.search("assignee = currentUser()")

    assert [row["key"] for row in rows] == ["KH-1", "KH-2"]
    assert session.calls[0]["url"] == "https://acme.atlassian.net/rest/api/3/search/jql"
    assert "nextPageToken" not in session.calls[0]["params"]
    assert session.calls[1]["params"]["nextPageToken"] == "p2"
    assert session.calls[1]["timeout"] == 9.0


def test_search_http_failure_is_classified() -> None:
    session = FakeSession([FakeResponse(401, "Client must be authenticated")])
    connector = JiraAPIConnector(auth=AUTH, client=FakeJiraClient(_session=session))

    with pytest.raises(WorkflowError) as excinfo:
        connector.search("assignee = currentUser()")

    assert excinfo.value.kind is ErrorKind.AUTHENTICATION


def test_ticket_query_scopes_by_project_and_done_filter() -> None:
    assert build_ticket_jql(None) == (
        "assignee = currentUser() AND statusCategory != Done ORDER BY updated DESC"
    )
    profile = ServiceProfile("auth", "KH", "acme/auth", "auth", "auth", "us-east-1")
    assert build_ticket_jql(profile, include_all=True) == (
        'assignee = currentUser() AND project = "KH" ORDER BY updated DESC'
    )


def test_comment_is_posted_as_atlassian_document() -> None:
    session = FakeSession([FakeResponse(201, {"id": "10042"})])
    tracker = TrackerAdapter(JiraAPIConnector(auth=AUTH, client=FakeJiraClient(_session=session), timeout_s=9.0))

    tracker.add_comment("KH-1", "Pull request opened: https://github.com/acme/auth/pull/4")

    (call,) = session.calls
    assert call["method"] == "POST"
    assert call["url"] == "https://acme.atlassian.net/rest/api/3/issue/KH-1/comment"
    assert call["timeout"] == 9.0
    assert call["json"] == {
        "body": {
            "type": "doc",
            "version": 1,
            "content": [
                {
                    "type": "paragraph",
                    "content": [
                        {"type": "text", "text": "Pull request opened: https://github.com/acme/auth/pull/4"}
                    ],
                }
            ],
        }
    }


def test_multiline_comment_becomes_paragraphs() -> None:
    document = adf_document("Deployed to staging\n\nImage 2.4.1")

    assert [block["content"][0]["text"] for block in document["content"]] == [
        "Deployed to staging",
        "Image 2.4.1",
    ]


def test_rejected_comment_is_classified() -> None:
    session = FakeSession([FakeResponse(403, "You do not have permission to comment")])
    tracker = TrackerAdapter(JiraAPIConnector(auth=AUTH, client=FakeJiraClient(_session=session)))

    with pytest.raises(WorkflowError) as excinfo:
        tracker.add_comment("KH-1", "hello")

    assert excinfo.value.kind is ErrorKind.PERMISSION_DENIED
    assert "Jira comment on KH-1 failed (403)" in excinfo.value.message
