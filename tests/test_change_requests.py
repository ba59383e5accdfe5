from __future__ import annotations

import pytest

from devflow.connectors.github_connector_inmemory import InMemoryGitHubConnector
from devflow.connectors.jira_connector_inmemory import InMemoryJiraConnector
from devflow.shared.errors import ErrorKind, WorkflowError
from devflow.sources.adapters import CodeHostAdapter, TrackerAdapter
from devflow.workflow.change_requests import (
    ChangeRequestCreator,
    CreateOptions,
    default_title,
    humanize_branch,
)
from devflow.workflow.transitions import TransitionEngine

REPO = "acme/auth-service"


def _creator(
    status: str = "In Progress",
) -> tuple[InMemoryGitHubConnector, InMemoryJiraConnector, ChangeRequestCreator]:
    github = InMemoryGitHubConnector()
    jira = InMemoryJiraConnector()
    jira.add_issue("KH-123", summary="Add OAuth login", status=status)
    creator = ChangeRequestCreator(CodeHostAdapter(github), TransitionEngine(TrackerAdapter(jira)))
    return github, jira, creator


def test_branch_names_become_titles() -> None:
    assert humanize_branch("feature/KH-123-add-oauth_login") == "Add oauth login"
    assert humanize_branch("fix-typo") == "Fix typo"
    assert default_title("KH-9-fix", "KH-9", None) == "KH-9: Fix"


def test_create_links_ticket_and_moves_it_to_review() -> None:
    github, jira, creator = _creator()

    report = creator.create(REPO, "KH-123-add-auth", CreateOptions())

    created = report.change_request
    assert created.ref == f"{REPO}#1"
    assert created.title == "KH-123: Add OAuth login"
    assert created.target_branch == "staging"
    pull = github.pulls[(REPO, 1)]
    assert "Ticket: [KH-123](https://tracker.example/browse/KH-123)" in pull["body"]
    assert jira.comments_added == [("KH-123", f"Pull request opened: {created.url}")]
    assert report.ticket_status == "Review"
    assert jira.transitions_applied == [("KH-123", "Review")]
    assert report.warnings == []


def test_overrides_and_skips() -> None:
    github, jira, creator = _creator()

    report = creator.create(
        REPO,
        "KH-123-add-auth",
        CreateOptions(
            base="main",
            title="Custom",
            body="Body",
            skip_tracker_link=True,
            skip_transition=True,
        ),
    )

    pull = github.pulls[(REPO, 1)]
    assert pull["title"] == "Custom"
    assert pull["body"] == "Body"
    assert pull["base"]["ref"] == "main"
    assert report.ticket_status is None
    assert jira.comments_added == []
    assert jira.transitions_applied == []


def test_draft_keeps_ticket_status() -> None:
    github, jira, creator = _creator()

    report = creator.create(REPO, "KH-123-add-auth", CreateOptions(draft=True))

    assert github.pulls[(REPO, 1)]["draft"] is True
    assert jira.transitions_applied == []
    assert report.warnings == ["Draft pull request; KH-123 left in 'In Progress'"]


def test_transition_failure_is_reported_but_pull_request_stands() -> None:
    github, jira, creator = _creator(status="To Do")

    report = creator.create(REPO, "KH-123-add-auth", CreateOptions())

    assert (REPO, 1) in github.pulls
    assert report.ticket_status is None
    assert len(report.warnings) == 1
    assert report.warnings[0].startswith("Could not move KH-123 to Review: Conflict: ")


def test_branch_without_ticket_key_still_creates() -> None:
    github, jira, creator = _creator()

    report = creator.create(REPO, "cleanup-readme", CreateOptions())

    assert github.pulls[(REPO, 1)]["title"] == "Cleanup readme"
    assert report.ticket_key is None
    assert jira.calls == []
    assert report.warnings == ["No ticket key found in branch name; ticket not linked"]


@pytest.mark.parametrize("branch", [None, "staging"])
def test_invalid_source_branch_is_rejected_before_any_call(branch: str | None) -> None:
    github, _jira, creator = _creator()

    with pytest.raises(WorkflowError) as excinfo:
        creator.create(REPO, branch, CreateOptions())

    assert excinfo.value.kind is ErrorKind.VALIDATION
    assert github.calls == []
