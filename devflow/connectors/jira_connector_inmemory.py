"""In-memory issue-tracker connector for deterministic tests."""

from __future__ import annotations

import copy
from typing import Any

from devflow.shared.errors import ErrorKind, WorkflowError

# status -> [(transition id, transition name, target status)]
DEFAULT_WORKFLOW: dict[str, list[tuple[str, str, str]]] = {
    "To Do": [("11", "Start Progress", "In Progress"), ("51", "Block", "Blocked")],
    "In Progress": [
        ("21", "Submit for Review", "Review"),
        ("51", "Block", "Blocked"),
        ("61", "Stop Progress", "To Do"),
    ],
    "Review": [
        ("31", "Deploy to Staging", "Testing Staging"),
        ("41", "Back to Progress", "In Progress"),
    ],
    "Testing Staging": [("71", "Deploy to Prod", "Testing Prod"), ("41", "Back to Progress", "In Progress")],
    "Testing Prod": [("81", "Done", "Done"), ("41", "Back to Progress", "In Progress")],
    "Blocked": [("91", "Unblock", "In Progress"), ("99", "Won't do", "Won't do")],
    "Done": [],
    "Won't do": [],
}


class InMemoryJiraConnector:
    """Issues held as raw REST-shaped dictionaries with a fixed workflow graph."""

    def __init__(
        self,
        account_id: str = "acc-me",
        display_name: str = "Me",
        workflow: dict[str, list[tuple[str, str, str]]] | None = None,
    ) -> None:
        self.account = {"accountId": account_id, "displayName": display_name}
        self.workflow = workflow if workflow is not None else DEFAULT_WORKFLOW
        self.issues: dict[str, dict[str, Any]] = {}
        self.comments_added: list[tuple[str, str]] = []
        self.transitions_applied: list[tuple[str, str]] = []
        self.calls: list[str] = []
        self.failures: dict[str, BaseException] = {}

    def add_issue(
        self,
        key: str,
        *,
        summary: str = "",
        status: str = "To Do",
        assignee: str | None = "acc-me",
        priority: str = "Medium",
        updated: str = "2026-01-01T00:00:00.000+0000",
        comments: list[tuple[str, str, str]] | None = None,
    ) -> dict[str, Any]:
        """Register an issue; ``comments`` rows are (author account id, author name, body)."""
        issue = {
            "key": key.upper(),
            "fields": {
                "summary": summary or key,
                "status": {"name": status},
                "assignee": (
                    {"accountId": assignee, "displayName": assignee} if assignee else None
                ),
                "priority": {"name": priority},
                "created": "2026-01-01T00:00:00.000+0000",
                "updated": updated,
                "description": "",
                "comment": {
                    "comments": [
                        {
                            "author": {"accountId": author_id, "displayName": author_name},
                            "body": body,
                            "created": "2026-01-02T00:00:00.000+0000",
                        }
                        for author_id, author_name, body in (comments or [])
                    ],
                },
            },
        }
        self.issues[key.upper()] = issue
        return issue

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        failure = self.failures.get(operation)
        if failure is not None:
            raise failure

    def _issue(self, key: str) -> dict[str, Any]:
        issue = self.issues.get(key.upper())
        if issue is None:
            raise WorkflowError(ErrorKind.NOT_FOUND, f"Issue {key} does not exist")
        return issue

    def current_account(self) -> dict[str, Any]:
        self._enter("current_account")
        return dict(self.account)

    def fetch_issue(self, key: str) -> dict[str, Any]:
        self._enter("fetch_issue")
        return copy.deepcopy(self._issue(key))

    def list_transitions(self, key: str) -> list[dict[str, Any]]:
        self._enter("list_transitions")
        status = self._issue(key)["fields"]["status"]["name"]
        return [
            {"id": transition_id, "name": name, "to": {"name": target}}
            for transition_id, name, target in self.workflow.get(status, [])
        ]

    def transition_issue(self, key: str, transition_id: str) -> None:
        self._enter("transition_issue")
        issue = self._issue(key)
        status = issue["fields"]["status"]["name"]
        for candidate_id, _name, target in self.workflow.get(status, []):
            if candidate_id == str(transition_id):
                issue["fields"]["status"] = {"name": target}
                self.transitions_applied.append((key.upper(), target))
                return
        raise WorkflowError(
            ErrorKind.CONFLICT, f"Transition {transition_id} is not valid for {key} in '{status}'"
        )

    def add_comment(self, key: str, body: str) -> dict[str, Any]:
        self._enter("add_comment")
        issue = self._issue(key)
        issue["fields"]["comment"]["comments"].append(
            {"author": dict(self.account), "body": body, "created": "2026-01-03T00:00:00.000+0000"}
        )
        self.comments_added.append((key.upper(), body))
        return {"id": str(len(self.comments_added))}

    def search(self, jql: str, max_results: int = 50) -> list[dict[str, Any]]:
        """Honours the clauses the adapters emit: project, assignee, and done filtering."""
        self._enter("search")
        rows = []
        lowered = jql.lower()
        for key in sorted(self.issues):
            issue = self.issues[key]
            fields = issue["fields"]
            if "assignee = currentuser()" in lowered:
                assignee = fields.get("assignee") or {}
                if assignee.get("accountId") != self.account["accountId"]:
                    continue
            if "statuscategory != done" in lowered and fields["status"]["name"] in {
                "Done",
                "Won't do",
            }:
                continue
            project_clause = f'project = "{key.split("-", 1)[0].lower()}"'
            if "project =" in lowered and project_clause not in lowered:
                continue
            rows.append(copy.deepcopy(issue))
        return rows[:max_results]

    def browse_url(self, key: str) -> str:
        return f"https://tracker.example/browse/{key}"
