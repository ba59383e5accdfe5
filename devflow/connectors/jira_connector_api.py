"""Jira Cloud connector built on the ``jira`` client (REST v3)."""

from __future__ import annotations

import logging
from typing import Any

from jira import JIRA

from devflow.connectors.auth import JIRA_REMEDY, JiraAuth
from devflow.shared.errors import ErrorKind, WorkflowError, kind_for_status

logger = logging.getLogger(__name__)

ISSUE_FIELDS = [
    "summary",
    "status",
    "assignee",
    "priority",
    "created",
    "updated",
    "description",
    "comment",
]


class JiraAPIConnector:
    def __init__(
        self,
        auth: JiraAuth,
        client: Any | None = None,
        timeout_s: float = 20.0,
    ) -> None:
        self.auth = auth
        self.timeout_s = timeout_s
        self._client = client

    @property
    def client(self) -> Any:
        if self._client is None:
            if not self.auth.configured:
                missing = ", ".join(self.auth.missing())
                raise WorkflowError(
                    ErrorKind.NOT_CONFIGURED,
                    f"Jira is not configured (missing {missing})",
                    remedy=JIRA_REMEDY,
                )
            self._client = JIRA(
                server=self.auth.server,
                basic_auth=(self.auth.email, self.auth.token),
                options={"rest_api_version": "3"},
                timeout=self.timeout_s,
                max_retries=0,
                get_server_info=False,
            )
        return self._client

    def current_account(self) -> dict[str, Any]:
        return dict(self.client.myself())

    def fetch_issue(self, key: str) -> dict[str, Any]:
        issue = self.client.issue(key, fields=",".join(ISSUE_FIELDS))
        if hasattr(issue, "raw"):
            return issue.raw
        if isinstance(issue, dict):
            return issue
        raise WorkflowError(
            ErrorKind.EXTERNAL, f"Unexpected issue payload type for {key}: {type(issue)!r}"
        )

    def list_transitions(self, key: str) -> list[dict[str, Any]]:
        rows = self.client.transitions(key)
        return [row for row in rows if isinstance(row, dict)]

    def transition_issue(self, key: str, transition_id: str) -> None:
        self.client.transition_issue(key, transition_id)

    def add_comment(self, key: str, body: str) -> dict[str, Any]:
        """Post a comment; REST v3 only accepts Atlassian document bodies."""
        url = f"{self.auth.server}/rest/api/3/issue/{key}/comment"
        response = self._session().post(
            url, json={"body": adf_document(body)}, timeout=self.timeout_s
        )
        _raise_for_response(response, f"Jira comment on {key}")
        data = response.json() or {}
        return {"id": str(data.get("id", ""))}

    def search(self, jql: str, max_results: int = 50) -> list[dict[str, Any]]:
        """Enhanced JQL search with token pagination, capped at ``max_results``."""
        session = self._session()
        url = f"{self.auth.server}/rest/api/3/search/jql"
        params: dict[str, Any] = {
            "jql": jql,
            "maxResults": min(max_results, 100),
            "fields": ",".join(ISSUE_FIELDS),
        }
        out: list[dict[str, Any]] = []
        token = None
        while len(out) < max_results:
            query = dict(params)
            if token:
                query["nextPageToken"] = token
            logger.debug("Jira search jql=%r page_token=%s", jql, token)
            response = session.get(url, params=query, timeout=self.timeout_s)
            _raise_for_response(response, "Jira search")
            data = response.json()
            out.extend(data.get("issues", []))
            token = data.get("nextPageToken")
            if not token or data.get("isLast") is True:
                break
        return out[:max_results]

    def browse_url(self, key: str) -> str:
        return f"{self.auth.server or ''}/browse/{key}"

    def _session(self) -> Any:
        session = getattr(self.client, "_session", None)
        if session is None:
            raise WorkflowError(ErrorKind.UNAVAILABLE, "Jira session unavailable")
        return session


def adf_document(text: str) -> dict[str, Any]:
    """Wrap plain text in an Atlassian document, one paragraph per non-blank line."""
    lines = [line for line in text.splitlines() if line.strip()] or [text or " "]
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {"type": "paragraph", "content": [{"type": "text", "text": line}]} for line in lines
        ],
    }


def _raise_for_response(response: Any, action: str) -> None:
    if response.status_code < 400:
        return
    text = str(response.text or "")[:200]
    raise WorkflowError(
        kind_for_status(response.status_code, text),
        f"{action} failed ({response.status_code}): {text}",
    )
