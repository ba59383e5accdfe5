"""Issue-tracker connector contract and environment-driven factory."""

from __future__ import annotations

import os
from typing import Any, Protocol

from devflow.connectors.auth import JiraAuth, load_jira_auth_from_env


class JiraConnector(Protocol):
    """Connector contract for all issue-tracker implementations."""

    def current_account(self) -> dict[str, Any]: ...

    def fetch_issue(self, key: str) -> dict[str, Any]: ...

    def list_transitions(self, key: str) -> list[dict[str, Any]]: ...

    def transition_issue(self, key: str, transition_id: str) -> None: ...

    def add_comment(self, key: str, body: str) -> dict[str, Any]: ...

    def search(self, jql: str, max_results: int = 50) -> list[dict[str, Any]]: ...

    def browse_url(self, key: str) -> str: ...


def build_tracker_connector_from_env(
    env: dict[str, str] | None = None,
    *,
    timeout_s: float = 20.0,
) -> JiraConnector:
    env_map = os.environ if env is None else env
    connector_type = (env_map.get("DEVFLOW_TRACKER_CONNECTOR") or "jira").strip().lower()

    if connector_type == "in_memory":
        from devflow.connectors.jira_connector_inmemory import InMemoryJiraConnector

        return InMemoryJiraConnector()

    from devflow.connectors.jira_connector_api import JiraAPIConnector

    return JiraAPIConnector(auth=load_jira_auth_from_env(env_map), timeout_s=timeout_s)


__all__ = ["JiraAuth", "JiraConnector", "build_tracker_connector_from_env"]
