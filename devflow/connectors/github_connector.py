"""Code-host connector contract and environment-driven factory."""

from __future__ import annotations

import os
from typing import Any, Protocol

from devflow.connectors.auth import GitHubAuth, load_github_auth_from_env

MERGE_METHODS = {"squash", "merge", "rebase"}


class GitHubConnector(Protocol):
    """Connector contract for all code-host implementations.

    Methods return raw JSON-shaped payloads; adapters validate them.
    Failures are raised as ``WorkflowError`` or left to ``classify_failure``.
    """

    def current_user(self) -> str: ...

    def get_pull(self, repo: str, number: int) -> dict[str, Any]: ...

    def list_pulls(
        self, repo: str, *, state: str = "open", head: str | None = None
    ) -> list[dict[str, Any]]: ...

    def list_reviews(self, repo: str, number: int) -> list[dict[str, Any]]: ...

    def list_check_runs(self, repo: str, sha: str) -> dict[str, Any]: ...

    def search_pulls(self, query: str) -> dict[str, Any]: ...

    def create_pull(self, repo: str, payload: dict[str, Any]) -> dict[str, Any]: ...

    def merge_pull(self, repo: str, number: int, method: str) -> dict[str, Any]: ...

    def delete_branch(self, repo: str, branch: str) -> None: ...


def build_codehost_connector_from_env(
    env: dict[str, str] | None = None,
    *,
    timeout_s: float = 20.0,
) -> GitHubConnector:
    env_map = os.environ if env is None else env
    connector_type = (env_map.get("DEVFLOW_CODEHOST_CONNECTOR") or "api").strip().lower()

    if connector_type == "in_memory":
        from devflow.connectors.github_connector_inmemory import InMemoryGitHubConnector

        return InMemoryGitHubConnector()

    from devflow.connectors.github_connector_api import GitHubAPIConnector

    auth = load_github_auth_from_env(env_map)
    return GitHubAPIConnector(auth=auth, timeout_s=timeout_s)


__all__ = [
    "GitHubAuth",
    "GitHubConnector",
    "MERGE_METHODS",
    "build_codehost_connector_from_env",
]
