"""GitHub REST API connector implementation."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import requests

from devflow.connectors.auth import GITHUB_REMEDY, GitHubAuth
from devflow.connectors.github_connector import MERGE_METHODS
from devflow.shared.errors import ErrorKind, WorkflowError, kind_for_status

logger = logging.getLogger(__name__)


class GitHubAPIConnector:
    def __init__(
        self,
        auth: GitHubAuth | None = None,
        session: requests.Session | None = None,
        timeout_s: float = 20.0,
    ) -> None:
        self.auth = auth or GitHubAuth(token=None)
        self.base_url = self.auth.api_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout_s = timeout_s
        self._login: str | None = None

    def current_user(self) -> str:
        if self._login is None:
            payload = self._request("GET", "/user")
            self._login = str((payload or {}).get("login", "")).strip()
        return self._login

    def get_pull(self, repo: str, number: int) -> dict[str, Any]:
        return self._request("GET", f"/repos/{repo}/pulls/{int(number)}")

    def list_pulls(
        self, repo: str, *, state: str = "open", head: str | None = None
    ) -> list[dict[str, Any]]:
        params = {"state": state, "per_page": "100"}
        if head:
            owner = repo.split("/", 1)[0]
            params["head"] = head if ":" in head else f"{owner}:{head}"
        response = self._request("GET", f"/repos/{repo}/pulls", params=params)
        if isinstance(response, list):
            return response
        return []

    def list_reviews(self, repo: str, number: int) -> list[dict[str, Any]]:
        response = self._request(
            "GET", f"/repos/{repo}/pulls/{int(number)}/reviews", params={"per_page": "100"}
        )
        if isinstance(response, list):
            return response
        return []

    def list_check_runs(self, repo: str, sha: str) -> dict[str, Any]:
        return self._request(
            "GET", f"/repos/{repo}/commits/{sha}/check-runs", params={"per_page": "100"}
        )

    def search_pulls(self, query: str) -> dict[str, Any]:
        return self._request(
            "GET",
            "/search/issues",
            params={"q": query, "per_page": "50", "sort": "updated", "order": "desc"},
        )

    def create_pull(self, repo: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", f"/repos/{repo}/pulls", json=payload)

    def merge_pull(self, repo: str, number: int, method: str) -> dict[str, Any]:
        if method not in MERGE_METHODS:
            raise WorkflowError(ErrorKind.VALIDATION, f"Unsupported merge method: {method}")
        return self._request(
            "PUT",
            f"/repos/{repo}/pulls/{int(number)}/merge",
            json={"merge_method": method},
        )

    def delete_branch(self, repo: str, branch: str) -> None:
        self._request("DELETE", f"/repos/{repo}/git/refs/heads/{quote(branch, safe='/')}")

    def _request(
        self,
        method: str,
        path: str,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> Any:
        if not self.auth.token:
            raise WorkflowError(
                ErrorKind.NOT_CONFIGURED, "GitHub token is not configured", remedy=GITHUB_REMEDY
            )
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "Authorization": f"Bearer {self.auth.token}",
        }
        logger.debug("GitHub %s %s params=%s", method, path, params)
        response = self.session.request(
            method=method,
            url=f"{self.base_url}{path}",
            headers=headers,
            json=json,
            params=params,
            timeout=self.timeout_s,
        )

        if response.status_code >= 400:
            message = _error_message(response)
            if _looks_like_rate_limit(response):
                kind = ErrorKind.UNAVAILABLE
                message = f"rate limited: {message}"
            else:
                kind = kind_for_status(response.status_code, message)
            raise WorkflowError(
                kind, f"GitHub {method} {path} failed ({response.status_code}): {message}"
            )
        if not response.content:
            return {}
        return response.json()


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return str(getattr(response, "text", "") or "").strip()[:200]
    if isinstance(payload, dict):
        message = str(payload.get("message", "")).strip()
        errors = payload.get("errors")
        if isinstance(errors, list) and errors:
            details = "; ".join(
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in errors
            )
            return f"{message} ({details})" if message else details
        return message
    return str(payload)[:200]


def _looks_like_rate_limit(response: requests.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    remaining = (response.headers or {}).get("X-RateLimit-Remaining")
    if remaining == "0":
        return True
    return "rate limit" in _error_message(response).lower()
