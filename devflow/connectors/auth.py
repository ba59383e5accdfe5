"""Credential loading for the tracker and code host, with safe redaction."""

from __future__ import annotations

import os
from dataclasses import dataclass

JIRA_REMEDY = (
    "Set DEVFLOW_JIRA_SERVER, DEVFLOW_JIRA_EMAIL and DEVFLOW_JIRA_TOKEN "
    "(or JIRA_SERVER, JIRA_EMAIL, JIRA_API_TOKEN)."
)
GITHUB_REMEDY = "Set DEVFLOW_GITHUB_TOKEN (preferred) or GITHUB_TOKEN."


@dataclass(frozen=True)
class GitHubAuth:
    token: str | None
    api_url: str = "https://api.github.com"

    @property
    def configured(self) -> bool:
        return bool(self.token)

    def redacted(self) -> dict[str, str]:
        return {"token": _redact_token(self.token), "api_url": self.api_url}


@dataclass(frozen=True)
class JiraAuth:
    server: str | None
    email: str | None
    token: str | None

    @property
    def configured(self) -> bool:
        return bool(self.server and self.email and self.token)

    def missing(self) -> list[str]:
        fields = {"server": self.server, "email": self.email, "token": self.token}
        return [name for name, value in fields.items() if not value]

    def redacted(self) -> dict[str, str]:
        return {
            "server": self.server or "unset",
            "email": self.email or "unset",
            "token": _redact_token(self.token),
        }


def load_github_auth_from_env(env: dict[str, str] | None = None) -> GitHubAuth:
    env_map = os.environ if env is None else env
    token = _clean(env_map.get("DEVFLOW_GITHUB_TOKEN")) or _clean(env_map.get("GITHUB_TOKEN"))
    api_url = _clean(env_map.get("DEVFLOW_GITHUB_API_URL")) or "https://api.github.com"
    return GitHubAuth(token=token, api_url=api_url.rstrip("/"))


def load_jira_auth_from_env(env: dict[str, str] | None = None) -> JiraAuth:
    env_map = os.environ if env is None else env
    server = _clean(env_map.get("DEVFLOW_JIRA_SERVER")) or _clean(env_map.get("JIRA_SERVER"))
    return JiraAuth(
        server=server.rstrip("/") if server else None,
        email=_clean(env_map.get("DEVFLOW_JIRA_EMAIL")) or _clean(env_map.get("JIRA_EMAIL")),
        token=_clean(env_map.get("DEVFLOW_JIRA_TOKEN")) or _clean(env_map.get("JIRA_API_TOKEN")),
    )


def _clean(token: str | None) -> str | None:
    if token is None:
        return None
    value = token.strip()
    return value or None


def _redact_token(token: str | None) -> str:
    if token is None:
        return "unset"
    if len(token) <= 8:
        return "***"
    return f"{token[:4]}...{token[-4:]}"
