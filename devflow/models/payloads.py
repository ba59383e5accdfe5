"""Narrow, validated shapes for the external JSON that crosses the adapter boundary."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


# --- GitHub -----------------------------------------------------------------


class GitHubUser(_Payload):
    login: str = ""


class GitHubLabel(_Payload):
    name: str = ""


class GitHubRepo(_Payload):
    full_name: str = ""


class GitHubRef(_Payload):
    ref: str = ""
    sha: str = ""
    repo: GitHubRepo | None = None


class GitHubPullPayload(_Payload):
    number: int = Field(ge=1)
    title: str = ""
    state: str = "open"
    merged: bool = False
    merged_at: str | None = None
    draft: bool = False
    mergeable: bool | None = None
    mergeable_state: str = ""
    head: GitHubRef
    base: GitHubRef
    user: GitHubUser | None = None
    labels: list[GitHubLabel] = Field(default_factory=list)
    requested_reviewers: list[GitHubUser] = Field(default_factory=list)
    created_at: str = ""
    html_url: str = ""

    @property
    def is_merged(self) -> bool:
        return self.merged or bool(self.merged_at)


class GitHubReviewPayload(_Payload):
    user: GitHubUser | None = None
    state: str = ""
    submitted_at: str | None = None


class GitHubCheckRunPayload(_Payload):
    name: str = ""
    status: str = ""
    conclusion: str | None = None


class GitHubCheckRunsPayload(_Payload):
    total_count: int = 0
    check_runs: list[GitHubCheckRunPayload] = Field(default_factory=list)


class GitHubSearchItem(_Payload):
    number: int = Field(ge=1)
    title: str = ""
    repository_url: str = ""

    @property
    def repo(self) -> str:
        marker = "/repos/"
        if marker not in self.repository_url:
            return ""
        return self.repository_url.split(marker, 1)[1].strip("/")


class GitHubSearchPayload(_Payload):
    total_count: int = 0
    items: list[GitHubSearchItem] = Field(default_factory=list)


# --- Kubernetes -------------------------------------------------------------


class KubeMetadata(_Payload):
    name: str
    namespace: str = ""
    labels: dict[str, str] = Field(default_factory=dict)


class KubeContainer(_Payload):
    name: str = ""
    image: str = ""


class KubePodSpec(_Payload):
    containers: list[KubeContainer] = Field(default_factory=list)


class KubePodTemplate(_Payload):
    spec: KubePodSpec = Field(default_factory=KubePodSpec)


class KubeDeploymentSpec(_Payload):
    replicas: int = 1
    template: KubePodTemplate = Field(default_factory=KubePodTemplate)


class KubeCondition(_Payload):
    type: str
    status: str = "Unknown"
    reason: str = ""
    message: str = ""


class KubeDeploymentStatus(_Payload):
    ready_replicas: int = Field(default=0, alias="readyReplicas")
    available_replicas: int = Field(default=0, alias="availableReplicas")
    conditions: list[KubeCondition] = Field(default_factory=list)


class KubeDeploymentPayload(_Payload):
    metadata: KubeMetadata
    spec: KubeDeploymentSpec = Field(default_factory=KubeDeploymentSpec)
    status: KubeDeploymentStatus = Field(default_factory=KubeDeploymentStatus)


class KubeDeploymentListPayload(_Payload):
    items: list[KubeDeploymentPayload]


# --- Jira -------------------------------------------------------------------


class JiraNamed(_Payload):
    name: str = ""


class JiraAccount(_Payload):
    display_name: str = Field(default="", alias="displayName")
    account_id: str = Field(default="", alias="accountId")


class JiraComment(_Payload):
    author: JiraAccount | None = None
    body: Any = ""
    created: str = ""


class JiraCommentBlock(_Payload):
    comments: list[JiraComment] = Field(default_factory=list)
    total: int | None = None


class JiraIssueFields(_Payload):
    summary: str = ""
    status: JiraNamed
    assignee: JiraAccount | None = None
    priority: JiraNamed | None = None
    created: str = ""
    updated: str = ""
    description: Any = None
    comment: JiraCommentBlock = Field(default_factory=JiraCommentBlock)


class JiraIssuePayload(_Payload):
    key: str
    fields: JiraIssueFields

    @field_validator("key")
    @classmethod
    def _uppercase_key(cls, value: str) -> str:
        return value.strip().upper()


class JiraTransitionPayload(_Payload):
    id: str
    name: str
    to: JiraNamed = Field(default_factory=JiraNamed)

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return str(value)
