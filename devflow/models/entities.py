"""Domain entities shared by adapters, interpreters, and workflow engines."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar


class CIStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    PENDING = "pending"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        return CI_LABELS[self]


class ReviewStatus(str, Enum):
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    PENDING = "pending"
    NO_REVIEW = "no_review"

    @property
    def label(self) -> str:
        return REVIEW_LABELS[self]


class RolloutState(str, Enum):
    DEPLOYED = "deployed"
    PENDING = "pending"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        return ROLLOUT_LABELS[self]


CI_LABELS = {
    CIStatus.PASS: "Pass",
    CIStatus.FAIL: "Fail",
    CIStatus.PENDING: "Pending",
    CIStatus.UNKNOWN: "Unknown",
}

REVIEW_LABELS = {
    ReviewStatus.APPROVED: "Approved",
    ReviewStatus.CHANGES_REQUESTED: "Changes Requested",
    ReviewStatus.PENDING: "Pending",
    ReviewStatus.NO_REVIEW: "No Review",
}

ROLLOUT_LABELS = {
    RolloutState.DEPLOYED: "Deployed",
    RolloutState.PENDING: "Pending",
    RolloutState.FAILED: "Failed",
    RolloutState.UNKNOWN: "Unknown",
}

# Normalized CheckResult.state values.
CHECK_SUCCESS = "success"
CHECK_FAILURE = "failure"
CHECK_ERROR = "error"
CHECK_PENDING = "pending"
CHECK_QUEUED = "queued"
CHECK_UNKNOWN = "unknown"

# Normalized ReviewRecord.state values.
REVIEW_APPROVED = "approved"
REVIEW_CHANGES_REQUESTED = "changes_requested"
REVIEW_PENDING = "pending"
REVIEW_COMMENTED = "commented"

MERGEABLE = "mergeable"
CONFLICTING = "conflicting"
MERGEABLE_UNKNOWN = "unknown"


@dataclass(frozen=True)
class ServiceProfile:
    name: str
    tracker_project_key: str
    repo_identifier: str
    cluster_name: str
    namespace: str
    region: str


@dataclass(frozen=True)
class TicketTransition:
    id: str
    name: str
    target_status: str


@dataclass(frozen=True)
class TicketComment:
    author: str
    author_id: str
    body: str
    created: str


@dataclass(frozen=True)
class Ticket:
    key: str
    title: str
    status: str
    assignee: str = ""
    priority: str = ""
    created: str = ""
    updated: str = ""
    description: str = ""
    url: str = ""
    comments: tuple[TicketComment, ...] = ()
    transitions: tuple[TicketTransition, ...] = ()

    @property
    def project_key(self) -> str:
        return self.key.split("-", 1)[0]


@dataclass(frozen=True)
class CheckResult:
    name: str
    state: str


@dataclass(frozen=True)
class ReviewRecord:
    reviewer: str
    state: str


@dataclass(frozen=True)
class ChangeRequest:
    number: int
    title: str
    source_branch: str
    target_branch: str
    author: str
    state: str
    mergeable: str = MERGEABLE_UNKNOWN
    checks: tuple[CheckResult, ...] = ()
    reviews: tuple[ReviewRecord, ...] = ()
    labels: tuple[str, ...] = ()
    created: str = ""
    repo: str = ""
    url: str = ""
    draft: bool = False

    @property
    def ref(self) -> str:
        return f"{self.repo}#{self.number}" if self.repo else f"#{self.number}"


@dataclass(frozen=True)
class DeploymentCondition:
    type: str
    status: str
    reason: str = ""
    message: str = ""


@dataclass(frozen=True)
class DeploymentSnapshot:
    environment: str
    name: str
    namespace: str
    desired_replicas: int
    ready_replicas: int
    available_replicas: int
    image_tag: str
    rollout_state: RolloutState
    conditions: tuple[DeploymentCondition, ...] = ()


class ActionCategory(int, Enum):
    FAILED_DEPLOYMENT = 0
    REVIEW_REQUESTED = 1
    TICKET_COMMENT = 2


@dataclass(frozen=True)
class ActionItem:
    category: ActionCategory
    text: str

    @property
    def rank(self) -> int:
        return int(self.category)


class SectionStatus(str, Enum):
    POPULATED = "populated"
    EMPTY = "empty"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


T = TypeVar("T")


@dataclass(frozen=True)
class SectionResult(Generic[T]):
    """Outcome of one independently fetched dashboard section."""

    name: str
    status: SectionStatus
    items: tuple[T, ...] = ()
    message: str = ""
    error_kind: str = ""

    @classmethod
    def from_items(cls, name: str, items: list[T] | tuple[T, ...]) -> "SectionResult[T]":
        rows = tuple(items)
        return cls(
            name=name,
            status=SectionStatus.POPULATED if rows else SectionStatus.EMPTY,
            items=rows,
        )

    @property
    def ok(self) -> bool:
        return self.status in {SectionStatus.POPULATED, SectionStatus.EMPTY}


@dataclass(frozen=True)
class ChangeRequestFilter:
    mine_only: bool = True
    team_wide: bool = False
    review_requested_only: bool = False
    ready_only: bool = False

