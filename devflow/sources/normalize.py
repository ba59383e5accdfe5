"""Convert validated external payloads into domain entities."""

from __future__ import annotations

from typing import Any

from devflow.interpreters.status import rollout_state
from devflow.models.entities import (
    CHECK_ERROR,
    CHECK_FAILURE,
    CHECK_PENDING,
    CHECK_QUEUED,
    CHECK_SUCCESS,
    CHECK_UNKNOWN,
    CONFLICTING,
    MERGEABLE,
    MERGEABLE_UNKNOWN,
    REVIEW_APPROVED,
    REVIEW_CHANGES_REQUESTED,
    REVIEW_COMMENTED,
    REVIEW_PENDING,
    ChangeRequest,
    CheckResult,
    DeploymentCondition,
    DeploymentSnapshot,
    ReviewRecord,
    Ticket,
    TicketComment,
    TicketTransition,
)
from devflow.models.payloads import (
    GitHubCheckRunsPayload,
    GitHubPullPayload,
    GitHubReviewPayload,
    JiraIssuePayload,
    JiraTransitionPayload,
    KubeDeploymentListPayload,
    KubeDeploymentPayload,
)

CONCLUSION_STATES = {
    "success": CHECK_SUCCESS,
    "neutral": CHECK_SUCCESS,
    "skipped": CHECK_SUCCESS,
    "failure": CHECK_FAILURE,
    "timed_out": CHECK_FAILURE,
    "action_required": CHECK_FAILURE,
    "startup_failure": CHECK_FAILURE,
    "cancelled": CHECK_ERROR,
    "stale": CHECK_ERROR,
}

STATUS_STATES = {
    "queued": CHECK_QUEUED,
    "requested": CHECK_QUEUED,
    "waiting": CHECK_QUEUED,
    "pending": CHECK_PENDING,
    "in_progress": CHECK_PENDING,
}

REVIEW_STATES = {
    "APPROVED": REVIEW_APPROVED,
    "CHANGES_REQUESTED": REVIEW_CHANGES_REQUESTED,
    "COMMENTED": REVIEW_COMMENTED,
    "PENDING": REVIEW_PENDING,
}

DIRTY_MERGEABLE_STATES = {"dirty"}


def ticket_from_payload(
    raw: dict[str, Any],
    transitions: list[dict[str, Any]] | None = None,
    url: str = "",
) -> Ticket:
    payload = JiraIssuePayload.model_validate(raw)
    fields = payload.fields
    comments = tuple(
        TicketComment(
            author=comment.author.display_name if comment.author else "",
            author_id=comment.author.account_id if comment.author else "",
            body=document_text(comment.body),
            created=comment.created,
        )
        for comment in fields.comment.comments
    )
    return Ticket(
        key=payload.key,
        title=fields.summary,
        status=fields.status.name,
        assignee=fields.assignee.display_name if fields.assignee else "",
        priority=fields.priority.name if fields.priority else "",
        created=fields.created,
        updated=fields.updated,
        description=document_text(fields.description),
        url=url,
        comments=comments,
        transitions=tuple(transition_from_payload(row) for row in (transitions or [])),
    )


def transition_from_payload(raw: dict[str, Any]) -> TicketTransition:
    payload = JiraTransitionPayload.model_validate(raw)
    return TicketTransition(id=payload.id, name=payload.name, target_status=payload.to.name)


def document_text(value: Any) -> str:
    """Flatten a plain string or an Atlassian document (REST v3) to text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "".join(document_text(item) for item in value)
    if isinstance(value, dict):
        if value.get("type") == "text":
            return str(value.get("text", ""))
        text = document_text(value.get("content"))
        if value.get("type") in {"paragraph", "heading", "listItem"}:
            return f"{text}\n"
        return text
    return str(value)


def check_state(status: str, conclusion: str | None) -> str:
    if status == "completed":
        return CONCLUSION_STATES.get((conclusion or "").lower(), CHECK_UNKNOWN)
    return STATUS_STATES.get(status.lower(), CHECK_UNKNOWN)


def collapse_reviews(
    reviews: list[GitHubReviewPayload], requested: list[str]
) -> tuple[ReviewRecord, ...]:
    """Latest decisive review per reviewer, then outstanding requests as pending.

    Comment-only reviews count only for reviewers with no decisive review.
    Dismissed reviews are dropped.
    """
    latest: dict[str, str] = {}
    for review in reviews:
        reviewer = review.user.login if review.user else ""
        state = REVIEW_STATES.get(review.state.upper())
        if not reviewer or state is None:
            continue
        if state == REVIEW_COMMENTED and latest.get(reviewer) not in {None, REVIEW_COMMENTED}:
            continue
        latest[reviewer] = state
    records = [ReviewRecord(reviewer=reviewer, state=state) for reviewer, state in latest.items()]
    for reviewer in requested:
        if reviewer and reviewer not in latest:
            records.append(ReviewRecord(reviewer=reviewer, state=REVIEW_PENDING))
    return tuple(records)


def change_request_from_payload(
    raw_pull: dict[str, Any],
    raw_reviews: list[dict[str, Any]] | None = None,
    raw_checks: dict[str, Any] | None = None,
    repo: str = "",
) -> ChangeRequest:
    pull = GitHubPullPayload.model_validate(raw_pull)
    reviews = [GitHubReviewPayload.model_validate(row) for row in (raw_reviews or [])]
    checks = GitHubCheckRunsPayload.model_validate(raw_checks or {})

    if pull.is_merged:
        state = "merged"
    elif pull.state == "open":
        state = "open"
    else:
        state = "closed"

    if pull.mergeable is False or pull.mergeable_state in DIRTY_MERGEABLE_STATES:
        mergeable = CONFLICTING
    elif pull.mergeable is True:
        mergeable = MERGEABLE
    else:
        mergeable = MERGEABLE_UNKNOWN

    base_repo = pull.base.repo.full_name if pull.base.repo else ""
    return ChangeRequest(
        number=pull.number,
        title=pull.title,
        source_branch=pull.head.ref,
        target_branch=pull.base.ref,
        author=pull.user.login if pull.user else "",
        state=state,
        mergeable=mergeable,
        checks=tuple(
            CheckResult(name=run.name, state=check_state(run.status, run.conclusion))
            for run in checks.check_runs
        ),
        reviews=collapse_reviews(reviews, [user.login for user in pull.requested_reviewers]),
        labels=tuple(label.name for label in pull.labels if label.name),
        created=pull.created_at,
        repo=repo or base_repo,
        url=pull.html_url,
        draft=pull.draft,
    )


def deployments_from_list(raw: Any) -> list[DeploymentSnapshot]:
    """Normalize a `kubectl get deployments -o json` list."""
    payload = KubeDeploymentListPayload.model_validate(raw)
    return [_deployment_snapshot(item) for item in payload.items]


def _deployment_snapshot(payload: KubeDeploymentPayload) -> DeploymentSnapshot:
    labels = payload.metadata.labels
    conditions = tuple(
        DeploymentCondition(
            type=condition.type,
            status=condition.status,
            reason=condition.reason,
            message=condition.message,
        )
        for condition in payload.status.conditions
    )
    containers = payload.spec.template.spec.containers
    image = containers[0].image if containers else ""
    return DeploymentSnapshot(
        environment=labels.get("environment") or labels.get("env") or payload.metadata.name,
        name=payload.metadata.name,
        namespace=payload.metadata.namespace,
        desired_replicas=payload.spec.replicas,
        ready_replicas=payload.status.ready_replicas,
        available_replicas=payload.status.available_replicas,
        image_tag=image_tag(image),
        rollout_state=rollout_state(conditions),
        conditions=conditions,
    )


def image_tag(image: str) -> str:
    if "@" in image:
        return image.rsplit("@", 1)[1]
    last = image.rsplit("/", 1)[-1]
    if ":" in last:
        return last.rsplit(":", 1)[1]
    return "latest" if image else ""
