"""Pure mappings from fetched source fields to domain states and display labels."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from devflow.models.entities import (
    CHECK_ERROR,
    CHECK_FAILURE,
    CHECK_PENDING,
    CHECK_QUEUED,
    CHECK_SUCCESS,
    CONFLICTING,
    REVIEW_APPROVED,
    REVIEW_CHANGES_REQUESTED,
    REVIEW_PENDING,
    ChangeRequest,
    CheckResult,
    CIStatus,
    DeploymentCondition,
    ReviewRecord,
    ReviewStatus,
    RolloutState,
)

DEADLINE_EXCEEDED_REASON = "ProgressDeadlineExceeded"


def rollup_ci(checks: Sequence[CheckResult]) -> CIStatus:
    """Collapse ordered check results into one CI state.

    Failure has the highest precedence; an empty list says nothing about CI.
    """
    if not checks:
        return CIStatus.UNKNOWN
    states = [check.state for check in checks]
    if any(state in {CHECK_FAILURE, CHECK_ERROR} for state in states):
        return CIStatus.FAIL
    if all(state == CHECK_SUCCESS for state in states):
        return CIStatus.PASS
    if any(state in {CHECK_PENDING, CHECK_QUEUED} for state in states):
        return CIStatus.PENDING
    return CIStatus.UNKNOWN


def review_state(reviews: Iterable[ReviewRecord]) -> ReviewStatus:
    states = {review.state for review in reviews}
    if REVIEW_CHANGES_REQUESTED in states:
        return ReviewStatus.CHANGES_REQUESTED
    if REVIEW_APPROVED in states:
        return ReviewStatus.APPROVED
    if REVIEW_PENDING in states:
        return ReviewStatus.PENDING
    return ReviewStatus.NO_REVIEW


def rollout_state(conditions: Sequence[DeploymentCondition]) -> RolloutState:
    """Derive rollout health from deployment conditions.

    Available is consulted before Progressing and the first matching rule wins:
    Available=True is Deployed; Available=False is Pending unless the rollout
    exceeded its progress deadline, which is Failed. Without an Available
    condition only a deadline-exceeded Progressing condition is meaningful.
    """
    by_type = {condition.type: condition for condition in conditions}
    available = by_type.get("Available")
    progressing = by_type.get("Progressing")
    deadline_exceeded = (
        progressing is not None and progressing.reason == DEADLINE_EXCEEDED_REASON
    )

    if available is not None:
        if available.status == "True":
            return RolloutState.DEPLOYED
        return RolloutState.FAILED if deadline_exceeded else RolloutState.PENDING
    if deadline_exceeded:
        return RolloutState.FAILED
    return RolloutState.UNKNOWN


def is_ready_to_merge(change_request: ChangeRequest) -> bool:
    states = [review.state for review in change_request.reviews]
    return (
        change_request.state == "open"
        and change_request.mergeable != CONFLICTING
        and rollup_ci(change_request.checks) is CIStatus.PASS
        and REVIEW_APPROVED in states
        and REVIEW_CHANGES_REQUESTED not in states
    )
