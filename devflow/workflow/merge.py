"""Verify -> Merge -> Transition workflow for a single change request."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from devflow.interpreters.status import review_state, rollup_ci
from devflow.models.entities import (
    CONFLICTING,
    MERGEABLE_UNKNOWN,
    ChangeRequest,
    CIStatus,
    ReviewStatus,
)
from devflow.shared.errors import ErrorKind, WorkflowError
from devflow.sources.adapters import CodeHostAdapter
from devflow.workflow.transitions import TransitionEngine, extract_ticket_key

logger = logging.getLogger(__name__)

MERGED_TICKET_STATUS = "Testing Staging"
MERGED_TICKET_SHORTHAND = "staging"


class MergeStage(str, Enum):
    VERIFY = "verify"
    MERGE = "merge"
    TRANSITION = "transition"
    COMPLETE = "complete"


@dataclass
class MergeReport:
    """What happened; ``succeeded`` reflects the merge alone."""

    succeeded: bool = False
    stage: MergeStage = MergeStage.VERIFY
    change_request: ChangeRequest | None = None
    method: str = "squash"
    error: WorkflowError | None = None
    warnings: list[str] = field(default_factory=list)
    branch_deleted: bool = False
    ticket_key: str | None = None
    ticket_status: str | None = None


def manual_transition_command(key: str) -> str:
    return f"devflow ticket {key} --move-to {MERGED_TICKET_SHORTHAND}"


def verification_warnings(change_request: ChangeRequest) -> list[str]:
    """Informational findings; none of them block the merge."""
    warnings: list[str] = []
    ci = rollup_ci(change_request.checks)
    if ci is CIStatus.PENDING:
        warnings.append("CI checks still running")
    elif ci is CIStatus.FAIL:
        warnings.append("CI checks failing")
    reviews = review_state(change_request.reviews)
    if reviews is ReviewStatus.CHANGES_REQUESTED:
        warnings.append("Changes requested by reviewers")
    elif reviews is not ReviewStatus.APPROVED:
        warnings.append("No approving review yet")
    if change_request.mergeable == MERGEABLE_UNKNOWN:
        warnings.append("Mergeability not yet computed")
    if change_request.draft:
        warnings.append("Pull request is still a draft")
    return warnings


class MergeOrchestrator:
    def __init__(self, code_host: CodeHostAdapter, engine: TransitionEngine) -> None:
        self.code_host = code_host
        self.engine = engine

    def verify(
        self, repo: str, number: int | None = None, branch: str | None = None
    ) -> ChangeRequest:
        if number is not None:
            change_request = self.code_host.get_change_request(repo, number)
        elif branch:
            change_request = self.code_host.find_change_request_for_branch(repo, branch)
        else:
            raise WorkflowError(
                ErrorKind.VALIDATION,
                "No pull request number given and the current branch is unknown",
            )

        if change_request.state != "open":
            raise WorkflowError(
                ErrorKind.CONFLICT,
                f"Pull request {change_request.ref} is {change_request.state}, not open",
            )
        if change_request.mergeable == CONFLICTING:
            raise WorkflowError(
                ErrorKind.CONFLICT,
                f"Pull request {change_request.ref} has merge conflicts with "
                f"{change_request.target_branch}",
            )
        return change_request

    def run(
        self,
        repo: str,
        *,
        number: int | None = None,
        branch: str | None = None,
        use_merge_commit: bool = False,
        keep_branch: bool = False,
        skip_transition: bool = False,
    ) -> MergeReport:
        report = MergeReport(method="merge" if use_merge_commit else "squash")

        try:
            change_request = self.verify(repo, number=number, branch=branch)
        except WorkflowError as exc:
            report.error = exc
            return report
        report.change_request = change_request
        report.warnings.extend(verification_warnings(change_request))

        report.stage = MergeStage.MERGE
        try:
            result = self.code_host.merge(repo, change_request.number, report.method)
        except WorkflowError as exc:
            report.error = exc
            return report
        if result.get("merged") is False:
            report.error = WorkflowError(
                ErrorKind.CONFLICT, str(result.get("message") or "GitHub refused the merge")
            )
            return report
        report.succeeded = True
        logger.info("Merged %s with %s", change_request.ref, report.method)

        if not keep_branch:
            try:
                self.code_host.delete_branch(repo, change_request.source_branch)
                report.branch_deleted = True
            except WorkflowError as exc:
                report.warnings.append(
                    f"Merged, but branch '{change_request.source_branch}' was not deleted: {exc}"
                )

        report.stage = MergeStage.TRANSITION
        if not skip_transition:
            self._transition_ticket(change_request, report)
        report.stage = MergeStage.COMPLETE
        return report

    def _transition_ticket(self, change_request: ChangeRequest, report: MergeReport) -> None:
        key = extract_ticket_key(change_request.source_branch, change_request.title)
        report.ticket_key = key
        if key is None:
            report.warnings.append("No ticket key found in branch or title; ticket not moved")
            return
        try:
            _ticket, status = self.engine.transition_key(key, MERGED_TICKET_STATUS)
        except WorkflowError as exc:
            logger.warning("Post-merge transition of %s failed: %s", key, exc)
            report.warnings.append(
                f"Merged, but could not move {key} to {MERGED_TICKET_STATUS}: {exc}. "
                f"Run manually: {manual_transition_command(key)}"
            )
            return
        report.ticket_status = status
