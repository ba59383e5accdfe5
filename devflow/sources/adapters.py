"""Source adapters: one per external system, each isolating its own failures.

Adapter methods that back a dashboard section return a ``SectionResult`` and
never raise. The remaining methods raise classified ``WorkflowError``s for the
workflow engines to handle.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, TypeVar

from devflow.connectors.github_connector import GitHubConnector
from devflow.connectors.jira_connector import JiraConnector
from devflow.connectors.kube_connector import KubeConnector
from devflow.interpreters.status import is_ready_to_merge
from devflow.models.entities import (
    ChangeRequest,
    ChangeRequestFilter,
    DeploymentSnapshot,
    SectionResult,
    SectionStatus,
    ServiceProfile,
    Ticket,
)
from devflow.models.payloads import GitHubSearchPayload
from devflow.shared.errors import ErrorKind, WorkflowError, classify_failure
from devflow.sources.normalize import (
    change_request_from_payload,
    deployments_from_list,
    ticket_from_payload,
)

logger = logging.getLogger(__name__)

R = TypeVar("R")

TICKETS_SECTION = "tickets"
CHANGE_REQUESTS_SECTION = "change_requests"
REVIEW_REQUESTS_SECTION = "review_requests"
DEPLOYMENTS_SECTION = "deployments"


def guarded(source: str, call: Callable[[], R]) -> R:
    """Run a connector call, re-raising any failure as a classified WorkflowError."""
    try:
        return call()
    except WorkflowError:
        raise
    except Exception as exc:
        raise classify_failure(exc, source) from exc


def section_from_error(name: str, error: WorkflowError) -> SectionResult[Any]:
    status = (
        SectionStatus.UNAVAILABLE
        if error.kind.section_marker == "[Unavailable]"
        else SectionStatus.ERROR
    )
    return SectionResult(
        name=name, status=status, message=error.describe(), error_kind=error.kind.value
    )


def isolated_section(name: str, fetch: Callable[[], list[R]]) -> SectionResult[R]:
    try:
        return SectionResult.from_items(name, fetch())
    except Exception as exc:
        error = classify_failure(exc)
        logger.warning("Section %s failed: %s", name, error)
        return section_from_error(name, error)


class TrackerAdapter:
    source = "jira"

    def __init__(self, connector: JiraConnector) -> None:
        self.connector = connector
        self.account_id: str | None = None

    def current_account_id(self) -> str:
        if self.account_id is None:
            account = guarded(self.source, self.connector.current_account)
            self.account_id = str(account.get("accountId", "")).strip()
        return self.account_id

    def get_ticket(self, key: str) -> Ticket:
        """Fetch a ticket together with its live transition set."""
        raw = guarded(self.source, lambda: self.connector.fetch_issue(key))
        transitions = guarded(self.source, lambda: self.connector.list_transitions(key))
        return guarded(
            self.source,
            lambda: ticket_from_payload(raw, transitions, url=self.connector.browse_url(key)),
        )

    def apply_transition(self, key: str, transition_id: str) -> None:
        guarded(self.source, lambda: self.connector.transition_issue(key, transition_id))

    def add_comment(self, key: str, body: str) -> None:
        guarded(self.source, lambda: self.connector.add_comment(key, body))

    def browse_url(self, key: str) -> str:
        return self.connector.browse_url(key)

    def list_tickets(self, profile: ServiceProfile | None, include_all: bool = False) -> list[Ticket]:
        jql = build_ticket_jql(profile, include_all)
        try:
            self.current_account_id()
        except WorkflowError as exc:
            # Only comment attribution needs the id; the query uses currentUser().
            logger.warning("Could not resolve the Jira account, comments stay unfiltered: %s", exc)
        rows = guarded(self.source, lambda: self.connector.search(jql))
        tickets = [
            guarded(
                self.source,
                lambda row=row: ticket_from_payload(
                    row, url=self.connector.browse_url(str(row.get("key", "")))
                ),
            )
            for row in rows
        ]
        logger.debug("Fetched %s tickets for jql=%r", len(tickets), jql)
        return tickets

    def fetch_tickets(
        self, profile: ServiceProfile | None, include_all: bool = False
    ) -> SectionResult[Ticket]:
        return isolated_section(TICKETS_SECTION, lambda: self.list_tickets(profile, include_all))


def build_ticket_jql(profile: ServiceProfile | None, include_all: bool = False) -> str:
    clauses = ["assignee = currentUser()"]
    if not include_all:
        clauses.append("statusCategory != Done")
    if profile is not None:
        clauses.append(f'project = "{profile.tracker_project_key}"')
    return " AND ".join(clauses) + " ORDER BY updated DESC"


class CodeHostAdapter:
    source = "github"

    def __init__(self, connector: GitHubConnector) -> None:
        self.connector = connector

    def current_user(self) -> str:
        return guarded(self.source, self.connector.current_user)

    def get_change_request(self, repo: str, number: int) -> ChangeRequest:
        raw = guarded(self.source, lambda: self.connector.get_pull(repo, number))
        return self._hydrate(repo, raw)

    def find_change_request_for_branch(self, repo: str, branch: str) -> ChangeRequest:
        rows = guarded(self.source, lambda: self.connector.list_pulls(repo, head=branch))
        if not rows:
            raise WorkflowError(
                ErrorKind.NOT_FOUND, f"No open pull request for branch '{branch}' in {repo}"
            )
        return self._hydrate(repo, rows[0])

    def branch_activity(self, repo: str, branch: str) -> tuple[bool, bool]:
        """(has an open pull request, has a merged pull request) for ``branch``."""
        rows = guarded(self.source, lambda: self.connector.list_pulls(repo, state="all", head=branch))
        pulls = [guarded(self.source, lambda row=row: change_request_from_payload(row, repo=repo)) for row in rows]
        return (
            any(pull.state == "open" for pull in pulls),
            any(pull.state == "merged" for pull in pulls),
        )

    def create_change_request(
        self,
        repo: str,
        *,
        title: str,
        body: str,
        head: str,
        base: str,
        draft: bool = False,
    ) -> ChangeRequest:
        payload = {"title": title, "body": body, "head": head, "base": base, "draft": draft}
        raw = guarded(self.source, lambda: self.connector.create_pull(repo, payload))
        return guarded(self.source, lambda: change_request_from_payload(raw, repo=repo))

    def merge(self, repo: str, number: int, method: str) -> dict[str, Any]:
        return guarded(self.source, lambda: self.connector.merge_pull(repo, number, method))

    def delete_branch(self, repo: str, branch: str) -> None:
        guarded(self.source, lambda: self.connector.delete_branch(repo, branch))

    def list_change_requests(
        self,
        profile: ServiceProfile | None,
        change_filter: ChangeRequestFilter | None = None,
    ) -> list[ChangeRequest]:
        change_filter = change_filter or ChangeRequestFilter()
        repo = profile.repo_identifier if profile else None

        if change_filter.team_wide and repo and not change_filter.review_requested_only:
            rows = guarded(self.source, lambda: self.connector.list_pulls(repo))
            results = [self._hydrate(repo, row) for row in rows]
        else:
            results = self._search(search_query(repo, change_filter))

        if change_filter.ready_only:
            results = [item for item in results if is_ready_to_merge(item)]
        return results

    def fetch_change_requests(
        self,
        profile: ServiceProfile | None,
        change_filter: ChangeRequestFilter | None = None,
    ) -> SectionResult[ChangeRequest]:
        return isolated_section(
            CHANGE_REQUESTS_SECTION, lambda: self.list_change_requests(profile, change_filter)
        )

    def fetch_review_requests(self, profile: ServiceProfile | None) -> SectionResult[ChangeRequest]:
        return isolated_section(
            REVIEW_REQUESTS_SECTION,
            lambda: self.list_change_requests(
                profile, ChangeRequestFilter(mine_only=False, review_requested_only=True)
            ),
        )

    def _search(self, query: str) -> list[ChangeRequest]:
        raw = guarded(self.source, lambda: self.connector.search_pulls(query))
        payload = guarded(self.source, lambda: GitHubSearchPayload.model_validate(raw))
        return [self.get_change_request(item.repo, item.number) for item in payload.items if item.repo]

    def _hydrate(self, repo: str, raw_pull: dict[str, Any]) -> ChangeRequest:
        number = int(raw_pull.get("number") or 0)
        sha = str((raw_pull.get("head") or {}).get("sha", ""))
        reviews = guarded(self.source, lambda: self.connector.list_reviews(repo, number))
        checks = (
            guarded(self.source, lambda: self.connector.list_check_runs(repo, sha)) if sha else {}
        )
        return guarded(
            self.source,
            lambda: change_request_from_payload(raw_pull, reviews, checks, repo=repo),
        )


def search_query(repo: str | None, change_filter: ChangeRequestFilter) -> str:
    terms = ["is:pr", "is:open"]
    if change_filter.review_requested_only:
        terms.append("review-requested:@me")
    elif change_filter.team_wide:
        terms.append("involves:@me")
    else:
        terms.append("author:@me")
    if repo:
        terms.append(f"repo:{repo}")
    return " ".join(terms)


class ClusterAdapter:
    source = "kubernetes"

    def __init__(self, connector: KubeConnector) -> None:
        self.connector = connector

    def list_deployments(
        self, profile: ServiceProfile, include_all: bool = False
    ) -> list[DeploymentSnapshot]:
        raw = guarded(
            self.source,
            lambda: self.connector.list_deployments(
                cluster=profile.cluster_name,
                namespace=profile.namespace,
                region=profile.region,
            ),
        )
        snapshots = guarded(self.source, lambda: deployments_from_list(raw))
        if not include_all:
            snapshots = [item for item in snapshots if item.desired_replicas > 0]
        return snapshots

    def fetch_deployments(
        self, profile: ServiceProfile | None, include_all: bool = False
    ) -> SectionResult[DeploymentSnapshot]:
        if profile is None:
            return SectionResult(
                name=DEPLOYMENTS_SECTION,
                status=SectionStatus.UNAVAILABLE,
                message="no service context (run `devflow setup` in this repository)",
                error_kind=ErrorKind.NOT_CONFIGURED.value,
            )
        return isolated_section(
            DEPLOYMENTS_SECTION, lambda: self.list_deployments(profile, include_all)
        )
