from __future__ import annotations

import threading

from devflow.connectors.github_connector_inmemory import InMemoryGitHubConnector
from devflow.connectors.jira_connector_inmemory import InMemoryJiraConnector
from devflow.connectors.kube_connector_inmemory import InMemoryKubeConnector
from devflow.context.resolver import ContextResolution, resolve_service_context
from devflow.dashboard.render import DashboardOptions, build_dashboard, render_dashboard
from devflow.models.entities import SectionStatus, ServiceProfile
from devflow.shared.errors import ErrorKind, WorkflowError
from devflow.sources.adapters import (
    CHANGE_REQUESTS_SECTION,
    DEPLOYMENTS_SECTION,
    TICKETS_SECTION,
    ClusterAdapter,
    CodeHostAdapter,
    TrackerAdapter,
)

PROFILE = ServiceProfile(
    name="auth",
    tracker_project_key="KH",
    repo_identifier="acme/auth-service",
    cluster_name="prod-eks",
    namespace="auth",
    region="us-east-1",
)


class Sources:
    def __init__(self) -> None:
        self.jira = InMemoryJiraConnector()
        self.github = InMemoryGitHubConnector()
        self.kube = InMemoryKubeConnector()

    def build(
        self, resolution: ContextResolution, options: DashboardOptions | None = None, timeout_s: float = 5.0
    ):
        return build_dashboard(
            resolution,
            tracker=TrackerAdapter(self.jira),
            code_host=CodeHostAdapter(self.github),
            cluster=ClusterAdapter(self.kube),
            options=options or DashboardOptions(),
            timeout_s=timeout_s,
        )


def test_service_dashboard_renders_all_sections_and_attention() -> None:
    sources = Sources()
    sources.jira.add_issue("KH-1", summary="Add login", status="In Progress", comments=[("acc-bo", "Bo", "ping")])
    sources.jira.add_issue("BIL-2", summary="Other project", status="To Do")
    sources.github.add_pull(
        "acme/auth-service",
        3,
        title="KH-1 add login",
        head="KH-1-add-login",
        checks=[("build", "completed", "success")],
        reviews=[("ana", "APPROVED")],
    )
    sources.github.add_pull(
        "acme/auth-service", 9, title="Fix header", author="ana", requested_reviewers=["me"]
    )
    sources.kube.add_deployment(cluster="prod-eks", namespace="auth", name="auth-api", environment="staging")
    sources.kube.add_deployment(
        cluster="prod-eks",
        namespace="auth",
        name="auth-api-prod",
        environment="prod",
        ready=0,
        available=0,
        conditions=[{"type": "Progressing", "status": "False", "reason": "ProgressDeadlineExceeded"}],
    )

    report = sources.build(ContextResolution(profile=PROFILE, source="remote"))
    output = render_dashboard(report)

    assert report.sections[TICKETS_SECTION].status is SectionStatus.POPULATED
    assert [ticket.key for ticket in report.sections[TICKETS_SECTION].items] == ["KH-1"]
    assert "Scope: service auth (repo acme/auth-service, project KH, cluster prod-eks/auth)" in output
    assert "[CI: Pass] [Review: Approved] (ready to merge)" in output
    assert "staging [Deployed] 2/2 ready, image 1.0.0" in output
    assert [item.text for item in report.attention] == [
        "prod [Failed] - deployment rollout failed",
        "acme/auth-service#9 - review requested: Fix header",
        "KH-1 - new comment from Bo",
    ]
    assert sources.kube.calls[0]["region"] == "us-east-1"


def test_failing_source_does_not_abort_sibling_sections() -> None:
    sources = Sources()
    sources.jira.add_issue("KH-1", summary="Add login")
    sources.kube.failure = WorkflowError(ErrorKind.UNAVAILABLE, "kubectl is not installed or not on PATH")
    sources.github.failures["search_pulls"] = WorkflowError(
        ErrorKind.AUTHENTICATION, "GitHub GET /search/issues failed (401): Bad credentials"
    )

    report = sources.build(ContextResolution(profile=PROFILE, source="remote"))
    output = render_dashboard(report)

    assert report.sections[TICKETS_SECTION].status is SectionStatus.POPULATED
    assert report.sections[CHANGE_REQUESTS_SECTION].status is SectionStatus.ERROR
    assert report.sections[DEPLOYMENTS_SECTION].status is SectionStatus.UNAVAILABLE
    assert "KH-1" in output
    assert "  [Error] AuthenticationFailure: GitHub GET /search/issues failed (401): Bad credentials" in output
    assert "  [Unavailable] Unavailable: kubectl is not installed or not on PATH" in output


def test_account_lookup_failure_keeps_tickets_section() -> None:
    sources = Sources()
    sources.jira.add_issue("KH-1", summary="Add login", comments=[("acc-me", "Me", "done")])
    sources.jira.failures["current_account"] = WorkflowError(
        ErrorKind.PERMISSION_DENIED, "Jira /myself is forbidden"
    )

    report = sources.build(ContextResolution(profile=PROFILE, source="remote"))

    tickets = report.sections[TICKETS_SECTION]
    assert tickets.status is SectionStatus.POPULATED
    assert [ticket.key for ticket in tickets.items] == ["KH-1"]
    assert [item.text for item in report.attention] == ["KH-1 - new comment from Me"]


def test_empty_section_is_distinct_from_unavailable() -> None:
    sources = Sources()
    sources.jira.failures["search"] = WorkflowError(
        ErrorKind.NOT_CONFIGURED, "Jira is not configured (missing token)", remedy="Set DEVFLOW_JIRA_TOKEN."
    )

    report = sources.build(ContextResolution(profile=PROFILE, source="remote"))
    output = render_dashboard(report)

    assert report.sections[CHANGE_REQUESTS_SECTION].status is SectionStatus.EMPTY
    assert report.sections[TICKETS_SECTION].status is SectionStatus.UNAVAILABLE
    assert "Pull Requests\n  (none found)" in output
    assert (
        "Tickets\n  [Unavailable] NotConfigured: Jira is not configured (missing token) "
        "(Set DEVFLOW_JIRA_TOKEN.)"
    ) in output
    assert "(nothing needs attention)" in output


def test_unknown_service_override_renders_user_scope() -> None:
    sources = Sources()
    sources.jira.add_issue("KH-1", summary="Add login")
    sources.jira.add_issue("BIL-2", summary="Billing fix")

    resolution = resolve_service_context("unknown-svc", None, [PROFILE])
    report = sources.build(resolution)
    output = render_dashboard(report)

    assert output.startswith("Scope: user (no service context)\nWarning: Unknown service 'unknown-svc'.")
    assert [ticket.key for ticket in report.sections[TICKETS_SECTION].items] == ["BIL-2", "KH-1"]
    assert report.sections[DEPLOYMENTS_SECTION].status is SectionStatus.UNAVAILABLE
    assert sources.kube.calls == []


def test_section_filters_limit_fetches() -> None:
    sources = Sources()

    report = sources.build(
        ContextResolution(profile=PROFILE, source="remote"), DashboardOptions(only_deployments=True)
    )

    assert set(report.sections) == {DEPLOYMENTS_SECTION}
    assert sources.jira.calls == []
    assert sources.github.calls == []
    assert "Tickets" not in render_dashboard(report)


def test_stalled_source_times_out_without_blocking_others() -> None:
    sources = Sources()
    sources.jira.add_issue("KH-1", summary="Add login")
    release = threading.Event()

    def stalled(**_kwargs: object) -> dict:
        release.wait(5)
        return {"items": []}

    sources.kube.list_deployments = stalled  # type: ignore[method-assign]
    try:
        report = sources.build(ContextResolution(profile=PROFILE, source="remote"), timeout_s=0.2)
    finally:
        release.set()

    assert report.sections[TICKETS_SECTION].status is SectionStatus.POPULATED
    deployments = report.sections[DEPLOYMENTS_SECTION]
    assert deployments.status is SectionStatus.ERROR
    assert deployments.error_kind == "Timeout"


def test_scaled_down_deployments_hidden_unless_all() -> None:
    sources = Sources()
    sources.kube.add_deployment(cluster="prod-eks", namespace="auth", name="old-worker", replicas=0, ready=0, available=0)

    hidden = sources.build(ContextResolution(profile=PROFILE), DashboardOptions(only_deployments=True))
    shown = sources.build(
        ContextResolution(profile=PROFILE), DashboardOptions(only_deployments=True, include_all=True)
    )

    assert hidden.sections[DEPLOYMENTS_SECTION].status is SectionStatus.EMPTY
    assert [item.name for item in shown.sections[DEPLOYMENTS_SECTION].items] == ["old-worker"]
