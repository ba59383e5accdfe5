"""Assemble sections from every source into the status dashboard."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from devflow.context.resolver import ContextResolution
from devflow.dashboard.attention import (
    failed_deployment_items,
    prioritize,
    review_request_items,
    ticket_comment_items,
)
from devflow.interpreters.status import is_ready_to_merge, review_state, rollup_ci
from devflow.models.entities import (
    ActionItem,
    ChangeRequest,
    DeploymentSnapshot,
    SectionResult,
    SectionStatus,
    Ticket,
)
from devflow.sources.adapters import (
    CHANGE_REQUESTS_SECTION,
    DEPLOYMENTS_SECTION,
    REVIEW_REQUESTS_SECTION,
    TICKETS_SECTION,
    ClusterAdapter,
    CodeHostAdapter,
    TrackerAdapter,
)
from devflow.sources.parallel import fetch_sections

SECTION_TITLES = {
    TICKETS_SECTION: "Tickets",
    CHANGE_REQUESTS_SECTION: "Pull Requests",
    DEPLOYMENTS_SECTION: "Deployments",
}

STATUS_MARKERS = {
    SectionStatus.UNAVAILABLE: "[Unavailable]",
    SectionStatus.ERROR: "[Error]",
}


@dataclass(frozen=True)
class DashboardOptions:
    only_tickets: bool = False
    only_change_requests: bool = False
    only_deployments: bool = False
    include_all: bool = False
    verbose: bool = False

    def wanted(self) -> list[str]:
        selected = [
            name
            for name, flag in (
                (TICKETS_SECTION, self.only_tickets),
                (CHANGE_REQUESTS_SECTION, self.only_change_requests),
                (DEPLOYMENTS_SECTION, self.only_deployments),
            )
            if flag
        ]
        return selected or [TICKETS_SECTION, CHANGE_REQUESTS_SECTION, DEPLOYMENTS_SECTION]


@dataclass
class DashboardReport:
    resolution: ContextResolution
    options: DashboardOptions
    sections: dict[str, SectionResult[Any]] = field(default_factory=dict)
    attention: list[ActionItem] = field(default_factory=list)
    notes: list[str] = field(default_factory=list)


def build_dashboard(
    resolution: ContextResolution,
    *,
    tracker: TrackerAdapter,
    code_host: CodeHostAdapter,
    cluster: ClusterAdapter,
    options: DashboardOptions,
    timeout_s: float,
) -> DashboardReport:
    profile = resolution.profile
    wanted = options.wanted()
    fetchers: dict[str, Callable[[], SectionResult[Any]]] = {}
    if TICKETS_SECTION in wanted:
        fetchers[TICKETS_SECTION] = lambda: tracker.fetch_tickets(profile, options.include_all)
    if CHANGE_REQUESTS_SECTION in wanted:
        fetchers[CHANGE_REQUESTS_SECTION] = lambda: code_host.fetch_change_requests(profile)
        fetchers[REVIEW_REQUESTS_SECTION] = lambda: code_host.fetch_review_requests(profile)
    if DEPLOYMENTS_SECTION in wanted:
        fetchers[DEPLOYMENTS_SECTION] = lambda: cluster.fetch_deployments(
            profile, options.include_all
        )

    report = DashboardReport(resolution=resolution, options=options)
    report.sections = fetch_sections(fetchers, timeout_s)

    deployment_items = failed_deployment_items(_items(report, DEPLOYMENTS_SECTION))
    review_items = review_request_items(_items(report, REVIEW_REQUESTS_SECTION))
    comment_items = ticket_comment_items(_items(report, TICKETS_SECTION), tracker.account_id)
    report.attention = prioritize(deployment_items, review_items, comment_items)

    reviews = report.sections.get(REVIEW_REQUESTS_SECTION)
    if reviews is not None and not reviews.ok:
        report.notes.append(
            f"{STATUS_MARKERS[reviews.status]} review requests: {reviews.message}"
        )
    return report


def _items(report: DashboardReport, name: str) -> tuple[Any, ...]:
    section = report.sections.get(name)
    return section.items if section is not None else ()


def render_dashboard(report: DashboardReport) -> str:
    lines = [_scope_line(report.resolution)]
    lines.extend(f"Warning: {warning}" for warning in report.resolution.warnings)

    for name in report.options.wanted():
        section = report.sections.get(name)
        lines.append("")
        lines.append(SECTION_TITLES[name])
        if section is None:
            lines.append("  [Error] section was not fetched")
            continue
        lines.extend(_section_lines(section, report.options.verbose))

    lines.append("")
    lines.append("Needs Attention")
    if report.attention:
        lines.extend(f"  {idx}. {item.text}" for idx, item in enumerate(report.attention, start=1))
    else:
        lines.append("  (nothing needs attention)")
    lines.extend(f"  {note}" for note in report.notes)
    return "\n".join(lines)


def _scope_line(resolution: ContextResolution) -> str:
    profile = resolution.profile
    if profile is None:
        return "Scope: user (no service context)"
    return (
        f"Scope: service {profile.name} (repo {profile.repo_identifier}, "
        f"project {profile.tracker_project_key}, "
        f"cluster {profile.cluster_name}/{profile.namespace})"
    )


def _section_lines(section: SectionResult[Any], verbose: bool) -> list[str]:
    if section.status in STATUS_MARKERS:
        return [f"  {STATUS_MARKERS[section.status]} {section.message}"]
    if section.status is SectionStatus.EMPTY:
        return ["  (none found)"]
    formatter = FORMATTERS[section.name]
    lines: list[str] = []
    for item in section.items:
        lines.extend(formatter(item, verbose))
    return lines


def format_ticket(ticket: Ticket, verbose: bool = False) -> list[str]:
    lines = [f"  {ticket.key:<10} [{ticket.status}] {ticket.title}"]
    if verbose:
        lines.append(
            f"      priority {ticket.priority or '-'}, updated {ticket.updated or '-'}, "
            f"{len(ticket.comments)} comments"
        )
    return lines


def format_change_request(change_request: ChangeRequest, verbose: bool = False) -> list[str]:
    ci = rollup_ci(change_request.checks)
    reviews = review_state(change_request.reviews)
    flags = []
    if change_request.draft:
        flags.append("draft")
    if is_ready_to_merge(change_request):
        flags.append("ready to merge")
    suffix = f" ({', '.join(flags)})" if flags else ""
    lines = [
        f"  {change_request.ref} {change_request.title} "
        f"[CI: {ci.label}] [Review: {reviews.label}]{suffix}"
    ]
    if verbose:
        lines.append(
            f"      {change_request.source_branch} -> {change_request.target_branch}, "
            f"mergeable: {change_request.mergeable}"
        )
        lines.extend(f"      check {check.name}: {check.state}" for check in change_request.checks)
        lines.extend(
            f"      review {review.reviewer}: {review.state}" for review in change_request.reviews
        )
    return lines


def format_deployment(deployment: DeploymentSnapshot, verbose: bool = False) -> list[str]:
    lines = [
        f"  {deployment.environment} [{deployment.rollout_state.label}] "
        f"{deployment.ready_replicas}/{deployment.desired_replicas} ready, "
        f"image {deployment.image_tag or '-'}"
    ]
    if verbose:
        lines.append(
            f"      {deployment.namespace}/{deployment.name}, "
            f"{deployment.available_replicas} available"
        )
        lines.extend(
            f"      condition {condition.type}={condition.status} {condition.reason}".rstrip()
            for condition in deployment.conditions
        )
    return lines


FORMATTERS: dict[str, Callable[[Any, bool], list[str]]] = {
    TICKETS_SECTION: format_ticket,
    CHANGE_REQUESTS_SECTION: format_change_request,
    DEPLOYMENTS_SECTION: format_deployment,
}
