"""devflow CLI: one view over tickets, pull requests, and deployments."""

from __future__ import annotations

from typing import NoReturn, Optional

import typer

from devflow.connectivity import probe
from devflow.context.resolver import canonical_repo_identifier, detect_remote_url
from devflow.context.service_store import ServiceStore
from devflow.dashboard.render import (
    DashboardOptions,
    build_dashboard,
    format_change_request,
    render_dashboard,
)
from devflow.models.entities import ChangeRequestFilter, Ticket
from devflow.shared.errors import ErrorKind, ServiceConfigError, WorkflowError
from devflow.shared.settings import configure_logging, get_settings
from devflow.workflow.change_requests import ChangeRequestCreator, CreateOptions
from devflow.workflow.merge import MergeOrchestrator
from devflow.workflow.transitions import (
    WorkSignals,
    extract_ticket_key,
    parse_ticket_key,
    propose_transition,
)
from devflow.workspace import Workspace, open_workspace

EXIT_FAILURE = 1
EXIT_VALIDATION = 2

app = typer.Typer(add_completion=False, help="devflow: tickets, pull requests, and deployments in one place")
pr_app = typer.Typer(add_completion=False, help="Create, merge, and list pull requests.")
app.add_typer(pr_app, name="pr")

SERVICE_OPTION = typer.Option(None, "--service", "-s", help="Service name; overrides repo detection.")


def _fail(exc: WorkflowError) -> NoReturn:
    typer.echo(f"Error: {exc.describe()}", err=True)
    code = EXIT_VALIDATION if exc.kind is ErrorKind.VALIDATION else EXIT_FAILURE
    raise typer.Exit(code=code)


def _workspace(service: str | None, verbose: bool = False) -> Workspace:
    configure_logging(get_settings(), verbose=verbose)
    return open_workspace(service)


def _echo_warnings(warnings: list[str] | tuple[str, ...]) -> None:
    for warning in warnings:
        typer.echo(f"Warning: {warning}", err=True)


@app.command()
def status(
    tickets: bool = typer.Option(False, "--tickets", help="Only the tickets section."),
    prs: bool = typer.Option(False, "--prs", help="Only the pull requests section."),
    deployments: bool = typer.Option(False, "--deployments", help="Only the deployments section."),
    include_all: bool = typer.Option(False, "--all", help="Include done tickets and scaled-down deployments."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    service: Optional[str] = SERVICE_OPTION,
) -> None:
    """Show the dashboard for the current service, or user scope outside one."""
    workspace = _workspace(service, verbose)
    options = DashboardOptions(
        only_tickets=tickets,
        only_change_requests=prs,
        only_deployments=deployments,
        include_all=include_all,
        verbose=verbose,
    )
    report = build_dashboard(
        workspace.resolution,
        tracker=workspace.tracker,
        code_host=workspace.code_host,
        cluster=workspace.cluster,
        options=options,
        timeout_s=workspace.settings.section_timeout_s,
    )
    typer.echo(render_dashboard(report))


@app.command()
def ticket(
    ticket_id: str = typer.Argument(..., help="PROJECT-NUMBER, or NUMBER inside a service."),
    move_to: str = typer.Option("", "--move-to", help="Target status or shorthand (progress, staging, ...)."),
    comment: str = typer.Option("", "--comment", help="Add a comment before any transition."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Apply a suggested transition without asking."),
    service: Optional[str] = SERVICE_OPTION,
) -> None:
    """Show a ticket, optionally comment on it and move it along its workflow."""
    workspace = _workspace(service, verbose)
    _echo_warnings(workspace.resolution.warnings)
    try:
        key = parse_ticket_key(ticket_id, workspace.resolution.default_project)
        current = workspace.tracker.get_ticket(key)
    except WorkflowError as exc:
        _fail(exc)

    _echo_ticket(current, verbose)

    if comment:
        try:
            workspace.tracker.add_comment(key, comment)
        except WorkflowError as exc:
            _fail(exc)
        typer.echo(f"Comment added to {key}")

    if move_to:
        try:
            new_status = workspace.engine.transition(current, move_to)
        except WorkflowError as exc:
            _fail(exc)
        typer.echo(f"{key}: {current.status} -> {new_status}")
        return

    suggestion = propose_transition(current, _work_signals(workspace, key))
    if suggestion is None:
        return
    typer.echo(f"Suggestion: move {key} to {suggestion.target_status} ({suggestion.reason})")
    confirmed = yes or typer.confirm("Apply this transition?", default=False)
    try:
        outcome = workspace.engine.apply_suggestion(suggestion, confirmed)
    except WorkflowError as exc:
        _fail(exc)
    if outcome.applied:
        typer.echo(f"{key}: {current.status} -> {outcome.status}")
    else:
        typer.echo(f"{key} left in {outcome.status}")


def _echo_ticket(current: Ticket, verbose: bool) -> None:
    typer.echo(f"{current.key}: {current.title}")
    typer.echo(f"  Status:   {current.status}")
    typer.echo(f"  Assignee: {current.assignee or 'Unassigned'}")
    typer.echo(f"  Priority: {current.priority or '-'}")
    if current.url:
        typer.echo(f"  URL:      {current.url}")
    if not verbose:
        return
    if current.description:
        typer.echo("")
        typer.echo(current.description)
    names = ", ".join(transition.name for transition in current.transitions) or "none"
    typer.echo(f"  Transitions: {names}")
    for entry in current.comments:
        typer.echo(f"  [{entry.created or '-'}] {entry.author}: {entry.body}")


def _work_signals(workspace: Workspace, key: str) -> WorkSignals:
    """Best-effort signals; any lookup failure just means no suggestion."""
    branch = workspace.branch or ""
    if extract_ticket_key(branch) != key:
        return WorkSignals()
    try:
        repo = workspace.require_repo()
        open_pr, merged_pr = workspace.code_host.branch_activity(repo, branch)
    except WorkflowError:
        return WorkSignals(on_branch=True)
    return WorkSignals(on_branch=True, open_change_request=open_pr, merged_change_request=merged_pr)


@pr_app.command("create")
def pr_create(
    draft: bool = typer.Option(False, "--draft"),
    title: str = typer.Option("", "--title"),
    body: Optional[str] = typer.Option(None, "--body"),
    base: str = typer.Option("", "--base", help="Target branch; defaults to DEVFLOW_DEFAULT_BASE."),
    no_ticket_link: bool = typer.Option(False, "--no-ticket-link"),
    no_transition: bool = typer.Option(False, "--no-transition"),
    service: Optional[str] = SERVICE_OPTION,
) -> None:
    """Open a pull request for the current branch and move its ticket to Review."""
    workspace = _workspace(service)
    options = CreateOptions(
        base=base or workspace.settings.default_base_branch,
        draft=draft,
        title=title or None,
        body=body,
        skip_tracker_link=no_ticket_link,
        skip_transition=no_transition,
    )
    try:
        repo = workspace.require_repo()
        report = ChangeRequestCreator(workspace.code_host, workspace.engine).create(
            repo, workspace.branch, options
        )
    except WorkflowError as exc:
        _fail(exc)

    created = report.change_request
    if created is not None:
        typer.echo(f"Created {created.ref}: {created.title}")
        if created.url:
            typer.echo(f"  {created.url}")
    if report.ticket_status:
        typer.echo(f"{report.ticket_key} is now {report.ticket_status}")
    _echo_warnings(report.warnings)


@pr_app.command("merge")
def pr_merge(
    number: Optional[int] = typer.Argument(None, help="Pull request number; defaults to the current branch's."),
    merge_commit: bool = typer.Option(False, "--merge-commit", help="Merge commit instead of squash."),
    no_transition: bool = typer.Option(False, "--no-transition"),
    keep_branch: bool = typer.Option(False, "--keep-branch"),
    service: Optional[str] = SERVICE_OPTION,
) -> None:
    """Verify, merge, then move the linked ticket to Testing Staging."""
    workspace = _workspace(service)
    try:
        repo = workspace.require_repo()
    except WorkflowError as exc:
        _fail(exc)

    report = MergeOrchestrator(workspace.code_host, workspace.engine).run(
        repo,
        number=number,
        branch=workspace.branch,
        use_merge_commit=merge_commit,
        keep_branch=keep_branch,
        skip_transition=no_transition,
    )
    if not report.succeeded:
        _echo_warnings(report.warnings)
        typer.echo(f"Merge aborted at {report.stage.value} stage.", err=True)
        if report.error is not None:
            _fail(report.error)
        raise typer.Exit(code=EXIT_FAILURE)

    merged = report.change_request
    if merged is not None:
        typer.echo(f"Merged {merged.ref} ({report.method})")
        if report.branch_deleted:
            typer.echo(f"Deleted branch {merged.source_branch}")
    if report.ticket_status:
        typer.echo(f"{report.ticket_key} is now {report.ticket_status}")
    _echo_warnings(report.warnings)


@pr_app.command("list")
def pr_list(
    mine: bool = typer.Option(False, "--mine", help="Only pull requests you authored (default)."),
    team: bool = typer.Option(False, "--team", help="All open pull requests in the service repo."),
    review_requested: bool = typer.Option(False, "--review-requested"),
    ready: bool = typer.Option(False, "--ready", help="Only pull requests ready to merge."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
    service: Optional[str] = SERVICE_OPTION,
) -> None:
    """List open pull requests with CI and review state."""
    if mine and team:
        raise typer.BadParameter("Use only one of --mine or --team")
    workspace = _workspace(service, verbose)
    _echo_warnings(workspace.resolution.warnings)
    change_filter = ChangeRequestFilter(
        mine_only=not team,
        team_wide=team,
        review_requested_only=review_requested,
        ready_only=ready,
    )
    try:
        results = workspace.code_host.list_change_requests(workspace.profile, change_filter)
    except WorkflowError as exc:
        _fail(exc)
    if not results:
        typer.echo("(none found)")
        return
    for change_request in results:
        for line in format_change_request(change_request, verbose):
            typer.echo(line)


@app.command()
def setup(
    name: str = typer.Argument(..., help="Service name."),
    project: str = typer.Option(..., "--project", help="Tracker project key, e.g. KH."),
    repo: str = typer.Option("", "--repo", help="owner/name; defaults to this checkout's origin."),
    cluster: str = typer.Option("", "--cluster", help="Cluster context; defaults to the service name."),
    namespace: str = typer.Option("", "--namespace", help="Namespace; defaults to the service name."),
    region: str = typer.Option("", "--region"),
) -> None:
    """Map a service to its tracker project, repository, and cluster."""
    settings = get_settings()
    configure_logging(settings)
    store = ServiceStore(settings.services_path, default_region=settings.default_region)

    repo_identifier = repo or canonical_repo_identifier(
        detect_remote_url(timeout_s=settings.timeout_s)
    )
    if not repo_identifier:
        typer.echo("Error: cannot detect the repository; pass --repo owner/name", err=True)
        raise typer.Exit(code=EXIT_VALIDATION)

    try:
        profile = store.build_profile(
            name=name,
            tracker_project_key=project,
            repo_identifier=repo_identifier,
            cluster_name=cluster,
            namespace=namespace,
            region=region,
        )
        store.upsert(profile)
    except ServiceConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_VALIDATION) from exc

    typer.echo(f"Saved service {profile.name} to {store.path}")
    typer.echo(f"  repo {profile.repo_identifier}, project {profile.tracker_project_key}")
    typer.echo(f"  cluster {profile.cluster_name}/{profile.namespace} ({profile.region})")


@app.command()
def services() -> None:
    """List configured services."""
    settings = get_settings()
    configure_logging(settings)
    store = ServiceStore(settings.services_path, default_region=settings.default_region)
    try:
        profiles = store.load()
    except ServiceConfigError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=EXIT_VALIDATION) from exc
    if not profiles:
        typer.echo(f"No services configured in {store.path}; run `devflow setup NAME --project KEY`.")
        return
    for profile in profiles:
        typer.echo(
            f"{profile.name}: {profile.repo_identifier} -> {profile.tracker_project_key}, "
            f"{profile.cluster_name}/{profile.namespace} ({profile.region})"
        )


@app.command()
def doctor(service: Optional[str] = SERVICE_OPTION) -> None:
    """Check credentials, connectivity, and the detected service context."""
    workspace = _workspace(service)
    resolution = workspace.resolution
    settings = workspace.settings
    typer.echo(
        f"connectors: tracker={settings.tracker_connector} "
        f"codehost={settings.codehost_connector} cluster={settings.cluster_connector} "
        f"(kubectl binary {settings.kubectl_binary})"
    )
    typer.echo(f"services file: {settings.services_path}")
    if resolution.profile is not None:
        typer.echo(f"context: service {resolution.profile.name} ({resolution.source})")
    else:
        typer.echo("context: user scope (no service mapping for this directory)")
    _echo_warnings(resolution.warnings)

    results = [
        probe(
            "jira",
            lambda: str(workspace.tracker.connector.current_account().get("displayName", "ok")),
        ),
        probe("github", workspace.code_host.current_user),
        probe("kubectl", workspace.cluster.connector.client_version),
    ]
    for result in results:
        marker = "ok" if result.ok else (result.error.kind.section_marker if result.error else "[Error]")
        retried = " (after retry)" if result.attempts > 1 else ""
        typer.echo(f"{result.name}: {marker} {result.detail}{retried}")
    if not all(result.ok for result in results):
        raise typer.Exit(code=EXIT_FAILURE)


if __name__ == "__main__":
    app()
