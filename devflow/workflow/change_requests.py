"""Open a pull request for the current branch and link it to its ticket."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from devflow.models.entities import ChangeRequest, Ticket
from devflow.shared.errors import ErrorKind, WorkflowError
from devflow.sources.adapters import CodeHostAdapter
from devflow.workflow.transitions import TransitionEngine, extract_ticket_key

logger = logging.getLogger(__name__)

REVIEW_STATUS = "Review"


@dataclass(frozen=True)
class CreateOptions:
    base: str = "staging"
    draft: bool = False
    title: str | None = None
    body: str | None = None
    skip_tracker_link: bool = False
    skip_transition: bool = False


@dataclass
class CreateReport:
    change_request: ChangeRequest | None = None
    ticket_key: str | None = None
    ticket_status: str | None = None
    warnings: list[str] = field(default_factory=list)


def humanize_branch(branch: str) -> str:
    name = branch.rsplit("/", 1)[-1]
    name = re.sub(r"^[A-Za-z]+-[0-9]+[-_]?", "", name)
    words = re.sub(r"[-_]+", " ", name).strip()
    return words[:1].upper() + words[1:] if words else branch


def default_title(branch: str, key: str | None, ticket: Ticket | None) -> str:
    if key and ticket is not None and ticket.title:
        return f"{key}: {ticket.title}"
    if key:
        return f"{key}: {humanize_branch(branch)}"
    return humanize_branch(branch)


def default_body(ticket: Ticket | None) -> str:
    lines = ["## Summary", ""]
    if ticket is not None and ticket.title:
        lines.append(ticket.title)
    else:
        lines.append("_Describe the change._")
    return "\n".join(lines)


class ChangeRequestCreator:
    def __init__(self, code_host: CodeHostAdapter, engine: TransitionEngine) -> None:
        self.code_host = code_host
        self.engine = engine

    def create(self, repo: str, branch: str | None, options: CreateOptions) -> CreateReport:
        if not branch:
            raise WorkflowError(ErrorKind.VALIDATION, "Cannot determine the current branch")
        if branch == options.base:
            raise WorkflowError(
                ErrorKind.VALIDATION,
                f"Current branch '{branch}' is the target branch; switch to a feature branch",
            )

        report = CreateReport(ticket_key=extract_ticket_key(branch))
        ticket: Ticket | None = None
        if report.ticket_key:
            try:
                ticket = self.engine.tracker.get_ticket(report.ticket_key)
            except WorkflowError as exc:
                report.warnings.append(f"Could not fetch {report.ticket_key}: {exc}")

        title = options.title or default_title(branch, report.ticket_key, ticket)
        body = options.body if options.body is not None else default_body(ticket)
        if report.ticket_key and not options.skip_tracker_link:
            url = self.engine.tracker.browse_url(report.ticket_key)
            body = f"{body}\n\nTicket: [{report.ticket_key}]({url})"

        report.change_request = self.code_host.create_change_request(
            repo, title=title, body=body, head=branch, base=options.base, draft=options.draft
        )
        logger.info("Opened %s for %s", report.change_request.ref, branch)

        if report.ticket_key is None:
            report.warnings.append("No ticket key found in branch name; ticket not linked")
            return report
        if not options.skip_tracker_link:
            self._link(report.ticket_key, report.change_request, report)
        if not options.skip_transition:
            self._move_to_review(report, ticket, options)
        return report

    def _link(self, key: str, change_request: ChangeRequest, report: CreateReport) -> None:
        link = change_request.url or change_request.ref
        try:
            self.engine.tracker.add_comment(key, f"Pull request opened: {link}")
        except WorkflowError as exc:
            report.warnings.append(f"Could not comment on {key}: {exc}")

    def _move_to_review(
        self, report: CreateReport, ticket: Ticket | None, options: CreateOptions
    ) -> None:
        key = report.ticket_key
        if ticket is None or key is None:
            return
        if options.draft:
            report.warnings.append(f"Draft pull request; {key} left in '{ticket.status}'")
            return
        if ticket.status.lower() == REVIEW_STATUS.lower():
            report.ticket_status = ticket.status
            return
        try:
            report.ticket_status = self.engine.transition(ticket, REVIEW_STATUS)
        except WorkflowError as exc:
            report.warnings.append(
                f"Could not move {key} to {REVIEW_STATUS}: {exc}. "
                f"Run manually: devflow ticket {key} --move-to \"{REVIEW_STATUS}\""
            )
