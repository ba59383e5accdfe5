"""Ticket-id parsing, status shorthands, and validated ticket transitions."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from devflow.models.entities import Ticket, TicketTransition
from devflow.shared.errors import ErrorKind, WorkflowError
from devflow.sources.adapters import TrackerAdapter

logger = logging.getLogger(__name__)

TICKET_ID_RE = re.compile(r"^(?P<project>[A-Za-z]+)-(?P<number>[0-9]+)$")
TICKET_NUMBER_RE = re.compile(r"^[0-9]+$")
EMBEDDED_KEY_RE = re.compile(r"[A-Z]+-[0-9]+")

INVALID_TICKET_MESSAGE = "Invalid ticket format. Use PROJECT-NUMBER."

SHORTHAND_STATUSES: dict[str, str] = {
    "todo": "To Do",
    "progress": "In Progress",
    "staging": "Testing Staging",
    "prod": "Testing Prod",
    "done": "Done",
    "blocked": "Blocked",
    "wontdo": "Won't do",
}

LIFECYCLE_STATUSES: tuple[str, ...] = (
    "To Do",
    "In Progress",
    "Review",
    "Testing Staging",
    "Testing Prod",
    "Done",
    "Blocked",
    "Won't do",
)


def parse_ticket_key(raw: str, default_project: str | None = None) -> str:
    value = (raw or "").strip()
    match = TICKET_ID_RE.match(value)
    if match:
        return f"{match.group('project').upper()}-{match.group('number')}"
    if default_project and TICKET_NUMBER_RE.match(value):
        return f"{default_project.strip().upper()}-{value}"
    raise WorkflowError(ErrorKind.VALIDATION, INVALID_TICKET_MESSAGE)


def extract_ticket_key(*texts: str | None) -> str | None:
    """First PROJECT-NUMBER found, searching the given texts in order."""
    for text in texts:
        if not text:
            continue
        match = EMBEDDED_KEY_RE.search(text)
        if match:
            return match.group(0)
    return None


def resolve_status(requested: str) -> str:
    value = (requested or "").strip()
    return SHORTHAND_STATUSES.get(value.lower(), value)


def is_known_status(status: str) -> bool:
    lowered = status.lower()
    return any(lowered == known.lower() for known in LIFECYCLE_STATUSES)


def match_transition(ticket: Ticket, requested: str) -> TicketTransition:
    """Pick the live transition whose name or target equals the requested status.

    Matching is exact and case-insensitive; there is no multi-hop search.
    """
    canonical = resolve_status(requested)
    wanted = canonical.lower()
    for transition in ticket.transitions:
        if wanted in {transition.name.lower(), transition.target_status.lower()}:
            return transition

    names = ", ".join(transition.name for transition in ticket.transitions) or "none"
    kind = ErrorKind.CONFLICT if is_known_status(canonical) else ErrorKind.VALIDATION
    raise WorkflowError(
        kind,
        f"Cannot move {ticket.key} from '{ticket.status}' to '{canonical}'. "
        f"Available transitions: {names}",
    )


@dataclass(frozen=True)
class WorkSignals:
    """Observed facts about the work behind a ticket, used for suggestions."""

    on_branch: bool = False
    open_change_request: bool = False
    merged_change_request: bool = False


@dataclass(frozen=True)
class Suggestion:
    ticket: Ticket
    target_status: str
    reason: str


@dataclass(frozen=True)
class SuggestionOutcome:
    suggestion: Suggestion
    applied: bool
    status: str


# (current status, signal attribute, target status, reason)
SUGGESTION_RULES: tuple[tuple[str, str, str, str], ...] = (
    ("Review", "merged_change_request", "Testing Staging", "its pull request was merged"),
    ("In Progress", "open_change_request", "Review", "a pull request is open"),
    ("To Do", "on_branch", "In Progress", "you are working on its branch"),
)


def propose_transition(ticket: Ticket, signals: WorkSignals) -> Suggestion | None:
    """Suggest the next lifecycle status; pure, never touches the tracker."""
    current = ticket.status.lower()
    for status, signal, target, reason in SUGGESTION_RULES:
        if current != status.lower() or not getattr(signals, signal):
            continue
        try:
            match_transition(ticket, target)
        except WorkflowError:
            return None
        return Suggestion(ticket=ticket, target_status=target, reason=reason)
    return None


class TransitionEngine:
    def __init__(self, tracker: TrackerAdapter) -> None:
        self.tracker = tracker

    def transition(self, ticket: Ticket, requested: str) -> str:
        """Apply one validated transition and return the new canonical status.

        Mismatches are rejected before any remote call. Tracker failures are
        re-raised with their classified kind and leave the ticket untouched.
        """
        chosen = match_transition(ticket, requested)
        self.tracker.apply_transition(ticket.key, chosen.id)
        new_status = chosen.target_status or resolve_status(requested)
        logger.info("Moved %s from %s to %s via %r", ticket.key, ticket.status, new_status, chosen.name)
        return new_status

    def transition_key(self, key: str, requested: str) -> tuple[Ticket, str]:
        ticket = self.tracker.get_ticket(key)
        return ticket, self.transition(ticket, requested)

    def apply_suggestion(self, suggestion: Suggestion, confirmed: bool) -> SuggestionOutcome:
        if not confirmed:
            return SuggestionOutcome(
                suggestion=suggestion, applied=False, status=suggestion.ticket.status
            )
        status = self.transition(suggestion.ticket, suggestion.target_status)
        return SuggestionOutcome(suggestion=suggestion, applied=True, status=status)
