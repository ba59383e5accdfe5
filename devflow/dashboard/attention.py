"""Cross-source list of items that need the user's action, in fixed priority order."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from devflow.models.entities import (
    ActionCategory,
    ActionItem,
    ChangeRequest,
    DeploymentSnapshot,
    RolloutState,
    Ticket,
)


def failed_deployment_items(deployments: Iterable[DeploymentSnapshot]) -> list[ActionItem]:
    return [
        ActionItem(
            category=ActionCategory.FAILED_DEPLOYMENT,
            text=f"{deployment.environment} [{RolloutState.FAILED.label}] - deployment rollout failed",
        )
        for deployment in deployments
        if deployment.rollout_state is RolloutState.FAILED
    ]


def review_request_items(change_requests: Iterable[ChangeRequest]) -> list[ActionItem]:
    return [
        ActionItem(
            category=ActionCategory.REVIEW_REQUESTED,
            text=f"{change_request.ref} - review requested: {change_request.title}",
        )
        for change_request in change_requests
    ]


def ticket_comment_items(tickets: Iterable[Ticket], account_id: str | None) -> list[ActionItem]:
    """Tickets whose latest comment was written by someone else."""
    items: list[ActionItem] = []
    for ticket in tickets:
        if not ticket.comments:
            continue
        latest = ticket.comments[-1]
        if account_id and latest.author_id == account_id:
            continue
        author = latest.author or "someone"
        items.append(
            ActionItem(
                category=ActionCategory.TICKET_COMMENT,
                text=f"{ticket.key} - new comment from {author}",
            )
        )
    return items


def prioritize(*sublists: Sequence[ActionItem]) -> list[ActionItem]:
    """Merge sub-lists by category rank; order within a category is preserved."""
    merged = [item for sublist in sublists for item in sublist]
    return sorted(merged, key=lambda item: item.rank)
