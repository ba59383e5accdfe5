"""Per-invocation wiring: settings, service context, and source adapters."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from devflow.connectors.github_connector import build_codehost_connector_from_env
from devflow.connectors.jira_connector import build_tracker_connector_from_env
from devflow.connectors.kube_connector import build_cluster_connector_from_env
from devflow.context.resolver import (
    ContextResolution,
    canonical_repo_identifier,
    current_branch,
    detect_remote_url,
    resolve_service_context,
)
from devflow.context.service_store import ServiceStore
from devflow.models.entities import ServiceProfile
from devflow.shared.errors import ErrorKind, ServiceConfigError, WorkflowError
from devflow.shared.settings import WorkflowSettings, get_settings
from devflow.sources.adapters import ClusterAdapter, CodeHostAdapter, TrackerAdapter
from devflow.workflow.transitions import TransitionEngine

logger = logging.getLogger(__name__)


@dataclass
class Workspace:
    settings: WorkflowSettings
    store: ServiceStore
    resolution: ContextResolution
    remote_repo: str | None
    branch: str | None
    tracker: TrackerAdapter
    code_host: CodeHostAdapter
    cluster: ClusterAdapter

    @property
    def profile(self) -> ServiceProfile | None:
        return self.resolution.profile

    @property
    def engine(self) -> TransitionEngine:
        return TransitionEngine(self.tracker)

    def require_repo(self) -> str:
        """The repository to act on: the service's repo, else the detected remote."""
        if self.profile is not None:
            return self.profile.repo_identifier
        if self.remote_repo:
            return self.remote_repo
        raise WorkflowError(
            ErrorKind.VALIDATION,
            "Cannot determine the repository; run inside a git checkout or pass --service",
        )


def load_profiles(store: ServiceStore) -> tuple[list[ServiceProfile], list[str]]:
    """Stored profiles, or none plus a warning when the mapping file is broken."""
    try:
        return store.load(), []
    except ServiceConfigError as exc:
        logger.warning("Ignoring service mapping: %s", exc)
        return [], [f"Service mapping ignored: {exc}"]


def open_workspace(
    service_override: str | None = None,
    *,
    env: dict[str, str] | None = None,
    cwd: Path | None = None,
) -> Workspace:
    settings = get_settings(env)
    store = ServiceStore(settings.services_path, default_region=settings.default_region)
    profiles, warnings = load_profiles(store)

    remote = detect_remote_url(cwd, timeout_s=settings.timeout_s)
    resolution = resolve_service_context(service_override, remote, profiles)
    if warnings:
        resolution = ContextResolution(
            profile=resolution.profile,
            source=resolution.source,
            warnings=(*warnings, *resolution.warnings),
        )
    logger.debug(
        "Context source=%s profile=%s",
        resolution.source,
        resolution.profile.name if resolution.profile else None,
    )

    timeout_s = settings.timeout_s
    return Workspace(
        settings=settings,
        store=store,
        resolution=resolution,
        remote_repo=canonical_repo_identifier(remote),
        branch=current_branch(cwd, timeout_s=timeout_s),
        tracker=TrackerAdapter(build_tracker_connector_from_env(env, timeout_s=timeout_s)),
        code_host=CodeHostAdapter(build_codehost_connector_from_env(env, timeout_s=timeout_s)),
        cluster=ClusterAdapter(build_cluster_connector_from_env(env, timeout_s=timeout_s)),
    )
