"""Resolve the service profile for the repository a command runs in."""

from __future__ import annotations

import logging
import re
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from devflow.models.entities import ServiceProfile

logger = logging.getLogger(__name__)

# git@github.com:owner/repo.git
SCP_REMOTE_RE = re.compile(r"^[\w.-]+@[\w.-]+:(?P<path>[^/].*)$")
# https://github.com/owner/repo.git, ssh://git@github.com:22/owner/repo.git
URL_REMOTE_RE = re.compile(r"^[a-z][a-z0-9+.-]*://[^/]+/(?P<path>.+)$", re.IGNORECASE)
OWNER_REPO_RE = re.compile(r"^(?P<owner>[A-Za-z0-9_.-]+)/(?P<repo>[A-Za-z0-9_.-]+)$")


@dataclass(frozen=True)
class ContextResolution:
    """A resolved service profile, or user scope when ``profile`` is None."""

    profile: ServiceProfile | None = None
    source: str = "none"
    warnings: tuple[str, ...] = ()

    @property
    def is_service(self) -> bool:
        return self.profile is not None

    @property
    def default_project(self) -> str | None:
        return self.profile.tracker_project_key if self.profile else None


def canonical_repo_identifier(remote: str | None) -> str | None:
    """Normalize an HTTPS, SSH, or bare remote to ``owner/repo``."""
    if not remote:
        return None
    value = remote.strip()
    path = value
    url_match = URL_REMOTE_RE.match(value)
    scp_match = SCP_REMOTE_RE.match(value)
    if url_match:
        path = url_match.group("path")
    elif scp_match:
        path = scp_match.group("path")

    path = path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    parts = [part for part in path.split("/") if part]
    if len(parts) < 2:
        return None
    candidate = "/".join(parts[-2:])
    if not OWNER_REPO_RE.match(candidate):
        return None
    return candidate


def resolve_service_context(
    override: str | None,
    detected_remote: str | None,
    profiles: Sequence[ServiceProfile],
) -> ContextResolution:
    """Pick the service profile for this invocation; never raises."""
    known = sorted(profile.name for profile in profiles)
    if override:
        for profile in profiles:
            if profile.name == override:
                return ContextResolution(profile=profile, source="override")
        listing = ", ".join(known) if known else "none configured"
        return ContextResolution(
            source="override",
            warnings=(
                f"Unknown service '{override}'. Known services: {listing}. "
                "Showing user-scope results.",
            ),
        )

    repo = canonical_repo_identifier(detected_remote)
    if repo is None:
        return ContextResolution()
    for profile in profiles:
        if profile.repo_identifier.lower() == repo.lower():
            return ContextResolution(profile=profile, source="remote")
    return ContextResolution(source="remote")


def _git(args: list[str], cwd: Path | None, timeout_s: float) -> str | None:
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout_s,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("git %s failed: %s", " ".join(args), exc)
        return None
    if result.returncode != 0:
        logger.debug("git %s exited %s: %s", " ".join(args), result.returncode, result.stderr)
        return None
    return result.stdout.strip() or None


def detect_remote_url(cwd: Path | None = None, timeout_s: float = 5.0) -> str | None:
    return _git(["remote", "get-url", "origin"], cwd, timeout_s)


def current_branch(cwd: Path | None = None, timeout_s: float = 5.0) -> str | None:
    branch = _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd, timeout_s)
    if branch == "HEAD":
        return None
    return branch
