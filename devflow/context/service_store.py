"""YAML-backed store of service profiles (service name -> tracker, repo, cluster)."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from devflow.context.resolver import canonical_repo_identifier
from devflow.models.entities import ServiceProfile
from devflow.shared.errors import ServiceConfigError
from devflow.shared.settings import DEFAULT_REGION

logger = logging.getLogger(__name__)


class ServiceRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    service_name: str = Field(alias="serviceName", min_length=1)
    tracker_project_key: str = Field(alias="trackerProjectKey", min_length=1)
    repo_identifier: str = Field(alias="repoIdentifier", min_length=1)
    cluster_name: str | None = Field(default=None, alias="clusterName")
    namespace: str | None = None
    region: str | None = None

    def to_profile(self, default_region: str = DEFAULT_REGION) -> ServiceProfile:
        repo = canonical_repo_identifier(self.repo_identifier)
        if repo is None:
            raise ServiceConfigError(
                f"Service '{self.service_name}' has an unparseable repoIdentifier: "
                f"{self.repo_identifier!r}"
            )
        name = self.service_name.strip()
        return ServiceProfile(
            name=name,
            tracker_project_key=self.tracker_project_key.strip().upper(),
            repo_identifier=repo,
            cluster_name=(self.cluster_name or "").strip() or name,
            namespace=(self.namespace or "").strip() or name,
            region=(self.region or "").strip() or default_region,
        )


def profile_to_record(profile: ServiceProfile) -> dict[str, str]:
    return {
        "serviceName": profile.name,
        "trackerProjectKey": profile.tracker_project_key,
        "repoIdentifier": profile.repo_identifier,
        "clusterName": profile.cluster_name,
        "namespace": profile.namespace,
        "region": profile.region,
    }


class ServiceStore:
    """Reads and writes the local service mapping file.

    Writes are read-modify-write without locking; concurrent ``setup`` runs are
    last-writer-wins. The file is replaced atomically so readers never see a
    partially written document.
    """

    def __init__(self, path: Path, default_region: str = DEFAULT_REGION) -> None:
        self.path = path
        self.default_region = default_region

    def load(self) -> list[ServiceProfile]:
        if not self.path.exists():
            return []
        try:
            document = yaml.safe_load(self.path.read_text()) or {}
        except yaml.YAMLError as exc:
            raise ServiceConfigError(f"Cannot parse {self.path}: {exc}") from exc
        return self._profiles_from_document(document)

    def save(self, profiles: list[ServiceProfile]) -> None:
        _check_unique(profiles, source=str(self.path))
        document = {"services": [profile_to_record(profile) for profile in profiles]}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        try:
            with os.fdopen(fd, "w") as handle:
                yaml.safe_dump(document, handle, sort_keys=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Wrote %s service profiles to %s", len(profiles), self.path)

    def upsert(self, profile: ServiceProfile) -> list[ServiceProfile]:
        """Insert or replace a profile by name; a repo owned by another name is an error."""
        profiles = self.load()
        for existing in profiles:
            if existing.name == profile.name:
                continue
            if existing.repo_identifier.lower() == profile.repo_identifier.lower():
                raise ServiceConfigError(
                    f"Repository {profile.repo_identifier} is already mapped to service "
                    f"'{existing.name}'"
                )
        updated = [existing for existing in profiles if existing.name != profile.name]
        updated.append(profile)
        updated.sort(key=lambda item: item.name)
        self.save(updated)
        return updated

    def build_profile(
        self,
        *,
        name: str,
        tracker_project_key: str,
        repo_identifier: str,
        cluster_name: str = "",
        namespace: str = "",
        region: str = "",
    ) -> ServiceProfile:
        record = _validate_record(
            {
                "serviceName": name,
                "trackerProjectKey": tracker_project_key,
                "repoIdentifier": repo_identifier,
                "clusterName": cluster_name or None,
                "namespace": namespace or None,
                "region": region or None,
            },
            source="setup",
        )
        return record.to_profile(self.default_region)

    def _profiles_from_document(self, document: Any) -> list[ServiceProfile]:
        if not isinstance(document, dict):
            raise ServiceConfigError(f"{self.path}: expected a mapping with a 'services' list")
        rows = document.get("services") or []
        if not isinstance(rows, list):
            raise ServiceConfigError(f"{self.path}: 'services' must be a list")
        profiles = [
            _validate_record(row, source=f"{self.path}[{idx}]").to_profile(self.default_region)
            for idx, row in enumerate(rows)
        ]
        _check_unique(profiles, source=str(self.path))
        return profiles


def _validate_record(row: Any, source: str) -> ServiceRecord:
    if not isinstance(row, dict):
        raise ServiceConfigError(f"{source}: service record must be a mapping")
    try:
        return ServiceRecord.model_validate(row)
    except ValidationError as exc:
        fields = ", ".join(".".join(str(part) for part in err["loc"]) for err in exc.errors())
        raise ServiceConfigError(f"{source}: invalid service record ({fields})") from exc


def _check_unique(profiles: list[ServiceProfile], source: str) -> None:
    names: dict[str, str] = {}
    repos: dict[str, str] = {}
    for profile in profiles:
        if profile.name in names:
            raise ServiceConfigError(f"{source}: duplicate service name '{profile.name}'")
        names[profile.name] = profile.repo_identifier
        repo_key = profile.repo_identifier.lower()
        if repo_key in repos:
            raise ServiceConfigError(
                f"{source}: repository {profile.repo_identifier} is mapped to both "
                f"'{repos[repo_key]}' and '{profile.name}'"
            )
        repos[repo_key] = profile.name
