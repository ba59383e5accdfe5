"""Environment-driven runtime settings for the devflow CLI."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_TIMEOUT_S = 20.0
DEFAULT_SECTION_TIMEOUT_S = 60.0
DEFAULT_REGION = "us-east-1"
DEFAULT_BASE_BRANCH = "staging"


@dataclass(frozen=True)
class WorkflowSettings:
    """Locations, timeouts, and connector choices used by one invocation."""

    config_dir: Path
    services_path: Path
    timeout_s: float
    section_timeout_s: float
    default_region: str
    default_base_branch: str
    kubectl_binary: str
    tracker_connector: str
    codehost_connector: str
    cluster_connector: str
    log_level: str

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> "WorkflowSettings":
        source = os.environ if env is None else env
        config_dir = Path(
            source.get("DEVFLOW_CONFIG_DIR") or str(Path.home() / ".config" / "devflow")
        ).expanduser()
        timeout_s = _parse_timeout(source.get("DEVFLOW_TIMEOUT_S"))
        # A section makes several sequential calls, so its bound is never below one call's.
        section_timeout_s = max(
            timeout_s,
            _parse_timeout(source.get("DEVFLOW_SECTION_TIMEOUT_S"), DEFAULT_SECTION_TIMEOUT_S),
        )
        return cls(
            config_dir=config_dir,
            services_path=Path(
                source.get("DEVFLOW_SERVICES_FILE") or str(config_dir / "services.yaml")
            ),
            timeout_s=timeout_s,
            section_timeout_s=section_timeout_s,
            default_region=(source.get("DEVFLOW_DEFAULT_REGION") or DEFAULT_REGION).strip(),
            default_base_branch=(
                source.get("DEVFLOW_DEFAULT_BASE") or DEFAULT_BASE_BRANCH
            ).strip(),
            kubectl_binary=(source.get("DEVFLOW_KUBECTL") or "kubectl").strip(),
            tracker_connector=_choice(source.get("DEVFLOW_TRACKER_CONNECTOR"), "jira"),
            codehost_connector=_choice(source.get("DEVFLOW_CODEHOST_CONNECTOR"), "api"),
            cluster_connector=_choice(source.get("DEVFLOW_CLUSTER_CONNECTOR"), "kubectl"),
            log_level=(source.get("DEVFLOW_LOG_LEVEL") or "WARNING").strip().upper(),
        )


def get_settings(env: dict[str, str] | None = None) -> WorkflowSettings:
    return WorkflowSettings.from_env(env)


def configure_logging(settings: WorkflowSettings, verbose: bool = False) -> None:
    """Send log records to stderr; user-facing output never goes through logging."""

    level = logging.DEBUG if verbose else getattr(logging, settings.log_level, logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("devflow").setLevel(level)
    # urllib3 and jira are chatty at debug level.
    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))
    logging.getLogger("jira").setLevel(max(level, logging.WARNING))


def _parse_timeout(value: str | None, default: float = DEFAULT_TIMEOUT_S) -> float:
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _choice(value: str | None, default: str) -> str:
    cleaned = (value or "").strip().lower()
    return cleaned or default
