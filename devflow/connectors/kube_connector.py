"""Read-only cluster connector contract and environment-driven factory."""

from __future__ import annotations

import os
from typing import Any, Protocol


class KubeConnector(Protocol):
    """Connector contract for cluster inspection (deployments and replicas only)."""

    def list_deployments(
        self,
        *,
        cluster: str,
        namespace: str,
        region: str,
        selector: str | None = None,
    ) -> dict[str, Any]: ...

    def client_version(self) -> str: ...


def build_cluster_connector_from_env(
    env: dict[str, str] | None = None,
    *,
    timeout_s: float = 20.0,
) -> KubeConnector:
    env_map = os.environ if env is None else env
    connector_type = (env_map.get("DEVFLOW_CLUSTER_CONNECTOR") or "kubectl").strip().lower()

    if connector_type == "in_memory":
        from devflow.connectors.kube_connector_inmemory import InMemoryKubeConnector

        return InMemoryKubeConnector()

    from devflow.connectors.kube_connector_kubectl import KubectlConnector

    binary = (env_map.get("DEVFLOW_KUBECTL") or "kubectl").strip()
    return KubectlConnector(binary=binary, timeout_s=timeout_s)


__all__ = ["KubeConnector", "build_cluster_connector_from_env"]
