"""In-memory cluster connector for deterministic tests."""

from __future__ import annotations

import copy
from typing import Any


class InMemoryKubeConnector:
    def __init__(self) -> None:
        self.deployments: dict[tuple[str, str], list[dict[str, Any]]] = {}
        self.calls: list[dict[str, Any]] = []
        self.failure: BaseException | None = None

    def add_deployment(
        self,
        *,
        cluster: str,
        namespace: str,
        name: str,
        environment: str | None = None,
        replicas: int = 2,
        ready: int = 2,
        available: int = 2,
        image: str = "registry.example/app:1.0.0",
        conditions: list[dict[str, str]] | None = None,
    ) -> dict[str, Any]:
        labels = {"app": namespace}
        if environment:
            labels["environment"] = environment
        deployment = {
            "metadata": {"name": name, "namespace": namespace, "labels": labels},
            "spec": {
                "replicas": replicas,
                "template": {"spec": {"containers": [{"name": name, "image": image}]}},
            },
            "status": {
                "readyReplicas": ready,
                "availableReplicas": available,
                "conditions": conditions
                if conditions is not None
                else [{"type": "Available", "status": "True", "reason": "MinimumReplicasAvailable"}],
            },
        }
        self.deployments.setdefault((cluster, namespace), []).append(deployment)
        return deployment

    def list_deployments(
        self,
        *,
        cluster: str,
        namespace: str,
        region: str,
        selector: str | None = None,
    ) -> dict[str, Any]:
        self.calls.append(
            {"cluster": cluster, "namespace": namespace, "region": region, "selector": selector}
        )
        if self.failure is not None:
            raise self.failure
        return {
            "kind": "List",
            "items": copy.deepcopy(self.deployments.get((cluster, namespace), [])),
        }

    def client_version(self) -> str:
        return "v0.0.0-inmemory"
