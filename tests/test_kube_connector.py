from __future__ import annotations

import json
import subprocess
from typing import Any

import pytest

from devflow.connectors.kube_connector import build_cluster_connector_from_env
from devflow.connectors.kube_connector_inmemory import InMemoryKubeConnector
from devflow.connectors.kube_connector_kubectl import KubectlConnector
from devflow.models.entities import RolloutState, ServiceProfile
from devflow.shared.errors import ErrorKind, WorkflowError
from devflow.sources.adapters import ClusterAdapter
from devflow.sources.normalize import image_tag

PROFILE = ServiceProfile("auth", "KH", "acme/auth", "prod-eks", "auth", "eu-west-1")

DEPLOYMENTS = {
    "kind": "List",
    "items": [
        {
            "metadata": {"name": "auth-api", "namespace": "auth", "labels": {"env": "staging"}},
            "spec": {
                "replicas": 3,
                "template": {"spec": {"containers": [{"name": "api", "image": "ecr.example/auth-api:2.4.1"}]}},
            },
            "status": {
                "readyReplicas": 1,
                "availableReplicas": 1,
                "conditions": [
                    {"type": "Available", "status": "False", "reason": "MinimumReplicasUnavailable"},
                    {"type": "Progressing", "status": "True", "reason": "ReplicaSetUpdated"},
                ],
            },
        }
    ],
}


class FakeRunner:
    def __init__(self, result: subprocess.CompletedProcess | BaseException) -> None:
        self.result = result
        self.calls: list[dict[str, Any]] = []

    def __call__(self, command: list[str], **kwargs: Any) -> subprocess.CompletedProcess:
        self.calls.append({"command": command, **kwargs})
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


def _completed(stdout: str = "", stderr: str = "", returncode: int = 0) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def test_factory_defaults_and_binary_override() -> None:
    assert isinstance(
        build_cluster_connector_from_env(env={"DEVFLOW_CLUSTER_CONNECTOR": "in_memory"}), InMemoryKubeConnector
    )
    connector = build_cluster_connector_from_env(env={"DEVFLOW_KUBECTL": "/opt/bin/kubectl"}, timeout_s=4.0)
    assert isinstance(connector, KubectlConnector)
    assert connector.binary == "/opt/bin/kubectl"
    assert connector.timeout_s == 4.0


def test_deployments_are_read_with_context_namespace_and_region() -> None:
    runner = FakeRunner(_completed(stdout=json.dumps(DEPLOYMENTS)))
    adapter = ClusterAdapter(KubectlConnector(timeout_s=6.0, runner=runner, env={"PATH": "/usr/bin"}))

    (snapshot,) = adapter.list_deployments(PROFILE)

    call = runner.calls[0]
    assert call["command"] == [
        "kubectl", "--context", "prod-eks", "--namespace", "auth", "get", "deployments", "-o", "json",
    ]
    assert call["timeout"] == 6.0
    assert call["env"] == {"PATH": "/usr/bin", "AWS_REGION": "eu-west-1"}
    assert snapshot.environment == "staging"
    assert snapshot.desired_replicas == 3
    assert snapshot.ready_replicas == 1
    assert snapshot.image_tag == "2.4.1"
    assert snapshot.rollout_state is RolloutState.PENDING


@pytest.mark.parametrize(
    "result, kind",
    [
        (FileNotFoundError("kubectl"), ErrorKind.UNAVAILABLE),
        (subprocess.TimeoutExpired(cmd="kubectl", timeout=6), ErrorKind.TIMEOUT),
        (
            _completed(stderr='error: context "prod-eks" does not exist', returncode=1),
            ErrorKind.NOT_FOUND,
        ),
        (
            _completed(
                stderr='Error from server (Forbidden): deployments.apps is forbidden: User "me" cannot list',
                returncode=1,
            ),
            ErrorKind.PERMISSION_DENIED,
        ),
        (
            _completed(stderr="error: You must be logged in to the server (Unauthorized)", returncode=1),
            ErrorKind.AUTHENTICATION,
        ),
        (_completed(stdout="not json"), ErrorKind.EXTERNAL),
    ],
)
def test_kubectl_failures_are_classified(result: Any, kind: ErrorKind) -> None:
    connector = KubectlConnector(runner=FakeRunner(result), env={})

    with pytest.raises(WorkflowError) as excinfo:
        connector.list_deployments(cluster="prod-eks", namespace="auth", region="eu-west-1")

    assert excinfo.value.kind is kind


def test_missing_items_list_is_rejected() -> None:
    runner = FakeRunner(_completed(stdout=json.dumps({"kind": "Status"})))
    adapter = ClusterAdapter(KubectlConnector(runner=runner, env={}))

    section = adapter.fetch_deployments(PROFILE)

    assert section.error_kind == "ExternalError"


def test_client_version_parses_json() -> None:
    runner = FakeRunner(_completed(stdout=json.dumps({"clientVersion": {"gitVersion": "v1.30.2"}})))
    assert KubectlConnector(runner=runner, env={}).client_version() == "v1.30.2"
    assert "AWS_REGION" not in runner.calls[0]["env"]


@pytest.mark.parametrize(
    "image, tag",
    [
        ("ecr.example/auth-api:2.4.1", "2.4.1"),
        ("localhost:5000/auth-api", "latest"),
        ("auth-api@sha256:abc", "sha256:abc"),
        ("", ""),
    ],
)
def test_image_tag(image: str, tag: str) -> None:
    assert image_tag(image) == tag
