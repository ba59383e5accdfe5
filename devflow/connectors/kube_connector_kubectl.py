"""Cluster connector that shells out to ``kubectl`` (read-only ``get`` calls)."""

from __future__ import annotations

import json
import logging
import os
import subprocess
from collections.abc import Callable
from typing import Any

from devflow.shared.errors import ErrorKind, WorkflowError, kind_for_message

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


class KubectlConnector:
    def __init__(
        self,
        binary: str = "kubectl",
        timeout_s: float = 20.0,
        runner: Runner | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        self.binary = binary
        self.timeout_s = timeout_s
        self.runner = runner or subprocess.run
        self.env = dict(os.environ if env is None else env)

    def list_deployments(
        self,
        *,
        cluster: str,
        namespace: str,
        region: str,
        selector: str | None = None,
    ) -> dict[str, Any]:
        args = ["--context", cluster, "--namespace", namespace, "get", "deployments", "-o", "json"]
        if selector:
            args.extend(["-l", selector])
        output = self._run(args, region=region)
        try:
            payload = json.loads(output)
        except json.JSONDecodeError as exc:
            raise WorkflowError(
                ErrorKind.EXTERNAL, f"kubectl returned invalid JSON: {exc.msg}"
            ) from exc
        if not isinstance(payload, dict):
            raise WorkflowError(ErrorKind.EXTERNAL, "kubectl returned a non-object document")
        return payload

    def client_version(self) -> str:
        output = self._run(["version", "--client", "-o", "json"], region="")
        try:
            payload = json.loads(output)
        except json.JSONDecodeError:
            return output.strip()
        return str((payload.get("clientVersion") or {}).get("gitVersion", "")).strip()

    def _run(self, args: list[str], region: str) -> str:
        command = [self.binary, *args]
        env = dict(self.env)
        if region:
            env["AWS_REGION"] = region
        logger.debug("Running %s", " ".join(command))
        try:
            result = self.runner(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout_s,
                check=False,
                env=env,
            )
        except FileNotFoundError as exc:
            raise WorkflowError(
                ErrorKind.UNAVAILABLE,
                f"{self.binary} is not installed or not on PATH",
                remedy="Install kubectl or set DEVFLOW_KUBECTL.",
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise WorkflowError(
                ErrorKind.TIMEOUT, f"{self.binary} did not answer within {self.timeout_s:g}s"
            ) from exc

        if result.returncode != 0:
            stderr = (result.stderr or "").strip() or f"exit code {result.returncode}"
            raise WorkflowError(kind_for_message(stderr), f"kubectl: {stderr}")
        return result.stdout or ""
