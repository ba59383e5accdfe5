"""Connectivity probes for the ``doctor`` command."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from devflow.shared.errors import ErrorKind, WorkflowError, classify_failure

logger = logging.getLogger(__name__)

TRANSIENT_KINDS = {ErrorKind.TIMEOUT, ErrorKind.UNAVAILABLE}


@dataclass(frozen=True)
class ProbeResult:
    name: str
    ok: bool
    detail: str
    attempts: int
    error: WorkflowError | None = None


def probe(name: str, check: Callable[[], str]) -> ProbeResult:
    """Run ``check``; a transient network failure gets exactly one immediate retry."""
    attempts = 0
    while True:
        attempts += 1
        try:
            detail = check()
        except Exception as exc:
            error = classify_failure(exc, name)
            missing_tool = isinstance(exc.__cause__, FileNotFoundError) or isinstance(exc, FileNotFoundError)
            retryable = error.kind in TRANSIENT_KINDS and not missing_tool
            if attempts == 1 and retryable:
                logger.info("Probe %s failed transiently (%s); retrying once", name, error)
                continue
            return ProbeResult(name=name, ok=False, detail=error.describe(), attempts=attempts, error=error)
        return ProbeResult(name=name, ok=True, detail=detail, attempts=attempts)
