"""Run independent section fetches concurrently with a per-source time bound."""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from typing import Any

from devflow.models.entities import SectionResult, SectionStatus
from devflow.shared.errors import ErrorKind, classify_failure
from devflow.sources.adapters import section_from_error

logger = logging.getLogger(__name__)

Fetcher = Callable[[], SectionResult[Any]]


def fetch_sections(fetchers: dict[str, Fetcher], timeout_s: float) -> dict[str, SectionResult[Any]]:
    """Fetch every section in parallel; a stalled source never holds up its siblings.

    Each section gets ``timeout_s`` measured from the start of the call. Workers
    are daemon threads, so a fetch that is still running when the command
    finishes does not keep the process alive.
    """
    if not fetchers:
        return {}
    out: queue.Queue = queue.Queue()

    def _worker(name: str, fetch: Fetcher) -> None:
        try:
            out.put((name, fetch()))
        except Exception as exc:
            out.put((name, section_from_error(name, classify_failure(exc))))

    for name, fetch in fetchers.items():
        thread = threading.Thread(
            target=_worker, args=(name, fetch), name=f"devflow-section-{name}", daemon=True
        )
        thread.start()

    results: dict[str, SectionResult[Any]] = {}
    deadline = time.monotonic() + max(0.0, timeout_s)
    while len(results) < len(fetchers):
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        try:
            name, section = out.get(timeout=remaining)
        except queue.Empty:
            break
        results[name] = section

    for name in fetchers:
        if name not in results:
            logger.warning("Section %s exceeded %.1fs", name, timeout_s)
            results[name] = SectionResult(
                name=name,
                status=SectionStatus.ERROR,
                message=f"{ErrorKind.TIMEOUT.value}: no answer within {timeout_s:g}s",
                error_kind=ErrorKind.TIMEOUT.value,
            )
    return {name: results[name] for name in fetchers}
