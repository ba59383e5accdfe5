from __future__ import annotations

import subprocess
import sys
import threading
import time
from pathlib import Path

from devflow.models.entities import SectionResult, SectionStatus
from devflow.shared.settings import WorkflowSettings
from devflow.sources.parallel import fetch_sections

ROOT = Path(__file__).resolve().parents[1]

STALLED_SCRIPT = """
import time
from devflow.sources.parallel import fetch_sections

def stalled():
    time.sleep(30)

started = time.monotonic()
sections = fetch_sections({"deployments": stalled}, 0.2)
print(sections["deployments"].error_kind, round(time.monotonic() - started, 2))
"""


def test_stalled_worker_does_not_hold_the_process_open() -> None:
    started = time.monotonic()
    result = subprocess.run(
        [sys.executable, "-c", STALLED_SCRIPT],
        cwd=ROOT,
        capture_output=True,
        text=True,
        timeout=20,
        check=False,
    )
    elapsed = time.monotonic() - started

    assert result.returncode == 0, result.stderr
    assert result.stdout.startswith("Timeout ")
    assert elapsed < 15


def test_workers_are_daemon_threads_and_results_keep_order() -> None:
    release = threading.Event()
    seen: list[bool] = []

    def stalled() -> SectionResult[str]:
        seen.append(threading.current_thread().daemon)
        release.wait(5)
        return SectionResult.from_items("slow", ["late"])

    try:
        sections = fetch_sections(
            {"slow": stalled, "fast": lambda: SectionResult.from_items("fast", ["a"])}, 0.2
        )
    finally:
        release.set()

    assert list(sections) == ["slow", "fast"]
    assert sections["fast"].status is SectionStatus.POPULATED
    assert sections["slow"].error_kind == "Timeout"
    assert seen == [True]


def test_fetch_exception_becomes_classified_section() -> None:
    def broken() -> SectionResult[str]:
        raise FileNotFoundError("kubectl")

    sections = fetch_sections({"deployments": broken}, 1.0)

    assert sections["deployments"].status is SectionStatus.UNAVAILABLE
    assert sections["deployments"].error_kind == "Unavailable"


def test_section_timeout_is_never_below_call_timeout() -> None:
    defaults = WorkflowSettings.from_env({})
    assert defaults.timeout_s == 20.0
    assert defaults.section_timeout_s == 60.0

    tight = WorkflowSettings.from_env({"DEVFLOW_TIMEOUT_S": "45", "DEVFLOW_SECTION_TIMEOUT_S": "10"})
    assert tight.section_timeout_s == 45.0
