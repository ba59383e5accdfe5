"""Error taxonomy shared by connectors, adapters, and workflow engines."""

from __future__ import annotations

import subprocess
from enum import Enum
from typing import Any

import requests
from jira import JIRAError
from pydantic import ValidationError as PayloadValidationError


class ErrorKind(str, Enum):
    NOT_CONFIGURED = "NotConfigured"
    AUTHENTICATION = "AuthenticationFailure"
    NOT_FOUND = "NotFound"
    PERMISSION_DENIED = "PermissionDenied"
    CONFLICT = "Conflict"
    TIMEOUT = "Timeout"
    UNAVAILABLE = "Unavailable"
    VALIDATION = "ValidationError"
    EXTERNAL = "ExternalError"

    @property
    def section_marker(self) -> str:
        if self in {ErrorKind.NOT_CONFIGURED, ErrorKind.UNAVAILABLE}:
            return "[Unavailable]"
        return "[Error]"


class WorkflowError(RuntimeError):
    """A classified failure surfaced to the user with its kind prefix."""

    def __init__(self, kind: ErrorKind, message: str, remedy: str = "") -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.remedy = remedy

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"

    def describe(self) -> str:
        if self.remedy:
            return f"{self} ({self.remedy})"
        return str(self)


class ServiceConfigError(ValueError):
    """The local service mapping file is malformed or ambiguous."""


STATUS_KINDS = {
    401: ErrorKind.AUTHENTICATION,
    403: ErrorKind.PERMISSION_DENIED,
    404: ErrorKind.NOT_FOUND,
    405: ErrorKind.CONFLICT,
    409: ErrorKind.CONFLICT,
    422: ErrorKind.CONFLICT,
    408: ErrorKind.TIMEOUT,
    504: ErrorKind.TIMEOUT,
}

# Ordered: the first keyword found in a lower-cased message wins.
MESSAGE_KINDS: tuple[tuple[str, ErrorKind], ...] = (
    ("timed out", ErrorKind.TIMEOUT),
    ("timeout", ErrorKind.TIMEOUT),
    ("not configured", ErrorKind.NOT_CONFIGURED),
    ("no credentials", ErrorKind.NOT_CONFIGURED),
    ("unauthorized", ErrorKind.AUTHENTICATION),
    ("authentication", ErrorKind.AUTHENTICATION),
    ("token expired", ErrorKind.AUTHENTICATION),
    ("credentials", ErrorKind.AUTHENTICATION),
    ("forbidden", ErrorKind.PERMISSION_DENIED),
    ("permission", ErrorKind.PERMISSION_DENIED),
    ("not allowed", ErrorKind.PERMISSION_DENIED),
    ("not found", ErrorKind.NOT_FOUND),
    ("does not exist", ErrorKind.NOT_FOUND),
    ("merge conflict", ErrorKind.CONFLICT),
    ("conflict", ErrorKind.CONFLICT),
    ("not mergeable", ErrorKind.CONFLICT),
    ("command not found", ErrorKind.UNAVAILABLE),
    ("executable file not found", ErrorKind.UNAVAILABLE),
    ("connection refused", ErrorKind.UNAVAILABLE),
    ("unable to connect", ErrorKind.UNAVAILABLE),
)


def kind_for_message(message: str) -> ErrorKind:
    lowered = message.lower()
    for keyword, kind in MESSAGE_KINDS:
        if keyword in lowered:
            return kind
    return ErrorKind.EXTERNAL


def kind_for_status(status_code: int | None, message: str = "") -> ErrorKind:
    if status_code is not None and status_code in STATUS_KINDS:
        return STATUS_KINDS[status_code]
    return kind_for_message(message)


def classify_failure(exc: BaseException, source: str = "") -> WorkflowError:
    """Turn any connector failure into a WorkflowError, keeping the original text."""
    if isinstance(exc, WorkflowError):
        return exc

    prefix = f"{source}: " if source else ""
    if isinstance(exc, (requests.Timeout, subprocess.TimeoutExpired, TimeoutError)):
        return WorkflowError(ErrorKind.TIMEOUT, f"{prefix}request timed out ({exc})")
    if isinstance(exc, requests.ConnectionError):
        return WorkflowError(ErrorKind.UNAVAILABLE, f"{prefix}network error ({exc})")
    if isinstance(exc, FileNotFoundError):
        return WorkflowError(ErrorKind.UNAVAILABLE, f"{prefix}required tool is not installed ({exc})")
    if isinstance(exc, JIRAError):
        text = _jira_error_text(exc)
        return WorkflowError(kind_for_status(exc.status_code, text), f"{prefix}{text}")
    if isinstance(exc, requests.HTTPError):
        status = exc.response.status_code if exc.response is not None else None
        return WorkflowError(kind_for_status(status, str(exc)), f"{prefix}{exc}")
    if isinstance(exc, PayloadValidationError):
        return WorkflowError(
            ErrorKind.EXTERNAL,
            f"{prefix}unexpected response shape ({exc.error_count()} validation errors)",
        )
    if isinstance(exc, PermissionError):
        return WorkflowError(ErrorKind.PERMISSION_DENIED, f"{prefix}{exc}")
    return WorkflowError(kind_for_message(str(exc)), f"{prefix}{exc}")


def _jira_error_text(exc: JIRAError) -> str:
    text = str(getattr(exc, "text", "") or "").strip()
    status: Any = getattr(exc, "status_code", None)
    if status and text:
        return f"HTTP {status}: {text}"
    if text:
        return text
    return str(exc)
