"""Error types and classification for the export workflow.

Provides the exception hierarchy raised by the service layer and the
logic that classifies failures into categories:
- configuration: blocked by validation before any network call
- submission: the export service rejected the initial request
- tracking: the job reported an explicit failure
- timeout: the poll ceiling was reached without a terminal status
- transport: the network failed mid-flight

Nothing in this workflow retries automatically; the category only drives
how the failure is described to the user.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

import requests

if TYPE_CHECKING:
    from epc.models.validation import ValidationResult


class ErrorCategory(Enum):
    """Error category classification."""

    CONFIGURATION = "configuration"
    SUBMISSION = "submission"
    TRACKING = "tracking"
    TIMEOUT = "timeout"
    TRANSPORT = "transport"
    UNKNOWN = "unknown"


class ExportError(Exception):
    """Base class for export workflow errors."""

    category = ErrorCategory.UNKNOWN


class SubmissionError(ExportError):
    """The export service answered the submission with a non-success status."""

    category = ErrorCategory.SUBMISSION

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class StatusCheckError(ExportError):
    """A status poll could not be completed."""

    category = ErrorCategory.TRANSPORT

    def __init__(self, detail: str, status_code: int | None = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code


class ExportInProgressError(ExportError):
    """A second export was started while one is still in flight."""

    category = ErrorCategory.CONFIGURATION

    def __init__(self, message: str = "An export is already in progress"):
        super().__init__(message)


class ValidationBlockedError(ExportError):
    """Settings have blocking validation errors."""

    category = ErrorCategory.CONFIGURATION

    def __init__(self, result: ValidationResult):
        self.result = result
        summary = "; ".join(m.message for m in result.errors)
        super().__init__(f"Export settings are invalid: {summary}")


@dataclass
class ClassifiedError:
    """Result of error classification."""

    category: str
    message: str


def classify_exception(error: BaseException) -> ClassifiedError:
    """Classify an exception raised while exporting.

    Args:
        error: The exception

    Returns:
        ClassifiedError with category value and a user-facing message

    Categories:
    - ExportError subclasses carry their own category
    - requests timeouts and connection errors are transport failures
    - anything else is unknown
    """
    if isinstance(error, ExportError):
        return ClassifiedError(category=error.category.value, message=str(error))

    if isinstance(error, (requests.ConnectionError, requests.Timeout)):
        return ClassifiedError(
            category=ErrorCategory.TRANSPORT.value,
            message=f"Network error: {error}",
        )

    if isinstance(error, requests.RequestException):
        return ClassifiedError(category=ErrorCategory.TRANSPORT.value, message=str(error))

    return ClassifiedError(category=ErrorCategory.UNKNOWN.value, message=str(error) or repr(error))


def extract_error_detail(response: requests.Response) -> str:
    """Extract the server-provided error detail from a failed response.

    The service reports failures as JSON with an "error", "details" or
    "message" field. Falls back to the HTTP status line.

    Args:
        response: Failed HTTP response

    Returns:
        Error detail string
    """
    try:
        body: Any = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        for key in ("error", "details", "message"):
            value = body.get(key)
            if value:
                return str(value)

    reason = response.reason or "Request failed"
    return f"HTTP {response.status_code} {reason}"
