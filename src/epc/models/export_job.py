"""Data models for export jobs.

This module defines the structures exchanged with the export service
(requests, submission results, status reports) and the terminal outcomes
and observable state the rest of the client works with.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class JobStatus(Enum):
    """Status of a queued export job as reported by the service."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class ExportPhase(Enum):
    """States of the export state machine."""

    IDLE = "idle"
    VALIDATING = "validating"
    SUBMITTING = "submitting"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_in_flight(self) -> bool:
        return self in (ExportPhase.VALIDATING, ExportPhase.SUBMITTING, ExportPhase.RUNNING)


@dataclass(frozen=True)
class ExportRequest:
    """A single call to the export service.

    Attributes:
        endpoint: Path relative to the API base URL (e.g. /api/unified-export/mp4)
        payload: JSON body
    """

    endpoint: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class JobHandle:
    """Reference to a job the service queued instead of finishing inline.

    Attributes:
        job_id: Opaque job identifier
        status_url: Address to poll for status
    """

    job_id: str
    status_url: str

    def event_name(self, kind: str) -> str:
        """Name of a job-scoped push event (progress, completed, failed)."""
        return f"job:{self.job_id}:{kind}"


@dataclass(frozen=True)
class ImmediateResult:
    """Submission that finished synchronously."""

    download_location: str
    filename: str | None = None


@dataclass(frozen=True)
class QueuedResult:
    """Submission that was queued as a background job."""

    job_handle: JobHandle


SubmitResult = ImmediateResult | QueuedResult


@dataclass(frozen=True)
class ProgressUpdate:
    """A progress notification.

    Attributes:
        progress: Integer percentage 0-100
        message: Step description
    """

    progress: int
    message: str = ""


@dataclass(frozen=True)
class Completed:
    """Terminal success."""

    download_location: str
    filename: str | None = None

    @property
    def succeeded(self) -> bool:
        return True


@dataclass(frozen=True)
class Failed:
    """Terminal failure.

    Attributes:
        error_message: Human-readable error
        category: ErrorCategory value (configuration, submission, tracking, timeout, transport)
    """

    error_message: str
    category: str = "unknown"

    @property
    def succeeded(self) -> bool:
        return False


TerminalOutcome = Completed | Failed


@dataclass(frozen=True)
class StatusReport:
    """One poll response from the status endpoint."""

    status: JobStatus
    progress: int = 0
    message: str = ""
    download_location: str | None = None
    filename: str | None = None
    error: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StatusReport:
        """Parse a status response.

        The service returns either the bare job object or an envelope of
        the form {"success": true, "job": {...}}.

        Raises:
            ValueError: If the status value is missing or unknown
        """
        job = data.get("job") if isinstance(data.get("job"), dict) else data
        raw_status = job.get("status")
        try:
            status = JobStatus(raw_status)
        except ValueError as e:
            raise ValueError(f"Unknown job status: {raw_status!r}") from e

        result = job.get("result") or {}
        return cls(
            status=status,
            progress=coerce_progress(job.get("progress")),
            message=job.get("message") or "",
            download_location=job.get("downloadUrl"),
            filename=job.get("filename") or result.get("filename"),
            error=job.get("error") or job.get("failedReason"),
        )


@dataclass
class ExportState:
    """Observable export state rendered by callers.

    Attributes:
        is_exporting: A job is being validated, submitted or tracked
        progress: Integer percentage 0-100
        current_step: Description of the current step
        error: Terminal error message, if any
        is_completed: The last export finished successfully
        download_location: Where the finished file can be fetched
        saved_path: Local path the file was saved to, once downloaded
    """

    is_exporting: bool = False
    progress: int = 0
    current_step: str = ""
    error: str | None = None
    is_completed: bool = False
    download_location: str | None = None
    saved_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "isExporting": self.is_exporting,
            "progress": self.progress,
            "currentStep": self.current_step,
            "error": self.error,
            "isCompleted": self.is_completed,
            "downloadUrl": self.download_location,
            "savedPath": self.saved_path,
        }


def coerce_progress(value: Any) -> int:
    """Clamp a progress value from the wire into 0-100."""
    try:
        progress = int(float(value))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, progress))
