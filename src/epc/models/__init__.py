"""Data models module for the export pipeline client."""

from epc.models.export_job import (
    Completed,
    ExportPhase,
    ExportRequest,
    ExportState,
    Failed,
    ImmediateResult,
    JobHandle,
    JobStatus,
    ProgressUpdate,
    QueuedResult,
    StatusReport,
    SubmitResult,
    TerminalOutcome,
)
from epc.models.settings import (
    DitherMode,
    ExportFormat,
    ExportSettings,
    GifOptions,
    QualityTier,
    Resolution,
    VideoOptions,
)
from epc.models.validation import (
    Severity,
    ValidationMessage,
    ValidationResult,
    has_field_error,
    has_field_warning,
    messages_for_field,
)

__all__ = [
    # Job models
    "Completed",
    "ExportPhase",
    "ExportRequest",
    "ExportState",
    "Failed",
    "ImmediateResult",
    "JobHandle",
    "JobStatus",
    "ProgressUpdate",
    "QueuedResult",
    "StatusReport",
    "SubmitResult",
    "TerminalOutcome",
    # Settings
    "DitherMode",
    "ExportFormat",
    "ExportSettings",
    "GifOptions",
    "QualityTier",
    "Resolution",
    "VideoOptions",
    # Validation
    "Severity",
    "ValidationMessage",
    "ValidationResult",
    "has_field_error",
    "has_field_warning",
    "messages_for_field",
]
