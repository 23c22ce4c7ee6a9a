"""Export submission service.

This service handles:
1. Send one export request to the service
2. Interpret the response as a finished result or a queued job

Also provides builders for the request payloads the service accepts.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from epc.models.export_job import (
    ExportRequest,
    ImmediateResult,
    JobHandle,
    QueuedResult,
    SubmitResult,
)
from epc.models.settings import ExportSettings
from epc.services.api import ExportApiClient
from epc.services.error_handling import SubmissionError

logger = logging.getLogger(__name__)

DEFAULT_FRAME_DURATION_MS = 3000


@dataclass(frozen=True)
class Transition:
    """Transition between two consecutive timeline items."""

    type: str = "cut"
    duration: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "duration": self.duration}


class JobSubmitter:
    """Submits export requests.

    Exactly one network call per submit(). Non-success responses raise
    SubmissionError with the server's detail; there are no retries.
    """

    def __init__(self, client: ExportApiClient):
        """Initialize JobSubmitter.

        Args:
            client: Export service client
        """
        self.client = client

    def submit(self, endpoint: str, payload: dict[str, Any]) -> SubmitResult:
        """Submit an export request.

        Args:
            endpoint: Service-relative path (e.g. /api/unified-export/mp4)
            payload: Request body

        Returns:
            ImmediateResult if the service finished inline, QueuedResult otherwise

        Raises:
            SubmissionError: If the service rejects the request or the
                response has neither a download location nor a job handle
        """
        logger.info(f"Submitting export to {endpoint}")
        data = self.client.post_json(endpoint, payload)
        return parse_submit_response(data)

    def submit_request(self, request: ExportRequest) -> SubmitResult:
        """Submit a prepared ExportRequest."""
        return self.submit(request.endpoint, request.payload)


def parse_submit_response(data: dict[str, Any]) -> SubmitResult:
    """Interpret a submission response.

    Shapes accepted:
    - {"success": true, "downloadUrl": ...}: finished inline
    - {"jobId": ..., "status": "completed", "downloadUrl": ...}: direct
      processing that finished inline but still reports its job id
    - {"jobId": ..., "statusUrl": ...}: queued
    - {"filename": ...}: master generation that finished inline

    Raises:
        SubmissionError: If the response matches none of the shapes
    """
    if data.get("success") is False:
        raise SubmissionError(data.get("error") or data.get("details") or "Export failed")

    download_url = data.get("downloadUrl")
    job_id = data.get("jobId")
    status_url = data.get("statusUrl")
    filename = data.get("filename")

    if download_url and (not job_id or data.get("status") == "completed"):
        logger.info(f"Export completed inline: {download_url}")
        return ImmediateResult(download_location=download_url, filename=filename)

    if job_id and status_url:
        logger.info(f"Export queued with job id {job_id}")
        return QueuedResult(job_handle=JobHandle(job_id=str(job_id), status_url=status_url))

    if filename and not job_id:
        return ImmediateResult(download_location=filename, filename=filename)

    raise SubmissionError("Invalid response from export API")


def _file_refs(files: Sequence[str]) -> list[dict[str, str]]:
    return [{"filename": name} for name in files]


def _timeline_fields(
    files: Sequence[str],
    frame_durations: Sequence[int] | None,
    transitions: Sequence[Transition] | None,
) -> dict[str, Any]:
    durations = list(frame_durations or [DEFAULT_FRAME_DURATION_MS] * len(files))
    if len(durations) != len(files):
        raise ValueError(
            f"Expected {len(files)} frame durations, got {len(durations)}"
        )
    # One transition between each pair of consecutive items
    pairs = max(len(files) - 1, 0)
    transition_list = list(transitions or [])[:pairs]
    transition_list += [Transition()] * (pairs - len(transition_list))
    return {
        "images": _file_refs(files),
        "frameDurations": durations,
        "transitions": [t.to_dict() for t in transition_list],
    }


def build_unified_export_request(
    session_id: str,
    files: Sequence[str],
    settings: ExportSettings,
    frame_durations: Sequence[int] | None = None,
    transitions: Sequence[Transition] | None = None,
) -> ExportRequest:
    """Build a single-call export request.

    Args:
        session_id: Upload session the files belong to
        files: Uploaded file identifiers, in timeline order
        settings: Export settings
        frame_durations: Per-item durations in milliseconds
        transitions: Transitions between consecutive items

    Returns:
        ExportRequest for POST /api/unified-export/{format}
    """
    if not files:
        raise ValueError("At least one input file is required")
    payload: dict[str, Any] = {"sessionId": session_id}
    payload.update(_timeline_fields(files, frame_durations, transitions))
    payload.update(settings.to_payload())
    return ExportRequest(endpoint=f"/api/unified-export/{settings.format.value}", payload=payload)


def build_master_request(
    session_id: str,
    files: Sequence[str],
    frame_durations: Sequence[int] | None = None,
    transitions: Sequence[Transition] | None = None,
) -> ExportRequest:
    """Build the master-generation request (first phase of a two-phase export)."""
    if not files:
        raise ValueError("At least one input file is required")
    payload: dict[str, Any] = {"sessionId": session_id}
    payload.update(_timeline_fields(files, frame_durations, transitions))
    return ExportRequest(endpoint="/generate-master", payload=payload)


def build_from_master_request(
    master_filename: str, settings: ExportSettings, session_id: str | None = None
) -> ExportRequest:
    """Build the conversion request (second phase of a two-phase export)."""
    if not master_filename:
        raise ValueError("Master filename is required")
    payload: dict[str, Any] = {"masterFilename": master_filename, "sessionId": session_id}
    payload.update(settings.to_payload())
    return ExportRequest(endpoint="/export/from-master", payload=payload)
