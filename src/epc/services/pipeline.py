"""Export job runner and two-phase pipeline.

run_job() drives one request: submit it and, if the service queued it,
track it to a terminal outcome. Its progress can be mapped onto a slice
of the caller-visible 0-100 range.

TwoPhasePipeline chains two such jobs for composite exports: phase 1
builds a high-fidelity master from the inputs ([0, 50]), phase 2 converts
the master to the requested format ([50, 100]). A phase-1 failure ends
the pipeline before phase 2 is submitted.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from epc.models.export_job import (
    Completed,
    ExportRequest,
    Failed,
    ImmediateResult,
    JobHandle,
    ProgressUpdate,
    TerminalOutcome,
)
from epc.services.error_handling import ErrorCategory, ExportError, classify_exception
from epc.services.submit import JobSubmitter
from epc.services.tracker import ProgressTracker
from epc.utils.progress import (
    PROGRESS_COMPLETED,
    PROGRESS_CONVERT_PROCESSING,
    PROGRESS_CONVERT_SUBMITTED,
    PROGRESS_MASTER_STARTED,
    PROGRESS_PHASE_SPLIT,
    PROGRESS_START,
    MonotonicProgress,
    ProgressSink,
    scale_progress,
)

logger = logging.getLogger(__name__)

ConvertRequestFactory = Callable[[Completed], ExportRequest]
QueuedCallback = Callable[[JobHandle | None], None]


def _ignore_progress(update: ProgressUpdate) -> None:
    pass


async def run_job(
    submitter: JobSubmitter,
    tracker: ProgressTracker,
    request: ExportRequest,
    on_progress: ProgressSink | None = None,
    low: int = PROGRESS_START,
    high: int = PROGRESS_COMPLETED,
    on_queued: QueuedCallback | None = None,
) -> TerminalOutcome:
    """Submit one request and follow it to completion.

    Args:
        submitter: Submission service
        tracker: Tracker used when the service queues the job
        request: Request to submit
        on_progress: Receives progress mapped onto [low, high]
        low: Lower bound of the mapped range
        high: Upper bound of the mapped range
        on_queued: Called with the job handle when the service queues the job

    Returns:
        Completed or Failed; submission errors become Failed outcomes
    """
    sink = on_progress or _ignore_progress

    def report(update: ProgressUpdate) -> None:
        sink(
            ProgressUpdate(
                progress=scale_progress(update.progress, low, high),
                message=update.message,
            )
        )

    try:
        result = await asyncio.to_thread(submitter.submit_request, request)
    except ExportError as e:
        classified = classify_exception(e)
        logger.warning(f"Submission to {request.endpoint} failed: {classified.message}")
        return Failed(error_message=classified.message, category=classified.category)

    if isinstance(result, ImmediateResult):
        report(ProgressUpdate(progress=PROGRESS_COMPLETED, message="Export completed"))
        return Completed(download_location=result.download_location, filename=result.filename)

    if on_queued is not None:
        on_queued(result.job_handle)
    return await tracker.track(result.job_handle, report)


class TwoPhasePipeline:
    """Build-master-then-convert export pipeline."""

    def __init__(self, submitter: JobSubmitter, tracker: ProgressTracker):
        """Initialize TwoPhasePipeline.

        Args:
            submitter: Submission service shared by both phases
            tracker: Tracker shared by both phases
        """
        self.submitter = submitter
        self.tracker = tracker

    async def run_two_phase(
        self,
        build_request: ExportRequest,
        convert_request_factory: ConvertRequestFactory,
        on_progress: ProgressSink | None = None,
        target_label: str = "output",
        on_queued: QueuedCallback | None = None,
    ) -> TerminalOutcome:
        """Run both phases.

        Args:
            build_request: Master generation request
            convert_request_factory: Builds the conversion request from the
                phase-1 outcome (its filename or download location)
            on_progress: Receives non-decreasing progress; 100 only on success
            target_label: Name of the target format used in step text
            on_queued: Called when phase 1 is queued (with its handle) and
                when the pipeline moves on to phase 2 (with None)

        Returns:
            The phase-2 outcome on success, otherwise the first failure
        """
        report = MonotonicProgress(on_progress or _ignore_progress)
        label = target_label.upper()

        report(ProgressUpdate(PROGRESS_START, "Preparing export..."))
        report(ProgressUpdate(PROGRESS_MASTER_STARTED, "Generating high-quality master video..."))

        master = await run_job(
            self.submitter,
            self.tracker,
            build_request,
            report,
            low=PROGRESS_START,
            high=PROGRESS_PHASE_SPLIT,
            on_queued=on_queued,
        )
        if isinstance(master, Failed):
            logger.warning(f"Master generation failed: {master.error_message}")
            return master

        logger.info(f"Master ready: {master.filename or master.download_location}")
        if on_queued is not None:
            on_queued(None)
        report(ProgressUpdate(PROGRESS_PHASE_SPLIT, f"Converting to {label}..."))

        try:
            convert_request = convert_request_factory(master)
        except ValueError as e:
            return Failed(error_message=str(e), category=ErrorCategory.CONFIGURATION.value)
        except Exception as e:
            classified = classify_exception(e)
            logger.error(f"Could not build conversion request: {classified.message}")
            return Failed(error_message=classified.message, category=classified.category)

        report(ProgressUpdate(PROGRESS_CONVERT_SUBMITTED, f"Converting to {label}..."))
        outcome = await run_job(
            self.submitter,
            self.tracker,
            convert_request,
            self._convert_progress(report, label),
            low=PROGRESS_PHASE_SPLIT,
            high=PROGRESS_COMPLETED,
        )

        if isinstance(outcome, Completed):
            report(ProgressUpdate(PROGRESS_COMPLETED, f"{label} export completed!"))
        else:
            logger.warning(f"Conversion to {label} failed: {outcome.error_message}")
        return outcome

    @staticmethod
    def _convert_progress(report: ProgressSink, label: str) -> ProgressSink:
        """Announce the processing checkpoint before the first phase-2 update."""
        announced = False

        def forward(update: ProgressUpdate) -> None:
            nonlocal announced
            if not announced:
                announced = True
                report(
                    ProgressUpdate(PROGRESS_CONVERT_PROCESSING, f"Processing {label} conversion...")
                )
            report(update)

        return forward
