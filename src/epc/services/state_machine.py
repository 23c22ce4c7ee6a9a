"""Export state machine.

Owns the observable ExportState for one session and drives an export
through IDLE -> VALIDATING -> SUBMITTING -> RUNNING -> COMPLETED | FAILED.
cancel() returns SUBMITTING or RUNNING to IDLE. Only one export can be in
flight per machine.

Progress produced by the submitter, tracker and pipeline arrives through
a ProgressStream that this class consumes; nothing else mutates the state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace

from epc.models.export_job import (
    Completed,
    ExportPhase,
    ExportRequest,
    ExportState,
    Failed,
    JobHandle,
    ProgressUpdate,
    TerminalOutcome,
)
from epc.models.settings import ExportSettings
from epc.models.validation import ValidationResult
from epc.services.download import DownloadTrigger, default_export_name
from epc.services.error_handling import (
    ErrorCategory,
    ExportInProgressError,
    ValidationBlockedError,
    classify_exception,
)
from epc.services.pipeline import ConvertRequestFactory, TwoPhasePipeline, run_job
from epc.services.submit import JobSubmitter
from epc.services.tracker import ProgressTracker
from epc.utils.progress import PROGRESS_COMPLETED, ProgressSink, ProgressStream
from epc.validation.engine import validate

logger = logging.getLogger(__name__)

StateListener = Callable[[ExportPhase, ExportState], None]
JobRunner = Callable[[ProgressSink, Callable[[JobHandle | None], None]], Awaitable[TerminalOutcome]]

_PROGRESS_PHASES = (ExportPhase.SUBMITTING, ExportPhase.RUNNING)


@dataclass
class _ActiveJob:
    task: asyncio.Task
    cancelled: bool = False


class ExportStateMachine:
    """Drives exports and exposes their state."""

    def __init__(
        self,
        submitter: JobSubmitter,
        tracker: ProgressTracker,
        pipeline: TwoPhasePipeline | None = None,
        download_trigger: DownloadTrigger | None = None,
        validator: Callable[[ExportSettings], ValidationResult] = validate,
    ):
        """Initialize ExportStateMachine.

        Args:
            submitter: Submission service
            tracker: Tracker for queued jobs
            pipeline: Two-phase pipeline (built from submitter and tracker if not provided)
            download_trigger: Saves finished exports locally (None skips the download)
            validator: Settings validator
        """
        self.submitter = submitter
        self.tracker = tracker
        self.pipeline = pipeline or TwoPhasePipeline(submitter, tracker)
        self.download_trigger = download_trigger
        self.validator = validator

        self._state = ExportState()
        self._phase = ExportPhase.IDLE
        self._listeners: list[StateListener] = []
        self._active: _ActiveJob | None = None

    @property
    def phase(self) -> ExportPhase:
        return self._phase

    @property
    def state(self) -> ExportState:
        """Snapshot of the current state."""
        return replace(self._state)

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a callback invoked after every state change.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def validate(self, settings: ExportSettings) -> ValidationResult:
        """Validate settings without changing state."""
        return self.validator(settings)

    async def export(
        self, settings: ExportSettings, request: ExportRequest
    ) -> TerminalOutcome | None:
        """Run a single-request export.

        Args:
            settings: Settings the request was built from
            request: Request to submit

        Returns:
            The terminal outcome, or None if the export was cancelled

        Raises:
            ExportInProgressError: If another export is in flight
        """

        async def job(sink: ProgressSink, on_queued: Callable[[JobHandle | None], None]):
            return await run_job(
                self.submitter, self.tracker, request, sink, on_queued=on_queued
            )

        return await self._run(settings, job)

    async def export_two_phase(
        self,
        settings: ExportSettings,
        build_request: ExportRequest,
        convert_request_factory: ConvertRequestFactory,
    ) -> TerminalOutcome | None:
        """Run a build-master-then-convert export.

        Args:
            settings: Target settings
            build_request: Master generation request
            convert_request_factory: Builds the conversion request from the master

        Returns:
            The terminal outcome, or None if the export was cancelled

        Raises:
            ExportInProgressError: If another export is in flight
        """

        async def job(sink: ProgressSink, on_queued: Callable[[JobHandle | None], None]):
            return await self.pipeline.run_two_phase(
                build_request,
                convert_request_factory,
                sink,
                target_label=settings.format.value,
                on_queued=on_queued,
            )

        return await self._run(settings, job)

    def cancel(self) -> bool:
        """Stop following the current export and return to IDLE.

        The export service is not told to abort; work already queued
        there keeps running.

        Returns:
            True if an export was cancelled
        """
        if self._phase not in _PROGRESS_PHASES or self._active is None:
            return False

        logger.info("Export cancelled locally")
        self._active.cancelled = True
        self._active.task.cancel()
        self._active = None
        self._state.progress = 0
        self._state.error = None
        self._state.is_exporting = False
        self._state.current_step = ""
        self._set_phase(ExportPhase.IDLE)
        return True

    def reset(self) -> None:
        """Clear a finished export's state.

        Raises:
            ExportInProgressError: If an export is in flight
        """
        if self._phase.is_in_flight:
            raise ExportInProgressError()
        self._state = ExportState()
        self._set_phase(ExportPhase.IDLE)

    async def _run(self, settings: ExportSettings, job: JobRunner) -> TerminalOutcome | None:
        if self._phase.is_in_flight:
            raise ExportInProgressError()

        self._state = ExportState(is_exporting=True, current_step="Validating settings...")
        self._set_phase(ExportPhase.VALIDATING)

        result = self.validator(settings)
        if not result.can_export:
            error = ValidationBlockedError(result)
            logger.info(f"Export blocked: {error}")
            outcome = Failed(error_message=str(error), category=ErrorCategory.CONFIGURATION.value)
            self._finish_failed(outcome)
            return outcome

        self._state.current_step = "Submitting export..."
        self._set_phase(ExportPhase.SUBMITTING)

        stream = ProgressStream()
        task = asyncio.ensure_future(job(stream.emit, self._on_queued))
        task.add_done_callback(lambda _: stream.close())
        active = _ActiveJob(task=task)
        self._active = active

        try:
            async for update in stream:
                if self._active is active:
                    self._apply_progress(update)
            outcome = await task
        except asyncio.CancelledError:
            if active.cancelled:
                return None
            task.cancel()
            if self._active is active:
                self._active = None
                self._state = ExportState()
                self._set_phase(ExportPhase.IDLE)
            raise
        except Exception as e:
            if self._active is not active:
                return None
            self._active = None
            classified = classify_exception(e)
            logger.error(f"Export job raised {type(e).__name__}: {classified.message}")
            outcome = Failed(error_message=classified.message, category=classified.category)
            self._finish_failed(outcome)
            return outcome

        if self._active is not active:
            # Cancelled after the job had already finished.
            return None
        self._active = None

        if isinstance(outcome, Completed):
            await self._finish_completed(outcome, settings)
        else:
            self._finish_failed(outcome)
        return outcome

    def _on_queued(self, handle: JobHandle | None) -> None:
        if self._phase is ExportPhase.SUBMITTING:
            if handle is not None:
                logger.info(f"Export queued as job {handle.job_id}")
            self._set_phase(ExportPhase.RUNNING)

    def _apply_progress(self, update: ProgressUpdate) -> None:
        if self._phase not in _PROGRESS_PHASES:
            return
        self._state.progress = max(self._state.progress, update.progress)
        if update.message:
            self._state.current_step = update.message
        self._notify()

    async def _finish_completed(self, outcome: Completed, settings: ExportSettings) -> None:
        self._state.progress = PROGRESS_COMPLETED
        self._state.current_step = "Export completed"
        self._state.is_exporting = False
        self._state.is_completed = True
        self._state.error = None
        self._state.download_location = outcome.download_location
        self._set_phase(ExportPhase.COMPLETED)

        if self.download_trigger is None:
            return

        owned = self._state
        download = await asyncio.to_thread(
            self.download_trigger.trigger,
            outcome.download_location,
            outcome.filename or default_export_name(settings.file_extension),
        )
        if self._state is not owned:
            # A reset or a newer export replaced this state while downloading.
            logger.info(f"Download of {outcome.download_location} finished after its export was replaced")
            return
        if download.success and download.local_path is not None:
            self._state.saved_path = str(download.local_path)
            self._notify()
        else:
            logger.warning(f"Export finished but download failed: {download.error_message}")

    def _finish_failed(self, outcome: Failed) -> None:
        logger.warning(f"Export failed ({outcome.category}): {outcome.error_message}")
        self._state.progress = 0
        self._state.current_step = "Export failed"
        self._state.is_exporting = False
        self._state.is_completed = False
        self._state.error = outcome.error_message
        self._state.download_location = None
        self._set_phase(ExportPhase.FAILED)

    def _set_phase(self, phase: ExportPhase) -> None:
        if phase is not self._phase:
            logger.debug(f"Export phase {self._phase.value} -> {phase.value}")
        self._phase = phase
        self._notify()

    def _notify(self) -> None:
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(self._phase, snapshot)
            except Exception:
                logger.exception("State listener failed")
