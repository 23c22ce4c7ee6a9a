"""Job progress tracking over push and poll channels.

A queued job is followed through two channels that race each other:

1. Push: job-scoped events (job:{id}:progress, job:{id}:completed,
   job:{id}:failed). If no terminal event arrives within the fallback
   window, the subscriptions are dropped and tracking switches to polling.
2. Poll: the status address is fetched every poll interval, up to a fixed
   number of attempts. Reaching the ceiling fails the job with a timeout.

If no push channel is connected, polling starts right away.

The outcome lives in a OneShot slot: the first channel to produce a
terminal outcome settles it, and settling tears down every timer,
subscription and poll task belonging to the job.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from epc.config.manager import TrackingConfig
from epc.models.export_job import (
    Completed,
    Failed,
    JobHandle,
    JobStatus,
    ProgressUpdate,
    TerminalOutcome,
    coerce_progress,
)
from epc.services.api import ExportApiClient
from epc.services.error_handling import ErrorCategory, StatusCheckError, classify_exception
from epc.services.push import PushChannel, Unsubscribe
from epc.utils.once import OneShot
from epc.utils.progress import MonotonicProgress, ProgressSink

logger = logging.getLogger(__name__)

DOWNLOAD_PATH_TEMPLATE = "/api/export/download/{job_id}"


def _ignore_progress(update: ProgressUpdate) -> None:
    pass


def _download_location(job_id: str, location: str | None) -> str:
    return location or DOWNLOAD_PATH_TEMPLATE.format(job_id=job_id)


class _PushListener:
    """Push-channel subscriptions for one job."""

    EVENT_KINDS = ("progress", "completed", "failed")

    def __init__(
        self,
        channel: PushChannel,
        handle: JobHandle,
        slot: OneShot[TerminalOutcome],
        report: ProgressSink,
        loop: asyncio.AbstractEventLoop,
    ):
        self.channel = channel
        self.handle = handle
        self.slot = slot
        self.report = report
        self.loop = loop
        self.active = False
        self._unsubscribers: list[Unsubscribe] = []

    def start(self) -> None:
        handlers: dict[str, Callable[[dict[str, Any]], None]] = {
            "progress": self._on_progress,
            "completed": self._on_completed,
            "failed": self._on_failed,
        }
        self.active = True
        for kind in self.EVENT_KINDS:
            self._unsubscribers.append(
                self.channel.subscribe(self.handle.event_name(kind), self._marshal(handlers[kind]))
            )
        self.slot.on_settle(self.stop)

    def stop(self) -> None:
        self.active = False
        unsubscribers, self._unsubscribers = self._unsubscribers, []
        for unsubscribe in unsubscribers:
            unsubscribe()

    def _marshal(self, handler: Callable[[dict[str, Any]], None]) -> Callable[[dict[str, Any]], None]:
        # Transports may emit from their own thread; handle events on the loop.
        def deliver(payload: dict[str, Any]) -> None:
            self.loop.call_soon_threadsafe(self._dispatch, handler, payload)

        return deliver

    def _dispatch(self, handler: Callable[[dict[str, Any]], None], payload: dict[str, Any]) -> None:
        if self.active and not self.slot.settled:
            handler(payload)

    def _on_progress(self, payload: dict[str, Any]) -> None:
        self.report(
            ProgressUpdate(
                progress=coerce_progress(payload.get("progress")),
                message=payload.get("message") or "",
            )
        )

    def _on_completed(self, payload: dict[str, Any]) -> None:
        logger.info(f"Job {self.handle.job_id} completed (push)")
        self.slot.settle(
            Completed(
                download_location=_download_location(
                    self.handle.job_id, payload.get("downloadUrl")
                ),
                filename=payload.get("filename"),
            )
        )

    def _on_failed(self, payload: dict[str, Any]) -> None:
        error = payload.get("error") or payload.get("message") or "Export failed"
        logger.info(f"Job {self.handle.job_id} failed (push): {error}")
        self.slot.settle(Failed(error_message=error, category=ErrorCategory.TRACKING.value))


class ProgressTracker:
    """Follows one queued job to its terminal outcome.

    One tracker may be reused for consecutive jobs; every call to track()
    owns its own subscriptions, timers and poll task.
    """

    def __init__(
        self,
        client: ExportApiClient,
        push_channel: PushChannel | None = None,
        config: TrackingConfig | None = None,
    ):
        """Initialize ProgressTracker.

        Args:
            client: Export service client used for status polls
            push_channel: Push transport (None disables push)
            config: Fallback window, poll interval and poll ceiling
        """
        self.client = client
        self.push_channel = push_channel
        self.config = config or TrackingConfig()

    @property
    def push_available(self) -> bool:
        return self.push_channel is not None and self.push_channel.connected

    async def track(
        self, handle: JobHandle, on_progress: ProgressSink | None = None
    ) -> TerminalOutcome:
        """Wait for a job's terminal outcome.

        Args:
            handle: Job to follow
            on_progress: Receives non-decreasing progress updates

        Returns:
            Completed or Failed, delivered exactly once. Cancelling the
            awaiting task releases every channel owned by this job.
        """
        loop = asyncio.get_running_loop()
        slot: OneShot[TerminalOutcome] = OneShot(loop)
        report = MonotonicProgress(on_progress or _ignore_progress)

        try:
            if self.push_available:
                self._listen(handle, slot, report, loop)
            else:
                logger.info(f"No push channel for job {handle.job_id}, polling")
                self._start_polling(handle, slot, report)
            outcome = await slot.wait()
        finally:
            slot.close()

        if isinstance(outcome, Completed):
            report(ProgressUpdate(progress=100, message="Export completed"))
        return outcome

    def _listen(
        self,
        handle: JobHandle,
        slot: OneShot[TerminalOutcome],
        report: ProgressSink,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        listener = _PushListener(self.push_channel, handle, slot, report, loop)
        listener.start()

        def fall_back_to_polling() -> None:
            if slot.settled:
                return
            logger.info(
                f"No terminal push event for job {handle.job_id} within "
                f"{self.config.push_fallback_seconds}s, switching to polling"
            )
            listener.stop()
            self._start_polling(handle, slot, report)

        timer = loop.call_later(self.config.push_fallback_seconds, fall_back_to_polling)
        slot.on_settle(timer.cancel)

    def _start_polling(
        self, handle: JobHandle, slot: OneShot[TerminalOutcome], report: ProgressSink
    ) -> None:
        task = asyncio.ensure_future(self._poll(handle, slot, report))
        slot.on_settle(task.cancel)

    async def _poll(
        self, handle: JobHandle, slot: OneShot[TerminalOutcome], report: ProgressSink
    ) -> None:
        """Poll until a terminal status, a transport error or the ceiling."""
        attempts = self.config.max_poll_attempts
        try:
            for attempt in range(1, attempts + 1):
                if attempt > 1:
                    await asyncio.sleep(self.config.poll_interval_seconds)
                if slot.settled:
                    return

                try:
                    status = await asyncio.to_thread(self.client.get_status, handle.status_url)
                except StatusCheckError as e:
                    logger.warning(f"Status check for job {handle.job_id} failed: {e}")
                    slot.settle(
                        Failed(error_message=str(e), category=ErrorCategory.TRANSPORT.value)
                    )
                    return

                if status.status is JobStatus.COMPLETED:
                    logger.info(f"Job {handle.job_id} completed (poll {attempt})")
                    slot.settle(
                        Completed(
                            download_location=_download_location(
                                handle.job_id, status.download_location
                            ),
                            filename=status.filename,
                        )
                    )
                    return

                if status.status is JobStatus.FAILED:
                    logger.info(f"Job {handle.job_id} failed (poll {attempt}): {status.error}")
                    slot.settle(
                        Failed(
                            error_message=status.error or "Export failed",
                            category=ErrorCategory.TRACKING.value,
                        )
                    )
                    return

                if not slot.settled:
                    report(
                        ProgressUpdate(
                            progress=status.progress,
                            message=status.message or f"Job {status.status.value}",
                        )
                    )

            logger.warning(f"Job {handle.job_id} still running after {attempts} status checks")
            slot.settle(
                Failed(
                    error_message=(
                        f"Export timed out: job did not finish after {attempts} status checks"
                    ),
                    category=ErrorCategory.TIMEOUT.value,
                )
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Polling job {handle.job_id} failed")
            classified = classify_exception(e)
            slot.settle(Failed(error_message=classified.message, category=classified.category))
