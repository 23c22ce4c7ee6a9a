"""Unit tests for ProgressTracker.

Covers the push/poll race, the push-to-poll fallback, the poll ceiling,
transport failures and exactly-once delivery. Timings are scaled down to
milliseconds through TrackingConfig.
"""

import asyncio
import time
from unittest.mock import MagicMock

from epc.config.manager import TrackingConfig
from epc.models.export_job import Completed, Failed, StatusReport
from epc.services.error_handling import ErrorCategory, StatusCheckError
from epc.services.push import LocalEventBus
from epc.services.tracker import ProgressTracker


def status(state, progress=0, **extra):
    return StatusReport.from_dict({"status": state, "progress": progress, **extra})


class Recorder:
    """Collects progress updates."""

    def __init__(self):
        self.updates = []

    def __call__(self, update):
        self.updates.append(update)

    @property
    def values(self):
        return [u.progress for u in self.updates]


class TestPushChannel:
    """Tests for push-first tracking."""

    def test_push_completion_wins_and_no_poll_follows(self, mock_client, job_handle, fast_tracking):
        """Push delivers completion before the fallback window; polling never starts."""
        bus = LocalEventBus()
        tracker = ProgressTracker(mock_client, bus, fast_tracking)

        async def scenario():
            loop = asyncio.get_running_loop()
            loop.call_later(
                0.01,
                bus.emit,
                "job:job-1:completed",
                {"downloadUrl": "/download/out.mp4", "filename": "out.mp4"},
            )
            outcome = await tracker.track(job_handle)
            # Wait well past the fallback window
            await asyncio.sleep(fast_tracking.push_fallback_seconds * 3)
            return outcome

        outcome = asyncio.run(scenario())

        assert outcome == Completed(download_location="/download/out.mp4", filename="out.mp4")
        mock_client.get_status.assert_not_called()
        assert bus.subscriber_count() == 0

    def test_push_progress_then_completion(self, mock_client, job_handle, fast_tracking):
        bus = LocalEventBus()
        tracker = ProgressTracker(mock_client, bus, fast_tracking)
        recorder = Recorder()

        async def scenario():
            loop = asyncio.get_running_loop()
            loop.call_later(0.005, bus.emit, "job:job-1:progress", {"progress": 30, "message": "Encoding"})
            loop.call_later(0.01, bus.emit, "job:job-1:progress", {"progress": 20})
            loop.call_later(0.02, bus.emit, "job:job-1:completed", {"downloadUrl": "/d/1"})
            return await tracker.track(job_handle, recorder)

        outcome = asyncio.run(scenario())

        assert isinstance(outcome, Completed)
        assert recorder.values == [30, 30, 100]
        assert recorder.updates[0].message == "Encoding"

    def test_push_progress_accepts_string_and_garbage_values(
        self, mock_client, job_handle, fast_tracking
    ):
        bus = LocalEventBus()
        tracker = ProgressTracker(mock_client, bus, fast_tracking)
        recorder = Recorder()

        async def scenario():
            loop = asyncio.get_running_loop()
            loop.call_later(0.005, bus.emit, "job:job-1:progress", {"progress": "45.5"})
            loop.call_later(0.01, bus.emit, "job:job-1:progress", {"progress": "n/a"})
            loop.call_later(0.015, bus.emit, "job:job-1:progress", {"progress": 70.9})
            loop.call_later(0.02, bus.emit, "job:job-1:completed", {"downloadUrl": "/d/1"})
            return await tracker.track(job_handle, recorder)

        outcome = asyncio.run(scenario())

        assert isinstance(outcome, Completed)
        assert recorder.values == [45, 45, 70, 100]

    def test_push_failure(self, mock_client, job_handle, fast_tracking):
        bus = LocalEventBus()
        tracker = ProgressTracker(mock_client, bus, fast_tracking)

        async def scenario():
            loop = asyncio.get_running_loop()
            loop.call_later(0.01, bus.emit, "job:job-1:failed", {"error": "Encoder crashed"})
            return await tracker.track(job_handle)

        outcome = asyncio.run(scenario())

        assert outcome == Failed(error_message="Encoder crashed", category="tracking")
        mock_client.get_status.assert_not_called()

    def test_missing_download_url_uses_job_download_path(self, mock_client, job_handle, fast_tracking):
        bus = LocalEventBus()
        tracker = ProgressTracker(mock_client, bus, fast_tracking)

        async def scenario():
            loop = asyncio.get_running_loop()
            loop.call_later(0.01, bus.emit, "job:job-1:completed", {})
            return await tracker.track(job_handle)

        outcome = asyncio.run(scenario())

        assert outcome.download_location == "/api/export/download/job-1"

    def test_outcome_delivered_once(self, mock_client, job_handle, fast_tracking):
        """Later terminal events are ignored once the job has resolved."""
        bus = LocalEventBus()
        tracker = ProgressTracker(mock_client, bus, fast_tracking)
        recorder = Recorder()
        delivered = []

        def emit_all():
            delivered.append(bus.emit("job:job-1:completed", {"downloadUrl": "/d/first"}))
            delivered.append(bus.emit("job:job-1:failed", {"error": "late"}))
            delivered.append(bus.emit("job:job-1:completed", {"downloadUrl": "/d/second"}))

        async def scenario():
            asyncio.get_running_loop().call_later(0.01, emit_all)
            outcome = await tracker.track(job_handle, recorder)
            await asyncio.sleep(0.01)
            return outcome

        outcome = asyncio.run(scenario())

        assert outcome == Completed(download_location="/d/first")
        assert recorder.values == [100]
        assert delivered == [1, 1, 1]

    def test_events_for_other_jobs_are_ignored(self, mock_client, job_handle, fast_tracking):
        bus = LocalEventBus()
        tracker = ProgressTracker(mock_client, bus, fast_tracking)

        async def scenario():
            loop = asyncio.get_running_loop()
            loop.call_later(0.005, bus.emit, "job:other:completed", {"downloadUrl": "/d/other"})
            loop.call_later(0.01, bus.emit, "job:job-1:completed", {"downloadUrl": "/d/mine"})
            return await tracker.track(job_handle)

        outcome = asyncio.run(scenario())

        assert outcome.download_location == "/d/mine"


class TestFallback:
    """Tests for switching to polling."""

    def test_no_push_transport_polls_immediately(self, mock_client, job_handle):
        """With no connected push channel, polling starts at once and nothing subscribes."""
        config = TrackingConfig(
            push_fallback_seconds=1.0, poll_interval_seconds=0.01, max_poll_attempts=5
        )
        channel = MagicMock()
        channel.connected = False
        call_times = []

        def get_status(url):
            call_times.append(time.monotonic())
            return status("completed", 100, downloadUrl="/d/1")

        mock_client.get_status.side_effect = get_status
        tracker = ProgressTracker(mock_client, channel, config)

        start = time.monotonic()
        outcome = asyncio.run(tracker.track(job_handle))

        assert isinstance(outcome, Completed)
        channel.subscribe.assert_not_called()
        assert call_times[0] - start < 0.5

    def test_no_channel_at_all(self, mock_client, job_handle, fast_tracking):
        mock_client.get_status.return_value = status("completed", 100, downloadUrl="/d/1")
        tracker = ProgressTracker(mock_client, None, fast_tracking)

        assert tracker.push_available is False
        outcome = asyncio.run(tracker.track(job_handle))

        assert outcome == Completed(download_location="/d/1")
        mock_client.get_status.assert_called_once_with("/api/export/status/job-1")

    def test_silent_push_channel_switches_to_polling(self, mock_client, job_handle, fast_tracking):
        """No terminal push event within the window: unsubscribe, then poll."""
        bus = LocalEventBus()
        call_times = []
        subscribers_at_poll = []

        def get_status(url):
            call_times.append(time.monotonic())
            subscribers_at_poll.append(bus.subscriber_count())
            return status("completed", 100, downloadUrl="/d/polled")

        mock_client.get_status.side_effect = get_status
        tracker = ProgressTracker(mock_client, bus, fast_tracking)

        start = time.monotonic()
        outcome = asyncio.run(tracker.track(job_handle))

        assert outcome == Completed(download_location="/d/polled")
        assert call_times[0] - start >= fast_tracking.push_fallback_seconds * 0.9
        assert subscribers_at_poll == [0]

    def test_push_events_after_switchover_are_ignored(self, mock_client, job_handle, fast_tracking):
        bus = LocalEventBus()
        deliveries = []

        def get_status(url):
            deliveries.append(bus.emit("job:job-1:completed", {"downloadUrl": "/d/push"}))
            return status("completed", 100, downloadUrl="/d/polled")

        mock_client.get_status.side_effect = get_status
        tracker = ProgressTracker(mock_client, bus, fast_tracking)

        outcome = asyncio.run(tracker.track(job_handle))

        assert outcome.download_location == "/d/polled"
        assert deliveries == [0]


class TestPolling:
    """Tests for poll mode."""

    def test_progress_until_completed(self, mock_client, job_handle, fast_tracking):
        mock_client.get_status.side_effect = [
            status("queued", 0),
            status("processing", 40, message="Encoding"),
            status("processing", 20),
            status("processing", 60),
            status("completed", 100, downloadUrl="/d/1"),
        ]
        tracker = ProgressTracker(mock_client, None, fast_tracking)
        recorder = Recorder()

        outcome = asyncio.run(tracker.track(job_handle, recorder))

        assert isinstance(outcome, Completed)
        assert recorder.values == [0, 40, 40, 60, 100]
        assert recorder.updates[0].message == "Job queued"
        assert recorder.updates[1].message == "Encoding"

    def test_failed_status(self, mock_client, job_handle, fast_tracking):
        mock_client.get_status.side_effect = [
            status("processing", 10),
            status("failed", error="Unsupported codec"),
        ]
        tracker = ProgressTracker(mock_client, None, fast_tracking)

        outcome = asyncio.run(tracker.track(job_handle))

        assert outcome == Failed(error_message="Unsupported codec", category="tracking")

    def test_failed_status_without_detail(self, mock_client, job_handle, fast_tracking):
        mock_client.get_status.return_value = status("failed")
        tracker = ProgressTracker(mock_client, None, fast_tracking)

        outcome = asyncio.run(tracker.track(job_handle))

        assert outcome.error_message == "Export failed"

    def test_poll_ceiling_times_out(self, mock_client, job_handle, fast_tracking):
        """A job that never finishes fails after max_poll_attempts polls."""
        tracker = ProgressTracker(mock_client, None, fast_tracking)

        outcome = asyncio.run(tracker.track(job_handle))

        assert isinstance(outcome, Failed)
        assert outcome.category == ErrorCategory.TIMEOUT.value
        assert "timed out" in outcome.error_message
        assert mock_client.get_status.call_count == fast_tracking.max_poll_attempts

    def test_transport_error_is_terminal(self, mock_client, job_handle, fast_tracking):
        mock_client.get_status.side_effect = StatusCheckError("Failed to get job status: refused")
        tracker = ProgressTracker(mock_client, None, fast_tracking)

        outcome = asyncio.run(tracker.track(job_handle))

        assert outcome == Failed(
            error_message="Failed to get job status: refused", category="transport"
        )
        assert mock_client.get_status.call_count == 1

    def test_unexpected_error_is_classified(self, mock_client, job_handle, fast_tracking):
        mock_client.get_status.side_effect = RuntimeError("boom")
        tracker = ProgressTracker(mock_client, None, fast_tracking)

        outcome = asyncio.run(tracker.track(job_handle))

        assert outcome == Failed(error_message="boom", category="unknown")


class TestCancellation:
    """Tests for releasing channels when the caller stops waiting."""

    def test_cancel_releases_subscriptions_and_timer(self, mock_client, job_handle):
        config = TrackingConfig(
            push_fallback_seconds=0.05, poll_interval_seconds=0.01, max_poll_attempts=5
        )
        bus = LocalEventBus()
        tracker = ProgressTracker(mock_client, bus, config)

        async def scenario():
            task = asyncio.ensure_future(tracker.track(job_handle))
            await asyncio.sleep(0.01)
            subscribed = bus.subscriber_count()
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            # The fallback timer would have started polling by now
            await asyncio.sleep(0.1)
            return subscribed, task.cancelled()

        subscribed, cancelled = asyncio.run(scenario())

        assert subscribed == 3
        assert cancelled is True
        assert bus.subscriber_count() == 0
        mock_client.get_status.assert_not_called()

    def test_cancel_stops_polling(self, mock_client, job_handle):
        config = TrackingConfig(
            push_fallback_seconds=0.0, poll_interval_seconds=0.01, max_poll_attempts=600
        )
        tracker = ProgressTracker(mock_client, None, config)

        async def scenario():
            task = asyncio.ensure_future(tracker.track(job_handle))
            await asyncio.sleep(0.05)
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            await asyncio.sleep(0.02)
            calls_after_cancel = mock_client.get_status.call_count
            await asyncio.sleep(0.1)
            return calls_after_cancel

        calls_after_cancel = asyncio.run(scenario())

        assert calls_after_cancel >= 1
        assert mock_client.get_status.call_count == calls_after_cancel
