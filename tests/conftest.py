"""Pytest configuration and fixtures for export pipeline client tests."""

import sys
from unittest.mock import MagicMock

import pytest

from epc.config.manager import TrackingConfig
from epc.models.export_job import ExportRequest, JobHandle, StatusReport
from epc.models.settings import ExportFormat, ExportSettings, Resolution
from epc.services.api import ExportApiClient


@pytest.fixture
def gif_settings():
    """Valid GIF settings (24 fps, 640x480, 256 colors)."""
    return ExportSettings.gif(fps=24, resolution=Resolution(640, 480), colors=256)


@pytest.fixture
def mp4_settings():
    """Valid MP4 settings (30 fps, 1080p)."""
    return ExportSettings.video(ExportFormat.MP4, fps=30)


@pytest.fixture
def job_handle():
    return JobHandle(job_id="job-1", status_url="/api/export/status/job-1")


@pytest.fixture
def export_request():
    return ExportRequest(endpoint="/api/unified-export/mp4", payload={"sessionId": "s1"})


@pytest.fixture
def fast_tracking():
    """Tracking timings scaled down to milliseconds."""
    return TrackingConfig(
        push_fallback_seconds=0.05,
        poll_interval_seconds=0.01,
        max_poll_attempts=5,
    )


@pytest.fixture
def mock_client():
    """ExportApiClient double; get_status reports a processing job by default."""
    client = MagicMock(spec=ExportApiClient)
    client.get_status.return_value = StatusReport.from_dict(
        {"status": "processing", "progress": 40, "message": "Encoding"}
    )
    client.resolve_url.side_effect = lambda location: f"http://localhost:3001{location}"
    return client


@pytest.fixture
def temp_dir(tmp_path):
    """Create a temporary directory for tests."""
    return tmp_path


@pytest.fixture(autouse=True)
def clean_cli_modules():
    """Drop cached CLI modules around each test so patches apply to a fresh import."""
    modules_to_remove = [mod for mod in list(sys.modules.keys()) if mod.startswith("epc.cli")]
    for mod in modules_to_remove:
        sys.modules.pop(mod, None)

    yield

    modules_to_remove = [mod for mod in list(sys.modules.keys()) if mod.startswith("epc.cli")]
    for mod in modules_to_remove:
        sys.modules.pop(mod, None)
