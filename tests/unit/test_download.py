"""Unit tests for DownloadTrigger."""

from unittest.mock import MagicMock

import pytest
import requests

from epc.services.api import ExportApiClient
from epc.services.download import (
    DownloadTrigger,
    default_export_name,
    resolve_filename,
)


def make_stream_response(chunks, headers=None, status_code=200, reason="OK"):
    response = MagicMock()
    response.ok = status_code < 400
    response.status_code = status_code
    response.reason = reason
    response.headers = headers or {}
    response.iter_content.return_value = iter(chunks)
    response.__enter__.return_value = response
    response.__exit__.return_value = False
    return response


@pytest.fixture
def client():
    client = MagicMock(spec=ExportApiClient)
    client.resolve_url.side_effect = lambda location: (
        location if location.startswith("http") else f"http://localhost:3001{location}"
    )
    return client


class TestResolveFilename:
    """Tests for choosing the saved filename."""

    def test_content_disposition(self):
        name = resolve_filename('attachment; filename="slides.mp4"', "http://h/d/123", "x.mp4")
        assert name == "slides.mp4"

    def test_content_disposition_utf8(self):
        name = resolve_filename(
            "attachment; filename*=UTF-8''my%20show.gif", "http://h/d/123", None
        )
        assert name == "my show.gif"

    def test_content_disposition_cannot_escape_folder(self):
        name = resolve_filename('attachment; filename="../../etc/passwd"', "http://h/d/1", None)
        assert name == "passwd"

    def test_url_segment_with_extension(self):
        assert resolve_filename(None, "http://h/download/out.webm", "x.mp4") == "out.webm"

    def test_default_name(self):
        assert resolve_filename(None, "http://h/api/export/download/42", "export.mov") == "export.mov"

    def test_generated_name(self):
        name = resolve_filename(None, "http://h/api/export/download/42")
        assert name.startswith("export_") and name.endswith(".bin")

    def test_default_export_name(self):
        name = default_export_name("gif")
        assert name.startswith("export_") and name.endswith(".gif")


class TestDownloadTrigger:
    """Tests for downloading finished exports."""

    def test_relative_location_uses_service_origin(self, client, tmp_path):
        trigger = DownloadTrigger(client, tmp_path)
        assert trigger.build_url("/download/a.mp4") == "http://localhost:3001/download/a.mp4"

    def test_absolute_location_is_kept(self, client, tmp_path):
        trigger = DownloadTrigger(client, tmp_path)
        url = "https://cdn.example.com/a.mp4"
        assert trigger.build_url(url) == url

    def test_saves_file_and_reports_progress(self, client, tmp_path):
        client.open_download.return_value = make_stream_response(
            [b"abc", b"", b"defg"], headers={"Content-Length": "7"}
        )
        progress = MagicMock()
        trigger = DownloadTrigger(client, tmp_path / "out", progress_callback=progress)

        result = trigger.trigger("/download/show.mp4")

        assert result.success is True
        assert result.local_path == tmp_path / "out" / "show.mp4"
        assert result.local_path.read_bytes() == b"abcdefg"
        assert result.bytes_written == 7
        progress.assert_any_call("show.mp4", 3, 7)
        progress.assert_called_with("show.mp4", 7, 7)
        client.open_download.assert_called_once_with("http://localhost:3001/download/show.mp4")

    def test_does_not_overwrite_existing_file(self, client, tmp_path):
        (tmp_path / "show.mp4").write_bytes(b"old")
        client.open_download.return_value = make_stream_response([b"new"])
        trigger = DownloadTrigger(client, tmp_path)

        result = trigger.trigger("/download/show.mp4")

        assert result.local_path == tmp_path / "show_1.mp4"
        assert (tmp_path / "show.mp4").read_bytes() == b"old"

    def test_uses_default_name(self, client, tmp_path):
        client.open_download.return_value = make_stream_response([b"x"])
        trigger = DownloadTrigger(client, tmp_path)

        result = trigger.trigger("/api/export/download/42", default_name="export_1.gif")

        assert result.local_path.name == "export_1.gif"

    def test_http_error(self, client, tmp_path):
        client.open_download.return_value = make_stream_response(
            [], status_code=404, reason="Not Found"
        )
        trigger = DownloadTrigger(client, tmp_path)

        result = trigger.trigger("/download/missing.mp4")

        assert result.success is False
        assert result.error_message == "Download failed: HTTP 404 Not Found"
        assert list(tmp_path.iterdir()) == []

    def test_transport_error(self, client, tmp_path):
        client.open_download.side_effect = requests.ConnectionError("refused")
        trigger = DownloadTrigger(client, tmp_path)

        result = trigger.trigger("/download/a.mp4")

        assert result.success is False
        assert "refused" in result.error_message

    def test_interrupted_stream_removes_partial_file(self, client, tmp_path):
        def chunks():
            yield b"partial"
            raise requests.ConnectionError("reset")

        response = make_stream_response([])
        response.iter_content.return_value = chunks()
        client.open_download.return_value = response
        trigger = DownloadTrigger(client, tmp_path)

        result = trigger.trigger("/download/a.mp4")

        assert result.success is False
        assert not (tmp_path / "a.mp4").exists()
