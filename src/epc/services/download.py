"""Download service for finished exports.

This service handles:
1. Resolve the download location against the export service
2. Stream the file to the output folder
3. Report download progress
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from urllib.parse import unquote, urlparse

import requests

from epc.services.api import ExportApiClient

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 256

_FILENAME_PATTERN = re.compile(r"filename\*?=(?:UTF-8'')?\"?([^\";]+)\"?", re.IGNORECASE)


@dataclass
class DownloadResult:
    """Result of one download."""

    url: str
    success: bool
    local_path: Path | None = None
    bytes_written: int = 0
    error_message: str | None = None


class DownloadTrigger:
    """Fetches a finished export and saves it locally."""

    def __init__(
        self,
        client: ExportApiClient,
        output_dir: Path,
        progress_callback: Callable[[str, int, int], None] | None = None,
    ):
        """Initialize DownloadTrigger.

        Args:
            client: Export service client (base URL and session)
            output_dir: Folder downloads are written to
            progress_callback: Called with (filename, downloaded_bytes, total_bytes)
        """
        self.client = client
        self.output_dir = output_dir
        self.progress_callback = progress_callback

    def build_url(self, download_location: str) -> str:
        """Absolute URL for a download location (relative locations use the service origin)."""
        return self.client.resolve_url(download_location)

    def trigger(self, download_location: str, default_name: str | None = None) -> DownloadResult:
        """Download a finished export.

        Args:
            download_location: Location reported by the service
            default_name: Filename used when the response does not name the file

        Returns:
            DownloadResult with the saved path, or the error message
        """
        url = self.build_url(download_location)
        logger.info(f"Downloading export from {url}")

        try:
            response = self.client.open_download(url)
        except requests.RequestException as e:
            logger.warning(f"Download from {url} failed: {e}")
            return DownloadResult(url=url, success=False, error_message=str(e))

        with response:
            if not response.ok:
                message = f"Download failed: HTTP {response.status_code} {response.reason or ''}".strip()
                logger.warning(message)
                return DownloadResult(url=url, success=False, error_message=message)

            filename = resolve_filename(
                response.headers.get("Content-Disposition"), url, default_name
            )
            self.output_dir.mkdir(parents=True, exist_ok=True)
            local_path = _unique_path(self.output_dir / filename)
            total = int(response.headers.get("Content-Length") or 0)

            written = 0
            try:
                with open(local_path, "wb") as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if not chunk:
                            continue
                        f.write(chunk)
                        written += len(chunk)
                        if self.progress_callback:
                            self.progress_callback(local_path.name, written, total)
            except (OSError, requests.RequestException) as e:
                logger.warning(f"Download to {local_path} failed: {e}")
                local_path.unlink(missing_ok=True)
                return DownloadResult(url=url, success=False, error_message=str(e))

        logger.info(f"Saved export to {local_path} ({written} bytes)")
        return DownloadResult(url=url, success=True, local_path=local_path, bytes_written=written)


def resolve_filename(
    content_disposition: str | None, url: str, default_name: str | None = None
) -> str:
    """Pick a filename for a download.

    Order: Content-Disposition header, last URL path segment when it has
    an extension, the given default, then export_<timestamp>.bin.
    """
    if content_disposition:
        match = _FILENAME_PATTERN.search(content_disposition)
        if match:
            return Path(unquote(match.group(1).strip())).name

    segment = Path(unquote(urlparse(url).path)).name
    if segment and "." in segment:
        return segment

    if default_name:
        return default_name

    timestamp = datetime.now().strftime("%Y%m%dT%H%M%S")
    return f"export_{timestamp}.bin"


def default_export_name(extension: str) -> str:
    """export_<timestamp>.<extension>"""
    timestamp = datetime.now().strftime("%Y%m%dT%H%M%S")
    return f"export_{timestamp}.{extension}"


def _unique_path(path: Path) -> Path:
    """Avoid overwriting an existing file by appending a counter."""
    if not path.exists():
        return path
    counter = 1
    while True:
        candidate = path.with_name(f"{path.stem}_{counter}{path.suffix}")
        if not candidate.exists():
            return candidate
        counter += 1
