"""HTTP client for the export service.

This client handles:
1. Export submissions (unified export, master generation, conversion)
2. Job status polls
3. File downloads

Each method makes exactly one request. Nothing is retried here.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urljoin

import requests

from epc.models.export_job import StatusReport
from epc.services.error_handling import StatusCheckError, SubmissionError, extract_error_detail

logger = logging.getLogger(__name__)


class ExportApiClient:
    """Thin wrapper around a requests session bound to the export service."""

    def __init__(
        self,
        base_url: str = "http://localhost:3001",
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        """Initialize ExportApiClient.

        Args:
            base_url: Export service base URL
            timeout: Per-request timeout in seconds
            session: requests session (created if not provided)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def resolve_url(self, location: str) -> str:
        """Turn a service-relative location into an absolute URL.

        Absolute URLs are returned unchanged.
        """
        return urljoin(f"{self.base_url}/", location)

    def post_json(self, endpoint: str, payload: dict[str, Any]) -> dict[str, Any]:
        """POST a JSON body and return the decoded response.

        Args:
            endpoint: Service-relative path or absolute URL
            payload: JSON body

        Returns:
            Response body as dict

        Raises:
            SubmissionError: On non-success status, transport failure or a
                body that is not a JSON object
        """
        url = self.resolve_url(endpoint)
        try:
            response = self._call_api("POST", url, body=payload)
        except requests.RequestException as e:
            logger.warning(f"Submission to {url} failed: {e}")
            raise SubmissionError(f"Could not reach export service: {e}") from e

        if not response.ok:
            detail = extract_error_detail(response)
            logger.warning(f"Submission to {url} rejected ({response.status_code}): {detail}")
            raise SubmissionError(detail, status_code=response.status_code)

        return self._decode(response, SubmissionError)

    def get_status(self, status_url: str) -> StatusReport:
        """Fetch and parse one status report.

        Args:
            status_url: Service-relative or absolute status address

        Returns:
            Parsed StatusReport

        Raises:
            StatusCheckError: On non-success status, transport failure or
                an unparseable body
        """
        url = self.resolve_url(status_url)
        try:
            response = self._call_api("GET", url)
        except requests.RequestException as e:
            raise StatusCheckError(f"Failed to get job status: {e}") from e

        if not response.ok:
            detail = extract_error_detail(response)
            raise StatusCheckError(
                f"Failed to get job status: {detail}", status_code=response.status_code
            )

        data = self._decode(response, StatusCheckError)
        try:
            return StatusReport.from_dict(data)
        except ValueError as e:
            raise StatusCheckError(f"Invalid status response: {e}") from e

    def open_download(self, location: str) -> requests.Response:
        """Start a streamed GET for a finished export.

        The caller owns the response and must close it.

        Raises:
            requests.RequestException: On transport failure
        """
        return self._call_api("GET", self.resolve_url(location), stream=True)

    def _call_api(
        self,
        method: str,
        url: str,
        body: dict[str, Any] | None = None,
        stream: bool = False,
    ) -> requests.Response:
        """Send one request.

        Args:
            method: HTTP method
            url: Absolute URL
            body: JSON body
            stream: Stream the response body

        Returns:
            The raw response (status not checked)
        """
        headers = {"Accept": "application/json"}
        return self.session.request(
            method=method,
            url=url,
            json=body,
            headers=headers,
            timeout=self.timeout,
            stream=stream,
        )

    @staticmethod
    def _decode(response: requests.Response, error_type: type[Exception]) -> dict[str, Any]:
        try:
            data = response.json()
        except ValueError as e:
            raise error_type("Invalid response from export API: body is not JSON") from e
        if not isinstance(data, dict):
            raise error_type("Invalid response from export API: expected a JSON object")
        return data
