"""
Upstream analysis.

This module fetches the raw content that produced a structured search response
and decides whether the upstream source is refusing or degrading service. The
analyzer always returns a verdict: fetch failures, error payloads and malformed
JSON are all converted to an UPSTREAM_BLOCK report instead of being raised.
"""

import json
import logging
from typing import Any, Dict, Mapping, Optional

from serp_diagnostics.analysis.blocking import scan_for_block_patterns
from serp_diagnostics.analysis.content import classify_content
from serp_diagnostics.config.constants import DEFAULT_UPSTREAM_TIMEOUT
from serp_diagnostics.contracts import RawContentFetcher
from serp_diagnostics.domain import ContentType, Status, UpstreamReport

# Module logger
logger = logging.getLogger(__name__)

_ERROR_STATUSES = ("Error", "FAILED_PRECONDITION")


def extract_raw_html_url(payload: Mapping[str, Any]) -> Optional[str]:
    """
    Returns the raw HTML URL recorded in a search response, if any.

    Args:
        payload: The decoded search API response.

    Returns:
        Optional[str]: The value of search_metadata.raw_html_file, or None, also
            when the payload is not an object.
    """
    if not isinstance(payload, Mapping):
        return None
    metadata = payload.get("search_metadata")
    if not isinstance(metadata, dict):
        return None
    url = metadata.get("raw_html_file")
    return url if isinstance(url, str) and url else None


def _blocked(url: str, message: str, content_type: ContentType, html_size: int = 0) -> UpstreamReport:
    return UpstreamReport(
        raw_html_url=url,
        content_type=content_type,
        is_blocked=True,
        block_patterns=(),
        html_size=html_size,
        status=Status.UPSTREAM_BLOCK,
        alert_message=message,
    )


def _is_set(value: Any) -> bool:
    # Objects and arrays count even when empty.
    return isinstance(value, (dict, list)) or bool(value)


def _json_error_message(data: Dict[str, Any]) -> str:
    error = data.get("error")
    message = data.get("message")
    if isinstance(error, str):
        return error
    if isinstance(message, str):
        return message
    if _is_set(error):
        return json.dumps(error)
    return json.dumps(message if _is_set(message) else "Unknown error")


def _has_error_indicator(data: Any) -> bool:
    if not isinstance(data, dict):
        return False
    return _is_set(data.get("error")) or data.get("status") in _ERROR_STATUSES


class UpstreamAnalyzer:
    """
    Produces an UpstreamReport for a raw HTML URL.

    The fetch is bounded by its own timeout; the body is classified and either
    inspected as a JSON error payload or scanned for blocking signatures.
    """

    def __init__(self, fetcher: RawContentFetcher, timeout: float = DEFAULT_UPSTREAM_TIMEOUT) -> None:
        self._fetcher: RawContentFetcher = fetcher
        self._timeout: float = timeout

    async def analyze(self, raw_html_url: str) -> UpstreamReport:
        """
        Fetches and analyzes the raw content behind a search response.

        Args:
            raw_html_url: The URL of the raw HTML that produced the response.

        Returns:
            UpstreamReport: The verdict. This method never raises.
        """
        try:
            return await self._analyze(raw_html_url)
        except Exception as e:
            logger.exception(f"Upstream analysis failed for {raw_html_url}")
            return _blocked(raw_html_url, f"Error fetching raw HTML: {e}", ContentType.UNKNOWN)

    async def _analyze(self, raw_html_url: str) -> UpstreamReport:
        raw = await self._fetcher.fetch(raw_html_url, self._timeout)

        if raw.error is not None:
            return _blocked(raw_html_url, f"Error fetching raw HTML: {raw.error}", ContentType.UNKNOWN)

        if not raw.ok:
            return _blocked(
                raw_html_url, f"Failed to fetch raw HTML: HTTP {raw.status}", ContentType.UNKNOWN
            )

        content = raw.body
        html_size = len(content)
        content_type = classify_content(content)

        if content_type == ContentType.JSON:
            return self._analyze_json(raw_html_url, content, html_size)

        block_patterns = tuple(scan_for_block_patterns(content))
        found = [p.pattern for p in block_patterns if p.found]
        is_blocked = bool(found)

        if is_blocked:
            logger.info(f"Blocking patterns found behind {raw_html_url}: {found}")

        return UpstreamReport(
            raw_html_url=raw_html_url,
            content_type=content_type,
            is_blocked=is_blocked,
            block_patterns=block_patterns,
            html_size=html_size,
            status=Status.UPSTREAM_BLOCK if is_blocked else Status.STABLE,
            alert_message=f"Blocking patterns detected: {', '.join(found)}" if is_blocked else None,
        )

    def _analyze_json(self, raw_html_url: str, content: str, html_size: int) -> UpstreamReport:
        try:
            data = json.loads(content)
        except (ValueError, RecursionError):
            # Suspicious rather than benign.
            return _blocked(raw_html_url, "Invalid JSON response detected", ContentType.JSON, html_size)

        if _has_error_indicator(data):
            return _blocked(
                raw_html_url,
                f"JSON error response: {_json_error_message(data)}",
                ContentType.JSON,
                html_size,
            )

        return UpstreamReport(
            raw_html_url=raw_html_url,
            content_type=ContentType.JSON,
            is_blocked=False,
            block_patterns=(),
            html_size=html_size,
            status=Status.STABLE,
        )
