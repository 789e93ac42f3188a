"""
Deep analysis: raw HTML versus structured payload comparison.

This module fetches the raw HTML recorded in a search response, counts the
content sections rendered in it and reports those that the structured payload
does not contain. The whole stage runs under a wall-clock budget; when the
budget is exhausted a partial report is returned instead of blocking the caller.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, List, Mapping, Tuple

from bs4 import BeautifulSoup

from serp_diagnostics.analysis.sections import (
    compare_sections,
    extract_html_sections,
    extract_json_sections,
    suggest_ticket_title,
)
from serp_diagnostics.analysis.upstream import extract_raw_html_url
from serp_diagnostics.config.constants import (
    DEFAULT_DEEP_ANALYSIS_TIMEOUT,
    DEFAULT_HTML_FETCH_TIMEOUT,
    DEFAULT_MAX_HTML_BYTES,
)
from serp_diagnostics.contracts import RawContentFetcher
from serp_diagnostics.domain import DeepAnalysisReport, HtmlSection, MissingSection, Severity

# Module logger
logger = logging.getLogger(__name__)

NO_URL_SUMMARY = "No raw HTML URL available in response"
TIMED_OUT_SUMMARY = "Deep analysis timed out"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_summary(total_missing: int, critical_missing: int) -> str:
    if total_missing == 0:
        return "All HTML sections are present in JSON response. No parsing issues detected."
    summary = f"PARSING ISSUE: Found {total_missing} section(s) in HTML that are NOT in JSON response."
    if critical_missing > 0:
        summary += f" CRITICAL: {critical_missing} major section(s) missing!"
    return summary


def _parse_and_compare(
    engine: str, html: str, sections_in_json: List[str]
) -> Tuple[List[HtmlSection], List[MissingSection]]:
    soup = BeautifulSoup(html, "html.parser")
    sections_in_html = extract_html_sections(engine, soup)
    return sections_in_html, compare_sections(engine, sections_in_html, sections_in_json)


class DeepAnalyzer:
    """
    Compares the raw HTML behind a search response with the response itself.

    Attributes:
        _fetcher: Source of the raw HTML.
        _timeout: Budget in seconds for the whole comparison.
        _fetch_timeout: Timeout in seconds for the HTML download alone.
        _max_html_bytes: Size cap applied before parsing.
    """

    def __init__(
        self,
        fetcher: RawContentFetcher,
        timeout: float = DEFAULT_DEEP_ANALYSIS_TIMEOUT,
        fetch_timeout: float = DEFAULT_HTML_FETCH_TIMEOUT,
        max_html_bytes: int = DEFAULT_MAX_HTML_BYTES,
    ) -> None:
        self._fetcher: RawContentFetcher = fetcher
        self._timeout: float = timeout
        self._fetch_timeout: float = fetch_timeout
        self._max_html_bytes: int = max_html_bytes

    async def analyze(self, engine: str, payload: Mapping[str, Any]) -> DeepAnalysisReport:
        """
        Runs the HTML versus JSON comparison for one search response.

        Args:
            engine: The engine that produced the response.
            payload: The decoded search API response.

        Returns:
            DeepAnalysisReport: The comparison report. When no raw HTML URL is
                available, or the budget is exhausted, the report has
                html_fetched=False and an explanatory summary. Never raises.
        """
        timestamp = _now()
        raw_html_url = extract_raw_html_url(payload)
        sections_in_json = extract_json_sections(engine, payload)

        if raw_html_url is None:
            return DeepAnalysisReport.build(
                engine=engine,
                timestamp=timestamp,
                summary=NO_URL_SUMMARY,
                sections_in_json=tuple(sections_in_json),
            )

        try:
            return await asyncio.wait_for(
                self._compare(engine, timestamp, raw_html_url, sections_in_json),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Deep analysis for {engine} exceeded {self._timeout}s")
            return DeepAnalysisReport.build(
                engine=engine,
                timestamp=timestamp,
                summary=TIMED_OUT_SUMMARY,
                sections_in_json=tuple(sections_in_json),
                html_url=raw_html_url,
            )

    async def _compare(
        self, engine: str, timestamp: str, raw_html_url: str, sections_in_json: List[str]
    ) -> DeepAnalysisReport:
        def not_fetched(summary: str) -> DeepAnalysisReport:
            return DeepAnalysisReport.build(
                engine=engine,
                timestamp=timestamp,
                summary=summary,
                sections_in_json=tuple(sections_in_json),
                html_url=raw_html_url,
            )

        try:
            raw = await self._fetcher.fetch(
                raw_html_url, self._fetch_timeout, max_bytes=self._max_html_bytes
            )

            if raw.status == 408:
                return not_fetched("HTML fetch timed out")
            if raw.error is not None:
                return not_fetched(f"Error: {raw.error}")
            if not raw.ok:
                return not_fetched(f"Failed to fetch HTML: {raw.status}")

            html = raw.body
            if raw.truncated:
                logger.info(f"Raw HTML for {engine} truncated to {self._max_html_bytes} bytes")

            # Parsing is CPU bound; keep it off the event loop.
            sections_in_html, missing = await asyncio.to_thread(
                _parse_and_compare, engine, html, sections_in_json
            )
        except Exception as e:
            logger.exception(f"Deep analysis failed for {engine}")
            return not_fetched(f"Error: {e}")

        critical_missing = sum(1 for m in missing if m.severity == Severity.CRITICAL)
        return DeepAnalysisReport.build(
            engine=engine,
            timestamp=timestamp,
            summary=build_summary(len(missing), critical_missing),
            sections_in_json=tuple(sections_in_json),
            html_fetched=True,
            html_url=raw_html_url,
            html_size=len(html),
            sections_in_html=tuple(sections_in_html),
            missing_in_json=tuple(missing),
            suggested_ticket_title=suggest_ticket_title(engine, missing),
        )
