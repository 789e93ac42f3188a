"""
Domain models for the search diagnostics system.

This module defines the core data structures used throughout the application,
including monitored engines, section comparison results, upstream verdicts,
diagnostic summaries, anomalies and the persisted history records. Every record
is an immutable NamedTuple: a diagnostic run is created once and never edited.
"""

from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, NamedTuple, Optional, Tuple


class Status(str, Enum):
    """
    Overall health status of an engine, ordered by severity.

    Inheriting from 'str' allows enum members to behave like strings,
    so they can be stored and compared against raw database values.
    """

    STABLE = "STABLE"
    FLAKY = "FLAKY"
    PARSER_FAIL = "PARSER_FAIL"
    UPSTREAM_BLOCK = "UPSTREAM_BLOCK"

    @property
    def severity(self) -> int:
        """Rank used by the status resolver, higher is worse."""
        return _STATUS_SEVERITY[self]


_STATUS_SEVERITY: Dict[Status, int] = {
    Status.STABLE: 0,
    Status.FLAKY: 1,
    Status.PARSER_FAIL: 2,
    Status.UPSTREAM_BLOCK: 3,
}


class Severity(str, Enum):
    """Severity of a missing section or of an anomaly."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class ContentType(str, Enum):
    """Kind of payload found behind a raw HTML URL."""

    HTML = "html"
    JSON = "json"
    UNKNOWN = "unknown"


class AnomalyType(str, Enum):
    PARSING_ISSUE = "parsing_issue"
    UPSTREAM_BLOCK = "upstream_block"
    STATUS_CHANGE = "status_change"


class ScanState(str, Enum):
    """
    Lifecycle of a single target scan attempt.

    PENDING -> FETCHING -> ANALYZING -> PERSISTING -> DONE, or FAILED from any state.
    """

    PENDING = "PENDING"
    FETCHING = "FETCHING"
    ANALYZING = "ANALYZING"
    PERSISTING = "PERSISTING"
    DONE = "DONE"
    FAILED = "FAILED"


class AlertStatus(str, Enum):
    PENDING = "pending"
    READ = "read"
    DISMISSED = "dismissed"


class TargetConfig(NamedTuple):
    """
    Represents a single monitored engine with its fixed request configuration.

    Attributes:
        engine_id: The SerpApi engine identifier, used as the key everywhere.
        label: Human readable name of the engine.
        params: Fixed request parameters sent with every scan.
        interval_hours: How often the engine should be scanned.
        enabled: Whether recurring and "scan all" passes include the engine.
    """

    engine_id: str
    label: str
    params: Mapping[str, Any]
    interval_hours: int = 1
    enabled: bool = True


class HtmlSelector(NamedTuple):
    """One entry of an engine's static HTML selector table."""

    name: str
    selector: str
    description: str


class HtmlSection(NamedTuple):
    name: str
    count: int
    selector: str


class MissingSection(NamedTuple):
    """A section found in the raw HTML but absent from the structured payload."""

    section: str
    description: str
    severity: Severity
    html_evidence: str
    html_count: int


class DeepAnalysisReport(NamedTuple):
    """
    Outcome of the HTML versus JSON comparison for one engine.

    Use DeepAnalysisReport.build() to create instances: it derives total_missing,
    critical_missing and has_critical_issues from missing_in_json.
    """

    engine: str
    timestamp: str
    html_fetched: bool
    html_url: Optional[str]
    html_size: Optional[int]
    sections_in_html: Tuple[HtmlSection, ...]
    sections_in_json: Tuple[str, ...]
    missing_in_json: Tuple[MissingSection, ...]
    summary: str
    total_sections_in_html: int
    total_sections_in_json: int
    total_missing: int
    critical_missing: int
    has_critical_issues: bool
    suggested_ticket_title: Optional[str] = None

    @classmethod
    def build(
        cls,
        engine: str,
        timestamp: str,
        summary: str,
        sections_in_json: Tuple[str, ...] = (),
        html_fetched: bool = False,
        html_url: Optional[str] = None,
        html_size: Optional[int] = None,
        sections_in_html: Tuple[HtmlSection, ...] = (),
        missing_in_json: Tuple[MissingSection, ...] = (),
        suggested_ticket_title: Optional[str] = None,
    ) -> "DeepAnalysisReport":
        critical_missing = sum(1 for m in missing_in_json if m.severity == Severity.CRITICAL)
        return cls(
            engine=engine,
            timestamp=timestamp,
            html_fetched=html_fetched,
            html_url=html_url,
            html_size=html_size,
            sections_in_html=tuple(sections_in_html),
            sections_in_json=tuple(sections_in_json),
            missing_in_json=tuple(missing_in_json),
            summary=summary,
            total_sections_in_html=len(sections_in_html),
            total_sections_in_json=len(sections_in_json),
            total_missing=len(missing_in_json),
            critical_missing=critical_missing,
            has_critical_issues=critical_missing > 0,
            suggested_ticket_title=suggested_ticket_title,
        )


class BlockPattern(NamedTuple):
    """
    One blocking signature and whether it matched.

    Attributes:
        pattern: The human readable label of the signature.
        found: Whether the signature occurs in the visible text.
        context: A short window of text around the first occurrence, if found.
    """

    pattern: str
    found: bool
    context: Optional[str] = None


class UpstreamReport(NamedTuple):
    raw_html_url: str
    content_type: ContentType
    is_blocked: bool
    block_patterns: Tuple[BlockPattern, ...]
    html_size: int
    status: Status
    alert_message: Optional[str] = None


class DiagnosticSummary(NamedTuple):
    """
    The unit of record persisted for each (engine, scan) pair.

    Attributes:
        overall_status: The resolved status of the scan.
        timestamp: ISO-8601 UTC timestamp of the scan.
        upstream: The upstream verdict, or None if the stage was skipped.
        deep_analysis: The comparison report, or None if the stage was skipped.
    """

    overall_status: Status
    timestamp: str
    upstream: Optional[UpstreamReport] = None
    deep_analysis: Optional[DeepAnalysisReport] = None


class Anomaly(NamedTuple):
    """A detected worsening between a new scan and the recent history of an engine."""

    type: AnomalyType
    message: str
    severity: Severity
    current_value: int
    previous_value: Optional[int] = None
    threshold: Optional[int] = None


class ApiCallResult(NamedTuple):
    """
    Result of a single search API call.

    Attributes:
        success: True when the HTTP call succeeded and a payload was decoded.
        status_code: HTTP status, 408 on timeout and 0 on transport failure.
        latency_ms: Wall time of the call in milliseconds.
        response: The decoded JSON payload, if any.
        error: Error text, including informational errors embedded in a 200 payload.
    """

    success: bool
    status_code: int
    latency_ms: int
    response: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class RawContent(NamedTuple):
    """
    Result of fetching the raw content behind a URL.

    Attributes:
        ok: True when the response status is 2xx.
        status: HTTP status, 408 on timeout and 0 on transport failure.
        body: Decoded body text, possibly truncated.
        error: Error text when no response was received.
        truncated: True when the body exceeded the size cap and was cut.
    """

    ok: bool
    status: int
    body: str = ""
    error: Optional[str] = None
    truncated: bool = False


class RunRecord(NamedTuple):
    """
    A persisted diagnostic run as stored in the 'diagnostic_run' table.

    The result column holds the serialized DiagnosticSummary as JSON text and
    may be corrupted; readers must tolerate that.
    """

    id: str
    engine_id: str
    run_type: str
    params: str
    result: str
    status: str
    created_at: Optional[datetime] = None


class AlertRecord(NamedTuple):
    id: str
    engine_id: str
    alert_type: str
    message: str
    severity: Severity
    diagnostic_run_id: Optional[str] = None
    status: AlertStatus = AlertStatus.PENDING
    created_at: Optional[datetime] = None


class EngineHealthPoint(NamedTuple):
    """One point of an engine's health history, decoded from a run record."""

    id: str
    engine_id: str
    status: str
    missing_sections: Optional[int]
    critical_missing: Optional[int]
    is_blocked: Optional[bool]
    created_at: Optional[datetime]


class ScanOutcome(NamedTuple):
    """
    The per-engine result of a scan returned to callers.

    Attributes:
        engine_id: The scanned engine.
        status: The overall status, UPSTREAM_BLOCK when the scan failed or timed out.
        state: The final lifecycle state, DONE or FAILED.
        summary: The persisted summary, or None when the scan failed.
        anomalies: Anomalies raised by this scan.
        error: Failure description when state is FAILED.
    """

    engine_id: str
    status: Status
    state: ScanState
    summary: Optional[DiagnosticSummary] = None
    anomalies: Tuple[Anomaly, ...] = ()
    error: Optional[str] = None


def frozen_params(params: Mapping[str, Any]) -> Mapping[str, Any]:
    """Returns a read-only view over a copy of the given request parameters."""
    return MappingProxyType(dict(params))
