"""
Anomaly detection over an engine's recent diagnostic history.

A new DiagnosticSummary is compared with the most recent readable run of the
same engine. Only worsening is reported: more missing sections than before, an
upstream block, or a transition away from STABLE. Corrupted history records are
skipped, never raised.
"""

import logging
from typing import List, NamedTuple, Optional, Sequence, Tuple

from serp_diagnostics.domain import (
    Anomaly,
    AnomalyType,
    DiagnosticSummary,
    RunRecord,
    Severity,
    Status,
)
from serp_diagnostics.serialization import load_summary

# Module logger
logger = logging.getLogger(__name__)

DEFAULT_BLOCK_REASON = "CAPTCHA or rate limit"


class PreviousRun(NamedTuple):
    status: Status
    summary: DiagnosticSummary


def decode_run(record: RunRecord) -> Optional[PreviousRun]:
    """
    Decodes a stored run, returning None when the record is corrupted.
    """
    try:
        return PreviousRun(status=Status(record.status), summary=load_summary(record.result))
    except ValueError as e:
        logger.warning(f"Ignoring corrupted run {record.id} of {record.engine_id}: {e}")
        return None


def latest_valid_run(history: Sequence[RunRecord]) -> Optional[PreviousRun]:
    """Returns the newest decodable run of a newest-first history."""
    for record in history:
        decoded = decode_run(record)
        if decoded is not None:
            return decoded
    return None


def _missing_counts(summary: Optional[DiagnosticSummary]) -> Tuple[int, int]:
    report = summary.deep_analysis if summary else None
    if report is None:
        return 0, 0
    return report.total_missing, report.critical_missing


def _parsing_anomaly(
    current: DiagnosticSummary, previous: Optional[DiagnosticSummary]
) -> Optional[Anomaly]:
    total, critical = _missing_counts(current)
    previous_total, previous_critical = _missing_counts(previous)

    if critical > previous_critical:
        return Anomaly(
            type=AnomalyType.PARSING_ISSUE,
            message=(
                f"Critical parsing issue worsened: {critical} critical section(s) missing "
                f"(prev {previous_critical})"
            ),
            severity=Severity.CRITICAL,
            current_value=critical,
            previous_value=previous_critical,
        )
    if total > previous_total:
        return Anomaly(
            type=AnomalyType.PARSING_ISSUE,
            message=f"Parsing issue worsened: {total} section(s) missing (prev {previous_total})",
            severity=Severity.WARNING,
            current_value=total,
            previous_value=previous_total,
        )
    return None


def _upstream_anomaly(current: DiagnosticSummary) -> Optional[Anomaly]:
    upstream = current.upstream
    if upstream is None or not upstream.is_blocked:
        return None
    return Anomaly(
        type=AnomalyType.UPSTREAM_BLOCK,
        message=f"Upstream blocking detected: {upstream.alert_message or DEFAULT_BLOCK_REASON}",
        severity=Severity.CRITICAL,
        current_value=1,
    )


def build_status_change_message(
    previous_status: Status, current_status: Status, current: DiagnosticSummary
) -> str:
    """
    Describes a status transition with the evidence behind the new status.
    """
    head = f"Status changed from {previous_status.value} to {current_status.value}"
    report = current.deep_analysis

    if current_status == Status.FLAKY:
        missing = report.total_missing if report else 0
        names = [m.section for m in report.missing_in_json][:3] if report else []
        hint = f" (e.g., {', '.join(names)})" if names else ""
        return f"{head} | {missing} non-critical missing section(s){hint}"

    if current_status == Status.PARSER_FAIL:
        critical = report.critical_missing if report else 0
        names = (
            [m.section for m in report.missing_in_json if m.severity == Severity.CRITICAL][:3]
            if report
            else []
        )
        hint = f" (e.g., {', '.join(names)})" if names else ""
        return f"{head} | {critical} critical missing section(s){hint}"

    if current_status == Status.UPSTREAM_BLOCK:
        reason = (current.upstream.alert_message if current.upstream else None) or DEFAULT_BLOCK_REASON
        return f"{head} | {reason}"

    return head


def _status_change_anomaly(
    current: DiagnosticSummary, previous: Optional[PreviousRun]
) -> Optional[Anomaly]:
    # Only transitions that leave STABLE are reported.
    if previous is None or previous.status != Status.STABLE:
        return None
    if current.overall_status == Status.STABLE:
        return None
    return Anomaly(
        type=AnomalyType.STATUS_CHANGE,
        message=build_status_change_message(previous.status, current.overall_status, current),
        severity=(
            Severity.CRITICAL if current.overall_status == Status.UPSTREAM_BLOCK else Severity.WARNING
        ),
        current_value=0,
        previous_value=0,
    )


def detect_anomalies(
    engine_id: str, current: DiagnosticSummary, history: Sequence[RunRecord]
) -> List[Anomaly]:
    """
    Compares a new diagnostic result with an engine's recent history.

    All rules are evaluated independently and every applicable anomaly is returned.

    Args:
        engine_id: The engine the result belongs to.
        current: The new diagnostic summary.
        history: The most recent prior runs of the engine, newest first.

    Returns:
        List[Anomaly]: The detected anomalies, possibly empty.
    """
    previous = latest_valid_run(history)
    previous_summary = previous.summary if previous else None

    candidates = (
        _parsing_anomaly(current, previous_summary),
        _upstream_anomaly(current),
        _status_change_anomaly(current, previous),
    )
    anomalies = [anomaly for anomaly in candidates if anomaly is not None]

    if anomalies:
        logger.info(f"{engine_id}: {len(anomalies)} anomaly(ies) detected")
    return anomalies
