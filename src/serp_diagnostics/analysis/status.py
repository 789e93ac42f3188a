"""
Overall status resolution and status reason phrasing.
"""

from typing import Iterable, List, Optional, Union

from serp_diagnostics.domain import DeepAnalysisReport, DiagnosticSummary, Severity, Status


def resolve_status(statuses: Iterable[Status]) -> Status:
    """
    Folds the partial statuses of one scan into a single overall status.

    The most severe contribution wins: UPSTREAM_BLOCK > PARSER_FAIL > FLAKY > STABLE.
    Skipped stages contribute nothing, and no contribution at all resolves to STABLE.

    Args:
        statuses: The statuses contributed by the analysis stages.

    Returns:
        Status: The overall status.
    """
    return max(statuses, key=lambda status: status.severity, default=Status.STABLE)


def deep_analysis_status(report: Optional[DeepAnalysisReport]) -> Optional[Status]:
    """
    Returns the status contributed by a deep analysis report, if any.

    Critical gaps mean PARSER_FAIL, any other gap means FLAKY, no gap contributes nothing.
    """
    if report is None:
        return None
    if report.has_critical_issues:
        return Status.PARSER_FAIL
    if report.total_missing > 0:
        return Status.FLAKY
    return None


def _section_names(report: DeepAnalysisReport, critical_only: bool = False) -> List[str]:
    return [
        m.section
        for m in report.missing_in_json
        if not critical_only or m.severity == Severity.CRITICAL
    ][:3]


def _flaky_reason(report: Optional[DeepAnalysisReport]) -> str:
    missing = report.total_missing if report else 0
    if missing == 0:
        return "Intermittent issues detected"
    names = _section_names(report)
    hint = f" | Missing: {', '.join(names)}" if names else ""
    return f"Non-critical parsing gaps detected: {missing} section(s) in HTML but missing in JSON{hint}"


def _parser_fail_reason(report: Optional[DeepAnalysisReport]) -> str:
    reasons: List[str] = []
    if report is not None:
        if report.critical_missing > 0:
            reasons.append(f"{report.critical_missing} critical sections in HTML but missing in JSON")
        elif report.total_missing > 0:
            reasons.append(f"{report.total_missing} sections in HTML but missing in JSON")
        if report.missing_in_json:
            reasons.append(f"Missing: {', '.join(_section_names(report))}")
    return " | ".join(reasons) if reasons else "Data in HTML not present in JSON response"


def _upstream_block_reason(summary: Optional[DiagnosticSummary]) -> str:
    upstream = summary.upstream if summary else None
    if upstream is None:
        return "Data source inaccessible"
    if upstream.alert_message:
        return f"Upstream: {upstream.alert_message}"
    if upstream.is_blocked:
        labels = [p.pattern for p in upstream.block_patterns if p.found]
        if labels:
            return f"Detected: {', '.join(labels)}"
        return "Source is blocking access (CAPTCHA or rate limit)"
    return "Data source inaccessible"


def status_reason(
    status: Optional[Union[Status, str]], summary: Optional[DiagnosticSummary]
) -> str:
    """
    Explains an engine's latest status in one line for operators.

    Args:
        status: The stored status of the latest run, or None if never scanned.
        summary: The decoded summary of the latest run, or None if unavailable.

    Returns:
        str: A deterministic, human readable reason.
    """
    if not status or status == "unknown":
        return "Never scanned"

    report = summary.deep_analysis if summary else None

    if status == Status.STABLE:
        return "All checks passed: No parsing issues, no blocking detected"
    if status == Status.FLAKY:
        return _flaky_reason(report)
    if status == Status.PARSER_FAIL:
        return _parser_fail_reason(report)
    if status == Status.UPSTREAM_BLOCK:
        return _upstream_block_reason(summary)
    return "Unknown status"
