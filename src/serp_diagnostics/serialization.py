"""
Conversion of diagnostic summaries to and from their stored JSON form.

Run records keep the DiagnosticSummary as JSON text in the 'result' column.
Decoding is strict: any structural problem raises ValueError so that callers can
treat the record as corrupted.
"""

import json
from typing import Any, Dict, Mapping, Optional

from serp_diagnostics.domain import (
    BlockPattern,
    ContentType,
    DeepAnalysisReport,
    DiagnosticSummary,
    HtmlSection,
    MissingSection,
    Severity,
    Status,
    UpstreamReport,
)


def _upstream_to_dict(report: UpstreamReport) -> Dict[str, Any]:
    return {
        "raw_html_url": report.raw_html_url,
        "content_type": report.content_type.value,
        "is_blocked": report.is_blocked,
        "block_patterns": [p._asdict() for p in report.block_patterns],
        "html_size": report.html_size,
        "status": report.status.value,
        "alert_message": report.alert_message,
    }


def _deep_analysis_to_dict(report: DeepAnalysisReport) -> Dict[str, Any]:
    data = report._asdict()
    data["sections_in_html"] = [s._asdict() for s in report.sections_in_html]
    data["sections_in_json"] = list(report.sections_in_json)
    data["missing_in_json"] = [
        {**m._asdict(), "severity": m.severity.value} for m in report.missing_in_json
    ]
    return data


def summary_to_dict(summary: DiagnosticSummary) -> Dict[str, Any]:
    return {
        "overall_status": summary.overall_status.value,
        "timestamp": summary.timestamp,
        "upstream": _upstream_to_dict(summary.upstream) if summary.upstream else None,
        "deep_analysis": (
            _deep_analysis_to_dict(summary.deep_analysis) if summary.deep_analysis else None
        ),
    }


def dump_summary(summary: DiagnosticSummary) -> str:
    return json.dumps(summary_to_dict(summary), ensure_ascii=False)


def _upstream_from_dict(data: Dict[str, Any]) -> UpstreamReport:
    return UpstreamReport(
        raw_html_url=data["raw_html_url"],
        content_type=ContentType(data["content_type"]),
        is_blocked=bool(data["is_blocked"]),
        block_patterns=tuple(
            BlockPattern(p["pattern"], bool(p["found"]), p.get("context"))
            for p in data.get("block_patterns", [])
        ),
        html_size=int(data.get("html_size", 0)),
        status=Status(data["status"]),
        alert_message=data.get("alert_message"),
    )


def _deep_analysis_from_dict(data: Dict[str, Any]) -> DeepAnalysisReport:
    missing = tuple(
        MissingSection(
            section=m["section"],
            description=m["description"],
            severity=Severity(m["severity"]),
            html_evidence=m["html_evidence"],
            html_count=int(m["html_count"]),
        )
        for m in data.get("missing_in_json", [])
    )
    return DeepAnalysisReport.build(
        engine=data["engine"],
        timestamp=data["timestamp"],
        summary=data.get("summary", ""),
        sections_in_json=tuple(data.get("sections_in_json", [])),
        html_fetched=bool(data.get("html_fetched", False)),
        html_url=data.get("html_url"),
        html_size=data.get("html_size"),
        sections_in_html=tuple(
            HtmlSection(s["name"], int(s["count"]), s["selector"])
            for s in data.get("sections_in_html", [])
        ),
        missing_in_json=missing,
        suggested_ticket_title=data.get("suggested_ticket_title"),
    )


def summary_from_dict(data: Dict[str, Any]) -> DiagnosticSummary:
    upstream: Optional[Dict[str, Any]] = data.get("upstream")
    deep_analysis: Optional[Dict[str, Any]] = data.get("deep_analysis")
    return DiagnosticSummary(
        overall_status=Status(data["overall_status"]),
        timestamp=data["timestamp"],
        upstream=_upstream_from_dict(upstream) if upstream else None,
        deep_analysis=_deep_analysis_from_dict(deep_analysis) if deep_analysis else None,
    )


def load_summary(text: str) -> DiagnosticSummary:
    """
    Decodes a stored summary.

    Args:
        text: The JSON text of the 'result' column.

    Returns:
        DiagnosticSummary: The decoded summary.

    Raises:
        ValueError: If the text is not valid JSON or does not describe a summary.
    """
    try:
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("stored result is not an object")
        return summary_from_dict(data)
    except (KeyError, TypeError, AttributeError) as err:
        raise ValueError(f"Malformed diagnostic summary: {err}") from err


def dump_params(params: Mapping[str, Any]) -> str:
    """Serializes request parameters for the 'params' column."""
    return json.dumps(dict(params), ensure_ascii=False, sort_keys=True)
