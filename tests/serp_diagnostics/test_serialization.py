"""
Unit tests for the serialization of diagnostic summaries.
"""

import json

import pytest

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
from serp_diagnostics.serialization import (
    dump_params,
    dump_summary,
    load_summary,
    summary_to_dict,
)


@pytest.fixture
def summary() -> DiagnosticSummary:
    missing = MissingSection(
        section="organic_results",
        description='Found 5 "Organic search results" in HTML but NOT parsed in JSON',
        severity=Severity.CRITICAL,
        html_evidence="Selector: div.g, div.MjjYud",
        html_count=5,
    )
    return DiagnosticSummary(
        overall_status=Status.UPSTREAM_BLOCK,
        timestamp="2024-05-01T10:00:00+00:00",
        upstream=UpstreamReport(
            raw_html_url="https://serpapi.com/searches/abc/raw.html",
            content_type=ContentType.HTML,
            is_blocked=True,
            block_patterns=(BlockPattern("CAPTCHA detected", True, "solve the captcha"),),
            html_size=1200,
            status=Status.UPSTREAM_BLOCK,
            alert_message="Blocking patterns detected: CAPTCHA detected",
        ),
        deep_analysis=DeepAnalysisReport.build(
            engine="naver",
            timestamp="2024-05-01T10:00:00+00:00",
            summary="PARSING ISSUE",
            html_fetched=True,
            html_url="https://serpapi.com/searches/abc/raw.html",
            html_size=1200,
            sections_in_html=(HtmlSection("organic_results", 5, "div.g, div.MjjYud"),),
            missing_in_json=(missing,),
            suggested_ticket_title="[Naver] Missing organic_results - found 5 in HTML but not parsed",
        ),
    )


def test_summary_to_dict_should_use_plain_values(summary: DiagnosticSummary) -> None:
    """
    Tests that enums are stored as their string values.
    """
    # Act
    data = summary_to_dict(summary)

    # Assert
    assert data["overall_status"] == "UPSTREAM_BLOCK"
    assert data["upstream"]["content_type"] == "html"
    assert data["deep_analysis"]["missing_in_json"][0]["severity"] == "critical"
    assert data["deep_analysis"]["critical_missing"] == 1
    json.dumps(data)


def test_load_summary_should_restore_dumped_summary(summary: DiagnosticSummary) -> None:
    """
    Tests that a stored summary decodes back to an equal record.
    """
    # Act
    restored = load_summary(dump_summary(summary))

    # Assert
    assert restored == summary


def test_load_summary_should_accept_skipped_stages() -> None:
    """
    Tests that summaries of failed API calls, without any stage, decode.
    """
    # Arrange
    text = '{"overall_status": "UPSTREAM_BLOCK", "timestamp": "t"}'

    # Act
    restored = load_summary(text)

    # Assert
    assert restored == DiagnosticSummary(Status.UPSTREAM_BLOCK, "t")


@pytest.mark.parametrize(
    "text",
    [
        "{not json",
        "[]",
        '{"timestamp": "t"}',
        '{"overall_status": "BROKEN", "timestamp": "t"}',
        '{"overall_status": "STABLE", "timestamp": "t", "upstream": {"raw_html_url": "u"}}',
    ],
)
def test_load_summary_should_raise_value_error_for_corrupted_text(text: str) -> None:
    """
    Tests that every kind of corruption surfaces as ValueError.
    """
    # Act & Assert
    with pytest.raises(ValueError):
        load_summary(text)


def test_dump_params_should_be_stable_and_keep_unicode() -> None:
    """
    Tests that request parameters are stored with sorted keys and readable unicode.
    """
    # Act
    text = dump_params({"query": "서울", "engine": "naver"})

    # Assert
    assert text == '{"engine": "naver", "query": "서울"}'
