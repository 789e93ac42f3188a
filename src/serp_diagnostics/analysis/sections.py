"""
Section extraction and comparison.

The HTML side counts, per engine selector, how many elements of the raw page
match. The structured side lists which expected sections of the JSON payload
are non-empty. Comparing both yields the sections that were rendered by the
source but dropped by the parser.
"""

from typing import Any, List, Mapping, Optional, Sequence

from bs4 import BeautifulSoup

from serp_diagnostics.domain import HtmlSection, MissingSection, Severity
from serp_diagnostics.engines import (
    CRITICAL_SECTIONS,
    WARNING_SECTIONS,
    html_selectors_for,
    json_sections_for,
)


def extract_html_sections(engine: str, soup: BeautifulSoup) -> List[HtmlSection]:
    """
    Applies the engine's selector table to a parsed document.

    Args:
        engine: The engine whose selector table is used.
        soup: The parsed raw HTML.

    Returns:
        List[HtmlSection]: One entry per selector matching at least one element,
            in table order.
    """
    sections: List[HtmlSection] = []
    for entry in html_selectors_for(engine):
        count = len(soup.select(entry.selector))
        if count > 0:
            sections.append(HtmlSection(name=entry.name, count=count, selector=entry.selector))
    return sections


def _is_present(value: Any) -> bool:
    if isinstance(value, list):
        return len(value) > 0
    return isinstance(value, dict)


def extract_json_sections(engine: str, payload: Mapping[str, Any]) -> List[str]:
    """
    Lists the expected sections that are present in a structured payload.

    A section is present when its field is a non-empty list or an object.

    Args:
        engine: The engine whose expected section list is used.
        payload: The decoded search API response.

    Returns:
        List[str]: The present section names, in table order. Empty when the
            payload is not an object.
    """
    if not isinstance(payload, Mapping):
        return []
    return [name for name in json_sections_for(engine) if _is_present(payload.get(name))]


def determine_severity(section_name: str, count: int) -> Severity:
    if count > 0 and section_name in CRITICAL_SECTIONS:
        return Severity.CRITICAL
    if count > 0 and section_name in WARNING_SECTIONS:
        return Severity.WARNING
    return Severity.INFO


def _description_of(engine: str, section_name: str) -> str:
    for entry in html_selectors_for(engine):
        if entry.name == section_name:
            return entry.description
    return section_name


def compare_sections(
    engine: str, sections_in_html: Sequence[HtmlSection], sections_in_json: Sequence[str]
) -> List[MissingSection]:
    """
    Finds the HTML sections that are absent from the structured payload.

    Args:
        engine: The engine being compared.
        sections_in_html: Sections found in the raw HTML.
        sections_in_json: Section names present in the JSON payload.

    Returns:
        List[MissingSection]: One entry per HTML section missing from the JSON.
    """
    present = set(sections_in_json)
    missing: List[MissingSection] = []
    for section in sections_in_html:
        if section.name in present:
            continue
        description = _description_of(engine, section.name)
        missing.append(
            MissingSection(
                section=section.name,
                description=f'Found {section.count} "{description}" in HTML but NOT parsed in JSON',
                severity=determine_severity(section.name, section.count),
                html_evidence=f"Selector: {section.selector}",
                html_count=section.count,
            )
        )
    return missing


def humanize_engine(engine: str) -> str:
    """Turns an engine id such as 'google_news' into 'Google News'."""
    return " ".join(word[:1].upper() + word[1:] for word in engine.replace("_", " ").split(" "))


def suggest_ticket_title(engine: str, missing: Sequence[MissingSection]) -> Optional[str]:
    """
    Builds an issue title from the first critical missing section.

    Returns:
        Optional[str]: The title, or None when nothing critical is missing.
    """
    first_critical = next((m for m in missing if m.severity == Severity.CRITICAL), None)
    if first_critical is None:
        return None
    return (
        f"[{humanize_engine(engine)}] Missing {first_critical.section} - "
        f"found {first_critical.html_count} in HTML but not parsed"
    )
