"""
Content classification for raw upstream payloads.
"""

import json

from serp_diagnostics.domain import ContentType

_HTML_MARKERS = ("<html", "<body", "<head")


def is_valid_json(text: str) -> bool:
    try:
        json.loads(text)
    except (ValueError, RecursionError):
        return False
    return True


def classify_content(content: str) -> ContentType:
    """
    Determines whether a raw payload is JSON, HTML or something else.

    A payload is JSON when it starts with '{' or '[' and actually parses; a
    payload that only looks like JSON falls through to the HTML checks.

    Args:
        content: The raw body text.

    Returns:
        ContentType: The detected content type. Never raises.
    """
    trimmed = content.strip()

    if trimmed.startswith(("{", "[")) and is_valid_json(trimmed):
        return ContentType.JSON

    lowered = trimmed.lower()
    if lowered.startswith(("<!doctype", "<html")):
        return ContentType.HTML

    if any(marker in lowered for marker in _HTML_MARKERS):
        return ContentType.HTML

    return ContentType.UNKNOWN
