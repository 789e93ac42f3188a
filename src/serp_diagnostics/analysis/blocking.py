"""
Blocking pattern scanner.

Extracts the visible text of an HTML document and tests it against a fixed table
of signatures that upstream sources use when they refuse or degrade service
(CAPTCHA walls, robot checks, rate limiting). Script, style and noscript content
is removed first so that inert markup does not produce false positives.
"""

import re
from typing import List, NamedTuple, Optional, Tuple

from bs4 import BeautifulSoup

from serp_diagnostics.domain import BlockPattern

# Characters of context captured on each side of a match.
CONTEXT_RADIUS = 30

_INERT_TAGS = ["script", "style", "noscript"]
_WHITESPACE_RE = re.compile(r"\s+")


class BlockSignature(NamedTuple):
    signature: str
    label: str


BLOCK_SIGNATURES: Tuple[BlockSignature, ...] = (
    BlockSignature("captcha", "CAPTCHA detected"),
    BlockSignature("unusual traffic", "Unusual traffic warning"),
    BlockSignature("precondition check failed", "Precondition check failed"),
    BlockSignature("are you a robot", "Robot check"),
    BlockSignature("i'm not a robot", "Robot verification"),
    BlockSignature("blocked", "Blocked message"),
    BlockSignature("access denied", "Access denied"),
    BlockSignature("please verify you are human", "Human verification required"),
    BlockSignature("rate limit", "Rate limited"),
)


def extract_visible_text(html: str) -> str:
    """
    Builds the lower-cased haystack scanned for blocking signatures.

    The haystack is the page title, the meta description and the visible body
    text. Documents without a body element (bare text, fragments) contribute
    their whole text instead.

    Args:
        html: The raw HTML text.

    Returns:
        str: The lower-cased text to scan.
    """
    soup = BeautifulSoup(html, "html.parser")

    for tag in soup.find_all(_INERT_TAGS):
        tag.decompose()

    title = soup.title.get_text() if soup.title else ""

    meta_description = ""
    meta = soup.find("meta", attrs={"name": "description"})
    if meta is not None:
        meta_description = meta.get("content") or ""

    visible = (soup.body or soup).get_text()

    return f"{title} {meta_description} {visible}".lower()


def _context_window(haystack: str, index: int, length: int) -> str:
    start = max(0, index - CONTEXT_RADIUS)
    end = min(len(haystack), index + length + CONTEXT_RADIUS)
    return _WHITESPACE_RE.sub(" ", haystack[start:end]).strip()


def _match(haystack: str, signature: BlockSignature) -> BlockPattern:
    index = haystack.find(signature.signature)
    if index == -1:
        return BlockPattern(pattern=signature.label, found=False)

    context: Optional[str] = _context_window(haystack, index, len(signature.signature))
    return BlockPattern(pattern=signature.label, found=True, context=context)


def scan_for_block_patterns(html: str) -> List[BlockPattern]:
    """
    Tests the visible text of a document against every blocking signature.

    Every signature of the table is reported, found or not, in table order.

    Args:
        html: The raw HTML (or plain text) body.

    Returns:
        List[BlockPattern]: One entry per signature.
    """
    haystack = extract_visible_text(html)
    return [_match(haystack, signature) for signature in BLOCK_SIGNATURES]
