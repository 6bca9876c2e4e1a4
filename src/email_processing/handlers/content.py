"""
Text normalisation helpers for customer message content.

Every tier of the similarity pipeline, the keyword heuristics and the
relevance gate read message bodies through these helpers, so two bodies
that differ only in entity encoding, quote style, case or spacing compare
as equal.

Design Considerations:
- HTML markup is stripped with BeautifulSoup, entities decoded with the
  standard html module
- Non-string input never raises, it normalises to an empty string
- Pure functions only, no I/O
"""

import html
import logging
import re
from typing import List, Optional

from bs4 import BeautifulSoup

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_ANY_QUOTE = re.compile(r"[\"'`‘’‚‛“”„‟′″]")
_CURLY_QUOTE = re.compile(r"[“”‘’]")
_TOKEN_SPLIT = re.compile(r"[\"'`\-_/\\()\[\]{}.,!?;:@#$%^&*=+<>~\r\n‘’“”]")


def decode_html_entities(text: Optional[str]) -> str:
    """Decode named and numeric HTML entities (&amp;, &#39;, &#x27; ...)."""
    if not isinstance(text, str):
        return ""
    return html.unescape(text)


def clean_html(content: Optional[str]) -> str:
    """
    Strip HTML markup from a provider body or snippet.

    Script and style elements are removed, entities decoded and blank
    lines dropped. Plain text passes through with entities decoded.

    Args:
        content: Raw body that may contain markup

    Returns:
        Plain text content
    """
    if not isinstance(content, str) or not content:
        return ""
    if "<" not in content:
        return decode_html_entities(content).strip()
    try:
        soup = BeautifulSoup(content, "html.parser")
        for element in soup(["script", "style"]):
            element.decompose()
        text = soup.get_text("\n")
        lines = (line.strip() for line in text.splitlines())
        return "\n".join(line for line in lines if line)
    except Exception as e:
        logger.warning(f"HTML cleaning failed: {e}, returning decoded content")
        return decode_html_entities(content).strip()


def normalize_for_comparison(text: Optional[str]) -> str:
    """
    Canonical form used for exact-duplicate detection.

    Decodes entities, lowercases, maps every quote character to a single
    apostrophe, collapses whitespace and trims. Idempotent.
    """
    decoded = decode_html_entities(text)
    lowered = decoded.lower()
    quoted = _ANY_QUOTE.sub("'", lowered)
    return _WHITESPACE.sub(" ", quoted).strip()


def normalize_for_keyword_match(text: Optional[str]) -> str:
    """Lowercase, collapse whitespace and straighten curly quotes."""
    if not isinstance(text, str):
        return ""
    collapsed = _WHITESPACE.sub(" ", text.lower())
    return _CURLY_QUOTE.sub("'", collapsed).strip()


def tokenize(text: Optional[str]) -> List[str]:
    """Lowercase, turn punctuation into spaces and split on whitespace."""
    if not isinstance(text, str):
        return []
    return _TOKEN_SPLIT.sub(" ", text.lower()).split()


def truncate(text: Optional[str], limit: int) -> str:
    if not isinstance(text, str):
        return ""
    return text if len(text) <= limit else text[:limit]


def subject_fallback(subject: Optional[str], body: Optional[str], limit: int = 60) -> str:
    """
    Subject line to show when the message has none.

    Uses the first non-empty line of the decoded body, shortened with an
    ellipsis when it runs past the limit.
    """
    if isinstance(subject, str) and subject.strip():
        return subject.strip()
    decoded = decode_html_entities(body).strip()
    first_line = next((line.strip() for line in decoded.splitlines() if line.strip()), "")
    if len(first_line) > limit:
        return first_line[:limit - 3] + "..."
    return first_line


def get_first_name(full_name: Optional[str]) -> str:
    """First whitespace-separated token of a display name."""
    if not isinstance(full_name, str):
        return ""
    parts = full_name.strip().split()
    return parts[0] if parts else ""
