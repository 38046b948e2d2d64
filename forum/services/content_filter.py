"""Denylist-based content classifier used to auto-flag topics and posts."""

from dataclasses import dataclass
from typing import Optional

DENYLIST = ("badword1", "badword2", "spam", "offensive")
FLAG_REASON = "Content contains inappropriate language"


@dataclass(frozen=True)
class FilterResult:
    """Outcome of classifying a piece of text."""
    flagged: bool
    reason: str = ""


CLEAN = FilterResult(flagged=False)


def classify(text: Optional[str]) -> FilterResult:
    """
    Classify text against the denylist.

    Matching is a case-insensitive substring test. Empty or missing text
    never flags.

    Args:
        text: Text to check

    Returns:
        FilterResult with the flag and, when flagged, a non-empty reason
    """
    if not text:
        return CLEAN
    lowered = text.lower()
    if any(term in lowered for term in DENYLIST):
        return FilterResult(flagged=True, reason=FLAG_REASON)
    return CLEAN


def select_text(
    content: Optional[str] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
) -> str:
    """Return the first non-empty field among content, title and description."""
    return content or title or description or ""
