from __future__ import annotations

import html
import re

_TAG = re.compile(r"<[^>]*>")
_SPACES = re.compile(r"\s+")


def strip_markup(text: str | None) -> str:
    """Reduce rich-text markup to plain text suitable for scoring.

    Tags become spaces, HTML entities are decoded and runs of whitespace
    collapse to a single space.
    """
    cleaned = _TAG.sub(" ", text or "")
    cleaned = html.unescape(cleaned).replace("\xa0", " ")
    cleaned = _SPACES.sub(" ", cleaned)
    return cleaned.strip()


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]
