"""Lyric text canonicalization and song grouping keys.

Normalization pipeline (order matters, later steps assume earlier ones):
1. Lowercase
2. Typographic single quotes (U+2018, U+2019) → '
3. Typographic double quotes (U+201C, U+201D) → "
4. Horizontal ellipsis (U+2026) → ...
5. Collapse whitespace runs (spaces, tabs, newlines) → single space
6. Trim

No stemming, punctuation stripping, or accent folding: lyrics that differ
in punctuation style only match through the substring rule in canonical.py.
"""

import re

_SINGLE_QUOTES = re.compile("[‘’]")
_DOUBLE_QUOTES = re.compile("[“”]")
_ELLIPSIS = "…"
_WHITESPACE = re.compile(r"\s+")


def normalize_lyric_text(text):
    """Canonicalize lyric text for equality / containment comparison."""
    if not text:
        return ""
    text = text.lower()
    text = _SINGLE_QUOTES.sub("'", text)
    text = _DOUBLE_QUOTES.sub('"', text)
    text = text.replace(_ELLIPSIS, "...")
    text = _WHITESPACE.sub(" ", text)
    return text.strip()


def song_key(title):
    """Grouping key for a song title: trimmed and lowercased.

    Returns None for a missing or blank title, which never groups.
    """
    if title is None:
        return None
    key = title.strip().lower()
    return key or None
