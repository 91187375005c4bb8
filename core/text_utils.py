"""Shared text processing utilities for the meeting pipeline."""
from __future__ import annotations

import re

from .constants import ELLIPSIS

__all__ = [
    "EMAIL_PATTERN",
    "collapse_ws",
    "extract_email_address",
    "truncate",
    "unescape_ics_text",
]

EMAIL_PATTERN = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")


def collapse_ws(value: str) -> str:
    return re.sub(r"\s+", " ", value or "").strip()


def unescape_ics_text(s: str) -> str:
    """Undo RFC 5545 TEXT escaping.

    - Literal '\\n' / '\\N' become newlines
    - '\\,' and '\\;' become ',' and ';'
    - '\\\\' becomes a single backslash
    """
    if not s:
        return ""
    out = []
    i = 0
    while i < len(s):
        ch = s[i]
        if ch == "\\" and i + 1 < len(s):
            nxt = s[i + 1]
            if nxt in "nN":
                out.append("\n")
            elif nxt in ",;\\":
                out.append(nxt)
            else:
                out.append(ch + nxt)
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def truncate(text: str | None, limit: int) -> str | None:
    """Shorten text beyond ``limit`` characters, ending in an ellipsis.

    Examples:
        truncate('abcdef', 5) -> 'ab...'
        truncate('abc', 5) -> 'abc'
    """
    if text is None or limit <= 0 or len(text) <= limit:
        return text
    keep = max(limit - len(ELLIPSIS), 0)
    return text[:keep] + ELLIPSIS


def extract_email_address(s: str) -> str | None:
    """Return the first email address found in free text.

    Examples:
        'Contact Jo <jo@example.org>' -> 'jo@example.org'
        'no address here' -> None
    """
    if not s:
        return None
    m = EMAIL_PATTERN.search(s)
    return m.group(0) if m else None
