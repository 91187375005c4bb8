"""Field extraction from free-text meeting descriptions.

``extract`` is pure and total: any input (including empty strings) yields
an ExtractedFields, with fields left as None when nothing matches. Patterns
are tried in the order declared below and the first match per field wins.
"""
from __future__ import annotations

import re
from typing import Iterable, Optional, Pattern, Sequence

from core.text_utils import collapse_ws, extract_email_address

from .model import ExtractedFields

VIDEO_DOMAINS = ("zoom.us", "meet.google", "teams.microsoft", "webex.com")
VIRTUAL_INDICATORS = VIDEO_DOMAINS + ("virtual", "online")

RE_VIDEO_URL = re.compile(
    r"https?://[^\s<>\"']*(?:zoom\.us|meet\.google\.com|teams\.microsoft\.com|webex\.com)[^\s<>\"']*",
    re.I,
)

CONFERENCE_ID_PATTERNS: Sequence[Pattern[str]] = (
    re.compile(r"\b(?:Meeting\s+ID|Conf(?:erence)?\s+ID|ID)\b[:#\s]*(\d[\d ]*\d)", re.I),
    re.compile(r"(?:zoom\.us|webex\.com)/(?:j|s|w|meeting|join)/(\d+)", re.I),
)
CONFERENCE_ID_MIN_DIGITS = 8
CONFERENCE_ID_MAX_DIGITS = 16

PASSCODE_PATTERNS: Sequence[Pattern[str]] = (
    re.compile(r"\b(?:Password|Passcode|Code)\b[:\s]*([^\s,\\]+)", re.I),
    re.compile(r"[?&]pwd=([^&\s#]+)", re.I),
)

# "@ Place" or "at Place"; an @ glued to a word is an email address.
RE_LOCATOR = re.compile(r"(?:(?<!\S)@|\bat[ \t])[ \t]*([^\n]+)")
RE_ID_LABEL = re.compile(r"\bID\b")


def _first_group(patterns: Iterable[Pattern[str]], text: str) -> Optional[str]:
    for pat in patterns:
        m = pat.search(text)
        if m:
            return m.group(1)
    return None


def find_video_link(description: str, location: str) -> Optional[str]:
    loc = (location or "").strip()
    if any(token in loc.lower() for token in VIDEO_DOMAINS):
        return loc
    m = RE_VIDEO_URL.search(description or "")
    if m:
        return m.group(0).rstrip(".,;)")
    return None


def find_conference_id(text: str) -> Optional[str]:
    """Conference ID digits (8-16, internal spaces removed) or None."""
    for pat in CONFERENCE_ID_PATTERNS:
        for m in pat.finditer(text):
            digits = re.sub(r"\s+", "", m.group(1))
            if CONFERENCE_ID_MIN_DIGITS <= len(digits) <= CONFERENCE_ID_MAX_DIGITS:
                return digits
    return None


def find_passcode(text: str) -> Optional[str]:
    return _first_group(PASSCODE_PATTERNS, text)


def find_contact_email(description: str) -> Optional[str]:
    return extract_email_address(description)


def _looks_like_link_or_id(phrase: str) -> bool:
    low = phrase.lower()
    if "zoom" in low or "http" in low or any(token in low for token in VIDEO_DOMAINS):
        return True
    return RE_ID_LABEL.search(phrase) is not None


def find_physical_location(description: str) -> Optional[str]:
    """Venue phrase following an @ or "at" locator, up to the line break."""
    m = RE_LOCATOR.search(description or "")
    if not m:
        return None
    phrase = collapse_ws(m.group(1).replace("\\,", ","))
    if not phrase or _looks_like_link_or_id(phrase):
        return None
    return phrase


def is_virtual(description: str, location: str) -> bool:
    loc = (location or "").lower()
    desc = (description or "").lower()
    return any(token in loc or token in desc for token in VIRTUAL_INDICATORS)


def extract(description_text: Optional[str], location_text: Optional[str]) -> ExtractedFields:
    """Extract link, conference ID, passcode, contact and venue from free text."""
    description = description_text or ""
    location = location_text or ""
    combined = f"{description} {location}"
    return ExtractedFields(
        video_link=find_video_link(description, location),
        conference_id=find_conference_id(combined),
        passcode=find_passcode(combined),
        contact_email=find_contact_email(description),
        physical_location=find_physical_location(description),
        is_virtual=is_virtual(description, location),
    )
