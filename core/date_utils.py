"""Shared date and time utilities.

Provides weekday-code parsing, naive/zoned conversions and ISO rendering
used by the normalizer, the expander and the artifact writers.
"""
from __future__ import annotations

import datetime as _dt
import re
from typing import Any, List, Optional

from .constants import FMT_DATETIME_SEC, FMT_DAY_START

__all__ = [
    "DAY_MAP",
    "DAY_NAMES",
    "WEEKDAY_CODES",
    "code_to_weekday",
    "epoch_millis",
    "localize",
    "normalize_day",
    "normalize_days",
    "parse_reference_now",
    "to_iso_str",
    "weekday_code",
]

# Day-of-week name/abbreviation to RRULE code mapping
DAY_MAP = {
    "monday": "MO",
    "mon": "MO",
    "tuesday": "TU",
    "tue": "TU",
    "tues": "TU",
    "wednesday": "WE",
    "wed": "WE",
    "thursday": "TH",
    "thu": "TH",
    "thur": "TH",
    "thurs": "TH",
    "friday": "FR",
    "fri": "FR",
    "saturday": "SA",
    "sat": "SA",
    "sunday": "SU",
    "sun": "SU",
}

# Day name sequence for iteration (abbreviated, lowercase)
DAY_NAMES = ['mon', 'tue', 'wed', 'thu', 'fri', 'sat', 'sun']

# RRULE codes indexed by Python's date.weekday()
WEEKDAY_CODES = ('MO', 'TU', 'WE', 'TH', 'FR', 'SA', 'SU')

_EPOCH = _dt.datetime(1970, 1, 1)


def normalize_day(day_name: str) -> str:
    """Convert a day name or code to two-letter RRULE code (e.g., 'Monday' -> 'MO')."""
    s = (day_name or '').strip()
    if s.upper() in WEEKDAY_CODES:
        return s.upper()
    return DAY_MAP.get(s.lower(), '')


def normalize_days(spec: str) -> List[str]:
    """Parse day specification to list of two-letter RRULE codes.

    Handles ranges like 'Mon to Fri' and lists like 'Mon & Wed'.
    Also handles full day names like 'Monday', 'Saturday'.

    Examples:
        'Monday' -> ['MO']
        'Mon to Fri' -> ['MO', 'TU', 'WE', 'TH', 'FR']
        'Mon & Wed' -> ['MO', 'WE']
        'TU,TH' -> ['TU', 'TH']
    """
    s = (spec or '').lower().replace('&amp;', '&').replace('&', ' & ')
    out: List[str] = []

    # Check for ranges like "Mon to Fri" or "Mon-Fri"
    m = re.search(r'\b(mon|tue|wed|thu|fri|sat|sun)\w*\b\s*(?:-|\bto\b)\s*\b(mon|tue|wed|thu|fri|sat|sun)\w*\b', s)
    if m:
        a, b = m.group(1), m.group(2)
        i1, i2 = DAY_NAMES.index(a), DAY_NAMES.index(b)
        rng = DAY_NAMES[i1:i2+1] if i1 <= i2 else (DAY_NAMES[i1:] + DAY_NAMES[:i2+1])
        return [DAY_MAP[d] for d in rng]

    for tok in re.split(r'[\s,;/&]+', s):
        code = normalize_day(tok)
        if code and code not in out:
            out.append(code)
    return out


def weekday_code(d: _dt.date) -> str:
    """Get weekday code (MO, TU, etc.) from date."""
    return WEEKDAY_CODES[d.weekday()]


def code_to_weekday(code: str) -> Optional[int]:
    """Map an RRULE code to Python's weekday index (MO=0 .. SU=6)."""
    try:
        return WEEKDAY_CODES.index((code or '').upper())
    except ValueError:
        return None


def epoch_millis(value: _dt.datetime) -> int:
    """Milliseconds since the epoch, reading a naive wall-clock as UTC."""
    if value.tzinfo is not None:
        return int(value.timestamp() * 1000)
    return (value - _EPOCH) // _dt.timedelta(milliseconds=1)


def localize(value: _dt.datetime, tz: Optional[_dt.tzinfo]) -> _dt.datetime:
    """Attach ``tz`` to a naive wall-clock datetime; no-op without a zone."""
    if tz is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=tz)


def parse_reference_now(value: Optional[str], tz: Optional[_dt.tzinfo] = None) -> _dt.datetime:
    """Resolve the run's reference instant as a naive wall-clock.

    ``value`` may be an ISO date or datetime; when omitted the current time
    is read once, in ``tz`` when a zone is configured.
    """
    if value:
        parsed = _dt.datetime.fromisoformat(str(value).strip().replace('Z', '+00:00'))
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(tz).replace(tzinfo=None) if tz else parsed.replace(tzinfo=None)
        return parsed
    if tz is not None:
        return _dt.datetime.now(tz).replace(tzinfo=None)
    return _dt.datetime.now()


def to_iso_str(v: Any, tz: Optional[_dt.tzinfo] = None) -> Optional[str]:
    """Convert a value to ISO datetime string.

    Naive datetimes are written verbatim as wall-clock time unless a zone is
    given, in which case they are localized and carry its offset.
    """
    if v is None:
        return None
    if isinstance(v, str):
        return v
    if isinstance(v, _dt.datetime):
        if tz is not None:
            return localize(v, tz).isoformat()
        return v.strftime(FMT_DATETIME_SEC)
    if isinstance(v, _dt.date):
        return v.strftime(FMT_DAY_START)
    return str(v)
