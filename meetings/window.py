"""Window selection, ordering and the compact projection.

``select`` only filters and reorders; it never changes an occurrence, so
re-applying it to its own output is a no-op.
"""
from __future__ import annotations

import datetime as _dt
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.constants import (
    DEFAULT_DESCRIPTION_LIMIT,
    DEFAULT_TITLE_LIMIT,
    DEFAULT_WINDOW_DAYS,
    UNKNOWN_LOCATION_LABEL,
    VIRTUAL_LOCATION_LABEL,
)
from core.date_utils import to_iso_str
from core.text_utils import truncate

from .model import Occurrence


def window_bounds(reference_now: _dt.datetime, days: int = DEFAULT_WINDOW_DAYS) -> Tuple[_dt.datetime, _dt.datetime]:
    return reference_now, reference_now + _dt.timedelta(days=days)


def select(
    occurrences: Iterable[Occurrence],
    window_start: _dt.datetime,
    window_end: _dt.datetime,
) -> List[Occurrence]:
    """Keep occurrences starting within [window_start, window_end], sorted by start.

    The sort is stable: equal starts keep their input order.
    """
    kept = [o for o in occurrences if window_start <= o.start <= window_end]
    return sorted(kept, key=lambda o: o.start)


def dedupe(occurrences: Iterable[Occurrence]) -> List[Occurrence]:
    """Drop repeated occurrence ids, keeping the first one seen."""
    seen: set[str] = set()
    out: List[Occurrence] = []
    for occ in occurrences:
        if occ.id in seen:
            continue
        seen.add(occ.id)
        out.append(occ)
    return out


def compact_location(occ: Occurrence) -> str:
    if occ.is_virtual:
        return VIRTUAL_LOCATION_LABEL
    return occ.physical_location or occ.location_text or UNKNOWN_LOCATION_LABEL


def to_compact(
    occ: Occurrence,
    tz: Optional[_dt.tzinfo] = None,
    title_limit: int = DEFAULT_TITLE_LIMIT,
    description_limit: int = DEFAULT_DESCRIPTION_LIMIT,
) -> Dict[str, Any]:
    """Reduced projection for the low-bandwidth artifact (text truncated)."""
    return {
        "id": occ.id,
        "text": truncate(occ.title, title_limit),
        "start": to_iso_str(occ.start, tz),
        "end": to_iso_str(occ.end, tz),
        "tags": {
            "type": occ.program,
            "virtual": occ.is_virtual,
            "link": occ.video_link,
            "meetingId": occ.conference_id,
            "passcode": occ.passcode,
            "location": compact_location(occ),
            "description": truncate(occ.description_text, description_limit) or None,
            "contact": occ.contact_email,
        },
    }
