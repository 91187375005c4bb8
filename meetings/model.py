"""Canonical meeting types.

RawMeeting is a source-declared template (possibly weekly-recurring);
Occurrence is one concrete dated instance produced by the expander.
Both are frozen so downstream stages can only select and reorder them.
"""
from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional

from core.constants import DEFAULT_DURATION_MINUTES, DEFAULT_TITLE
from core.date_utils import WEEKDAY_CODES, code_to_weekday, to_iso_str

DEFAULT_DURATION = _dt.timedelta(minutes=DEFAULT_DURATION_MINUTES)

# Program tag shown in the UI, keyed by source name
PROGRAM_TYPES = {
    "recovery-dharma": "Recovery Dharma",
    "aa-meetings": "AA",
    "na-meetings": "NA",
    "celebrate-recovery": "Celebrate Recovery",
    "smart-recovery": "SMART Recovery",
}
DEFAULT_PROGRAM = "Support Group"

SOURCE_KINDS = ("auto", "ics", "json")


def program_for(source_name: str) -> str:
    return PROGRAM_TYPES.get((source_name or "").strip().lower(), DEFAULT_PROGRAM)


@dataclass(frozen=True)
class SourceSpec:
    """One raw input: a local path or http(s) URL holding ICS or JSON."""

    name: str
    location: str
    kind: str = "auto"
    program: Optional[str] = None
    default_title: str = DEFAULT_TITLE
    default_weekly: bool = False
    # per-source cap; None uses the run-wide max_occurrences
    max_occurrences: Optional[int] = None

    @property
    def program_tag(self) -> str:
        return self.program or program_for(self.name)

    @property
    def is_remote(self) -> bool:
        return self.location.lower().startswith(("http://", "https://"))

    def resolved_kind(self) -> str:
        """'ics' or 'json'; auto-detects from the location's extension."""
        k = (self.kind or "auto").strip().lower()
        if k in ("ics", "json"):
            return k
        path = self.location.split("?", 1)[0].lower()
        if path.endswith((".ics", ".ical", ".ifb")):
            return "ics"
        return "json"


@dataclass(frozen=True)
class RecurrenceRule:
    """Weekly recurrence on a set of RRULE weekday codes."""

    byday: FrozenSet[str]
    freq: str = "WEEKLY"

    def weekdays(self) -> FrozenSet[int]:
        return frozenset(i for i in (code_to_weekday(c) for c in self.byday) if i is not None)

    def codes(self) -> List[str]:
        """Weekday codes in calendar order (MO..SU)."""
        return [c for c in WEEKDAY_CODES if c in self.byday]


@dataclass(frozen=True)
class ExtractedFields:
    video_link: Optional[str] = None
    conference_id: Optional[str] = None
    passcode: Optional[str] = None
    contact_email: Optional[str] = None
    physical_location: Optional[str] = None
    is_virtual: bool = False


@dataclass(frozen=True)
class RawMeeting:
    id: str
    title: str
    start_anchor: _dt.datetime
    end_anchor: Optional[_dt.datetime] = None
    description_text: str = ""
    location_text: str = ""
    recurrence_rule: Optional[RecurrenceRule] = None
    fields: ExtractedFields = field(default_factory=ExtractedFields)
    program: str = ""
    tzid: Optional[str] = None  # parsed from DTSTART, never applied

    @property
    def duration(self) -> _dt.timedelta:
        if self.end_anchor is None or self.end_anchor < self.start_anchor:
            return DEFAULT_DURATION
        return self.end_anchor - self.start_anchor

    @property
    def is_recurring(self) -> bool:
        return self.recurrence_rule is not None


@dataclass(frozen=True)
class Occurrence:
    id: str
    title: str
    start: _dt.datetime
    end: _dt.datetime
    description_text: str = ""
    program: str = ""
    location_text: str = ""
    is_virtual: bool = False
    video_link: Optional[str] = None
    conference_id: Optional[str] = None
    passcode: Optional[str] = None
    contact_email: Optional[str] = None
    physical_location: Optional[str] = None

    @classmethod
    def from_meeting(cls, raw: RawMeeting, occurrence_id: str, start: _dt.datetime, end: _dt.datetime) -> "Occurrence":
        f = raw.fields
        return cls(
            id=occurrence_id,
            title=raw.title,
            start=start,
            end=end,
            description_text=raw.description_text,
            program=raw.program,
            location_text=raw.location_text,
            is_virtual=f.is_virtual,
            video_link=f.video_link,
            conference_id=f.conference_id,
            passcode=f.passcode,
            contact_email=f.contact_email,
            physical_location=f.physical_location,
        )

    def to_dict(self, tz: Optional[_dt.tzinfo] = None) -> Dict[str, Any]:
        """Full-artifact JSON object (camelCase keys, ISO-8601 start/end)."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description_text,
            "program": self.program,
            "start": to_iso_str(self.start, tz),
            "end": to_iso_str(self.end, tz),
            "isVirtual": self.is_virtual,
            "videoLink": self.video_link,
            "conferenceId": self.conference_id,
            "passcode": self.passcode,
            "contactEmail": self.contact_email,
            "physicalLocation": self.physical_location,
            "location": self.location_text,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Occurrence":
        """Rebuild an occurrence from a full-artifact object.

        Offsets on start/end are dropped so the wall-clock time is kept.
        """
        def _dt_of(key: str) -> _dt.datetime:
            value = _dt.datetime.fromisoformat(str(data[key]).replace("Z", "+00:00"))
            return value.replace(tzinfo=None)

        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            start=_dt_of("start"),
            end=_dt_of("end"),
            description_text=str(data.get("description") or ""),
            program=str(data.get("program") or ""),
            location_text=str(data.get("location") or ""),
            is_virtual=bool(data.get("isVirtual")),
            video_link=data.get("videoLink"),
            conference_id=data.get("conferenceId"),
            passcode=data.get("passcode"),
            contact_email=data.get("contactEmail"),
            physical_location=data.get("physicalLocation"),
        )
