"""Shared test fixtures and utilities.

This module provides common fakes, builders and helpers to simplify testing
across the meeting pipeline test suite.
"""

from __future__ import annotations

import datetime as dt
import io
import os
import tempfile
from contextlib import contextmanager, redirect_stdout
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from meetings.errors import SourceReadError
from meetings.model import ExtractedFields, Occurrence, RawMeeting, RecurrenceRule, SourceSpec

REPO_ROOT = Path(__file__).resolve().parents[1]


# -----------------------------------------------------------------------------
# Path helpers
# -----------------------------------------------------------------------------


def repo_root() -> Path:
    return REPO_ROOT


def repo_path(*parts: str) -> Path:
    return REPO_ROOT.joinpath(*parts)


# -----------------------------------------------------------------------------
# YAML config helpers
# -----------------------------------------------------------------------------


def write_yaml(data: dict, dir: Optional[str] = None, filename: str = "config.yaml") -> str:
    """Write a dict to a temporary YAML file, return the path."""
    import yaml

    td = dir or tempfile.mkdtemp()
    p = os.path.join(td, filename)
    with open(p, "w", encoding="utf-8") as fh:
        yaml.safe_dump(data, fh, sort_keys=False)
    return p


# -----------------------------------------------------------------------------
# Output capture helpers
# -----------------------------------------------------------------------------


@contextmanager
def capture_stdout():
    """Context manager that captures stdout and yields a StringIO buffer."""
    buf = io.StringIO()
    with redirect_stdout(buf):
        yield buf


# -----------------------------------------------------------------------------
# ICS builders
# -----------------------------------------------------------------------------


def ics_event(
    uid: str,
    summary: str,
    dtstart: str,
    dtend: Optional[str] = None,
    rrule: Optional[str] = None,
    description: Optional[str] = None,
    location: Optional[str] = None,
    extra: Sequence[str] = (),
) -> List[str]:
    """Lines for one VEVENT block (values are written verbatim)."""
    lines = ["BEGIN:VEVENT", f"UID:{uid}", f"SUMMARY:{summary}"]
    lines.append(dtstart if dtstart.startswith("DTSTART") else f"DTSTART:{dtstart}")
    if dtend:
        lines.append(dtend if dtend.startswith("DTEND") else f"DTEND:{dtend}")
    if rrule:
        lines.append(f"RRULE:{rrule}")
    if description is not None:
        lines.append(f"DESCRIPTION:{description}")
    if location is not None:
        lines.append(f"LOCATION:{location}")
    lines.extend(extra)
    lines.append("END:VEVENT")
    return lines


def ics_calendar(*events: List[str]) -> str:
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//Test//Meetings//EN"]
    for ev in events:
        lines.extend(ev)
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines) + "\r\n"


# -----------------------------------------------------------------------------
# Model builders
# -----------------------------------------------------------------------------


def make_source(name: str = "recovery-dharma", location: str = "meetings.ics", **kwargs) -> SourceSpec:
    return SourceSpec(name=name, location=location, **kwargs)


def make_raw_meeting(
    id: str = "recovery-dharma_uid1",
    title: str = "Sangha",
    start: dt.datetime = dt.datetime(2025, 8, 5, 19, 0),
    end: Optional[dt.datetime] = dt.datetime(2025, 8, 5, 20, 0),
    byday: Optional[Sequence[str]] = None,
    fields: Optional[ExtractedFields] = None,
    program: str = "Recovery Dharma",
    **kwargs,
) -> RawMeeting:
    """RawMeeting with sensible defaults; ``byday`` makes it weekly."""
    rule = RecurrenceRule(byday=frozenset(byday)) if byday else None
    return RawMeeting(
        id=id,
        title=title,
        start_anchor=start,
        end_anchor=end,
        recurrence_rule=rule,
        fields=fields or ExtractedFields(),
        program=program,
        **kwargs,
    )


def make_occurrence(
    id: str,
    start: dt.datetime,
    minutes: int = 60,
    title: str = "Meeting",
    **kwargs,
) -> Occurrence:
    return Occurrence(id=id, title=title, start=start, end=start + dt.timedelta(minutes=minutes), **kwargs)


# -----------------------------------------------------------------------------
# Source loader fakes
# -----------------------------------------------------------------------------


@dataclass
class FakeLoader:
    """Configurable source loader for driver tests.

    Example usage:
        loader = FakeLoader(
            meetings={"aa-meetings": [make_raw_meeting(...)]},
            failures={"broken": "corrupt JSON"},
        )
        build_schedule(specs, settings, now, loader=loader)
    """

    meetings: Dict[str, List[RawMeeting]] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)

    # Track calls
    loaded: List[str] = field(default_factory=list)

    def __call__(self, spec: SourceSpec) -> List[RawMeeting]:
        self.loaded.append(spec.name)
        if spec.name in self.failures:
            raise SourceReadError(spec.name, self.failures[spec.name])
        return list(self.meetings.get(spec.name, []))


class FakeResponse:
    def __init__(self, content: bytes = b"", status_code: int = 200):
        self.content = content
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            import requests

            raise requests.HTTPError(f"{self.status_code} error")


@dataclass
class FakeSession:
    """Stand-in for requests.Session recording fetched URLs."""

    responses: Dict[str, FakeResponse] = field(default_factory=dict)
    fetched: List[tuple] = field(default_factory=list)

    def get(self, url: str, timeout=None) -> FakeResponse:
        self.fetched.append((url, timeout))
        if url not in self.responses:
            import requests

            raise requests.ConnectionError(f"no route to {url}")
        return self.responses[url]
