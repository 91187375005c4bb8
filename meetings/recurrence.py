"""Recurrence expansion: RawMeeting -> concrete Occurrences.

Expansion is a pure generator over (meeting, reference_now, horizon, cap):
calling it again with the same inputs yields the same occurrences.
"""
from __future__ import annotations

import datetime as _dt
from dataclasses import dataclass
from typing import FrozenSet, Iterable, Iterator

from core.constants import DEFAULT_HORIZON_DAYS, DEFAULT_MAX_OCCURRENCES
from core.date_utils import epoch_millis

from .model import Occurrence, RawMeeting


@dataclass(frozen=True)
class ExpansionWindow:
    """Bounds for one expansion run."""

    reference_now: _dt.datetime
    horizon_end: _dt.datetime
    max_occurrences: int

    @classmethod
    def build(cls, reference_now: _dt.datetime, horizon_days: int, max_occurrences: int) -> "ExpansionWindow":
        return cls(
            reference_now=reference_now,
            horizon_end=reference_now + _dt.timedelta(days=horizon_days),
            max_occurrences=max_occurrences,
        )

    def contains(self, start: _dt.datetime) -> bool:
        return self.reference_now <= start <= self.horizon_end


def occurrence_id(raw: RawMeeting, start: _dt.datetime) -> str:
    return f"{raw.id}_{epoch_millis(start)}"


def _make_occurrence(raw: RawMeeting, start: _dt.datetime) -> Occurrence:
    return Occurrence.from_meeting(raw, occurrence_id(raw, start), start, start + raw.duration)


def _expand_weekly(raw: RawMeeting, weekdays: FrozenSet[int], window: ExpansionWindow) -> Iterator[Occurrence]:
    """Walk day by day from the later of anchor and now up to the horizon."""
    time_of_day = raw.start_anchor.time()
    d = max(raw.start_anchor.date(), window.reference_now.date())
    last = window.horizon_end.date()
    emitted = 0
    while d <= last and emitted < window.max_occurrences:
        if d.weekday() in weekdays:
            start = _dt.datetime.combine(d, time_of_day)
            if start >= raw.start_anchor and window.contains(start):
                yield _make_occurrence(raw, start)
                emitted += 1
        d = d + _dt.timedelta(days=1)


def expand(
    raw: RawMeeting,
    reference_now: _dt.datetime,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
) -> Iterator[Occurrence]:
    """Yield the occurrences of ``raw`` within [reference_now, reference_now + horizon_days].

    Non-recurring meetings yield their single anchored occurrence when it
    falls inside the horizon. Weekly meetings keep the anchor's time of day
    and duration, and stop after ``max_occurrences`` instances.
    """
    if max_occurrences <= 0:
        return
    window = ExpansionWindow.build(reference_now, horizon_days, max_occurrences)
    rule = raw.recurrence_rule
    if rule is None:
        if window.contains(raw.start_anchor):
            yield _make_occurrence(raw, raw.start_anchor)
        return
    weekdays = rule.weekdays()
    if not weekdays:
        return
    yield from _expand_weekly(raw, weekdays, window)


def expand_all(
    meetings: Iterable[RawMeeting],
    reference_now: _dt.datetime,
    horizon_days: int = DEFAULT_HORIZON_DAYS,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
) -> Iterator[Occurrence]:
    for raw in meetings:
        yield from expand(raw, reference_now, horizon_days, max_occurrences)
