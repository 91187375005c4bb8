"""Record normalization.

One total function per source shape (ICS VEVENT map, scraper JSON object),
both converging on RawMeeting. Batches isolate failures per record.
"""
from __future__ import annotations

import datetime as _dt
import logging
import re
from typing import Any, Callable, Iterable, List, Mapping, Optional, Tuple, Union

from core.date_utils import normalize_day, normalize_days, weekday_code
from core.text_utils import collapse_ws, unescape_ics_text

from .errors import RecordParseError
from .extract import extract
from .ics import VEvent
from .model import RawMeeting, RecurrenceRule, SourceSpec

LOG = logging.getLogger(__name__)

RE_ICS_DATETIME = re.compile(r"(\d{4})(\d{2})(\d{2})T(\d{2})(\d{2})(\d{2})Z?")
RE_TZID = re.compile(r"(?:^|;)TZID=\"?([^;:\"]+)\"?", re.I)
RE_BYDAY_CODE = re.compile(r"[+-]?\d{0,2}(SU|MO|TU|WE|TH|FR|SA)")

RecordT = Union[VEvent, Mapping[str, Any]]


def parse_ics_datetime(value: Any) -> Tuple[_dt.datetime, Optional[str]]:
    """Parse a basic-form ICS local datetime into (naive datetime, tzid).

    Accepts an optional 'PROP;PARAM=VALUE:' prefix. The TZID parameter is
    reported but not applied: times stay naive wall-clock.
    """
    if value is None:
        raise RecordParseError("missing datetime")
    text = str(value).strip()
    tzid = None
    if ":" in text:
        prefix, text = text.rsplit(":", 1)
        m = RE_TZID.search(prefix)
        if m:
            tzid = m.group(1).strip()
    m = RE_ICS_DATETIME.fullmatch(text.strip())
    if not m:
        raise RecordParseError(f"unparseable datetime: {value!r}")
    try:
        parsed = _dt.datetime(*(int(g) for g in m.groups()))
    except ValueError as exc:
        raise RecordParseError(f"invalid datetime {value!r}: {exc}") from exc
    return parsed, tzid


def _optional_datetime(value: Any, record_id: str) -> Optional[_dt.datetime]:
    if value in (None, ""):
        return None
    try:
        return parse_ics_datetime(value)[0]
    except RecordParseError as exc:
        LOG.debug("Ignoring end time for %s: %s", record_id, exc)
        return None


def parse_byday(codes: Iterable[str]) -> frozenset:
    out = set()
    for raw in codes:
        tok = str(raw).strip().upper()
        if not tok:
            continue
        m = RE_BYDAY_CODE.fullmatch(tok)
        if not m:
            raise RecordParseError(f"invalid BYDAY code: {raw!r}")
        out.add(m.group(1))
    return frozenset(out)


def parse_rrule(value: Optional[str], anchor: _dt.datetime) -> Optional[RecurrenceRule]:
    """Parse an RRULE value; only FREQ=WEEKLY recurs.

    A weekly rule without BYDAY repeats on the anchor's weekday. Other
    frequencies are treated as a single occurrence.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text.upper().startswith("RRULE:"):
        text = text[6:]
    parts = {}
    for part in text.split(";"):
        if not part.strip():
            continue
        key, sep, val = part.partition("=")
        if not sep:
            raise RecordParseError(f"malformed RRULE part: {part!r}")
        parts[key.strip().upper()] = val.strip()
    freq = parts.get("FREQ", "").upper()
    if not freq:
        raise RecordParseError(f"RRULE without FREQ: {value!r}")
    if freq != "WEEKLY":
        return None
    byday = parse_byday(parts.get("BYDAY", "").split(","))
    return RecurrenceRule(byday=byday or frozenset([weekday_code(anchor)]))


def _json_recurrence(record: Mapping[str, Any], anchor: _dt.datetime, source: SourceSpec) -> Optional[RecurrenceRule]:
    if record.get("rrule"):
        return parse_rrule(str(record["rrule"]), anchor)
    days = record.get("byday") or record.get("days")
    if days:
        if isinstance(days, str):
            codes = normalize_days(days)
        else:
            codes = [normalize_day(str(d)) or str(d) for d in days]
        byday = parse_byday(codes)
        if not byday:
            raise RecordParseError(f"no weekdays in {days!r}")
        return RecurrenceRule(byday=byday)
    repeat = str(record.get("repeat") or record.get("recurrence") or "").strip().lower()
    if repeat == "weekly" or (not repeat and source.default_weekly):
        return RecurrenceRule(byday=frozenset([weekday_code(anchor)]))
    return None


def _first_text(record: Mapping[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = record.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def normalize_ics_event(event: RecordT, source: SourceSpec, index: int = 0) -> RawMeeting:
    """Map one VEVENT property map onto a RawMeeting."""
    raw_desc = unescape_ics_text(event.get("DESCRIPTION") or "")
    location = unescape_ics_text(event.get("LOCATION") or "").strip()
    uid = unescape_ics_text(event.get("UID") or "").strip() or str(index)
    meeting_id = f"{source.name}_{uid}"

    if isinstance(event, VEvent):
        for prop in ("DTSTART", "RRULE"):
            problem = event.error_for(prop)
            if problem:
                raise RecordParseError(f"invalid {prop}: {problem}")

    start, tzid = parse_ics_datetime(event.get("DTSTART"))
    if isinstance(event, VEvent):
        tzid = event.param("DTSTART", "TZID") or tzid
    end = _optional_datetime(event.get("DTEND"), meeting_id)
    rule = parse_rrule(event.get("RRULE"), start)

    return RawMeeting(
        id=meeting_id,
        title=unescape_ics_text(event.get("SUMMARY") or "").strip() or source.default_title,
        start_anchor=start,
        end_anchor=end,
        description_text=collapse_ws(raw_desc),
        location_text=location,
        recurrence_rule=rule,
        fields=extract(raw_desc, location),
        program=source.program_tag,
        tzid=tzid,
    )


def normalize_json_record(record: Mapping[str, Any], source: SourceSpec, index: int = 0) -> RawMeeting:
    """Map one scraper JSON object onto a RawMeeting."""
    if not isinstance(record, Mapping):
        raise RecordParseError(f"record {index} is not an object")
    raw_desc = unescape_ics_text(str(record.get("description") or ""))
    location = str(record.get("location") or "").strip()
    uid = _first_text(record, "uid", "id") or f"meeting_{index}"
    meeting_id = f"{source.name}_{uid}"

    start, tzid = parse_ics_datetime(record.get("start"))
    end = _optional_datetime(record.get("end"), meeting_id)

    return RawMeeting(
        id=meeting_id,
        title=_first_text(record, "summary", "name", "title") or source.default_title,
        start_anchor=start,
        end_anchor=end,
        description_text=collapse_ws(raw_desc),
        location_text=location,
        recurrence_rule=_json_recurrence(record, start, source),
        fields=extract(raw_desc, location),
        program=source.program_tag,
        tzid=tzid,
    )


def normalize_batch(
    records: Iterable[RecordT],
    source: SourceSpec,
    normalize_fn: Callable[[Any, SourceSpec, int], RawMeeting],
) -> List[RawMeeting]:
    """Normalize every record, skipping (and logging) the ones that fail."""
    out: List[RawMeeting] = []
    for index, record in enumerate(records):
        try:
            out.append(normalize_fn(record, source, index))
        except (RecordParseError, TypeError, ValueError, AttributeError) as exc:
            LOG.warning("Skipping record %d from %s: %s", index, source.name, exc)
    return out
