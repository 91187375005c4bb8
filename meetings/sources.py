"""Raw source loading.

Reads the bytes a scraping collaborator left at a path or URL, decodes them
as ICS or JSON, and normalizes each record. Anything that stops a whole
source from loading surfaces as SourceReadError.
"""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, List, Optional

from core.constants import DEFAULT_REQUEST_TIMEOUT

from .errors import SourceReadError
from .ics import VEvent, iter_vevents
from .model import RawMeeting, SourceSpec
from .normalize import normalize_batch, normalize_ics_event, normalize_json_record

LOG = logging.getLogger(__name__)

RE_BEGIN_VEVENT = re.compile(r"^BEGIN:VEVENT[ \t]*\r?$", re.I | re.M)
RE_END_VEVENT = re.compile(r"^END:VEVENT[ \t]*\r?$", re.I | re.M)


def read_source(spec: SourceSpec, session: Optional[Any] = None) -> bytes:
    """Return the raw bytes for ``spec`` from disk or over HTTP."""
    if spec.is_remote:
        import requests

        getter = session or requests
        try:
            resp = getter.get(spec.location, timeout=DEFAULT_REQUEST_TIMEOUT)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise SourceReadError(spec.name, f"fetch failed: {exc}") from exc
        return resp.content
    path = Path(spec.location)
    try:
        return path.read_bytes()
    except FileNotFoundError as exc:
        raise SourceReadError(spec.name, f"file not found: {path}") from exc
    except OSError as exc:
        raise SourceReadError(spec.name, f"cannot read {path}: {exc}") from exc


def _decode_text(spec: SourceSpec, payload: bytes) -> str:
    try:
        return payload.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise SourceReadError(spec.name, f"not UTF-8 text: {exc}") from exc


def decode_ics(spec: SourceSpec, payload: bytes) -> List[VEvent]:
    text = _decode_text(spec, payload)
    upper = text.upper()
    if "BEGIN:VCALENDAR" not in upper and "BEGIN:VEVENT" not in upper:
        raise SourceReadError(spec.name, "not an ICS calendar")
    begins = len(RE_BEGIN_VEVENT.findall(text))
    if begins != len(RE_END_VEVENT.findall(text)):
        raise SourceReadError(spec.name, "corrupt ICS: unterminated VEVENT")
    try:
        events = list(iter_vevents(text))
    except ValueError as exc:
        raise SourceReadError(spec.name, f"corrupt ICS: {exc}") from exc
    if begins and not events:
        raise SourceReadError(spec.name, f"corrupt ICS: none of {begins} VEVENT blocks parsed")
    return events


def decode_json(spec: SourceSpec, payload: bytes) -> List[Any]:
    """Decode a JSON array of meetings (or a collated {'meetings': [...]})."""
    text = _decode_text(spec, payload)
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, RecursionError) as exc:
        raise SourceReadError(spec.name, f"corrupt JSON: {exc}") from exc
    if isinstance(data, dict) and isinstance(data.get("meetings"), list):
        data = data["meetings"]
    if not isinstance(data, list):
        raise SourceReadError(spec.name, f"expected a JSON array, got {type(data).__name__}")
    return data


def parse_source(spec: SourceSpec, payload: bytes) -> List[RawMeeting]:
    """Decode ``payload`` per the source kind and normalize its records."""
    if spec.resolved_kind() == "ics":
        return normalize_batch(decode_ics(spec, payload), spec, normalize_ics_event)
    return normalize_batch(decode_json(spec, payload), spec, normalize_json_record)


def load_source(spec: SourceSpec, session: Optional[Any] = None) -> List[RawMeeting]:
    meetings = parse_source(spec, read_source(spec, session=session))
    LOG.info("Normalized %d meetings from %s", len(meetings), spec.name)
    return meetings
