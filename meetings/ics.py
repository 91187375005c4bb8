"""ICS calendar reading.

Splits calendar text into VEVENT property maps using icalendar for the
content-line grammar (unfolding, parameters, nesting). Values are kept in
their serialized ICS form so the normalizer applies one datetime and text
grammar to ICS and JSON sources alike.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from icalendar import Calendar

LOG = logging.getLogger(__name__)


@dataclass
class VEvent:
    """Properties of one VEVENT block, keyed by upper-cased property name."""

    props: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, Dict[str, str]] = field(default_factory=dict)
    # (property, message) pairs for values icalendar could not decode
    errors: List[Tuple[Optional[str], str]] = field(default_factory=list)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.props.get(name.upper(), default)

    def param(self, name: str, key: str) -> Optional[str]:
        return (self.params.get(name.upper()) or {}).get(key.upper())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.upper() in self.props

    def error_for(self, name: str) -> Optional[str]:
        for prop, message in self.errors:
            if (prop or "").upper() == name.upper():
                return message
        return None

    @classmethod
    def from_component(cls, component: Any) -> "VEvent":
        event = cls(errors=[(p, str(m)) for p, m in getattr(component, "errors", [])])
        for name, value in component.items():
            if isinstance(value, list):
                if not value:
                    continue
                value = value[0]
            key = str(name).upper()
            raw = value.to_ical()
            event.props[key] = raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)
            params = getattr(value, "params", None)
            if params:
                event.params[key] = {str(k).upper(): str(v) for k, v in params.items()}
        return event


def iter_vevents(text: str) -> Iterator[VEvent]:
    """Yield one VEvent per complete VEVENT block.

    Accepts a VCALENDAR or bare VEVENT blocks. Nested components (VALARM)
    are not merged into their event. An unterminated trailing block is
    dropped. Raises ValueError when the text is not parseable as ICS.
    """
    for calendar in Calendar.from_ical(text, multiple=True):
        for component in calendar.walk("VEVENT"):
            event = VEvent.from_component(component)
            if event.errors:
                LOG.debug("VEVENT %s has undecodable values: %s", event.get("UID"), event.errors)
            yield event
