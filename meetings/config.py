"""Pipeline configuration.

Settings come from a YAML file (see config/meetings.yaml) and can be
overridden per run from the CLI. Relative source paths resolve against the
config file's directory.
"""
from __future__ import annotations

import dataclasses
import datetime as _dt
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from core.cli_errors import ConfigError
from core.constants import (
    DEFAULT_DESCRIPTION_LIMIT,
    DEFAULT_HORIZON_DAYS,
    DEFAULT_MAX_OCCURRENCES,
    DEFAULT_TITLE,
    DEFAULT_TITLE_LIMIT,
    DEFAULT_WINDOW_DAYS,
)
from core.yamlio import load_config

from .model import SOURCE_KINDS, SourceSpec

LOG = logging.getLogger(__name__)

_INT_KEYS = ("window_days", "horizon_days", "max_occurrences", "title_limit", "description_limit")


@dataclass
class PipelineSettings:
    sources: List[SourceSpec] = field(default_factory=list)
    # IANA zone used to stamp offsets on output; None keeps naive wall-clock
    timezone: Optional[str] = None
    window_days: int = DEFAULT_WINDOW_DAYS
    horizon_days: int = DEFAULT_HORIZON_DAYS
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES
    title_limit: int = DEFAULT_TITLE_LIMIT
    description_limit: int = DEFAULT_DESCRIPTION_LIMIT
    full_path: Optional[Path] = None
    compact_path: Optional[Path] = None
    summary_path: Optional[Path] = None

    def tzinfo(self) -> Optional[_dt.tzinfo]:
        return resolve_timezone(self.timezone)

    def with_overrides(self, **overrides: Any) -> "PipelineSettings":
        """Copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        updated = dataclasses.replace(self, **changes)
        updated.validate()
        return updated

    def validate(self) -> None:
        for key in _INT_KEYS:
            value = getattr(self, key)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ConfigError(f"{key} must be a non-negative integer, got {value!r}")
        resolve_timezone(self.timezone)
        if self.horizon_days < self.window_days:
            LOG.warning(
                "horizon_days (%d) is shorter than window_days (%d); the window end will be sparse",
                self.horizon_days,
                self.window_days,
            )


def resolve_timezone(name: Optional[str]) -> Optional[_dt.tzinfo]:
    if not name:
        return None
    from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

    try:
        return ZoneInfo(str(name))
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Unknown timezone: {name}") from exc


def _resolve_location(value: str, base_dir: Optional[Path]) -> str:
    if value.lower().startswith(("http://", "https://")):
        return value
    p = Path(value).expanduser()
    if not p.is_absolute() and base_dir is not None:
        p = base_dir / p
    return str(p)


def source_from_dict(
    entry: Dict[str, Any],
    base_dir: Optional[Path] = None,
    default_title: str = DEFAULT_TITLE,
) -> SourceSpec:
    if not isinstance(entry, dict):
        raise ConfigError(f"Source entries must be mappings, got {entry!r}")
    name = str(entry.get("name") or "").strip()
    if not name:
        raise ConfigError("Source entry missing 'name'")
    location = entry.get("path") or entry.get("url")
    if not location:
        raise ConfigError(f"Source '{name}' needs a 'path' or 'url'")
    kind = str(entry.get("kind") or "auto").strip().lower()
    if kind not in SOURCE_KINDS:
        raise ConfigError(f"Source '{name}' has unknown kind '{kind}'", hint=f"Use one of {', '.join(SOURCE_KINDS)}")
    cap = entry.get("max_occurrences")
    if cap is not None and (not isinstance(cap, int) or isinstance(cap, bool) or cap < 0):
        raise ConfigError(f"Source '{name}' max_occurrences must be a non-negative integer, got {cap!r}")
    return SourceSpec(
        name=name,
        location=_resolve_location(str(location), base_dir),
        kind=kind,
        program=entry.get("program") or None,
        default_title=str(entry.get("default_title") or default_title),
        default_weekly=bool(entry.get("default_weekly", False)),
        max_occurrences=cap,
    )


def settings_from_dict(data: Dict[str, Any], base_dir: Optional[Path] = None) -> PipelineSettings:
    raw_sources = data.get("sources") or []
    if not isinstance(raw_sources, list):
        raise ConfigError("'sources' must be a list")
    default_title = str(data.get("default_title") or DEFAULT_TITLE)
    sources = [source_from_dict(entry, base_dir, default_title) for entry in raw_sources]
    names = [s.name for s in sources]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ConfigError(f"Duplicate source names: {', '.join(dupes)}")

    outputs = data.get("outputs") or {}
    if not isinstance(outputs, dict):
        raise ConfigError("'outputs' must be a mapping")

    def _out(key: str) -> Optional[Path]:
        value = outputs.get(key)
        if not value:
            return None
        p = Path(str(value)).expanduser()
        return p if p.is_absolute() or base_dir is None else base_dir / p

    kwargs: Dict[str, Any] = {}
    for key in _INT_KEYS:
        if data.get(key) is not None:
            kwargs[key] = data[key]
    settings = PipelineSettings(
        sources=sources,
        timezone=data.get("timezone") or None,
        full_path=_out("full"),
        compact_path=_out("compact"),
        summary_path=_out("summary"),
        **kwargs,
    )
    settings.validate()
    return settings


def load_settings(path: str) -> PipelineSettings:
    """Load and validate settings from a YAML config file."""
    data = load_config(path, required=True)
    return settings_from_dict(data, base_dir=Path(path).resolve().parent)
