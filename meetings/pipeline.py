"""Pipeline driver: sources -> normalize -> expand -> union -> window -> artifacts.

Failures are absorbed at the record level (normalize.normalize_batch) and
the source level (build_schedule); only FatalPipelineError escapes, and it
is raised before any artifact is committed.
"""
from __future__ import annotations

import datetime as _dt
import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from core.constants import DEFAULT_WINDOW_DAYS
from core.date_utils import to_iso_str
from core.pipeline import BaseProducer, RequestConsumer, SafeProcessor

from .config import PipelineSettings
from .errors import FatalPipelineError, SourceReadError
from .model import Occurrence, RawMeeting, SourceSpec
from .recurrence import expand_all
from .sources import load_source
from .window import dedupe, select, to_compact, window_bounds

LOG = logging.getLogger(__name__)

STATUS_SUCCESS = "success"
STATUS_NO_DATA = "no_data"
STATUS_ERROR = "error"

SourceLoader = Callable[[SourceSpec], List[RawMeeting]]


@dataclass
class SourceReport:
    name: str
    status: str
    meetings: int = 0
    occurrences: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "status": self.status,
            "meetings": self.meetings,
            "occurrences": self.occurrences,
        }
        if self.error:
            out["error"] = self.error
        return out


@dataclass
class BuildResult:
    occurrences: List[Occurrence]
    reports: List[SourceReport]
    reference_now: _dt.datetime
    window_end: _dt.datetime

    def statistics(self) -> Dict[str, int]:
        return summarize(self.occurrences)


def summarize(occurrences: Sequence[Occurrence]) -> Dict[str, int]:
    virtual = sum(1 for o in occurrences if o.is_virtual)
    return {"total": len(occurrences), "virtual": virtual, "inPerson": len(occurrences) - virtual}


def build_schedule(
    sources: Sequence[SourceSpec],
    settings: PipelineSettings,
    reference_now: _dt.datetime,
    loader: SourceLoader = load_source,
) -> BuildResult:
    """Run every source through normalize/expand, then window and sort the union.

    A source that cannot be read is reported as 'error' and skipped; the run
    is fatal only when no source could be read at all.
    """
    if not sources:
        raise FatalPipelineError("No sources configured")

    reports: List[SourceReport] = []
    union: List[Occurrence] = []
    for spec in sources:
        try:
            meetings = loader(spec)
        except SourceReadError as exc:
            LOG.error("Skipping source %s: %s", spec.name, exc)
            reports.append(SourceReport(name=spec.name, status=STATUS_ERROR, error=str(exc)))
            continue
        except Exception as exc:
            LOG.exception("Source %s failed unexpectedly", spec.name)
            reports.append(SourceReport(name=spec.name, status=STATUS_ERROR, error=f"{type(exc).__name__}: {exc}"))
            continue
        cap = settings.max_occurrences if spec.max_occurrences is None else spec.max_occurrences
        occurrences = list(expand_all(meetings, reference_now, settings.horizon_days, cap))
        reports.append(
            SourceReport(
                name=spec.name,
                status=STATUS_SUCCESS if meetings else STATUS_NO_DATA,
                meetings=len(meetings),
                occurrences=len(occurrences),
            )
        )
        union.extend(occurrences)

    if all(r.status == STATUS_ERROR for r in reports):
        raise FatalPipelineError(f"All {len(reports)} sources failed to load")

    start, end = window_bounds(reference_now, settings.window_days)
    return BuildResult(
        occurrences=select(dedupe(union), start, end),
        reports=reports,
        reference_now=reference_now,
        window_end=end,
    )


# -----------------------------------------------------------------------------
# Serialization
# -----------------------------------------------------------------------------


def full_payload(occurrences: Iterable[Occurrence], tz: Optional[_dt.tzinfo] = None) -> str:
    return json.dumps([o.to_dict(tz) for o in occurrences], indent=2, ensure_ascii=False)


def compact_payload(
    occurrences: Iterable[Occurrence],
    tz: Optional[_dt.tzinfo] = None,
    title_limit: Optional[int] = None,
    description_limit: Optional[int] = None,
) -> str:
    limits: Dict[str, int] = {}
    if title_limit is not None:
        limits["title_limit"] = title_limit
    if description_limit is not None:
        limits["description_limit"] = description_limit
    records = [to_compact(o, tz, **limits) for o in occurrences]
    return json.dumps(records, separators=(",", ":"), ensure_ascii=False)


def summary_payload(result: BuildResult, generated_at: _dt.datetime, tz: Optional[_dt.tzinfo] = None) -> str:
    doc = {
        "generatedAt": to_iso_str(generated_at, tz),
        "windowEnd": to_iso_str(result.window_end, tz),
        "totalMeetings": len(result.occurrences),
        "sourcesProcessed": len(result.reports),
        "statistics": result.statistics(),
        "sources": [r.to_dict() for r in result.reports],
    }
    return json.dumps(doc, indent=2, ensure_ascii=False)


def commit_files(files: Dict[Path, str]) -> Dict[Path, int]:
    """Write all files or none: stage to temp files, then rename into place.

    Returns the byte size written per path. Any OSError while staging is a
    FatalPipelineError and leaves the destinations untouched.
    """
    staged: List[tuple] = []
    try:
        for path, text in files.items():
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
            staged.append((tmp, path))
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
    except OSError as exc:
        for tmp, _ in staged:
            Path(tmp).unlink(missing_ok=True)
        raise FatalPipelineError(f"Cannot write output: {exc}") from exc

    sizes: Dict[Path, int] = {}
    for tmp, path in staged:
        try:
            os.replace(tmp, path)
        except OSError as exc:
            Path(tmp).unlink(missing_ok=True)
            raise FatalPipelineError(f"Cannot write {path}: {exc}") from exc
        sizes[path] = path.stat().st_size
    return sizes


def write_artifacts(
    result: BuildResult,
    settings: PipelineSettings,
    full_path: Optional[Path],
    compact_path: Optional[Path],
    summary_path: Optional[Path] = None,
    generated_at: Optional[_dt.datetime] = None,
) -> Dict[Path, int]:
    tz = settings.tzinfo()
    files: Dict[Path, str] = {}
    if full_path is not None:
        files[full_path] = full_payload(result.occurrences, tz)
    if compact_path is not None:
        files[compact_path] = compact_payload(
            result.occurrences, tz, settings.title_limit, settings.description_limit
        )
    if summary_path is not None:
        files[summary_path] = summary_payload(result, generated_at or result.reference_now, tz)
    if not files:
        raise FatalPipelineError("No output paths configured")
    return commit_files(files)


def optimize_artifact(
    records: Iterable[Dict[str, Any]],
    reference_now: _dt.datetime,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> List[Occurrence]:
    """Re-window a previously written full artifact."""
    occurrences: List[Occurrence] = []
    for index, rec in enumerate(records):
        try:
            occurrences.append(Occurrence.from_dict(rec))
        except (KeyError, TypeError, ValueError) as exc:
            LOG.warning("Skipping artifact entry %d: %s", index, exc)
    start, end = window_bounds(reference_now, window_days)
    return select(occurrences, start, end)


# -----------------------------------------------------------------------------
# Consumer / processor / producer
# -----------------------------------------------------------------------------


@dataclass
class BuildRequest:
    settings: PipelineSettings
    reference_now: _dt.datetime
    full_path: Optional[Path] = None
    compact_path: Optional[Path] = None
    summary_path: Optional[Path] = None
    sample_size: int = 5


BuildRequestConsumer = RequestConsumer[BuildRequest]


@dataclass
class BuildOutcome:
    result: BuildResult
    written: Dict[Path, int] = field(default_factory=dict)
    sample_size: int = 5


class BuildProcessor(SafeProcessor[BuildRequest, BuildOutcome]):
    """Build the schedule and commit its artifacts."""

    def __init__(self, loader: SourceLoader = load_source) -> None:
        self._loader = loader

    def _process_safe(self, payload: BuildRequest) -> BuildOutcome:
        settings = payload.settings
        result = build_schedule(settings.sources, settings, payload.reference_now, loader=self._loader)
        written = write_artifacts(
            result,
            settings,
            payload.full_path or settings.full_path,
            payload.compact_path or settings.compact_path,
            payload.summary_path or settings.summary_path,
        )
        return BuildOutcome(result=result, written=written, sample_size=payload.sample_size)


def _format_meeting_line(i: int, occ: Occurrence) -> List[str]:
    lines = [
        f"{i}. {occ.title}",
        f"   {occ.start.strftime('%Y-%m-%d %H:%M')}",
        f"   {'Virtual' if occ.is_virtual else 'In-person'}",
    ]
    if occ.conference_id:
        lines.append(f"   Meeting ID: {occ.conference_id}")
    return lines


class BuildProducer(BaseProducer):
    """Print per-source status, statistics and the next few meetings."""

    def _produce_success(self, payload: BuildOutcome, diagnostics: Optional[Dict[str, Any]]) -> None:
        result = payload.result
        lines: List[str] = ["Sources:"]
        for r in result.reports:
            detail = f"{r.meetings} meetings, {r.occurrences} occurrences"
            if r.error:
                detail = r.error
            lines.append(f"- {r.name}: {r.status} ({detail})")
        stats = result.statistics()
        lines.append("Statistics:")
        lines.append(f"- Total meetings: {stats['total']}")
        lines.append(f"- Virtual meetings: {stats['virtual']}")
        lines.append(f"- In-person meetings: {stats['inPerson']}")
        for path, size in payload.written.items():
            lines.append(f"Wrote {path} ({size / 1024:.2f}KB)")
        upcoming = result.occurrences[: payload.sample_size]
        if upcoming:
            lines.append(f"Next {len(upcoming)} meetings:")
            for i, occ in enumerate(upcoming, start=1):
                lines.extend(_format_meeting_line(i, occ))
        self.print_logs(lines)


@dataclass
class OptimizeRequest:
    in_path: Path
    out_path: Path
    settings: PipelineSettings
    reference_now: _dt.datetime


OptimizeRequestConsumer = RequestConsumer[OptimizeRequest]


@dataclass
class OptimizeResult:
    total: int
    kept: int
    in_size: int
    out_size: int
    out_path: Path


class OptimizeProcessor(SafeProcessor[OptimizeRequest, OptimizeResult]):
    """Turn an existing full artifact into a compact one for the window."""

    def _process_safe(self, payload: OptimizeRequest) -> OptimizeResult:
        try:
            records = json.loads(payload.in_path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise FatalPipelineError(f"Input not found: {payload.in_path}") from exc
        except (OSError, json.JSONDecodeError) as exc:
            raise FatalPipelineError(f"Cannot read {payload.in_path}: {exc}") from exc
        if not isinstance(records, list):
            raise FatalPipelineError(f"{payload.in_path} is not a JSON array")
        settings = payload.settings
        kept = optimize_artifact(records, payload.reference_now, settings.window_days)
        text = compact_payload(kept, settings.tzinfo(), settings.title_limit, settings.description_limit)
        sizes = commit_files({payload.out_path: text})
        return OptimizeResult(
            total=len(records),
            kept=len(kept),
            in_size=payload.in_path.stat().st_size,
            out_size=sizes[payload.out_path],
            out_path=payload.out_path,
        )


class OptimizeProducer(BaseProducer):
    def _produce_success(self, payload: OptimizeResult, diagnostics: Optional[Dict[str, Any]]) -> None:
        lines = [
            f"Total meetings loaded: {payload.total}",
            f"Optimized to {payload.kept} meetings",
            f"Original size: {payload.in_size / 1024:.2f}KB",
            f"Optimized size: {payload.out_size / 1024:.2f}KB",
        ]
        if payload.in_size:
            lines.append(f"Size reduction: {(1 - payload.out_size / payload.in_size) * 100:.1f}%")
        lines.append(f"Wrote {payload.out_path}")
        self.print_logs(lines)
