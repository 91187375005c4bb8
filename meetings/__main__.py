"""Meeting Schedule CLI

Builds the website's meeting artifacts from raw sources:
- build: all configured sources -> full + compact (+ summary) JSON
- parse-ics: one ICS file -> full JSON (expander-level filtering only)
- optimize: existing full JSON -> compact JSON for the display window
- sources / init-config: inspect or scaffold the YAML config

Runs are idempotent: the same sources and --now give the same artifacts.
"""
from __future__ import annotations

import argparse
import datetime as _dt
from pathlib import Path
from typing import List, Optional

from core.cli_errors import NotFoundError, UsageError
from core.cli_framework import CLIApp
from core.constants import COMPACT_FEED_MAX_OCCURRENCES, DEFAULT_HORIZON_DAYS
from core.date_utils import parse_reference_now
from core.pipeline import run_pipeline
from core.yamlio import dump_config

from . import __version__
from .config import PipelineSettings, load_settings
from .model import SourceSpec
from .pipeline import (
    BuildProcessor,
    BuildProducer,
    BuildRequest,
    OptimizeProcessor,
    OptimizeProducer,
    OptimizeRequest,
)

app = CLIApp(
    "meetings",
    "Normalize recovery meeting sources into website schedule artifacts.",
    version=__version__,
)


def _reference_now(args: argparse.Namespace, settings: PipelineSettings) -> _dt.datetime:
    try:
        return parse_reference_now(getattr(args, "now", None), settings.tzinfo())
    except ValueError as exc:
        raise UsageError(f"Invalid --now value: {exc}", hint="Use ISO format, e.g. 2025-08-03T09:00") from exc


def _path_or_none(value: Optional[str]) -> Optional[Path]:
    return Path(value) if value else None


def _input_path(value: str) -> Path:
    path = Path(value)
    if not path.is_file():
        raise NotFoundError(f"Input not found: {path}", hint="Check the --in path")
    return path


@app.command("build", help="Build full and compact artifacts from all configured sources")
@app.argument("--config", required=True, help="YAML config with sources and outputs")
@app.argument("--full", help="Full artifact path (overrides outputs.full)")
@app.argument("--compact", help="Compact artifact path (overrides outputs.compact)")
@app.argument("--summary", help="Summary JSON path (overrides outputs.summary)")
@app.argument("--now", help="Reference time (ISO); default is the current time")
@app.argument("--window-days", type=int, help="Display window in days")
@app.argument("--horizon-days", type=int, help="Recurrence horizon in days")
@app.argument("--max-occurrences", type=int, help="Cap on occurrences per meeting")
@app.argument("--timezone", help="IANA zone stamped on output times (default: naive wall-clock)")
@app.argument("--sample", type=int, default=5, help="Upcoming meetings to print (default 5)")
def cmd_build(args: argparse.Namespace) -> int:
    settings = load_settings(args.config).with_overrides(
        window_days=args.window_days,
        horizon_days=args.horizon_days,
        max_occurrences=args.max_occurrences,
        timezone=args.timezone,
    )
    request = BuildRequest(
        settings=settings,
        reference_now=_reference_now(args, settings),
        full_path=_path_or_none(args.full),
        compact_path=_path_or_none(args.compact),
        summary_path=_path_or_none(args.summary),
        sample_size=max(0, args.sample),
    )
    return run_pipeline(request, BuildProcessor(), BuildProducer())


@app.command("parse-ics", help="Expand one ICS file into a full artifact")
@app.argument("--in", dest="in_path", required=True, help="Input .ics file")
@app.argument("--out", required=True, help="Output JSON path")
@app.argument("--source", default="recovery-dharma", help="Source name used for ids and program tag")
@app.argument("--now", help="Reference time (ISO); default is the current time")
@app.argument("--horizon-days", type=int, default=DEFAULT_HORIZON_DAYS, help=f"Recurrence horizon (default {DEFAULT_HORIZON_DAYS})")
@app.argument("--max-occurrences", type=int, help="Cap on occurrences per meeting")
@app.argument("--timezone", help="IANA zone stamped on output times")
def cmd_parse_ics(args: argparse.Namespace) -> int:
    in_path = _input_path(args.in_path)
    spec = SourceSpec(name=args.source, location=str(in_path), kind="ics")
    settings = PipelineSettings(sources=[spec]).with_overrides(
        horizon_days=args.horizon_days,
        window_days=args.horizon_days,
        max_occurrences=args.max_occurrences,
        timezone=args.timezone,
    )
    request = BuildRequest(
        settings=settings,
        reference_now=_reference_now(args, settings),
        full_path=Path(args.out),
    )
    return run_pipeline(request, BuildProcessor(), BuildProducer())


@app.command("optimize", help="Re-window a full artifact into a compact artifact")
@app.argument("--in", dest="in_path", required=True, help="Full artifact JSON")
@app.argument("--out", required=True, help="Compact artifact JSON")
@app.argument("--config", help="Optional YAML config for limits and timezone")
@app.argument("--now", help="Reference time (ISO); default is the current time")
@app.argument("--window-days", type=int, help="Display window in days")
@app.argument("--timezone", help="IANA zone stamped on output times")
def cmd_optimize(args: argparse.Namespace) -> int:
    base = load_settings(args.config) if args.config else PipelineSettings()
    settings = base.with_overrides(window_days=args.window_days, timezone=args.timezone)
    request = OptimizeRequest(
        in_path=_input_path(args.in_path),
        out_path=Path(args.out),
        settings=settings,
        reference_now=_reference_now(args, settings),
    )
    return run_pipeline(request, OptimizeProcessor(), OptimizeProducer())


@app.command("sources", help="List configured sources")
@app.argument("--config", required=True, help="YAML config with sources")
def cmd_sources(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    if not settings.sources:
        print("No sources configured.")
        return 0
    for spec in settings.sources:
        weekly = " weekly-default" if spec.default_weekly else ""
        print(f"{spec.name}: {spec.resolved_kind()} [{spec.program_tag}]{weekly} <- {spec.location}")
    return 0


STARTER_CONFIG = {
    "timezone": None,
    "window_days": 30,
    "horizon_days": 90,
    "max_occurrences": 200,
    "title_limit": 50,
    "description_limit": 100,
    "outputs": {
        "full": "website/meetings-data.json",
        "compact": "website/meetings-optimized.json",
        "summary": "website/meetings-summary.json",
    },
    "sources": [
        {"name": "recovery-dharma", "path": "resources/dharma_meetings_with_zoom_links.ics", "kind": "ics"},
        {
            "name": "aa-meetings",
            "path": "raw/aa-meetings.json",
            "kind": "json",
            "default_weekly": True,
            "max_occurrences": COMPACT_FEED_MAX_OCCURRENCES,
        },
    ],
}


@app.command("init-config", help="Write a starter YAML config")
@app.argument("--out", default="config/meetings.yaml", help="Config path (default config/meetings.yaml)")
@app.argument("--force", action="store_true", help="Overwrite an existing file")
def cmd_init_config(args: argparse.Namespace) -> int:
    out = Path(args.out)
    if out.exists() and not args.force:
        raise UsageError(f"{out} already exists", hint="Pass --force to overwrite")
    dump_config(str(out), STARTER_CONFIG)
    print(f"Wrote starter config to {out}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Run the CLI."""
    return app.run(argv)


if __name__ == "__main__":
    raise SystemExit(main())
