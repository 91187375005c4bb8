"""Error taxonomy for the meeting pipeline.

Record- and source-level errors are absorbed by the driver; only
FatalPipelineError escapes a run.
"""
from __future__ import annotations

from core.cli_errors import ExitCode


class PipelineError(Exception):
    """Base class for pipeline errors."""

    code = ExitCode.ERROR


class RecordParseError(PipelineError):
    """A single raw record could not be normalized (bad start, bad RRULE)."""


class SourceReadError(PipelineError):
    """A raw source is missing, unreadable or not decodable."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source


class FatalPipelineError(PipelineError):
    """The run cannot produce artifacts (all sources failed, output unwritable)."""
