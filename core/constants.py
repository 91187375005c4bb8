"""Shared constants used across the meeting pipeline.

Collects the tunables that the source readers, the recurrence expander and
the artifact writers all agree on.
"""

from __future__ import annotations

from typing import Tuple

# -----------------------------------------------------------------------------
# HTTP and timeouts
# -----------------------------------------------------------------------------

# Default timeout for HTTP requests: (connect_seconds, read_seconds)
DEFAULT_REQUEST_TIMEOUT: Tuple[int, int] = (10, 30)


# -----------------------------------------------------------------------------
# Datetime formats
# -----------------------------------------------------------------------------

FMT_DATETIME_SEC = "%Y-%m-%dT%H:%M:%S"
FMT_DAY_START = "%Y-%m-%dT00:00:00"


# -----------------------------------------------------------------------------
# Expansion and window defaults
# -----------------------------------------------------------------------------

DEFAULT_DURATION_MINUTES = 60
DEFAULT_WINDOW_DAYS = 30
DEFAULT_HORIZON_DAYS = 90

# Hard caps on occurrences per meeting. The run-wide default, and the
# smaller per-source cap used for scraped weekly JSON feeds.
DEFAULT_MAX_OCCURRENCES = 200
COMPACT_FEED_MAX_OCCURRENCES = 20


# -----------------------------------------------------------------------------
# Compact artifact
# -----------------------------------------------------------------------------

DEFAULT_TITLE_LIMIT = 50
DEFAULT_DESCRIPTION_LIMIT = 100
ELLIPSIS = "..."

DEFAULT_TITLE = "Recovery Meeting"
VIRTUAL_LOCATION_LABEL = "Virtual Meeting"
UNKNOWN_LOCATION_LABEL = "Location TBD"
