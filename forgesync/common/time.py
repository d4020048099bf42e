"""Common time utilities."""

from __future__ import annotations

import datetime as dt
import time


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp for annotations written to state files."""
    return dt.datetime.now(dt.UTC)


def monotonic() -> float:
    """Return a monotonic clock reading in seconds, used for cache expiry."""
    return time.monotonic()
