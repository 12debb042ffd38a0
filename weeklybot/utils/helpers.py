"""Utility functions for weeklybot."""

import os
from datetime import datetime, timedelta, timezone
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Get the weeklybot data directory (~/.weeklybot or WEEKLYBOT_DATA_DIR)."""
    override = (os.environ.get("WEEKLYBOT_DATA_DIR") or "").strip() or None
    return ensure_dir(Path(override) if override else Path.home() / ".weeklybot")


def utc_now() -> datetime:
    """Current instant as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def reference_timezone(utc_offset_hours: int) -> timezone:
    """Fixed-offset timezone rules are written in (UTC+9 by default)."""
    return timezone(timedelta(hours=utc_offset_hours))


def parse_timestamp(value: str | datetime) -> datetime:
    """Parse an ISO timestamp into an aware UTC datetime.

    Naive values are assumed to be UTC (the store writes UTC).
    Raises ValueError if the value is empty or not ISO formatted.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        if not isinstance(value, str) or not value:
            raise ValueError(f"Invalid timestamp: {value!r}")
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def minutes_between(earlier: datetime, later: datetime) -> int:
    """Whole minutes from earlier to later, rounded to nearest."""
    return round((later - earlier).total_seconds() / 60)
