"""Pydantic models and value types for weekly rules and delivery records."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from enum import IntEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from weeklybot.utils.helpers import parse_timestamp

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?$")


# ============================================================================
# Value types
# ============================================================================


class Weekday(IntEnum):
    """Day of week, 0 = Sunday (the store's numbering)."""

    SUNDAY = 0
    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6

    @property
    def day_name(self) -> str:
        """Canonical lowercase name, e.g. 'monday'."""
        return self.name.lower()

    @classmethod
    def parse(cls, value: Any) -> "Weekday":
        """Normalize a number, numeric string or day name (case-insensitive)."""
        if isinstance(value, Weekday):
            return value
        if isinstance(value, bool):
            raise ValueError(f"Invalid day of week: {value!r}")
        if isinstance(value, int):
            return cls(value)
        if isinstance(value, str):
            text = value.strip().lower()
            if text.isdigit():
                return cls(int(text))
            for day in cls:
                if day.day_name == text:
                    return day
        raise ValueError(f"Invalid day of week: {value!r}")

    @classmethod
    def from_datetime(cls, dt: datetime) -> "Weekday":
        # datetime.weekday() is Monday=0; shift so Sunday=0
        return cls((dt.weekday() + 1) % 7)


@dataclass(frozen=True, order=True)
class TimeOfDay:
    """Wall-clock time in the reference timezone."""

    hour: int
    minute: int
    second: int = 0

    def __post_init__(self) -> None:
        if not (0 <= self.hour <= 23 and 0 <= self.minute <= 59 and 0 <= self.second <= 59):
            raise ValueError(f"Time out of range: {self.hour}:{self.minute}:{self.second}")

    @property
    def minutes(self) -> int:
        """Minutes since midnight (seconds truncated)."""
        return self.hour * 60 + self.minute

    @classmethod
    def parse(cls, value: Any) -> "TimeOfDay":
        """Parse 'HH:MM' or 'HH:MM:SS' (fractional seconds ignored)."""
        if isinstance(value, TimeOfDay):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid time of day: {value!r}")
        m = _TIME_RE.match(value.strip())
        if not m:
            raise ValueError(f"time must be HH:MM[:SS] format, got {value!r}")
        hh, mm, ss = m.groups()
        return cls(int(hh), int(mm), int(ss or 0))

    @classmethod
    def from_datetime(cls, dt: datetime) -> "TimeOfDay":
        return cls(dt.hour, dt.minute, dt.second)

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}:{self.second:02d}"


# ============================================================================
# Store records
# ============================================================================


class NotificationRule(BaseModel):
    """A recurring weekly alert definition (read-only to the engine)."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True, populate_by_name=True)

    id: str
    message: str
    day_of_week: Weekday
    time_of_day: TimeOfDay = Field(alias="time")
    active: bool = Field(True, alias="is_active")
    branch_version: Optional[str] = None
    emoji_this_week: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v: Any) -> str:
        if v is None or str(v).strip() == "":
            raise ValueError("id must not be empty")
        return str(v)

    @field_validator("day_of_week", mode="before")
    @classmethod
    def validate_day(cls, v: Any) -> Weekday:
        return Weekday.parse(v)

    @field_validator("time_of_day", mode="before")
    @classmethod
    def validate_time(cls, v: Any) -> TimeOfDay:
        return TimeOfDay.parse(v)

    def to_row(self) -> dict:
        """Store row representation (column names as in the database)."""
        return {
            "id": self.id,
            "message": self.message,
            "day_of_week": int(self.day_of_week),
            "time": str(self.time_of_day),
            "is_active": self.active,
            "branch_version": self.branch_version,
            "emoji_this_week": self.emoji_this_week,
        }


class DeliveryRecord(BaseModel):
    """Immutable fact: rule ``rule_id`` was sent at ``sent_at`` (UTC)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    rule_id: str = Field(alias="notification_id")
    sent_at: datetime

    @field_validator("rule_id", mode="before")
    @classmethod
    def validate_rule_id(cls, v: Any) -> str:
        return str(v)

    @field_validator("sent_at", mode="before")
    @classmethod
    def validate_sent_at(cls, v: Any) -> datetime:
        return parse_timestamp(v)

    def to_row(self) -> dict:
        return {"notification_id": self.rule_id, "sent_at": self.sent_at.isoformat()}
