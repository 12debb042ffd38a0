"""Day/time matching of weekly rules against the current moment.

Everything here is pure: no store access, no clock reads. The caller
builds a ``LocalMoment`` once per pass and every rule is compared to it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from weeklybot.schedule.models import NotificationRule, TimeOfDay, Weekday
from weeklybot.utils.helpers import reference_timezone

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class LocalMoment:
    """The current moment expressed in the reference timezone."""

    day: Weekday
    day_name: str
    time: TimeOfDay

    @classmethod
    def from_datetime(cls, now: datetime, utc_offset_hours: int = 9) -> "LocalMoment":
        """Convert an aware instant into weekday/time in the reference timezone."""
        if now.tzinfo is None:
            raise ValueError("now must be timezone-aware")
        local = now.astimezone(reference_timezone(utc_offset_hours))
        day = Weekday.from_datetime(local)
        return cls(day=day, day_name=day.day_name, time=TimeOfDay.from_datetime(local))


@dataclass(frozen=True)
class MatchResult:
    """Outcome of comparing one rule to one moment."""

    day_match: bool
    minute_distance: int


def minute_distance(a: TimeOfDay, b: TimeOfDay, wrap_midnight: bool = False) -> int:
    """Whole-minute distance between two times of day.

    Same-day by default, so 23:58 and 00:02 are 1436 minutes apart. With
    ``wrap_midnight`` the shorter way round the clock is used (4 minutes).
    """
    distance = abs(a.minutes - b.minutes)
    if wrap_midnight:
        distance = min(distance, MINUTES_PER_DAY - distance)
    return distance


def matches(
    rule: NotificationRule,
    now_day: Weekday | int,
    now_day_name: str,
    now_time: TimeOfDay,
    wrap_midnight: bool = False,
) -> MatchResult:
    """Compare a rule's weekly slot to the current day and time."""
    day_match = rule.day_of_week == now_day or (
        rule.day_of_week.day_name == now_day_name.strip().lower()
    )
    return MatchResult(
        day_match=day_match,
        minute_distance=minute_distance(rule.time_of_day, now_time, wrap_midnight),
    )


class TimeWindowMatcher:
    """Applies ``matches`` with a tolerance to decide candidacy."""

    def __init__(self, tolerance_minutes: int = 15, wrap_midnight: bool = False):
        self.tolerance_minutes = tolerance_minutes
        self.wrap_midnight = wrap_midnight

    def match(self, rule: NotificationRule, moment: LocalMoment) -> MatchResult:
        return matches(rule, moment.day, moment.day_name, moment.time, self.wrap_midnight)

    def is_candidate(self, result: MatchResult) -> bool:
        return result.day_match and result.minute_distance <= self.tolerance_minutes
