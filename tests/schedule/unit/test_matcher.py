"""Tests for day/time matching (pure, no store access)."""

from datetime import datetime, timedelta, timezone

import pytest

from weeklybot.schedule.matcher import (
    LocalMoment,
    MatchResult,
    TimeWindowMatcher,
    matches,
    minute_distance,
)
from weeklybot.schedule.models import NotificationRule, TimeOfDay, Weekday


def _rule(day=Weekday.MONDAY, time="09:30:00", rule_id="r1"):
    return NotificationRule(
        id=rule_id,
        message="hello",
        day_of_week=Weekday.parse(day),
        time_of_day=TimeOfDay.parse(time),
    )


# ============================================================================
# LocalMoment
# ============================================================================


class TestLocalMoment:
    def test_converts_utc_to_reference_timezone(self):
        # Monday 00:30 UTC is Monday 09:30 in UTC+9
        now = datetime(2026, 10, 19, 0, 30, tzinfo=timezone.utc)
        moment = LocalMoment.from_datetime(now, utc_offset_hours=9)
        assert moment.day is Weekday.MONDAY
        assert moment.day_name == "monday"
        assert moment.time == TimeOfDay(9, 30, 0)

    def test_day_rolls_over_with_offset(self):
        # Sunday 20:00 UTC is already Monday 05:00 in UTC+9
        now = datetime(2026, 10, 18, 20, 0, tzinfo=timezone.utc)
        moment = LocalMoment.from_datetime(now, utc_offset_hours=9)
        assert moment.day is Weekday.MONDAY
        assert moment.time == TimeOfDay(5, 0, 0)

    def test_non_utc_input_is_normalized(self):
        now = datetime(2026, 10, 19, 9, 30, tzinfo=timezone(timedelta(hours=9)))
        moment = LocalMoment.from_datetime(now, utc_offset_hours=0)
        assert moment.time == TimeOfDay(0, 30, 0)

    def test_naive_datetime_rejected(self):
        with pytest.raises(ValueError):
            LocalMoment.from_datetime(datetime(2026, 10, 19, 0, 30))


# ============================================================================
# matches(): day
# ============================================================================


class TestDayMatch:
    @pytest.mark.parametrize("rule_day", [1, "1", "monday", "Monday", " MONDAY "])
    def test_numeric_and_name_forms_match(self, rule_day):
        result = matches(_rule(day=rule_day), Weekday.MONDAY, "monday", TimeOfDay(9, 30))
        assert result.day_match is True

    @pytest.mark.parametrize("rule_day", list(Weekday))
    def test_every_other_day_does_not_match(self, rule_day):
        for now_day in Weekday:
            result = matches(_rule(day=rule_day), now_day, now_day.day_name, TimeOfDay(9, 30))
            assert result.day_match is (rule_day is now_day)

    def test_name_comparison_is_case_insensitive(self):
        result = matches(_rule(day="friday"), 0, "  FRIDAY ", TimeOfDay(9, 30))
        assert result.day_match is True

    def test_plain_int_day_accepted(self):
        result = matches(_rule(day="wednesday"), 3, "", TimeOfDay(9, 30))
        assert result.day_match is True


# ============================================================================
# matches(): minute distance
# ============================================================================


class TestMinuteDistance:
    def test_zero_when_equal(self):
        assert minute_distance(TimeOfDay(9, 30), TimeOfDay(9, 30, 59)) == 0

    def test_symmetric(self):
        a, b = TimeOfDay(9, 30), TimeOfDay(9, 45)
        assert minute_distance(a, b) == minute_distance(b, a) == 15

    def test_same_day_distance_does_not_wrap_midnight(self):
        """23:58 vs 00:02 is treated as 1436 minutes apart by default."""
        assert minute_distance(TimeOfDay(23, 58), TimeOfDay(0, 2)) == 1436

    def test_wrap_midnight_opt_in(self):
        assert minute_distance(TimeOfDay(23, 58), TimeOfDay(0, 2), wrap_midnight=True) == 4

    def test_wrap_midnight_leaves_short_distances_alone(self):
        assert minute_distance(TimeOfDay(9, 0), TimeOfDay(9, 10), wrap_midnight=True) == 10

    def test_matches_reports_distance(self):
        result = matches(_rule(time="09:30:00"), Weekday.MONDAY, "monday", TimeOfDay(9, 42, 30))
        assert result == MatchResult(day_match=True, minute_distance=12)


# ============================================================================
# TimeWindowMatcher
# ============================================================================


class TestTimeWindowMatcher:
    def _moment(self, hh, mm, day=Weekday.MONDAY):
        return LocalMoment(day=day, day_name=day.day_name, time=TimeOfDay(hh, mm))

    def test_candidate_at_tolerance_boundary(self):
        matcher = TimeWindowMatcher(tolerance_minutes=15)
        result = matcher.match(_rule(time="09:30"), self._moment(9, 45))
        assert result.minute_distance == 15
        assert matcher.is_candidate(result) is True

    def test_not_candidate_past_tolerance(self):
        matcher = TimeWindowMatcher(tolerance_minutes=15)
        result = matcher.match(_rule(time="09:30"), self._moment(9, 46))
        assert matcher.is_candidate(result) is False

    def test_twenty_minutes_ahead_is_never_candidate(self):
        matcher = TimeWindowMatcher(tolerance_minutes=15)
        result = matcher.match(_rule(time="09:50"), self._moment(9, 30))
        assert result.minute_distance == 20
        assert matcher.is_candidate(result) is False

    def test_wrong_day_is_not_candidate(self):
        matcher = TimeWindowMatcher(tolerance_minutes=15)
        result = matcher.match(_rule(time="09:30"), self._moment(9, 30, day=Weekday.TUESDAY))
        assert matcher.is_candidate(result) is False

    def test_tolerance_is_configurable(self):
        matcher = TimeWindowMatcher(tolerance_minutes=1)
        assert matcher.is_candidate(matcher.match(_rule(time="09:30"), self._moment(9, 31)))
        assert not matcher.is_candidate(matcher.match(_rule(time="09:30"), self._moment(9, 32)))

    def test_wrap_midnight_candidate_across_day_boundary_requires_same_day(self):
        """Wrapping fixes the distance only; the day must still match."""
        matcher = TimeWindowMatcher(tolerance_minutes=15, wrap_midnight=True)
        result = matcher.match(_rule(time="23:58"), self._moment(0, 2))
        assert result.minute_distance == 4
        assert matcher.is_candidate(result) is True
        other_day = matcher.match(_rule(time="23:58"), self._moment(0, 2, day=Weekday.TUESDAY))
        assert matcher.is_candidate(other_day) is False
