"""Tests for clock-time helpers."""
from datetime import time, timedelta

import pytest

from clinic_scheduling.timeutils import (
    add_minutes, duration_minutes, format_time, from_minutes, overlaps, to_minutes, to_time,
)


class TestToTime:
    def test_parses_hh_mm(self):
        assert to_time("09:30") == time(9, 30)

    def test_parses_hh_mm_ss(self):
        assert to_time("17:00:00") == time(17, 0)

    def test_accepts_timedelta_since_midnight(self):
        assert to_time(timedelta(hours=13, minutes=15)) == time(13, 15)

    def test_passes_time_through(self):
        assert to_time(time(8, 0)) == time(8, 0)

    @pytest.mark.parametrize("value", ["9", "ab:cd", "10:00:00:00", ""])
    def test_rejects_malformed_strings(self, value):
        with pytest.raises(ValueError):
            to_time(value)


class TestMinuteArithmetic:
    def test_round_trip_through_minutes(self):
        assert from_minutes(to_minutes(time(16, 45))) == time(16, 45)

    def test_add_minutes(self):
        assert add_minutes(time(10, 0), 45) == time(10, 45)

    def test_add_minutes_past_midnight_raises(self):
        with pytest.raises(ValueError):
            add_minutes(time(23, 30), 45)

    def test_duration(self):
        assert duration_minutes(time(10, 0), time(10, 45)) == 45

    def test_format_drops_seconds(self):
        assert format_time(time(9, 5, 30)) == "09:05"


class TestOverlaps:
    def test_overlapping(self):
        assert overlaps((600, 645), (630, 660))

    def test_adjacent_intervals_do_not_overlap(self):
        """end1 == start2 is not an overlap."""
        assert not overlaps((600, 645), (645, 700))
        assert not overlaps((645, 700), (600, 645))

    def test_containment(self):
        assert overlaps((540, 1020), (720, 780))
