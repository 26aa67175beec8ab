from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from conftest import local, utc
from quizboard.errors import ValidationError
from quizboard.rotation import RotationSchedule


@pytest.fixture
def schedule():
    return RotationSchedule("Asia/Ho_Chi_Minh", 8)


def test_reset_hour_splits_adjacent_windows(schedule):
    before = schedule.window_at(local(2024, 3, 14, 7, 59))
    after = schedule.window_at(local(2024, 3, 14, 8, 1))
    assert before.start == local(2024, 3, 13, 8, 0)
    assert after.start == local(2024, 3, 14, 8, 0)
    assert before.end == after.start


def test_window_start_inclusive_end_exclusive(schedule):
    window = schedule.window_at(local(2024, 3, 14, 12, 0))
    assert window.contains(window.start)
    assert window.contains(window.end - timedelta(microseconds=1))
    assert not window.contains(window.end)
    assert schedule.window_at(window.end).start == window.end


def test_window_is_24_hours(schedule):
    window = schedule.window_at(local(2024, 3, 14, 23, 30))
    assert window.end - window.start == timedelta(hours=24)
    assert window.next_reset == window.end


def test_same_instant_in_other_zones_maps_to_same_window(schedule):
    instant = local(2024, 3, 14, 9, 0)
    assert schedule.window_at(instant) == schedule.window_at(instant.astimezone(timezone.utc))
    assert schedule.window_at(instant) == schedule.window_at(instant.astimezone(ZoneInfo("America/New_York")))


def test_naive_input_is_read_as_utc(schedule):
    # 01:00 UTC is 08:00 in UTC+7
    window = schedule.window_at(datetime(2024, 3, 14, 1, 0))
    assert window.start == local(2024, 3, 14, 8, 0)
    assert window.contains(datetime(2024, 3, 14, 1, 0))


def test_windows_stay_contiguous_across_dst():
    schedule = RotationSchedule("America/New_York", 8)
    # clocks spring forward on 2024-03-10
    window = schedule.window_at(datetime(2024, 3, 9, 12, 0, tzinfo=ZoneInfo("America/New_York")))
    assert window.start_utc == utc(2024, 3, 9, 13, 0)
    assert window.end_utc == utc(2024, 3, 10, 12, 0)
    assert window.end_utc - window.start_utc == timedelta(hours=23)

    following = schedule.window_at(window.end)
    assert following.start == window.end
    # 08:30 EDT is after the reset, so it belongs to the next window only
    instant = utc(2024, 3, 10, 12, 30)
    assert not window.contains(instant)
    assert following.contains(instant)
    assert schedule.window_at(instant) == following


def test_window_is_25_hours_when_clocks_fall_back():
    schedule = RotationSchedule("America/New_York", 8)
    window = schedule.window_at(datetime(2024, 11, 2, 12, 0, tzinfo=ZoneInfo("America/New_York")))
    assert window.end_utc - window.start_utc == timedelta(hours=25)
    assert schedule.window_at(window.end).start == window.end


def test_time_until_reset(schedule):
    assert schedule.time_until_reset(local(2024, 3, 14, 10, 0)) == "22h 0m"
    assert schedule.time_until_reset(local(2024, 3, 15, 7, 37)) == "23m"
    assert schedule.time_until_reset(local(2024, 3, 15, 7, 59, 30)) == "0m"
    assert schedule.time_until_reset(local(2024, 3, 15, 8, 0)) == "24h 0m"


def test_invalid_reset_hour():
    with pytest.raises(ValueError):
        RotationSchedule("UTC", 24)


def test_period_start(schedule):
    wednesday = local(2024, 3, 13, 10, 0)
    assert schedule.period_start("all-time", wednesday) is None
    assert schedule.period_start("this-week", wednesday) == local(2024, 3, 11, 0, 0)
    assert schedule.period_start("this-month", wednesday) == local(2024, 3, 1, 0, 0)
    # Monday itself starts the week
    assert schedule.period_start("this-week", local(2024, 3, 11, 0, 5)) == local(2024, 3, 11, 0, 0)


def test_period_start_rejects_unknown_filter(schedule):
    with pytest.raises(ValidationError):
        schedule.period_start("this-year", local(2024, 3, 13, 10, 0))
