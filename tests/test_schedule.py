import json
from datetime import datetime

import pytest

from streamcraft.exceptions import MalformedSchedule
from streamcraft.utils.schedule import (
    find_slot_conflicts,
    minutes_to_time,
    next_window,
    normalize_schedule,
    parse_schedule,
    time_to_minutes,
    to_iso_instant,
    to_utc_naive,
)


def test_overlapping_slots_are_reported():
    slots = [
        {"startTime": "10:00", "duration": 90},
        {"startTime": "11:00", "duration": 30},
    ]

    conflicts = find_slot_conflicts(slots)

    assert len(conflicts) == 1
    assert "11:30" in conflicts[0]
    assert "11:00" in conflicts[0]


def test_touching_slots_do_not_conflict():
    slots = [
        {"startTime": "10:00", "duration": 60},
        {"startTime": "11:00", "duration": 30},
    ]

    assert find_slot_conflicts(slots) == []


def test_conflicts_are_checked_in_start_order():
    slots = [
        {"startTime": "14:00", "duration": 30},
        {"startTime": "09:00", "duration": 360},
    ]

    assert len(find_slot_conflicts(slots)) == 1


def test_single_slot_never_conflicts():
    assert find_slot_conflicts([{"startTime": "23:00", "duration": 600}]) == []


def test_time_helpers():
    assert time_to_minutes("09:30") == 570
    assert minutes_to_time(570) == "09:30"
    assert minutes_to_time(24 * 60 + 30) == "00:30"


@pytest.mark.parametrize("raw", [None, "", "{not json", "[1, 2]", '{"schedules": "nope"}'])
def test_normalize_always_returns_type_and_slots(raw):
    schedule = normalize_schedule(raw)

    assert schedule["type"]
    assert isinstance(schedule["schedules"], list)


def test_normalize_backfills_blob():
    schedule = normalize_schedule(
        json.dumps({"schedules": [{"startTime": "09:00", "duration": 30}]}),
        scheduled_start_time=datetime(2024, 3, 5, 9, 0)
    )

    assert schedule["type"] == "manual"
    assert schedule["date"] == "2024-03-05"
    assert schedule["schedules"][0]["startTime"] == "09:00"


def test_normalize_synthesizes_once_slot_from_legacy_start_time():
    schedule = normalize_schedule(None, scheduled_start_time=datetime(2024, 1, 1, 9, 15))

    assert schedule["type"] == "once"
    assert schedule["date"] == "2024-01-01"
    assert len(schedule["schedules"]) == 1
    slot = schedule["schedules"][0]
    assert slot["startTime"] == "09:15"
    assert slot["duration"] == 60
    assert slot["id"].startswith("default_")


def test_normalize_malformed_uses_legacy_type():
    schedule = normalize_schedule(
        "{broken",
        legacy_type="scheduled",
        scheduled_start_time=datetime(2024, 1, 1, 9, 0)
    )

    assert schedule == {"type": "daily", "schedules": [], "date": "2024-01-01"}


def test_normalize_malformed_manual_default():
    assert normalize_schedule("{broken", legacy_type="manual") == {
        "type": "manual", "schedules": [], "date": ""
    }


def test_parse_schedule_rejects_non_object():
    with pytest.raises(MalformedSchedule):
        parse_schedule("[]")

    with pytest.raises(MalformedSchedule):
        parse_schedule("not json")


def test_to_utc_naive_converts_offsets():
    assert to_utc_naive("2024-01-01T10:00:00+02:00") == datetime(2024, 1, 1, 8, 0)
    assert to_utc_naive("2024-01-01T10:00:00Z") == datetime(2024, 1, 1, 10, 0)
    assert to_utc_naive(datetime(2024, 1, 1, 10, 0)) == datetime(2024, 1, 1, 10, 0)
    assert to_utc_naive("") is None

    with pytest.raises(ValueError):
        to_utc_naive("yesterday")


def test_to_iso_instant():
    assert to_iso_instant(datetime(2024, 1, 1, 9, 0)) == "2024-01-01T09:00:00.000Z"
    assert to_iso_instant(None) is None


class TestNextWindow:
    slot = {"id": "a", "startTime": "09:00", "duration": 60}

    def test_manual_has_no_window(self):
        assert next_window({"type": "manual", "schedules": [self.slot]}) is None

    def test_once_uses_date(self):
        schedule = {"type": "once", "schedules": [self.slot], "date": "2024-01-01"}

        window = next_window(schedule, now=datetime(2023, 12, 31, 12, 0))

        assert window == (datetime(2024, 1, 1, 9, 0), datetime(2024, 1, 1, 10, 0))

    def test_once_in_the_past(self):
        schedule = {"type": "once", "schedules": [self.slot], "date": "2024-01-01"}

        assert next_window(schedule, now=datetime(2024, 1, 2, 0, 0)) is None

    def test_daily_rolls_over_to_tomorrow(self):
        schedule = {"type": "daily", "schedules": [self.slot]}

        window = next_window(schedule, now=datetime(2024, 1, 1, 10, 30))

        assert window == (datetime(2024, 1, 2, 9, 0), datetime(2024, 1, 2, 10, 0))

    def test_daily_slot_in_progress_is_returned(self):
        schedule = {"type": "daily", "schedules": [self.slot]}

        window = next_window(schedule, now=datetime(2024, 1, 1, 9, 30))

        assert window[0] == datetime(2024, 1, 1, 9, 0)

    def test_weekly_uses_sunday_zero_weekdays(self):
        # 2024-01-01 is a Monday (1)
        slot = dict(self.slot, weekdays=[1])
        schedule = {"type": "weekly", "schedules": [slot]}

        assert next_window(schedule, now=datetime(2024, 1, 1, 8, 0))[0] == datetime(2024, 1, 1, 9, 0)
        assert next_window(schedule, now=datetime(2024, 1, 1, 12, 0))[0] == datetime(2024, 1, 8, 9, 0)

    def test_weekly_sunday(self):
        slot = dict(self.slot, weekdays=[0])
        schedule = {"type": "weekly", "schedules": [slot]}

        assert next_window(schedule, now=datetime(2024, 1, 1, 8, 0))[0] == datetime(2024, 1, 7, 9, 0)
