"""Tests for recurrence rules."""

from datetime import date, datetime, time
from zoneinfo import ZoneInfo

import pytest

from domains.reminders.recurrence import (
    due_timestamps_on,
    is_due_on,
    is_in_range,
    occurrences_on,
    upcoming_occurrences,
)
from domains.reminders.types import Frequency, Notice


class TestDateRange:
    """Test start/end date window."""

    def test_before_start_not_in_range(self, make_medication):
        reminder = make_medication(start_date=date(2024, 3, 1))
        assert is_in_range(reminder, date(2024, 2, 29)) is False
        assert is_in_range(reminder, date(2024, 3, 1)) is True

    def test_end_date_is_inclusive(self, make_medication):
        reminder = make_medication(start_date=date(2024, 3, 1), end_date=date(2024, 3, 5))
        assert is_due_on(reminder, date(2024, 3, 5)) is True
        assert is_due_on(reminder, date(2024, 3, 6)) is False

    def test_open_ended(self, make_medication):
        reminder = make_medication(start_date=date(2024, 3, 1))
        assert is_due_on(reminder, date(2030, 1, 1)) is True


class TestFrequency:
    """Test daily, weekly and monthly recurrence."""

    def test_daily_every_day(self, make_medication):
        reminder = make_medication(frequency=Frequency.DAILY)
        assert all(is_due_on(reminder, date(2024, 3, d)) for d in range(1, 32))

    def test_weekly_same_weekday_only(self, make_medication):
        reminder = make_medication(frequency=Frequency.WEEKLY, start_date=date(2024, 1, 1))
        assert is_due_on(reminder, date(2024, 1, 1)) is True
        assert is_due_on(reminder, date(2024, 1, 8)) is True
        assert is_due_on(reminder, date(2024, 1, 9)) is False
        assert is_due_on(reminder, date(2024, 2, 26)) is True

    def test_monthly_same_day_of_month(self, make_medication):
        reminder = make_medication(frequency=Frequency.MONTHLY, start_date=date(2024, 1, 15))
        assert is_due_on(reminder, date(2024, 2, 15)) is True
        assert is_due_on(reminder, date(2024, 2, 16)) is False

    def test_monthly_skips_short_months(self, make_medication):
        reminder = make_medication(frequency=Frequency.MONTHLY, start_date=date(2024, 1, 31))
        assert is_due_on(reminder, date(2024, 2, 29)) is False
        assert is_due_on(reminder, date(2024, 3, 31)) is True
        assert is_due_on(reminder, date(2024, 4, 30)) is False

    def test_unknown_frequency_raises(self, make_medication):
        reminder = make_medication()
        reminder.frequency = "hourly"
        with pytest.raises(ValueError):
            is_due_on(reminder, date(2024, 3, 2))


class TestOccurrencesOn:
    """Test concrete occurrences for a day."""

    def test_one_occurrence_per_time(self, make_medication):
        reminder = make_medication(times=["20:00", "08:00"])
        occurrences = occurrences_on(reminder, date(2024, 3, 10))

        assert [o.due_at for o in occurrences] == [
            datetime(2024, 3, 10, 8, 0),
            datetime(2024, 3, 10, 20, 0),
        ]
        assert str(occurrences[0].key) == "med-1:2024-03-10:08:00"
        assert occurrences[0].notice == Notice.DOSE

    def test_not_due_day_is_empty(self, make_medication):
        reminder = make_medication(start_date=date(2024, 3, 1))
        assert occurrences_on(reminder, date(2024, 2, 1)) == []

    def test_tz_attached(self, make_medication):
        london = ZoneInfo("Europe/London")
        occurrence = occurrences_on(make_medication(), date(2024, 3, 10), tz=london)[0]
        assert occurrence.due_at.tzinfo is london

    def test_due_timestamps(self, make_medication):
        reminder = make_medication(times=["08:00", "12:30"])
        assert due_timestamps_on(reminder, date(2024, 3, 10)) == [
            datetime(2024, 3, 10, 8, 0),
            datetime(2024, 3, 10, 12, 30),
        ]


class TestAppointments:
    """Test appointment advance and start notices."""

    def test_advance_and_start_on_same_day(self, make_appointment):
        occurrences = occurrences_on(make_appointment(), date(2024, 3, 10))

        assert [(o.notice, o.due_at) for o in occurrences] == [
            (Notice.ADVANCE, datetime(2024, 3, 10, 12, 0)),
            (Notice.START, datetime(2024, 3, 10, 14, 0)),
        ]
        assert str(occurrences[0].key) == "appt-1:appointment:2024-03-10T14:00:advance"

    def test_advance_on_previous_day(self, make_appointment):
        reminder = make_appointment(reminder_advance_hours=24)

        previous = occurrences_on(reminder, date(2024, 3, 9))
        assert [o.notice for o in previous] == [Notice.ADVANCE]
        assert previous[0].due_at == datetime(2024, 3, 9, 14, 0)
        assert [o.notice for o in occurrences_on(reminder, date(2024, 3, 10))] == [Notice.START]

    def test_no_advance_only_start(self, make_appointment):
        reminder = make_appointment(reminder_advance_hours=None)
        assert [o.notice for o in occurrences_on(reminder, date(2024, 3, 10))] == [Notice.START]

    def test_other_days_empty(self, make_appointment):
        assert occurrences_on(make_appointment(), date(2024, 3, 11)) == []

    def test_without_appointment_date_uses_recurrence(self, make_appointment):
        reminder = make_appointment(appointment_date=None)
        occurrences = occurrences_on(reminder, date(2024, 3, 5))
        assert [o.notice for o in occurrences] == [Notice.DOSE]
        assert occurrences[0].due_at == datetime(2024, 3, 5, 14, 0)


class TestUpcomingOccurrences:
    """Test the pre-scheduling window."""

    def test_window_is_exclusive_inclusive(self, make_medication):
        reminder = make_medication(times=["08:00", "20:00"])
        found = upcoming_occurrences(
            reminder,
            after=datetime(2024, 3, 10, 8, 0),
            until=datetime(2024, 3, 12, 8, 0),
        )
        assert [o.due_at for o in found] == [
            datetime(2024, 3, 10, 20, 0),
            datetime(2024, 3, 11, 8, 0),
            datetime(2024, 3, 11, 20, 0),
            datetime(2024, 3, 12, 8, 0),
        ]

    def test_respects_end_date(self, make_medication):
        reminder = make_medication(end_date=date(2024, 3, 11))
        found = upcoming_occurrences(reminder, datetime(2024, 3, 10, 0, 0), datetime(2024, 3, 20, 0, 0))
        assert [o.key.day for o in found] == [date(2024, 3, 10), date(2024, 3, 11)]

    def test_empty_window(self, make_medication):
        now = datetime(2024, 3, 10, 9, 0)
        assert upcoming_occurrences(make_medication(), now, now) == []

    def test_appointment_notices_in_window(self, make_appointment):
        found = upcoming_occurrences(
            make_appointment(),
            after=datetime(2024, 3, 10, 13, 0),
            until=datetime(2024, 3, 17, 13, 0),
        )
        assert [o.notice for o in found] == [Notice.START]
        assert found[0].key.appointment_at == datetime(2024, 3, 10, 14, 0)

    def test_starts_no_earlier_than_start_date(self, make_medication):
        reminder = make_medication(start_date=date(2024, 3, 12), times=[time(9, 0)])
        found = upcoming_occurrences(reminder, datetime(2024, 3, 10, 0, 0), datetime(2024, 3, 13, 0, 0))
        assert [o.due_at for o in found] == [datetime(2024, 3, 12, 9, 0)]
