"""Recurrence rules - which days a reminder is due and at what moments.

Everything here is a pure function of its arguments. The only clock reads in
the engine happen in the matcher, which passes `now`/`day` in explicitly.

Rules:
- A day is in range iff start_date <= day and (no end_date or day <= end_date)
- DAILY: every in-range day
- WEEKLY: in-range days a whole number of weeks after start_date
- MONTHLY: in-range days sharing start_date's day-of-month. Months without
  that day (anchor 31 in April, 29-31 in February) are skipped.

Appointments with an appointment date have two fixed occurrences instead of a
recurrence: an ADVANCE notice `reminder_advance_hours` before the appointment
and a START notice at the appointment itself. An appointment record without an
appointment date falls back to the time-of-day recurrence like a medication.
"""

from datetime import date, datetime, timedelta, tzinfo
from typing import Optional

from .types import Frequency, Notice, Occurrence, OccurrenceKey, Reminder, ReminderKind


def is_in_range(reminder: Reminder, day: date) -> bool:
    """Check the day falls inside the reminder's start/end window."""
    if day < reminder.start_date:
        return False
    return reminder.end_date is None or day <= reminder.end_date


def is_due_on(reminder: Reminder, day: date) -> bool:
    """Check whether the reminder recurs on this calendar day."""
    if not is_in_range(reminder, day):
        return False

    if reminder.frequency == Frequency.DAILY:
        return True
    if reminder.frequency == Frequency.WEEKLY:
        return (day - reminder.start_date).days % 7 == 0
    if reminder.frequency == Frequency.MONTHLY:
        return day.day == reminder.start_date.day

    raise ValueError(f"Unknown frequency: {reminder.frequency}")


def _has_fixed_appointment(reminder: Reminder) -> bool:
    return reminder.kind == ReminderKind.APPOINTMENT and reminder.appointment_date is not None


def appointment_occurrences(reminder: Reminder, tz: Optional[tzinfo] = None) -> list[Occurrence]:
    """The advance and start notices of an appointment, earliest first."""
    if not _has_fixed_appointment(reminder):
        return []

    appointment_at = reminder.appointment_at.replace(tzinfo=tz)
    occurrences = []

    if reminder.advance is not None:
        occurrences.append(Occurrence(
            key=OccurrenceKey.for_appointment(reminder.id, appointment_at, Notice.ADVANCE),
            due_at=appointment_at - reminder.advance,
        ))

    occurrences.append(Occurrence(
        key=OccurrenceKey.for_appointment(reminder.id, appointment_at, Notice.START),
        due_at=appointment_at,
    ))
    return occurrences


def occurrences_on(reminder: Reminder, day: date, tz: Optional[tzinfo] = None) -> list[Occurrence]:
    """All occurrences of the reminder that fall on `day`.

    Args:
        reminder: Reminder snapshot
        day: Calendar day in the reminder's wall-clock zone
        tz: Zone to attach to the produced timestamps (None = naive)

    Returns:
        Occurrences ordered by due time
    """
    if _has_fixed_appointment(reminder):
        return [o for o in appointment_occurrences(reminder, tz) if o.due_at.date() == day]

    if not is_due_on(reminder, day):
        return []

    return [
        Occurrence(
            key=OccurrenceKey.for_dose(reminder.id, day, t),
            due_at=datetime.combine(day, t, tzinfo=tz),
        )
        for t in reminder.times
    ]


def due_timestamps_on(reminder: Reminder, day: date, tz: Optional[tzinfo] = None) -> list[datetime]:
    """Concrete due moments of the reminder on `day`."""
    return [o.due_at for o in occurrences_on(reminder, day, tz)]


def upcoming_occurrences(
    reminder: Reminder,
    after: datetime,
    until: datetime,
    tz: Optional[tzinfo] = None,
) -> list[Occurrence]:
    """Occurrences with after < due_at <= until, earliest first.

    `after` and `until` must carry the same awareness as `tz`.
    """
    if until <= after:
        return []

    if _has_fixed_appointment(reminder):
        return [o for o in appointment_occurrences(reminder, tz) if after < o.due_at <= until]

    found = []
    day = max(after.date(), reminder.start_date)
    last_day = until.date()
    if reminder.end_date is not None:
        last_day = min(last_day, reminder.end_date)

    while day <= last_day:
        for occurrence in occurrences_on(reminder, day, tz):
            if after < occurrence.due_at <= until:
                found.append(occurrence)
        day += timedelta(days=1)

    return found
