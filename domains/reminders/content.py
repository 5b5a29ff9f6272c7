"""Notification wording for reminders."""

from .types import NotificationContent, Notice, Occurrence, Reminder, ReminderKind


def _hours_phrase(hours: float) -> str:
    hours_text = f"{hours:g}"
    return f"in {hours_text} hour{'' if hours == 1 else 's'}"


def render(reminder: Reminder, occurrence: Occurrence) -> NotificationContent:
    """Build the title/body shown for an occurrence.

    Medication:  "Medication: Aspirin" / "Time to take 100mg"
    Appointment: "Upcoming Appointment: Checkup" / "Dr. Smith in 2 hours at City Clinic"
    """
    if reminder.kind == ReminderKind.APPOINTMENT:
        if occurrence.notice == Notice.ADVANCE:
            title = f"Upcoming Appointment: {reminder.name}"
            time_info = _hours_phrase(reminder.reminder_advance_hours)
        else:
            title = f"Appointment: {reminder.name}"
            time_info = "now"
        who = f"Dr. {reminder.doctor_name}" if reminder.doctor_name else "Appointment"
        body = f"{who} {time_info}"
        if reminder.location:
            body += f" at {reminder.location}"
    else:
        title = f"Medication: {reminder.name}"
        body = f"Time to take {reminder.dosage or 'your medication'}"

    sound_url = reminder.alarm_sound_url if reminder.use_custom_sound else None

    return NotificationContent(
        title=title,
        body=body,
        tag=str(occurrence.key),
        data={
            "reminderId": reminder.id,
            "type": reminder.kind.value,
            "name": reminder.name,
            "notice": occurrence.notice.value,
            "occurrenceKey": str(occurrence.key),
            "dueAt": occurrence.due_at.isoformat(),
        },
        sound_url=sound_url,
    )
