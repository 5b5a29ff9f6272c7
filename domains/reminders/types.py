"""Type definitions for the reminder engine."""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, Optional, Union

from dateutil.parser import parse as parse_datetime

from .errors import InvalidReminderError


class ReminderKind(str, Enum):
    """What the reminder is for."""
    MEDICATION = "medication"
    APPOINTMENT = "appointment"


class Frequency(str, Enum):
    """How often a reminder recurs from its start date."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Notice(str, Enum):
    """Which notice an occurrence represents."""
    DOSE = "dose"          # Medication time-of-day
    ADVANCE = "advance"    # Appointment, N hours before
    START = "start"        # Appointment, at the appointment itself


def parse_time_of_day(value: Union[str, time]) -> time:
    """Parse "HH:MM" (or "HH:MM:SS") into a time, dropping seconds."""
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    try:
        parts = [int(p) for p in str(value).strip().split(":")]
        return time(parts[0], parts[1])
    except (ValueError, IndexError) as e:
        raise InvalidReminderError(f"Invalid time of day: {value!r}") from e


def _parse_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return parse_datetime(str(value)).date()
    except (ValueError, OverflowError) as e:
        raise InvalidReminderError(f"Invalid date: {value!r}") from e


def _parse_hours(value: Union[str, int, float, None]) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


@dataclass
class Reminder:
    """A recurring medication or appointment reminder (storage snapshot)."""
    id: str
    kind: ReminderKind
    name: str
    times: tuple[time, ...]
    start_date: date
    frequency: Frequency = Frequency.DAILY
    end_date: Optional[date] = None
    taken: bool = False  # User completion flag, ignored by scheduling
    # Medication
    dosage: Optional[str] = None
    # Appointment
    doctor_name: Optional[str] = None
    location: Optional[str] = None
    appointment_date: Optional[date] = None
    reminder_advance_hours: Optional[float] = None
    # Optional extras
    user_id: Optional[str] = None
    notes: Optional[str] = None
    alarm_sound_url: Optional[str] = None
    alarm_sound_name: Optional[str] = None
    use_custom_sound: bool = False

    def __post_init__(self):
        self.id = str(self.id)
        self.kind = ReminderKind(self.kind)
        self.frequency = Frequency(self.frequency)
        self.times = tuple(sorted({parse_time_of_day(t) for t in self.times}))
        self.start_date = _parse_date(self.start_date)
        self.end_date = _parse_date(self.end_date)
        self.appointment_date = _parse_date(self.appointment_date)

        if not self.times:
            raise InvalidReminderError(f"Reminder {self.id} has no times")
        if self.start_date is None:
            raise InvalidReminderError(f"Reminder {self.id} has no start date")
        if self.end_date is not None and self.end_date < self.start_date:
            raise InvalidReminderError(
                f"Reminder {self.id} ends ({self.end_date}) before it starts ({self.start_date})"
            )
        if self.reminder_advance_hours is not None and self.reminder_advance_hours < 0:
            raise InvalidReminderError(f"Reminder {self.id} has a negative advance")

    @property
    def appointment_at(self) -> Optional[datetime]:
        """Naive appointment moment: appointment date at the first time of day."""
        if self.kind != ReminderKind.APPOINTMENT or self.appointment_date is None:
            return None
        return datetime.combine(self.appointment_date, self.times[0])

    @property
    def advance(self) -> Optional[timedelta]:
        if not self.reminder_advance_hours:
            return None
        return timedelta(hours=self.reminder_advance_hours)

    @classmethod
    def from_record(cls, row: dict) -> "Reminder":
        """Build a Reminder from a storage row (snake_case columns)."""
        try:
            return cls(
                id=row["id"],
                kind=row.get("type") or row.get("kind") or ReminderKind.MEDICATION,
                name=row["name"],
                times=row.get("times") or [],
                start_date=row.get("start_date"),
                end_date=row.get("end_date"),
                frequency=row.get("frequency") or Frequency.DAILY,
                taken=bool(row.get("taken", False)),
                dosage=row.get("dosage"),
                doctor_name=row.get("doctor_name"),
                location=row.get("location"),
                appointment_date=row.get("appointment_date"),
                reminder_advance_hours=_parse_hours(row.get("reminder_advance")),
                user_id=str(row["user_id"]) if row.get("user_id") is not None else None,
                notes=row.get("notes"),
                alarm_sound_url=row.get("alarm_sound_url"),
                alarm_sound_name=row.get("alarm_sound_name"),
                use_custom_sound=bool(row.get("use_custom_sound", False)),
            )
        except KeyError as e:
            raise InvalidReminderError(f"Reminder record missing field {e}") from e
        except ValueError as e:
            if isinstance(e, InvalidReminderError):
                raise
            raise InvalidReminderError(f"Reminder record has an invalid value: {e}") from e


@dataclass(frozen=True)
class OccurrenceKey:
    """Identifies one deliverable event; the dedup and remote-job key."""
    reminder_id: str
    notice: Notice
    day: Optional[date] = None
    time_of_day: Optional[time] = None
    appointment_at: Optional[datetime] = None

    @classmethod
    def for_dose(cls, reminder_id: str, day: date, time_of_day: time) -> "OccurrenceKey":
        return cls(reminder_id=reminder_id, notice=Notice.DOSE, day=day, time_of_day=time_of_day)

    @classmethod
    def for_appointment(cls, reminder_id: str, appointment_at: datetime, notice: Notice) -> "OccurrenceKey":
        if notice == Notice.DOSE:
            raise ValueError("Appointment occurrences use ADVANCE or START notices")
        return cls(reminder_id=reminder_id, notice=notice, appointment_at=appointment_at)

    def __str__(self) -> str:
        if self.notice == Notice.DOSE:
            return f"{self.reminder_id}:{self.day.isoformat()}:{self.time_of_day.strftime('%H:%M')}"
        moment = self.appointment_at.strftime("%Y-%m-%dT%H:%M")
        return f"{self.reminder_id}:appointment:{moment}:{self.notice.value}"


@dataclass(frozen=True)
class Occurrence:
    """One concrete due instance of a reminder."""
    key: OccurrenceKey
    due_at: datetime

    @property
    def notice(self) -> Notice:
        return self.key.notice


@dataclass
class NotificationContent:
    """Rendered notification, shared by the remote and local channels."""
    title: str
    body: str
    tag: str
    data: dict[str, Any] = field(default_factory=dict)
    sound_url: Optional[str] = None


class RemoteJobStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class RemoteJob:
    """A delivery accepted by the push gateway."""
    reminder_id: str
    occurrence_key: OccurrenceKey
    remote_job_id: str
    scheduled_at: datetime
    status: RemoteJobStatus = RemoteJobStatus.PENDING


@dataclass(frozen=True)
class DeliveryRequest:
    """Emitted by the matcher for each freshly claimed occurrence."""
    reminder: Reminder
    occurrence: Occurrence

    @property
    def key(self) -> OccurrenceKey:
        return self.occurrence.key


class DeliveryOutcome(str, Enum):
    REMOTE = "remote"                      # Scheduled on the gateway now
    REMOTE_PRESCHEDULED = "remote_prescheduled"  # Already covered by a pending job
    LOCAL = "local"
    LOCAL_FAILED = "local_failed"


class SubscriptionState(str, Enum):
    UNREGISTERED = "unregistered"
    PERMISSION_REQUESTED = "permission_requested"
    SUBSCRIBED = "subscribed"
    LINKED = "linked"
    DENIED = "denied"


class PermissionStatus(str, Enum):
    """Platform notification permission, as the browser/OS reports it."""
    DEFAULT = "default"   # Not decided yet
    GRANTED = "granted"
    DENIED = "denied"


@dataclass(frozen=True)
class Subscription:
    """Immutable snapshot of the push subscription for this device."""
    state: SubscriptionState = SubscriptionState.UNREGISTERED
    device_token: Optional[str] = None
    external_user_id: Optional[str] = None

    @property
    def is_linked(self) -> bool:
        return self.state == SubscriptionState.LINKED

