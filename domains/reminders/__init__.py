"""Medication and appointment reminders.

A periodic tick matches reminder occurrences against the clock, claims each
one exactly once, and delivers it through the push gateway when the device is
linked, or as a local notification otherwise.
"""

from .types import (
    ReminderKind,
    Frequency,
    Notice,
    Reminder,
    OccurrenceKey,
    Occurrence,
    NotificationContent,
    RemoteJob,
    RemoteJobStatus,
    DeliveryRequest,
    DeliveryOutcome,
    SubscriptionState,
    PermissionStatus,
    Subscription,
)
from .errors import (
    ReminderEngineError,
    InvalidReminderError,
    SubscriptionPreconditionError,
    ChannelUnavailableError,
    GatewayError,
    GatewayConfigurationError,
    UnlinkedTargetError,
    TransientGatewayError,
    PermanentGatewayError,
    LocalDeliveryError,
)
from .recurrence import is_due_on, occurrences_on, due_timestamps_on, upcoming_occurrences
from .dedup import DeliveryDedupStore
from .subscription import SubscriptionStateMachine
from .gateway import PushGateway
from .local import LocalNotifier
from .dispatcher import DeliveryDispatcher
from .matcher import DueTimeMatcher
from .lifecycle import ReminderLifecycle, ScheduleReport
from .store import SupabaseReminderSource
from .platform import PushPlatform, NotificationFacility, SoundPlayer, ReminderSource
from .engine import ReminderEngine

__all__ = [
    "ReminderKind",
    "Frequency",
    "Notice",
    "Reminder",
    "OccurrenceKey",
    "Occurrence",
    "NotificationContent",
    "RemoteJob",
    "RemoteJobStatus",
    "DeliveryRequest",
    "DeliveryOutcome",
    "SubscriptionState",
    "PermissionStatus",
    "Subscription",
    "ReminderEngineError",
    "InvalidReminderError",
    "SubscriptionPreconditionError",
    "ChannelUnavailableError",
    "GatewayError",
    "GatewayConfigurationError",
    "UnlinkedTargetError",
    "TransientGatewayError",
    "PermanentGatewayError",
    "LocalDeliveryError",
    "is_due_on",
    "occurrences_on",
    "due_timestamps_on",
    "upcoming_occurrences",
    "DeliveryDedupStore",
    "SubscriptionStateMachine",
    "PushGateway",
    "LocalNotifier",
    "DeliveryDispatcher",
    "DueTimeMatcher",
    "ReminderLifecycle",
    "ScheduleReport",
    "SupabaseReminderSource",
    "PushPlatform",
    "NotificationFacility",
    "SoundPlayer",
    "ReminderSource",
    "ReminderEngine",
]
