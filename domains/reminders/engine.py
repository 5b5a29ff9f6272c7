"""Reminder engine - wires the matcher, dispatcher and subscription together.

The host supplies the platform objects (push SDK, notification facility,
sound player) and a reminder source; the engine owns everything else.

Usage:
    engine = ReminderEngine(source, push_platform, facility, sound)
    engine.start()                      # inside a running event loop
    await engine.connect(user_id)       # permission prompt + account link
    ...
    report = await engine.on_created(reminder)
    await engine.on_deleted(reminder.id)
    ...
    engine.stop()
"""

from datetime import datetime, tzinfo
from typing import Optional
from zoneinfo import ZoneInfo

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

import config as app_config
from logger import logger
from . import config
from .dedup import DeliveryDedupStore
from .dispatcher import DeliveryDispatcher
from .errors import GatewayConfigurationError, GatewayError
from .gateway import PushGateway
from .jobs import RemoteJobRegistry
from .lifecycle import ReminderLifecycle, ScheduleReport
from .local import LocalNotifier
from .matcher import DueTimeMatcher
from .platform import NotificationFacility, PushPlatform, ReminderSource, SoundPlayer
from .subscription import SubscriptionStateMachine
from .types import (
    DeliveryOutcome,
    DeliveryRequest,
    NotificationContent,
    OccurrenceKey,
    Reminder,
    Subscription,
)

TICK_JOB_ID = "reminder_tick"


class ReminderEngine:
    """Composition root for reminder scheduling and delivery."""

    def __init__(
        self,
        source: ReminderSource,
        push_platform: PushPlatform,
        facility: NotificationFacility,
        sound: SoundPlayer,
        scheduler: Optional[AsyncIOScheduler] = None,
        tz: Optional[tzinfo] = None,
        gateway_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.tz = tz or ZoneInfo(app_config.USER_TIMEZONE)
        self.scheduler = scheduler or AsyncIOScheduler(timezone=self.tz)

        self.subscription = SubscriptionStateMachine(push_platform)
        self.registry = RemoteJobRegistry()
        self.gateway = PushGateway(self.subscription, self.registry, transport=gateway_transport)
        self.local = LocalNotifier(facility, sound)
        self.dispatcher = DeliveryDispatcher(self.subscription, self.gateway, self.local, self.registry)
        self.dedup = DeliveryDedupStore()
        self.matcher = DueTimeMatcher(source, self.dedup, self.dispatcher, tz=self.tz)
        self.lifecycle = ReminderLifecycle(self.dispatcher, tz=self.tz)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def start(self) -> None:
        """Validate gateway config and start the periodic tick (first run immediately)."""
        try:
            self.gateway.validate_config()
        except GatewayConfigurationError as e:
            self.dispatcher.disable_remote(str(e))

        self.scheduler.add_job(
            self._scheduled_tick,
            trigger=IntervalTrigger(seconds=config.TICK_INTERVAL_SECONDS),
            id=TICK_JOB_ID,
            name="Check for due reminders",
            next_run_time=datetime.now(self.tz),
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )

        if not self.scheduler.running:
            self.scheduler.start()
        logger.info(
            f"Reminder engine started (tick every {config.TICK_INTERVAL_SECONDS}s, "
            f"remote {'enabled' if self.dispatcher.remote_enabled else 'disabled'})"
        )

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Reminder engine stopped")

    async def _scheduled_tick(self) -> None:
        try:
            await self.check_now()
        except Exception as e:
            logger.error(f"Reminder tick failed: {e}")

    async def check_now(self, now: Optional[datetime] = None) -> list[tuple[DeliveryRequest, Optional[DeliveryOutcome]]]:
        """Run a matching pass immediately (foreground trigger).

        Safe to call while the scheduled tick runs; the dedup store keeps
        each occurrence to a single delivery.
        """
        now = now or self.now()
        results = await self.matcher.tick(now)
        await self.lifecycle.release_passed(now)
        return results

    async def connect(self, external_user_id: Optional[str] = None) -> Subscription:
        """Bring the push subscription up and link it to the account if possible."""
        snapshot = await self.subscription.initialize()
        if external_user_id and snapshot.device_token:
            snapshot = await self.subscription.link(external_user_id)
        return snapshot

    async def on_created(self, reminder: Reminder, now: Optional[datetime] = None) -> ScheduleReport:
        return await self.lifecycle.on_created(reminder, now or self.now())

    async def on_updated(self, reminder: Reminder, now: Optional[datetime] = None) -> ScheduleReport:
        return await self.lifecycle.on_updated(reminder, now or self.now())

    async def on_deleted(self, reminder_id: str) -> int:
        return await self.lifecycle.on_deleted(reminder_id)

    async def send_test_notification(self) -> DeliveryOutcome:
        """Send a test notification through whichever channel is available."""
        content = NotificationContent(
            title="Test Notification",
            body="This is a test notification from MediReminder",
            tag="test-notification",
            data={"type": "test"},
        )

        if self.dispatcher.remote_available():
            try:
                await self.gateway.send_immediate(content)
                return DeliveryOutcome.REMOTE
            except GatewayConfigurationError as e:
                self.dispatcher.disable_remote(str(e))
            except GatewayError as e:
                logger.warning(f"Test notification via gateway failed, showing locally: {e}")

        now = self.now()
        key = OccurrenceKey.for_dose("test", now.date(), now.time().replace(microsecond=0))
        delivered = await self.local.deliver_locally(content, key)
        return DeliveryOutcome.LOCAL if delivered else DeliveryOutcome.LOCAL_FAILED

    def get_stats(self) -> dict:
        return {
            "subscription": self.subscription.state.value,
            "remote_enabled": self.dispatcher.remote_enabled,
            "remote_disabled_reason": self.dispatcher.remote_disabled_reason,
            "remote_jobs": len(self.registry),
            "ticks": self.matcher.tick_count,
            "last_tick_at": self.matcher.last_tick_at.isoformat() if self.matcher.last_tick_at else None,
            "dedup": self.dedup.get_stats(),
        }
