"""Side effects of saving and deleting reminders.

When a reminder is saved and the device is linked, upcoming occurrences are
handed to the push gateway ahead of time so they arrive even if the app is
closed. Deleting a reminder cancels whatever is still outstanding.

None of this ever fails the save/delete itself; problems come back as
warnings in a ScheduleReport or are logged.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from typing import Optional

from logger import logger
from . import config
from .content import render
from .dispatcher import DeliveryDispatcher, schedule_with_retry
from .errors import (
    ChannelUnavailableError,
    GatewayConfigurationError,
    GatewayError,
    PermanentGatewayError,
    TransientGatewayError,
    UnlinkedTargetError,
)
from .recurrence import upcoming_occurrences
from .types import Reminder, RemoteJob, RemoteJobStatus


@dataclass
class ScheduleReport:
    """Result of pre-scheduling a reminder's upcoming occurrences."""
    reminder_id: str
    jobs: list[RemoteJob] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    channel_unavailable: bool = False

    @property
    def scheduled(self) -> int:
        return len(self.jobs)


class ReminderLifecycle:
    """Pre-schedules and cancels remote jobs as reminders come and go."""

    def __init__(
        self,
        dispatcher: DeliveryDispatcher,
        tz: Optional[tzinfo] = None,
        horizon: Optional[timedelta] = None,
        max_jobs: Optional[int] = None,
        release_grace: Optional[timedelta] = None,
    ):
        """Initialize lifecycle handler.

        Args:
            dispatcher: Shares its gateway, job registry and retry settings
            tz: Wall-clock zone reminder times are expressed in
            horizon: How far ahead to pre-schedule
            max_jobs: Cap on jobs scheduled per save
            release_grace: How long after its moment a job stays pending
        """
        self.dispatcher = dispatcher
        self.gateway = dispatcher.gateway
        self.registry = dispatcher.registry
        self.tz = tz
        self.horizon = horizon or timedelta(days=config.PRESCHEDULE_HORIZON_DAYS)
        self.max_jobs = max_jobs or config.PRESCHEDULE_MAX_JOBS
        self.release_grace = release_grace or timedelta(seconds=config.MATCH_TOLERANCE_SECONDS)

    async def on_created(self, reminder: Reminder, now: Optional[datetime] = None) -> ScheduleReport:
        """Pre-schedule the reminder's occurrences inside the horizon."""
        now = now or datetime.now(self.tz)
        report = ScheduleReport(reminder_id=reminder.id)

        if not self.dispatcher.remote_available():
            report.channel_unavailable = True
            logger.info(f"Push not linked, {reminder.id} will only be delivered while the app is open")
            return report

        occurrences = upcoming_occurrences(reminder, now, now + self.horizon, self.tz)
        if len(occurrences) > self.max_jobs:
            report.warnings.append(
                f"Only the next {self.max_jobs} of {len(occurrences)} occurrences were scheduled"
            )
            occurrences = occurrences[:self.max_jobs]

        for occurrence in occurrences:
            if self.registry.pending_for(occurrence.key) is not None:
                continue

            try:
                job = await schedule_with_retry(
                    self.gateway,
                    reminder.id,
                    occurrence.key,
                    render(reminder, occurrence),
                    occurrence.due_at,
                    max_attempts=self.dispatcher.max_attempts,
                    backoff_base=self.dispatcher.backoff_base,
                    backoff_max=self.dispatcher.backoff_max,
                    sleep=self.dispatcher.sleep,
                )
                report.jobs.append(job)
            except ChannelUnavailableError:
                report.channel_unavailable = True
                break
            except GatewayConfigurationError as e:
                self.dispatcher.disable_remote(str(e))
                report.warnings.append(f"Push gateway misconfigured: {e}")
                break
            except UnlinkedTargetError as e:
                report.warnings.append(f"Push gateway has no subscription for this device: {e}")
                break
            except TransientGatewayError as e:
                # The live tick still covers this occurrence while the app is open
                report.warnings.append(f"Could not schedule {occurrence.key}: {e}")
            except PermanentGatewayError as e:
                logger.error(f"Gateway rejected {occurrence.key}: {e}")
                report.warnings.append(f"Push gateway rejected {occurrence.key}: {e}")

        logger.info(
            f"Pre-scheduled {report.scheduled} job(s) for {reminder.id}"
            + (f" with {len(report.warnings)} warning(s)" if report.warnings else "")
        )
        return report

    async def on_deleted(self, reminder_id: str) -> int:
        """Cancel every outstanding job of a deleted reminder. Never raises.

        Returns:
            Number of jobs successfully cancelled
        """
        cancelled = 0
        for job in self.registry.outstanding_for(reminder_id):
            try:
                if await self.gateway.cancel(job.remote_job_id):
                    cancelled += 1
            except GatewayError as e:
                logger.warning(f"Failed to cancel remote job for {job.occurrence_key}: {e}")

        self.registry.remove_reminder(reminder_id)
        if cancelled:
            logger.info(f"Cancelled {cancelled} remote job(s) for deleted reminder {reminder_id}")
        return cancelled

    async def on_updated(self, reminder: Reminder, now: Optional[datetime] = None) -> ScheduleReport:
        """Replace the reminder's jobs with ones matching its new schedule."""
        await self.on_deleted(reminder.id)
        return await self.on_created(reminder, now)

    async def release_passed(self, now: Optional[datetime] = None) -> int:
        """Mark jobs whose moment has passed as sent.

        A cancel is still issued for each; the gateway treats cancelling a
        delivered notification as a no-op. Released jobs leave the registry.

        Returns:
            Number of jobs released
        """
        now = now or datetime.now(self.tz)
        passed = self.registry.passed(now - self.release_grace)

        for job in passed:
            try:
                await self.gateway.cancel(job.remote_job_id)
            except GatewayError as e:
                logger.debug(f"Release cancel for {job.occurrence_key} failed: {e}")
            job.status = RemoteJobStatus.SENT
            self.registry.remove(job.occurrence_key)

        if passed:
            logger.debug(f"Released {len(passed)} passed remote job(s)")
        return len(passed)
