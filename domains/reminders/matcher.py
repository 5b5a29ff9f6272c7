"""Due-time matcher - the periodic check that turns due occurrences into deliveries.

Each tick:
1. Capture `now` (the only wall-clock read in the engine)
2. Evict expired dedup records
3. For every reminder, find occurrences with |now - due_at| <= tolerance
4. Claim each one in the dedup store; only fresh claims are delivered

Claims happen synchronously before any delivery is awaited, so a slow gateway
call can't let an overlapping tick or a manual "check now" claim the same
occurrence twice.
"""

import asyncio
from datetime import datetime, timedelta, tzinfo
from typing import Callable, Iterable, Optional

from logger import logger
from . import config
from .dedup import DeliveryDedupStore
from .dispatcher import DeliveryDispatcher
from .platform import ReminderSource
from .recurrence import occurrences_on
from .types import DeliveryOutcome, DeliveryRequest, Occurrence, Reminder


class DueTimeMatcher:
    """Stateless between ticks; all memory lives in the dedup store."""

    def __init__(
        self,
        source: ReminderSource,
        dedup: DeliveryDedupStore,
        dispatcher: DeliveryDispatcher,
        tolerance: Optional[timedelta] = None,
        tick_interval: Optional[timedelta] = None,
        tz: Optional[tzinfo] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize matcher.

        Args:
            source: Where the current reminders are read from
            dedup: Shared dedup store
            dispatcher: Delivers claimed occurrences
            tolerance: Matching window either side of a due time
            tick_interval: Expected gap between ticks (tolerance must cover it)
            tz: Wall-clock zone reminder times are expressed in (None = naive)
            clock: Returns `now`; defaults to datetime.now(tz)
        """
        self.source = source
        self.dedup = dedup
        self.dispatcher = dispatcher
        self.tolerance = tolerance or timedelta(seconds=config.MATCH_TOLERANCE_SECONDS)
        self.tick_interval = tick_interval or timedelta(seconds=config.TICK_INTERVAL_SECONDS)
        self.tz = tz
        self._clock = clock or (lambda: datetime.now(self.tz))

        if self.tolerance < self.tick_interval:
            raise ValueError(
                f"Matching tolerance ({self.tolerance}) must cover the tick interval ({self.tick_interval})"
            )

        self.last_tick_at: Optional[datetime] = None
        self.tick_count = 0

    def due_now(self, reminder: Reminder, now: datetime) -> list[Occurrence]:
        """Occurrences of `reminder` inside the tolerance window around `now`.

        Scans every calendar day the window touches, so a 23:59 dose is still
        matched by a tick at 00:00:20.
        """
        days = sorted({(now - self.tolerance).date(), now.date(), (now + self.tolerance).date()})
        return [
            occurrence
            for day in days
            for occurrence in occurrences_on(reminder, day, self.tz)
            if abs(now - occurrence.due_at) <= self.tolerance
        ]

    def claim_due(self, reminders: Iterable[Reminder], now: datetime) -> list[DeliveryRequest]:
        """Claim every due, unclaimed occurrence. One bad reminder doesn't stop the rest."""
        requests = []
        for reminder in reminders:
            try:
                for occurrence in self.due_now(reminder, now):
                    if self.dedup.try_claim(occurrence.key, now):
                        requests.append(DeliveryRequest(reminder=reminder, occurrence=occurrence))
            except Exception as e:
                logger.error(f"Failed to evaluate reminder {getattr(reminder, 'id', '?')}: {e}")
        return requests

    async def _deliver(self, request: DeliveryRequest) -> Optional[DeliveryOutcome]:
        try:
            return await self.dispatcher.deliver(request)
        except Exception as e:
            logger.error(f"Delivery of {request.key} failed: {e}")
            return None

    async def tick(self, now: Optional[datetime] = None) -> list[tuple[DeliveryRequest, Optional[DeliveryOutcome]]]:
        """Run one matching pass.

        Args:
            now: Override the clock (tests, manual triggers)

        Returns:
            (request, outcome) for every occurrence claimed in this pass
        """
        now = now or self._clock()
        self.last_tick_at = now
        self.tick_count += 1

        self.dedup.evict_expired(now)

        try:
            reminders = await self.source.list_reminders()
        except Exception as e:
            logger.error(f"Failed to load reminders: {e}")
            return []

        requests = self.claim_due(reminders, now)
        if not requests:
            return []

        logger.info(f"{len(requests)} reminder occurrence(s) due at {now:%Y-%m-%d %H:%M:%S}")
        outcomes = await asyncio.gather(*(self._deliver(r) for r in requests))
        return list(zip(requests, outcomes))
