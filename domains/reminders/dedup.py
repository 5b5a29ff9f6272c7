"""Delivery dedup store - at most one delivery per occurrence key.

The matcher claims an occurrence key before it delivers anything. Only the
first claim succeeds; later ticks (and a concurrent "check now") see the key as
taken and skip it. Claims are dropped only by time-based eviction.

Retention is 24h by default. It must be longer than the matching tolerance so
a record can never disappear while its occurrence is still matchable.
"""

import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from logger import logger
from . import config
from .types import OccurrenceKey


class DeliveryDedupStore:
    """Thread-safe TTL map of occurrence key -> claim time.

    Usage:
        store = DeliveryDedupStore()

        if store.try_claim(key, now):
            await deliver(...)
        # else: someone already delivered it
    """

    def __init__(
        self,
        retention: Optional[timedelta] = None,
        min_retention: Optional[timedelta] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """Initialize dedup store.

        Args:
            retention: How long claims are kept (default from config)
            min_retention: Lower bound retention must respect (the matching tolerance)
            clock: Used when callers don't pass `now`
        """
        self.retention = retention or timedelta(hours=config.DEDUP_RETENTION_HOURS)
        min_retention = min_retention or timedelta(seconds=config.MATCH_TOLERANCE_SECONDS)
        if self.retention <= min_retention:
            raise ValueError(
                f"Dedup retention ({self.retention}) must exceed the matching tolerance ({min_retention})"
            )

        self._clock = clock
        self._claims: dict[OccurrenceKey, datetime] = {}
        self._lock = threading.Lock()

        # Stats for monitoring
        self._total_claims = 0
        self._total_rejected = 0
        self._total_evicted = 0

    def try_claim(self, key: OccurrenceKey, now: Optional[datetime] = None) -> bool:
        """Reserve an occurrence key.

        Returns:
            True if this call is the first claimant, False if already claimed
        """
        now = now or self._clock()
        with self._lock:
            if key in self._claims:
                self._total_rejected += 1
                return False
            self._claims[key] = now
            self._total_claims += 1

        logger.debug(f"Claimed occurrence {key}")
        return True

    def is_claimed(self, key: OccurrenceKey) -> bool:
        with self._lock:
            return key in self._claims

    def claimed_at(self, key: OccurrenceKey) -> Optional[datetime]:
        with self._lock:
            return self._claims.get(key)

    def evict_older_than(self, cutoff: datetime) -> int:
        """Drop claims made before `cutoff`.

        Returns:
            Number of records evicted
        """
        with self._lock:
            expired = [key for key, claimed_at in self._claims.items() if claimed_at < cutoff]
            for key in expired:
                del self._claims[key]
            self._total_evicted += len(expired)

        if expired:
            logger.debug(f"Evicted {len(expired)} delivery records older than {cutoff}")
        return len(expired)

    def evict_expired(self, now: Optional[datetime] = None) -> int:
        """Drop claims older than the retention window."""
        now = now or self._clock()
        return self.evict_older_than(now - self.retention)

    def __len__(self) -> int:
        with self._lock:
            return len(self._claims)

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "records": len(self._claims),
                "total_claims": self._total_claims,
                "total_rejected": self._total_rejected,
                "total_evicted": self._total_evicted,
                "retention_seconds": int(self.retention.total_seconds()),
            }
