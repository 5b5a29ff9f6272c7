"""Two-tier delivery: push gateway when linked, local notification otherwise.

The channel is picked from the subscription state up front, not by catching
whatever error happens first:

    remote disabled or not LINKED      -> local
    LINKED, pre-scheduled job pending  -> nothing to do (gateway will send it)
    LINKED                             -> gateway.schedule (retry transient)
        ChannelUnavailable / Unlinked  -> local
        Transient x max attempts       -> local
        Permanent                      -> logged as error, local
        Configuration                  -> remote disabled for the session, local
"""

import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional

from logger import logger
from . import config
from .content import render
from .errors import (
    ChannelUnavailableError,
    GatewayConfigurationError,
    PermanentGatewayError,
    TransientGatewayError,
    UnlinkedTargetError,
)
from .gateway import PushGateway
from .jobs import RemoteJobRegistry
from .local import LocalNotifier
from .subscription import SubscriptionStateMachine
from .types import (
    DeliveryOutcome,
    DeliveryRequest,
    NotificationContent,
    OccurrenceKey,
    RemoteJob,
)

Sleep = Callable[[float], Awaitable[None]]


def backoff_delay(attempt: int, base: float, cap: float) -> float:
    """Exponential backoff for the given 1-based attempt: base, 2*base, 4*base... capped."""
    return min(base * (2 ** (attempt - 1)), cap)


async def schedule_with_retry(
    gateway: PushGateway,
    reminder_id: str,
    occurrence_key: OccurrenceKey,
    content: NotificationContent,
    scheduled_at: datetime,
    max_attempts: Optional[int] = None,
    backoff_base: Optional[float] = None,
    backoff_max: Optional[float] = None,
    sleep: Sleep = asyncio.sleep,
) -> RemoteJob:
    """gateway.schedule with bounded exponential backoff on transient errors.

    Non-transient errors propagate immediately. After `max_attempts`
    transient failures the last TransientGatewayError propagates.
    """
    max_attempts = max_attempts or config.GATEWAY_MAX_ATTEMPTS
    backoff_base = config.GATEWAY_BACKOFF_BASE_SECONDS if backoff_base is None else backoff_base
    backoff_max = config.GATEWAY_BACKOFF_MAX_SECONDS if backoff_max is None else backoff_max

    attempt = 0
    while True:
        attempt += 1
        try:
            return await gateway.schedule(reminder_id, occurrence_key, content, scheduled_at)
        except TransientGatewayError as e:
            if attempt >= max_attempts:
                raise
            delay = backoff_delay(attempt, backoff_base, backoff_max)
            logger.warning(
                f"Transient gateway error for {occurrence_key} "
                f"(attempt {attempt}/{max_attempts}), retrying in {delay:.1f}s: {e}"
            )
            await sleep(delay)


class DeliveryDispatcher:
    """Routes claimed occurrences to exactly one delivery channel."""

    def __init__(
        self,
        subscription: SubscriptionStateMachine,
        gateway: PushGateway,
        local: LocalNotifier,
        registry: RemoteJobRegistry,
        max_attempts: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.subscription = subscription
        self.gateway = gateway
        self.local = local
        self.registry = registry
        self.max_attempts = max_attempts or config.GATEWAY_MAX_ATTEMPTS
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.sleep = sleep

        self.remote_enabled = True
        self.remote_disabled_reason: Optional[str] = None

    def disable_remote(self, reason: str) -> None:
        """Stop using the gateway for the rest of the session."""
        if self.remote_enabled:
            logger.error(f"Remote delivery disabled for this session: {reason}")
        self.remote_enabled = False
        self.remote_disabled_reason = reason

    def remote_available(self) -> bool:
        return self.remote_enabled and self.subscription.is_linked

    async def deliver(self, request: DeliveryRequest) -> DeliveryOutcome:
        """Deliver one claimed occurrence. Never raises for channel failures."""
        content = render(request.reminder, request.occurrence)

        if not self.remote_available():
            return await self._deliver_local(content, request.key)

        if self.registry.pending_for(request.key) is not None:
            logger.info(f"{request.key} already scheduled on the gateway, skipping live send")
            return DeliveryOutcome.REMOTE_PRESCHEDULED

        try:
            await schedule_with_retry(
                self.gateway,
                request.reminder.id,
                request.key,
                content,
                request.occurrence.due_at,
                max_attempts=self.max_attempts,
                backoff_base=self.backoff_base,
                backoff_max=self.backoff_max,
                sleep=self.sleep,
            )
            return DeliveryOutcome.REMOTE
        except ChannelUnavailableError as e:
            logger.info(f"Remote channel unavailable for {request.key}: {e}")
        except UnlinkedTargetError as e:
            logger.warning(f"Gateway has no subscription for {request.key}: {e}")
        except GatewayConfigurationError as e:
            self.disable_remote(str(e))
        except TransientGatewayError as e:
            logger.warning(f"Giving up on gateway for {request.key} after {self.max_attempts} attempts: {e}")
        except PermanentGatewayError as e:
            logger.error(f"Gateway rejected {request.key}: {e}")

        return await self._deliver_local(content, request.key)

    async def _deliver_local(self, content: NotificationContent, key: OccurrenceKey) -> DeliveryOutcome:
        delivered = await self.local.deliver_locally(content, key)
        return DeliveryOutcome.LOCAL if delivered else DeliveryOutcome.LOCAL_FAILED
