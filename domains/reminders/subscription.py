"""Push subscription state machine for the current device.

States:
- UNREGISTERED: Nothing checked yet
- PERMISSION_REQUESTED: Permission undecided, or granted with registration pending
- SUBSCRIBED: Device registered with the push platform (has a device token)
- LINKED: Subscription associated with an account id; remote delivery allowed
- DENIED: User refused (or later revoked) notification permission

Transitions:
- UNREGISTERED → SUBSCRIBED: initialize() finds an existing subscription
- UNREGISTERED → PERMISSION_REQUESTED: initialize()/reconcile() finds none
- PERMISSION_REQUESTED → SUBSCRIBED: permission granted and device registered
- PERMISSION_REQUESTED → DENIED: permission refused
- SUBSCRIBED → LINKED: link(external_user_id)
- SUBSCRIBED/LINKED → DENIED: permission revoked, seen by reconcile()
- DENIED → SUBSCRIBED: permission re-granted in settings, seen by reconcile()

The machine never polls. Hosts call reconcile() on page load, focus, or
whenever they want the platform state re-read.
"""

import asyncio
from typing import Optional

from logger import logger
from utils.log_sanitizer import mask_token
from .errors import SubscriptionPreconditionError
from .platform import PushPlatform
from .types import PermissionStatus, Subscription, SubscriptionState


class SubscriptionStateMachine:
    """Owns the device's Subscription; the only writer of its state.

    Usage:
        machine = SubscriptionStateMachine(platform)
        await machine.initialize()          # safe to call from many places
        if machine.snapshot.device_token:
            await machine.link(user_id)

        if machine.is_linked:
            ...  # remote channel available
    """

    def __init__(self, platform: PushPlatform):
        self._platform = platform
        self._subscription = Subscription()
        self._lock: Optional[asyncio.Lock] = None
        self._init_task: Optional[asyncio.Task] = None

    @property
    def lock(self) -> asyncio.Lock:
        # Created inside the running loop on first use
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    @property
    def snapshot(self) -> Subscription:
        return self._subscription

    @property
    def state(self) -> SubscriptionState:
        return self._subscription.state

    @property
    def is_linked(self) -> bool:
        return self._subscription.is_linked

    def _set(self, new: Subscription, reason: str) -> None:
        old = self._subscription
        if new == old:
            return
        self._subscription = new
        logger.info(
            f"Subscription: {old.state.value} → {new.state.value} "
            f"(token {mask_token(new.device_token)}, {reason})"
        )

    async def initialize(self) -> Subscription:
        """Bring the subscription up once, prompting for permission if undecided.

        Concurrent callers share one in-flight attempt, so there is never more
        than one permission prompt or device registration. A completed attempt
        is reused; a failed one, or one that left registration incomplete,
        is retried on the next call.
        """
        task = self._init_task
        if task is None or (task.done() and self._should_retry(task)):
            task = asyncio.ensure_future(self._initialize())
            self._init_task = task
        else:
            logger.debug("Subscription initialization already in progress or done, joining")

        await asyncio.shield(task)
        return self._subscription

    def _should_retry(self, task: asyncio.Task) -> bool:
        if task.cancelled() or task.exception() is not None:
            return True
        return self._subscription.state == SubscriptionState.PERMISSION_REQUESTED

    async def _initialize(self) -> None:
        async with self.lock:
            await self._reconcile_locked()

            if self._subscription.state != SubscriptionState.PERMISSION_REQUESTED:
                return

            await self._request_permission_locked()

    async def reconcile(self) -> Subscription:
        """Re-read platform permission and registration, and re-derive the state."""
        async with self.lock:
            await self._reconcile_locked()
            return self._subscription

    async def _reconcile_locked(self) -> None:
        status = await self._platform.permission_status()
        token = await self._platform.device_token()
        current = self._subscription

        if status == PermissionStatus.DENIED:
            self._set(Subscription(SubscriptionState.DENIED), "permission denied")
        elif status == PermissionStatus.GRANTED and token:
            if current.is_linked and current.device_token == token:
                return
            self._set(Subscription(SubscriptionState.SUBSCRIBED, device_token=token), "device registered")
        else:
            self._set(Subscription(SubscriptionState.PERMISSION_REQUESTED), "awaiting permission/registration")

    async def request_permission(self) -> Subscription:
        """Prompt for permission (if still needed) and register the device."""
        async with self.lock:
            await self._request_permission_locked()
            return self._subscription

    async def _request_permission_locked(self) -> None:
        if self._subscription.state in (SubscriptionState.SUBSCRIBED, SubscriptionState.LINKED):
            return

        self._set(Subscription(SubscriptionState.PERMISSION_REQUESTED), "requesting permission")

        status = await self._platform.permission_status()
        if status == PermissionStatus.GRANTED:
            granted = True
        else:
            logger.info("Requesting notification permission...")
            granted = await self._platform.request_permission()

        if not granted:
            self._set(Subscription(SubscriptionState.DENIED), "user denied permission")
            return

        token = await self._platform.device_token() or await self._platform.register_device()
        if not token:
            logger.warning("Permission granted but device registration incomplete")
            return

        self._set(Subscription(SubscriptionState.SUBSCRIBED, device_token=token), "permission granted")

    async def link(self, external_user_id: str) -> Subscription:
        """Associate the device subscription with an account.

        Raises:
            SubscriptionPreconditionError: No device token exists yet
            ValueError: Empty external user id
        """
        if not external_user_id:
            raise ValueError("external_user_id must be non-empty")

        async with self.lock:
            current = self._subscription
            if not current.device_token:
                raise SubscriptionPreconditionError(
                    f"Cannot link account while subscription is {current.state.value} (no device token)"
                )

            if current.is_linked and current.external_user_id == external_user_id:
                return current

            await self._platform.login(external_user_id)
            self._set(
                Subscription(SubscriptionState.LINKED, device_token=current.device_token,
                             external_user_id=external_user_id),
                "account linked",
            )
            return self._subscription
