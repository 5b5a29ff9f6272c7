"""Interfaces the host application provides to the engine.

The engine never talks to a browser, OS notification centre, audio device or
database directly; the host passes objects implementing these interfaces.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from .types import PermissionStatus, Reminder


class PushPlatform(ABC):
    """Device-side push SDK (permission prompt, device registration, account login)."""

    @abstractmethod
    async def permission_status(self) -> PermissionStatus:
        """Current notification permission without prompting."""
        pass

    @abstractmethod
    async def request_permission(self) -> bool:
        """Show the permission prompt. True if granted."""
        pass

    @abstractmethod
    async def device_token(self) -> Optional[str]:
        """Existing push subscription id for this device, if any."""
        pass

    @abstractmethod
    async def register_device(self) -> Optional[str]:
        """Create the push subscription. Returns the device token, or None if incomplete."""
        pass

    @abstractmethod
    async def login(self, external_user_id: str) -> None:
        """Associate this device's subscription with an account id."""
        pass


class NotificationFacility(ABC):
    """Local notification surface (service worker / OS notification centre)."""

    @abstractmethod
    async def permission_status(self) -> PermissionStatus:
        pass

    @abstractmethod
    async def request_permission(self) -> bool:
        pass

    @abstractmethod
    async def show(self, title: str, body: str, tag: str, data: Optional[dict[str, Any]] = None) -> None:
        """Render a notification. Raises if the platform refuses."""
        pass


class SoundPlayer(ABC):
    """Audible cue played alongside a local notification."""

    @abstractmethod
    def play_default(self) -> None:
        pass

    @abstractmethod
    def play_custom(self, url: str) -> None:
        """Play a user-chosen alarm sound. Raises if it cannot be played."""
        pass


class ReminderSource(ABC):
    """Read side of reminder storage."""

    @abstractmethod
    async def list_reminders(self) -> list[Reminder]:
        pass
