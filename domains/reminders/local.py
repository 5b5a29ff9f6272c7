"""Local delivery - on-device notification plus an audible cue.

Used whenever the remote channel can't take an occurrence. The occurrence was
already claimed by the matcher; nothing here claims or re-queues. A failed
render is logged and reported, and the occurrence counts as attempted.
"""

from logger import logger
from .errors import LocalDeliveryError
from .platform import NotificationFacility, SoundPlayer
from .types import NotificationContent, OccurrenceKey, PermissionStatus


class LocalNotifier:
    """Renders reminders through the host's notification facility."""

    def __init__(self, facility: NotificationFacility, sound: SoundPlayer):
        self.facility = facility
        self.sound = sound

    def _play_cue(self, content: NotificationContent) -> None:
        """Play the reminder's custom alarm, falling back to the default cue."""
        if content.sound_url:
            try:
                self.sound.play_custom(content.sound_url)
                return
            except Exception as e:
                logger.warning(f"Custom alarm sound failed, using default: {e}")

        try:
            self.sound.play_default()
        except Exception as e:
            logger.error(f"Failed to play notification sound: {e}")

    async def _render(self, content: NotificationContent) -> None:
        try:
            permission = await self.facility.permission_status()
        except Exception as e:
            raise LocalDeliveryError(f"Could not read notification permission: {e}") from e

        if permission != PermissionStatus.GRANTED:
            raise LocalDeliveryError(f"Notification permission is {permission.value}")

        try:
            await self.facility.show(content.title, content.body, tag=content.tag, data=content.data)
        except Exception as e:
            raise LocalDeliveryError(f"Platform refused notification: {e}") from e

    async def deliver_locally(self, content: NotificationContent, occurrence_key: OccurrenceKey) -> bool:
        """Show the notification and play the cue.

        Returns:
            True if the notification was rendered
        """
        # Cue first; it plays even when rendering fails
        self._play_cue(content)

        try:
            await self._render(content)
        except LocalDeliveryError as e:
            logger.error(f"Local delivery failed for {occurrence_key}: {e}")
            return False

        logger.info(f"Delivered {occurrence_key} locally: {content.title}")
        return True
