"""Supabase-backed reminder source."""

from typing import Optional

import httpx

import config as app_config
from logger import logger
from .errors import InvalidReminderError
from .platform import ReminderSource
from .types import Reminder


class SupabaseReminderSource(ReminderSource):
    """Reads a user's reminders from the Supabase `reminders` table.

    If a read fails, the last successfully loaded list is returned so a
    network blip doesn't silence due reminders.
    """

    def __init__(
        self,
        user_id: str,
        url: Optional[str] = None,
        key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user_id = user_id
        self.url = (url if url is not None else app_config.SUPABASE_URL or "").rstrip("/")
        self.key = key if key is not None else app_config.SUPABASE_KEY or ""
        self._transport = transport
        self._last_loaded: list[Reminder] = []

    def _headers(self) -> dict:
        """Get headers for Supabase API calls."""
        return {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
        }

    async def list_reminders(self) -> list[Reminder]:
        """Load all reminders for the user.

        Returns:
            Valid reminders; rows that fail validation are skipped
        """
        if not self.url or not self.key:
            logger.warning("Supabase not configured, no reminders loaded")
            return []

        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(
                    f"{self.url}/rest/v1/reminders",
                    params={"user_id": f"eq.{self.user_id}", "select": "*"},
                    headers=self._headers(),
                    timeout=10,
                )
                response.raise_for_status()
                rows = response.json()
        except Exception as e:
            logger.error(f"Failed to load reminders: {e}")
            return list(self._last_loaded)

        reminders = []
        for row in rows:
            try:
                reminders.append(Reminder.from_record(row))
            except InvalidReminderError as e:
                logger.warning(f"Skipping invalid reminder {row.get('id', '?')}: {e}")

        self._last_loaded = reminders
        logger.debug(f"Loaded {len(reminders)} reminders from Supabase")
        return reminders
