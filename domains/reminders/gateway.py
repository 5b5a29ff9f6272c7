"""Push gateway client - schedule and cancel remote notification jobs.

Talks to a OneSignal-compatible REST API:
- POST   {base}/notifications            -> {"id": "<job id>", "recipients": n}
- DELETE {base}/notifications/{id}?app_id=...

Each call is a single attempt. Failures are raised as the GatewayError
subclass that tells the caller what to do (see errors.py); retrying transient
failures is the dispatcher's job.
"""

import re
from datetime import datetime
from typing import Optional

import httpx

import config as app_config
from logger import logger
from utils.log_sanitizer import mask_token, sanitize_for_log
from . import config
from .errors import (
    ChannelUnavailableError,
    GatewayConfigurationError,
    PermanentGatewayError,
    TransientGatewayError,
    UnlinkedTargetError,
)
from .jobs import RemoteJobRegistry
from .subscription import SubscriptionStateMachine
from .types import NotificationContent, OccurrenceKey, RemoteJob, RemoteJobStatus

# Gateway error texts meaning "this target has no usable subscription"
_UNLINKED_PATTERN = re.compile(r"not subscribed|no subscribed|invalid_(external_user|player)_ids", re.IGNORECASE)

# Gateway error texts meaning "nothing left to cancel"
_ALREADY_DONE_PATTERN = re.compile(r"already|not found|no longer|has been sent", re.IGNORECASE)


def _error_text(body) -> str:
    """Flatten the gateway's `errors` field (list or dict) into one string."""
    if not isinstance(body, dict):
        return str(body) if body else ""
    errors = body.get("errors")
    if isinstance(errors, dict):
        return "; ".join(f"{k}: {v}" for k, v in errors.items())
    if isinstance(errors, list):
        return "; ".join(str(e) for e in errors)
    return str(errors) if errors else ""


def _json_or_none(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return None


class PushGateway:
    """Client for the remote push gateway.

    Scheduling requires the subscription to be LINKED; every accepted job is
    recorded in the registry under its occurrence key.
    """

    def __init__(
        self,
        subscription: SubscriptionStateMachine,
        registry: RemoteJobRegistry,
        base_url: Optional[str] = None,
        app_id: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize gateway client.

        Args:
            subscription: Device subscription state machine (gates scheduling)
            registry: Where accepted jobs are recorded
            base_url: Gateway API root (default from config)
            app_id: Gateway application id (default from config)
            api_key: REST API key (default from config)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.subscription = subscription
        self.registry = registry
        self.base_url = (base_url if base_url is not None else app_config.PUSH_GATEWAY_URL).rstrip("/")
        self.app_id = app_id if app_id is not None else app_config.PUSH_APP_ID
        self.api_key = api_key if api_key is not None else app_config.PUSH_REST_API_KEY
        self.timeout = timeout or config.GATEWAY_TIMEOUT_SECONDS
        self._transport = transport

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self.api_key}",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def validate_config(self) -> None:
        """Raise GatewayConfigurationError if credentials are missing or placeholders."""
        if not self.app_id or self.app_id == config.PLACEHOLDER_APP_ID:
            raise GatewayConfigurationError("Push gateway app id not configured (set PUSH_APP_ID)")
        if not self.api_key or self.api_key == config.PLACEHOLDER_API_KEY:
            raise GatewayConfigurationError("Push gateway REST API key not configured (set PUSH_REST_API_KEY)")
        if not self.base_url:
            raise GatewayConfigurationError("Push gateway URL not configured (set PUSH_GATEWAY_URL)")

    def _linked_target(self) -> str:
        snapshot = self.subscription.snapshot
        if not snapshot.is_linked:
            raise ChannelUnavailableError(f"Push subscription is {snapshot.state.value}, not linked")
        return snapshot.external_user_id

    def _build_payload(self, target_id: str, content: NotificationContent) -> dict:
        return {
            "app_id": self.app_id,
            "include_external_user_ids": [target_id],
            "headings": {"en": content.title},
            "contents": {"en": content.body},
            "data": dict(content.data),
            "web_push_topic": content.tag,
            "chrome_web_icon": config.DEFAULT_ICON,
            # iOS
            "ios_badgeType": "Increase",
            "ios_badgeCount": 1,
            "ios_sound": "default",
            # Android
            "android_channel_id": config.ANDROID_CHANNEL_ID,
            "android_sound": "default",
            "priority": 10,
            "ttl": config.NOTIFICATION_TTL_SECONDS,
            "content_available": True,
        }

    async def _post_notification(self, payload: dict) -> str:
        """POST a notification and return the gateway job id."""
        self.validate_config()

        try:
            async with self._client() as client:
                response = await client.post(
                    f"{self.base_url}/notifications",
                    headers=self._headers(),
                    json=payload,
                )
        except httpx.TimeoutException as e:
            raise TransientGatewayError(f"Gateway timed out: {e}") from e
        except httpx.TransportError as e:
            raise TransientGatewayError(f"Gateway unreachable: {e}") from e

        body = _json_or_none(response)
        status = response.status_code

        if status in (401, 403):
            raise GatewayConfigurationError(f"Gateway rejected credentials ({status})", status)
        if status == 429 or status >= 500:
            raise TransientGatewayError(f"Gateway error {status}: {sanitize_for_log(response.text)}", status)

        error_text = _error_text(body)
        if error_text and _UNLINKED_PATTERN.search(error_text):
            raise UnlinkedTargetError(f"Target not subscribed: {sanitize_for_log(error_text)}", status)

        if status >= 400:
            raise PermanentGatewayError(
                f"Gateway rejected notification ({status}): {sanitize_for_log(error_text or response.text)}",
                status,
            )

        job_id = body.get("id") if isinstance(body, dict) else None
        if not job_id:
            raise PermanentGatewayError(
                f"Gateway accepted request but returned no job id: {sanitize_for_log(error_text or response.text)}",
                status,
            )
        return job_id

    async def schedule(
        self,
        reminder_id: str,
        occurrence_key: OccurrenceKey,
        content: NotificationContent,
        scheduled_at: datetime,
    ) -> RemoteJob:
        """Schedule a notification for `scheduled_at` (sent at once if already past).

        Raises:
            ChannelUnavailableError: Subscription not linked
            GatewayConfigurationError, UnlinkedTargetError,
            TransientGatewayError, PermanentGatewayError
        """
        target_id = self._linked_target()

        payload = self._build_payload(target_id, content)
        payload["send_after"] = scheduled_at.astimezone().isoformat()
        payload["data"]["reminderId"] = reminder_id
        payload["data"]["occurrenceKey"] = str(occurrence_key)

        job_id = await self._post_notification(payload)

        job = RemoteJob(
            reminder_id=reminder_id,
            occurrence_key=occurrence_key,
            remote_job_id=job_id,
            scheduled_at=scheduled_at,
        )
        self.registry.add(job)
        logger.info(f"Scheduled remote job {mask_token(job_id)} for {occurrence_key} at {scheduled_at}")
        return job

    async def send_immediate(self, content: NotificationContent) -> str:
        """Send a notification right away (test notifications). Returns the job id."""
        target_id = self._linked_target()
        payload = self._build_payload(target_id, content)
        payload["data"].setdefault("type", "test")
        job_id = await self._post_notification(payload)
        logger.info(f"Sent immediate notification {mask_token(job_id)}")
        return job_id

    async def cancel(self, remote_job_id: str) -> bool:
        """Cancel a scheduled job.

        Cancelling a job that is already cancelled, already sent, or unknown to
        the gateway is a success.

        Raises:
            GatewayConfigurationError, TransientGatewayError, PermanentGatewayError
        """
        job = self.registry.find_by_remote_id(remote_job_id)
        if job is not None and job.status in (RemoteJobStatus.CANCELLED, RemoteJobStatus.SENT):
            logger.debug(f"Remote job {mask_token(remote_job_id)} already {job.status.value}")
            return True

        self.validate_config()

        try:
            async with self._client() as client:
                response = await client.delete(
                    f"{self.base_url}/notifications/{remote_job_id}",
                    params={"app_id": self.app_id},
                    headers=self._headers(),
                )
        except httpx.TimeoutException as e:
            raise TransientGatewayError(f"Gateway timed out cancelling job: {e}") from e
        except httpx.TransportError as e:
            raise TransientGatewayError(f"Gateway unreachable cancelling job: {e}") from e

        status = response.status_code
        if status in (401, 403):
            raise GatewayConfigurationError(f"Gateway rejected credentials ({status})", status)
        if status == 429 or status >= 500:
            raise TransientGatewayError(f"Gateway error {status} cancelling job", status)

        if status >= 400:
            error_text = _error_text(_json_or_none(response)) or response.text
            if status != 404 and not _ALREADY_DONE_PATTERN.search(error_text):
                raise PermanentGatewayError(
                    f"Gateway refused cancel ({status}): {sanitize_for_log(error_text)}", status
                )
            logger.debug(f"Remote job {mask_token(remote_job_id)} already gone ({status})")

        if job is not None:
            job.status = RemoteJobStatus.CANCELLED
        logger.info(f"Cancelled remote job {mask_token(remote_job_id)}")
        return True
