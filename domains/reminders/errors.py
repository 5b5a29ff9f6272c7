"""Reminder engine exceptions.

Gateway failures are split by what the caller should do next:

- GatewayConfigurationError: credentials missing/rejected. Fatal, disables the
  remote channel for the session.
- UnlinkedTargetError: the gateway has no valid subscription for the target.
  Fatal for this occurrence, fall back locally.
- TransientGatewayError: network trouble or 5xx/429. Retry with backoff.
- PermanentGatewayError: the gateway rejected the payload. Surface, no retry.

A denied notification permission is not an exception; it is the DENIED
subscription state.
"""

from typing import Optional


class ReminderEngineError(Exception):
    """Base class for reminder engine errors."""


class InvalidReminderError(ReminderEngineError, ValueError):
    """Reminder record violates its invariants."""


class SubscriptionPreconditionError(ReminderEngineError, RuntimeError):
    """A subscription operation was attempted in a state that does not allow it."""


class ChannelUnavailableError(ReminderEngineError):
    """Remote channel cannot be used (subscription not linked or remote disabled)."""


class GatewayError(ReminderEngineError):
    """Push gateway call failed."""

    retryable = False

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GatewayConfigurationError(GatewayError):
    """Gateway credentials are missing or were rejected."""


class UnlinkedTargetError(GatewayError):
    """Target user has no valid push subscription on the gateway."""


class TransientGatewayError(GatewayError):
    """Network failure, timeout, rate limit or 5xx."""

    retryable = True


class PermanentGatewayError(GatewayError):
    """Gateway rejected the request; retrying will not help."""


class LocalDeliveryError(ReminderEngineError):
    """Local notification could not be rendered."""
