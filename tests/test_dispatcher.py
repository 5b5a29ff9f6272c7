"""Tests for two-tier delivery dispatch."""

from datetime import date
from unittest.mock import AsyncMock, Mock

import pytest

from domains.reminders.dispatcher import DeliveryDispatcher, backoff_delay, schedule_with_retry
from domains.reminders.errors import (
    ChannelUnavailableError,
    GatewayConfigurationError,
    PermanentGatewayError,
    TransientGatewayError,
    UnlinkedTargetError,
)
from domains.reminders.jobs import RemoteJobRegistry
from domains.reminders.local import LocalNotifier
from domains.reminders.recurrence import occurrences_on
from domains.reminders.types import (
    DeliveryOutcome,
    DeliveryRequest,
    PermissionStatus,
    RemoteJob,
)


@pytest.fixture
def request_for(make_medication):
    reminder = make_medication()
    occurrence = occurrences_on(reminder, date(2024, 3, 10))[0]
    return DeliveryRequest(reminder=reminder, occurrence=occurrence)


@pytest.fixture
def gateway(request_for):
    gateway = Mock()
    gateway.schedule = AsyncMock(return_value=RemoteJob(
        reminder_id="med-1",
        occurrence_key=request_for.key,
        remote_job_id="job-0001",
        scheduled_at=request_for.occurrence.due_at,
    ))
    return gateway


@pytest.fixture
def make_dispatcher(gateway, facility, sound, sleeps):
    def _make(subscription, registry=None):
        return DeliveryDispatcher(
            subscription,
            gateway,
            LocalNotifier(facility, sound),
            registry or RemoteJobRegistry(),
            max_attempts=3,
            backoff_base=1.0,
            backoff_max=8.0,
            sleep=sleeps,
        )
    return _make


class TestBackoff:
    """Test backoff schedule."""

    def test_doubles_and_caps(self):
        assert [backoff_delay(n, 1.0, 8.0) for n in range(1, 6)] == [1.0, 2.0, 4.0, 8.0, 8.0]

    @pytest.mark.asyncio
    async def test_non_transient_not_retried(self, gateway, request_for, sleeps):
        gateway.schedule.side_effect = PermanentGatewayError("bad payload", 400)

        with pytest.raises(PermanentGatewayError):
            await schedule_with_retry(gateway, "med-1", request_for.key, Mock(),
                                      request_for.occurrence.due_at, max_attempts=3, sleep=sleeps)
        assert gateway.schedule.await_count == 1
        assert sleeps.recorded == []


class TestChannelSelection:
    """Test channel choice from subscription state."""

    @pytest.mark.asyncio
    async def test_not_linked_goes_local(self, make_subscription, make_dispatcher, gateway, facility, request_for):
        dispatcher = make_dispatcher(await make_subscription(linked=False))

        outcome = await dispatcher.deliver(request_for)

        assert outcome == DeliveryOutcome.LOCAL
        gateway.schedule.assert_not_awaited()
        assert facility.shown[0]["title"] == "Medication: Aspirin"
        assert facility.shown[0]["tag"] == "med-1:2024-03-10:08:00"

    @pytest.mark.asyncio
    async def test_linked_goes_remote(self, make_subscription, make_dispatcher, gateway, facility, request_for):
        dispatcher = make_dispatcher(await make_subscription())

        outcome = await dispatcher.deliver(request_for)

        assert outcome == DeliveryOutcome.REMOTE
        gateway.schedule.assert_awaited_once()
        assert facility.shown == []

    @pytest.mark.asyncio
    async def test_prescheduled_job_not_resent(self, make_subscription, make_dispatcher, gateway, request_for):
        registry = RemoteJobRegistry()
        registry.add(RemoteJob("med-1", request_for.key, "job-0042", request_for.occurrence.due_at))
        dispatcher = make_dispatcher(await make_subscription(), registry)

        outcome = await dispatcher.deliver(request_for)

        assert outcome == DeliveryOutcome.REMOTE_PRESCHEDULED
        gateway.schedule.assert_not_awaited()


class TestFallback:
    """Test demotion to local delivery."""

    @pytest.mark.asyncio
    async def test_transient_exhaustion_falls_back(self, make_subscription, make_dispatcher, gateway,
                                                   facility, sleeps, request_for):
        gateway.schedule.side_effect = TransientGatewayError("HTTP 503", 503)
        dispatcher = make_dispatcher(await make_subscription())

        outcome = await dispatcher.deliver(request_for)

        assert outcome == DeliveryOutcome.LOCAL
        assert gateway.schedule.await_count == 3
        assert sleeps.recorded == [1.0, 2.0]
        assert len(facility.shown) == 1

    @pytest.mark.asyncio
    async def test_transient_then_success(self, make_subscription, make_dispatcher, gateway,
                                          facility, request_for):
        job = gateway.schedule.return_value
        gateway.schedule.side_effect = [TransientGatewayError("timeout"), TransientGatewayError("timeout"), job]
        dispatcher = make_dispatcher(await make_subscription())

        outcome = await dispatcher.deliver(request_for)

        assert outcome == DeliveryOutcome.REMOTE
        assert gateway.schedule.await_count == 3
        assert facility.shown == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [
        UnlinkedTargetError("not subscribed", 400),
        PermanentGatewayError("bad payload", 400),
        ChannelUnavailableError("subscription is denied"),
    ])
    async def test_fatal_errors_fall_back_once(self, make_subscription, make_dispatcher, gateway,
                                               facility, sleeps, request_for, error):
        gateway.schedule.side_effect = error
        dispatcher = make_dispatcher(await make_subscription())

        outcome = await dispatcher.deliver(request_for)

        assert outcome == DeliveryOutcome.LOCAL
        assert gateway.schedule.await_count == 1
        assert sleeps.recorded == []
        assert len(facility.shown) == 1
        assert dispatcher.remote_enabled is True

    @pytest.mark.asyncio
    async def test_configuration_error_disables_remote(self, make_subscription, make_dispatcher, gateway,
                                                       request_for):
        gateway.schedule.side_effect = GatewayConfigurationError("bad key", 401)
        dispatcher = make_dispatcher(await make_subscription())

        assert await dispatcher.deliver(request_for) == DeliveryOutcome.LOCAL
        assert dispatcher.remote_enabled is False
        assert dispatcher.remote_disabled_reason == "bad key"

        assert await dispatcher.deliver(request_for) == DeliveryOutcome.LOCAL
        assert gateway.schedule.await_count == 1

    @pytest.mark.asyncio
    async def test_local_failure_reported(self, make_subscription, make_dispatcher, facility, request_for):
        facility.permission = PermissionStatus.DENIED
        dispatcher = make_dispatcher(await make_subscription(linked=False))

        assert await dispatcher.deliver(request_for) == DeliveryOutcome.LOCAL_FAILED
