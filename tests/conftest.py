"""Pytest configuration and fixtures."""

import asyncio
import json
from datetime import date

import httpx
import pytest

from domains.reminders.platform import NotificationFacility, PushPlatform, ReminderSource, SoundPlayer
from domains.reminders.subscription import SubscriptionStateMachine
from domains.reminders.types import PermissionStatus, Reminder, ReminderKind


class FakePushPlatform(PushPlatform):
    """In-memory push SDK that counts prompts, registrations and logins."""

    def __init__(self, permission=PermissionStatus.DEFAULT, grant=True, token=None,
                 registered_token="device-token-1234", prompt_delay=0.0):
        self.permission = permission
        self.grant = grant
        self.token = token
        self.registered_token = registered_token
        self.prompt_delay = prompt_delay
        self.status_error = None
        self.prompts = 0
        self.registrations = 0
        self.logins = []

    async def permission_status(self):
        if self.status_error is not None:
            error, self.status_error = self.status_error, None
            raise error
        return self.permission

    async def request_permission(self):
        self.prompts += 1
        if self.prompt_delay:
            await asyncio.sleep(self.prompt_delay)
        self.permission = PermissionStatus.GRANTED if self.grant else PermissionStatus.DENIED
        return self.grant

    async def device_token(self):
        return self.token

    async def register_device(self):
        self.registrations += 1
        self.token = self.registered_token
        return self.token

    async def login(self, external_user_id):
        self.logins.append(external_user_id)


class FakeFacility(NotificationFacility):
    def __init__(self, permission=PermissionStatus.GRANTED, fail=False):
        self.permission = permission
        self.fail = fail
        self.shown = []

    async def permission_status(self):
        return self.permission

    async def request_permission(self):
        self.permission = PermissionStatus.GRANTED
        return True

    async def show(self, title, body, tag, data=None):
        if self.fail:
            raise RuntimeError("notification facility unavailable")
        self.shown.append({"title": title, "body": body, "tag": tag, "data": data})


class FakeSound(SoundPlayer):
    def __init__(self, custom_fails=False):
        self.custom_fails = custom_fails
        self.default_plays = 0
        self.custom_plays = []

    def play_default(self):
        self.default_plays += 1

    def play_custom(self, url):
        if self.custom_fails:
            raise RuntimeError("could not decode audio")
        self.custom_plays.append(url)


class FakeSource(ReminderSource):
    def __init__(self, reminders=None):
        self.reminders = list(reminders or [])
        self.error = None

    async def list_reminders(self):
        if self.error is not None:
            raise self.error
        return list(self.reminders)


class GatewayRecorder:
    """httpx.MockTransport handler imitating the push gateway.

    `responses` is consumed in order; once empty every POST gets a fresh job id
    and every DELETE succeeds.
    """

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.requests = []
        self._next_id = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        if request.method == "DELETE":
            return httpx.Response(200, json={"success": True})
        self._next_id += 1
        return httpx.Response(200, json={"id": f"job-{self._next_id:04d}", "recipients": 1})

    @property
    def posts(self):
        return [r for r in self.requests if r.method == "POST"]

    @property
    def deletes(self):
        return [r for r in self.requests if r.method == "DELETE"]

    def payload(self, index=-1):
        return json.loads(self.posts[index].content)


@pytest.fixture
def push_platform():
    return FakePushPlatform()


@pytest.fixture
def facility():
    return FakeFacility()


@pytest.fixture
def sound():
    return FakeSound()


@pytest.fixture
def gateway_recorder():
    return GatewayRecorder()


@pytest.fixture
def make_subscription():
    """Factory for a subscription machine, linked to "user-1" by default."""
    async def _make(linked=True, external_user_id="user-1"):
        platform = FakePushPlatform(permission=PermissionStatus.GRANTED, token="device-token-1234")
        machine = SubscriptionStateMachine(platform)
        await machine.initialize()
        if linked:
            await machine.link(external_user_id)
        return machine
    return _make


@pytest.fixture
def make_medication():
    def _make(**overrides):
        fields = {
            "id": "med-1",
            "kind": ReminderKind.MEDICATION,
            "name": "Aspirin",
            "times": ["08:00"],
            "start_date": date(2024, 3, 1),
            "dosage": "100mg",
        }
        fields.update(overrides)
        return Reminder(**fields)
    return _make


@pytest.fixture
def make_appointment():
    def _make(**overrides):
        fields = {
            "id": "appt-1",
            "kind": ReminderKind.APPOINTMENT,
            "name": "Checkup",
            "times": ["14:00"],
            "start_date": date(2024, 3, 1),
            "doctor_name": "Smith",
            "location": "City Clinic",
            "appointment_date": date(2024, 3, 10),
            "reminder_advance_hours": 2,
        }
        fields.update(overrides)
        return Reminder(**fields)
    return _make


@pytest.fixture
def sleeps():
    """Sleep replacement that records requested delays."""
    recorded = []

    async def _sleep(delay):
        recorded.append(delay)

    _sleep.recorded = recorded
    return _sleep


@pytest.fixture
def source():
    return FakeSource()
