from collections import defaultdict, deque
from datetime import datetime, timedelta, timezone

import pytest

from src.config import Settings
from src.dependencies import Container
from src.messaging.application.commands import ReceiveMessageCommand
from src.messaging.domain.entities.driver import Driver
from src.messaging.domain.entities.group import Group, GroupParticipant

T0 = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start=T0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


class ScriptedProvider:
    """
    Provider client double. Outcomes are queued per destination phone:
    an exception instance is raised, anything else is returned as the
    provider message id. With nothing queued it accepts with a fresh id.
    """

    def __init__(self):
        self.calls = []
        self._script = defaultdict(deque)
        self._seq = 0

    def script(self, phone, *outcomes):
        self._script[phone].extend(outcomes)

    async def attempt_send(self, destination, payload, credentials):
        self.calls.append((destination, payload, credentials))
        queue = self._script[destination.phone]
        outcome = queue.popleft() if queue else None
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            self._seq += 1
            outcome = f"wamid.OUT{self._seq}"
        return outcome

    def sent_to(self):
        return [d.phone for d, _, _ in self.calls]


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def provider():
    return ScriptedProvider()


@pytest.fixture
def settings():
    return Settings(
        TESTING=True,
        ENABLE_RETRY_WORKER=False,
        LOG_JSON=False,
        WHATSAPP_APP_SECRET="test-app-secret",
        WHATSAPP_VERIFY_TOKEN="verify-me",
        RETRY_MAX_ATTEMPTS=3,
        RETRY_BASE_SECONDS=1,
        RETRY_MAX_SECONDS=30,
        PROVIDER_TIMEOUT_SECONDS=2,
    )


@pytest.fixture
def container(settings, provider, clock):
    return Container(settings, provider=provider, clock=clock)


@pytest.fixture
async def tenant(container):
    return await container.tenants.register(
        name="Acme Haulage",
        phone_number_id="PNID1",
        access_token="token-acme",
        country_code="44",
    )


@pytest.fixture
async def other_tenant(container):
    return await container.tenants.register(
        name="Other Freight",
        phone_number_id="PNID2",
        access_token="token-other",
        country_code="44",
    )


@pytest.fixture
async def driver(container, tenant):
    return await container.drivers.add(Driver(team_id=tenant.team_id, name="Dave", phone_number="447700900001"))


@pytest.fixture
async def conversation(container, tenant, driver):
    return await container.orchestrator.ensure_driver_conversation(tenant, driver.id)


@pytest.fixture
async def group_setup(container, tenant):
    """Group with participants A (driver), B (raw phone) and C (inactive)."""
    group = await container.groups.add(Group(team_id=tenant.team_id, name="Night shift", whatsapp_group_id="GRP-1"))
    alice = await container.drivers.add(Driver(team_id=tenant.team_id, name="Alice", phone_number="447700900011"))
    a = await container.groups.add_participant(GroupParticipant(group_id=group.id, driver_id=alice.id))
    b = await container.groups.add_participant(
        GroupParticipant(group_id=group.id, phone_number="447700900012", participant_name="Bob")
    )
    c = await container.groups.add_participant(
        GroupParticipant(group_id=group.id, phone_number="447700900013", participant_name="Carol", is_active=False)
    )
    conversation = await container.orchestrator.ensure_group_conversation(tenant, group.id)
    return group, conversation, (a, b, c)


async def receive_text(container, tenant, phone, text, provider_message_id, at=None):
    """Inbound text from a driver, as the webhook would hand it over."""
    return await container.orchestrator.receive_inbound(
        tenant,
        ReceiveMessageCommand(
            from_phone=phone,
            timestamp=at or container.clock(),
            content=text,
            provider_message_id=provider_message_id,
        ),
    )
