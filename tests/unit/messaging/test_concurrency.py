import asyncio

import pytest

from src.messaging.application.commands import SendMessageCommand
from src.messaging.application.worker.retry_scheduler import RetryScheduler
from src.messaging.domain.exceptions import TransientProviderError
from src.messaging.domain.value_objects import MessageDirection, MessageStatus, Reactor
from tests.conftest import ScriptedProvider, receive_text

DAVE = "447700900001"


class GatedProvider(ScriptedProvider):
    """Holds every attempt at a gate until the test opens it."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()
        self.gate.set()
        self.waiting = 0

    async def attempt_send(self, destination, payload, credentials):
        self.waiting += 1
        await self.gate.wait()
        self.waiting -= 1
        return await super().attempt_send(destination, payload, credentials)


@pytest.fixture
def provider():
    return GatedProvider()


@pytest.fixture
async def open_window(container, tenant, conversation):
    await receive_text(container, tenant, DAVE, "Here", "wamid.IN1")
    return conversation


async def _until(predicate):
    for _ in range(200):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


async def _still_blocked(task):
    for _ in range(20):
        await asyncio.sleep(0)
    return not task.done()


def _text(conversation, content):
    return SendMessageCommand(conversation_id=conversation.id, sender_user_id="staff-1", content=content)


async def _outbound(container, conversation):
    messages = await container.messages.list_for_conversation(conversation.id)
    return [m for m in messages if m.direction is MessageDirection.OUTBOUND]


async def test_two_staff_sends_into_one_conversation(container, tenant, open_window, provider):
    provider.gate.clear()
    sends = asyncio.gather(
        container.orchestrator.send(tenant, _text(open_window, "Bay 4")),
        container.orchestrator.send(tenant, _text(open_window, "Bay 5 instead")),
    )
    await _until(lambda: provider.waiting == 2)

    pending = await _outbound(container, open_window)
    assert [m.status for m in pending] == [MessageStatus.PENDING, MessageStatus.PENDING]

    provider.gate.set()
    first, second = await sends

    assert first.id != second.id
    assert first.status is MessageStatus.SENT and second.status is MessageStatus.SENT
    (first_recipient,) = await container.recipients.list_for_message(first.id)
    (second_recipient,) = await container.recipients.list_for_message(second.id)
    assert {first_recipient.provider_message_id, second_recipient.provider_message_id} == {"wamid.OUT1", "wamid.OUT2"}
    conversation = await container.conversations.get(open_window.id)
    assert conversation.is_answered
    assert conversation.last_inbound_message_at == container.clock()
    assert len(container.locks) == 0


async def test_read_ack_waits_for_inflight_send(container, tenant, open_window, provider, clock):
    provider.gate.clear()
    send = asyncio.ensure_future(container.orchestrator.send(tenant, _text(open_window, "Bay 4")))
    await _until(lambda: provider.waiting == 1)
    (message,) = await _outbound(container, open_window)
    (recipient,) = await container.recipients.list_for_message(message.id)

    read_at = clock.advance(seconds=30)
    ack = asyncio.ensure_future(container.delivery.acknowledge_read(recipient.id, read_at))
    assert await _still_blocked(ack)
    assert recipient.status is MessageStatus.PENDING

    provider.gate.set()
    await send
    assert await ack is True

    assert recipient.status is MessageStatus.READ
    assert recipient.provider_message_id == "wamid.OUT1"
    assert recipient.delivered_at == read_at and recipient.read_at == read_at
    assert message.status is MessageStatus.READ


async def test_pin_and_react_serialize_behind_send(container, tenant, open_window, provider):
    provider.gate.clear()
    send = asyncio.ensure_future(container.orchestrator.send(tenant, _text(open_window, "Bay 4")))
    await _until(lambda: provider.waiting == 1)
    (message,) = await _outbound(container, open_window)

    pin = asyncio.ensure_future(container.interactions.pin(tenant, message.id, True))
    react = asyncio.ensure_future(container.interactions.react(tenant, message.id, Reactor.staff("staff-2"), "👍"))
    assert await _still_blocked(pin)
    assert await _still_blocked(react)
    assert not message.is_pinned

    provider.gate.set()
    await asyncio.gather(send, pin, react)

    assert message.status is MessageStatus.SENT
    assert message.is_pinned
    (reaction,) = await container.interactions.list_reactions(tenant, message.id)
    assert reaction.emoji == "👍"


async def test_retry_racing_delivery_callback_never_moves_backwards(container, tenant, open_window, provider, clock):
    provider.script(DAVE, TransientProviderError("131000", "Something went wrong"))
    message = await container.orchestrator.send(tenant, _text(open_window, "Bay 4"))
    assert message.status is MessageStatus.FAILED
    (recipient,) = await container.recipients.list_for_message(message.id)
    scheduler = RetryScheduler(container.messages, container.delivery, poll_interval=0.01, batch_size=10, clock=clock)

    clock.advance(seconds=2)
    provider.gate.clear()
    retry = asyncio.ensure_future(scheduler.run_once())
    await _until(lambda: provider.waiting == 1)

    delivered_at = clock.advance(seconds=1)
    ack = asyncio.ensure_future(container.delivery.acknowledge_delivery(recipient.id, delivered_at))
    assert await _still_blocked(ack)

    provider.gate.set()
    assert await retry == 1
    assert await ack is True

    assert recipient.status is MessageStatus.DELIVERED
    assert message.status is MessageStatus.DELIVERED
    assert message.retry_count == 1

    # a second pass finds nothing due and leaves the callback's progress intact
    clock.advance(minutes=5)
    assert await scheduler.run_once() == 0
    assert message.status is MessageStatus.DELIVERED
    assert len(provider.calls) == 2
