import pytest

from src.messaging.application.commands import ReceiveMessageCommand
from src.messaging.domain.value_objects import MessageStatus


@pytest.fixture
def settings(settings):
    return settings.model_copy(update={"GROUP_RELAY_ENABLED": True})


def _from_group(phone, text, provider_message_id, at, group_id="GRP-1", name=None):
    return ReceiveMessageCommand(
        from_phone=f"{phone}@c.us",
        timestamp=at,
        content=text,
        provider_message_id=provider_message_id,
        sender_name=name,
        whatsapp_group_id=group_id,
    )


async def test_group_message_relayed_to_other_active_members(container, tenant, group_setup, provider, clock):
    group, conversation, (a, b, c) = group_setup

    message = await container.orchestrator.receive_inbound(
        tenant, _from_group("447700900012", "Traffic on the M6", "wamid.G1", clock())
    )

    assert message.sender_participant_id == b.id
    assert message.sender_name == "Bob"
    assert message.status is MessageStatus.SENT
    assert provider.sent_to() == ["447700900011"]
    assert conversation.last_inbound_message_at == clock()


async def test_unknown_member_is_added_then_relayed(container, tenant, group_setup, provider, clock):
    group, _, (a, b, c) = group_setup

    message = await container.orchestrator.receive_inbound(
        tenant, _from_group("447700900014", "Joining tonight", "wamid.G2", clock(), name="Dan")
    )

    participants = await container.groups.list_participants(group.id)
    dan = participants[-1]
    assert (dan.phone_number, dan.participant_name) == ("447700900014", "Dan")
    assert message.sender_participant_id == dan.id
    assert sorted(provider.sent_to()) == ["447700900011", "447700900012"]


async def test_unknown_group_is_ignored(container, tenant, group_setup, provider, clock):
    result = await container.orchestrator.receive_inbound(
        tenant, _from_group("447700900012", "Hello?", "wamid.G3", clock(), group_id="GRP-404")
    )

    assert result is None
    assert provider.calls == []
