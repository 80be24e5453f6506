import pytest

from src.messaging.application.commands import SendMessageCommand
from src.messaging.domain.entities.driver import Driver
from src.messaging.domain.exceptions import InvalidReplyTargetError, MessageDeletedError
from src.messaging.domain.value_objects import MessageDirection, Reactor
from src.tenancy.domain.exceptions import TenantMismatchError
from tests.conftest import receive_text

DAVE = "447700900001"


@pytest.fixture
async def incoming(container, tenant, conversation):
    return await receive_text(container, tenant, DAVE, "Gate code is 4411", "wamid.IN1")


@pytest.fixture
def updates(container):
    seen = []

    async def collect(event):
        seen.append(event.change)

    container.event_bus.subscribe("MessageUpdated", collect)
    return seen


async def test_reaction_is_replaced_per_reactor(container, tenant, incoming):
    staff = Reactor.staff("staff-1")
    await container.interactions.react(tenant, incoming.id, staff, "👍")
    await container.interactions.react(tenant, incoming.id, staff, "❤️")
    await container.interactions.react(tenant, incoming.id, Reactor.driver(incoming.sender_driver_id), "🙏")

    reactions = await container.interactions.list_reactions(tenant, incoming.id)
    assert sorted((r.reactor.key, r.emoji) for r in reactions) == [
        (f"driver:{incoming.sender_driver_id}", "🙏"),
        ("user:staff-1", "❤️"),
    ]


async def test_remove_reaction(container, tenant, incoming):
    staff = Reactor.staff("staff-1")
    await container.interactions.react(tenant, incoming.id, staff, "👍")

    assert await container.interactions.remove_reaction(tenant, incoming.id, staff) is True
    assert await container.interactions.remove_reaction(tenant, incoming.id, staff) is False
    assert await container.interactions.list_reactions(tenant, incoming.id) == []


async def test_deleted_message_stays_readable_but_frozen(container, tenant, incoming, conversation):
    await container.interactions.react(tenant, incoming.id, Reactor.staff("staff-1"), "👍")
    deleted = await container.interactions.soft_delete(tenant, incoming.id, "staff-2")

    assert deleted.is_deleted and deleted.content == "Gate code is 4411"
    with pytest.raises(MessageDeletedError):
        await container.interactions.react(tenant, incoming.id, Reactor.staff("staff-1"), "😮")
    with pytest.raises(MessageDeletedError):
        await container.interactions.pin(tenant, incoming.id, True)
    with pytest.raises(MessageDeletedError):
        await container.interactions.forward(tenant, incoming.id, [conversation.id], "staff-1")
    assert len(await container.interactions.list_reactions(tenant, incoming.id)) == 1


async def test_pin_and_star_publish_only_on_change(container, tenant, incoming, clock, updates):
    message = await container.interactions.pin(tenant, incoming.id, True)
    await container.interactions.pin(tenant, incoming.id, True)
    await container.interactions.star(tenant, incoming.id, True)
    await container.interactions.star(tenant, incoming.id, False)

    assert message.is_pinned and message.pinned_at == clock()
    assert message.is_starred is False and message.starred_at is None
    assert updates == ["pinned", "starred", "unstarred"]


async def test_other_team_cannot_touch_message(container, tenant, other_tenant, incoming):
    with pytest.raises(TenantMismatchError):
        await container.interactions.star(other_tenant, incoming.id, True)


async def test_forward_reports_each_target(container, tenant, incoming, provider):
    eve = await container.drivers.add(Driver(team_id=tenant.team_id, name="Eve", phone_number="447700900002"))
    frank = await container.drivers.add(Driver(team_id=tenant.team_id, name="Frank", phone_number="447700900003"))
    await receive_text(container, tenant, eve.phone_number, "Ready", "wamid.IN2")
    open_target = await container.orchestrator.ensure_driver_conversation(tenant, eve.id)
    closed_target = await container.orchestrator.ensure_driver_conversation(tenant, frank.id)

    outcomes = await container.interactions.forward(
        tenant, incoming.id, [open_target.id, closed_target.id, 999, open_target.id], "staff-1", sender_name="Dispatch"
    )

    assert [(o.conversation_id, o.succeeded, o.error_code) for o in outcomes] == [
        (open_target.id, True, None),
        (closed_target.id, False, "window_closed"),
        (999, False, "conversation_not_found"),
    ]
    copy = await container.messages.get(outcomes[0].message_id)
    assert copy.forwarded_from_message_id == incoming.id
    assert copy.direction is MessageDirection.OUTBOUND
    assert copy.content == "Gate code is 4411"
    assert incoming.forward_count == 1
    assert provider.sent_to() == [eve.phone_number]


async def test_forward_with_override_content(container, tenant, incoming, conversation):
    outcomes = await container.interactions.forward(
        tenant, incoming.id, [conversation.id], "staff-1", override_content="FYI: gate code changed"
    )

    copy = await container.messages.get(outcomes[0].message_id)
    assert copy.content == "FYI: gate code changed"


async def test_reply_uses_same_conversation(container, tenant, incoming, conversation):
    reply = await container.interactions.reply(
        tenant,
        incoming.id,
        SendMessageCommand(conversation_id=conversation.id, sender_user_id="staff-1", content="Thanks"),
    )

    assert reply.reply_to_message_id == incoming.id
    assert reply.reply_snapshot.sender_name == "Dave"


async def test_reply_across_conversations_is_refused(container, tenant, incoming):
    eve = await container.drivers.add(Driver(team_id=tenant.team_id, name="Eve", phone_number="447700900002"))
    await receive_text(container, tenant, eve.phone_number, "Ready", "wamid.IN2")
    other = await container.orchestrator.ensure_driver_conversation(tenant, eve.id)

    with pytest.raises(InvalidReplyTargetError):
        await container.interactions.reply(
            tenant,
            incoming.id,
            SendMessageCommand(conversation_id=other.id, sender_user_id="staff-1", content="Thanks"),
        )
