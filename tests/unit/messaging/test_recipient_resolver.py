import pytest

from src.messaging.domain.entities.conversation import Conversation
from src.messaging.domain.entities.driver import Driver
from src.messaging.domain.entities.group import Group, GroupParticipant
from src.messaging.domain.exceptions import NoDriverAssignedError, NoRecipientsError
from src.messaging.domain.services import RecipientResolver
from src.messaging.domain.value_objects import ConversationKind, DestinationKind
from src.messaging.infrastructure.repositories.in_memory import InMemoryDriverRepository, InMemoryGroupRepository


@pytest.fixture
def drivers():
    return InMemoryDriverRepository()


@pytest.fixture
def groups():
    return InMemoryGroupRepository()


@pytest.fixture
def resolver(drivers, groups):
    return RecipientResolver(drivers, groups)


async def _group(groups, *participants):
    group = await groups.add(Group(team_id=1, name="Depot"))
    added = [await groups.add_participant(GroupParticipant(group_id=group.id, **p)) for p in participants]
    conversation = Conversation(team_id=1, kind=ConversationKind.GROUP, group_id=group.id, id=10)
    return conversation, added


async def test_individual_resolves_to_driver(resolver, drivers):
    d = await drivers.add(Driver(team_id=1, name="Dave", phone_number="447700900001"))
    conversation = Conversation(team_id=1, kind=ConversationKind.INDIVIDUAL, driver_id=d.id, id=1)
    [dest] = await resolver.resolve(conversation)
    assert dest.kind is DestinationKind.DRIVER
    assert (dest.driver_id, dest.phone, dest.display_name) == (d.id, "447700900001", "Dave")


async def test_individual_without_driver(resolver):
    conversation = Conversation(team_id=1, kind=ConversationKind.INDIVIDUAL, id=1)
    with pytest.raises(NoDriverAssignedError):
        await resolver.resolve(conversation)


async def test_individual_with_missing_driver_row(resolver):
    conversation = Conversation(team_id=1, kind=ConversationKind.INDIVIDUAL, driver_id=99, id=1)
    with pytest.raises(NoDriverAssignedError):
        await resolver.resolve(conversation)


async def test_group_skips_inactive_in_join_order(resolver, groups):
    conversation, (a, b, c) = await _group(
        groups,
        {"phone_number": "447700900011", "participant_name": "A"},
        {"phone_number": "447700900012", "participant_name": "B"},
        {"phone_number": "447700900013", "participant_name": "C", "is_active": False},
    )
    dests = await resolver.resolve(conversation)
    assert [d.participant_id for d in dests] == [a.id, b.id]


async def test_group_excludes_sender(resolver, groups):
    conversation, (a, b, c) = await _group(
        groups,
        {"phone_number": "447700900011"},
        {"phone_number": "447700900012"},
        {"phone_number": "447700900013", "is_active": False},
    )
    dests = await resolver.resolve(conversation, sender_participant_id=a.id)
    assert [d.participant_id for d in dests] == [b.id]


async def test_driver_participant_uses_driver_phone(resolver, drivers, groups):
    d = await drivers.add(Driver(team_id=1, name="Alice", phone_number="447700900021"))
    conversation, (p,) = await _group(groups, {"driver_id": d.id})
    [dest] = await resolver.resolve(conversation)
    assert dest.kind is DestinationKind.PARTICIPANT
    assert (dest.phone, dest.driver_id, dest.display_name) == ("447700900021", d.id, "Alice")


async def test_removed_participant_is_not_resolved(resolver, groups):
    conversation, (a, b) = await _group(groups, {"phone_number": "447700900011"}, {"phone_number": "447700900012"})
    b.remove()
    dests = await resolver.resolve(conversation)
    assert [d.participant_id for d in dests] == [a.id]


async def test_empty_group_is_not_an_error(resolver, groups):
    conversation, _ = await _group(groups)
    assert await resolver.resolve(conversation) == []


async def test_missing_group(resolver):
    conversation = Conversation(team_id=1, kind=ConversationKind.GROUP, group_id=42, id=1)
    with pytest.raises(NoRecipientsError):
        await resolver.resolve(conversation)
