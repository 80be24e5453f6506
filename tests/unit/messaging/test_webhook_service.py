import pytest

from src.messaging.application.commands import SendMessageCommand
from src.messaging.domain.exceptions import InvalidWebhookSignatureError, WebhookVerificationError
from src.messaging.domain.value_objects import MessageStatus, MessageType, WebhookSignature
from tests.conftest import receive_text

DAVE = "447700900001"


def _envelope(phone_number_id="PNID1", messages=(), statuses=(), contacts=()):
    value = {"messaging_product": "whatsapp", "metadata": {"phone_number_id": phone_number_id}}
    if messages:
        value["messages"] = list(messages)
    if statuses:
        value["statuses"] = list(statuses)
    if contacts:
        value["contacts"] = list(contacts)
    return {"object": "whatsapp_business_account", "entry": [{"id": "WABA", "changes": [{"field": "messages", "value": value}]}]}


def _ts(clock):
    return str(int(clock().timestamp()))


def _text(wamid, body, clock, sender=DAVE, **extra):
    return {"from": sender, "id": wamid, "timestamp": _ts(clock), "type": "text", "text": {"body": body}, **extra}


@pytest.fixture
def svc(container):
    return container.webhooks


@pytest.fixture
async def sent(container, tenant, conversation):
    await receive_text(container, tenant, DAVE, "Here", "wamid.IN0")
    return await container.orchestrator.send(
        tenant, SendMessageCommand(conversation_id=conversation.id, sender_user_id="staff-1", content="Bay 4")
    )


# ------------------------------------------------------------ verification

def test_subscription_handshake(svc):
    assert svc.verify_subscription("subscribe", "verify-me", "12345") == "12345"
    with pytest.raises(WebhookVerificationError):
        svc.verify_subscription("subscribe", "wrong", "12345")
    with pytest.raises(WebhookVerificationError):
        svc.verify_subscription("unsubscribe", "verify-me", "12345")


def test_signature_checked_against_app_secret(svc):
    body = b'{"entry": []}'
    svc.verify_signature(body, WebhookSignature.sign(body, "test-app-secret").signature)
    with pytest.raises(InvalidWebhookSignatureError):
        svc.verify_signature(body, WebhookSignature.sign(body, "other-secret").signature)
    with pytest.raises(InvalidWebhookSignatureError):
        svc.verify_signature(body, None)


# ----------------------------------------------------------------- messages

async def test_text_message_recorded_with_profile_name(container, svc, tenant, clock):
    result = await svc.process_webhook(
        _envelope(
            messages=[_text("wamid.A1", "Arrived at depot", clock, sender="447700900055")],
            contacts=[{"wa_id": "447700900055", "profile": {"name": "Gina"}}],
        )
    )

    assert (result.messages, result.ignored) == (1, 0)
    message = await container.messages.get_by_provider_message_id(tenant.team_id, "wamid.A1")
    assert message.content == "Arrived at depot"
    assert message.sender_name == "Gina"
    driver = await container.drivers.get_by_phone(tenant.team_id, "447700900055")
    assert driver.name == "Gina"


async def test_redelivered_message_is_stored_once(container, svc, tenant, conversation, clock):
    payload = _envelope(messages=[_text("wamid.A1", "Arrived", clock)])
    await svc.process_webhook(payload)
    await svc.process_webhook(payload)

    assert len(await container.messages.list_for_conversation(conversation.id)) == 1


async def test_unknown_phone_number_id_is_ignored(svc, tenant, clock):
    result = await svc.process_webhook(_envelope("PNID-UNKNOWN", messages=[_text("wamid.A1", "Hi", clock)]))

    assert (result.messages, result.ignored) == (0, 1)


async def test_media_and_location_payloads(container, svc, tenant, clock):
    image = {
        "from": DAVE, "id": "wamid.M1", "timestamp": _ts(clock), "type": "image",
        "image": {"id": "MEDIA-1", "mime_type": "image/jpeg", "caption": "Damaged pallet"},
    }
    location = {
        "from": DAVE, "id": "wamid.M2", "timestamp": _ts(clock), "type": "location",
        "location": {"latitude": 52.48, "longitude": -1.89, "name": "Birmingham DC"},
    }
    result = await svc.process_webhook(_envelope(messages=[image, location]))

    assert result.messages == 2
    stored_image = await container.messages.get_by_provider_message_id(tenant.team_id, "wamid.M1")
    assert stored_image.message_type is MessageType.IMAGE
    assert stored_image.content == "Damaged pallet"
    assert stored_image.payload == {"media_id": "MEDIA-1", "mime_type": "image/jpeg"}
    stored_location = await container.messages.get_by_provider_message_id(tenant.team_id, "wamid.M2")
    assert stored_location.content == "Birmingham DC"
    assert stored_location.payload["latitude"] == 52.48


async def test_bad_items_are_skipped_not_fatal(container, svc, tenant, clock):
    sticker = {"from": DAVE, "id": "wamid.S1", "timestamp": _ts(clock), "type": "sticker", "sticker": {"id": "X"}}
    no_sender = _text("wamid.S2", "Who am I", clock, sender="")
    good = _text("wamid.S3", "Fine", clock)

    result = await svc.process_webhook(_envelope(messages=[sticker, no_sender, good]))

    assert (result.messages, result.ignored) == (1, 2)


# ---------------------------------------------------------------- reactions

async def test_driver_reaction_added_and_removed(container, svc, tenant, sent, clock):
    def reaction(wamid, emoji):
        return {
            "from": DAVE, "id": wamid, "timestamp": _ts(clock), "type": "reaction",
            "reaction": {"message_id": "wamid.OUT1", "emoji": emoji},
        }

    result = await svc.process_webhook(_envelope(messages=[reaction("wamid.R1", "👍")]))
    assert result.reactions == 1
    (stored,) = await container.interactions.list_reactions(tenant, sent.id)
    assert stored.emoji == "👍" and not stored.reactor.is_staff

    await svc.process_webhook(_envelope(messages=[reaction("wamid.R2", "")]))
    assert await container.interactions.list_reactions(tenant, sent.id) == []


# ----------------------------------------------------------------- statuses

async def test_read_status_before_delivered(svc, sent, clock):
    at = clock.advance(minutes=2)
    result = await svc.process_webhook(
        _envelope(statuses=[
            {"id": "wamid.OUT1", "status": "read", "timestamp": _ts(clock), "recipient_id": DAVE},
            {"id": "wamid.OUT1", "status": "delivered", "timestamp": _ts(clock), "recipient_id": DAVE},
        ])
    )

    assert result.statuses == 2
    assert sent.status is MessageStatus.READ
    assert sent.updated_at == at


async def test_failed_status_with_permanent_code(svc, sent, clock):
    await svc.process_webhook(
        _envelope(statuses=[{
            "id": "wamid.OUT1", "status": "failed", "timestamp": _ts(clock),
            "errors": [{"code": 131026, "title": "Message undeliverable"}],
        }])
    )

    assert sent.status is MessageStatus.FAILED_EXHAUSTED
    assert sent.last_error_code == "131026"


async def test_status_for_unknown_message_is_ignored(svc, tenant, clock):
    result = await svc.process_webhook(
        _envelope(statuses=[{"id": "wamid.NOPE", "status": "delivered", "timestamp": _ts(clock)}])
    )

    assert (result.statuses, result.ignored) == (0, 1)


async def test_status_on_another_teams_number_is_ignored(container, svc, tenant, other_tenant, sent, clock):
    result = await svc.process_webhook(
        _envelope(
            phone_number_id="PNID2",
            statuses=[{"id": "wamid.OUT1", "status": "read", "timestamp": _ts(clock), "recipient_id": DAVE}],
        )
    )

    assert (result.statuses, result.ignored) == (0, 1)
    assert sent.status is MessageStatus.SENT
    (recipient,) = await container.recipients.list_for_message(sent.id)
    assert recipient.read_at is None
    assert await container.orchestrator.find_by_provider_message_id(other_tenant, "wamid.OUT1") is None


# ------------------------------------------------------------ malformed json

async def test_null_sub_objects_do_not_abort_the_batch(container, svc, tenant, clock):
    broken_context = _text("wamid.N1", "Running late", clock, context=None)
    broken_text = {"from": DAVE, "id": "wamid.N2", "timestamp": _ts(clock), "type": "text", "text": None}
    not_a_dict = "garbage"
    good = _text("wamid.N3", "At the barrier", clock)

    result = await svc.process_webhook(_envelope(messages=[broken_context, broken_text, not_a_dict, good]))

    assert (result.messages, result.ignored) == (2, 2)
    assert await container.messages.get_by_provider_message_id(tenant.team_id, "wamid.N1") is not None
    assert await container.messages.get_by_provider_message_id(tenant.team_id, "wamid.N3") is not None


async def test_null_metadata_skips_only_that_change(container, svc, tenant, clock):
    payload = _envelope(messages=[_text("wamid.M1", "Loaded", clock)])
    payload["entry"].insert(0, {"id": "WABA", "changes": [{"field": "messages", "value": {"metadata": None}}, None]})

    result = await svc.process_webhook(payload)

    assert result.messages == 1
    assert await container.messages.get_by_provider_message_id(tenant.team_id, "wamid.M1") is not None
