import json
from functools import partial

import pytest
from fastapi.testclient import TestClient

from src.main import create_app
from src.messaging.domain.entities.driver import Driver
from src.messaging.domain.value_objects import WebhookSignature

DAVE = "447700900001"


@pytest.fixture
def client(settings, container):
    with TestClient(create_app(settings, container)) as c:
        yield c


@pytest.fixture
def team(client, container):
    tenant = client.portal.call(
        partial(
            container.tenants.register,
            name="Acme Haulage",
            phone_number_id="PNID1",
            access_token="token-acme",
            country_code="44",
        )
    )
    driver = client.portal.call(container.drivers.add, Driver(team_id=tenant.team_id, name="Dave", phone_number=DAVE))
    conversation = client.portal.call(container.orchestrator.ensure_driver_conversation, tenant, driver.id)
    return tenant, conversation


def _headers(tenant):
    return {"X-Team-Id": str(tenant.team_id)}


def _post_webhook(client, payload, secret="test-app-secret"):
    body = json.dumps(payload).encode()
    return client.post(
        "/api/v1/webhooks/whatsapp",
        content=body,
        headers={
            "Content-Type": "application/json",
            "X-Hub-Signature-256": WebhookSignature.sign(body, secret).signature,
        },
    )


def _inbound(clock, wamid="wamid.IN1", body="At the gate"):
    return {
        "object": "whatsapp_business_account",
        "entry": [{
            "id": "WABA",
            "changes": [{
                "field": "messages",
                "value": {
                    "metadata": {"phone_number_id": "PNID1"},
                    "contacts": [{"wa_id": DAVE, "profile": {"name": "Dave"}}],
                    "messages": [{
                        "from": DAVE,
                        "id": wamid,
                        "timestamp": str(int(clock().timestamp())),
                        "type": "text",
                        "text": {"body": body},
                    }],
                },
            }],
        }],
    }


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_webhook_subscription(client):
    ok = client.get(
        "/api/v1/webhooks/whatsapp",
        params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "1158201444"},
    )
    assert ok.status_code == 200 and ok.text == "1158201444"

    bad = client.get(
        "/api/v1/webhooks/whatsapp",
        params={"hub.mode": "subscribe", "hub.verify_token": "nope", "hub.challenge": "1"},
    )
    assert bad.status_code == 403
    assert bad.json()["code"] == "verification_failed"


def test_webhook_rejects_bad_signature(client, team, clock):
    resp = _post_webhook(client, _inbound(clock), secret="wrong")

    assert resp.status_code == 401
    assert resp.json()["code"] == "invalid_signature"


def test_inbound_then_reply_flow(client, container, team, clock, provider):
    tenant, conversation = team

    closed = client.post(
        f"/api/v1/conversations/{conversation.id}/messages",
        json={"sender_user_id": "staff-1", "content": "Hello"},
        headers=_headers(tenant),
    )
    assert closed.status_code == 409
    assert closed.json()["code"] == "window_closed"

    ack = _post_webhook(client, _inbound(clock))
    assert ack.status_code == 200
    assert ack.json() == {"ok": True, "messages": 1, "reactions": 0, "statuses": 0, "ignored": 0}

    window = client.get(f"/api/v1/conversations/{conversation.id}/window", headers=_headers(tenant)).json()
    assert window["state"] == "open"
    assert window["seconds_remaining"] == 24 * 3600

    sent = client.post(
        f"/api/v1/conversations/{conversation.id}/messages",
        json={"sender_user_id": "staff-1", "content": "Bay 4 please"},
        headers=_headers(tenant),
    )
    assert sent.status_code == 202
    body = sent.json()
    assert body["status"] == "sent" and body["direction"] == "outbound"
    assert provider.sent_to() == [DAVE]

    read = {
        "entry": [{"changes": [{"value": {
            "metadata": {"phone_number_id": "PNID1"},
            "statuses": [{"id": "wamid.OUT1", "status": "read", "timestamp": str(int(clock().timestamp()))}],
        }}]}],
    }
    assert _post_webhook(client, read).json()["statuses"] == 1
    message = client.portal.call(container.messages.get, body["id"])
    assert message.status.value == "read"


def test_missing_team_header(client, team):
    _, conversation = team

    resp = client.post(f"/api/v1/conversations/{conversation.id}/messages", json={"content": "Hi"})

    assert resp.status_code == 403
    assert resp.json()["code"] == "tenant_not_configured"


def test_invalid_send_body(client, team):
    tenant, conversation = team

    resp = client.post(
        f"/api/v1/conversations/{conversation.id}/messages",
        json={"message_type": "template"},
        headers=_headers(tenant),
    )

    assert resp.status_code == 422
    assert resp.json()["code"] == "validation_error"


def test_reactions_pin_and_archive(client, team, clock):
    tenant, conversation = team
    _post_webhook(client, _inbound(clock))
    sent = client.post(
        f"/api/v1/conversations/{conversation.id}/messages",
        json={"sender_user_id": "staff-1", "content": "Noted"},
        headers=_headers(tenant),
    ).json()
    message_id = sent["id"]

    react = client.post(
        f"/api/v1/messages/{message_id}/reactions",
        json={"user_id": "staff-2", "emoji": "👍"},
        headers=_headers(tenant),
    )
    assert react.status_code == 200 and react.json()["reactor"] == "user:staff-2"
    assert len(client.get(f"/api/v1/messages/{message_id}/reactions", headers=_headers(tenant)).json()) == 1
    assert client.delete(f"/api/v1/messages/{message_id}/reactions/staff-2", headers=_headers(tenant)).status_code == 204

    pinned = client.post(f"/api/v1/messages/{message_id}/pin", json={"is_pinned": True}, headers=_headers(tenant))
    assert pinned.json()["is_pinned"] is True

    archived = client.post(
        f"/api/v1/conversations/{conversation.id}/archive", json={"user_id": "staff-1"}, headers=_headers(tenant)
    )
    assert archived.json()["is_archived"] is True
    refused = client.post(
        f"/api/v1/conversations/{conversation.id}/messages",
        json={"sender_user_id": "staff-1", "content": "Still there?"},
        headers=_headers(tenant),
    )
    assert refused.status_code == 409
    assert refused.json()["code"] == "conversation_archived"

    assigned = client.post(
        f"/api/v1/conversations/{conversation.id}/assign", json={"user_id": "staff-3"}, headers=_headers(tenant)
    )
    assert assigned.json()["assigned_to_user_id"] == "staff-3"


def test_forward_reports_per_target(client, container, team, clock):
    tenant, conversation = team
    _post_webhook(client, _inbound(clock))
    incoming = client.portal.call(
        container.messages.get_by_provider_message_id, tenant.team_id, "wamid.IN1"
    )

    resp = client.post(
        f"/api/v1/messages/{incoming.id}/forward",
        json={"target_conversation_ids": [conversation.id, 999], "sender_user_id": "staff-1"},
        headers=_headers(tenant),
    )

    assert resp.status_code == 200
    results = resp.json()["results"]
    assert [(r["conversation_id"], r["succeeded"], r["error_code"]) for r in results] == [
        (conversation.id, True, None),
        (999, False, "conversation_not_found"),
    ]
