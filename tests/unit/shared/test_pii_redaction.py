import pytest

from src.shared.infrastructure.observability.logger import PIIRedactionProcessor


@pytest.fixture
def redact():
    processor = PIIRedactionProcessor()
    return lambda **event: processor(None, "info", event)


def test_secrets_and_bodies_are_hidden(redact):
    out = redact(event="send_attempted", access_token="EAAG-secret", content="Gate code 4411, see you at 6")

    assert out["access_token"] == "***REDACTED***"
    assert out["content"] == "<28 chars>"
    assert out["event"] == "send_attempted"


def test_phone_keys_and_free_text_numbers_are_masked(redact):
    out = redact(from_phone="447700900001", error="Recipient +447700900001 is not on WhatsApp")

    assert out["from_phone"] == "44****0001"
    assert out["error"] == "Recipient +4****0001 is not on WhatsApp"


def test_ids_and_timestamps_are_left_alone(redact):
    wamid = "wamid.HBgMNDQ3NzAwOTAwMDAxFQIAERgSQ0Y1"
    out = redact(
        provider_message_id=wamid,
        note=f"status for {wamid} at 1736150400",
        timestamp="1736150400123",
        detail="ref wamid.447700900001 and 1736150400",
    )

    assert out["provider_message_id"] == wamid
    assert out["timestamp"] == "1736150400123"
    assert out["note"] == f"status for {wamid} at 1736150400"
    assert out["detail"] == "ref wamid.447700900001 and 1736150400"


def test_nested_payloads(redact):
    out = redact(payload={"text": {"body": "hello"}, "to": "447700900001", "recipients": ["447700900002"]})

    assert out["payload"]["to"] == "44****0001"
    assert out["payload"]["text"] == {"body": "<5 chars>"}
    assert out["payload"]["recipients"] == ["44****0002"]
