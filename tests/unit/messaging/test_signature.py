import hmac, hashlib
from src.messaging.domain.value_objects.webhook_signature import WebhookSignature

def test_valid_signature():
    secret = "s3cr3t"
    body = b'{"hello":"world"}'
    sig = "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    assert WebhookSignature(sig).is_valid(body, secret) is True

def test_bare_hexdigest_is_accepted():
    secret = "s3cr3t"
    body = b'{"hello":"world"}'
    assert WebhookSignature(WebhookSignature.compute(body, secret)).is_valid(body, secret) is True

def test_invalid_signature():
    secret = "s3cr3t"
    body = b'{"hello":"world"}'
    assert WebhookSignature("sha256=deadbeef").is_valid(body, secret) is False

def test_tampered_body():
    sig = WebhookSignature.sign(b'{"a":1}', "s3cr3t")
    assert sig.is_valid(b'{"a":2}', "s3cr3t") is False

def test_empty_secret_never_validates():
    sig = WebhookSignature.sign(b"x", "")
    assert sig.is_valid(b"x", "") is False
