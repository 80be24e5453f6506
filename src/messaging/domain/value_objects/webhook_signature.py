"""
Webhook Signature Value Object
Validates WhatsApp webhook signatures (HMAC SHA256).
"""
from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class WebhookSignature:
    """
    Value object for validating WhatsApp webhook signatures.

    WhatsApp signs payloads using HMAC SHA256 with app secret.
    Signature format: sha256=<hex_digest>
    """
    signature: str

    def is_valid(self, payload: bytes, app_secret: str) -> bool:
        """Verify signature against payload."""
        if not self.signature or not app_secret:
            return False
        expected = self.compute(payload, app_secret)

        # Remove 'sha256=' prefix if present
        sig = self.signature.removeprefix("sha256=")

        # Constant-time comparison
        return hmac.compare_digest(sig, expected)

    @staticmethod
    def compute(payload: bytes, app_secret: str) -> str:
        return hmac.new(app_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()

    @classmethod
    def sign(cls, payload: bytes, app_secret: str) -> WebhookSignature:
        return cls(f"sha256={cls.compute(payload, app_secret)}")

    def __str__(self) -> str:
        return "WebhookSignature(sha256=…)"
