"""
Credential Encryption
Fernet-based encryption for provider access tokens held by the tenant registry
"""
from __future__ import annotations

from cryptography.fernet import Fernet, InvalidToken

from src.shared.infrastructure.observability.logger import get_logger

logger = get_logger(__name__)


class EncryptionManager:
    """
    Encrypts and decrypts secrets stored alongside team records.

    Attributes:
        cipher: Fernet cipher built from the configured key
    """

    def __init__(self, key: str | None = None) -> None:
        """
        Args:
            key: urlsafe base64 Fernet key (generated per process if None)
        """
        if key is None:
            key = Fernet.generate_key().decode("utf-8")
            logger.warning("encryption_key_generated", action="set ENCRYPTION_KEY outside dev")
        self.cipher = Fernet(key.encode("utf-8"))

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a secret; returns a Fernet token string."""
        return self.cipher.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, token: str) -> str:
        """
        Decrypt a Fernet token.

        Raises:
            ValueError: If the token was not produced with this key
        """
        try:
            return self.cipher.decrypt(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as e:
            logger.error("decryption_failed")
            raise ValueError("Failed to decrypt data") from e

    @staticmethod
    def generate_key() -> str:
        """Generate a new Fernet key."""
        return Fernet.generate_key().decode("utf-8")
