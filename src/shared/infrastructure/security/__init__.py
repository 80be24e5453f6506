"""
Shared Security Infrastructure
"""
from src.shared.infrastructure.security.encryption import EncryptionManager

__all__ = ["EncryptionManager"]
