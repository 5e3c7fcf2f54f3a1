"""Encryption helpers for settings stored at rest (SMTP password)."""

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

from smart_cart_recovery.core.config import settings


@lru_cache(maxsize=1)
def _get_fernet() -> Fernet:
    """Get Fernet instance from the encryption key setting.

    Derives a valid 32-byte Fernet key from the config encryption_key
    using SHA-256, then base64-encodes it.

    Note: Changing encryption_key will make previously stored SMTP
    passwords undecryptable; they read back as empty.
    """
    key_bytes = hashlib.sha256(settings.encryption_key.encode()).digest()
    return Fernet(base64.urlsafe_b64encode(key_bytes))


def encrypt_secret(value: str) -> str:
    """Encrypt a secret string. Empty values stay empty."""
    if not value:
        return ""
    return _get_fernet().encrypt(value.encode()).decode()


def decrypt_secret(encrypted: str) -> str:
    """Decrypt an encrypted secret, returning "" when it cannot be read."""
    if not encrypted:
        return ""
    try:
        return _get_fernet().decrypt(encrypted.encode()).decode()
    except (InvalidToken, ValueError):
        return ""
