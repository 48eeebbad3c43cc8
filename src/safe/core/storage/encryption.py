"""Fernet-based field encryption for device profile data at rest.

The emergency contact and medical condition of the person wearing a device
are encrypted before they are written to SQLite. Telemetry rows (IMU, GPS,
activity, falls) stay in clear text so they can be indexed and aggregated.
"""

from __future__ import annotations

import logging

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionError(Exception):
    """Raised when encryption/decryption fails."""


class FieldEncryptor:
    """Encrypts and decrypts individual text columns with Fernet.

    Usage::

        encryptor = FieldEncryptor(key="...")
        token = encryptor.encrypt("+62 812 0000 0000")
        encryptor.decrypt(token)  # "+62 812 0000 0000"
    """

    def __init__(self, key: str) -> None:
        """Initialize with a Fernet key.

        Args:
            key: A valid Fernet key string. Generate with
                 :meth:`generate_key`.

        Raises:
            EncryptionError: If the key is empty or invalid.
        """
        if not key or not key.strip():
            raise EncryptionError("Encryption key must not be empty")
        try:
            self._fernet = Fernet(key.encode("utf-8"))
        except ValueError as exc:
            raise EncryptionError(f"Invalid encryption key: {exc}") from exc

    def encrypt(self, value: str | None) -> str | None:
        """Encrypt a text value; ``None`` passes through unchanged."""
        if value is None:
            return None
        try:
            return self._fernet.encrypt(value.encode("utf-8")).decode("utf-8")
        except (TypeError, AttributeError) as exc:
            raise EncryptionError(f"Encryption failed: {exc}") from exc

    def decrypt(self, token: str | None) -> str | None:
        """Decrypt a token produced by :meth:`encrypt`.

        Raises:
            EncryptionError: If the token is invalid or was made with another key.
        """
        if not token:
            return None
        try:
            return self._fernet.decrypt(token.encode("utf-8")).decode("utf-8")
        except InvalidToken as exc:
            raise EncryptionError("Decryption failed: invalid token or wrong key") from exc

    @staticmethod
    def generate_key() -> str:
        """Generate a new URL-safe base64-encoded 32-byte Fernet key."""
        return Fernet.generate_key().decode("utf-8")
