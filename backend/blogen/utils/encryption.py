"""Encryption utilities for credentials stored at rest.

Shopify access tokens are written to the ``profiles`` table encrypted with
Fernet (AES-128-CBC + HMAC-SHA256, URL-safe base64 tokens) from the
cryptography library. The key comes from ``BLOGEN_ENCRYPTION_KEY``;
``create_app`` builds one service from its settings and keeps it on
``app.state.encryption``.
"""

import logging

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


class EncryptionService:
    """Service for encrypting and decrypting sensitive column values.

    Key Generation:
        python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"

    Example:
        >>> service = EncryptionService(Fernet.generate_key().decode())
        >>> encrypted = service.encrypt("shpua_123")
        >>> service.decrypt(encrypted)
        'shpua_123'
    """

    def __init__(self, encryption_key: str):
        """Initialize encryption service.

        Args:
            encryption_key: Base64-encoded Fernet key (``Settings.blogen_encryption_key``)

        Raises:
            ValueError: If encryption key is not configured or invalid
        """
        if not encryption_key:
            raise ValueError(
                "Encryption key not configured. Set BLOGEN_ENCRYPTION_KEY environment variable. "
                "Generate a key with: python -c \"from cryptography.fernet import Fernet; "
                "print(Fernet.generate_key().decode())\""
            )

        try:
            self.cipher = Fernet(encryption_key.encode("utf-8"))
        except (ValueError, TypeError) as e:
            raise ValueError(
                f"Invalid encryption key format: {e}. "
                "Key must be a valid base64-encoded Fernet key (44 characters)."
            )

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext string.

        Raises:
            ValueError: If plaintext is None
        """
        if plaintext is None:
            raise ValueError("Cannot encrypt None value")

        if plaintext == "":
            return ""

        return self.cipher.encrypt(plaintext.encode("utf-8")).decode("utf-8")

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt an encrypted string.

        Raises:
            ValueError: If ciphertext is None, was tampered with, or the key changed
        """
        if ciphertext is None:
            raise ValueError("Cannot decrypt None value")

        if ciphertext == "":
            return ""

        try:
            return self.cipher.decrypt(ciphertext.encode("utf-8")).decode("utf-8")
        except InvalidToken:
            logger.error("Decryption failed: Invalid token (wrong key or tampered data)")
            raise ValueError(
                "Failed to decrypt data. The encryption key has changed or the "
                "stored value was tampered with."
            )

    def is_encrypted(self, value: str) -> bool:
        """Heuristic check for Fernet tokens (version byte 0x80 encodes to 'gAAAAA')."""
        if not value or len(value) < 7:
            return False
        return value.startswith("gAAAAA")

