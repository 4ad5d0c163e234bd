"""
Field Encryption

Symmetric encryption for masked profile fields (MaskType.ENCRYPT).
Uses PBKDF2 key derivation and Fernet symmetric encryption.
"""

import base64
import binascii
import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from warden.core.settings import get_settings


class FieldEncryptor:
    """
    Encrypts field values before they leave the engine.

    Each value gets its own random salt, prepended to the Fernet token.
    Text helpers return URL-safe base64 so the result can replace the
    field value directly.
    """

    SALT_SIZE = 16  # 128 bits

    def __init__(self, master_key: Optional[str] = None, iterations: Optional[int] = None):
        """
        Args:
            master_key: Master encryption key. Uses settings if not provided.
            iterations: PBKDF2 iterations. Uses settings if not provided.
        """
        settings = get_settings()
        self._master_key = (master_key or settings.MASTER_ENCRYPTION_KEY).encode()
        self._iterations = iterations or settings.ENCRYPTION_ITERATIONS

    def _derive_key(self, salt: bytes) -> bytes:
        """Derive a Fernet-compatible key from master key and salt."""
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=self._iterations,
        )
        key = kdf.derive(self._master_key)
        return base64.urlsafe_b64encode(key)

    def encrypt(self, plaintext: str) -> bytes:
        """
        Encrypt a string value.

        Returns:
            Encrypted bytes (salt + ciphertext)
        """
        if not plaintext:
            raise ValueError("Cannot encrypt empty string")

        salt = os.urandom(self.SALT_SIZE)
        fernet = Fernet(self._derive_key(salt))
        return salt + fernet.encrypt(plaintext.encode())

    def decrypt(self, encrypted_data: bytes) -> str:
        """
        Decrypt encrypted data.

        Raises:
            ValueError: If decryption fails
        """
        if not encrypted_data or len(encrypted_data) <= self.SALT_SIZE:
            raise ValueError("Invalid encrypted data")

        salt = encrypted_data[: self.SALT_SIZE]
        ciphertext = encrypted_data[self.SALT_SIZE :]
        fernet = Fernet(self._derive_key(salt))

        try:
            return fernet.decrypt(ciphertext).decode()
        except InvalidToken:
            raise ValueError("Decryption failed - invalid key or corrupted data")

    def encrypt_text(self, plaintext: str) -> str:
        return base64.urlsafe_b64encode(self.encrypt(plaintext)).decode()

    def decrypt_text(self, token: str) -> str:
        try:
            raw = base64.urlsafe_b64decode(token.encode())
        except (binascii.Error, ValueError):
            raise ValueError("Invalid encrypted text")
        return self.decrypt(raw)


# Singleton instance
_field_encryptor: Optional[FieldEncryptor] = None


def get_field_encryptor() -> FieldEncryptor:
    """Get singleton field encryptor instance."""
    global _field_encryptor
    if _field_encryptor is None:
        _field_encryptor = FieldEncryptor()
    return _field_encryptor
