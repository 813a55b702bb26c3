"""
PII field protection for Sentinel.

Two concerns live here:
- Encryption at rest for patron identifiers (SSN, government ID number)
  using AES-256-GCM with an HKDF-derived key.
- Display masking of contact details and identifiers for patron views.
"""

import base64
import logging
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from sentinel.config import settings

logger = logging.getLogger(__name__)

NONCE_SIZE = 12  # 96 bits for AES-GCM
KEY_SIZE = 32    # 256 bits for AES-256
PREFIX = "enc:"

HKDF_INFO = b"sentinel-pii-encryption-v1"

NOT_PROVIDED = "Not provided"


class PIIEncryption:
    """
    Encrypts and decrypts PII fields using AES-256-GCM.

    Ciphertext format: enc:<base64(nonce || ciphertext || tag)>
    """

    _instance: Optional["PIIEncryption"] = None

    def __init__(self, encryption_key: Optional[bytes] = None):
        if encryption_key is None:
            raw_key = settings.pii_encryption_key
            if not raw_key:
                raise ValueError("PII_ENCRYPTION_KEY not configured")
            encryption_key = self.derive_key(raw_key)

        if len(encryption_key) != KEY_SIZE:
            raise ValueError(f"Encryption key must be {KEY_SIZE} bytes")

        self._aesgcm = AESGCM(encryption_key)

    @staticmethod
    def derive_key(master_key: str) -> bytes:
        """Derive a 256-bit key from the configured master key using HKDF."""
        if len(master_key) == 44 and master_key.endswith("="):
            # Fernet-style key
            key_bytes = base64.urlsafe_b64decode(master_key)
        else:
            key_bytes = master_key.encode()

        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE,
            salt=None,
            info=HKDF_INFO,
        )
        return hkdf.derive(key_bytes)

    @classmethod
    def get_instance(cls) -> "PIIEncryption":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = PIIEncryption()
        return cls._instance

    @staticmethod
    def is_encrypted(value: Optional[str]) -> bool:
        return bool(value) and value.startswith(PREFIX)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a plaintext value. Already-encrypted values pass through."""
        if not plaintext or self.is_encrypted(plaintext):
            return plaintext

        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aesgcm.encrypt(nonce, plaintext.encode("utf-8"), None)
        encoded = base64.urlsafe_b64encode(nonce + ciphertext).decode("ascii")
        return f"{PREFIX}{encoded}"

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt an encrypted value. Plain values pass through unchanged."""
        if not self.is_encrypted(ciphertext):
            return ciphertext

        combined = base64.urlsafe_b64decode(ciphertext[len(PREFIX):])
        if len(combined) < NONCE_SIZE + 16:
            raise ValueError("Ciphertext too short")

        try:
            plaintext = self._aesgcm.decrypt(
                combined[:NONCE_SIZE], combined[NONCE_SIZE:], None
            )
        except InvalidTag as e:
            logger.error("Decryption failed: authentication tag mismatch")
            raise ValueError("Failed to decrypt PII data") from e
        return plaintext.decode("utf-8")


def encrypt_pii(plaintext: str) -> str:
    """Encrypt a PII value using the default encryption instance."""
    return PIIEncryption.get_instance().encrypt(plaintext)


def decrypt_pii(ciphertext: str) -> str:
    """Decrypt a PII value using the default encryption instance."""
    return PIIEncryption.get_instance().decrypt(ciphertext)


def mask_sensitive(value: Optional[str], reveal: bool = False) -> str:
    """
    Mask a contact detail or identifier for display.

    Rules:
    - Email: keep the first character of the local part and the domain
    - Values containing '-' (SSN, phone): replace every digit with '*'
    - Longer than 4 characters: keep first and last character
    - Otherwise: mask everything

    Args:
        value: Raw value, may be None
        reveal: Return the value unmasked

    Returns:
        Masked string, or "Not provided" for empty values
    """
    if not value:
        return NOT_PROVIDED
    if reveal:
        return value

    if "@" in value:
        local, domain = value.split("@", 1)
        return f"{local[:1]}{'*' * max(len(local) - 1, 0)}@{domain}"
    if "-" in value:
        return "".join("*" if ch.isdigit() else ch for ch in value)
    if len(value) > 4:
        return f"{value[0]}{'*' * (len(value) - 2)}{value[-1]}"
    return "*" * len(value)
