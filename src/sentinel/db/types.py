"""
Custom SQLAlchemy column types for Sentinel.

Includes encrypted types for patron PII.
"""

from typing import Optional

from sqlalchemy import String, TypeDecorator

from sentinel.security.encryption import PIIEncryption, decrypt_pii, encrypt_pii


class EncryptedString(TypeDecorator):
    """
    A SQLAlchemy type that transparently encrypts/decrypts string values.

    Usage:
        ssn: Mapped[Optional[str]] = mapped_column(EncryptedString(11))

    Storage format: "enc:<base64-encoded-encrypted-data>"
    """

    impl = String
    cache_ok = True

    def __init__(self, length: Optional[int] = None, *args, **kwargs):
        """
        Args:
            length: Maximum length of the plaintext value. The column is sized
                for the ciphertext (nonce, tag and base64 overhead).
        """
        if length:
            length = length * 3 + 50
        super().__init__(length, *args, **kwargs)

    def process_bind_param(self, value: Optional[str], dialect) -> Optional[str]:
        if value is None or value == "":
            return value
        if PIIEncryption.is_encrypted(value):
            return value
        return encrypt_pii(value)

    def process_result_value(self, value: Optional[str], dialect) -> Optional[str]:
        if value is None:
            return None
        # Rows written before encryption was enabled are returned as-is
        return decrypt_pii(value)
