"""
Sentinel Security Module

Provides encryption, masking, authentication, and authorization utilities.

Includes:
- PII encryption with AES-256-GCM
- PII display masking
- Password hashing with Argon2id
- JWT authentication and role checks
"""

from sentinel.security.encryption import (
    PIIEncryption,
    encrypt_pii,
    decrypt_pii,
    mask_sensitive,
)
from sentinel.security.auth import (
    AuthenticationError,
    AuthorizationError,
    Role,
    TokenPayload,
    User,
    create_access_token,
    create_refresh_token,
    hash_password,
    require_role,
    revoke_token,
    validate_new_password,
    verify_access_token,
    verify_password,
    verify_refresh_token,
)

__all__ = [
    # Encryption
    "PIIEncryption",
    "encrypt_pii",
    "decrypt_pii",
    "mask_sensitive",
    # Authentication
    "AuthenticationError",
    "AuthorizationError",
    "Role",
    "TokenPayload",
    "User",
    "create_access_token",
    "create_refresh_token",
    "hash_password",
    "require_role",
    "revoke_token",
    "validate_new_password",
    "verify_access_token",
    "verify_password",
    "verify_refresh_token",
]
