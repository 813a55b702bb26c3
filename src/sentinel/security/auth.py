"""
Authentication and Authorization for Sentinel.

Implements:
- JWT token-based authentication (access + refresh tokens)
- Password hashing with Argon2
- Role-based access control over the Admin / Analyst / Manager roles
- Token revocation on sign-out
"""

import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerifyMismatchError
from jose import JWTError, jwt
from pydantic import BaseModel, Field

from sentinel.config import settings

logger = logging.getLogger(__name__)


# Password hasher (Argon2id)
ph = PasswordHasher(
    time_cost=3,
    memory_cost=65536,  # 64 MB
    parallelism=4,
    hash_len=32,
    salt_len=16,
)

MIN_PASSWORD_LENGTH = 6


class Role(str, Enum):
    """Team roles. A member holds one or more of these."""
    ADMIN = "Admin"
    ANALYST = "Analyst"
    MANAGER = "Manager"


DEFAULT_ROLE = Role.ANALYST


class TokenType(str, Enum):
    """Types of JWT tokens."""
    ACCESS = "access"
    REFRESH = "refresh"


class TokenPayload(BaseModel):
    """JWT token payload."""
    sub: str                          # Profile ID
    type: TokenType
    roles: list[Role] = Field(default_factory=lambda: [DEFAULT_ROLE])
    is_admin: bool = False
    exp: int                          # Expiration (epoch seconds)
    iat: int = Field(default_factory=lambda: int(time.time()))
    jti: str = Field(default_factory=lambda: uuid4().hex)


class User(BaseModel):
    """Authenticated user context, passed explicitly to services."""
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    first_name: Optional[str] = None
    roles: list[Role] = Field(default_factory=lambda: [DEFAULT_ROLE])
    is_admin: bool = False

    def has_role(self, *roles: Role) -> bool:
        return any(role in self.roles for role in roles)

    @property
    def can_manage_team(self) -> bool:
        return self.is_admin or self.has_role(Role.ADMIN)

    @property
    def can_view_sensitive(self) -> bool:
        """Unmasked patron PII is limited to admins and managers."""
        return self.can_manage_team or self.has_role(Role.MANAGER)


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


class AuthorizationError(Exception):
    """Raised when authorization fails."""
    pass


class TokenRevocationList:
    """
    In-process record of revoked token IDs.

    Entries expire together with the token they revoke.
    """

    def __init__(self):
        self._revoked: dict[str, int] = {}
        self._lock = threading.Lock()

    def revoke(self, jti: str, exp: int) -> None:
        with self._lock:
            self._purge()
            self._revoked[jti] = exp

    def is_revoked(self, jti: str) -> bool:
        with self._lock:
            return jti in self._revoked

    def _purge(self) -> None:
        now = int(time.time())
        for jti in [j for j, exp in self._revoked.items() if exp < now]:
            del self._revoked[jti]


revocation_list = TokenRevocationList()


def hash_password(password: str) -> str:
    """
    Hash a password using Argon2id.

    Args:
        password: Plain text password

    Returns:
        Hashed password string
    """
    return ph.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    """
    Verify a password against its hash.

    Returns:
        True if password matches, False otherwise
    """
    try:
        ph.verify(hashed, password)
        return True
    except (VerifyMismatchError, InvalidHashError):
        return False


def validate_new_password(password: str, confirm: Optional[str] = None) -> None:
    """
    Check a new password before it is stored.

    Raises:
        ValueError: If the passwords differ or the password is too short
    """
    if confirm is not None and password != confirm:
        raise ValueError("New passwords do not match")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )


def _encode(user: User, token_type: TokenType, expires_delta: timedelta) -> str:
    expire = datetime.now(timezone.utc) + expires_delta
    payload = TokenPayload(
        sub=user.id,
        type=token_type,
        roles=user.roles,
        is_admin=user.is_admin,
        exp=int(expire.timestamp()),
    )
    return jwt.encode(
        payload.model_dump(mode="json"),
        settings.secret_key,
        algorithm=settings.jwt_algorithm,
    )


def create_access_token(
    user: User,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT access token."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.access_token_expire_minutes)
    return _encode(user, TokenType.ACCESS, expires_delta)


def create_refresh_token(
    user: User,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a JWT refresh token."""
    if expires_delta is None:
        expires_delta = timedelta(days=settings.refresh_token_expire_days)
    return _encode(user, TokenType.REFRESH, expires_delta)


def decode_token(token: str) -> TokenPayload:
    """
    Decode and validate a JWT token.

    Raises:
        AuthenticationError: If token is invalid, expired or revoked
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        decoded = TokenPayload(**payload)
    except (JWTError, ValueError) as e:
        logger.warning(f"JWT decode failed: {e}")
        raise AuthenticationError("Invalid or expired token") from e

    if revocation_list.is_revoked(decoded.jti):
        raise AuthenticationError("Token has been revoked")
    return decoded


def verify_access_token(token: str) -> TokenPayload:
    """Verify an access token."""
    payload = decode_token(token)
    if payload.type != TokenType.ACCESS:
        raise AuthenticationError("Invalid token type")
    return payload


def verify_refresh_token(token: str) -> TokenPayload:
    """Verify a refresh token."""
    payload = decode_token(token)
    if payload.type != TokenType.REFRESH:
        raise AuthenticationError("Invalid token type")
    return payload


def revoke_token(token: str) -> None:
    """Revoke a token so it can no longer authenticate."""
    payload = decode_token(token)
    revocation_list.revoke(payload.jti, payload.exp)
    logger.info(f"Revoked {payload.type.value} token for {payload.sub}")


def require_role(user: User, *roles: Role) -> None:
    """
    Check that the user holds at least one of the given roles.

    Members flagged is_admin pass every role check.

    Raises:
        AuthorizationError: If user has none of the roles
    """
    if user.is_admin or user.has_role(*roles):
        return
    required = ", ".join(r.value for r in roles)
    raise AuthorizationError(f"Insufficient permissions. Required one of: {required}")
