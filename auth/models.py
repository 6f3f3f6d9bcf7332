"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services do
the work; these only own the shape.

Layer rule: stdlib only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class TokenType(str, Enum):
    """Discriminator embedded in every bearer token.

    Access and refresh tokens share one signing key and one verification path,
    so this claim is the only thing stopping a refresh token from being replayed
    as an access token (or the reverse). Every consumer asserts it.
    """

    ACCESS = "access"
    REFRESH = "refresh"


@dataclass
class User:
    """A Job Tracker account.

    hashed_password is None for OAuth-only users (they have no local password
    and can never pass a password login). oauth_provider / oauth_subject are
    filled in by the external OAuth flow and are opaque to the auth core.
    """

    email: str
    id: int | None = None
    name: str | None = None
    hashed_password: str | None = None  # None = OAuth-only user
    oauth_provider: str | None = None  # "google", "github"
    oauth_subject: str | None = None  # provider's stable user ID
    created_at: str | None = None
    last_login: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class TokenPayload:
    """Verified contents of an access or refresh token. Never persisted."""

    user_id: int
    type: TokenType
    issued_at: datetime
    expires_at: datetime


@dataclass
class ResetTokenRecord:
    """A persisted password-reset request.

    Only token_hash (SHA-256 of the cleartext) is stored. The cleartext leaves
    the process once, inside the reset email. consumed_at stays None until the
    token is redeemed; a consumed or expired row never authorizes a reset.
    """

    user_id: int
    token_hash: str
    expires_at: str  # ISO 8601 UTC
    id: int | None = None
    consumed_at: str | None = None
    created_at: str | None = None


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass
class AuthResult:
    """Outcome of a successful register or login."""

    user: User
    access_token: str
    refresh_token: str
