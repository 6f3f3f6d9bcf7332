"""
auth/tokens.py -- Signed bearer tokens (access + refresh).

Security design decisions:
  JWT: python-jose with HS256. Tokens carry user_id, type, iat, exp and a
       random jti. The signing key is injected at construction rather than
       read from a module global, so each test can use its own key and the
       key lives in exactly one object for the process lifetime.

  Type discriminator: access and refresh tokens are minted by the same codec
       with the same key. The "type" claim is what separates them; verify_as()
       asserts it, and every caller that needs a specific type must use it.

  Failure reporting: verify() raises AuthError(TOKEN_EXPIRED) for an expired
       but otherwise valid token and AuthError(INVALID_TOKEN) for everything
       else. Both kinds render to the same public 401, so the distinction is
       available to logs and tests but never to clients.

  Storage: the codec itself is stateless. AuthService records token_digest()
       of every refresh token it hands out and deletes the row when the token
       is rotated or logged out, so a refresh token works at most once.

  Leeway: exp is checked against the verifier's wall clock plus `leeway`
       seconds (Settings.token_leeway_seconds, default 0).

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import AuthError, AuthErrorKind
from auth.models import TokenPayload, TokenType

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("jobtracker.auth")

_ALGORITHM = "HS256"


def token_digest(token: str) -> str:
    """Return the SHA-256 hex digest of an opaque or signed token, for storage lookups."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class TokenCodec:
    """Issue and verify access / refresh JWTs with one injected signing key.

    Usage:
        codec = TokenCodec(secret_key, access_ttl=timedelta(minutes=15), refresh_ttl=timedelta(days=7))
        token = codec.issue_access_token(7)
        codec.verify_as(token, TokenType.ACCESS).user_id  # 7
    """

    def __init__(
        self,
        secret_key: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        leeway: int = 0,
        algorithm: str = _ALGORITHM,
    ) -> None:
        if not secret_key:
            raise ValueError("TokenCodec requires a non-empty signing key.")
        self._secret_key = secret_key
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.leeway = leeway
        self.algorithm = algorithm

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenCodec:
        return cls(
            settings.secret_key,
            access_ttl=timedelta(seconds=settings.access_token_expire_seconds),
            refresh_ttl=timedelta(seconds=settings.refresh_token_expire_seconds),
            leeway=settings.token_leeway_seconds,
        )

    def __repr__(self) -> str:
        # The key must never reach a log line or traceback.
        return f"TokenCodec(algorithm={self.algorithm!r}, access_ttl={self.access_ttl}, refresh_ttl={self.refresh_ttl})"

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    def issue_access_token(self, user_id: int) -> str:
        return self._issue(user_id, TokenType.ACCESS, self.access_ttl)

    def issue_refresh_token(self, user_id: int) -> str:
        return self._issue(user_id, TokenType.REFRESH, self.refresh_ttl)

    def _issue(self, user_id: int, token_type: TokenType, ttl: timedelta) -> str:
        now = datetime.now(timezone.utc)
        claims = {
            "user_id": user_id,
            "type": token_type.value,
            "iat": now,
            "exp": now + ttl,
            # Two tokens for the same user minted in the same second must differ.
            "jti": secrets.token_urlsafe(16),
        }
        return jwt.encode(claims, self._secret_key, algorithm=self.algorithm)

    # ------------------------------------------------------------------
    # Verify
    # ------------------------------------------------------------------

    def verify(self, token: str) -> TokenPayload:
        """Check signature, expiry and claim shape; return the payload.

        Does NOT check the token type -- use verify_as() wherever a specific
        type is required.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self.algorithm],
                options={"leeway": self.leeway},
            )
        except ExpiredSignatureError as exc:
            raise AuthError(AuthErrorKind.TOKEN_EXPIRED, "token expired") from exc
        except JWTError as exc:
            raise AuthError(AuthErrorKind.INVALID_TOKEN, "token failed verification") from exc
        return _claims_to_payload(claims)

    def verify_as(self, token: str, expected: TokenType) -> TokenPayload:
        """verify() plus the type assertion. Wrong type is INVALID_TOKEN."""
        payload = self.verify(token)
        if payload.type is not expected:
            raise AuthError(
                AuthErrorKind.INVALID_TOKEN,
                f"expected {expected.value} token, got {payload.type.value}",
            )
        return payload


def _claims_to_payload(claims: dict) -> TokenPayload:
    """Map decoded claims onto TokenPayload, rejecting anything malformed.

    A correctly signed token can still be malformed if it was minted by a
    different service sharing the key. Treat that as INVALID_TOKEN.
    """
    user_id = claims.get("user_id")
    iat = claims.get("iat")
    exp = claims.get("exp")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise AuthError(AuthErrorKind.INVALID_TOKEN, "user_id claim missing or not an integer")
    if not isinstance(iat, int) or not isinstance(exp, int):
        raise AuthError(AuthErrorKind.INVALID_TOKEN, "iat/exp claims missing")
    try:
        token_type = TokenType(claims.get("type"))
    except ValueError as exc:
        raise AuthError(AuthErrorKind.INVALID_TOKEN, "type claim missing or unknown") from exc
    return TokenPayload(
        user_id=user_id,
        type=token_type,
        issued_at=datetime.fromtimestamp(iat, tz=timezone.utc),
        expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
    )
