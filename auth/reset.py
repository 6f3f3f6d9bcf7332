"""
auth/reset.py -- Single-use, time-bounded password-reset tokens.

Security design decisions:
  Token: secrets.token_hex(32) -- 32 random bytes as 64 hex characters,
       256 bits of entropy. It is an opaque secret, not a signed token:
       holding it proves nothing until the server finds its hash in storage.

  Hash: plain SHA-256, not bcrypt. The token is already high-entropy, so a
       slow hash adds nothing, and the store must find the row BY hash. A
       salted hash would force a scan of every outstanding row per attempt.

  Consumption: delegated to UserStore.consume_reset_token(), a single
       conditional UPDATE. Unknown, expired and already-used tokens all raise
       the same AuthError(INVALID_OR_EXPIRED_RESET_TOKEN).

  Superseding: issue() removes the user's earlier unconsumed tokens, so only
       the most recent emailed link works.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from auth.errors import AuthError, AuthErrorKind
from auth.models import ResetTokenRecord
from auth.store import UserStore, to_iso
from auth.tokens import token_digest

logger = logging.getLogger("jobtracker.auth")


class ResetTokenManager:
    def __init__(self, store: UserStore, ttl: timedelta = timedelta(hours=1)) -> None:
        self.store = store
        self.ttl = ttl

    @staticmethod
    def generate_token() -> str:
        return secrets.token_hex(32)

    @staticmethod
    def hash_token(token: str) -> str:
        """Return the SHA-256 hex digest of token."""
        return token_digest(token)

    def issue(self, user_id: int) -> str:
        """Create and persist a reset token for user_id; return the cleartext.

        The cleartext is returned exactly once and never stored.
        """
        superseded = self.store.delete_pending_reset_tokens(user_id)
        if superseded:
            logger.info("Superseded %d pending reset token(s) for user_id=%d", superseded, user_id)
        token = self.generate_token()
        self.store.create_reset_token(
            ResetTokenRecord(
                user_id=user_id,
                token_hash=self.hash_token(token),
                expires_at=to_iso(datetime.now(timezone.utc) + self.ttl),
            )
        )
        return token

    def consume(self, token: str) -> int:
        """Redeem token once and return the owning user id.

        Raises AuthError(INVALID_OR_EXPIRED_RESET_TOKEN) for unknown, expired
        and already-consumed tokens alike.
        """
        user_id = self.store.consume_reset_token(self.hash_token(token), datetime.now(timezone.utc))
        if user_id is None:
            raise AuthError(AuthErrorKind.INVALID_OR_EXPIRED_RESET_TOKEN, "reset token rejected")
        return user_id
