"""
auth/service.py -- AuthService: register, login, refresh and password reset.

This is the only auth component with multi-step protocol logic. It composes
PasswordHasher, TokenCodec and ResetTokenManager over a UserStore and hands
reset emails to a NotificationSink. Route handlers call it and nothing else.

Anti-enumeration rules enforced here:
  login()                   -- unknown email, OAuth-only account, inactive
                               account and wrong password raise the identical
                               AuthError(UNAUTHORIZED). The unknown-email path
                               still runs bcrypt against a dummy hash so the
                               response time matches a real check.
  request_password_reset()  -- returns None whether or not the email exists.

Refresh tokens are tracked by SHA-256 digest in UserStore. refresh() deletes
the presented token's row before minting a new pair, so each refresh token
works once; logout() deletes it outright; a completed password reset deletes
every refresh token the user holds.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING
from urllib.parse import urlencode

from sqlalchemy.exc import IntegrityError

from auth.errors import AuthError, AuthErrorKind
from auth.models import AuthResult, TokenPair, TokenType, User
from auth.notify import Notification, NotificationSink, build_notification_sink, build_password_reset_email
from auth.passwords import PasswordHasher
from auth.reset import ResetTokenManager
from auth.store import UserStore, to_iso
from auth.tokens import TokenCodec, token_digest

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("jobtracker.auth")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    def __init__(
        self,
        store: UserStore,
        hasher: PasswordHasher,
        codec: TokenCodec,
        reset_tokens: ResetTokenManager,
        sink: NotificationSink,
        frontend_url: str = "http://localhost:3000",
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.codec = codec
        self.reset_tokens = reset_tokens
        self.sink = sink
        self.frontend_url = frontend_url.rstrip("/")

    @classmethod
    def from_settings(cls, settings: Settings, store: UserStore, sink: NotificationSink | None = None) -> AuthService:
        """Wire every collaborator from configuration. Called once at startup."""
        return cls(
            store=store,
            hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
            codec=TokenCodec.from_settings(settings),
            reset_tokens=ResetTokenManager(store, ttl=timedelta(seconds=settings.reset_token_expire_seconds)),
            sink=sink if sink is not None else build_notification_sink(settings),
            frontend_url=settings.frontend_url,
        )

    # ------------------------------------------------------------------
    # Register / login / refresh
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, name: str | None = None) -> AuthResult:
        """Create a local account and return it with a fresh token pair.

        Raises AuthError(CONFLICT) if the email is already registered.
        """
        email = normalize_email(email)
        if self.store.get_by_email(email) is not None:
            raise AuthError(AuthErrorKind.CONFLICT, "email already registered")

        hashed = self.hasher.hash(password)
        try:
            user_id = self.store.create_user(User(email=email, name=name, hashed_password=hashed))
        except IntegrityError as exc:
            # A concurrent registration won the race between the check and the insert.
            raise AuthError(AuthErrorKind.CONFLICT, "email already registered") from exc

        user = self.store.get_by_id(user_id)
        logger.info("Registered user_id=%d", user_id)
        return self._authenticated(user)

    def login(self, email: str, password: str) -> AuthResult:
        """Verify credentials and return the user with a fresh token pair.

        Every failure raises the same AuthError(UNAUTHORIZED).
        """
        user = self.store.get_by_email(normalize_email(email))
        if user is None or user.hashed_password is None:
            # Equalize timing -- do NOT return before running bcrypt.
            self.hasher.verify_dummy(password)
            raise AuthError(AuthErrorKind.UNAUTHORIZED, "unknown email or no local password")
        if not self.hasher.verify(password, user.hashed_password):
            raise AuthError(AuthErrorKind.UNAUTHORIZED, "password mismatch")
        if not user.is_active:
            raise AuthError(AuthErrorKind.UNAUTHORIZED, "account inactive")

        if self.hasher.needs_rehash(user.hashed_password):
            self.store.update_password(user.id, self.hasher.hash(password))
            logger.info("Rehashed password for user_id=%d with current cost factor", user.id)
        self.store.update_last_login(user.id)
        return self._authenticated(user)

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a valid refresh token for a new access/refresh pair.

        The presented token is spent: its row is deleted before the new pair
        is minted, and only the caller that deleted it proceeds. An access
        token, a garbage string, an already-rotated or logged-out refresh
        token, and one for a vanished or deactivated account all raise
        AuthError(INVALID_TOKEN); an expired refresh token raises
        TOKEN_EXPIRED. The API renders all of them as the same 401.
        """
        payload = self.codec.verify_as(refresh_token, TokenType.REFRESH)
        if not self.store.delete_refresh_token(token_digest(refresh_token), user_id=payload.user_id):
            raise AuthError(AuthErrorKind.INVALID_TOKEN, "refresh token already used or revoked")
        user = self.store.get_by_id(payload.user_id)
        if user is None or not user.is_active:
            raise AuthError(AuthErrorKind.INVALID_TOKEN, "refresh token subject no longer active")
        return self._issue_pair(user.id)

    def logout(self, refresh_token: str) -> None:
        """Revoke refresh_token. Succeeds silently for unknown or invalid tokens."""
        try:
            payload = self.codec.verify_as(refresh_token, TokenType.REFRESH)
        except AuthError as exc:
            logger.debug("Logout with unusable refresh token: %s", exc.kind.value)
            return
        if self.store.delete_refresh_token(token_digest(refresh_token), user_id=payload.user_id):
            logger.info("Revoked refresh token for user_id=%d", payload.user_id)

    def get_user(self, user_id: int) -> User | None:
        return self.store.get_by_id(user_id)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    async def request_password_reset(self, email: str) -> None:
        """Email a reset link if email belongs to an active account.

        Always returns None so callers cannot learn whether the account exists.
        The lookup and token issue run in a worker thread so the event loop is
        never blocked on the database. A delivery failure is logged and
        swallowed: the token was issued and nothing the caller sees may change
        with transport health. The HTTP route runs this as a background task,
        after the response is sent, so neither path's timing reaches the client.
        """
        message = await asyncio.to_thread(self._prepare_password_reset, email)
        if message is None:
            return
        try:
            await self.sink.send(message)
        except Exception:
            logger.exception("Password reset email delivery failed")

    def _prepare_password_reset(self, email: str) -> Notification | None:
        user = self.store.get_by_email(normalize_email(email))
        if user is None or not user.is_active:
            logger.info("Password reset requested for unknown or inactive account")
            return None

        token = self.reset_tokens.issue(user.id)
        reset_url = f"{self.frontend_url}/reset-password?{urlencode({'token': token})}"
        logger.info("Password reset token issued for user_id=%d", user.id)
        return build_password_reset_email(
            user.email,
            reset_url,
            expires_minutes=int(self.reset_tokens.ttl.total_seconds() // 60),
        )

    def complete_password_reset(self, token: str, new_password: str) -> None:
        """Redeem a reset token and overwrite the owner's credential.

        Raises AuthError(INVALID_OR_EXPIRED_RESET_TOKEN) if the token is
        unknown, expired or already used. Every refresh token the user holds
        is revoked, so sessions opened with the old password end.
        """
        # Hash first: a hashing failure must not burn the token.
        hashed = self.hasher.hash(new_password)
        user_id = self.reset_tokens.consume(token)
        if not self.store.update_password(user_id, hashed):
            raise AuthError(AuthErrorKind.INVALID_OR_EXPIRED_RESET_TOKEN, "reset token owner no longer exists")
        revoked = self.store.delete_refresh_tokens_for_user(user_id)
        logger.info("Password reset completed for user_id=%d (%d refresh token(s) revoked)", user_id, revoked)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _issue_pair(self, user_id: int) -> TokenPair:
        refresh_token = self.codec.issue_refresh_token(user_id)
        expires_at = datetime.now(timezone.utc) + self.codec.refresh_ttl
        self.store.create_refresh_token(user_id, token_digest(refresh_token), to_iso(expires_at))
        return TokenPair(access_token=self.codec.issue_access_token(user_id), refresh_token=refresh_token)

    def _authenticated(self, user: User) -> AuthResult:
        pair = self._issue_pair(user.id)
        return AuthResult(user=user, access_token=pair.access_token, refresh_token=pair.refresh_token)
