"""
auth/errors.py -- The single error type raised by the auth core.

Pattern: tagged error. Every failure is an AuthError carrying an AuthErrorKind.
Handlers switch on exc.kind instead of on subclass identity, and the kind
alone decides the HTTP status and the public (code, message) pair.

Public pairs are coarse:
  INVALID_TOKEN and TOKEN_EXPIRED share one pair, so a client cannot tell a
  forged token from a stale one. INVALID_OR_EXPIRED_RESET_TOKEN covers unknown,
  expired and already-used reset tokens alike.

The internal `detail` string is for logs only and is never rendered to clients.

Layer rule: stdlib only.
"""

from __future__ import annotations

from enum import Enum


class AuthErrorKind(str, Enum):
    HASHING = "hashing"
    INVALID_TOKEN = "invalid_token"
    TOKEN_EXPIRED = "token_expired"
    INVALID_OR_EXPIRED_RESET_TOKEN = "invalid_or_expired_reset_token"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"

    @property
    def status_code(self) -> int:
        return _STATUS[self]

    @property
    def public_code(self) -> str:
        return _PUBLIC[self][0]

    @property
    def public_message(self) -> str:
        return _PUBLIC[self][1]

    @property
    def is_unauthenticated(self) -> bool:
        """True for every kind the request boundary treats as 'not logged in'."""
        return self in (AuthErrorKind.INVALID_TOKEN, AuthErrorKind.TOKEN_EXPIRED)


_UNAUTHENTICATED = ("unauthorized", "Authentication required.")

_STATUS: dict[AuthErrorKind, int] = {
    AuthErrorKind.HASHING: 500,
    AuthErrorKind.INVALID_TOKEN: 401,
    AuthErrorKind.TOKEN_EXPIRED: 401,
    AuthErrorKind.INVALID_OR_EXPIRED_RESET_TOKEN: 400,
    AuthErrorKind.CONFLICT: 409,
    AuthErrorKind.UNAUTHORIZED: 401,
}

_PUBLIC: dict[AuthErrorKind, tuple[str, str]] = {
    AuthErrorKind.HASHING: ("internal_error", "An unexpected error occurred."),
    AuthErrorKind.INVALID_TOKEN: _UNAUTHENTICATED,
    AuthErrorKind.TOKEN_EXPIRED: _UNAUTHENTICATED,
    AuthErrorKind.INVALID_OR_EXPIRED_RESET_TOKEN: ("invalid_reset_token", "Invalid or expired reset token."),
    AuthErrorKind.CONFLICT: ("conflict", "Email already registered."),
    AuthErrorKind.UNAUTHORIZED: ("bad_credentials", "Invalid email or password."),
}


class AuthError(Exception):
    """Raised by every auth-core component. Inspect `kind`, not the type."""

    def __init__(self, kind: AuthErrorKind, detail: str = "") -> None:
        super().__init__(detail or kind.value)
        self.kind = kind
        self.detail = detail

    def __repr__(self) -> str:
        return f"AuthError(kind={self.kind.value!r}, detail={self.detail!r})"

    def public_body(self) -> dict:
        """Return the client-safe error envelope for this failure."""
        return {"error": {"code": self.kind.public_code, "message": self.kind.public_message}}
