"""
auth/passwords.py -- bcrypt password hashing and verification.

Using bcrypt directly rather than a passlib wrapper: passlib's wrap-bug
detection builds a password longer than 72 bytes, which bcrypt 4.x rejects.
Direct bcrypt usage has no compatibility shim and is actively maintained.

bcrypt embeds the algorithm tag, cost factor and salt in its output
("$2b$12$<salt><digest>"), so a stored hash is self-describing and verify()
needs nothing but the hash itself.

The 72-byte limit: bcrypt only looks at the first 72 bytes of its input and
recent releases raise instead of truncating. Every password is therefore
reduced to base64(SHA-256(password)) first, 44 ASCII bytes with no NUL, so
passwords of any length hash and verify, and two passwords that share their
first 72 bytes still differ. The only failure left in hash() is the primitive
itself, reported as AuthError(HASHING).

Layer rule: stdlib + bcrypt + auth.errors only.
"""

from __future__ import annotations

import base64
import hashlib
import logging

import bcrypt

from auth.errors import AuthError, AuthErrorKind

logger = logging.getLogger("jobtracker.auth")


def _prehash(plaintext: str) -> bytes:
    return base64.b64encode(hashlib.sha256(plaintext.encode("utf-8")).digest())


class PasswordHasher:
    """Salted, cost-tunable password hashing.

    Usage:
        hasher = PasswordHasher(rounds=12)
        stored = hasher.hash("s3cret-pass")
        hasher.verify("s3cret-pass", stored)  # True
    """

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        # Timing equalization hash. Computed once so the first unknown-account
        # login is not measurably slower than later ones.
        self._dummy_hash = self.hash("jobtracker_timing_dummy")

    def hash(self, plaintext: str) -> str:
        """Return a bcrypt hash of plaintext with a fresh random salt."""
        try:
            return bcrypt.hashpw(_prehash(plaintext), bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")
        except (ValueError, TypeError) as exc:
            raise AuthError(AuthErrorKind.HASHING, "bcrypt.hashpw failed") from exc

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Return True if plaintext matches hashed. Comparison is constant time.

        A mismatch is a normal False. A hash bcrypt cannot parse raises
        AuthError(HASHING): that means corrupted storage, not a wrong password.
        """
        try:
            return bcrypt.checkpw(_prehash(plaintext), hashed.encode("utf-8"))
        except (ValueError, TypeError) as exc:
            raise AuthError(AuthErrorKind.HASHING, "stored password hash is malformed") from exc

    def verify_dummy(self, plaintext: str) -> None:
        """Burn one verification's worth of CPU against a throwaway hash.

        Call this on every login path that would otherwise return early (unknown
        email, OAuth-only account) so response time does not reveal which
        accounts exist.
        """
        self.verify(plaintext, self._dummy_hash)

    def needs_rehash(self, hashed: str) -> bool:
        """Return True if hashed was produced with a different cost factor."""
        try:
            cost = int(hashed.split("$")[2])
        except (IndexError, ValueError):
            return True
        return cost != self.rounds
