"""Unit tests for auth/passwords.py -- PasswordHasher.

Covers:
- hash/verify agreement over a spread of generated passwords
- mismatched passwords never verify
- per-call salt: two hashes of one password differ, both verify
- malformed stored hash raises AuthError(HASHING), not False
- passwords past bcrypt's 72-byte window round-trip and are not truncated
- needs_rehash() follows the configured cost factor
"""

import random
import string

import pytest

from auth.errors import AuthError, AuthErrorKind
from auth.passwords import PasswordHasher


def _random_passwords(count: int, seed: int) -> list[str]:
    rng = random.Random(seed)
    alphabet = string.ascii_letters + string.digits + string.punctuation + " éü漢"
    passwords = []
    for _ in range(count):
        length = rng.randint(1, 100)
        passwords.append("".join(rng.choice(alphabet) for _ in range(length)))
    return passwords


_PASSWORDS = _random_passwords(12, seed=1337)


@pytest.mark.parametrize("password", _PASSWORDS)
def test_verify_accepts_own_hash(hasher: PasswordHasher, password: str) -> None:
    assert hasher.verify(password, hasher.hash(password)) is True


@pytest.mark.parametrize("password", _PASSWORDS)
def test_verify_rejects_other_password(hasher: PasswordHasher, password: str) -> None:
    other = password + "x"
    assert hasher.verify(other, hasher.hash(password)) is False


def test_same_password_hashes_differently_but_both_verify(hasher: PasswordHasher) -> None:
    first = hasher.hash("correct horse battery")
    second = hasher.hash("correct horse battery")
    assert first != second
    assert hasher.verify("correct horse battery", first)
    assert hasher.verify("correct horse battery", second)


def test_hash_is_algorithm_tagged(hasher: PasswordHasher) -> None:
    hashed = hasher.hash("tagged-password")
    assert hashed.startswith("$2b$04$")
    assert "tagged-password" not in hashed


def test_malformed_hash_raises_hashing_error(hasher: PasswordHasher) -> None:
    with pytest.raises(AuthError) as exc_info:
        hasher.verify("anything", "not-a-bcrypt-hash")
    assert exc_info.value.kind is AuthErrorKind.HASHING


def test_long_password_round_trips(hasher: PasswordHasher) -> None:
    password = "a" * 200
    assert hasher.verify(password, hasher.hash(password)) is True


def test_long_passwords_are_not_truncated(hasher: PasswordHasher) -> None:
    # Same first 72 bytes, different tails.
    prefix = "p" * 72
    stored = hasher.hash(prefix + "-first")
    assert hasher.verify(prefix + "-second", stored) is False
    assert hasher.verify(prefix, stored) is False


def test_multibyte_password_round_trips(hasher: PasswordHasher) -> None:
    password = "漢" * 40
    assert hasher.verify(password, hasher.hash(password)) is True


def test_verify_dummy_returns_nothing(hasher: PasswordHasher) -> None:
    assert hasher.verify_dummy("whatever") is None


def test_needs_rehash_tracks_cost_factor(hasher: PasswordHasher) -> None:
    cheap = hasher.hash("rehash-me")
    assert hasher.needs_rehash(cheap) is False
    stronger = PasswordHasher(rounds=5)
    assert stronger.needs_rehash(cheap) is True
    assert stronger.needs_rehash("garbage") is True
