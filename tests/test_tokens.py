"""Unit tests for auth/tokens.py -- TokenCodec.

Covers:
- access / refresh round trip carries user id and type
- expired token -> TOKEN_EXPIRED; tampered / foreign-key / garbage -> INVALID_TOKEN
- both failure kinds render to the same public 401 body
- verify_as() blocks access <-> refresh confusion
- claim-shape validation for correctly signed but malformed tokens
- leeway tolerates small clock skew
- the signing key never appears in repr()
"""

from __future__ import annotations

import base64
import json
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.errors import AuthError, AuthErrorKind
from auth.models import TokenType
from auth.tokens import TokenCodec


def _b64url_decode(segment: str) -> bytes:
    return base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4))


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


class TestRoundTrip:
    def test_access_token_round_trip(self, codec: TokenCodec) -> None:
        payload = codec.verify(codec.issue_access_token(7))
        assert payload.user_id == 7
        assert payload.type is TokenType.ACCESS

    def test_refresh_token_round_trip(self, codec: TokenCodec) -> None:
        payload = codec.verify(codec.issue_refresh_token(7))
        assert payload.user_id == 7
        assert payload.type is TokenType.REFRESH

    def test_lifetimes_follow_configuration(self, codec: TokenCodec) -> None:
        access = codec.verify(codec.issue_access_token(1))
        refresh = codec.verify(codec.issue_refresh_token(1))
        assert access.expires_at - access.issued_at == timedelta(minutes=15)
        assert refresh.expires_at - refresh.issued_at == timedelta(days=7)
        assert access.expires_at > datetime.now(timezone.utc)

    def test_tokens_minted_together_differ(self, codec: TokenCodec) -> None:
        assert codec.issue_access_token(3) != codec.issue_access_token(3)


class TestVerificationFailures:
    def test_expired_token_is_expiry_class(self, codec_factory) -> None:
        codec = codec_factory(access_ttl=timedelta(seconds=-30))
        token = codec.issue_access_token(7)
        with pytest.raises(AuthError) as exc_info:
            codec.verify(token)
        assert exc_info.value.kind is AuthErrorKind.TOKEN_EXPIRED

    def test_tampered_payload_is_invalid_class(self, codec: TokenCodec) -> None:
        header, payload, signature = codec.issue_access_token(7).split(".")
        claims = json.loads(_b64url_decode(payload))
        claims["user_id"] = 999
        forged = ".".join([header, _b64url_encode(json.dumps(claims).encode()), signature])
        with pytest.raises(AuthError) as exc_info:
            codec.verify(forged)
        assert exc_info.value.kind is AuthErrorKind.INVALID_TOKEN

    def test_token_signed_with_other_key_is_invalid(self, codec: TokenCodec, codec_factory) -> None:
        foreign = codec_factory(secret="another-signing-key-fedcba9876543210fedcba98")
        with pytest.raises(AuthError) as exc_info:
            codec.verify(foreign.issue_access_token(7))
        assert exc_info.value.kind is AuthErrorKind.INVALID_TOKEN

    @pytest.mark.parametrize("garbage", ["", "not.a.jwt", "abc", "a.b.c.d"])
    def test_garbage_is_invalid(self, codec: TokenCodec, garbage: str) -> None:
        with pytest.raises(AuthError) as exc_info:
            codec.verify(garbage)
        assert exc_info.value.kind is AuthErrorKind.INVALID_TOKEN

    def test_expired_and_invalid_render_identically(self, codec: TokenCodec, codec_factory) -> None:
        expired_codec = codec_factory(access_ttl=timedelta(seconds=-30))
        with pytest.raises(AuthError) as expired:
            codec.verify(expired_codec.issue_access_token(1))
        with pytest.raises(AuthError) as invalid:
            codec.verify("not.a.jwt")
        assert expired.value.kind is not invalid.value.kind
        assert expired.value.public_body() == invalid.value.public_body()
        assert expired.value.kind.status_code == invalid.value.kind.status_code == 401


class TestTypeDiscriminator:
    def test_refresh_token_rejected_where_access_required(self, codec: TokenCodec) -> None:
        with pytest.raises(AuthError) as exc_info:
            codec.verify_as(codec.issue_refresh_token(7), TokenType.ACCESS)
        assert exc_info.value.kind is AuthErrorKind.INVALID_TOKEN

    def test_access_token_rejected_where_refresh_required(self, codec: TokenCodec) -> None:
        with pytest.raises(AuthError) as exc_info:
            codec.verify_as(codec.issue_access_token(7), TokenType.REFRESH)
        assert exc_info.value.kind is AuthErrorKind.INVALID_TOKEN

    def test_matching_type_passes(self, codec: TokenCodec) -> None:
        assert codec.verify_as(codec.issue_refresh_token(9), TokenType.REFRESH).user_id == 9


class TestClaimShape:
    """Tokens signed with the right key but minted outside TokenCodec."""

    @pytest.fixture(autouse=True)
    def _key(self, signing_key: str) -> None:
        self.key = signing_key

    def _sign(self, claims: dict) -> str:
        return jwt.encode(claims, self.key, algorithm="HS256")

    def _future(self) -> datetime:
        return datetime.now(timezone.utc) + timedelta(minutes=5)

    def test_missing_type_claim_is_invalid(self, codec: TokenCodec) -> None:
        token = self._sign({"user_id": 1, "iat": datetime.now(timezone.utc), "exp": self._future()})
        with pytest.raises(AuthError) as exc_info:
            codec.verify(token)
        assert exc_info.value.kind is AuthErrorKind.INVALID_TOKEN

    def test_unknown_type_claim_is_invalid(self, codec: TokenCodec) -> None:
        token = self._sign(
            {"user_id": 1, "type": "admin", "iat": datetime.now(timezone.utc), "exp": self._future()}
        )
        with pytest.raises(AuthError) as exc_info:
            codec.verify(token)
        assert exc_info.value.kind is AuthErrorKind.INVALID_TOKEN

    def test_non_integer_user_id_is_invalid(self, codec: TokenCodec) -> None:
        token = self._sign(
            {"user_id": "1", "type": "access", "iat": datetime.now(timezone.utc), "exp": self._future()}
        )
        with pytest.raises(AuthError) as exc_info:
            codec.verify(token)
        assert exc_info.value.kind is AuthErrorKind.INVALID_TOKEN

    def test_token_without_exp_is_invalid(self, codec: TokenCodec) -> None:
        token = self._sign({"user_id": 1, "type": "access", "iat": datetime.now(timezone.utc)})
        with pytest.raises(AuthError) as exc_info:
            codec.verify(token)
        assert exc_info.value.kind is AuthErrorKind.INVALID_TOKEN


class TestConfiguration:
    def test_leeway_accepts_recently_expired_token(self, codec_factory) -> None:
        issuer = codec_factory(access_ttl=timedelta(seconds=-5))
        lenient = codec_factory(leeway=60)
        assert lenient.verify(issuer.issue_access_token(4)).user_id == 4

    def test_repr_hides_signing_key(self, codec: TokenCodec, signing_key: str) -> None:
        assert signing_key not in repr(codec)

    def test_empty_key_rejected(self) -> None:
        with pytest.raises(ValueError):
            TokenCodec("", access_ttl=timedelta(minutes=1), refresh_ttl=timedelta(days=1))
