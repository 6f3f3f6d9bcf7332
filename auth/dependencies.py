"""
auth/dependencies.py -- FastAPI Depends() helpers: the request-boundary gate.

One auth method: the Authorization: Bearer <token> header carrying an access
token. The gate runs once per request, before the route handler:

  no header / not "Bearer"   -> 401
  token fails verification   -> 401  (bad signature, malformed, expired)
  token is a refresh token   -> 401
  valid access token         -> user id attached to request.state.user_id

All four rejections produce the same status and body. Telling them apart
would tell an attacker which part of a forged token to fix.

try_get_current_user_id() is the soft variant (returns None on failure).
get_current_user_id() wraps it and raises HTTP 401 if unauthenticated.
get_current_user() additionally loads the account and rejects inactive ones.

Layer rule: may import fastapi (this module is part of FastAPI's dependency
injection system). No imports from api/.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.errors import AuthError, AuthErrorKind
from auth.models import TokenType, User
from auth.service import AuthService
from auth.tokens import TokenCodec

logger = logging.getLogger("jobtracker.auth")

_BEARER_PREFIX = "bearer "

UNAUTHENTICATED_DETAIL = {
    "code": AuthErrorKind.INVALID_TOKEN.public_code,
    "message": AuthErrorKind.INVALID_TOKEN.public_message,
}


def authenticate_bearer(authorization: str | None, codec: TokenCodec) -> int:
    """Resolve an Authorization header value to a user id.

    Raises AuthError(INVALID_TOKEN) or AuthError(TOKEN_EXPIRED). The scheme
    name is matched case-insensitively (RFC 7235).
    """
    if not authorization or not authorization.lower().startswith(_BEARER_PREFIX):
        raise AuthError(AuthErrorKind.INVALID_TOKEN, "missing bearer credentials")
    token = authorization[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise AuthError(AuthErrorKind.INVALID_TOKEN, "empty bearer token")
    return codec.verify_as(token, TokenType.ACCESS).user_id


def try_get_current_user_id(request: Request) -> int | None:
    """Authenticate the request; return the user id or None. Never raises AuthError.

    On success the id is also stored on request.state.user_id so middleware
    and handlers further down can read it without re-verifying.
    """
    service: AuthService = request.app.state.auth_service
    try:
        user_id = authenticate_bearer(request.headers.get("Authorization"), service.codec)
    except AuthError as exc:
        logger.debug("Rejected bearer credentials on %s: %s", request.url.path, exc.kind.value)
        return None
    request.state.user_id = user_id
    return user_id


def get_current_user_id(request: Request) -> int:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user_id: int = Depends(get_current_user_id)): ...
    """
    user_id = try_get_current_user_id(request)
    if user_id is None:
        raise HTTPException(status_code=401, detail=UNAUTHENTICATED_DETAIL)
    return user_id


def get_current_user(request: Request) -> User:
    """Require authentication and an active account. Raises HTTP 401 otherwise.

    A valid token for a deleted or deactivated account is indistinguishable
    from any other rejected token.
    """
    user_id = get_current_user_id(request)
    service: AuthService = request.app.state.auth_service
    user = service.get_user(user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail=UNAUTHENTICATED_DETAIL)
    return user
