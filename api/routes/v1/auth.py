"""
api/routes/v1/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/v1/auth/register          -- create account; returns user + token pair
  POST /api/v1/auth/login             -- password login; returns user + token pair
  POST /api/v1/auth/refresh           -- exchange refresh token for a new pair
  POST /api/v1/auth/logout            -- revoke the presented refresh token
  GET  /api/v1/auth/me                -- current user info (requires auth)
  POST /api/v1/auth/forgot-password   -- email a reset link; uniform response
  POST /api/v1/auth/reset-password    -- redeem reset token, set new password

Security:
  POST /login and /forgot-password are rate-limited per IP (Settings).
  Login failures share one error body whatever the cause (AuthService.login).
  /forgot-password answers identically for known and unknown emails, and
  hands issuing and sending to a background task so response time does not
  depend on whether the account exists.
  Cache-Control: no-store on every response that carries tokens.

Errors: handlers let AuthError propagate; api/main.py renders it from its kind.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TokenPairResponse,
    UserResponse,
)
from auth.dependencies import get_current_user
from auth.models import User
from auth.service import AuthService
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/register:         public
# - POST /api/v1/auth/login:            public, rate-limited
# - POST /api/v1/auth/refresh:          public -- the refresh token is the credential
# - POST /api/v1/auth/logout:           public -- the refresh token is the credential
# - GET  /api/v1/auth/me:               requires auth (get_current_user)
# - POST /api/v1/auth/forgot-password:  public, rate-limited
# - POST /api/v1/auth/reset-password:   public -- the reset token is the credential
router = APIRouter()

FORGOT_PASSWORD_MESSAGE = "If an account with that email exists, a password reset link has been sent."


def _login_limit() -> str:
    return get_settings().login_rate_limit


def _reset_limit() -> str:
    return get_settings().reset_rate_limit


def _no_store(content: dict, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(status_code=status_code, content=content)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a local account. 409 if the email is already registered."""
    service: AuthService = request.app.state.auth_service
    result = service.register(body.email, body.password, name=body.name)
    return _no_store(AuthResponse.from_result(result).model_dump(), status_code=201)


@limiter.limit(_login_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Returns the same generic error for unknown email and wrong password
    ("bad_credentials") to avoid leaking account existence.
    """
    service: AuthService = request.app.state.auth_service
    result = service.login(body.email, body.password)
    return _no_store(AuthResponse.from_result(result).model_dump())


@router.post("/auth/refresh", response_model=TokenPairResponse)
def refresh(request: Request, body: RefreshRequest) -> JSONResponse:
    """Rotate a refresh token into a fresh access/refresh pair."""
    service: AuthService = request.app.state.auth_service
    pair = service.refresh(body.refresh_token)
    return _no_store(TokenPairResponse.from_pair(pair).model_dump())


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, body: RefreshRequest) -> MessageResponse:
    """Revoke the refresh token. Succeeds for unknown tokens too; the client drops both tokens."""
    service: AuthService = request.app.state.auth_service
    service.logout(body.refresh_token)
    return MessageResponse(message="Logged out successfully.")


@limiter.limit(_reset_limit)
@router.post("/auth/forgot-password", response_model=MessageResponse)
async def forgot_password(
    request: Request, body: ForgotPasswordRequest, background_tasks: BackgroundTasks
) -> MessageResponse:
    """Send a reset link if the account exists. The response never says whether it does.

    Lookup, issue and delivery all run after the response has been sent.
    """
    service: AuthService = request.app.state.auth_service
    background_tasks.add_task(service.request_password_reset, body.email)
    return MessageResponse(message=FORGOT_PASSWORD_MESSAGE)


@router.post("/auth/reset-password", response_model=MessageResponse)
def reset_password(request: Request, body: ResetPasswordRequest) -> MessageResponse:
    """Redeem a reset token. 400 for unknown, expired and already-used tokens alike."""
    service: AuthService = request.app.state.auth_service
    service.complete_password_reset(body.token, body.password)
    return MessageResponse(message="Password has been reset successfully.")


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserResponse)
async def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return identity information for the currently authenticated user."""
    return UserResponse.from_user(current_user)
