"""
api/routes/v1/auth.py -- Token authentication REST endpoints.

Routes:
  POST /api/v1/auth/login     -- username/password login; returns a bearer token
  GET  /api/v1/auth/validate  -- check the presented token and report its claims
  POST /api/v1/auth/refresh   -- exchange a still-valid token for a fresh one
  GET  /api/v1/auth/me        -- current user record
  POST /api/v1/auth/logout    -- stateless; the client discards its token

Security:
  [H2] POST /login is rate-limited per IP (Settings.login_rate_limit).
  [C1] SessionAuthenticator.login() provides timing equalization -- use it,
       never inline get_by_username() + verify_password().
  [M5] Cache-Control: no-store on every response that carries a token.
  Tokens are never logged.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.mappers import user_to_response
from api.models import LoginRequest, LoginResponse, MessageResponse, TokenValidationResponse, UserResponse
from auth.dependencies import get_bearer_token, get_current_user
from auth.models import User
from auth.session import SessionAuthenticator
from auth.tokens import IssuedToken

# Auth policy:
# - POST /api/v1/auth/login:     public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:    public -- nothing is held server-side
# - GET  /api/v1/auth/validate:  bearer token
# - POST /api/v1/auth/refresh:   bearer token (must not be expired)
# - GET  /api/v1/auth/me:        bearer token
router = APIRouter()


def _token_response(token: IssuedToken, user: User) -> JSONResponse:
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            access_token=token.raw,
            token_type="bearer",  # noqa: S106 # nosec B106 -- OAuth token type, not a password
            expires_in=token.expires_in,
            expires_at=token.claims.expires_at.isoformat(),
            user=user_to_response(user),
        ).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


@limiter.limit(login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password and return a bearer token.

    Wrong username, wrong password, and disabled account all produce the same
    401 "bad_credentials" body (see api.main.nexus_error_handler).
    """
    authenticator: SessionAuthenticator = request.app.state.authenticator
    token, user = authenticator.login(body.username, body.password)
    return _token_response(token, user)


@router.get("/auth/validate", response_model=TokenValidationResponse)
def validate(request: Request, token: str = Depends(get_bearer_token)) -> TokenValidationResponse:
    """Verify the presented token and report who it belongs to and when it expires."""
    authenticator: SessionAuthenticator = request.app.state.authenticator
    claims, user = authenticator.inspect(token)
    return TokenValidationResponse(username=user.username, role=user.role, expires_at=claims.expires_at.isoformat())


@router.post("/auth/refresh", response_model=LoginResponse)
def refresh(request: Request, token: str = Depends(get_bearer_token)) -> JSONResponse:
    """Issue a fresh token for the same subject. Expired tokens are rejected with token_expired."""
    authenticator: SessionAuthenticator = request.app.state.authenticator
    new_token, user = authenticator.refresh(token)
    return _token_response(new_token, user)


@router.get("/auth/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the current user's record."""
    return user_to_response(current_user)


@router.post("/auth/logout", response_model=MessageResponse)
def logout() -> MessageResponse:
    """Tokens are stateless; logging out means the client discards its token."""
    return MessageResponse(message="Logged out. Discard your token.")
