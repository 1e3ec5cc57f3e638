"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The only accepted credential is the Authorization: Bearer <token> header.
The token is resolved by the SessionAuthenticator stored on app.state, which
verifies it with the process TokenCodec and loads the subject from the
UserStore.

get_bearer_token() extracts the raw token or raises AuthenticationError.
get_current_user() resolves it to a User; every failure surfaces as a typed
core.errors exception, which api/main.py maps to a 401 response.
require_admin() layers the MANAGE_USERS access check on top.

Layer rule: no imports from api/ or projects/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.access import Action, authorize
from auth.models import User
from auth.session import SessionAuthenticator
from core.errors import AuthenticationError

_BEARER_PREFIX = "bearer "


def get_bearer_token(request: Request) -> str:
    """Return the raw token from the Authorization header.

    The scheme name is matched case-insensitively. A missing header, another
    scheme, or an empty token all raise AuthenticationError.
    """
    header = request.headers.get("Authorization", "")
    if not header.lower().startswith(_BEARER_PREFIX):
        raise AuthenticationError("Authentication required.")
    token = header[len(_BEARER_PREFIX) :].strip()
    if not token:
        raise AuthenticationError("Authentication required.")
    return token


def get_current_user(request: Request, token: str = Depends(get_bearer_token)) -> User:
    """Require authentication and return the current User.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: User = Depends(get_current_user)): ...
    """
    authenticator: SessionAuthenticator = request.app.state.authenticator
    return authenticator.resolve(token)


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    """Require MANAGE_USERS (admin). Raises Forbidden otherwise."""
    authorize(current_user, Action.MANAGE_USERS)
    return current_user
