"""
api/routes/v1/users.py -- User management REST endpoints.

Routes:
  POST /api/v1/users                   -- create user (MANAGE_USERS)
  GET  /api/v1/users                   -- list all users (MANAGE_USERS)
  GET  /api/v1/users/developers        -- active developers (LIST_DEVELOPERS)
  GET  /api/v1/users/project-leads     -- active project leads (MANAGE_USERS)
  GET  /api/v1/users/role/{role}        -- active users with a role (LIST_USERS_BY_ROLE)
  GET  /api/v1/users/profile           -- current user's own record
  PUT  /api/v1/users/change-password   -- current user's password
  GET  /api/v1/users/{id}              -- one user (MANAGE_USERS)
  PUT  /api/v1/users/{id}/role         -- change role (MANAGE_USERS)
  PUT  /api/v1/users/{id}/disable      -- disable account (MANAGE_USERS)
  PUT  /api/v1/users/{id}/enable       -- enable account (MANAGE_USERS)

Security:
  [M4] Blocks self-disable, and disabling or demoting the last active admin.
  A user who currently leads projects cannot be demoted to DEVELOPER, so a
  project's lead always satisfies can_lead_projects.
  Static paths are declared before /users/{user_id} so they are never
  captured by the path parameter.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError

from api.mappers import user_to_response
from api.models import ChangePasswordRequest, MessageResponse, RoleUpdate, UserCreate, UserResponse
from auth.access import Action, authorize
from auth.dependencies import get_current_user, require_admin
from auth.models import User
from auth.passwords import hash_password
from auth.roles import Role
from auth.session import SessionAuthenticator
from auth.store import UserStore
from core.errors import Conflict, InvalidOperation, NotFound
from projects.store import ProjectStore

logger = logging.getLogger("nexus.api")

router = APIRouter()


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(request: Request, body: UserCreate, current_user: User = Depends(require_admin)) -> UserResponse:
    """Create a user account. Username and email must be unique ignoring case."""
    user_store: UserStore = request.app.state.user_store

    if user_store.username_exists(body.username):
        raise Conflict("Username already exists.")
    if user_store.email_exists(body.email):
        raise Conflict("Email already exists.")

    new_user = User(
        username=body.username,
        email=body.email,
        role=body.role,
        first_name=body.first_name,
        last_name=body.last_name,
        hashed_password=hash_password(body.password),
    )
    try:
        user_id = user_store.create_user(new_user)
    except IntegrityError as exc:
        # Lost a race with a concurrent insert of the same username or email.
        raise Conflict("Username or email already exists.") from exc

    logger.info("User created -- user_id=%s role=%s by admin_id=%s", user_id, body.role.value, current_user.id)
    return user_to_response(_get_user(user_store, user_id))


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request, current_user: User = Depends(require_admin)) -> list[UserResponse]:
    user_store: UserStore = request.app.state.user_store
    return [user_to_response(u) for u in user_store.list_users()]


@router.get("/users/developers", response_model=list[UserResponse])
def list_developers(request: Request, current_user: User = Depends(get_current_user)) -> list[UserResponse]:
    """Active developers, for project leads choosing whom to assign."""
    authorize(current_user, Action.LIST_DEVELOPERS)
    user_store: UserStore = request.app.state.user_store
    return [user_to_response(u) for u in user_store.list_active_by_role(Role.DEVELOPER)]


@router.get("/users/project-leads", response_model=list[UserResponse])
def list_project_leads(request: Request, current_user: User = Depends(require_admin)) -> list[UserResponse]:
    user_store: UserStore = request.app.state.user_store
    return [user_to_response(u) for u in user_store.list_active_by_role(Role.PROJECT_LEAD)]


@router.get("/users/role/{role}", response_model=list[UserResponse])
def list_users_by_role(request: Request, role: Role, current_user: User = Depends(get_current_user)) -> list[UserResponse]:
    """Active users holding role. Unknown role names fail validation (422)."""
    authorize(current_user, Action.LIST_USERS_BY_ROLE)
    user_store: UserStore = request.app.state.user_store
    return [user_to_response(u) for u in user_store.list_active_by_role(role)]


# ---------------------------------------------------------------------------
# Self-service
# ---------------------------------------------------------------------------


@router.get("/users/profile", response_model=UserResponse)
def profile(current_user: User = Depends(get_current_user)) -> UserResponse:
    return user_to_response(current_user)


@router.put("/users/change-password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    """Change the caller's own password. The current password must be supplied."""
    authenticator: SessionAuthenticator = request.app.state.authenticator
    authenticator.change_password(current_user, body.current_password, body.new_password)
    return MessageResponse(message="Password changed successfully.")


# ---------------------------------------------------------------------------
# Single user (admin)
# ---------------------------------------------------------------------------


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: int, current_user: User = Depends(require_admin)) -> UserResponse:
    return user_to_response(_get_user(request.app.state.user_store, user_id))


@router.put("/users/{user_id}/role", response_model=UserResponse)
def update_role(
    request: Request,
    user_id: int,
    body: RoleUpdate,
    current_user: User = Depends(require_admin),
) -> UserResponse:
    """Change a user's role.

    Rejected when it would leave no active admin, or when the user leads a
    project and the new role cannot lead projects.
    """
    user_store: UserStore = request.app.state.user_store
    project_store: ProjectStore = request.app.state.project_store
    target = _get_user(user_store, user_id)

    if target.role is body.role:
        return user_to_response(target)
    if target.role.is_admin and target.is_active and user_store.count_active_admins() <= 1:
        raise InvalidOperation("Cannot change the role of the last active admin.")
    if not body.role.can_lead_projects and project_store.count_projects_led_by(target.id) > 0:
        raise InvalidOperation("User leads one or more projects. Reassign those projects before changing the role.")

    user_store.update_user(target.id, role=body.role)
    logger.info(
        "Role changed -- user_id=%s %s -> %s by admin_id=%s",
        target.id,
        target.role.value,
        body.role.value,
        current_user.id,
    )
    return user_to_response(_get_user(user_store, target.id))


@router.put("/users/{user_id}/disable", response_model=UserResponse)
def disable_user(request: Request, user_id: int, current_user: User = Depends(require_admin)) -> UserResponse:
    """Disable an account. Its existing tokens stop resolving immediately."""
    user_store: UserStore = request.app.state.user_store
    target = _get_user(user_store, user_id)

    if target.id == current_user.id:
        raise InvalidOperation("You cannot disable your own account.")
    if target.role.is_admin and target.is_active and user_store.count_active_admins() <= 1:
        raise InvalidOperation("Cannot disable the last active admin account.")

    user_store.update_user(target.id, is_active=False)
    logger.info("User disabled -- user_id=%s by admin_id=%s", target.id, current_user.id)
    return user_to_response(_get_user(user_store, target.id))


@router.put("/users/{user_id}/enable", response_model=UserResponse)
def enable_user(request: Request, user_id: int, current_user: User = Depends(require_admin)) -> UserResponse:
    user_store: UserStore = request.app.state.user_store
    target = _get_user(user_store, user_id)
    user_store.update_user(target.id, is_active=True)
    logger.info("User enabled -- user_id=%s by admin_id=%s", target.id, current_user.id)
    return user_to_response(_get_user(user_store, target.id))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_user(user_store: UserStore, user_id: int) -> User:
    user = user_store.get_by_id(user_id)
    if user is None:
        raise NotFound("User not found.")
    return user
