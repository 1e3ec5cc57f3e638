"""
API request and response models for the Nexus REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
projects/models.py, which own the internal domain representation. Route
handlers map between the two.

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.

No response model carries a password hash. Token strings appear only in
LoginResponse, which the auth routes send with Cache-Control: no-store.
"""

from datetime import date
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator, model_validator

from auth.passwords import MAX_PASSWORD_BYTES, password_too_long
from auth.roles import Role
from projects.models import ProjectStatus

USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

# Identity fields are trimmed; passwords never are, so what was set is what logs in.
StrippedStr = Annotated[str, StringConstraints(strip_whitespace=True)]


def _check_password_bytes(value: str) -> str:
    if password_too_long(value):
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded.")
    return value


# ---------------------------------------------------------------------------
# Envelope / health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    components: dict[str, str] = Field(default_factory=dict)


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserSummary(BaseModel):
    """Compact user reference embedded in project and document responses."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    full_name: str
    role: Role


class UserResponse(BaseModel):
    """Full user record. hashed_password is never part of this model."""

    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: str
    role: Role
    role_display_name: str
    is_active: bool
    created_at: str
    last_login: Optional[str] = None


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users."""

    username: StrippedStr = Field(min_length=3, max_length=50, pattern=USERNAME_PATTERN)
    email: StrippedStr = Field(max_length=255, pattern=EMAIL_PATTERN)
    password: str = Field(min_length=8, max_length=72)
    first_name: Optional[StrippedStr] = Field(default=None, max_length=100)
    last_name: Optional[StrippedStr] = Field(default=None, max_length=100)
    role: Role = Role.DEVELOPER

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        return _check_password_bytes(v)


class RoleUpdate(BaseModel):
    """Request body for PUT /api/v1/users/{id}/role."""

    role: Role


class ChangePasswordRequest(BaseModel):
    """Request body for PUT /api/v1/users/change-password."""

    current_password: str = Field(min_length=1, max_length=72)
    new_password: str = Field(min_length=8, max_length=72)
    confirm_password: str = Field(min_length=8, max_length=72)

    @field_validator("new_password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        return _check_password_bytes(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "ChangePasswordRequest":
        if self.new_password != self.confirm_password:
            raise ValueError("New password and confirmation do not match.")
        return self


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1, max_length=72)


class LoginResponse(BaseModel):
    """Successful login or refresh. The only model that carries a token."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    expires_at: str
    user: UserResponse


class TokenValidationResponse(BaseModel):
    """Response for GET /api/v1/auth/validate."""

    model_config = ConfigDict(frozen=True)

    valid: bool = True
    username: str
    role: Role
    expires_at: str


# ---------------------------------------------------------------------------
# Projects
# ---------------------------------------------------------------------------


class ProjectCreate(BaseModel):
    """Request body for POST /api/v1/projects."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=3, max_length=100)
    description: str = Field(min_length=10, max_length=1000)
    deadline: date
    lead_id: Optional[int] = None

    @field_validator("deadline")
    @classmethod
    def deadline_in_future(cls, v: date) -> date:
        if v <= date.today():
            raise ValueError("Deadline must be in the future.")
        return v


class ProjectUpdate(BaseModel):
    """Request body for PUT /api/v1/projects/{id}. Omitted fields stay unchanged.

    lead_id is applied only when present in the body; send null to clear the lead.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, min_length=10, max_length=1000)
    deadline: Optional[date] = None
    lead_id: Optional[int] = None


class AssignDevelopersRequest(BaseModel):
    """Request body for PUT /api/v1/projects/{id}/assign. Replaces the current set."""

    developer_ids: list[int] = Field(default_factory=list, max_length=100)


class ProjectResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    description: str
    deadline: date
    status: ProjectStatus
    status_display_name: str
    lead: Optional[UserSummary] = None
    assigned_developers: list[UserSummary] = Field(default_factory=list)
    document_count: int = 0
    is_overdue: bool = False
    created_at: str
    updated_at: str
    completed_at: Optional[str] = None


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


class DocumentResponse(BaseModel):
    """Document metadata. The stored path and generated file name are not exposed."""

    model_config = ConfigDict(frozen=True)

    id: int
    project_id: int
    uploaded_by: Optional[UserSummary] = None
    original_file_name: str
    content_type: str
    file_size: int
    formatted_size: str
    extension: str
    is_image: bool
    is_pdf: bool
    description: Optional[str] = None
    uploaded_at: str
