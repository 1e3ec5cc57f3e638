"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in projects/models.py -- dataclasses own domain shape; stores and routes do
the work.

Layer rule: no imports from api/ or projects/.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.roles import Role


@dataclass
class User:
    """Represents an identity in Nexus.

    username and email are unique case-insensitively; the store keeps the
    original casing for display. hashed_password is a bcrypt hash and must
    never leave the server -- response models do not carry it.

    is_active is the "enabled" flag: disabled users cannot log in and their
    existing tokens stop resolving.
    """

    username: str
    email: str
    role: Role
    id: int | None = None
    hashed_password: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    created_at: str | None = None
    last_login: str | None = None
    is_active: bool = True

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)
