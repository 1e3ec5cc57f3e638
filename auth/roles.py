"""
auth/roles.py -- The closed set of user roles.

ADMIN dominates both other roles. PROJECT_LEAD and DEVELOPER are not ordered
relative to each other: a lead cannot do what an assigned developer does on a
project they do not lead, and vice versa. There is deliberately no numeric
"level" -- comparisons go through the predicates below.
"""

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    ADMIN = "ADMIN"
    PROJECT_LEAD = "PROJECT_LEAD"
    DEVELOPER = "DEVELOPER"

    @property
    def is_admin(self) -> bool:
        return self is Role.ADMIN

    @property
    def can_lead_projects(self) -> bool:
        return self in (Role.PROJECT_LEAD, Role.ADMIN)

    @property
    def can_manage_users(self) -> bool:
        return self is Role.ADMIN

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES: dict[Role, str] = {
    Role.ADMIN: "Administrator",
    Role.PROJECT_LEAD: "Project Lead",
    Role.DEVELOPER: "Developer",
}
