"""
auth/access.py -- Role-scoped access evaluator for projects, documents, and users.

Every authorization decision in Nexus goes through this module. Route handlers
never compare roles themselves: they fetch the resource facts, then call
authorize(caller, action, facts).

Shape:
  evaluate(caller, action, facts) -> Decision   pure, no I/O, no side effects
  authorize(caller, action, facts) -> None      raises Forbidden on DENY
  project_scope(caller) / filter_visible(...)   the ListProjectsForUser rule

caller is anything with .id and .role (auth.models.User in practice).
facts is the minimal ownership data the rule needs:
  ProjectFacts  -- lead_id, assigned_developer_ids
  DocumentFacts -- uploader_id plus the owning project's ProjectFacts
  TargetFacts   -- role of a proposed lead or assignee
  None          -- for actions that depend only on the caller's role

Rule table (first match wins; ADMIN short-circuits every caller-permission
action):

  VIEW_PROJECT, VIEW_DOCUMENT,             lead of the project, or assigned developer
  LIST_PROJECT_DOCUMENTS, DOWNLOAD_DOCUMENT
  ASSIGN_DEVELOPERS, UPLOAD_DOCUMENT       PROJECT_LEAD who leads the project
  DELETE_DOCUMENT                          uploader, or PROJECT_LEAD leading the project
  CREATE/UPDATE/DELETE/COMPLETE/           ADMIN only
  REACTIVATE_PROJECT, LIST_ALL_PROJECTS,
  MANAGE_USERS
  LIST_DEVELOPERS, LIST_USERS_BY_ROLE      caller can lead projects
  ASSIGNABLE_LEAD_CHECK                    target can lead projects
  ASSIGNABLE_DEVELOPER_CHECK               target is exactly DEVELOPER

The two *_CHECK actions judge the proposed target, not the caller, so an
ADMIN caller does not bypass them: an admin still cannot make a developer a
project lead.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol, TypeVar, Union

from auth.roles import Role
from core.errors import Forbidden

logger = logging.getLogger("nexus.access")


class Caller(Protocol):
    id: Optional[int]
    role: Role


class Decision(str, Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"


class Action(str, Enum):
    VIEW_PROJECT = "view_project"
    CREATE_PROJECT = "create_project"
    UPDATE_PROJECT = "update_project"
    DELETE_PROJECT = "delete_project"
    COMPLETE_PROJECT = "complete_project"
    REACTIVATE_PROJECT = "reactivate_project"
    LIST_ALL_PROJECTS = "list_all_projects"
    ASSIGN_DEVELOPERS = "assign_developers"
    UPLOAD_DOCUMENT = "upload_document"
    VIEW_DOCUMENT = "view_document"
    LIST_PROJECT_DOCUMENTS = "list_project_documents"
    DOWNLOAD_DOCUMENT = "download_document"
    DELETE_DOCUMENT = "delete_document"
    MANAGE_USERS = "manage_users"
    LIST_DEVELOPERS = "list_developers"
    LIST_USERS_BY_ROLE = "list_users_by_role"
    ASSIGNABLE_LEAD_CHECK = "assignable_lead_check"
    ASSIGNABLE_DEVELOPER_CHECK = "assignable_developer_check"


class ProjectScope(str, Enum):
    """Which projects a caller may list."""

    ALL = "all"
    LED = "led"
    ASSIGNED = "assigned"


# ---------------------------------------------------------------------------
# Facts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ProjectFacts:
    lead_id: Optional[int] = None
    assigned_developer_ids: frozenset[int] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        # Accept any iterable; a frozenset makes the decision independent of order and duplicates.
        object.__setattr__(self, "assigned_developer_ids", frozenset(self.assigned_developer_ids))

    def is_led_by(self, user_id: Optional[int]) -> bool:
        return user_id is not None and self.lead_id == user_id

    def is_member(self, user_id: Optional[int]) -> bool:
        return self.is_led_by(user_id) or (user_id is not None and user_id in self.assigned_developer_ids)


@dataclass(frozen=True)
class DocumentFacts:
    uploader_id: int
    project: ProjectFacts


@dataclass(frozen=True)
class TargetFacts:
    role: Role


Facts = Union[ProjectFacts, DocumentFacts, TargetFacts, None]

# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


def _project_of(facts: Facts) -> ProjectFacts:
    if isinstance(facts, DocumentFacts):
        return facts.project
    if isinstance(facts, ProjectFacts):
        return facts
    raise TypeError(f"expected ProjectFacts or DocumentFacts, got {type(facts).__name__}")


def _document_of(facts: Facts) -> DocumentFacts:
    if isinstance(facts, DocumentFacts):
        return facts
    raise TypeError(f"expected DocumentFacts, got {type(facts).__name__}")


def _target_of(facts: Facts) -> TargetFacts:
    if isinstance(facts, TargetFacts):
        return facts
    raise TypeError(f"expected TargetFacts, got {type(facts).__name__}")


def _admin_only(caller: Caller, facts: Facts) -> bool:
    return caller.role.is_admin


def _project_member(caller: Caller, facts: Facts) -> bool:
    return _project_of(facts).is_member(caller.id)


def _leading_lead(caller: Caller, facts: Facts) -> bool:
    return caller.role is Role.PROJECT_LEAD and _project_of(facts).is_led_by(caller.id)


def _uploader_or_leading_lead(caller: Caller, facts: Facts) -> bool:
    document = _document_of(facts)
    if caller.id is not None and document.uploader_id == caller.id:
        return True
    return _leading_lead(caller, document)


def _caller_can_lead(caller: Caller, facts: Facts) -> bool:
    return caller.role.can_lead_projects


def _target_can_lead(caller: Caller, facts: Facts) -> bool:
    return _target_of(facts).role.can_lead_projects


def _target_is_developer(caller: Caller, facts: Facts) -> bool:
    return _target_of(facts).role is Role.DEVELOPER


Rule = Callable[[Caller, Facts], bool]

_RULES: dict[Action, Rule] = {
    Action.VIEW_PROJECT: _project_member,
    Action.CREATE_PROJECT: _admin_only,
    Action.UPDATE_PROJECT: _admin_only,
    Action.DELETE_PROJECT: _admin_only,
    Action.COMPLETE_PROJECT: _admin_only,
    Action.REACTIVATE_PROJECT: _admin_only,
    Action.LIST_ALL_PROJECTS: _admin_only,
    Action.ASSIGN_DEVELOPERS: _leading_lead,
    Action.UPLOAD_DOCUMENT: _leading_lead,
    Action.VIEW_DOCUMENT: _project_member,
    Action.LIST_PROJECT_DOCUMENTS: _project_member,
    Action.DOWNLOAD_DOCUMENT: _project_member,
    Action.DELETE_DOCUMENT: _uploader_or_leading_lead,
    Action.MANAGE_USERS: _admin_only,
    Action.LIST_DEVELOPERS: _caller_can_lead,
    Action.LIST_USERS_BY_ROLE: _caller_can_lead,
    Action.ASSIGNABLE_LEAD_CHECK: _target_can_lead,
    Action.ASSIGNABLE_DEVELOPER_CHECK: _target_is_developer,
}

# Actions decided purely on the target's role. ADMIN does not short-circuit these.
ELIGIBILITY_ACTIONS: frozenset[Action] = frozenset({Action.ASSIGNABLE_LEAD_CHECK, Action.ASSIGNABLE_DEVELOPER_CHECK})

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def evaluate(caller: Caller, action: Action, facts: Facts = None) -> Decision:
    """Return ALLOW or DENY for caller performing action on the resource described by facts."""
    action = Action(action)
    if action not in ELIGIBILITY_ACTIONS and caller.role.is_admin:
        return Decision.ALLOW
    return Decision.ALLOW if _RULES[action](caller, facts) else Decision.DENY


def authorize(caller: Caller, action: Action, facts: Facts = None) -> None:
    """Raise Forbidden unless evaluate() allows the action."""
    action = Action(action)
    if evaluate(caller, action, facts) is Decision.ALLOW:
        return
    logger.warning(
        "Access denied -- user_id=%s role=%s action=%s",
        caller.id,
        caller.role.value,
        action.value,
    )
    raise Forbidden(_DENIAL_MESSAGES.get(action, "You do not have permission to perform this action."))


def project_scope(caller: Caller) -> ProjectScope:
    """The ListProjectsForUser rule: which subset of projects caller may list."""
    if caller.role.is_admin:
        return ProjectScope.ALL
    if caller.role is Role.PROJECT_LEAD:
        return ProjectScope.LED
    return ProjectScope.ASSIGNED


T = TypeVar("T")


def filter_visible(caller: Caller, items: Iterable[T], facts_of: Callable[[T], ProjectFacts]) -> list[T]:
    """Return the items whose project facts fall inside caller's project_scope, in input order."""
    scope = project_scope(caller)
    if scope is ProjectScope.ALL:
        return list(items)
    if scope is ProjectScope.LED:
        return [item for item in items if facts_of(item).is_led_by(caller.id)]
    return [item for item in items if caller.id in facts_of(item).assigned_developer_ids]


_DENIAL_MESSAGES: dict[Action, str] = {
    Action.VIEW_PROJECT: "You don't have access to this project.",
    Action.ASSIGN_DEVELOPERS: "You don't have permission to assign developers to this project.",
    Action.UPLOAD_DOCUMENT: "You don't have permission to upload files to this project.",
    Action.VIEW_DOCUMENT: "You don't have access to this document.",
    Action.LIST_PROJECT_DOCUMENTS: "You don't have access to this project's documents.",
    Action.DOWNLOAD_DOCUMENT: "You don't have access to this document.",
    Action.DELETE_DOCUMENT: "You don't have permission to delete this document.",
    Action.MANAGE_USERS: "Admin access required.",
    Action.LIST_USERS_BY_ROLE: "Project Lead or Admin access required.",
    Action.ASSIGNABLE_LEAD_CHECK: "User must be a Project Lead or Admin to lead projects.",
    Action.ASSIGNABLE_DEVELOPER_CHECK: "Only developers can be assigned to a project.",
}
