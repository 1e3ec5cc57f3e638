"""
api/routes/v1/projects.py -- Project REST endpoints.

Routes:
  POST   /api/v1/projects                  -- create (CREATE_PROJECT)
  GET    /api/v1/projects                  -- projects visible to the caller
  GET    /api/v1/projects/active           -- all active projects (LIST_ALL_PROJECTS)
  GET    /api/v1/projects/overdue          -- active projects past deadline (LIST_ALL_PROJECTS)
  GET    /api/v1/projects/{id}             -- one project (VIEW_PROJECT)
  PUT    /api/v1/projects/{id}             -- edit fields / lead (UPDATE_PROJECT)
  PUT    /api/v1/projects/{id}/assign      -- replace developer set (ASSIGN_DEVELOPERS)
  PUT    /api/v1/projects/{id}/complete    -- mark completed (COMPLETE_PROJECT)
  PUT    /api/v1/projects/{id}/reactivate  -- back to active (REACTIVATE_PROJECT)
  DELETE /api/v1/projects/{id}             -- delete with documents (DELETE_PROJECT)

Every handler loads the resource facts first (missing -> 404), then asks
auth.access for a decision (DENY -> 403). No handler compares roles itself.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request, Response

from api.mappers import project_to_response, related_user_ids
from api.models import AssignDevelopersRequest, ProjectCreate, ProjectResponse, ProjectUpdate
from auth.access import Action, ProjectScope, TargetFacts, authorize, filter_visible, project_scope
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from core.errors import InvalidOperation, NotFound
from projects.files import DocumentStorage
from projects.models import Project, ProjectStatus
from projects.store import ProjectStore, project_facts_of

logger = logging.getLogger("nexus.projects")

router = APIRouter()


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


@router.post("/projects", response_model=ProjectResponse, status_code=201)
def create_project(request: Request, body: ProjectCreate, current_user: User = Depends(get_current_user)) -> ProjectResponse:
    authorize(current_user, Action.CREATE_PROJECT)
    if body.lead_id is not None:
        _check_lead(request.app.state.user_store, current_user, body.lead_id)

    project_store: ProjectStore = request.app.state.project_store
    project_id = project_store.create_project(
        Project(name=body.name, description=body.description, deadline=body.deadline, lead_id=body.lead_id)
    )
    logger.info("Project created -- project_id=%s lead_id=%s by user_id=%s", project_id, body.lead_id, current_user.id)
    return _render_one(request, _get_project(project_store, project_id))


@router.get("/projects", response_model=list[ProjectResponse])
def list_projects(request: Request, current_user: User = Depends(get_current_user)) -> list[ProjectResponse]:
    """All projects for admins, led projects for leads, assigned projects for developers."""
    project_store: ProjectStore = request.app.state.project_store
    scope = project_scope(current_user)
    if scope is ProjectScope.LED:
        candidates = project_store.list_projects_led_by(current_user.id)
    elif scope is ProjectScope.ASSIGNED:
        candidates = project_store.list_projects_assigned_to(current_user.id)
    else:
        candidates = project_store.list_projects()
    # The query narrows in SQL; filter_visible stays the deciding rule.
    visible = filter_visible(current_user, candidates, project_facts_of)
    return _render_many(request, visible)


@router.get("/projects/active", response_model=list[ProjectResponse])
def list_active_projects(request: Request, current_user: User = Depends(get_current_user)) -> list[ProjectResponse]:
    authorize(current_user, Action.LIST_ALL_PROJECTS)
    return _render_many(request, request.app.state.project_store.list_active_projects())


@router.get("/projects/overdue", response_model=list[ProjectResponse])
def list_overdue_projects(request: Request, current_user: User = Depends(get_current_user)) -> list[ProjectResponse]:
    authorize(current_user, Action.LIST_ALL_PROJECTS)
    return _render_many(request, request.app.state.project_store.list_overdue_projects())


# ---------------------------------------------------------------------------
# Single project
# ---------------------------------------------------------------------------


@router.get("/projects/{project_id}", response_model=ProjectResponse)
def get_project(request: Request, project_id: int, current_user: User = Depends(get_current_user)) -> ProjectResponse:
    project = _get_project(request.app.state.project_store, project_id)
    authorize(current_user, Action.VIEW_PROJECT, project_facts_of(project))
    return _render_one(request, project)


@router.put("/projects/{project_id}", response_model=ProjectResponse)
def update_project(
    request: Request,
    project_id: int,
    body: ProjectUpdate,
    current_user: User = Depends(get_current_user),
) -> ProjectResponse:
    """Edit name, description, deadline, or lead. A null lead_id clears the lead."""
    project_store: ProjectStore = request.app.state.project_store
    project = _get_project(project_store, project_id)
    authorize(current_user, Action.UPDATE_PROJECT, project_facts_of(project))

    updates = body.model_dump(exclude_unset=True, exclude={"lead_id"})
    updates = {k: v for k, v in updates.items() if v is not None}
    if "lead_id" in body.model_fields_set:
        if body.lead_id is not None:
            _check_lead(request.app.state.user_store, current_user, body.lead_id)
        updates["lead_id"] = body.lead_id
    if not updates:
        raise InvalidOperation("No fields to update.")

    project_store.update_project(project.id, **updates)
    logger.info("Project updated -- project_id=%s fields=%s by user_id=%s", project.id, sorted(updates), current_user.id)
    return _render_one(request, _get_project(project_store, project.id))


@router.put("/projects/{project_id}/assign", response_model=ProjectResponse)
def assign_developers(
    request: Request,
    project_id: int,
    body: AssignDevelopersRequest,
    current_user: User = Depends(get_current_user),
) -> ProjectResponse:
    """Replace the assigned developer set. Every id must be an existing DEVELOPER."""
    project_store: ProjectStore = request.app.state.project_store
    user_store: UserStore = request.app.state.user_store
    project = _get_project(project_store, project_id)
    authorize(current_user, Action.ASSIGN_DEVELOPERS, project_facts_of(project))

    developer_ids = set(body.developer_ids)
    found = user_store.get_many(sorted(developer_ids))
    for developer_id in sorted(developer_ids):
        developer = found.get(developer_id)
        if developer is None:
            raise NotFound(f"User {developer_id} not found.")
        authorize(current_user, Action.ASSIGNABLE_DEVELOPER_CHECK, TargetFacts(role=developer.role))

    project_store.set_assigned_developers(project.id, developer_ids)
    logger.info(
        "Developers assigned -- project_id=%s count=%d by user_id=%s",
        project.id,
        len(developer_ids),
        current_user.id,
    )
    return _render_one(request, _get_project(project_store, project.id))


@router.put("/projects/{project_id}/complete", response_model=ProjectResponse)
def complete_project(request: Request, project_id: int, current_user: User = Depends(get_current_user)) -> ProjectResponse:
    project_store: ProjectStore = request.app.state.project_store
    project = _get_project(project_store, project_id)
    authorize(current_user, Action.COMPLETE_PROJECT, project_facts_of(project))
    if project.is_completed():
        raise InvalidOperation("Project is already completed.")
    project_store.set_status(project.id, ProjectStatus.COMPLETED)
    logger.info("Project completed -- project_id=%s by user_id=%s", project.id, current_user.id)
    return _render_one(request, _get_project(project_store, project.id))


@router.put("/projects/{project_id}/reactivate", response_model=ProjectResponse)
def reactivate_project(request: Request, project_id: int, current_user: User = Depends(get_current_user)) -> ProjectResponse:
    project_store: ProjectStore = request.app.state.project_store
    project = _get_project(project_store, project_id)
    authorize(current_user, Action.REACTIVATE_PROJECT, project_facts_of(project))
    if not project.is_completed():
        raise InvalidOperation("Only completed projects can be reactivated.")
    project_store.set_status(project.id, ProjectStatus.ACTIVE)
    logger.info("Project reactivated -- project_id=%s by user_id=%s", project.id, current_user.id)
    return _render_one(request, _get_project(project_store, project.id))


@router.delete("/projects/{project_id}", status_code=204)
def delete_project(request: Request, project_id: int, current_user: User = Depends(get_current_user)) -> Response:
    """Delete the project, its assignments, its document records, and their files."""
    project_store: ProjectStore = request.app.state.project_store
    storage: DocumentStorage = request.app.state.storage
    project = _get_project(project_store, project_id)
    authorize(current_user, Action.DELETE_PROJECT, project_facts_of(project))

    paths = project_store.delete_project(project.id)
    for path in paths:
        storage.delete(path)
    logger.info("Project deleted -- project_id=%s documents=%d by user_id=%s", project.id, len(paths), current_user.id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_project(project_store: ProjectStore, project_id: int) -> Project:
    project = project_store.get_project(project_id)
    if project is None:
        raise NotFound("Project not found.")
    return project


def _check_lead(user_store: UserStore, caller: User, lead_id: int) -> None:
    """The proposed lead must exist, be enabled, and hold a role that can lead projects."""
    lead = user_store.get_by_id(lead_id)
    if lead is None:
        raise NotFound("Project lead not found.")
    if not lead.is_active:
        raise InvalidOperation("A disabled user cannot lead a project.")
    authorize(caller, Action.ASSIGNABLE_LEAD_CHECK, TargetFacts(role=lead.role))


def _render_many(request: Request, projects: list[Project]) -> list[ProjectResponse]:
    user_store: UserStore = request.app.state.user_store
    project_store: ProjectStore = request.app.state.project_store
    users = user_store.get_many(related_user_ids(projects))
    counts = project_store.count_documents([p.id for p in projects])
    return [project_to_response(p, users, counts.get(p.id, 0)) for p in projects]


def _render_one(request: Request, project: Project) -> ProjectResponse:
    return _render_many(request, [project])[0]
