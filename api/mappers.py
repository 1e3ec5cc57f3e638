"""
api/mappers.py -- Domain dataclass -> API response model conversion.

Shared by every v1 router so a User, Project, or Document is rendered the
same way wherever it appears.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from api.models import DocumentResponse, ProjectResponse, UserResponse, UserSummary
from auth.models import User
from projects.files import file_extension, format_file_size, is_image, is_pdf
from projects.models import Document, Project


def user_to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        full_name=user.full_name,
        role=user.role,
        role_display_name=user.role.display_name,
        is_active=user.is_active,
        created_at=user.created_at or "",
        last_login=user.last_login,
    )


def user_to_summary(user: Optional[User]) -> Optional[UserSummary]:
    if user is None:
        return None
    return UserSummary(id=user.id, username=user.username, full_name=user.full_name, role=user.role)


def project_to_response(
    project: Project,
    users: dict[int, User],
    document_count: int = 0,
    today: Optional[date] = None,
) -> ProjectResponse:
    """Render a project. users must contain the lead and assigned developers, keyed by id."""
    developers = [users[uid] for uid in sorted(project.assigned_developer_ids) if uid in users]
    return ProjectResponse(
        id=project.id,
        name=project.name,
        description=project.description,
        deadline=project.deadline,
        status=project.status,
        status_display_name=project.status.display_name,
        lead=user_to_summary(users.get(project.lead_id)) if project.lead_id is not None else None,
        assigned_developers=[user_to_summary(u) for u in developers],
        document_count=document_count,
        is_overdue=project.is_overdue(today),
        created_at=project.created_at,
        updated_at=project.updated_at,
        completed_at=project.completed_at,
    )


def document_to_response(document: Document, uploader: Optional[User]) -> DocumentResponse:
    return DocumentResponse(
        id=document.id,
        project_id=document.project_id,
        uploaded_by=user_to_summary(uploader),
        original_file_name=document.original_file_name,
        content_type=document.content_type,
        file_size=document.file_size,
        formatted_size=format_file_size(document.file_size),
        extension=file_extension(document.original_file_name),
        is_image=is_image(document.content_type),
        is_pdf=is_pdf(document.content_type),
        description=document.description,
        uploaded_at=document.uploaded_at,
    )


def related_user_ids(projects: list[Project]) -> list[int]:
    """All lead and developer ids referenced by projects, for one UserStore.get_many call."""
    ids: set[int] = set()
    for project in projects:
        if project.lead_id is not None:
            ids.add(project.lead_id)
        ids.update(project.assigned_developer_ids)
    return sorted(ids)
