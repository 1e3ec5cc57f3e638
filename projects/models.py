"""
projects/models.py -- Domain dataclasses for projects and their documents.

These are pure data containers. Persistence lives in projects/store.py, file
handling in projects/files.py, and every access decision in auth/access.py.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional


class ProjectStatus(str, Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    ON_HOLD = "ON_HOLD"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


@dataclass
class Project:
    """A studio project.

    lead_id, when set, must reference a user whose role can lead projects.
    assigned_developer_ids is filled by the store on read; it is not a
    column of the projects table.

    id is None before the record is written to the database.
    """

    name: str
    description: str
    deadline: date
    status: ProjectStatus = ProjectStatus.ACTIVE
    lead_id: Optional[int] = None
    assigned_developer_ids: set[int] = field(default_factory=set)
    id: Optional[int] = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""
    completed_at: Optional[str] = None

    def is_completed(self) -> bool:
        return self.status is ProjectStatus.COMPLETED

    def is_overdue(self, today: Optional[date] = None) -> bool:
        return self.status is ProjectStatus.ACTIVE and self.deadline < (today or date.today())


@dataclass
class Document:
    """A file uploaded to exactly one project.

    file_name is the generated on-disk name (uuid + extension);
    original_file_name is what the uploader called it.
    """

    project_id: int
    uploaded_by: int
    file_name: str
    original_file_name: str
    file_path: str
    file_size: int
    content_type: str
    description: Optional[str] = None
    id: Optional[int] = None
    uploaded_at: str = ""
