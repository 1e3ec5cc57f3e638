"""
projects/store.py -- SQLAlchemy-backed persistence for projects, assignments, and documents.

Uses SQLAlchemy Core (not ORM) so the dataclasses in projects/models.py remain
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change.

Pattern: Repository + Data Mapper. ProjectStore is the repository; the
_row_to_* functions are the mappers. Route handlers never touch SQL directly.

Resource facts: project_facts() and document_facts() are the narrow read
model the access evaluator consumes. They return None when the resource does
not exist, so callers can report NotFound before asking for a decision.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = ProjectStore()                               # SQLite default
    store = ProjectStore("postgresql://user:pw@host/db") # PostgreSQL
    project_id = store.create_project(project)
    store.set_assigned_developers(project_id, {7, 8})
    facts = store.project_facts(project_id)
    store.close()
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    func,
    select,
    text,
)
from sqlalchemy.engine import Connection, Engine

from auth.access import DocumentFacts, ProjectFacts
from core.config import get_settings
from projects.models import Document, Project, ProjectStatus

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_projects = Table(
    "projects",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("description", String(1000), nullable=False),
    Column("deadline", String(10), nullable=False),  # YYYY-MM-DD
    Column("status", String(20), nullable=False, server_default=ProjectStatus.ACTIVE.value),
    Column("lead_id", Integer),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("completed_at", String(32)),
)

_assignments = Table(
    "project_assignments",
    metadata,
    Column("project_id", Integer, ForeignKey("projects.id"), nullable=False),
    Column("user_id", Integer, nullable=False),
    UniqueConstraint("project_id", "user_id", name="uq_project_user"),
)

_documents = Table(
    "documents",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("project_id", Integer, ForeignKey("projects.id"), nullable=False),
    Column("uploaded_by", Integer, nullable=False),
    Column("file_name", String(255), nullable=False),
    Column("original_file_name", String(255), nullable=False),
    Column("file_path", Text, nullable=False),
    Column("file_size", Integer, nullable=False),
    Column("content_type", String(255), nullable=False),
    Column("description", String(500)),
    Column("uploaded_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


_UPDATABLE_PROJECT_FIELDS = {"name", "description", "deadline", "lead_id"}


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ProjectStore:
    """Repository for Project and Document entities plus developer assignments."""

    def __init__(self, db_url: Optional[str] = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        metadata.create_all(self.engine)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    def create_project(self, project: Project) -> int:
        """Insert a project (without assignments) and return its ID."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _projects.insert().values(
                    name=project.name,
                    description=project.description,
                    deadline=project.deadline.isoformat(),
                    status=project.status.value,
                    lead_id=project.lead_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_project(self, project_id: int) -> Optional[Project]:
        with self.engine.connect() as conn:
            row = conn.execute(_projects.select().where(_projects.c.id == project_id)).fetchone()
            if row is None:
                return None
            return self._attach_assignments(conn, [_row_to_project(row)])[0]

    def list_projects(self) -> list[Project]:
        return self._list(None)

    def list_projects_led_by(self, user_id: int) -> list[Project]:
        return self._list(_projects.c.lead_id == user_id)

    def list_projects_assigned_to(self, user_id: int) -> list[Project]:
        assigned = select(_assignments.c.project_id).where(_assignments.c.user_id == user_id)
        return self._list(_projects.c.id.in_(assigned))

    def list_active_projects(self) -> list[Project]:
        return self._list(_projects.c.status == ProjectStatus.ACTIVE.value)

    def list_overdue_projects(self, today: Optional[date] = None) -> list[Project]:
        """Active projects whose deadline is strictly before today.

        ISO dates sort lexicographically, so the string comparison is a date comparison.
        """
        cutoff = (today or date.today()).isoformat()
        return self._list((_projects.c.status == ProjectStatus.ACTIVE.value) & (_projects.c.deadline < cutoff))

    def count_projects_led_by(self, user_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_projects).where(_projects.c.lead_id == user_id)
            ).scalar()
        return result or 0

    def update_project(self, project_id: int, **fields) -> bool:
        """Update name, description, deadline, and/or lead_id. Returns False if not found."""
        unknown = set(fields) - _UPDATABLE_PROJECT_FIELDS
        if unknown:
            raise ValueError(f"Unknown project fields: {unknown!r}")
        if isinstance(fields.get("deadline"), date):
            fields["deadline"] = fields["deadline"].isoformat()
        with self.engine.connect() as conn:
            result = conn.execute(
                _projects.update().where(_projects.c.id == project_id).values(updated_at=_now_iso(), **fields)
            )
            conn.commit()
        return result.rowcount > 0

    def set_status(self, project_id: int, status: ProjectStatus) -> bool:
        """Move a project to status. completed_at is stamped on COMPLETED and cleared otherwise."""
        now = _now_iso()
        completed_at = now if status is ProjectStatus.COMPLETED else None
        with self.engine.connect() as conn:
            result = conn.execute(
                _projects.update()
                .where(_projects.c.id == project_id)
                .values(status=status.value, completed_at=completed_at, updated_at=now)
            )
            conn.commit()
        return result.rowcount > 0

    def set_assigned_developers(self, project_id: int, developer_ids: set[int]) -> None:
        """Replace the project's assigned developer set in one transaction."""
        with self.engine.begin() as conn:
            conn.execute(_assignments.delete().where(_assignments.c.project_id == project_id))
            if developer_ids:
                conn.execute(
                    _assignments.insert(),
                    [{"project_id": project_id, "user_id": uid} for uid in sorted(developer_ids)],
                )
            conn.execute(_projects.update().where(_projects.c.id == project_id).values(updated_at=_now_iso()))

    def delete_project(self, project_id: int) -> list[str]:
        """Delete a project with its assignments and document records.

        Returns the stored file paths of the deleted documents so the caller
        can remove the files. Returns an empty list if the project did not exist.
        """
        with self.engine.begin() as conn:
            paths = list(
                conn.execute(select(_documents.c.file_path).where(_documents.c.project_id == project_id)).scalars()
            )
            conn.execute(_documents.delete().where(_documents.c.project_id == project_id))
            conn.execute(_assignments.delete().where(_assignments.c.project_id == project_id))
            conn.execute(_projects.delete().where(_projects.c.id == project_id))
        return paths

    # ------------------------------------------------------------------
    # Resource facts for auth.access
    # ------------------------------------------------------------------

    def project_facts(self, project_id: int) -> Optional[ProjectFacts]:
        with self.engine.connect() as conn:
            lead = conn.execute(select(_projects.c.id, _projects.c.lead_id).where(_projects.c.id == project_id)).fetchone()
            if lead is None:
                return None
            developer_ids = conn.execute(
                select(_assignments.c.user_id).where(_assignments.c.project_id == project_id)
            ).scalars()
            return ProjectFacts(lead_id=lead.lead_id, assigned_developer_ids=frozenset(developer_ids))

    def document_facts(self, document_id: int) -> Optional[DocumentFacts]:
        with self.engine.connect() as conn:
            row = conn.execute(
                select(_documents.c.project_id, _documents.c.uploaded_by).where(_documents.c.id == document_id)
            ).fetchone()
        if row is None:
            return None
        project = self.project_facts(row.project_id)
        if project is None:
            # Orphaned document row; every document must belong to a project.
            return None
        return DocumentFacts(uploader_id=row.uploaded_by, project=project)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def create_document(self, document: Document) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _documents.insert().values(
                    project_id=document.project_id,
                    uploaded_by=document.uploaded_by,
                    file_name=document.file_name,
                    original_file_name=document.original_file_name,
                    file_path=document.file_path,
                    file_size=document.file_size,
                    content_type=document.content_type,
                    description=document.description,
                    uploaded_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_document(self, document_id: int) -> Optional[Document]:
        with self.engine.connect() as conn:
            row = conn.execute(_documents.select().where(_documents.c.id == document_id)).fetchone()
        return _row_to_document(row) if row is not None else None

    def list_documents(self, project_id: int) -> list[Document]:
        """Documents of one project, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _documents.select()
                .where(_documents.c.project_id == project_id)
                .order_by(_documents.c.uploaded_at.desc(), _documents.c.id.desc())
            ).fetchall()
        return [_row_to_document(r) for r in rows]

    def list_documents_by_uploader(self, user_id: int) -> list[Document]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _documents.select()
                .where(_documents.c.uploaded_by == user_id)
                .order_by(_documents.c.uploaded_at.desc(), _documents.c.id.desc())
            ).fetchall()
        return [_row_to_document(r) for r in rows]

    def count_documents(self, project_ids: list[int]) -> dict[int, int]:
        """Return {project_id: document count} for the given projects (zero-filled)."""
        counts = {pid: 0 for pid in project_ids}
        if not project_ids:
            return counts
        with self.engine.connect() as conn:
            rows = conn.execute(
                select(_documents.c.project_id, func.count())
                .where(_documents.c.project_id.in_(project_ids))
                .group_by(_documents.c.project_id)
            ).fetchall()
        for project_id, count in rows:
            counts[project_id] = count
        return counts

    def delete_document(self, document_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_documents.delete().where(_documents.c.id == document_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _list(self, where) -> list[Project]:
        query = _projects.select().order_by(_projects.c.id)
        if where is not None:
            query = query.where(where)
        with self.engine.connect() as conn:
            projects = [_row_to_project(r) for r in conn.execute(query).fetchall()]
            return self._attach_assignments(conn, projects)

    @staticmethod
    def _attach_assignments(conn: Connection, projects: list[Project]) -> list[Project]:
        if not projects:
            return projects
        by_id = {p.id: p for p in projects}
        rows = conn.execute(
            select(_assignments.c.project_id, _assignments.c.user_id).where(_assignments.c.project_id.in_(list(by_id)))
        ).fetchall()
        for project_id, user_id in rows:
            by_id[project_id].assigned_developer_ids.add(user_id)
        return projects


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_project(row) -> Project:
    return Project(
        id=row.id,
        name=row.name,
        description=row.description,
        deadline=date.fromisoformat(row.deadline),
        status=ProjectStatus(row.status),
        lead_id=row.lead_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
        completed_at=row.completed_at,
    )


def _row_to_document(row) -> Document:
    return Document(
        id=row.id,
        project_id=row.project_id,
        uploaded_by=row.uploaded_by,
        file_name=row.file_name,
        original_file_name=row.original_file_name,
        file_path=row.file_path,
        file_size=row.file_size,
        content_type=row.content_type,
        description=row.description,
        uploaded_at=row.uploaded_at,
    )


def project_facts_of(project: Project) -> ProjectFacts:
    """Build evaluator facts from an already-loaded Project (no extra query)."""
    return ProjectFacts(lead_id=project.lead_id, assigned_developer_ids=frozenset(project.assigned_developer_ids))
