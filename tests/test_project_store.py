"""Unit tests for projects/store.py -- ProjectStore.

Covers:
- project create / get round trip including assignments
- scoped list queries (led by, assigned to, active, overdue)
- set_assigned_developers replaces the set
- status transitions stamp and clear completed_at
- resource facts for the access evaluator, None for missing resources
- documents: newest-first listing, per-uploader listing, counts
- delete_project cascades and returns stored file paths
"""

from datetime import date, timedelta

import pytest

from auth.access import DocumentFacts, ProjectFacts
from projects.models import Document, Project, ProjectStatus
from projects.store import ProjectStore, project_facts_of

TODAY = date(2026, 6, 15)


@pytest.fixture
def store():
    s = ProjectStore("sqlite:///:memory:")
    yield s
    s.close()


def _project(name: str, lead_id=None, deadline: date = TODAY + timedelta(days=30)) -> Project:
    return Project(name=name, description=f"{name} description text", deadline=deadline, lead_id=lead_id)


def _document(project_id: int, uploader: int, name: str = "brief.pdf") -> Document:
    return Document(
        project_id=project_id,
        uploaded_by=uploader,
        file_name=f"stored-{name}",
        original_file_name=name,
        file_path=f"/uploads/stored-{name}",
        file_size=2048,
        content_type="application/pdf",
    )


class TestProjects:
    def test_create_and_get(self, store):
        pid = store.create_project(_project("Atlas", lead_id=5))
        project = store.get_project(pid)
        assert project.name == "Atlas"
        assert project.lead_id == 5
        assert project.status is ProjectStatus.ACTIVE
        assert project.deadline == TODAY + timedelta(days=30)
        assert project.assigned_developer_ids == set()
        assert project.created_at and project.updated_at

    def test_get_missing(self, store):
        assert store.get_project(404) is None

    def test_assignments_replace(self, store):
        pid = store.create_project(_project("Beacon", lead_id=5))
        store.set_assigned_developers(pid, {7, 8})
        assert store.get_project(pid).assigned_developer_ids == {7, 8}
        store.set_assigned_developers(pid, {8, 9})
        assert store.get_project(pid).assigned_developer_ids == {8, 9}
        store.set_assigned_developers(pid, set())
        assert store.get_project(pid).assigned_developer_ids == set()

    def test_scoped_lists(self, store):
        p1 = store.create_project(_project("One", lead_id=5))
        p2 = store.create_project(_project("Two", lead_id=6))
        p3 = store.create_project(_project("Three", lead_id=5))
        store.set_assigned_developers(p1, {7})
        store.set_assigned_developers(p2, {7, 8})
        assert [p.id for p in store.list_projects()] == [p1, p2, p3]
        assert [p.id for p in store.list_projects_led_by(5)] == [p1, p3]
        assert [p.id for p in store.list_projects_assigned_to(7)] == [p1, p2]
        assert [p.id for p in store.list_projects_assigned_to(8)] == [p2]
        assert store.count_projects_led_by(5) == 2
        assert store.count_projects_led_by(99) == 0

    def test_active_and_overdue(self, store):
        late = store.create_project(_project("Late", deadline=TODAY - timedelta(days=1)))
        due_today = store.create_project(_project("Today", deadline=TODAY))
        done = store.create_project(_project("Done", deadline=TODAY - timedelta(days=10)))
        store.set_status(done, ProjectStatus.COMPLETED)
        assert [p.id for p in store.list_overdue_projects(TODAY)] == [late]
        assert {p.id for p in store.list_active_projects()} == {late, due_today}
        assert store.get_project(late).is_overdue(TODAY)
        assert not store.get_project(done).is_overdue(TODAY)

    def test_status_transitions(self, store):
        pid = store.create_project(_project("Cycle"))
        store.set_status(pid, ProjectStatus.COMPLETED)
        completed = store.get_project(pid)
        assert completed.is_completed()
        assert completed.completed_at is not None
        store.set_status(pid, ProjectStatus.ACTIVE)
        assert store.get_project(pid).completed_at is None

    def test_update_fields(self, store):
        pid = store.create_project(_project("Draft", lead_id=5))
        assert store.update_project(pid, name="Final", deadline=TODAY + timedelta(days=1), lead_id=None)
        project = store.get_project(pid)
        assert project.name == "Final"
        assert project.deadline == TODAY + timedelta(days=1)
        assert project.lead_id is None

    def test_update_rejects_unknown_field(self, store):
        pid = store.create_project(_project("Draft"))
        with pytest.raises(ValueError):
            store.update_project(pid, status="COMPLETED")

    def test_update_missing(self, store):
        assert store.update_project(999, name="Nope") is False


class TestFacts:
    def test_project_facts(self, store):
        pid = store.create_project(_project("Facts", lead_id=5))
        store.set_assigned_developers(pid, {7, 8})
        assert store.project_facts(pid) == ProjectFacts(lead_id=5, assigned_developer_ids={7, 8})

    def test_project_facts_of_loaded_project(self, store):
        pid = store.create_project(_project("Facts", lead_id=5))
        store.set_assigned_developers(pid, {7})
        assert project_facts_of(store.get_project(pid)) == store.project_facts(pid)

    def test_document_facts(self, store):
        pid = store.create_project(_project("Docs", lead_id=9))
        store.set_assigned_developers(pid, {7, 8})
        did = store.create_document(_document(pid, uploader=7))
        assert store.document_facts(did) == DocumentFacts(
            uploader_id=7,
            project=ProjectFacts(lead_id=9, assigned_developer_ids={7, 8}),
        )

    def test_missing_resources(self, store):
        assert store.project_facts(404) is None
        assert store.document_facts(404) is None


class TestDocuments:
    def test_list_newest_first(self, store):
        pid = store.create_project(_project("Docs"))
        first = store.create_document(_document(pid, 7, "a.pdf"))
        second = store.create_document(_document(pid, 8, "b.pdf"))
        assert [d.id for d in store.list_documents(pid)] == [second, first]

    def test_list_by_uploader(self, store):
        pid = store.create_project(_project("Docs"))
        mine = store.create_document(_document(pid, 7, "mine.pdf"))
        store.create_document(_document(pid, 8, "theirs.pdf"))
        assert [d.id for d in store.list_documents_by_uploader(7)] == [mine]

    def test_counts(self, store):
        p1 = store.create_project(_project("One"))
        p2 = store.create_project(_project("Two"))
        store.create_document(_document(p1, 7, "a.pdf"))
        store.create_document(_document(p1, 7, "b.pdf"))
        assert store.count_documents([p1, p2]) == {p1: 2, p2: 0}
        assert store.count_documents([]) == {}

    def test_get_and_delete(self, store):
        pid = store.create_project(_project("Docs"))
        did = store.create_document(_document(pid, 7))
        document = store.get_document(did)
        assert document.original_file_name == "brief.pdf"
        assert document.uploaded_at
        assert store.delete_document(did) is True
        assert store.get_document(did) is None
        assert store.delete_document(did) is False

    def test_delete_project_cascades(self, store):
        pid = store.create_project(_project("Gone", lead_id=5))
        store.set_assigned_developers(pid, {7})
        store.create_document(_document(pid, 7, "a.pdf"))
        store.create_document(_document(pid, 5, "b.pdf"))
        other = store.create_project(_project("Stays"))
        kept = store.create_document(_document(other, 7, "c.pdf"))

        paths = store.delete_project(pid)

        assert sorted(paths) == ["/uploads/stored-a.pdf", "/uploads/stored-b.pdf"]
        assert store.get_project(pid) is None
        assert store.list_documents(pid) == []
        assert store.list_projects_assigned_to(7) == []
        assert store.get_document(kept) is not None

    def test_delete_missing_project(self, store):
        assert store.delete_project(404) == []
