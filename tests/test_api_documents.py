"""
tests/test_api_documents.py -- Integration tests for the /api/v1/documents routes.

Coverage:
  - upload by the project lead (201) with display metadata
  - upload denied to developers and outside leads (403) before validation runs
  - size, content type, empty-file, and filename validation (400)
  - newest-first listing, member view and download, outsider 403
  - delete rules: uploader or leading PROJECT_LEAD; others 403
  - my-uploads, and project deletion removing stored files
"""

from __future__ import annotations

from datetime import date, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.roles import Role
from projects.models import Project

PDF_BYTES = b"%PDF-1.4 fake pdf body"


@pytest.fixture
def project(api_env):
    """A project led by 'lead' with 'dev' assigned."""
    env = api_env
    pid = env.project_store.create_project(
        Project(
            name="Docs Project",
            description="a project that holds documents",
            deadline=date.today() + timedelta(days=30),
            lead_id=env.users["lead"].id,
        )
    )
    env.project_store.set_assigned_developers(pid, {env.users["dev"].id})
    return pid


def _upload(env, project_id: int, user: str, name: str = "brief.pdf", data: bytes = PDF_BYTES,
            content_type: str = "application/pdf", description: str | None = None):
    form = {"description": description} if description is not None else None
    return env.client.post(
        f"/api/v1/documents/projects/{project_id}/upload",
        files={"file": (name, data, content_type)},
        data=form,
        headers=env.headers(user),
    )


class TestUpload:
    def test_lead_uploads(self, api_env, project):
        resp = _upload(api_env, project, "lead", description="Kickoff brief")
        assert resp.status_code == 201
        data = resp.json()
        assert data["project_id"] == project
        assert data["original_file_name"] == "brief.pdf"
        assert data["file_size"] == len(PDF_BYTES)
        assert data["formatted_size"] == f"{len(PDF_BYTES)} B"
        assert data["extension"] == "pdf"
        assert data["is_pdf"] is True
        assert data["is_image"] is False
        assert data["description"] == "Kickoff brief"
        assert data["uploaded_by"]["username"] == "lead"
        assert "file_path" not in data

    def test_stored_under_generated_name(self, api_env, project):
        doc_id = _upload(api_env, project, "lead", name="My Plan.txt", data=b"plan", content_type="text/plain").json()["id"]
        stored = api_env.project_store.get_document(doc_id)
        assert "My Plan" not in stored.file_name
        assert Path(stored.file_path).parent == api_env.storage.upload_dir

    def test_admin_uploads(self, api_env, project):
        assert _upload(api_env, project, "admin").status_code == 201

    def test_developer_cannot_upload(self, api_env, project):
        resp = _upload(api_env, project, "dev")
        assert resp.status_code == 403

    def test_other_lead_cannot_upload(self, api_env, project):
        # Authorization runs before validation, so the bad content type is never reported.
        resp = _upload(api_env, project, "lead2", content_type="text/html")
        assert resp.status_code == 403

    def test_missing_project(self, api_env):
        assert _upload(api_env, 99999, "lead").status_code == 404

    def test_rejects_content_type(self, api_env, project):
        resp = _upload(api_env, project, "lead", name="page.html", data=b"<html>", content_type="text/html")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "invalid_operation"

    def test_rejects_oversized(self, api_env, project):
        big = b"x" * (api_env.storage.max_bytes + 1)
        resp = _upload(api_env, project, "lead", name="big.txt", data=big, content_type="text/plain")
        assert resp.status_code == 400
        assert "maximum" in resp.json()["error"]["message"]

    def test_rejects_empty(self, api_env, project):
        resp = _upload(api_env, project, "lead", name="empty.txt", data=b"", content_type="text/plain")
        assert resp.status_code == 400

    def test_rejects_dotdot_name(self, api_env, project):
        resp = _upload(api_env, project, "lead", name="a..b.txt", data=b"x", content_type="text/plain")
        assert resp.status_code == 400

    def test_rejected_upload_stores_nothing(self, api_env, project):
        _upload(api_env, project, "lead", name="page.html", data=b"<html>", content_type="text/html")
        assert api_env.project_store.list_documents(project) == []

    def test_failed_insert_removes_saved_file(self, api_env, project, monkeypatch):
        def failing_insert(document):
            raise RuntimeError("insert failed")

        monkeypatch.setattr(api_env.project_store, "create_document", failing_insert)
        before = set(api_env.storage.upload_dir.iterdir())
        # Shares app.state with api_env; only the 500 handling differs.
        client = TestClient(app, raise_server_exceptions=False)
        resp = client.post(
            f"/api/v1/documents/projects/{project}/upload",
            files={"file": ("brief.pdf", PDF_BYTES, "application/pdf")},
            headers=api_env.headers("lead"),
        )
        assert resp.status_code == 500
        assert resp.json()["error"]["code"] == "internal_error"
        assert set(api_env.storage.upload_dir.iterdir()) == before


class TestReadAccess:
    def test_list_newest_first(self, api_env, project):
        first = _upload(api_env, project, "lead", name="one.pdf").json()["id"]
        second = _upload(api_env, project, "lead", name="two.pdf").json()["id"]
        resp = api_env.client.get(f"/api/v1/documents/projects/{project}", headers=api_env.headers("dev"))
        assert resp.status_code == 200
        assert [d["id"] for d in resp.json()] == [second, first]

    def test_project_document_count(self, api_env, project):
        _upload(api_env, project, "lead")
        resp = api_env.client.get(f"/api/v1/projects/{project}", headers=api_env.headers("lead"))
        assert resp.json()["document_count"] == 1

    def test_outsider_cannot_list(self, api_env, project):
        resp = api_env.client.get(f"/api/v1/documents/projects/{project}", headers=api_env.headers("dev2"))
        assert resp.status_code == 403

    def test_member_views_metadata(self, api_env, project):
        doc_id = _upload(api_env, project, "lead").json()["id"]
        resp = api_env.client.get(f"/api/v1/documents/{doc_id}", headers=api_env.headers("dev"))
        assert resp.status_code == 200
        assert resp.json()["id"] == doc_id

    def test_member_downloads(self, api_env, project):
        doc_id = _upload(api_env, project, "lead", name="notes.txt", data=b"hello team", content_type="text/plain").json()["id"]
        resp = api_env.client.get(f"/api/v1/documents/{doc_id}/download", headers=api_env.headers("dev"))
        assert resp.status_code == 200
        assert resp.content == b"hello team"
        assert "notes.txt" in resp.headers["content-disposition"]

    def test_outsider_cannot_download(self, api_env, project):
        doc_id = _upload(api_env, project, "lead").json()["id"]
        for user in ("dev2", "lead2"):
            resp = api_env.client.get(f"/api/v1/documents/{doc_id}/download", headers=api_env.headers(user))
            assert resp.status_code == 403

    def test_missing_document(self, api_env):
        assert api_env.client.get("/api/v1/documents/99999", headers=api_env.headers("admin")).status_code == 404

    def test_my_uploads(self, api_env, project):
        uploader = api_env.add_user("doc-lead", role=Role.PROJECT_LEAD)
        api_env.project_store.update_project(project, lead_id=uploader.id)
        doc_id = _upload(api_env, project, "doc-lead").json()["id"]
        resp = api_env.client.get("/api/v1/documents/my-uploads", headers=api_env.headers("doc-lead"))
        assert resp.status_code == 200
        assert [d["id"] for d in resp.json()] == [doc_id]


class TestDelete:
    def test_assigned_developer_cannot_delete_leads_upload(self, api_env, project):
        doc_id = _upload(api_env, project, "lead").json()["id"]
        resp = api_env.client.delete(f"/api/v1/documents/{doc_id}", headers=api_env.headers("dev"))
        assert resp.status_code == 403

    def test_uploader_deletes(self, api_env, project):
        doc_id = _upload(api_env, project, "lead").json()["id"]
        path = api_env.project_store.get_document(doc_id).file_path
        resp = api_env.client.delete(f"/api/v1/documents/{doc_id}", headers=api_env.headers("lead"))
        assert resp.status_code == 204
        assert api_env.project_store.get_document(doc_id) is None
        assert not Path(path).exists()

    def test_uploader_keeps_delete_right_after_losing_lead(self, api_env, project):
        doc_id = _upload(api_env, project, "lead").json()["id"]
        api_env.project_store.update_project(project, lead_id=api_env.users["lead2"].id)
        resp = api_env.client.delete(f"/api/v1/documents/{doc_id}", headers=api_env.headers("lead"))
        assert resp.status_code == 204

    def test_project_delete_removes_files(self, api_env, project):
        doc_id = _upload(api_env, project, "lead").json()["id"]
        path = api_env.project_store.get_document(doc_id).file_path
        assert Path(path).exists()
        resp = api_env.client.delete(f"/api/v1/projects/{project}", headers=api_env.headers("admin"))
        assert resp.status_code == 204
        assert not Path(path).exists()
        assert api_env.client.get(f"/api/v1/documents/{doc_id}", headers=api_env.headers("admin")).status_code == 404
