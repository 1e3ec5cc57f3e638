"""
api/routes/v1/documents.py -- Project document REST endpoints.

Routes:
  POST   /api/v1/documents/projects/{project_id}/upload  -- multipart upload (UPLOAD_DOCUMENT)
  GET    /api/v1/documents/projects/{project_id}         -- project documents, newest first (LIST_PROJECT_DOCUMENTS)
  GET    /api/v1/documents/my-uploads                    -- caller's own uploads
  GET    /api/v1/documents/{id}                          -- metadata (VIEW_DOCUMENT)
  GET    /api/v1/documents/{id}/download                 -- file bytes (DOWNLOAD_DOCUMENT)
  DELETE /api/v1/documents/{id}                          -- record and file (DELETE_DOCUMENT)

Upload validation (size, content type, filename) lives in
projects.files.DocumentStorage and runs only after the caller is authorized,
so an unauthorized caller learns nothing about the upload rules.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile
from fastapi.responses import FileResponse

from api.mappers import document_to_response
from api.models import DocumentResponse
from auth.access import Action, DocumentFacts, authorize
from auth.dependencies import get_current_user
from auth.models import User
from auth.store import UserStore
from core.errors import NotFound
from projects.files import DocumentStorage
from projects.models import Document
from projects.store import ProjectStore

logger = logging.getLogger("nexus.projects")

router = APIRouter()


# ---------------------------------------------------------------------------
# Per-project
# ---------------------------------------------------------------------------


@router.post("/documents/projects/{project_id}/upload", response_model=DocumentResponse, status_code=201)
def upload_document(
    request: Request,
    project_id: int,
    file: UploadFile = File(...),
    description: Optional[str] = Form(default=None, max_length=500),
    current_user: User = Depends(get_current_user),
) -> DocumentResponse:
    project_store: ProjectStore = request.app.state.project_store
    storage: DocumentStorage = request.app.state.storage

    facts = project_store.project_facts(project_id)
    if facts is None:
        raise NotFound("Project not found.")
    authorize(current_user, Action.UPLOAD_DOCUMENT, facts)

    # Read one byte past the limit so an oversized upload is detected without buffering all of it.
    data = file.file.read(storage.max_bytes + 1)
    storage.validate(file.filename, file.content_type, len(data))

    stored_name, path = storage.save(data, file.filename)
    try:
        document_id = project_store.create_document(
            Document(
                project_id=project_id,
                uploaded_by=current_user.id,
                file_name=stored_name,
                original_file_name=file.filename,
                file_path=path,
                file_size=len(data),
                content_type=file.content_type,
                description=description or None,
            )
        )
    except Exception:
        # No record points at the file, so remove it before re-raising.
        storage.delete(path)
        raise
    logger.info(
        "Document uploaded -- document_id=%s project_id=%s size=%d by user_id=%s",
        document_id,
        project_id,
        len(data),
        current_user.id,
    )
    return document_to_response(project_store.get_document(document_id), current_user)


@router.get("/documents/projects/{project_id}", response_model=list[DocumentResponse])
def list_project_documents(
    request: Request,
    project_id: int,
    current_user: User = Depends(get_current_user),
) -> list[DocumentResponse]:
    project_store: ProjectStore = request.app.state.project_store
    facts = project_store.project_facts(project_id)
    if facts is None:
        raise NotFound("Project not found.")
    authorize(current_user, Action.LIST_PROJECT_DOCUMENTS, facts)
    return _render_many(request, project_store.list_documents(project_id))


@router.get("/documents/my-uploads", response_model=list[DocumentResponse])
def list_my_uploads(request: Request, current_user: User = Depends(get_current_user)) -> list[DocumentResponse]:
    project_store: ProjectStore = request.app.state.project_store
    documents = project_store.list_documents_by_uploader(current_user.id)
    return [document_to_response(d, current_user) for d in documents]


# ---------------------------------------------------------------------------
# Single document
# ---------------------------------------------------------------------------


@router.get("/documents/{document_id}", response_model=DocumentResponse)
def get_document(request: Request, document_id: int, current_user: User = Depends(get_current_user)) -> DocumentResponse:
    document, _facts = _load(request, current_user, document_id, Action.VIEW_DOCUMENT)
    return _render_many(request, [document])[0]


@router.get("/documents/{document_id}/download")
def download_document(request: Request, document_id: int, current_user: User = Depends(get_current_user)) -> FileResponse:
    """Stream the stored file with its original name as the attachment filename."""
    storage: DocumentStorage = request.app.state.storage
    document, _facts = _load(request, current_user, document_id, Action.DOWNLOAD_DOCUMENT)
    path = storage.resolve(document.file_path)
    logger.info("Document downloaded -- document_id=%s by user_id=%s", document.id, current_user.id)
    return FileResponse(path, media_type=document.content_type, filename=document.original_file_name)


@router.delete("/documents/{document_id}", status_code=204)
def delete_document(request: Request, document_id: int, current_user: User = Depends(get_current_user)) -> Response:
    project_store: ProjectStore = request.app.state.project_store
    storage: DocumentStorage = request.app.state.storage
    document, _facts = _load(request, current_user, document_id, Action.DELETE_DOCUMENT)

    project_store.delete_document(document.id)
    storage.delete(document.file_path)
    logger.info("Document deleted -- document_id=%s by user_id=%s", document.id, current_user.id)
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load(request: Request, caller: User, document_id: int, action: Action) -> tuple[Document, DocumentFacts]:
    """Fetch a document and its facts (404 if missing), then authorize action (403 on DENY)."""
    project_store: ProjectStore = request.app.state.project_store
    facts = project_store.document_facts(document_id)
    document = project_store.get_document(document_id) if facts is not None else None
    if facts is None or document is None:
        raise NotFound("Document not found.")
    authorize(caller, action, facts)
    return document, facts


def _render_many(request: Request, documents: list[Document]) -> list[DocumentResponse]:
    user_store: UserStore = request.app.state.user_store
    uploaders = user_store.get_many(sorted({d.uploaded_by for d in documents}))
    return [document_to_response(d, uploaders.get(d.uploaded_by)) for d in documents]
