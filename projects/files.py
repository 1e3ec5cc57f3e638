"""
projects/files.py -- On-disk storage for uploaded project documents.

DocumentStorage owns the upload directory. It validates an upload (size,
content type, filename), writes it under a generated uuid name so user-chosen
names never reach the filesystem, and removes files when their document or
project is deleted.

Security:
  Original filenames containing ".." are rejected outright, and the stored
  name is always uuid4().hex plus the original extension, so a crafted name
  cannot escape upload_dir. resolve() re-checks that any path handed back by
  the database still sits inside upload_dir before it is opened.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path

from core.errors import InvalidOperation, NotFound

logger = logging.getLogger("nexus.projects")

ALLOWED_CONTENT_TYPES: frozenset[str] = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        "text/plain",
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/bmp",
        "image/webp",
    }
)


def file_extension(filename: str | None) -> str:
    """Return the lowercase extension without the dot, or "" when there is none."""
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].lower()


def format_file_size(size: int) -> str:
    """Human-readable size: "512 B", "1.5 KB", "2.0 MB", "1.2 GB"."""
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    if size < 1024 * 1024 * 1024:
        return f"{size / (1024 * 1024):.1f} MB"
    return f"{size / (1024 * 1024 * 1024):.1f} GB"


def is_image(content_type: str | None) -> bool:
    return bool(content_type) and content_type.startswith("image/")


def is_pdf(content_type: str | None) -> bool:
    return content_type == "application/pdf"


class DocumentStorage:
    """Filesystem store for document bytes.

    Usage:
        storage = DocumentStorage(settings.upload_dir, settings.max_upload_bytes)
        storage.validate("brief.pdf", "application/pdf", len(data))
        stored_name, path = storage.save(data, "brief.pdf")
        storage.delete(path)
    """

    def __init__(self, upload_dir: str | Path, max_bytes: int) -> None:
        self.upload_dir = Path(upload_dir).resolve()
        self.max_bytes = max_bytes

    def ensure_dir(self) -> None:
        self.upload_dir.mkdir(parents=True, exist_ok=True)

    def validate(self, filename: str | None, content_type: str | None, size: int) -> None:
        """Raise InvalidOperation unless the upload may be stored."""
        if size <= 0:
            raise InvalidOperation("Please select a file to upload.")
        if size > self.max_bytes:
            raise InvalidOperation(f"File size exceeds maximum limit of {format_file_size(self.max_bytes)}.")
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise InvalidOperation("File type not allowed.")
        if not filename or ".." in filename:
            raise InvalidOperation("Invalid file name.")

    def save(self, data: bytes, original_name: str) -> tuple[str, str]:
        """Write data under a fresh uuid name. Returns (stored_name, absolute path)."""
        self.ensure_dir()
        extension = file_extension(original_name)
        stored_name = uuid.uuid4().hex + (f".{extension}" if extension else "")
        path = self.upload_dir / stored_name
        path.write_bytes(data)
        logger.info("Stored upload as %s (%d bytes)", stored_name, len(data))
        return stored_name, str(path)

    def resolve(self, stored_path: str) -> Path:
        """Return stored_path as a Path, raising NotFound if it is missing or outside upload_dir."""
        path = Path(stored_path).resolve()
        if not path.is_relative_to(self.upload_dir) or not path.is_file():
            raise NotFound("File not found.")
        return path

    def delete(self, stored_path: str) -> bool:
        """Remove a stored file. Returns False if it was already gone.

        Failure to remove is logged rather than raised: the database record is
        the source of truth and has already been deleted by the caller.
        """
        path = Path(stored_path)
        try:
            path.unlink()
        except FileNotFoundError:
            logger.warning("Stored file already missing: %s", path.name)
            return False
        except OSError:
            logger.exception("Could not delete stored file %s", path.name)
            return False
        return True
