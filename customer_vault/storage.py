"""
Document store — the file side of a Document.

Uploaded files live on disk under UPLOAD_DIR, addressed by a relative path
such as "documents/passport_scan-1718000000000-482913377.pdf". The
database only stores that path.

Rules:
  - save() never overwrites: names are timestamp + random suffix +
    sanitized original name, and the file is opened with O_EXCL.
  - delete() is idempotent and never raises. It runs after database
    commits (or as compensation after failures), so a file-store problem
    is logged and must not abort or mask the database outcome.
  - read() raises NotFoundError when the file is gone.

The upload boundary (DocumentStore.check_upload) rejects files by media type,
extension and size before anything is written.
"""

import logging
import os
import random
import re
import time
from dataclasses import dataclass
from pathlib import Path

from fastapi import status

from customer_vault.config import settings
from customer_vault.exceptions import InvalidUploadError, NotFoundError


logger = logging.getLogger(__name__)

DOCUMENTS_SUBDIR = "documents"

ALLOWED_MIME_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "application/pdf",
}
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".pdf"}


@dataclass(frozen=True)
class StoredFile:
    """A file the document store has accepted."""
    file_name: str
    path: str
    size: int


class DocumentStore:
    """Persists, reads and deletes document payloads under a root directory."""

    def __init__(self, root: str | os.PathLike, max_upload_bytes: int = 5 * 1024 * 1024):
        self.root = Path(root).resolve()
        self.max_upload_bytes = max_upload_bytes

    @classmethod
    def from_settings(cls) -> "DocumentStore":
        return cls(settings.UPLOAD_DIR, max_upload_bytes=settings.MAX_UPLOAD_BYTES)

    def check_upload(self, filename: str | None, content_type: str | None, size: int) -> None:
        """
        Validate an upload before it is written.

        Raises:
            InvalidUploadError: Wrong media type/extension, empty, or too large.
        """
        extension = Path(filename or "").suffix.lower()
        if (content_type or "").lower() not in ALLOWED_MIME_TYPES or extension not in ALLOWED_EXTENSIONS:
            raise InvalidUploadError(
                "Invalid file type. Only JPG, PNG, WebP, and PDF files are allowed."
            )
        if size == 0:
            raise InvalidUploadError("Uploaded file is empty")
        if size > self.max_upload_bytes:
            raise InvalidUploadError(
                f"File too large. Maximum size is {self.max_upload_bytes // (1024 * 1024)}MB.",
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            )

    def _resolve(self, path: str) -> Path:
        full_path = (self.root / path).resolve()
        # Stored paths are relative and must stay inside the store
        if not full_path.is_relative_to(self.root):
            raise NotFoundError("File")
        return full_path

    @staticmethod
    def _unique_name(suggested_name: str) -> str:
        original = Path(suggested_name or "document")
        clean_stem = re.sub(r"[^a-zA-Z0-9]", "_", original.stem) or "document"
        suffix = f"{int(time.time() * 1000)}-{random.randint(0, 10**9)}"
        return f"{clean_stem}-{suffix}{original.suffix.lower()}"

    def save(self, data: bytes, suggested_name: str) -> StoredFile:
        """Write bytes under a fresh, collision-resistant name."""
        directory = self.root / DOCUMENTS_SUBDIR
        directory.mkdir(parents=True, exist_ok=True)

        while True:
            file_name = self._unique_name(suggested_name)
            try:
                # "xb" fails instead of overwriting an existing file
                with open(directory / file_name, "xb") as fh:
                    fh.write(data)
                break
            except FileExistsError:
                continue

        stored = StoredFile(
            file_name=file_name,
            path=f"{DOCUMENTS_SUBDIR}/{file_name}",
            size=len(data),
        )
        logger.info("Document file saved", extra={"path": stored.path})
        return stored

    def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).is_file()
        except NotFoundError:
            return False

    def read(self, path: str) -> bytes:
        full_path = self._resolve(path)
        try:
            return full_path.read_bytes()
        except FileNotFoundError:
            raise NotFoundError("File")

    def delete(self, path: str) -> None:
        """Remove a file if present. Never raises."""
        try:
            self._resolve(path).unlink()
            logger.info("Document file deleted", extra={"path": path})
        except (FileNotFoundError, NotFoundError):
            logger.info("Document file already absent", extra={"path": path})
        except OSError:
            logger.warning("Could not delete document file", exc_info=True, extra={"path": path})
