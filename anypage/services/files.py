"""Upload helpers that commit a blob and its metadata row together."""

from __future__ import annotations

import logging
import re
import secrets
import time
from datetime import UTC, datetime
from pathlib import Path

from fastapi import UploadFile, status

from ..config import Settings
from ..models import Document
from ..utils.errors import StoreError, UploadRejectedError
from .blob_storage import LocalBlobStorage
from .sql_stores import SqlDocumentStore

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1MB
PDF_MAGIC = b"%PDF-"


def _secure_filename(filename: str) -> str:
    """Return a filesystem-safe version of the provided filename."""

    if not filename:
        return f"document-{secrets.token_hex(8)}.pdf"
    name = Path(filename).name
    cleaned = re.sub(r"[^A-Za-z0-9._-]", "_", name)
    return cleaned or f"document-{secrets.token_hex(8)}.pdf"


def default_title(filename: str) -> str:
    """Derive a display title from an uploaded file name."""

    name = Path(filename).name
    if name.lower().endswith(".pdf"):
        name = name[: -len(".pdf")]
    return name.strip() or "Untitled document"


def build_storage_reference(user_id: str, filename: str) -> str:
    """Return the blob key ``<user>/<epoch-ms>_<filename>`` for a new upload."""

    return f"{user_id}/{int(time.time() * 1000)}_{_secure_filename(filename)}"


async def handle_upload(
    *,
    upload: UploadFile,
    user_id: str,
    settings: Settings,
    documents: SqlDocumentStore,
    blobs: LocalBlobStorage,
) -> Document:
    """Persist an uploaded PDF and return the stored document."""

    if (
        not upload.content_type
        or upload.content_type.lower() not in settings.allowed_mimetypes
    ):
        raise UploadRejectedError(
            "Please select a PDF file", status.HTTP_400_BAD_REQUEST
        )

    original_name = Path(upload.filename or "").name
    temp_dir = settings.upload_dir / ".incoming"
    temp_dir.mkdir(parents=True, exist_ok=True)
    temp_path = temp_dir / f"{secrets.token_hex(16)}.tmp"

    total_bytes = 0
    try:
        with temp_path.open("wb") as buffer:
            while True:
                chunk = await upload.read(CHUNK_SIZE)
                if total_bytes == 0 and not chunk.startswith(PDF_MAGIC):
                    raise UploadRejectedError(
                        "Please select a PDF file", status.HTTP_400_BAD_REQUEST
                    )
                if not chunk:
                    break
                total_bytes += len(chunk)
                if total_bytes > settings.max_upload_size:
                    raise UploadRejectedError(
                        "File exceeds maximum allowed size",
                        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    )
                buffer.write(chunk)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise
    finally:
        await upload.close()

    storage_reference = build_storage_reference(user_id, original_name)
    try:
        blobs.commit(temp_path, storage_reference)
    except OSError as exc:
        temp_path.unlink(missing_ok=True)
        logger.warning(
            "Could not move upload into %s", storage_reference, exc_info=True
        )
        raise StoreError("Failed to store upload", {"cause": str(exc)}) from exc

    document = Document(
        user_id=user_id,
        title=default_title(original_name),
        file_name=original_name or Path(storage_reference).name,
        file_path=storage_reference,
        file_size=total_bytes,
        upload_date=datetime.now(UTC),
    )
    try:
        document = await documents.insert_document(document)
    except StoreError:
        logger.warning(
            "Metadata insert failed for %s; removing orphaned blob",
            storage_reference,
            exc_info=True,
        )
        blobs.delete(storage_reference)
        raise

    logger.info(
        "Stored upload %s (%d bytes) for user %s", document.id, total_bytes, user_id
    )
    return document


__all__ = ["CHUNK_SIZE", "PDF_MAGIC", "build_storage_reference", "default_title", "handle_upload"]
