"""File upload and content delivery endpoints."""

from __future__ import annotations

from pathlib import PurePosixPath

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile, status
from fastapi.responses import FileResponse

from ..config import Settings, get_settings
from ..dependencies import (
    CurrentUser,
    OptionalUser,
    get_blob_storage,
    get_content_link_signer,
    get_document_store,
)
from ..models import Document
from ..services.blob_storage import LocalBlobStorage
from ..services.content_links import ContentLinkSigner
from ..services.files import handle_upload
from ..services.sql_stores import SqlDocumentStore

router = APIRouter(prefix="/api", tags=["files"])


@router.post("/upload", response_model=Document, status_code=status.HTTP_201_CREATED)
async def upload_file(
    user_id: CurrentUser,
    *,
    file: UploadFile = File(...),
    settings: Settings = Depends(get_settings),
    documents: SqlDocumentStore = Depends(get_document_store),
    blobs: LocalBlobStorage = Depends(get_blob_storage),
) -> Document:
    """Handle PDF uploads and return the stored document."""

    return await handle_upload(
        upload=file,
        user_id=user_id,
        settings=settings,
        documents=documents,
        blobs=blobs,
    )


@router.get("/content/{storage_reference:path}", response_class=FileResponse)
async def read_content(
    storage_reference: str,
    user_id: OptionalUser,
    *,
    token: str | None = Query(default=None),
    download: bool = Query(default=False),
    blobs: LocalBlobStorage = Depends(get_blob_storage),
    signer: ContentLinkSigner = Depends(get_content_link_signer),
) -> FileResponse:
    """Stream a stored PDF to its owner, inline for the viewer or as a download.

    Callers either identify themselves with ``X-User-ID`` or present the
    signed ``token`` embedded in the content URL handed out by the reader.
    """

    if token is not None:
        owner = signer.verify(token, storage_reference)
    elif user_id is not None:
        owner = user_id
    else:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header is required",
        )

    parts = PurePosixPath(storage_reference).parts
    if not parts or parts[0] != owner or not blobs.exists(storage_reference):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="File not found"
        )

    return FileResponse(
        blobs.path_for(storage_reference),
        media_type="application/pdf",
        filename=parts[-1].split("_", 1)[-1],
        content_disposition_type="attachment" if download else "inline",
    )


__all__ = ["router"]
