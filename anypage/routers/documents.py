"""Library listing and document metadata endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ..dependencies import CurrentUser, get_document_store
from ..models import Document
from ..services.sql_stores import SqlDocumentStore
from ..utils.errors import DocumentNotFoundError

router = APIRouter(prefix="/api", tags=["documents"])


@router.get("/documents", response_model=list[Document])
async def list_documents(
    user_id: CurrentUser,
    *,
    documents: SqlDocumentStore = Depends(get_document_store),
) -> list[Document]:
    """Return the caller's library, most recently opened first."""

    return list(await documents.list_documents(user_id))


@router.get("/documents/{document_id}", response_model=Document)
async def get_document(
    document_id: str,
    user_id: CurrentUser,
    *,
    documents: SqlDocumentStore = Depends(get_document_store),
) -> Document:
    """Return stored metadata for a document."""

    try:
        document = await documents.fetch_document(document_id)
    except DocumentNotFoundError:
        document = None
    if document is None or document.user_id != user_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Document not found"
        )
    return document


__all__ = ["router"]
