"""Store interfaces consumed by the reading session controller."""

from __future__ import annotations

from typing import Any, Protocol, Sequence

from ..models import Bookmark, Document, ReadingProgress


class DocumentStore(Protocol):
    """Document metadata rows plus the blob namespace holding file bytes."""

    async def fetch_document(self, document_id: str) -> Document:
        """Return the document or raise ``DocumentNotFoundError``."""

    async def list_documents(self, user_id: str) -> Sequence[Document]:
        """Return the owner's documents, most recently opened first."""

    async def update_document(self, document_id: str, **fields: Any) -> None:
        """Apply a partial update; fields not named are left untouched."""

    async def insert_document(self, document: Document) -> Document:
        ...

    def resolve_content_location(self, storage_reference: str) -> str:
        """Return a URL the viewer can fetch the document bytes from."""


class BookmarkStore(Protocol):
    async def list_bookmarks(self, document_id: str) -> Sequence[Bookmark]:
        """Return bookmarks sorted by ascending page number."""

    async def insert_bookmark(self, bookmark: Bookmark) -> Bookmark:
        ...


class ProgressStore(Protocol):
    async def upsert_progress(
        self,
        user_id: str,
        document_id: str,
        current_page: int,
        total_pages: int | None,
    ) -> ReadingProgress:
        """Create or replace the progress row keyed by ``(user_id, document_id)``."""


__all__ = ["BookmarkStore", "DocumentStore", "ProgressStore"]
