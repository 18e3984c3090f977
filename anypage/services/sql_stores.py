"""SQLModel-backed implementations of the document, bookmark and progress stores.

SQLAlchemy sessions here are synchronous, so every store call runs its body in
a worker thread through ``asyncio.to_thread``; a write waiting on the SQLite
lock never stalls the event loop.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Iterator, Sequence
from urllib.parse import quote

from sqlalchemy import desc
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from ..models import Bookmark, Document, ReadingProgress
from ..utils.errors import DocumentNotFoundError, StoreError
from .content_links import ContentLinkSigner

logger = logging.getLogger(__name__)

_MUTABLE_DOCUMENT_FIELDS = frozenset(
    {"title", "file_size", "total_pages", "current_page", "last_opened"}
)


@contextmanager
def _store_session(engine: Engine, operation: str) -> Iterator[Session]:
    """Yield a short-lived session, translating driver errors into ``StoreError``."""

    try:
        with Session(engine, expire_on_commit=False) as session:
            yield session
    except SQLAlchemyError as exc:
        raise StoreError(f"{operation} failed", {"cause": str(exc)}) from exc


class SqlDocumentStore:
    """Document metadata in the ``document`` table, blobs served by the content route."""

    def __init__(
        self,
        engine: Engine,
        *,
        public_base_url: str = "",
        signer: ContentLinkSigner | None = None,
    ) -> None:
        self._engine = engine
        self._public_base_url = public_base_url.rstrip("/")
        self._signer = signer

    async def fetch_document(self, document_id: str) -> Document:
        return await asyncio.to_thread(self._fetch, document_id)

    def _fetch(self, document_id: str) -> Document:
        with _store_session(self._engine, "fetch_document") as session:
            document = session.get(Document, document_id)
        if document is None:
            raise DocumentNotFoundError(document_id)
        return document

    async def list_documents(self, user_id: str) -> Sequence[Document]:
        statement = (
            select(Document)
            .where(Document.user_id == user_id)
            .order_by(
                Document.last_opened.is_(None),  # type: ignore[union-attr]
                desc(Document.last_opened),
                desc(Document.upload_date),
            )
        )

        def _list() -> list[Document]:
            with _store_session(self._engine, "list_documents") as session:
                return list(session.exec(statement))

        return await asyncio.to_thread(_list)

    async def update_document(self, document_id: str, **fields: Any) -> None:
        unknown = set(fields) - _MUTABLE_DOCUMENT_FIELDS
        if unknown:
            raise ValueError(f"Cannot update document fields: {sorted(unknown)}")
        await asyncio.to_thread(self._update, document_id, fields)

    def _update(self, document_id: str, fields: dict[str, Any]) -> None:
        with _store_session(self._engine, "update_document") as session:
            document = session.get(Document, document_id)
            if document is None:
                raise DocumentNotFoundError(document_id)
            for name, value in fields.items():
                setattr(document, name, value)
            session.add(document)
            session.commit()

    async def insert_document(self, document: Document) -> Document:
        def _insert() -> Document:
            with _store_session(self._engine, "insert_document") as session:
                session.add(document)
                session.commit()
                session.refresh(document)
            return document

        return await asyncio.to_thread(_insert)

    def resolve_content_location(self, storage_reference: str) -> str:
        """Return a URL the viewer can fetch without identity headers."""

        url = f"{self._public_base_url}/api/content/{quote(storage_reference)}"
        if self._signer is None:
            return url
        return f"{url}?token={self._signer.issue(storage_reference)}"


class SqlBookmarkStore:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    async def list_bookmarks(self, document_id: str) -> Sequence[Bookmark]:
        statement = (
            select(Bookmark)
            .where(Bookmark.document_id == document_id)
            .order_by(Bookmark.page_number, Bookmark.created_at)
        )
        return await asyncio.to_thread(self._all, "list_bookmarks", statement)

    async def list_user_bookmarks(self, user_id: str) -> Sequence[Bookmark]:
        """Return every bookmark owned by ``user_id`` grouped by document."""

        statement = (
            select(Bookmark)
            .where(Bookmark.user_id == user_id)
            .order_by(Bookmark.document_id, Bookmark.page_number, Bookmark.created_at)
        )
        return await asyncio.to_thread(self._all, "list_user_bookmarks", statement)

    def _all(self, operation: str, statement: Any) -> list[Bookmark]:
        with _store_session(self._engine, operation) as session:
            return list(session.exec(statement))

    async def insert_bookmark(self, bookmark: Bookmark) -> Bookmark:
        def _insert() -> Bookmark:
            with _store_session(self._engine, "insert_bookmark") as session:
                session.add(bookmark)
                session.commit()
                session.refresh(bookmark)
            return bookmark

        return await asyncio.to_thread(_insert)


class SqlProgressStore:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    async def upsert_progress(
        self,
        user_id: str,
        document_id: str,
        current_page: int,
        total_pages: int | None,
    ) -> ReadingProgress:
        return await asyncio.to_thread(
            self._upsert_with_retry, user_id, document_id, current_page, total_pages
        )

    def _upsert_with_retry(
        self,
        user_id: str,
        document_id: str,
        current_page: int,
        total_pages: int | None,
    ) -> ReadingProgress:
        with _store_session(self._engine, "upsert_progress") as session:
            try:
                return self._upsert(session, user_id, document_id, current_page, total_pages)
            except IntegrityError:
                # A concurrent writer inserted the row first; update it instead.
                session.rollback()
                logger.debug(
                    "Progress insert for %s/%s raced another writer; retrying",
                    user_id,
                    document_id,
                )
                return self._upsert(session, user_id, document_id, current_page, total_pages)

    @staticmethod
    def _upsert(
        session: Session,
        user_id: str,
        document_id: str,
        current_page: int,
        total_pages: int | None,
    ) -> ReadingProgress:
        progress = session.exec(
            select(ReadingProgress).where(
                ReadingProgress.user_id == user_id,
                ReadingProgress.document_id == document_id,
            )
        ).first()
        if progress is None:
            progress = ReadingProgress(user_id=user_id, document_id=document_id, current_page=current_page)
        progress.current_page = current_page
        progress.total_pages = total_pages
        progress.last_read = datetime.now(UTC)
        session.add(progress)
        session.commit()
        session.refresh(progress)
        return progress


__all__ = ["SqlBookmarkStore", "SqlDocumentStore", "SqlProgressStore"]
