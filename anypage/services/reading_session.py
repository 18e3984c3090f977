"""Reading session controller.

A :class:`ReadingSession` owns the in-memory view of one open document for
one user: the page being read, the zoom scale, the bookmark list and any
viewer error.  Every mutation updates that view immediately and pushes the
change to the backing stores as a fire-and-forget task; store failures on
those writes are logged and never roll back what the reader sees.

Only the initial metadata fetch gates the session.  When it fails the
session moves to ``failed`` and issues no further store calls.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from ..models import Bookmark, Document
from ..utils.errors import (
    BookmarkCreateError,
    BookmarkValidationError,
    DocumentNotFoundError,
    SessionFailedError,
    SessionNotOpenError,
)
from .stores import BookmarkStore, DocumentStore, ProgressStore

logger = logging.getLogger(__name__)

WriteObserver = Callable[[str, bool], None]


class SessionState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class ScaleDirection(str, Enum):
    IN = "in"
    OUT = "out"


@dataclass(frozen=True)
class ScaleBounds:
    """Zoom limits expressed as multiples of the document's natural size."""

    minimum: float = 0.5
    maximum: float = 2.0
    step: float = 0.25
    initial: float = 1.0

    def clamp(self, value: float) -> float:
        return round(max(self.minimum, min(self.maximum, value)), 4)


@dataclass(frozen=True)
class RenderErrorNotice:
    """User-facing fallback shown when the viewer cannot display the document."""

    message: str
    download_url: str
    open_externally_url: str


def clamp_page(target: int, total_pages: int | None) -> int:
    """Clamp ``target`` to ``[1, total_pages]``; no upper bound while the total is unknown."""

    upper = target if total_pages is None else total_pages
    return max(1, min(target, upper))


class ReadingSession:
    """Single source of truth for what page, at what scale, a user is viewing."""

    def __init__(
        self,
        *,
        user_id: str,
        document_id: str,
        documents: DocumentStore,
        bookmarks: BookmarkStore,
        progress: ProgressStore,
        scale_bounds: ScaleBounds | None = None,
        persist_delay: float = 0.0,
        on_write: WriteObserver | None = None,
        content_url_max_age: float = 300.0,
    ) -> None:
        self.user_id = user_id
        self.document_id = document_id
        self._documents = documents
        self._bookmarks = bookmarks
        self._progress = progress
        self._bounds = scale_bounds or ScaleBounds()
        self._persist_delay = max(0.0, persist_delay)
        self._on_write = on_write
        self._content_url_max_age = content_url_max_age

        self.state = SessionState.LOADING
        self.document: Document | None = None
        self.current_page = 1
        self.total_pages: int | None = None
        self.scale = self._bounds.clamp(self._bounds.initial)
        self.bookmarks: list[Bookmark] = []
        self._render_failed = False
        self._content_url: str | None = None
        self._content_url_at = 0.0

        self._persisted_page: int | None = None
        self._pending: set[asyncio.Task[Any]] = set()
        self._position_task: asyncio.Task[Any] | None = None
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    async def open(self) -> "ReadingSession":
        """Load metadata and bookmarks, moving the session to ``ready`` or ``failed``."""

        if self.state is not SessionState.LOADING:
            raise RuntimeError(f"Session already {self.state.value}")

        try:
            document = await self._documents.fetch_document(self.document_id)
            if document.user_id != self.user_id:
                raise DocumentNotFoundError(self.document_id)
        except Exception as exc:
            self.state = SessionState.FAILED
            logger.warning(
                "Failed to load document %s for user %s: %s",
                self.document_id,
                self.user_id,
                exc,
            )
            raise SessionFailedError(
                "Failed to load PDF", {"document_id": self.document_id}
            ) from exc

        self.document = document
        self.total_pages = document.total_pages
        self._persisted_page = document.current_page
        self.current_page = clamp_page(document.current_page or 1, document.total_pages)
        self.bookmarks = await self._load_bookmarks()
        self.state = SessionState.READY

        self._spawn(
            "last_opened",
            self._documents.update_document(
                self.document_id, last_opened=datetime.now(UTC)
            ),
        )
        logger.info(
            "Opened document %s at page %d for user %s",
            self.document_id,
            self.current_page,
            self.user_id,
        )
        return self

    async def _load_bookmarks(self) -> list[Bookmark]:
        try:
            bookmarks = await self._bookmarks.list_bookmarks(self.document_id)
        except Exception:
            logger.warning(
                "Could not load bookmarks for document %s; continuing without them",
                self.document_id,
                exc_info=True,
            )
            return []
        return sorted(bookmarks, key=lambda bookmark: bookmark.page_number)

    async def flush(self) -> None:
        """Write any coalesced position immediately and wait for pending writes."""

        if self._position_task is not None and not self._position_task.done():
            self._position_task.cancel()
            self._position_task = None
            self._write_position_if_changed()
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self) -> None:
        if self.state is SessionState.READY:
            await self.flush()
        logger.debug("Closed reading session for document %s", self.document_id)

    # ------------------------------------------------------------------
    # reader operations
    # ------------------------------------------------------------------
    def navigate(self, *, delta: int | None = None, page: int | None = None) -> int:
        """Move by ``delta`` pages or to absolute ``page``; returns the displayed page."""

        self._require_ready()
        if (delta is None) == (page is None):
            raise ValueError("navigate() takes exactly one of delta or page")

        target = self.current_page + delta if delta is not None else page
        self.current_page = clamp_page(int(target), self.total_pages)
        self._schedule_position_write()
        return self.current_page

    def jump_to_bookmark(self, bookmark: Bookmark) -> int:
        return self.navigate(page=bookmark.page_number)

    def find_bookmark(self, bookmark_id: str) -> Bookmark | None:
        for bookmark in self.bookmarks:
            if bookmark.id == bookmark_id:
                return bookmark
        return None

    def set_scale(self, direction: ScaleDirection | str) -> float:
        """Step the zoom in or out; the scale never leaves its configured bounds."""

        self._require_ready()
        step = self._bounds.step
        if ScaleDirection(direction) is ScaleDirection.OUT:
            step = -step
        self.scale = self._bounds.clamp(self.scale + step)
        return self.scale

    def on_page_count_discovered(self, count: int) -> bool:
        """Record the viewer's page count; returns ``True`` when a write was issued."""

        self._require_ready()
        if count < 1:
            raise ValueError("Page count must be positive")

        self._render_failed = False
        if self.total_pages == count:
            return False

        if self.total_pages is not None:
            logger.warning(
                "Viewer reported %d pages for document %s, replacing stored %d",
                count,
                self.document_id,
                self.total_pages,
            )
        self.total_pages = count
        if self.document is not None:
            self.document.total_pages = count
        self._spawn(
            "total_pages",
            self._documents.update_document(self.document_id, total_pages=count),
        )

        clamped = clamp_page(self.current_page, count)
        if clamped != self.current_page:
            self.current_page = clamped
            self._schedule_position_write()
        return True

    def on_render_error(self, error: str | BaseException) -> RenderErrorNotice:
        """Switch the viewing pane to its download/open-externally fallback."""

        self._require_ready()
        logger.warning("Viewer failed to render document %s: %s", self.document_id, error)
        self._render_failed = True
        return self._render_notice()

    async def create_bookmark(self, title: str, note: str | None = None) -> Bookmark:
        """Bookmark the current page; the list stays sorted by page number."""

        self._require_ready()
        cleaned_title = (title or "").strip()
        if not cleaned_title:
            raise BookmarkValidationError("Bookmark title is required")

        bookmark = Bookmark(
            user_id=self.user_id,
            document_id=self.document_id,
            page_number=self.current_page,
            title=cleaned_title,
            note=(note or "").strip() or None,
        )
        try:
            stored = await self._bookmarks.insert_bookmark(bookmark)
        except Exception as exc:
            logger.warning(
                "Failed to save bookmark on page %d of document %s: %s",
                bookmark.page_number,
                self.document_id,
                exc,
            )
            raise BookmarkCreateError("Failed to create bookmark") from exc

        self.bookmarks.append(stored)
        self.bookmarks.sort(key=lambda item: item.page_number)
        return stored

    # ------------------------------------------------------------------
    # derived view
    # ------------------------------------------------------------------
    @property
    def content_url(self) -> str | None:
        """Fetchable location of the document bytes.

        Re-resolved once older than ``content_url_max_age`` so signed links
        handed to the viewer do not expire during a long reading session.
        """

        if self.document is None:
            return None
        now = time.monotonic()
        if self._content_url is None or now - self._content_url_at >= self._content_url_max_age:
            self._content_url = self._documents.resolve_content_location(
                self.document.file_path
            )
            self._content_url_at = now
        return self._content_url

    @property
    def render_error(self) -> RenderErrorNotice | None:
        return self._render_notice() if self._render_failed else None

    def _render_notice(self) -> RenderErrorNotice:
        url = self.content_url or ""
        separator = "&" if "?" in url else "?"
        return RenderErrorNotice(
            message="This PDF could not be displayed.",
            download_url=f"{url}{separator}download=1",
            open_externally_url=url,
        )

    @property
    def zoom_percent(self) -> int:
        return round(self.scale * 100)

    @property
    def viewer_url(self) -> str | None:
        url = self.content_url
        if url is None:
            return None
        return f"{url}#page={self.current_page}&zoom={self.zoom_percent}"

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # persistence
    # ------------------------------------------------------------------
    def _require_ready(self) -> None:
        if self.state is SessionState.FAILED:
            raise SessionFailedError("Failed to load PDF", {"document_id": self.document_id})
        if self.state is not SessionState.READY:
            raise SessionNotOpenError("Document is still loading")

    def _schedule_position_write(self) -> None:
        if self._persist_delay <= 0:
            self._write_position_if_changed()
            return

        if self._position_task is not None and not self._position_task.done():
            self._position_task.cancel()
        self._position_task = self._track(
            asyncio.create_task(self._debounced_position_write())
        )

    async def _debounced_position_write(self) -> None:
        await asyncio.sleep(self._persist_delay)
        # Past the quiet period the write must not be cancelled by later navigation.
        self._position_task = None
        self._write_position_if_changed()

    def _write_position_if_changed(self) -> None:
        page = self.current_page
        if page == self._persisted_page:
            return
        self._persisted_page = page
        self._spawn(
            "current_page",
            self._documents.update_document(self.document_id, current_page=page),
        )
        self._spawn(
            "progress",
            self._progress.upsert_progress(
                self.user_id, self.document_id, page, self.total_pages
            ),
        )

    def _spawn(self, kind: str, operation: Awaitable[Any]) -> asyncio.Task[Any]:
        return self._track(asyncio.create_task(self._guarded(kind, operation)))

    def _track(self, task: asyncio.Task[Any]) -> asyncio.Task[Any]:
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _guarded(self, kind: str, operation: Awaitable[Any]) -> None:
        try:
            # Writes land in the order they were issued.
            async with self._write_lock:
                await operation
        except Exception:
            logger.warning(
                "Background %s write for document %s failed",
                kind,
                self.document_id,
                exc_info=True,
            )
            self._record(kind, ok=False)
        else:
            self._record(kind, ok=True)

    def _record(self, kind: str, *, ok: bool) -> None:
        if self._on_write is not None:
            self._on_write(kind, ok)


__all__ = [
    "ReadingSession",
    "RenderErrorNotice",
    "ScaleBounds",
    "ScaleDirection",
    "SessionState",
    "clamp_page",
]
