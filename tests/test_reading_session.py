"""Tests for the reading session controller against in-memory stores."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from anypage.models import Bookmark, Document, ReadingProgress
from anypage.services.reading_session import (
    ReadingSession,
    ScaleBounds,
    ScaleDirection,
    SessionState,
    clamp_page,
)
from anypage.utils.errors import (
    BookmarkCreateError,
    BookmarkValidationError,
    DocumentNotFoundError,
    SessionFailedError,
    SessionNotOpenError,
    StoreError,
)


class FakeDocumentStore:
    def __init__(self, *documents: Document, fail_updates: bool = False) -> None:
        self.documents = {document.id: document for document in documents}
        self.fail_updates = fail_updates
        self.fetches: list[str] = []
        self.updates: list[tuple[str, dict[str, Any]]] = []

    async def fetch_document(self, document_id: str) -> Document:
        self.fetches.append(document_id)
        if document_id not in self.documents:
            raise DocumentNotFoundError(document_id)
        return self.documents[document_id]

    async def list_documents(self, user_id: str) -> list[Document]:
        return [doc for doc in self.documents.values() if doc.user_id == user_id]

    async def update_document(self, document_id: str, **fields: Any) -> None:
        self.updates.append((document_id, fields))
        if self.fail_updates:
            raise StoreError("update_document failed")

    async def insert_document(self, document: Document) -> Document:
        self.documents[document.id] = document
        return document

    def resolve_content_location(self, storage_reference: str) -> str:
        return f"https://files.test/{storage_reference}"

    def updated_fields(self, name: str) -> list[Any]:
        return [fields[name] for _, fields in self.updates if name in fields]


class FakeBookmarkStore:
    def __init__(self, *bookmarks: Bookmark, fail_list: bool = False, fail_insert: bool = False) -> None:
        self.bookmarks = list(bookmarks)
        self.fail_list = fail_list
        self.fail_insert = fail_insert
        self.list_calls = 0
        self.inserted: list[Bookmark] = []

    async def list_bookmarks(self, document_id: str) -> list[Bookmark]:
        self.list_calls += 1
        if self.fail_list:
            raise StoreError("list_bookmarks failed")
        matches = [b for b in self.bookmarks if b.document_id == document_id]
        return sorted(matches, key=lambda b: b.page_number)

    async def insert_bookmark(self, bookmark: Bookmark) -> Bookmark:
        if self.fail_insert:
            raise StoreError("insert_bookmark failed")
        self.inserted.append(bookmark)
        self.bookmarks.append(bookmark)
        return bookmark


class FakeProgressStore:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.upserts: list[tuple[str, str, int, int | None]] = []

    async def upsert_progress(
        self, user_id: str, document_id: str, current_page: int, total_pages: int | None
    ) -> ReadingProgress:
        self.upserts.append((user_id, document_id, current_page, total_pages))
        if self.fail:
            raise StoreError("upsert_progress failed")
        return ReadingProgress(
            user_id=user_id,
            document_id=document_id,
            current_page=current_page,
            total_pages=total_pages,
        )


def _document(**overrides: Any) -> Document:
    values: dict[str, Any] = {
        "id": "doc-1",
        "user_id": "alice",
        "title": "Field Guide",
        "file_name": "Field Guide.pdf",
        "file_path": "alice/1700000000000_Field_Guide.pdf",
        "current_page": 1,
        "total_pages": None,
    }
    values.update(overrides)
    return Document(**values)


def _session(
    documents: FakeDocumentStore,
    bookmarks: FakeBookmarkStore | None = None,
    progress: FakeProgressStore | None = None,
    **kwargs: Any,
) -> ReadingSession:
    return ReadingSession(
        user_id="alice",
        document_id="doc-1",
        documents=documents,
        bookmarks=bookmarks or FakeBookmarkStore(),
        progress=progress or FakeProgressStore(),
        **kwargs,
    )


@pytest.mark.parametrize(
    ("target", "total", "expected"),
    [
        (5, 10, 5),
        (0, 10, 1),
        (-3, None, 1),
        (500, 100, 100),
        (500, None, 500),
        (1, 1, 1),
    ],
)
def test_clamp_page(target: int, total: int | None, expected: int) -> None:
    assert clamp_page(target, total) == expected


def test_open_seeds_page_one_when_document_never_read() -> None:
    documents = FakeDocumentStore(_document(current_page=None))

    async def _run() -> ReadingSession:
        session = await _session(documents).open()
        await session.flush()
        return session

    session = asyncio.run(_run())

    assert session.state is SessionState.READY
    assert session.current_page == 1
    assert session.content_url == "https://files.test/alice/1700000000000_Field_Guide.pdf"
    assert len(documents.updated_fields("last_opened")) == 1


def test_navigate_forward_persists_page_and_progress() -> None:
    documents = FakeDocumentStore(_document(current_page=42, total_pages=100))
    progress = FakeProgressStore()

    async def _run() -> ReadingSession:
        session = await _session(documents, progress=progress).open()
        assert session.current_page == 42
        assert session.navigate(delta=1) == 43
        assert session.pending_writes >= 2
        await session.flush()
        assert session.pending_writes == 0
        return session

    session = asyncio.run(_run())

    assert session.current_page == 43
    assert documents.updated_fields("current_page") == [43]
    assert progress.upserts == [("alice", "doc-1", 43, 100)]


def test_navigate_clamps_to_known_page_count() -> None:
    documents = FakeDocumentStore(_document(current_page=42, total_pages=100))

    async def _run() -> int:
        session = await _session(documents).open()
        page = session.navigate(page=500)
        await session.flush()
        return page

    assert asyncio.run(_run()) == 100
    assert documents.updated_fields("current_page") == [100]


def test_navigate_without_page_count_has_no_upper_bound() -> None:
    documents = FakeDocumentStore(_document(current_page=3))

    async def _run() -> tuple[int, int]:
        session = await _session(documents).open()
        forward = session.navigate(page=250)
        backward = session.navigate(delta=-1000)
        await session.flush()
        return forward, backward

    assert asyncio.run(_run()) == (250, 1)


def test_navigate_to_same_page_skips_persistence() -> None:
    documents = FakeDocumentStore(_document(current_page=1, total_pages=5))
    progress = FakeProgressStore()

    async def _run() -> None:
        session = await _session(documents, progress=progress).open()
        session.navigate(delta=-1)
        session.navigate(page=1)
        await session.flush()

    asyncio.run(_run())

    assert documents.updated_fields("current_page") == []
    assert progress.upserts == []


def test_every_navigation_writes_without_coalescing() -> None:
    documents = FakeDocumentStore(_document(total_pages=10))
    progress = FakeProgressStore()

    async def _run() -> None:
        session = await _session(documents, progress=progress).open()
        for _ in range(3):
            session.navigate(delta=1)
        await session.flush()

    asyncio.run(_run())

    assert documents.updated_fields("current_page") == [2, 3, 4]
    assert [entry[2] for entry in progress.upserts] == [2, 3, 4]


def test_debounced_navigation_coalesces_into_trailing_write() -> None:
    documents = FakeDocumentStore(_document(total_pages=10))
    progress = FakeProgressStore()

    async def _run() -> ReadingSession:
        session = await _session(documents, progress=progress, persist_delay=0.05).open()
        for _ in range(4):
            session.navigate(delta=1)
        await asyncio.sleep(0.2)
        await session.flush()
        return session

    session = asyncio.run(_run())

    assert session.current_page == 5
    assert documents.updated_fields("current_page") == [5]
    assert progress.upserts == [("alice", "doc-1", 5, 10)]


def test_flush_writes_pending_debounced_position_immediately() -> None:
    documents = FakeDocumentStore(_document(total_pages=10))

    async def _run() -> None:
        session = await _session(documents, persist_delay=30).open()
        session.navigate(page=7)
        await session.close()

    asyncio.run(_run())

    assert documents.updated_fields("current_page") == [7]


def test_persistence_failures_do_not_roll_back_visible_page() -> None:
    documents = FakeDocumentStore(_document(total_pages=10), fail_updates=True)
    progress = FakeProgressStore(fail=True)
    outcomes: list[tuple[str, bool]] = []

    async def _run() -> ReadingSession:
        session = await _session(
            documents,
            progress=progress,
            on_write=lambda kind, ok: outcomes.append((kind, ok)),
        ).open()
        session.navigate(page=6)
        await session.flush()
        return session

    session = asyncio.run(_run())

    assert session.state is SessionState.READY
    assert session.current_page == 6
    assert ("current_page", False) in outcomes
    assert ("progress", False) in outcomes
    assert ("last_opened", False) in outcomes


def test_scale_stays_within_bounds() -> None:
    documents = FakeDocumentStore(_document())

    async def _run() -> list[float]:
        session = await _session(documents).open()
        zoomed_in = [session.set_scale(ScaleDirection.IN) for _ in range(10)]
        zoomed_out = [session.set_scale("out") for _ in range(20)]
        await session.flush()
        return zoomed_in + zoomed_out

    values = asyncio.run(_run())

    assert values[0] == 1.25
    assert max(values) == 2.0
    assert min(values) == 0.5
    assert all(0.5 <= value <= 2.0 for value in values)


def test_custom_scale_bounds_and_zoom_percent() -> None:
    documents = FakeDocumentStore(_document())
    bounds = ScaleBounds(minimum=0.5, maximum=3.0, step=0.25)

    async def _run() -> ReadingSession:
        session = await _session(documents, scale_bounds=bounds).open()
        for _ in range(12):
            session.set_scale("in")
        return session

    session = asyncio.run(_run())

    assert session.scale == 3.0
    assert session.zoom_percent == 300
    assert session.viewer_url.endswith("#page=1&zoom=300")


def test_page_count_discovery_is_idempotent() -> None:
    documents = FakeDocumentStore(_document())

    async def _run() -> tuple[bool, bool, ReadingSession]:
        session = await _session(documents).open()
        first = session.on_page_count_discovered(12)
        second = session.on_page_count_discovered(12)
        await session.flush()
        return first, second, session

    first, second, session = asyncio.run(_run())

    assert (first, second) == (True, False)
    assert session.total_pages == 12
    assert documents.updated_fields("total_pages") == [12]


def test_page_count_correction_clamps_current_page() -> None:
    documents = FakeDocumentStore(_document(current_page=40, total_pages=50))
    progress = FakeProgressStore()

    async def _run() -> ReadingSession:
        session = await _session(documents, progress=progress).open()
        session.on_page_count_discovered(30)
        await session.flush()
        return session

    session = asyncio.run(_run())

    assert session.total_pages == 30
    assert session.current_page == 30
    assert documents.updated_fields("total_pages") == [30]
    assert documents.updated_fields("current_page") == [30]
    assert progress.upserts == [("alice", "doc-1", 30, 30)]


def test_create_bookmark_captures_current_page_and_sorts() -> None:
    existing = [
        Bookmark(id="b-10", user_id="alice", document_id="doc-1", page_number=10, title="Early"),
        Bookmark(id="b-80", user_id="alice", document_id="doc-1", page_number=80, title="Late"),
    ]
    documents = FakeDocumentStore(_document(current_page=42, total_pages=100))
    bookmarks = FakeBookmarkStore(*reversed(existing))

    async def _run() -> tuple[Bookmark, ReadingSession]:
        session = await _session(documents, bookmarks=bookmarks).open()
        session.navigate(delta=1)
        created = await session.create_bookmark("  Intro  ")
        await session.flush()
        return created, session

    created, session = asyncio.run(_run())

    assert created.page_number == 43
    assert created.title == "Intro"
    assert created.note is None
    assert [b.page_number for b in session.bookmarks] == [10, 43, 80]


def test_create_bookmark_keeps_trimmed_note() -> None:
    documents = FakeDocumentStore(_document())

    async def _run() -> Bookmark:
        session = await _session(documents).open()
        return await session.create_bookmark("Glossary", note="  terms to revisit ")

    assert asyncio.run(_run()).note == "terms to revisit"


@pytest.mark.parametrize("title", ["", "   ", "\t\n"])
def test_blank_bookmark_title_is_rejected_without_store_write(title: str) -> None:
    documents = FakeDocumentStore(_document())
    bookmarks = FakeBookmarkStore()

    async def _run() -> None:
        session = await _session(documents, bookmarks=bookmarks).open()
        with pytest.raises(BookmarkValidationError):
            await session.create_bookmark(title)

    asyncio.run(_run())

    assert bookmarks.inserted == []


def test_rejected_bookmark_write_is_not_retained() -> None:
    documents = FakeDocumentStore(_document())
    bookmarks = FakeBookmarkStore(fail_insert=True)

    async def _run() -> ReadingSession:
        session = await _session(documents, bookmarks=bookmarks).open()
        with pytest.raises(BookmarkCreateError) as excinfo:
            await session.create_bookmark("Chapter 2")
        assert excinfo.value.message == "Failed to create bookmark"
        return session

    session = asyncio.run(_run())

    assert session.bookmarks == []


def test_jump_to_bookmark_navigates_to_its_page() -> None:
    mark = Bookmark(id="b-7", user_id="alice", document_id="doc-1", page_number=7, title="Map")
    documents = FakeDocumentStore(_document(total_pages=20))

    async def _run() -> int:
        session = await _session(documents, bookmarks=FakeBookmarkStore(mark)).open()
        found = session.find_bookmark("b-7")
        assert found is not None
        page = session.jump_to_bookmark(found)
        await session.flush()
        return page

    assert asyncio.run(_run()) == 7
    assert documents.updated_fields("current_page") == [7]


def test_bookmark_fetch_failure_degrades_to_empty_list() -> None:
    documents = FakeDocumentStore(_document())

    async def _run() -> ReadingSession:
        session = await _session(documents, bookmarks=FakeBookmarkStore(fail_list=True)).open()
        await session.flush()
        return session

    session = asyncio.run(_run())

    assert session.state is SessionState.READY
    assert session.bookmarks == []


def test_failed_open_makes_no_further_store_calls() -> None:
    documents = FakeDocumentStore()
    bookmarks = FakeBookmarkStore()
    progress = FakeProgressStore()

    async def _run() -> ReadingSession:
        session = _session(documents, bookmarks, progress)
        with pytest.raises(SessionFailedError) as excinfo:
            await session.open()
        assert excinfo.value.message == "Failed to load PDF"
        with pytest.raises(SessionFailedError):
            session.navigate(delta=1)
        with pytest.raises(SessionFailedError):
            await session.create_bookmark("Nope")
        await session.close()
        return session

    session = asyncio.run(_run())

    assert session.state is SessionState.FAILED
    assert documents.fetches == ["doc-1"]
    assert documents.updates == []
    assert bookmarks.list_calls == 0
    assert progress.upserts == []


def test_document_owned_by_someone_else_fails_the_session() -> None:
    documents = FakeDocumentStore(_document(user_id="bob"))
    bookmarks = FakeBookmarkStore()

    async def _run() -> ReadingSession:
        session = _session(documents, bookmarks)
        with pytest.raises(SessionFailedError):
            await session.open()
        return session

    session = asyncio.run(_run())

    assert session.state is SessionState.FAILED
    assert bookmarks.list_calls == 0


def test_operations_before_open_are_rejected() -> None:
    session = _session(FakeDocumentStore(_document()))

    with pytest.raises(SessionNotOpenError):
        session.navigate(delta=1)
    with pytest.raises(SessionNotOpenError):
        session.set_scale("in")


def test_render_error_offers_download_fallback_until_next_parse() -> None:
    documents = FakeDocumentStore(_document())

    async def _run() -> ReadingSession:
        session = await _session(documents).open()
        notice = session.on_render_error(RuntimeError("Invalid PDF structure"))
        assert notice.message == "This PDF could not be displayed."
        assert notice.download_url.endswith("?download=1")
        assert notice.open_externally_url == session.content_url
        assert session.navigate(delta=1) == 2
        session.on_page_count_discovered(4)
        await session.flush()
        return session

    session = asyncio.run(_run())

    assert session.render_error is None


class SlowFirstDocumentStore(FakeDocumentStore):
    """Document store whose first page write takes longer than the rest."""

    def __init__(self, *documents: Document) -> None:
        super().__init__(*documents)
        self.landed: list[int] = []

    async def update_document(self, document_id: str, **fields: Any) -> None:
        await super().update_document(document_id, **fields)
        if "current_page" in fields:
            await asyncio.sleep(0.05 if not self.landed else 0)
            self.landed.append(fields["current_page"])


def test_background_writes_land_in_issue_order() -> None:
    documents = SlowFirstDocumentStore(_document(total_pages=10))

    async def _run() -> None:
        session = await _session(documents).open()
        session.navigate(page=4)
        session.navigate(page=9)
        session.navigate(page=6)
        await session.flush()

    asyncio.run(_run())

    assert documents.landed == [4, 9, 6]


class SigningDocumentStore(FakeDocumentStore):
    def __init__(self, *documents: Document) -> None:
        super().__init__(*documents)
        self.resolved = 0

    def resolve_content_location(self, storage_reference: str) -> str:
        self.resolved += 1
        return f"https://files.test/{storage_reference}?token=t{self.resolved}"


def test_signed_content_url_is_reused_then_refreshed() -> None:
    documents = SigningDocumentStore(_document())

    async def _run() -> list[str]:
        session = await _session(documents, content_url_max_age=0.05).open()
        first = [session.content_url, session.viewer_url]
        await asyncio.sleep(0.1)
        return first + [session.content_url]

    first, viewer, refreshed = asyncio.run(_run())

    assert first.endswith("?token=t1")
    assert viewer == f"{first}#page=1&zoom=100"
    assert refreshed.endswith("?token=t2")


def test_render_error_download_link_extends_existing_query() -> None:
    documents = SigningDocumentStore(_document())

    async def _run():
        session = await _session(documents).open()
        return session.on_render_error("bad xref")

    notice = asyncio.run(_run())

    assert notice.open_externally_url.endswith("?token=t1")
    assert notice.download_url == f"{notice.open_externally_url}&download=1"
