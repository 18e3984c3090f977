"""Reading session endpoints driven by the in-browser viewer."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field, model_validator

from ..dependencies import CurrentUser, get_session_registry
from ..models import Bookmark
from ..services.reading_session import ReadingSession, ScaleDirection
from ..services.session_registry import SessionRegistry

router = APIRouter(prefix="/api/reader", tags=["reader"])


class RenderErrorPayload(BaseModel):
    message: str
    download_url: str
    open_externally_url: str


class ReaderSnapshot(BaseModel):
    """Everything the reading screen needs to draw itself."""

    document_id: str
    title: str
    state: str
    current_page: int
    total_pages: int | None = None
    scale: float
    zoom_percent: int
    content_url: str | None = None
    viewer_url: str | None = None
    bookmarks: list[Bookmark] = Field(default_factory=list)
    render_error: RenderErrorPayload | None = None
    can_go_back: bool
    can_go_forward: bool


class NavigateRequest(BaseModel):
    delta: int | None = None
    page: int | None = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _exactly_one_target(self) -> "NavigateRequest":
        if (self.delta is None) == (self.page is None):
            raise ValueError("Provide exactly one of 'delta' or 'page'")
        return self


class ScaleRequest(BaseModel):
    direction: ScaleDirection


class PageCountRequest(BaseModel):
    count: int = Field(ge=1)


class RenderErrorRequest(BaseModel):
    error: str = Field(default="", max_length=2000)


class BookmarkCreateRequest(BaseModel):
    title: str
    note: str | None = None


def _snapshot(session: ReadingSession) -> ReaderSnapshot:
    document = session.document
    notice = session.render_error
    return ReaderSnapshot(
        document_id=session.document_id,
        title=document.title if document is not None else "",
        state=session.state.value,
        current_page=session.current_page,
        total_pages=session.total_pages,
        scale=session.scale,
        zoom_percent=session.zoom_percent,
        content_url=session.content_url,
        viewer_url=session.viewer_url,
        bookmarks=list(session.bookmarks),
        render_error=(
            RenderErrorPayload(
                message=notice.message,
                download_url=notice.download_url,
                open_externally_url=notice.open_externally_url,
            )
            if notice is not None
            else None
        ),
        can_go_back=session.current_page > 1,
        can_go_forward=(
            session.total_pages is None or session.current_page < session.total_pages
        ),
    )


@router.post("/{document_id}", response_model=ReaderSnapshot)
async def open_document(
    document_id: str,
    user_id: CurrentUser,
    *,
    registry: SessionRegistry = Depends(get_session_registry),
) -> ReaderSnapshot:
    """Open a document for reading, resuming at its stored page."""

    session = await registry.open(user_id, document_id)
    return _snapshot(session)


@router.get("/{document_id}", response_model=ReaderSnapshot)
async def read_session(
    document_id: str,
    user_id: CurrentUser,
    *,
    registry: SessionRegistry = Depends(get_session_registry),
) -> ReaderSnapshot:
    return _snapshot(registry.get(user_id, document_id))


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(
    document_id: str,
    user_id: CurrentUser,
    *,
    registry: SessionRegistry = Depends(get_session_registry),
) -> Response:
    """Close the session after its pending writes have landed."""

    if not await registry.close(user_id, document_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No open session"
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{document_id}/navigate", response_model=ReaderSnapshot)
async def navigate(
    document_id: str,
    payload: NavigateRequest,
    user_id: CurrentUser,
    *,
    registry: SessionRegistry = Depends(get_session_registry),
) -> ReaderSnapshot:
    session = registry.get(user_id, document_id)
    session.navigate(delta=payload.delta, page=payload.page)
    return _snapshot(session)


@router.post("/{document_id}/scale", response_model=ReaderSnapshot)
async def change_scale(
    document_id: str,
    payload: ScaleRequest,
    user_id: CurrentUser,
    *,
    registry: SessionRegistry = Depends(get_session_registry),
) -> ReaderSnapshot:
    session = registry.get(user_id, document_id)
    session.set_scale(payload.direction)
    return _snapshot(session)


@router.post("/{document_id}/page-count", response_model=ReaderSnapshot)
async def report_page_count(
    document_id: str,
    payload: PageCountRequest,
    user_id: CurrentUser,
    *,
    registry: SessionRegistry = Depends(get_session_registry),
) -> ReaderSnapshot:
    """Accept the page count the viewer discovered while parsing the file."""

    session = registry.get(user_id, document_id)
    session.on_page_count_discovered(payload.count)
    return _snapshot(session)


@router.post("/{document_id}/render-error", response_model=ReaderSnapshot)
async def report_render_error(
    document_id: str,
    payload: RenderErrorRequest,
    user_id: CurrentUser,
    *,
    registry: SessionRegistry = Depends(get_session_registry),
) -> ReaderSnapshot:
    """Switch the viewing pane to its download / open-externally fallback."""

    session = registry.get(user_id, document_id)
    session.on_render_error(payload.error or "unknown render failure")
    return _snapshot(session)


@router.post(
    "/{document_id}/bookmarks",
    response_model=Bookmark,
    status_code=status.HTTP_201_CREATED,
)
async def create_bookmark(
    document_id: str,
    payload: BookmarkCreateRequest,
    user_id: CurrentUser,
    *,
    registry: SessionRegistry = Depends(get_session_registry),
) -> Bookmark:
    """Bookmark the page currently being read."""

    session = registry.get(user_id, document_id)
    return await session.create_bookmark(payload.title, payload.note)


@router.post(
    "/{document_id}/bookmarks/{bookmark_id}/jump", response_model=ReaderSnapshot
)
async def jump_to_bookmark(
    document_id: str,
    bookmark_id: str,
    user_id: CurrentUser,
    *,
    registry: SessionRegistry = Depends(get_session_registry),
) -> ReaderSnapshot:
    session = registry.get(user_id, document_id)
    bookmark = session.find_bookmark(bookmark_id)
    if bookmark is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Bookmark not found"
        )
    session.jump_to_bookmark(bookmark)
    return _snapshot(session)


__all__ = ["router", "ReaderSnapshot"]
