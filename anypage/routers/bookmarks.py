"""Library-wide bookmark listing."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..dependencies import CurrentUser, get_bookmark_store
from ..models import Bookmark
from ..services.sql_stores import SqlBookmarkStore

router = APIRouter(prefix="/api", tags=["bookmarks"])


@router.get("/bookmarks", response_model=list[Bookmark])
async def list_bookmarks(
    user_id: CurrentUser,
    *,
    bookmarks: SqlBookmarkStore = Depends(get_bookmark_store),
) -> list[Bookmark]:
    """Return every bookmark the caller has saved, grouped by document."""

    return list(await bookmarks.list_user_bookmarks(user_id))


__all__ = ["router"]
