"""API router package."""

from fastapi import APIRouter

from .bookmarks import router as bookmarks_router
from .documents import router as documents_router
from .files import router as files_router
from .health import router as health_router
from .observability import router as observability_router
from .reader import router as reader_router

api_router = APIRouter()
api_router.include_router(files_router)
api_router.include_router(documents_router)
api_router.include_router(reader_router)
api_router.include_router(bookmarks_router)
api_router.include_router(health_router)
api_router.include_router(observability_router)

__all__ = ["api_router"]
