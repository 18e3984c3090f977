"""AnyPage backend entrypoint."""

from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import get_settings
from .database import get_engine, init_db
from .middleware import RequestIdMiddleware, SecurityHeadersMiddleware
from .observability import RequestMetricsMiddleware, metrics_registry
from .routers import api_router
from .services.content_links import ContentLinkSigner
from .services.reading_session import ReadingSession, ScaleBounds
from .services.session_registry import SessionRegistry
from .services.sql_stores import SqlBookmarkStore, SqlDocumentStore, SqlProgressStore
from .utils.errors import (
    AnyPageError,
    BookmarkCreateError,
    BookmarkValidationError,
    ContentLinkError,
    DocumentNotFoundError,
    SessionFailedError,
    SessionNotOpenError,
    StoreError,
    UploadRejectedError,
)
from .utils.logging import configure_logging


settings = get_settings()
logger = logging.getLogger("uvicorn.error")
configure_logging(settings.log_level)

LIBRARY_PATH = "/api/documents"

cors_allow_origins = list(settings.cors_allow_origins)
allow_credentials = True
if "*" in cors_allow_origins:
    cors_allow_origins = ["*"]
    allow_credentials = False
if not cors_allow_origins:
    cors_allow_origins = ["http://localhost:8080", "http://127.0.0.1:8080"]

_cors_origin_pattern = (
    re.compile(settings.cors_allow_origin_regex)
    if settings.cors_allow_origin_regex
    else None
)


def build_session_registry() -> SessionRegistry:
    """Wire reading sessions to the SQL stores using the current settings."""

    current = get_settings()
    engine = get_engine()
    signer = ContentLinkSigner(
        current.secret_key, ttl_seconds=current.content_link_ttl_seconds
    )
    documents_store = SqlDocumentStore(
        engine, public_base_url=current.public_base_url, signer=signer
    )
    bookmark_store = SqlBookmarkStore(engine)
    progress_store = SqlProgressStore(engine)
    bounds = ScaleBounds(
        minimum=current.scale_min,
        maximum=current.scale_max,
        step=current.scale_step,
    )

    def factory(user_id: str, document_id: str) -> ReadingSession:
        return ReadingSession(
            user_id=user_id,
            document_id=document_id,
            documents=documents_store,
            bookmarks=bookmark_store,
            progress=progress_store,
            scale_bounds=bounds,
            persist_delay=current.persist_debounce_seconds,
            on_write=metrics_registry.write_finished,
            content_url_max_age=min(300.0, current.content_link_ttl_seconds / 2),
        )

    return SessionRegistry(factory, idle_timeout=current.session_idle_seconds)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise application state for the FastAPI app."""

    init_db()
    get_settings().upload_dir.mkdir(parents=True, exist_ok=True)
    app.state.sessions = build_session_registry()
    logger.info("AnyPage %s ready", __version__)
    try:
        yield
    finally:
        await app.state.sessions.close_all()


app = FastAPI(title="AnyPage", version=__version__, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
    allow_origin_regex=settings.cors_allow_origin_regex,
)
app.add_middleware(RequestIdMiddleware)
app.add_middleware(RequestMetricsMiddleware)
app.add_middleware(SecurityHeadersMiddleware)

app.include_router(api_router)


_ERROR_STATUS: tuple[tuple[type[AnyPageError], int], ...] = (
    (SessionFailedError, status.HTTP_404_NOT_FOUND),
    (SessionNotOpenError, status.HTTP_409_CONFLICT),
    (BookmarkValidationError, status.HTTP_400_BAD_REQUEST),
    (BookmarkCreateError, status.HTTP_502_BAD_GATEWAY),
    (ContentLinkError, status.HTTP_401_UNAUTHORIZED),
    (DocumentNotFoundError, status.HTTP_404_NOT_FOUND),
    (StoreError, status.HTTP_503_SERVICE_UNAVAILABLE),
)


@app.exception_handler(AnyPageError)
async def handle_domain_error(request: Request, exc: AnyPageError) -> JSONResponse:
    """Translate domain failures into short, user-facing JSON errors."""

    if isinstance(exc, UploadRejectedError):
        status_code = exc.status_code
    else:
        status_code = next(
            (code for kind, code in _ERROR_STATUS if isinstance(exc, kind)),
            status.HTTP_400_BAD_REQUEST,
        )

    content: dict[str, str] = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, SessionFailedError):
        content["redirect"] = LIBRARY_PATH
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(Exception)
async def handle_unexpected_exception(
    request: Request, exc: Exception
) -> JSONResponse:
    """Ensure unexpected exceptions return a JSON payload."""

    logger.exception(
        "Unhandled exception while processing %s %s", request.method, request.url.path
    )
    origin = request.headers.get("origin")
    headers: dict[str, str] = {}

    if origin:
        allowed_origin: str | None = None

        if cors_allow_origins == ["*"]:
            allowed_origin = "*"
        elif origin in cors_allow_origins:
            allowed_origin = origin
        elif _cors_origin_pattern and _cors_origin_pattern.fullmatch(origin):
            allowed_origin = origin

        if allowed_origin:
            headers["Access-Control-Allow-Origin"] = allowed_origin
            headers.setdefault("Vary", "Origin")
            if allow_credentials and allowed_origin != "*":
                headers["Access-Control-Allow-Credentials"] = "true"

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error"},
        headers=headers or None,
    )


__all__ = ["app", "build_session_registry"]
