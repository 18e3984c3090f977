"""FastAPI dependencies shared by the routers."""

from __future__ import annotations

import logging
import re
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.engine import Engine

from .config import Settings, get_settings
from .database import get_engine
from .services.blob_storage import LocalBlobStorage
from .services.content_links import ContentLinkSigner
from .services.session_registry import SessionRegistry
from .services.sql_stores import SqlBookmarkStore, SqlDocumentStore

logger = logging.getLogger(__name__)

DEV_USER_ID = "dev-user"
_USER_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9._-]{0,63}$")


async def get_optional_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
    settings: Settings = Depends(get_settings),
) -> str | None:
    """Return the acting user, or ``None`` when the request carries no identity."""

    if not x_user_id:
        if settings.dev_auth_bypass:
            logger.debug("DEV_AUTH_BYPASS enabled, acting as %s", DEV_USER_ID)
            return DEV_USER_ID
        return None
    candidate = x_user_id.strip()
    if not _USER_ID_PATTERN.match(candidate):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user id",
        )
    return candidate


async def get_current_user_id(
    user_id: str | None = Depends(get_optional_user_id),
) -> str:
    """Return the acting user handed over by the identity provider."""

    if user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header is required",
        )
    return user_id


def get_content_link_signer(
    settings: Settings = Depends(get_settings),
) -> ContentLinkSigner:
    return ContentLinkSigner(
        settings.secret_key, ttl_seconds=settings.content_link_ttl_seconds
    )


def get_document_store(
    engine: Engine = Depends(get_engine),
    settings: Settings = Depends(get_settings),
    signer: ContentLinkSigner = Depends(get_content_link_signer),
) -> SqlDocumentStore:
    return SqlDocumentStore(
        engine, public_base_url=settings.public_base_url, signer=signer
    )


def get_bookmark_store(engine: Engine = Depends(get_engine)) -> SqlBookmarkStore:
    return SqlBookmarkStore(engine)


def get_blob_storage(settings: Settings = Depends(get_settings)) -> LocalBlobStorage:
    return LocalBlobStorage(settings.upload_dir)


def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


CurrentUser = Annotated[str, Depends(get_current_user_id)]
OptionalUser = Annotated[str | None, Depends(get_optional_user_id)]


__all__ = [
    "CurrentUser",
    "DEV_USER_ID",
    "OptionalUser",
    "get_blob_storage",
    "get_bookmark_store",
    "get_content_link_signer",
    "get_current_user_id",
    "get_document_store",
    "get_optional_user_id",
    "get_session_registry",
]
