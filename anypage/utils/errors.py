"""Domain exceptions raised by the reading services."""

from __future__ import annotations

from typing import Any, Dict


class AnyPageError(Exception):
    """Base class carrying a machine code and a human-readable message."""

    code = "anypage_error"

    def __init__(self, message: str, extra: Dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class StoreError(AnyPageError):
    """Raised when a backing store read or write fails."""

    code = "store_error"


class DocumentNotFoundError(StoreError):
    """Raised when a document identifier has no matching record."""

    code = "document_not_found"

    def __init__(self, document_id: str) -> None:
        super().__init__("Document not found", {"document_id": document_id})
        self.document_id = document_id


class SessionFailedError(AnyPageError):
    """Raised when a reading session could not load its document."""

    code = "session_failed"


class SessionNotOpenError(AnyPageError):
    """Raised when an operation needs a ready reading session."""

    code = "session_not_open"


class BookmarkValidationError(AnyPageError):
    """Raised when a bookmark is rejected before reaching the store."""

    code = "bookmark_invalid"


class BookmarkCreateError(AnyPageError):
    """Raised when the bookmark store rejects a write."""

    code = "bookmark_create_failed"


class ContentLinkError(AnyPageError):
    """Raised when a signed content link is malformed, expired or for another file."""

    code = "content_link_invalid"


class UploadRejectedError(AnyPageError):
    """Raised when an upload cannot be accepted."""

    code = "upload_rejected"

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


__all__ = [
    "AnyPageError",
    "BookmarkCreateError",
    "BookmarkValidationError",
    "ContentLinkError",
    "DocumentNotFoundError",
    "SessionFailedError",
    "SessionNotOpenError",
    "StoreError",
    "UploadRejectedError",
]
