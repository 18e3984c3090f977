"""Document model definition."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlmodel import Field, SQLModel


def new_identifier() -> str:
    """Return a fresh opaque record identifier."""

    return uuid.uuid4().hex


class Document(SQLModel, table=True):
    """Represents an uploaded PDF in a user's library."""

    id: str = Field(default_factory=new_identifier, primary_key=True)
    user_id: str = Field(index=True, description="Owner of the document.")
    title: str = Field(description="Display name, derived from the file name by default.")
    file_name: str = Field(description="Original filename of the uploaded document.")
    file_path: str = Field(
        unique=True, description="Storage reference into the blob namespace."
    )
    file_size: int | None = Field(
        default=None, description="Size of the uploaded document in bytes."
    )
    total_pages: int | None = Field(
        default=None,
        description="Number of pages reported by the viewer, once known.",
    )
    current_page: int = Field(
        default=1, description="Last known reading position (1-based)."
    )
    upload_date: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="UTC timestamp indicating when the file was uploaded.",
    )
    last_opened: datetime | None = Field(
        default=None,
        description="Timestamp of the most recent reading session.",
    )
