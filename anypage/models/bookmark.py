"""Bookmark model definition."""

from __future__ import annotations

from datetime import UTC, datetime

from sqlmodel import Field, SQLModel

from .document import new_identifier


class Bookmark(SQLModel, table=True):
    """A titled, page-indexed annotation on a document."""

    id: str = Field(default_factory=new_identifier, primary_key=True)
    user_id: str = Field(index=True, nullable=False)
    document_id: str = Field(foreign_key="document.id", index=True, nullable=False)
    page_number: int = Field(nullable=False)
    title: str = Field(nullable=False)
    note: str | None = Field(default=None, nullable=True)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), nullable=False
    )


__all__ = ["Bookmark"]
