"""Reading progress projection persisted per user and document."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class ReadingProgress(SQLModel, table=True):
    """Last-read page and page count for one user/document pair."""

    __tablename__ = "reading_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "document_id", name="uq_reading_progress_owner"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, nullable=False)
    document_id: str = Field(foreign_key="document.id", index=True, nullable=False)
    current_page: int = Field(nullable=False)
    total_pages: int | None = Field(default=None, nullable=True)
    last_read: datetime = Field(
        default_factory=lambda: datetime.now(UTC), nullable=False
    )


__all__ = ["ReadingProgress"]
