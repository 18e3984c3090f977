"""Database models for the AnyPage backend."""

from .bookmark import Bookmark
from .document import Document
from .progress import ReadingProgress

__all__ = [
    "Bookmark",
    "Document",
    "ReadingProgress",
]
