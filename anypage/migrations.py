"""Lightweight schema migration helpers for the AnyPage backend."""

from __future__ import annotations

from collections.abc import Callable, Iterable

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import NoSuchTableError


MigrationFunc = Callable[[Engine], None]


def _add_column_if_missing(engine: Engine, table: str, column: str, ddl: str) -> None:
    with engine.begin() as connection:
        inspector = inspect(connection)
        try:
            columns = inspector.get_columns(table)
        except NoSuchTableError:
            return

        if any(existing["name"] == column for existing in columns):
            return

        connection.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl}"))


def _ensure_document_last_opened(engine: Engine) -> None:
    """Add the ``last_opened`` column to ``document`` if it is missing."""

    _add_column_if_missing(engine, "document", "last_opened", "DATETIME")


def _ensure_document_total_pages(engine: Engine) -> None:
    """Add the nullable ``total_pages`` column to ``document`` when absent."""

    _add_column_if_missing(engine, "document", "total_pages", "INTEGER")


def _ensure_bookmark_note(engine: Engine) -> None:
    """Add the optional ``note`` column to ``bookmark`` when absent."""

    _add_column_if_missing(engine, "bookmark", "note", "VARCHAR")


_MIGRATIONS: tuple[MigrationFunc, ...] = (
    _ensure_document_last_opened,
    _ensure_document_total_pages,
    _ensure_bookmark_note,
)


def run_migrations(engine: Engine, migrations: Iterable[MigrationFunc] | None = None) -> None:
    """Execute idempotent schema migrations for the provided engine."""

    for migration in migrations or _MIGRATIONS:
        migration(engine)
