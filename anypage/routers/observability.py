"""Routes that expose operational observability data."""

from __future__ import annotations

from fastapi import APIRouter, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from .. import __version__
from ..database import get_engine
from ..observability import metrics_registry

router = APIRouter(prefix="/api", tags=["observability"])


def _database_ok() -> bool:
    """Run a lightweight database check."""

    engine = get_engine()
    try:
        with Session(engine) as session:
            session.exec(select(1)).one()
    except SQLAlchemyError:
        return False
    return True


@router.get("/metrics")
def read_metrics() -> dict[str, object]:
    """Return the current request and background-write metrics snapshot."""

    return metrics_registry.snapshot()


@router.get("/status")
def read_status(request: Request) -> dict[str, object]:
    """Return an aggregated operational status payload."""

    sessions = getattr(request.app.state, "sessions", None)
    return {
        "app": {"version": __version__},
        "database": {"ok": _database_ok()},
        "sessions": {"open": len(sessions) if sessions is not None else 0},
        "metrics": metrics_registry.snapshot(),
    }


__all__ = ["router"]
