"""Test configuration for AnyPage."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Generator

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from anypage.config import reset_settings_cache  # noqa: E402
from anypage.database import reset_database_state  # noqa: E402
from anypage.observability import metrics_registry  # noqa: E402

@pytest.fixture(autouse=True)
def _isolate_environment(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> Generator[None, None, None]:
    """Provide isolated configuration for each test."""

    db_path = tmp_path / "test.db"
    upload_dir = tmp_path / "uploads"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    monkeypatch.setenv("UPLOAD_DIR", str(upload_dir))
    monkeypatch.setenv("MAX_UPLOAD_SIZE", str(1024))
    monkeypatch.setenv("PERSIST_DEBOUNCE_SECONDS", "0")
    monkeypatch.delenv("DEV_AUTH_BYPASS", raising=False)
    monkeypatch.delenv("PUBLIC_BASE_URL", raising=False)
    reset_settings_cache()
    reset_database_state()
    metrics_registry.reset()
    yield
    reset_settings_cache()
    reset_database_state()
    metrics_registry.reset()


@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    """Return a test client for the FastAPI application."""

    from anypage.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def alice() -> dict[str, str]:
    return {"X-User-ID": "alice"}


@pytest.fixture()
def bob() -> dict[str, str]:
    return {"X-User-ID": "bob"}
