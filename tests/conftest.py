from __future__ import annotations

import asyncio
from pathlib import Path
import sys

import pytest
from fastapi.testclient import TestClient


# Ensure `import errorlog.*` works when pytest chooses an import mode that
# doesn't automatically add the project root to sys.path.
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

ADMIN_KEY = "test-admin-key"


@pytest.fixture()
def db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolated sqlite DB per test with the schema created."""

    db_path = tmp_path / "test.db"
    monkeypatch.setenv("ERRORLOG_DB_URL", f"sqlite+aiosqlite:///{db_path.as_posix()}")
    monkeypatch.setenv("ERRORLOG_ADMIN_API_KEY", ADMIN_KEY)
    monkeypatch.setenv("ERRORLOG_CELERY_EAGER", "true")
    monkeypatch.setenv("ERRORLOG_CORS_ALLOW_ORIGIN", "http://localhost:3000")

    # Clear settings cache and reset DB engine/sessionmaker.
    from errorlog.core.settings import get_settings

    get_settings.cache_clear()

    from errorlog.db import session as db_session

    db_session._engine = None  # noqa: SLF001
    db_session._sessionmaker = None  # noqa: SLF001

    # Import models so Base.metadata is fully populated.
    import errorlog.models  # noqa: F401

    from errorlog.db.base import Base

    async def _init_schema() -> None:
        engine = db_session.get_engine()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_init_schema())


@pytest.fixture()
def client(db: None) -> TestClient:
    from errorlog.main import create_app

    app = create_app()
    return TestClient(app)


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Key": ADMIN_KEY}
