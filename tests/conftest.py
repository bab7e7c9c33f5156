"""
Test configuration.

The application reads its settings once at import time, so the
environment is pointed at a throwaway SQLite database before any
``resto`` module is imported.
"""

import asyncio
import os
import tempfile
from pathlib import Path

import pytest

TEST_DIR = Path(tempfile.mkdtemp(prefix="resto-tests-"))
DB_PATH = TEST_DIR / "resto.db"

os.environ["ENV_MODE"] = "development"
os.environ["DEBUG"] = "false"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{DB_PATH}"
os.environ["SEED_DEMO_MENU"] = "true"
os.environ["POLL_INTERVAL_SECONDS"] = "0.2"
os.environ["DATA_DIRECTORY"] = str(TEST_DIR / "data")
os.environ["APP_BASE_URL"] = "http://testserver"


@pytest.fixture()
def fresh_db():
    """Start from an empty database file."""
    if DB_PATH.exists():
        DB_PATH.unlink()
    return DB_PATH


@pytest.fixture()
def client(fresh_db):
    """TestClient with the lifespan running (tables created, menu seeded)."""
    from fastapi.testclient import TestClient

    from resto.main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def run_db(fresh_db):
    """
    Run ``fn(session)`` on a fresh schema in its own event loop.

    The change feed and the engine pool are torn down afterwards so the
    next loop starts clean.
    """
    from resto.database import async_session_maker, engine, init_db
    from resto.services.realtime import get_change_feed, reset_change_feed

    def runner(fn):
        async def main():
            await init_db()
            try:
                async with async_session_maker() as session:
                    return await fn(session)
            finally:
                await get_change_feed().close()
                reset_change_feed()
                await engine.dispose()

        return asyncio.run(main())

    return runner


@pytest.fixture()
def menu(client):
    """Seeded products keyed by name."""
    return {p["name"]: p for p in client.get("/api/products").json()}
