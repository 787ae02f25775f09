"""Every test runs against its own migrated database and a freshly built app.

SQLite by default (one file per test under ``tmp_path``). Point ``DATABASE_URL``
at a PostgreSQL server to run the suite against a throwaway database there.
"""

import importlib
import os
import sys
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient

from tests.db_utils import provision_postgres_database

# Reloaded in order so the engine and app pick up the per-test DATABASE_URL.
_APP_MODULES = ("app.stockroom.core.config", "app.stockroom.db.session", "app.main")


def _build_app(database_url: str):
    os.environ["DATABASE_URL"] = database_url
    os.environ["HOLD_REAPER_ENABLED"] = "false"
    for name in _APP_MODULES:
        importlib.reload(importlib.import_module(name))
    return sys.modules["app.main"].create_app(), sys.modules["app.stockroom.db.session"]


def _migrate(database_url: str) -> None:
    alembic_cfg = Config("alembic.ini")
    alembic_cfg.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(alembic_cfg, "head")


@pytest.fixture()
def database_url(tmp_path: Path):
    configured = os.getenv("DATABASE_URL", "")
    if not configured.startswith("postgres"):
        yield f"sqlite+pysqlite:///{tmp_path / 'stockroom-test.db'}"
        return
    url, drop = provision_postgres_database(configured)
    try:
        yield url
    finally:
        drop()


@pytest.fixture()
def client(database_url: str):
    _migrate(database_url)
    app, session = _build_app(database_url)
    with TestClient(app) as test_client:
        yield test_client
    session.engine.dispose()


@pytest.fixture()
def session_factory(client):
    return sys.modules["app.stockroom.db.session"].SessionLocal


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()
