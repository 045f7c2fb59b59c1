import importlib
import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from alembic import command
from alembic.config import Config

from tests.db_utils import create_postgres_test_database


def _setup_app(database_url: str):
    os.environ["DATABASE_URL"] = database_url
    os.environ["SECRET_KEY"] = "test-secret"

    import app.ledger.core.config as config
    import app.ledger.db.session as session
    import app.main as main

    importlib.reload(config)
    importlib.reload(session)
    importlib.reload(main)

    return main.create_app(), session


def _run_migrations(database_url: str):
    os.environ["DATABASE_URL"] = database_url
    config = Config("alembic.ini")
    config.set_main_option("sqlalchemy.url", database_url)
    command.upgrade(config, "head")


@pytest.fixture()
def database_url(tmp_path: Path):
    url = os.getenv("TEST_DATABASE_URL", "")
    cleanup = None

    if url.startswith("postgres"):
        url, cleanup = create_postgres_test_database(url)
    else:
        db_path = tmp_path / "test.db"
        url = f"sqlite+pysqlite:///{db_path}"

    _run_migrations(url)
    yield url

    if cleanup:
        cleanup()


@pytest.fixture()
def client(database_url):
    app, session = _setup_app(database_url)

    with TestClient(app) as client:
        yield client

    session.engine.dispose()


@pytest.fixture()
def db_session(client):
    from app.ledger.db.session import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
