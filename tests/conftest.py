import os
from urllib.parse import urlparse

import pytest

from chat_backend import create_app, db

TEST_JWT_SECRET = "test-jwt-secret-key-at-least-32-bytes-long"


def _resolve_test_db_uri(tmp_path) -> str:
    db_uri = (os.environ.get("TEST_DATABASE_URL") or "").strip()
    if not db_uri:
        return f"sqlite:///{(tmp_path / 'chat_test.db').as_posix()}"

    if db_uri.startswith(("postgresql://", "postgresql+psycopg://", "postgres://")):
        parsed = urlparse(db_uri)
        db_name = (parsed.path or "").lstrip("/")
        if not db_name or "test" not in db_name.lower():
            raise RuntimeError(
                "Refusing to run pytest on non-test Postgres DB. "
                "Use TEST_DATABASE_URL with a database name containing 'test'."
            )
        if db_uri.startswith("postgres://"):
            return db_uri.replace("postgres://", "postgresql+psycopg://", 1)
        if db_uri.startswith("postgresql://"):
            return db_uri.replace("postgresql://", "postgresql+psycopg://", 1)
        return db_uri

    raise RuntimeError(
        "Unsupported TEST_DATABASE_URL scheme. "
        "Use postgresql+psycopg://..."
    )


@pytest.fixture()
def db_uri(tmp_path):
    return _resolve_test_db_uri(tmp_path)


@pytest.fixture()
def app(db_uri, monkeypatch):
    monkeypatch.setenv("JWT_SECRET", TEST_JWT_SECRET)
    for name in (
        "PROVIDER_API_KEY",
        "OPENAI_API_KEY",
        "PROVIDER_BASE_URL",
        "OPENAI_BASE_URL",
        "PROVIDER_NAME",
        "PROVIDER_HEADERS",
        "MODEL_FILTER",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PROVIDER", "openai")
    monkeypatch.setenv("DB_READ_ONLY", "false")

    app = create_app("default", db_uri_override=db_uri, create_schema=False)
    app.config["TESTING"] = True
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()
