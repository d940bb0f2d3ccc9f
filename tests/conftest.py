import os
import tempfile
from pathlib import Path

# Settings are read at import time, so the environment is prepared first.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_INIT_MODE"] = "off"
os.environ.setdefault("LOG_FILE", str(Path(tempfile.gettempdir()) / "gravizot-tests.log"))
os.environ.setdefault("PASSWORD_HASH_ROUNDS", "10")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from gravizot.core.database import Base, get_db  # noqa: E402
from gravizot.main import app  # noqa: E402
from gravizot.models.user import User  # noqa: E402
from gravizot.services.rate_limiter import rate_limiter  # noqa: E402


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    account = User(email="owner@example.com", password_hash="hash")
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


@pytest.fixture
def override_db(session_factory):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    rate_limiter.reset()
    yield
    rate_limiter.reset()


@pytest.fixture
def client(override_db):
    return TestClient(app)


@pytest.fixture
def csrf_headers():
    """Headers carrying the client's current CSRF cookie, planting one if needed."""
    def _headers(client):
        if client.cookies.get("csrfToken") is None:
            client.get("/api/auth/csrf")
        return {"X-CSRF-Token": client.cookies.get("csrfToken")}
    return _headers
