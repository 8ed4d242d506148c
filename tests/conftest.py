import os

# Point the app at a throwaway store before anything imports it
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "unit-test-secret"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ.pop("DSN", None)

import pytest
from starlette.testclient import TestClient

from loadboard.auth import create_user
from loadboard.database import Base, SessionLocal, engine
from loadboard.fanout import FanOut
from loadboard.main import app


def pytest_configure(config) -> None:
    config.addinivalue_line("markers", "routes: HTTP and WebSocket route tests")


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    app.state.fanout = FanOut()
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    # Entering the client keeps HTTP calls and sockets on one event loop
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_user():
    counter = {"n": 0}

    def _make(role="driver", name=None, approved=None, password="secret"):
        counter["n"] += 1
        n = counter["n"]
        session = SessionLocal()
        try:
            user = create_user(session, f"user{n}@example.com", password, role, name or f"User {n}")
            if approved is not None:
                user.is_approved = approved
                session.commit()
            return user.id
        finally:
            session.close()

    return _make
